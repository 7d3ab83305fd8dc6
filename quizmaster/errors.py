"""
Exception hierarchy for QuizMaster.
"""
from typing import Optional


class QuizMasterError(Exception):
    """Base exception for quiz errors."""
    pass


class SourceUnavailable(QuizMasterError):
    """Raised when questions cannot be fetched from the trivia source."""

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


class QuestionFormatError(SourceUnavailable):
    """Raised when the trivia source returns a malformed question record."""
    pass


class InvalidTransitionError(QuizMasterError):
    """Raised when a quiz session operation is not valid in its current phase."""
    pass


class ValidationError(QuizMasterError):
    """Raised when a score submission has a missing or invalid field."""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field
        self.message = message


class PersistenceFailure(QuizMasterError):
    """Raised when the score store cannot be read or written."""
    pass

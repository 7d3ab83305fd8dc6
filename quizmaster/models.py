"""
Core data models for the QuizMaster trivia quiz.
"""
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from .errors import ValidationError


class Difficulty(Enum):
    """Difficulty levels reported by the trivia source."""
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


@dataclass(frozen=True)
class Question:
    """A normalized quiz question with its shuffled answer list."""
    text: str
    category: str
    difficulty: Difficulty
    correct_answer: str
    answers: Tuple[str, ...]
    question_type: str = "multiple"

    def is_correct(self, answer: Optional[str]) -> bool:
        """Check an answer by string equality; unanswered never matches."""
        return answer is not None and answer == self.correct_answer


@dataclass
class QuizSettings:
    """Configuration settings for a quiz session."""
    timer_duration: int = 30
    question_amount: int = 15
    category: Optional[int] = None
    difficulty: Optional[str] = None
    question_type: Optional[str] = None


def compute_percentage(score: int, total_questions: int) -> int:
    """Percentage of correct answers, rounded half up like the web client."""
    if total_questions <= 0:
        return 0
    return int(score * 100 / total_questions + 0.5)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime:
    """
    Parse an ISO-8601 timestamp into a timezone-aware datetime.

    Naive values are assumed to be UTC. A trailing 'Z' is accepted.

    Raises:
        ValidationError: If the value is not a valid timestamp
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise ValidationError("date", f"Invalid ISO-8601 timestamp: {value!r}")
    else:
        raise ValidationError("date", f"Invalid ISO-8601 timestamp: {value!r}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: datetime) -> str:
    """Format a timestamp the way the JavaScript client does (millisecond precision, 'Z')."""
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def _coerce_int(field_name: str, value: Any) -> int:
    """Accept ints and integer-looking strings; reject everything else."""
    if isinstance(value, bool):
        raise ValidationError(field_name, f"'{field_name}' must be a number")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise ValidationError(field_name, f"'{field_name}' must be a number")


@dataclass(frozen=True)
class ScoreRecord:
    """A persisted quiz result."""
    id: str
    username: str
    score: int
    total_questions: int
    percentage: int
    date: datetime = field(default_factory=utc_now)

    @classmethod
    def create(
        cls,
        username: Any,
        score: Any,
        total_questions: Any,
        percentage: Any = None,
        date: Any = None,
        record_id: Optional[str] = None
    ) -> "ScoreRecord":
        """
        Validate raw submission fields and build a new record.

        Args:
            username: Player name, trimmed; must not be empty
            score: Number of correct answers (>= 0)
            total_questions: Number of questions in the quiz (> 0)
            percentage: Explicit percentage, derived from score/total when omitted
            date: Completion timestamp, defaults to now
            record_id: Explicit id, generated when omitted

        Raises:
            ValidationError: If any field is missing or invalid
        """
        if username is None or not isinstance(username, str) or not username.strip():
            raise ValidationError("username", "Username is required")

        if score is None:
            raise ValidationError("score", "Score is required")
        if total_questions is None:
            raise ValidationError("totalQuestions", "Total questions is required")

        score = _coerce_int("score", score)
        total_questions = _coerce_int("totalQuestions", total_questions)

        if score < 0:
            raise ValidationError("score", "Score cannot be negative")
        if total_questions <= 0:
            raise ValidationError("totalQuestions", "Total questions must be greater than zero")
        if score > total_questions:
            raise ValidationError("score", "Score cannot exceed total questions")

        # The web client sent 0% as a falsy value, so 0 is derived as well
        if percentage is None or percentage == 0:
            percentage = compute_percentage(score, total_questions)
        else:
            percentage = _coerce_int("percentage", percentage)
            if not 0 <= percentage <= 100:
                raise ValidationError("percentage", "Percentage must be between 0 and 100")

        return cls(
            id=record_id or uuid.uuid4().hex,
            username=username.strip(),
            score=score,
            total_questions=total_questions,
            percentage=percentage,
            date=parse_timestamp(date) if date is not None else utc_now()
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize using the JSON field names shared with the web client."""
        return {
            "id": self.id,
            "username": self.username,
            "score": self.score,
            "totalQuestions": self.total_questions,
            "percentage": self.percentage,
            "date": format_timestamp(self.date),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScoreRecord":
        """
        Rebuild a stored record.

        Raises:
            ValidationError: If the stored data is not a valid record
        """
        if not isinstance(data, dict):
            raise ValidationError("record", "Score record must be a JSON object")
        record_id = data.get("id")
        if not isinstance(record_id, str) or not record_id:
            raise ValidationError("id", "Score record is missing an id")
        return cls.create(
            username=data.get("username"),
            score=data.get("score"),
            total_questions=data.get("totalQuestions"),
            percentage=data.get("percentage"),
            date=data.get("date"),
            record_id=record_id
        )


@dataclass(frozen=True)
class LeaderboardEntry:
    """Best record of one player, annotated with its rank."""
    rank: int
    record: ScoreRecord

    @property
    def username(self) -> str:
        return self.record.username

    def to_dict(self) -> Dict[str, Any]:
        data = self.record.to_dict()
        data["rank"] = self.rank
        return data


@dataclass(frozen=True)
class QuizStats:
    """Aggregate statistics over stored records."""
    total_quizzes: int = 0
    unique_users: int = 0
    average_score: float = 0
    highest_score: int = 0
    lowest_score: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalQuizzes": self.total_quizzes,
            "uniqueUsers": self.unique_users,
            "averageScore": self.average_score,
            "highestScore": self.highest_score,
            "lowestScore": self.lowest_score,
        }

"""
Question normalizer: turns raw Open Trivia DB records into Question objects.

Text fields arrive HTML-entity encoded (``&quot;``, ``&#039;``, ...). The
normalizer decodes them and builds a shuffled answer list. Randomness comes
from an injectable ``random.Random`` so tests can be reproducible.
"""
import html
import logging
import random
from typing import Any, Dict, List, Optional, Sequence

from .errors import QuestionFormatError
from .models import Difficulty, Question

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("question", "correct_answer", "incorrect_answers", "category", "difficulty")


def validate_raw_question(data: Any, index: int = 0) -> Optional[str]:
    """
    Validate the structure of a raw question record.

    Expected structure:
    {
        "question": str,
        "correct_answer": str,
        "incorrect_answers": [str, ...],   # at least one
        "category": str,
        "difficulty": "easy" | "medium" | "hard",
        "type": "multiple" | "boolean"     # optional
    }

    Args:
        data: Raw record to validate
        index: Position of the record, used in messages

    Returns:
        None if the record is valid, otherwise a description of the problem
    """
    if not isinstance(data, dict):
        return f"Question {index} must be an object"

    for field_name in REQUIRED_FIELDS:
        if field_name not in data:
            return f"Question {index} missing '{field_name}' field"

    for field_name in ("question", "correct_answer", "category", "difficulty"):
        if not isinstance(data[field_name], str):
            return f"Question {index} '{field_name}' field must be a string"

    incorrect = data["incorrect_answers"]
    if not isinstance(incorrect, list) or not incorrect:
        return f"Question {index} 'incorrect_answers' must be a non-empty array"
    if not all(isinstance(answer, str) for answer in incorrect):
        return f"Question {index} 'incorrect_answers' must only contain strings"

    if data["difficulty"] not in {d.value for d in Difficulty}:
        return f"Question {index} has unknown difficulty '{data['difficulty']}'"

    return None


def shuffle_answers(answers: Sequence[str], rng: Optional[random.Random] = None) -> List[str]:
    """
    Return a new list with the answers in uniformly random order.

    ``random.Random.shuffle`` is a Fisher-Yates shuffle, so every permutation
    is equally likely.
    """
    shuffled = list(answers)
    (rng or random.Random()).shuffle(shuffled)
    return shuffled


def normalize_question(data: Dict[str, Any], rng: Optional[random.Random] = None, index: int = 0) -> Question:
    """
    Decode and shuffle a single raw question record.

    Args:
        data: Raw record from the trivia source
        rng: Random source for the answer shuffle
        index: Position of the record, used in error messages

    Returns:
        Normalized Question

    Raises:
        QuestionFormatError: If the record is malformed
    """
    problem = validate_raw_question(data, index)
    if problem:
        logger.error(f"Malformed trivia record: {problem}")
        raise QuestionFormatError(problem)

    correct_answer = html.unescape(data["correct_answer"])
    incorrect_answers = [html.unescape(answer) for answer in data["incorrect_answers"]]

    return Question(
        text=html.unescape(data["question"]),
        category=html.unescape(data["category"]),
        difficulty=Difficulty(data["difficulty"]),
        correct_answer=correct_answer,
        answers=tuple(shuffle_answers(incorrect_answers + [correct_answer], rng)),
        question_type=data.get("type") or "multiple"
    )


def normalize_questions(records: Sequence[Dict[str, Any]], rng: Optional[random.Random] = None) -> List[Question]:
    """Normalize a batch of raw records, sharing one random source."""
    rng = rng or random.Random()
    questions = [normalize_question(data, rng, index) for index, data in enumerate(records)]
    logger.debug(f"Normalized {len(questions)} questions")
    return questions

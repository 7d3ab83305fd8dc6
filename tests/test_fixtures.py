"""
Test fixtures and sample data for QuizMaster tests.
"""
import random
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from unittest.mock import Mock

from quizmaster.models import Difficulty, Question, ScoreRecord


class TestFixtures:
    """Centralized test fixtures for all test modules."""

    @staticmethod
    def create_raw_question(
        question: str = "What is the capital of France?",
        correct: str = "Paris",
        incorrect: Optional[List[str]] = None,
        category: str = "Geography",
        difficulty: str = "easy",
        question_type: str = "multiple"
    ) -> Dict[str, Any]:
        """Create a raw record shaped like an Open Trivia DB result."""
        return {
            "type": question_type,
            "difficulty": difficulty,
            "category": category,
            "question": question,
            "correct_answer": correct,
            "incorrect_answers": incorrect if incorrect is not None else ["London", "Berlin", "Madrid"],
        }

    @staticmethod
    def create_raw_questions() -> List[Dict[str, Any]]:
        """Create raw records with HTML-entity encoded text."""
        return [
            TestFixtures.create_raw_question(),
            TestFixtures.create_raw_question(
                question="Which character says &quot;I&#039;ll be back&quot;?",
                correct="The Terminator",
                incorrect=["Rocky", "Rambo", "Robocop"],
                category="Entertainment: Film",
                difficulty="medium"
            ),
            TestFixtures.create_raw_question(
                question="The sun is a star.",
                correct="True",
                incorrect=["False"],
                category="Science &amp; Nature",
                difficulty="hard",
                question_type="boolean"
            ),
        ]

    @staticmethod
    def create_opentdb_payload(results: Optional[List[Dict[str, Any]]] = None, response_code: int = 0) -> Dict[str, Any]:
        return {
            "response_code": response_code,
            "results": results if results is not None else TestFixtures.create_raw_questions(),
        }

    @staticmethod
    def create_question(correct: str = "A", answers: Optional[List[str]] = None, text: str = "Pick one") -> Question:
        """Create a normalized question with a fixed answer order."""
        return Question(
            text=text,
            category="General Knowledge",
            difficulty=Difficulty.EASY,
            correct_answer=correct,
            answers=tuple(answers if answers is not None else sorted({correct, "A", "B", "C", "D"}))
        )

    @staticmethod
    def create_sample_questions(count: int = 3) -> List[Question]:
        """Create questions whose correct answers are A, B, C, ... in turn."""
        letters = "ABCD"
        return [
            TestFixtures.create_question(correct=letters[i % 4], text=f"Question {i + 1}?")
            for i in range(count)
        ]

    @staticmethod
    def create_score_record(
        username: str = "alice",
        score: int = 8,
        total_questions: int = 10,
        percentage: Optional[int] = None,
        days_ago: int = 0,
        record_id: Optional[str] = None
    ) -> ScoreRecord:
        date = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc) - timedelta(days=days_ago)
        return ScoreRecord.create(
            username=username,
            score=score,
            total_questions=total_questions,
            percentage=percentage,
            date=date,
            record_id=record_id
        )

    @staticmethod
    def create_score_records() -> List[ScoreRecord]:
        """A small history with repeat players and ties."""
        return [
            TestFixtures.create_score_record("alice", 8, 10, days_ago=5, record_id="r1"),
            TestFixtures.create_score_record("bob", 9, 10, days_ago=4, record_id="r2"),
            TestFixtures.create_score_record("alice", 9, 10, days_ago=3, record_id="r3"),
            TestFixtures.create_score_record("carol", 6, 15, days_ago=2, record_id="r4"),
            TestFixtures.create_score_record("dave", 9, 10, days_ago=1, record_id="r5"),
        ]

    @staticmethod
    def seeded_rng(seed: int = 42) -> random.Random:
        return random.Random(seed)


class MockTriviaSource:
    """Stand-in for OpenTriviaClient that returns canned records or raises.

    ``delays`` holds per-call response times in seconds, consumed in call order.
    """

    def __init__(
        self,
        results: Optional[List[Dict[str, Any]]] = None,
        error: Optional[Exception] = None,
        delays: Optional[List[float]] = None
    ):
        self.results = results if results is not None else TestFixtures.create_raw_questions()
        self.error = error
        self.delays = list(delays or [])
        self.calls: List[tuple] = []

    def fetch_questions(self, amount=15, category=None, difficulty=None, question_type=None):
        self.calls.append((amount, category, difficulty, question_type))
        if self.delays:
            time.sleep(self.delays.pop(0))
        if self.error is not None:
            raise self.error
        return list(self.results)

    def fetch_payload(self, amount=15, category=None, difficulty=None, question_type=None):
        return {"response_code": 0, "results": self.fetch_questions(amount, category, difficulty, question_type)}


class MockHttpObjects:
    """Mock HTTP objects for testing the trivia client."""

    @staticmethod
    def create_mock_response(status_code: int = 200, payload: Any = None, json_error: bool = False) -> Mock:
        """Create a mock requests.Response."""
        response = Mock()
        response.status_code = status_code
        if json_error:
            response.json.side_effect = ValueError("No JSON object could be decoded")
        else:
            response.json.return_value = payload
        response.raise_for_status = Mock()
        return response

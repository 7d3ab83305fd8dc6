"""
Quiz session controller for QuizMaster.
Manages one quiz session per channel: loading questions, play, scoring and saving.
"""
import asyncio
import itertools
import logging
import random
from typing import Any, Dict, List, Optional

from .config_manager import ConfigManager
from .data_manager import ScoreStore
from .errors import (
    InvalidTransitionError,
    PersistenceFailure,
    QuestionFormatError,
    SourceUnavailable,
    ValidationError,
)
from .models import LeaderboardEntry, QuizStats, ScoreRecord
from .question_normalizer import normalize_questions
from .question_source import OpenTriviaClient
from .quiz_engine import QuizPhase, QuizSession, TimerCallback
from . import scoreboard


class QuizController:
    """
    Orchestrates quiz sessions across channels.

    Each channel has at most one session, owned by the user who started it.
    All methods return result dictionaries with ``success``, ``message`` and
    ``user_message`` keys so front ends can report failures without
    inspecting exceptions.
    """

    def __init__(
        self,
        question_source: OpenTriviaClient,
        score_store: ScoreStore,
        config_manager: ConfigManager,
        rng: Optional[random.Random] = None,
        tick_interval: float = 1.0
    ):
        """
        Initialize the quiz controller.

        Args:
            question_source: Client used to fetch raw questions
            score_store: Store for saved scores
            config_manager: Instance for managing configuration
            rng: Random source for answer shuffling
            tick_interval: Seconds between timer ticks
        """
        self.logger = logging.getLogger(__name__)
        self.question_source = question_source
        self.score_store = score_store
        self.config_manager = config_manager
        self.rng = rng or random.Random()
        self.tick_interval = tick_interval

        self._sessions: Dict[int, QuizSession] = {}
        self._owners: Dict[int, int] = {}
        self._saved: Dict[int, str] = {}  # channel -> saved record id
        self._loads: Dict[int, int] = {}  # channel -> token of the newest load
        self._load_tokens = itertools.count(1)

        self.logger.info("QuizController initialized")

    # Session lookup

    def get_session(self, channel_id: int) -> Optional[QuizSession]:
        return self._sessions.get(channel_id)

    def get_owner(self, channel_id: int) -> Optional[int]:
        return self._owners.get(channel_id)

    def has_active_session(self, channel_id: int) -> bool:
        """
        Check if a channel has a quiz in progress.

        Args:
            channel_id: Channel identifier

        Returns:
            True if a quiz is being played in the channel
        """
        session = self._sessions.get(channel_id)
        return session is not None and session.phase is QuizPhase.IN_PROGRESS

    def get_session_progress(self, channel_id: int) -> Optional[Dict[str, Any]]:
        session = self._sessions.get(channel_id)
        if session is None:
            return None
        progress = session.get_progress()
        progress['owner_id'] = self._owners.get(channel_id)
        progress['saved'] = channel_id in self._saved
        return progress

    def _failure(self, error: Exception, operation: str) -> Dict[str, Any]:
        """Build a failure result with a user-friendly message for the error kind."""
        if isinstance(error, QuestionFormatError):
            user_message = "❌ The trivia service sent a malformed question. Please try again."
        elif isinstance(error, SourceUnavailable):
            user_message = f"❌ Could not load questions: {error}. Use /trivia to try again."
        elif isinstance(error, InvalidTransitionError):
            user_message = f"⚠️ {error}"
        elif isinstance(error, ValidationError):
            user_message = f"❌ Invalid {error.field}: {error.message}"
        elif isinstance(error, PersistenceFailure):
            user_message = "❌ Your score could not be saved. Please try /save again."
        else:
            user_message = "❌ An unexpected error occurred"

        self.logger.warning(f"{operation} failed: {type(error).__name__}: {error}")
        return {
            'success': False,
            'error': str(error),
            'error_type': type(error).__name__,
            'message': f"{operation} failed: {error}",
            'user_message': user_message
        }

    def _owned_session(self, channel_id: int, user_id: int) -> QuizSession:
        """
        Raises:
            InvalidTransitionError: If there is no session or the user does not own it
        """
        session = self._sessions.get(channel_id)
        if session is None or session.phase is QuizPhase.IDLE:
            raise InvalidTransitionError("No quiz in this channel. Use /trivia to start one.")
        owner = self._owners.get(channel_id)
        if owner is not None and owner != user_id:
            raise InvalidTransitionError("This quiz belongs to another player.")
        return session

    # Lifecycle

    async def load_questions(
        self,
        channel_id: int,
        owner_id: int,
        difficulty: Optional[str] = None,
        category: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Fetch and normalize a new question set for the channel.

        A load failure leaves the session in the error phase. A fetch that
        finishes after a newer load or a reset of the channel is discarded
        without touching the session.

        Returns:
            Result dictionary; on success includes ``total_questions``
        """
        if self.has_active_session(channel_id) and self._owners.get(channel_id) != owner_id:
            return self._failure(InvalidTransitionError("A quiz is already running in this channel."), "load_questions")

        settings = self.config_manager.get_quiz_settings()
        session = self._sessions.get(channel_id)
        if session is None:
            session = QuizSession(timer_duration=settings.timer_duration, session_id=str(channel_id))
            self._sessions[channel_id] = session
        else:
            session.reset()
            session.timer_duration = settings.timer_duration
        self._owners[channel_id] = owner_id
        self._saved.pop(channel_id, None)
        token = next(self._load_tokens)
        self._loads[channel_id] = token

        try:
            raw_questions = await asyncio.to_thread(
                self.question_source.fetch_questions,
                settings.question_amount,
                category if category is not None else settings.category,
                difficulty or settings.difficulty,
                settings.question_type
            )
            questions = normalize_questions(raw_questions, self.rng)
            if not questions:
                raise SourceUnavailable("The trivia service returned no questions")
        except SourceUnavailable as e:
            if not self._is_current_load(channel_id, token, session):
                return self._stale_load(channel_id)
            session.fail(str(e))
            return self._failure(e, "load_questions")

        if not self._is_current_load(channel_id, token, session):
            return self._stale_load(channel_id)
        session.load(questions)
        self.logger.info(f"Loaded {len(questions)} questions for channel {channel_id}")
        return {
            'success': True,
            'message': f"Loaded {len(questions)} questions",
            'user_message': f"✅ {len(questions)} questions ready",
            'total_questions': len(questions)
        }

    def _is_current_load(self, channel_id: int, token: int, session: QuizSession) -> bool:
        """A fetch may only fill the session if no newer load, reset or shutdown happened meanwhile."""
        return self._loads.get(channel_id) == token and self._sessions.get(channel_id) is session

    def _stale_load(self, channel_id: int) -> Dict[str, Any]:
        self.logger.info(f"Discarding superseded question load for channel {channel_id}")
        return self._failure(
            InvalidTransitionError("Another quiz was started in this channel while your questions were loading."),
            "load_questions"
        )

    def start_quiz(
        self,
        channel_id: int,
        user_id: int,
        on_tick: Optional[TimerCallback] = None,
        on_expire: Optional[TimerCallback] = None
    ) -> Dict[str, Any]:
        """
        Start the loaded quiz and its countdown.

        Must be called from the running event loop.
        """
        try:
            session = self._owned_session(channel_id, user_id)
            session.start()
            session.start_timer(on_tick=on_tick, on_expire=on_expire, interval=self.tick_interval)
        except InvalidTransitionError as e:
            return self._failure(e, "start_quiz")

        self.logger.info(f"Quiz started in channel {channel_id} by user {user_id}")
        return {
            'success': True,
            'message': "Quiz started",
            'user_message': "🎯 Quiz started!",
            'session_info': session.get_progress()
        }

    async def begin_quiz(
        self,
        channel_id: int,
        user_id: int,
        difficulty: Optional[str] = None,
        category: Optional[int] = None,
        on_tick: Optional[TimerCallback] = None,
        on_expire: Optional[TimerCallback] = None
    ) -> Dict[str, Any]:
        """Load a fresh question set and start it straight away."""
        result = await self.load_questions(channel_id, user_id, difficulty, category)
        if not result['success']:
            return result
        return self.start_quiz(channel_id, user_id, on_tick, on_expire)

    def answer(self, channel_id: int, user_id: int, choice: int) -> Dict[str, Any]:
        """
        Select an answer for the current question by its 1-based number.
        """
        try:
            session = self._owned_session(channel_id, user_id)
            question = session.current_question
            if question is None or not 1 <= choice <= len(question.answers):
                count = len(question.answers) if question else 0
                raise InvalidTransitionError(f"Choose an answer between 1 and {count}")
            selected = question.answers[choice - 1]
            session.select_answer(selected)
        except InvalidTransitionError as e:
            return self._failure(e, "answer")

        return {
            'success': True,
            'message': f"Answer {choice} selected",
            'user_message': f"✅ Selected: {selected}",
            'answer': selected
        }

    def next_question(self, channel_id: int, user_id: int) -> Dict[str, Any]:
        try:
            session = self._owned_session(channel_id, user_id)
            session.advance()
        except InvalidTransitionError as e:
            return self._failure(e, "next_question")
        return {
            'success': True,
            'message': f"Moved to question {session.current_index + 1}",
            'user_message': f"➡️ Question {session.current_index + 1}/{session.total_questions}"
        }

    def previous_question(self, channel_id: int, user_id: int) -> Dict[str, Any]:
        try:
            session = self._owned_session(channel_id, user_id)
            session.retreat()
        except InvalidTransitionError as e:
            return self._failure(e, "previous_question")
        return {
            'success': True,
            'message': f"Moved to question {session.current_index + 1}",
            'user_message': f"⬅️ Question {session.current_index + 1}/{session.total_questions}"
        }

    def finish_quiz(self, channel_id: int, user_id: int) -> Dict[str, Any]:
        """Score the quiz now, whether or not every question was answered."""
        try:
            session = self._owned_session(channel_id, user_id)
            score = session.finish()
        except InvalidTransitionError as e:
            return self._failure(e, "finish_quiz")

        self.logger.info(f"Quiz finished in channel {channel_id}: {score}/{session.total_questions}")
        return {
            'success': True,
            'message': f"Quiz finished with {score}/{session.total_questions}",
            'user_message': f"🎉 You scored {score}/{session.total_questions} ({session.percentage}%)",
            'score': score,
            'total_questions': session.total_questions,
            'percentage': session.percentage
        }

    def reset_quiz(self, channel_id: int, user_id: int) -> Dict[str, Any]:
        """Reset the channel's session back to idle."""
        try:
            session = self._owned_session(channel_id, user_id)
        except InvalidTransitionError as e:
            return self._failure(e, "reset_quiz")

        session.reset()
        self._owners.pop(channel_id, None)
        self._saved.pop(channel_id, None)
        self._loads.pop(channel_id, None)
        self.logger.info(f"Quiz reset in channel {channel_id}")
        return {
            'success': True,
            'message': "Quiz reset",
            'user_message': "🔄 Quiz reset. Use /trivia to play again."
        }

    def save_score(self, channel_id: int, user_id: int, username: str) -> Dict[str, Any]:
        """
        Save the finished quiz's score under a player name.

        A failed save keeps the session intact so the player can retry.
        """
        try:
            session = self._owned_session(channel_id, user_id)
            if channel_id in self._saved:
                raise InvalidTransitionError("This score has already been saved.")
            record = session.to_score_record(username)
            self.score_store.append_record(record)
        except (InvalidTransitionError, ValidationError, PersistenceFailure) as e:
            return self._failure(e, "save_score")

        self._saved[channel_id] = record.id
        return {
            'success': True,
            'message': f"Score saved for {record.username}",
            'user_message': f"💾 Saved {record.score}/{record.total_questions} ({record.percentage}%) for {record.username}",
            'record': record
        }

    # Aggregates

    def get_leaderboard(self, limit: Optional[int] = None) -> List[LeaderboardEntry]:
        if limit is None:
            limit = self.config_manager.get_leaderboard_limit()
        return scoreboard.leaderboard(self.score_store.list_records(), limit)

    def get_scores(self, limit: Optional[int] = None) -> List[ScoreRecord]:
        return scoreboard.list_scores(self.score_store.list_records(), limit)

    def get_stats(self) -> QuizStats:
        return scoreboard.stats(self.score_store.list_records())

    async def shutdown(self) -> None:
        """Stop every session timer."""
        for session in self._sessions.values():
            session.reset()
        self._sessions.clear()
        self._owners.clear()
        self._saved.clear()
        self._loads.clear()
        self.logger.info("All quiz sessions stopped")

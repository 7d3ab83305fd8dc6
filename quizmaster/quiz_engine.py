"""
Quiz engine core logic for QuizMaster.
Handles the quiz session lifecycle, scoring and the per-question countdown.
"""
import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from .errors import InvalidTransitionError
from .models import Question, ScoreRecord, compute_percentage

# Set up logger for timer operations
logger = logging.getLogger(__name__)

DEFAULT_TIMER_DURATION = 30

TimerCallback = Callable[["QuizSession"], Awaitable[Any]]


class TimerLifecycleLogger:
    """Structured logging for timer lifecycle events."""

    @staticmethod
    def log_timer_start(session_id: str, duration: int) -> None:
        """Log timer countdown start."""
        logger.info(
            f"Timer lifecycle: COUNTDOWN_START - Session {session_id}, Duration {duration}s",
            extra={
                'event_type': 'timer_countdown_start',
                'session_id': session_id,
                'duration': duration,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_update(session_id: str, remaining_time: int, total_duration: int) -> None:
        """Log timer update events (throttled to avoid spam)."""
        # Log only at specific intervals to avoid log spam
        if remaining_time % 10 == 0 or remaining_time <= 5:
            progress_percent = ((total_duration - remaining_time) / total_duration) * 100
            logger.debug(
                f"Timer lifecycle: UPDATE - Session {session_id}, Remaining {remaining_time}s ({progress_percent:.1f}% complete)",
                extra={
                    'event_type': 'timer_update',
                    'session_id': session_id,
                    'remaining_time': remaining_time,
                    'total_duration': total_duration,
                    'progress_percent': progress_percent,
                    'timestamp': time.time()
                }
            )

    @staticmethod
    def log_timer_completion(session_id: str, completion_type: str) -> None:
        """Log timer completion (session left play or cancellation)."""
        logger.info(
            f"Timer lifecycle: COMPLETED - Session {session_id}, Type {completion_type}",
            extra={
                'event_type': 'timer_completed',
                'session_id': session_id,
                'completion_type': completion_type,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_state_transition(session_id: str, from_state: str, to_state: str, reason: str = None) -> None:
        """Log timer state transitions."""
        logger.info(
            f"Timer lifecycle: STATE_TRANSITION - Session {session_id}, {from_state} -> {to_state}" +
            (f" ({reason})" if reason else ""),
            extra={
                'event_type': 'timer_state_transition',
                'session_id': session_id,
                'from_state': from_state,
                'to_state': to_state,
                'reason': reason,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_error(session_id: str, error_type: str, error_message: str, operation: str) -> None:
        """Log timer-related errors with context."""
        logger.error(
            f"Timer lifecycle: ERROR - Session {session_id}, Operation {operation}, Type {error_type}: {error_message}",
            extra={
                'event_type': 'timer_error',
                'session_id': session_id,
                'error_type': error_type,
                'error_message': error_message,
                'operation': operation,
                'timestamp': time.time()
            }
        )


class QuizPhase(Enum):
    """Enumeration of quiz session phases."""
    IDLE = "idle"
    LOADED = "loaded"
    IN_PROGRESS = "in_progress"
    FINISHED = "finished"
    ERROR = "error"


@dataclass(frozen=True)
class QuestionResult:
    """Review line for one answered (or skipped) question."""
    index: int
    question: Question
    selected_answer: Optional[str]

    @property
    def is_correct(self) -> bool:
        return self.question.is_correct(self.selected_answer)

    @property
    def answered(self) -> bool:
        return self.selected_answer is not None


class QuizTimer:
    """
    Repeating countdown task bound to a single quiz session.

    Every ``interval`` seconds the timer ticks its session and awaits the
    matching callback. It stops by itself as soon as the session's timer is
    no longer running, and it can be cancelled at any time.
    """

    def __init__(
        self,
        session: "QuizSession",
        interval: float = 1.0,
        on_tick: Optional[TimerCallback] = None,
        on_expire: Optional[TimerCallback] = None
    ):
        """Initialize the timer."""
        self._session = session
        self._interval = interval
        self._on_tick = on_tick
        self._on_expire = on_expire
        self._task: Optional[asyncio.Task] = None
        self._is_cancelled = False

    def start(self) -> asyncio.Task:
        """
        Schedule the countdown on the running event loop.

        Raises:
            RuntimeError: If no event loop is running or the timer was already started
        """
        if self._task is not None:
            raise RuntimeError(f"Timer for session {self._session.session_id} already started")
        self._task = asyncio.create_task(self._run())
        return self._task

    async def _run(self) -> None:
        session_id = self._session.session_id
        TimerLifecycleLogger.log_timer_start(session_id, self._session.time_remaining)

        try:
            while not self._is_cancelled and self._session.timer_running:
                await asyncio.sleep(self._interval)
                if self._is_cancelled or not self._session.timer_running:
                    break

                expired = self._session.tick()
                TimerLifecycleLogger.log_timer_update(
                    session_id,
                    self._session.time_remaining,
                    self._session.timer_duration
                )

                if expired:
                    await self._run_callback(self._on_expire, "on_expire")
                else:
                    await self._run_callback(self._on_tick, "on_tick")

            TimerLifecycleLogger.log_timer_completion(
                session_id,
                "cancelled" if self._is_cancelled else "session_stopped"
            )

        except asyncio.CancelledError:
            self._is_cancelled = True
            TimerLifecycleLogger.log_timer_completion(session_id, "asyncio_cancelled")
            raise
        except Exception as e:
            TimerLifecycleLogger.log_timer_error(
                session_id,
                "countdown_execution_error",
                str(e),
                "run"
            )
            raise

    async def _run_callback(self, callback: Optional[TimerCallback], name: str) -> None:
        """Await a callback; its failure is logged and the countdown goes on."""
        if callback is None:
            return
        try:
            await callback(self._session)
        except Exception as e:
            TimerLifecycleLogger.log_timer_error(
                self._session.session_id,
                "callback_error",
                str(e),
                name
            )

    def cancel(self) -> None:
        """Cancel the countdown. Safe to call from inside a timer callback."""
        self._is_cancelled = True
        if self._task is None or self._task.done():
            return

        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None

        # The loop exits on its own when cancelled from its own callback
        if self._task is not current:
            self._task.cancel()
            TimerLifecycleLogger.log_timer_state_transition(
                self._session.session_id,
                "running",
                "cancelled",
                "task cancelled"
            )

    @property
    def is_cancelled(self) -> bool:
        """Check if timer is cancelled."""
        return self._is_cancelled

    @property
    def task(self) -> Optional[asyncio.Task]:
        return self._task

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done() and not self._is_cancelled


class QuizSession:
    """
    State machine for a single quiz attempt.

    Phases: idle -> loaded -> in_progress -> finished, with error reachable
    when loading fails. reset() returns to idle from any phase. Every path
    that leaves in_progress cancels the session's timer.
    """

    def __init__(self, timer_duration: int = DEFAULT_TIMER_DURATION, session_id: Optional[str] = None):
        if timer_duration <= 0:
            raise ValueError("Timer duration must be positive")
        self.timer_duration = timer_duration
        self.session_id = session_id or uuid.uuid4().hex[:8]
        self._timer: Optional[QuizTimer] = None
        self._clear()

    def _clear(self) -> None:
        self.questions: List[Question] = []
        self.current_index = 0
        self.answers: List[Optional[str]] = []
        self.time_remaining = self.timer_duration
        self.timer_running = False
        self.score = 0
        self.phase = QuizPhase.IDLE
        self.error: Optional[str] = None
        self.started_at: Optional[datetime] = None
        self.finished_at: Optional[datetime] = None

    # Phase helpers

    @property
    def started(self) -> bool:
        return self.phase in (QuizPhase.IN_PROGRESS, QuizPhase.FINISHED)

    @property
    def finished(self) -> bool:
        return self.phase is QuizPhase.FINISHED

    def _require(self, operation: str, *phases: QuizPhase) -> None:
        if self.phase not in phases:
            allowed = ", ".join(p.value for p in phases)
            raise InvalidTransitionError(
                f"Cannot {operation} while session is {self.phase.value} (allowed: {allowed})"
            )

    def _transition(self, to_phase: QuizPhase, reason: str) -> None:
        logger.debug(f"Session {self.session_id}: {self.phase.value} -> {to_phase.value} ({reason})")
        self.phase = to_phase

    # Transitions

    def load(self, questions: Sequence[Question]) -> None:
        """
        Replace the session content with a freshly fetched question set.

        Raises:
            ValueError: If questions is empty
        """
        if not questions:
            raise ValueError("Cannot load a quiz without questions")
        self._cancel_timer("new questions loaded")
        self._clear()
        self.questions = list(questions)
        self.answers = [None] * len(self.questions)
        self._transition(QuizPhase.LOADED, f"{len(self.questions)} questions loaded")

    def fail(self, message: str) -> None:
        """Record a loading failure. The session stays in error until reset()."""
        self._cancel_timer("session failed")
        self._clear()
        self.error = message
        self._transition(QuizPhase.ERROR, message)

    def start(self) -> None:
        """Begin the quiz at the first question with a full countdown."""
        self._require("start", QuizPhase.LOADED)
        self.current_index = 0
        self.time_remaining = self.timer_duration
        self.timer_running = True
        self.started_at = datetime.now()
        self._transition(QuizPhase.IN_PROGRESS, "quiz started")

    def select_answer(self, answer: str) -> None:
        """Record (or overwrite) the answer for the current question."""
        self._require("select an answer", QuizPhase.IN_PROGRESS)
        self.answers[self.current_index] = answer

    def advance(self) -> None:
        """
        Move to the next question.

        Raises:
            InvalidTransitionError: If not in progress or already on the last question
        """
        self._require("advance", QuizPhase.IN_PROGRESS)
        if self.is_last_question:
            raise InvalidTransitionError("Already on the last question; finish the quiz instead")
        self.current_index += 1
        self.time_remaining = self.timer_duration

    def retreat(self) -> None:
        """
        Move back to the previous question.

        Raises:
            InvalidTransitionError: If not in progress or already on the first question
        """
        self._require("go back", QuizPhase.IN_PROGRESS)
        if self.current_index == 0:
            raise InvalidTransitionError("Already on the first question")
        self.current_index -= 1
        self.time_remaining = self.timer_duration

    def tick(self) -> bool:
        """
        Count one elapsed second.

        The decrement that reaches zero expires the question in the same
        call, so time never goes negative and each question expires once.

        Returns:
            True if this tick expired the current question
        """
        if not self.timer_running or self.time_remaining <= 0:
            return False
        self.time_remaining -= 1
        if self.time_remaining == 0:
            self.expire_timer()
            return True
        return False

    def expire_timer(self) -> None:
        """Time ran out: advance, or finish on the last question."""
        self._require("expire the timer", QuizPhase.IN_PROGRESS)
        logger.debug(f"Session {self.session_id}: question {self.current_index + 1} timed out")
        if self.is_last_question:
            self.finish()
        else:
            self.advance()

    def finish(self) -> int:
        """
        Score the quiz and stop the timer. Calling it again is a no-op.

        Returns:
            Number of correct answers
        """
        if self.phase is QuizPhase.FINISHED:
            return self.score
        self._require("finish", QuizPhase.IN_PROGRESS)

        self.score = sum(
            1 for question, answer in zip(self.questions, self.answers)
            if question.is_correct(answer)
        )
        self.timer_running = False
        self.finished_at = datetime.now()
        self._cancel_timer("quiz finished")
        self._transition(QuizPhase.FINISHED, f"score {self.score}/{self.total_questions}")
        return self.score

    def reset(self) -> None:
        """Return to the initial idle state from any phase."""
        self._cancel_timer("session reset")
        self._clear()
        logger.debug(f"Session {self.session_id}: reset")

    # Timer ownership

    def start_timer(
        self,
        on_tick: Optional[TimerCallback] = None,
        on_expire: Optional[TimerCallback] = None,
        interval: float = 1.0
    ) -> QuizTimer:
        """
        Start a fresh countdown task owned by this session.

        Must be called from a running event loop while in progress. Any
        previous timer is cancelled first.
        """
        self._require("start the timer", QuizPhase.IN_PROGRESS)
        self._cancel_timer("timer restarted")
        self._timer = QuizTimer(self, interval=interval, on_tick=on_tick, on_expire=on_expire)
        self._timer.start()
        return self._timer

    def _cancel_timer(self, reason: str) -> None:
        if self._timer is None:
            return
        TimerLifecycleLogger.log_timer_state_transition(self.session_id, "active", "stopping", reason)
        self._timer.cancel()
        self._timer = None

    @property
    def timer(self) -> Optional[QuizTimer]:
        return self._timer

    # Read helpers

    @property
    def total_questions(self) -> int:
        return len(self.questions)

    @property
    def current_question(self) -> Optional[Question]:
        if not self.questions:
            return None
        return self.questions[self.current_index]

    @property
    def current_answer(self) -> Optional[str]:
        if not self.answers:
            return None
        return self.answers[self.current_index]

    @property
    def is_last_question(self) -> bool:
        return self.current_index >= len(self.questions) - 1

    @property
    def answered_count(self) -> int:
        return sum(1 for answer in self.answers if answer is not None)

    @property
    def percentage(self) -> int:
        return compute_percentage(self.score, self.total_questions)

    def results(self) -> List[QuestionResult]:
        """
        Per-question review of a finished quiz.

        Raises:
            InvalidTransitionError: If the quiz is not finished
        """
        self._require("review results", QuizPhase.FINISHED)
        return [
            QuestionResult(index=i, question=question, selected_answer=answer)
            for i, (question, answer) in enumerate(zip(self.questions, self.answers))
        ]

    def to_score_record(self, username: str, date: Any = None) -> ScoreRecord:
        """
        Build a score record for this finished quiz.

        Raises:
            InvalidTransitionError: If the quiz is not finished
            ValidationError: If the username is empty
        """
        self._require("save the score", QuizPhase.FINISHED)
        return ScoreRecord.create(
            username=username,
            score=self.score,
            total_questions=self.total_questions,
            percentage=self.percentage,
            date=date
        )

    def get_progress(self) -> Dict[str, Any]:
        """Snapshot of the session for status displays."""
        return {
            'session_id': self.session_id,
            'phase': self.phase.value,
            'current_question': self.current_index + 1 if self.questions else 0,
            'total_questions': self.total_questions,
            'answered': self.answered_count,
            'time_remaining': self.time_remaining,
            'timer_running': self.timer_running,
            'score': self.score,
            'error': self.error,
        }

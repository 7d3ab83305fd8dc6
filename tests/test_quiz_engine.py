"""
Unit tests for the QuizSession state machine and QuizTimer.
"""
import asyncio
import logging
import unittest
from unittest.mock import AsyncMock, patch

from quizmaster.errors import InvalidTransitionError, ValidationError
from quizmaster.quiz_engine import QuizPhase, QuizSession, QuizTimer
from tests.test_fixtures import TestFixtures


def started_session(count: int = 3, timer_duration: int = 30) -> QuizSession:
    session = QuizSession(timer_duration=timer_duration, session_id="test")
    session.load(TestFixtures.create_sample_questions(count))
    session.start()
    return session


def assert_initial_state(test: unittest.TestCase, session: QuizSession) -> None:
    test.assertEqual(session.phase, QuizPhase.IDLE)
    test.assertEqual(session.questions, [])
    test.assertEqual(session.current_index, 0)
    test.assertEqual(session.answers, [])
    test.assertEqual(session.score, 0)
    test.assertFalse(session.started)
    test.assertFalse(session.finished)
    test.assertEqual(session.time_remaining, 30)
    test.assertFalse(session.timer_running)
    test.assertIsNone(session.error)
    test.assertIsNone(session.timer)


class TestSessionLifecycle(unittest.TestCase):
    """Test cases for phase transitions."""

    def test_new_session_is_idle(self):
        assert_initial_state(self, QuizSession(session_id="test"))

    def test_load_enters_loaded(self):
        session = QuizSession()
        session.load(TestFixtures.create_sample_questions(2))

        self.assertEqual(session.phase, QuizPhase.LOADED)
        self.assertEqual(session.answers, [None, None])
        self.assertFalse(session.started)

    def test_load_empty_questions_rejected(self):
        with self.assertRaises(ValueError):
            QuizSession().load([])

    def test_start_from_loaded(self):
        session = started_session()

        self.assertEqual(session.phase, QuizPhase.IN_PROGRESS)
        self.assertEqual(session.current_index, 0)
        self.assertEqual(session.time_remaining, 30)
        self.assertTrue(session.timer_running)
        self.assertTrue(session.started)

    def test_start_outside_loaded_fails(self):
        """start() is only valid from the loaded phase."""
        idle = QuizSession()

        in_progress = started_session()

        finished = started_session()
        finished.finish()

        failed = QuizSession()
        failed.fail("network down")

        for session in (idle, in_progress, finished, failed):
            with self.subTest(phase=session.phase):
                with self.assertRaises(InvalidTransitionError):
                    session.start()

    def test_fail_enters_error_and_reset_returns_to_idle(self):
        session = QuizSession()
        session.fail("Trivia API unavailable")

        self.assertEqual(session.phase, QuizPhase.ERROR)
        self.assertEqual(session.error, "Trivia API unavailable")

        session.reset()
        assert_initial_state(self, session)

    def test_reset_from_every_phase(self):
        """reset() restores initial values from in_progress, finished and error."""
        in_progress = started_session()
        in_progress.select_answer("A")
        in_progress.advance()
        in_progress.tick()

        finished = started_session()
        finished.select_answer("A")
        finished.finish()

        failed = QuizSession()
        failed.fail("boom")

        for session in (in_progress, finished, failed):
            with self.subTest(phase=session.phase):
                session.reset()
                assert_initial_state(self, session)

    def test_load_replaces_previous_session(self):
        session = started_session()
        session.select_answer("A")
        session.finish()

        session.load(TestFixtures.create_sample_questions(4))
        self.assertEqual(session.phase, QuizPhase.LOADED)
        self.assertEqual(session.answers, [None] * 4)
        self.assertEqual(session.score, 0)


class TestAnswersAndNavigation(unittest.TestCase):
    """Test cases for answering and moving between questions."""

    def test_select_answer_before_start_fails(self):
        session = QuizSession()
        session.load(TestFixtures.create_sample_questions())
        with self.assertRaises(InvalidTransitionError):
            session.select_answer("A")

    def test_select_answer_overwrites(self):
        session = started_session()
        session.select_answer("B")
        session.select_answer("A")

        self.assertEqual(session.answers[0], "A")
        self.assertEqual(session.current_index, 0)
        self.assertTrue(session.timer_running)

    def test_navigation_preserves_answers(self):
        session = started_session()
        session.select_answer("X")
        session.advance()
        session.retreat()

        self.assertEqual(session.current_index, 0)
        self.assertEqual(session.answers[0], "X")

    def test_navigation_resets_time(self):
        session = started_session()
        for _ in range(10):
            session.tick()
        self.assertEqual(session.time_remaining, 20)

        session.advance()
        self.assertEqual(session.time_remaining, 30)

        session.tick()
        session.retreat()
        self.assertEqual(session.time_remaining, 30)

    def test_advance_past_last_question_fails(self):
        session = started_session(count=2)
        session.advance()
        self.assertTrue(session.is_last_question)

        with self.assertRaises(InvalidTransitionError):
            session.advance()
        self.assertEqual(session.current_index, 1)

    def test_retreat_from_first_question_fails(self):
        session = started_session()
        with self.assertRaises(InvalidTransitionError):
            session.retreat()


class TestTimerTicks(unittest.TestCase):
    """Test cases for tick() and timer expiry."""

    def test_thirty_ticks_expire_exactly_once(self):
        session = started_session(count=2)

        with patch.object(session, 'expire_timer', wraps=session.expire_timer) as expire:
            expirations = [session.tick() for _ in range(30)]

        self.assertEqual(expire.call_count, 1)
        self.assertEqual(expirations.count(True), 1)
        self.assertTrue(expirations[-1])
        self.assertEqual(session.current_index, 1)
        self.assertEqual(session.time_remaining, 30)

    def test_time_never_goes_negative(self):
        session = started_session(count=1, timer_duration=5)
        for _ in range(20):
            session.tick()
            self.assertGreaterEqual(session.time_remaining, 0)
        self.assertTrue(session.finished)

    def test_expiry_on_last_question_finishes(self):
        session = started_session(count=1)
        session.select_answer("A")
        for _ in range(30):
            session.tick()

        self.assertTrue(session.finished)
        self.assertFalse(session.timer_running)
        self.assertEqual(session.score, 1)

    def test_tick_is_noop_when_not_running(self):
        session = QuizSession()
        self.assertFalse(session.tick())
        self.assertEqual(session.time_remaining, 30)

        finished = started_session()
        finished.finish()
        finished.tick()
        self.assertEqual(finished.time_remaining, 30)


class TestScoring(unittest.TestCase):
    """Test cases for finish() and result helpers."""

    def test_finish_counts_correct_answers(self):
        session = QuizSession()
        session.load([
            TestFixtures.create_question(correct="A"),
            TestFixtures.create_question(correct="B"),
        ])
        session.start()
        session.select_answer("A")
        session.advance()
        session.select_answer("C")

        self.assertEqual(session.finish(), 1)
        self.assertEqual(session.score, 1)
        self.assertEqual(session.percentage, 50)
        self.assertTrue(session.finished)
        self.assertFalse(session.timer_running)

    def test_unanswered_never_matches(self):
        session = started_session()
        self.assertEqual(session.finish(), 0)

    def test_finish_is_idempotent(self):
        session = started_session()
        session.select_answer("A")
        session.finish()
        session.answers[1] = "B"  # would change the score if re-scored

        self.assertEqual(session.finish(), 1)

    def test_finish_before_start_fails(self):
        session = QuizSession()
        session.load(TestFixtures.create_sample_questions())
        with self.assertRaises(InvalidTransitionError):
            session.finish()

    def test_duplicate_answer_text_counts_as_correct(self):
        question = TestFixtures.create_question(correct="Paris", answers=["Paris", "Rome", "Paris"])
        session = QuizSession()
        session.load([question])
        session.start()
        session.select_answer(question.answers[2])
        self.assertEqual(session.finish(), 1)

    def test_results_review(self):
        session = started_session(count=3)
        session.select_answer("A")
        session.advance()
        session.select_answer("C")
        session.finish()

        results = session.results()
        self.assertEqual([r.is_correct for r in results], [True, False, False])
        self.assertEqual([r.answered for r in results], [True, True, False])
        self.assertEqual(results[1].selected_answer, "C")

    def test_results_require_finished(self):
        with self.assertRaises(InvalidTransitionError):
            started_session().results()

    def test_to_score_record(self):
        session = started_session(count=3)
        session.select_answer("A")
        session.finish()

        record = session.to_score_record("  alice  ")
        self.assertEqual(record.username, "alice")
        self.assertEqual(record.score, 1)
        self.assertEqual(record.total_questions, 3)
        self.assertEqual(record.percentage, 33)

    def test_to_score_record_rejects_empty_name(self):
        session = started_session()
        session.finish()
        with self.assertRaises(ValidationError):
            session.to_score_record("   ")

    def test_to_score_record_requires_finished(self):
        with self.assertRaises(InvalidTransitionError):
            started_session().to_score_record("alice")


class TestQuizTimer(unittest.IsolatedAsyncioTestCase):
    """Test cases for the session-owned countdown task."""

    async def test_timer_ticks_session(self):
        session = started_session(count=2)
        on_tick = AsyncMock()
        timer = session.start_timer(on_tick=on_tick, interval=0.01)

        await asyncio.sleep(0.1)
        self.assertLess(session.time_remaining, 30)
        self.assertTrue(on_tick.await_count >= 1)
        self.assertTrue(timer.is_running)

        session.reset()
        await asyncio.sleep(0.02)
        self.assertTrue(timer.task.done())

    async def test_expiry_callback_and_stop_on_finish(self):
        session = started_session(count=2, timer_duration=2)
        on_expire = AsyncMock()
        timer = session.start_timer(on_expire=on_expire, interval=0.01)

        await asyncio.wait_for(timer.task, timeout=2)

        self.assertTrue(session.finished)
        self.assertEqual(on_expire.await_count, 2)
        self.assertIsNone(session.timer)
        self.assertFalse(timer.task.cancelled())

    async def test_failing_callbacks_do_not_stop_countdown(self):
        logging.disable(logging.CRITICAL)
        self.addCleanup(logging.disable, logging.NOTSET)
        session = started_session(count=1, timer_duration=3)
        on_tick = AsyncMock(side_effect=RuntimeError("message edit failed"))
        on_expire = AsyncMock(side_effect=RuntimeError("message edit failed"))
        timer = session.start_timer(on_tick=on_tick, on_expire=on_expire, interval=0.01)

        await asyncio.wait_for(timer.task, timeout=2)

        self.assertTrue(session.finished)
        self.assertEqual(on_tick.await_count, 2)
        self.assertEqual(on_expire.await_count, 1)
        self.assertIsNone(timer.task.exception())

    async def test_finish_cancels_timer(self):
        session = started_session()
        on_tick = AsyncMock()
        timer = session.start_timer(on_tick=on_tick, interval=0.05)

        session.finish()
        await asyncio.sleep(0.1)

        self.assertTrue(timer.is_cancelled)
        self.assertTrue(timer.task.done())
        on_tick.assert_not_awaited()

    async def test_fail_cancels_timer(self):
        session = started_session()
        timer = session.start_timer(interval=0.05)

        session.fail("lost connection")
        await asyncio.sleep(0.01)

        self.assertTrue(timer.task.done())
        self.assertEqual(session.phase, QuizPhase.ERROR)

    async def test_restart_creates_fresh_timer(self):
        session = started_session()
        first = session.start_timer(interval=0.05)
        session.reset()

        session.load(TestFixtures.create_sample_questions())
        session.start()
        second = session.start_timer(interval=0.05)

        self.assertIsNot(first, second)
        await asyncio.sleep(0.01)
        self.assertTrue(first.task.done())
        self.assertTrue(second.is_running)
        session.reset()

    async def test_start_timer_requires_in_progress(self):
        session = QuizSession()
        with self.assertRaises(InvalidTransitionError):
            session.start_timer()

    async def test_timer_cannot_start_twice(self):
        session = started_session()
        timer = QuizTimer(session, interval=0.05)
        timer.start()
        with self.assertRaises(RuntimeError):
            timer.start()
        timer.cancel()


if __name__ == '__main__':
    unittest.main()

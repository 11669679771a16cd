"""
Unit tests for the QuizSession state machine and SessionTimer.
"""
import asyncio
import logging
import unittest
from unittest.mock import MagicMock

from nature_quiz.models import Category, CompletionReason, Difficulty, HintType
from nature_quiz.quiz_engine import (
    EventKind,
    QuizSession,
    SessionState,
    SessionTimer,
    TimerLifecycleLogger,
)
from tests.test_fixtures import AsyncTestHelpers, TestFixtures


def make_bank(questions):
    """Mock bank that always draws the given questions in order."""
    bank = MagicMock()
    bank.draw_round.return_value = list(questions)
    return bank


class QuizSessionTestCase(unittest.TestCase):
    """Shared setup for session tests."""

    def setUp(self):
        """Set up test fixtures before each test method."""
        self.questions = [
            TestFixtures.create_question(1, difficulty=Difficulty.EASY, correct_option_index=0),
            TestFixtures.create_question(2, difficulty=Difficulty.MEDIUM, correct_option_index=1),
            TestFixtures.create_question(3, difficulty=Difficulty.HARD, correct_option_index=2),
            TestFixtures.create_question(4, difficulty=Difficulty.EASY, correct_option_index=3),
        ]
        self.events = []
        self.session = QuizSession(TestFixtures.create_settings(), listener=self.events.append)
        logging.disable(logging.CRITICAL)

    def tearDown(self):
        """Clean up after each test method."""
        logging.disable(logging.NOTSET)

    def start(self, questions=None):
        return self.session.start(
            Category.ANIMALS, make_bank(self.questions if questions is None else questions)
        )

    def answer_correctly(self):
        return self.session.answer(self.session.current_question.correct_option_index)

    def answer_wrongly(self):
        question = self.session.current_question
        return self.session.answer((question.correct_option_index + 1) % len(question.options))


class TestSessionLifecycle(QuizSessionTestCase):
    """Test cases for starting a session and its state transitions."""

    def test_initial_state(self):
        self.assertEqual(self.session.state, SessionState.IDLE)
        self.assertIsNone(self.session.current_question)
        self.assertIsNone(self.session.outcome)

    def test_start(self):
        """Test start draws a round and resets the round figures."""
        self.assertTrue(self.start())

        self.assertEqual(self.session.state, SessionState.RUNNING)
        self.assertEqual(self.session.category, Category.ANIMALS)
        self.assertEqual(self.session.question_count, 4)
        self.assertEqual(self.session.current_question.id, 1)
        self.assertEqual(self.session.remaining_time, 35)
        self.assertEqual(self.session.score, 0)
        self.assertEqual(self.session.mistake_count, 0)
        self.assertEqual(self.events[0].kind, EventKind.STARTED)

    def test_start_requests_round_size(self):
        bank = make_bank(self.questions)
        self.session.start(Category.PLANTS, bank)

        bank.draw_round.assert_called_once_with(Category.PLANTS, 10)

    def test_start_twice_is_rejected(self):
        self.assertTrue(self.start())
        self.answer_correctly()

        self.assertFalse(self.start())
        self.assertEqual(self.session.current_index, 1)

    def test_start_with_no_questions(self):
        """Test an empty category leaves the session idle."""
        self.assertFalse(self.start([]))
        self.assertEqual(self.session.state, SessionState.IDLE)
        self.assertEqual(self.events, [])

    def test_events_before_start_are_ignored(self):
        self.assertFalse(self.session.answer(0))
        self.assertFalse(self.session.tick())
        self.assertFalse(self.session.use_hint(HintType.HIGHLIGHT, 100))
        self.assertEqual(self.session.state, SessionState.IDLE)


class TestSessionAnswers(QuizSessionTestCase):
    """Test cases for scoring and completion by answers."""

    def test_correct_answer_scores_difficulty_reward(self):
        self.start()
        self.assertTrue(self.answer_correctly())
        self.assertTrue(self.answer_correctly())

        self.assertEqual(self.session.score, 10 + 15)
        self.assertEqual(self.session.current_index, 2)
        self.assertEqual(self.session.questions_answered, 2)

    def test_wrong_answer_counts_mistake(self):
        self.start()
        self.assertTrue(self.answer_wrongly())

        self.assertEqual(self.session.score, 0)
        self.assertEqual(self.session.mistake_count, 1)
        self.assertEqual(self.session.current_index, 1)

    def test_exhausting_questions_completes(self):
        """Test answering the last question completes the round."""
        self.start()
        for _ in range(4):
            self.answer_correctly()

        self.assertEqual(self.session.state, SessionState.COMPLETED)
        self.assertEqual(self.session.completion_reason, CompletionReason.EXHAUSTED)
        self.assertEqual(self.session.score, 10 + 15 + 20 + 10)

        outcome = self.session.outcome
        self.assertEqual(outcome.score, 55)
        self.assertEqual(outcome.mistake_count, 0)
        self.assertEqual(outcome.questions_answered, 4)
        self.assertEqual(outcome.question_count, 4)
        self.assertEqual(outcome.remaining_time, 35)
        self.assertEqual(outcome.elapsed_time, 0)
        self.assertEqual(self.events[-1].kind, EventKind.COMPLETED)
        self.assertIs(self.events[-1].detail['outcome'], outcome)

    def test_mistake_limit_completes_immediately(self):
        """Test the third mistake on the fourth of ten questions ends the round."""
        questions = [TestFixtures.create_question(i) for i in range(1, 11)]
        self.start(questions)

        self.answer_correctly()
        self.answer_wrongly()
        self.answer_wrongly()
        self.assertTrue(self.session.is_running)
        self.answer_wrongly()

        self.assertEqual(self.session.state, SessionState.COMPLETED)
        self.assertEqual(self.session.completion_reason, CompletionReason.MISTAKE_LIMIT)
        self.assertEqual(self.session.mistake_count, 3)
        self.assertEqual(self.session.questions_answered, 4)
        self.assertEqual(self.session.current_index, 3)
        self.assertFalse(self.session.answer(0))
        self.assertEqual(self.session.questions_answered, 4)

    def test_custom_mistake_limit(self):
        self.session = QuizSession(TestFixtures.create_settings(max_mistakes=1))
        self.start()
        self.answer_wrongly()

        self.assertEqual(self.session.completion_reason, CompletionReason.MISTAKE_LIMIT)

    def test_out_of_range_answer_is_ignored(self):
        self.start()

        self.assertFalse(self.session.answer(4))
        self.assertFalse(self.session.answer(-1))
        self.assertEqual(self.session.current_index, 0)
        self.assertEqual(self.session.mistake_count, 0)
        self.assertEqual(self.session.questions_answered, 0)

    def test_non_integer_answer_is_ignored(self):
        """Test answers that are not plain integers leave the session untouched."""
        self.start()

        for option in (None, "1", 1.0, True):
            self.assertFalse(self.session.answer(option))

        self.assertEqual(self.session.current_index, 0)
        self.assertEqual(self.session.mistake_count, 0)
        self.assertEqual(self.session.questions_answered, 0)
        self.assertEqual(self.events[-1].kind, EventKind.STARTED)

    def test_answer_after_completion_is_ignored(self):
        self.start([self.questions[0]])
        self.answer_correctly()

        self.assertFalse(self.session.answer(0))
        self.assertEqual(self.session.score, 10)

    def test_listener_failure_does_not_break_session(self):
        def failing_listener(event):
            raise RuntimeError("listener exploded")

        self.session = QuizSession(TestFixtures.create_settings(), listener=failing_listener)
        self.start()

        self.assertTrue(self.answer_correctly())
        self.assertEqual(self.session.score, 10)


class TestSessionTicks(QuizSessionTestCase):
    """Test cases for the countdown."""

    def test_tick_decrements(self):
        self.start()
        self.assertTrue(self.session.tick())
        self.assertEqual(self.session.remaining_time, 34)
        self.assertEqual(self.events[-1].kind, EventKind.TICK)

    def test_timeout_completes(self):
        """Test the round completes when the clock reaches zero."""
        self.session = QuizSession(TestFixtures.create_settings(timer_duration=3))
        self.start()
        self.answer_correctly()

        for _ in range(3):
            self.assertTrue(self.session.tick())

        self.assertEqual(self.session.state, SessionState.COMPLETED)
        self.assertEqual(self.session.completion_reason, CompletionReason.TIMEOUT)
        self.assertEqual(self.session.remaining_time, 0)
        self.assertEqual(self.session.outcome.score, 10)
        self.assertEqual(self.session.outcome.elapsed_time, 3)

    def test_tick_after_completion_is_ignored(self):
        self.session = QuizSession(TestFixtures.create_settings(timer_duration=1))
        self.start()
        self.session.tick()

        self.assertFalse(self.session.tick())
        self.assertEqual(self.session.remaining_time, 0)


class TestSessionHints(QuizSessionTestCase):
    """Test cases for coin-costed hints."""

    def test_insufficient_balance_is_no_op(self):
        self.start()
        debit = MagicMock(return_value=True)

        self.assertFalse(self.session.use_hint(HintType.HIGHLIGHT, 39, debit))

        debit.assert_not_called()
        self.assertFalse(self.session.highlight_correct)

    def test_failed_debit_aborts_hint(self):
        self.start()
        debit = MagicMock(return_value=False)

        self.assertFalse(self.session.use_hint(HintType.SKIP, 100, debit))
        self.assertEqual(self.session.current_index, 0)

    def test_debit_called_with_cost(self):
        self.start()
        debit = MagicMock(return_value=True)

        self.assertTrue(self.session.use_hint(HintType.FIFTY_FIFTY, 20, debit))
        debit.assert_called_once_with(20)

    def test_unknown_hint_type_is_no_op(self):
        self.start()
        debit = MagicMock(return_value=True)

        self.assertFalse(self.session.use_hint("skip", 100, debit))
        self.assertFalse(self.session.use_hint(None, 100, debit))

        debit.assert_not_called()
        self.assertEqual(self.session.current_index, 0)

    def test_highlight(self):
        self.start()
        self.assertTrue(self.session.use_hint(HintType.HIGHLIGHT, 40))
        self.assertTrue(self.session.highlight_correct)

        self.answer_correctly()
        self.assertFalse(self.session.highlight_correct)

    def test_skip_advances_without_scoring(self):
        self.start()
        self.assertTrue(self.session.use_hint(HintType.SKIP, 30))

        self.assertEqual(self.session.current_index, 1)
        self.assertEqual(self.session.score, 0)
        self.assertEqual(self.session.mistake_count, 0)
        self.assertEqual(self.session.questions_answered, 0)

    def test_skip_on_last_question_completes(self):
        self.start([self.questions[0]])
        self.assertTrue(self.session.use_hint(HintType.SKIP, 30))

        self.assertEqual(self.session.completion_reason, CompletionReason.EXHAUSTED)

    def test_fifty_fifty_disables_two_wrong_options(self):
        """Test fifty-fifty never disables the correct option."""
        for _ in range(25):
            self.session = QuizSession(TestFixtures.create_settings())
            self.start()
            question = self.session.current_question
            self.assertTrue(self.session.use_hint(HintType.FIFTY_FIFTY, 20))

            self.assertEqual(len(self.session.disabled_options), 2)
            self.assertNotIn(question.correct_option_index, self.session.disabled_options)

    def test_fifty_fifty_with_two_options(self):
        question = TestFixtures.create_question(1, option_count=2, correct_option_index=1)
        self.start([question])
        self.session.use_hint(HintType.FIFTY_FIFTY, 20)

        self.assertEqual(self.session.disabled_options, {0})

    def test_fifty_fifty_twice_replaces_disabled_set(self):
        self.start()
        self.session.use_hint(HintType.FIFTY_FIFTY, 40)
        self.session.use_hint(HintType.FIFTY_FIFTY, 20)

        self.assertEqual(len(self.session.disabled_options), 2)

    def test_disabled_option_cannot_be_answered(self):
        self.start()
        self.session.use_hint(HintType.FIFTY_FIFTY, 20)
        disabled = next(iter(self.session.disabled_options))

        self.assertFalse(self.session.answer(disabled))
        self.assertEqual(self.session.mistake_count, 0)
        self.assertEqual(self.session.current_index, 0)

    def test_disabled_options_cleared_on_advance(self):
        self.start()
        self.session.use_hint(HintType.FIFTY_FIFTY, 20)
        self.answer_correctly()

        self.assertEqual(self.session.disabled_options, set())

    def test_hint_emits_event(self):
        self.start()
        self.session.use_hint(HintType.HIGHLIGHT, 40)

        event = self.events[-1]
        self.assertEqual(event.kind, EventKind.HINT_USED)
        self.assertEqual(event.detail['hint'], HintType.HIGHLIGHT)
        self.assertEqual(event.detail['cost'], 40)


class TestSessionProgress(QuizSessionTestCase):

    def test_progress_snapshot(self):
        self.start()
        self.answer_wrongly()
        progress = self.session.progress()

        self.assertEqual(progress['state'], 'running')
        self.assertEqual(progress['category'], 'animals')
        self.assertEqual(progress['question_number'], 2)
        self.assertEqual(progress['question_count'], 4)
        self.assertEqual(progress['mistake_count'], 1)
        self.assertEqual(progress['max_mistakes'], 3)
        self.assertIsNone(progress['completion_reason'])

    def test_progress_after_completion(self):
        self.start([self.questions[0]])
        self.answer_correctly()
        progress = self.session.progress()

        self.assertIsNone(progress['question'])
        self.assertEqual(progress['completion_reason'], 'exhausted')


class TestSessionTimer(unittest.TestCase):
    """Test cases for the periodic tick driver."""

    def setUp(self):
        logging.disable(logging.CRITICAL)

    def tearDown(self):
        logging.disable(logging.NOTSET)

    async def test_runs_until_callback_returns_false(self):
        ticks = []

        def callback():
            ticks.append(len(ticks))
            return len(ticks) < 3

        timer = SessionTimer("t1")
        task = timer.start(0.001, callback)
        await AsyncTestHelpers.run_with_timeout(task)

        self.assertEqual(len(ticks), 3)
        self.assertEqual(timer.tick_count, 3)
        self.assertFalse(timer.is_running)

    async def test_cancel_stops_countdown(self):
        timer = SessionTimer("t2")
        task = timer.start(0.001, lambda: True)
        await asyncio.sleep(0.02)

        timer.cancel()
        with self.assertRaises(asyncio.CancelledError):
            await task

        self.assertTrue(timer.is_cancelled)
        self.assertFalse(timer.is_running)
        timer.cancel()

    async def test_cancel_from_callback_exits_cleanly(self):
        timer = SessionTimer("t3")

        def callback():
            timer.cancel()
            return True

        task = timer.start(0.001, callback)
        await AsyncTestHelpers.run_with_timeout(task)

        self.assertTrue(timer.is_cancelled)
        self.assertEqual(timer.tick_count, 1)
        self.assertFalse(task.cancelled())

    async def test_callback_error_propagates(self):
        def callback():
            raise ValueError("boom")

        timer = SessionTimer("t4")
        task = timer.start(0.001, callback)

        with self.assertRaises(ValueError):
            await task


class TestTimerLifecycleLogger(unittest.TestCase):
    """Test cases for structured timer logging."""

    def test_update_is_throttled(self):
        with self.assertLogs('nature_quiz.quiz_engine', level='DEBUG') as captured:
            for remaining in (34, 30, 12, 5):
                TimerLifecycleLogger.log_timer_update("s1", remaining, 35)

        self.assertEqual(len(captured.records), 2)
        self.assertEqual(captured.records[0].event_type, 'timer_update')
        self.assertEqual(captured.records[1].remaining_time, 5)

    def test_completion_record(self):
        with self.assertLogs('nature_quiz.quiz_engine', level='INFO') as captured:
            TimerLifecycleLogger.log_timer_completion("s1", "session_finished", 7)

        record = captured.records[0]
        self.assertEqual(record.event_type, 'timer_completed')
        self.assertEqual(record.completion_type, 'session_finished')
        self.assertEqual(record.ticks, 7)


# Helper to run async tests
def async_test(coro):
    """Decorator to run async test methods."""
    def wrapper(self):
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            loop.run_until_complete(coro(self))
        finally:
            loop.close()
    return wrapper


# Apply async_test decorator to async test methods
TestSessionTimer.test_runs_until_callback_returns_false = async_test(
    TestSessionTimer.test_runs_until_callback_returns_false
)
TestSessionTimer.test_cancel_stops_countdown = async_test(TestSessionTimer.test_cancel_stops_countdown)
TestSessionTimer.test_cancel_from_callback_exits_cleanly = async_test(
    TestSessionTimer.test_cancel_from_callback_exits_cleanly
)
TestSessionTimer.test_callback_error_propagates = async_test(TestSessionTimer.test_callback_error_propagates)


if __name__ == '__main__':
    unittest.main()

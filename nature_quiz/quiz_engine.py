"""
Quiz engine core logic for the nature quiz.
Handles the round state machine, scoring, hints and the countdown timer.
"""
import asyncio
import logging
import random
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set

from .exceptions import InvalidTransitionError
from .models import (
    Category,
    CompletionReason,
    HintType,
    Question,
    SessionOutcome,
    SessionSettings,
)

# Set up logger for session and timer operations
logger = logging.getLogger(__name__)


class TimerLifecycleLogger:
    """Structured logging for timer lifecycle events."""

    @staticmethod
    def log_timer_start(session_id: str, interval: float) -> None:
        """Log countdown start."""
        logger.info(
            f"Timer lifecycle: COUNTDOWN_START - Session {session_id}, Interval {interval}s",
            extra={
                'event_type': 'timer_countdown_start',
                'session_id': session_id,
                'interval': interval,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_update(session_id: str, remaining_time: int, total_duration: int) -> None:
        """Log timer update events (throttled to avoid spam)."""
        if remaining_time % 10 == 0 or remaining_time <= 5:
            logger.debug(
                f"Timer lifecycle: UPDATE - Session {session_id}, Remaining {remaining_time}s",
                extra={
                    'event_type': 'timer_update',
                    'session_id': session_id,
                    'remaining_time': remaining_time,
                    'total_duration': total_duration,
                    'timestamp': time.time()
                }
            )

    @staticmethod
    def log_timer_completion(session_id: str, completion_type: str, ticks: int) -> None:
        """Log timer completion (session finished or cancellation)."""
        logger.info(
            f"Timer lifecycle: COMPLETED - Session {session_id}, Type {completion_type}, Ticks {ticks}",
            extra={
                'event_type': 'timer_completed',
                'session_id': session_id,
                'completion_type': completion_type,
                'ticks': ticks,
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


class SessionTimer:
    """Drives a periodic tick callback until it reports the round is over."""

    def __init__(self, session_id: str = None):
        """Initialize the timer."""
        self._task: Optional[asyncio.Task] = None
        self._is_cancelled = False
        self._session_id = session_id
        self._tick_count = 0

    async def start_countdown(
        self,
        interval: float,
        tick_callback: Callable[[], bool]
    ) -> None:
        """
        Call tick_callback once per interval.

        Args:
            interval: Seconds between ticks
            tick_callback: Called on each tick, returns False once no further
                ticks are wanted
        """
        self._is_cancelled = False
        finished = False
        TimerLifecycleLogger.log_timer_start(self._session_id, interval)

        try:
            while not self._is_cancelled:
                await asyncio.sleep(interval)
                if self._is_cancelled:
                    break
                self._tick_count += 1
                if not tick_callback():
                    finished = True
                    break

            completion_type = "session_finished" if finished else "cancelled"
            TimerLifecycleLogger.log_timer_completion(
                self._session_id, completion_type, self._tick_count
            )
        except asyncio.CancelledError:
            self._is_cancelled = True
            TimerLifecycleLogger.log_timer_completion(
                self._session_id, "asyncio_cancelled", self._tick_count
            )
            raise
        except Exception as e:
            TimerLifecycleLogger.log_timer_error(
                self._session_id,
                "countdown_execution_error",
                str(e),
                "start_countdown"
            )
            raise

    def start(self, interval: float, tick_callback: Callable[[], bool]) -> asyncio.Task:
        """
        Run the countdown as a background task on the running event loop.

        Returns:
            The created task
        """
        self._task = asyncio.create_task(self.start_countdown(interval, tick_callback))
        return self._task

    def cancel(self) -> None:
        """Cancel the countdown. Safe to call more than once."""
        if self._is_cancelled:
            return

        TimerLifecycleLogger.log_timer_state_transition(
            self._session_id, "running", "cancelled", "cancel requested"
        )
        self._is_cancelled = True
        # A tick that completes the session cancels from inside the task; the
        # loop exits on its own after the callback returns.
        if self._task and not self._task.done() and not self._is_current_task():
            self._task.cancel()

    def _is_current_task(self) -> bool:
        try:
            return asyncio.current_task() is self._task
        except RuntimeError:
            return False

    @property
    def task(self) -> Optional[asyncio.Task]:
        return self._task

    @property
    def is_cancelled(self) -> bool:
        """Check if timer is cancelled."""
        return self._is_cancelled

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done() and not self._is_cancelled

    @property
    def tick_count(self) -> int:
        return self._tick_count


class SessionState(Enum):
    """Enumeration of quiz session states."""
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"


class EventKind(Enum):
    """Events a session reports to its listener."""
    STARTED = "started"
    ANSWERED = "answered"
    HINT_USED = "hint_used"
    TICK = "tick"
    COMPLETED = "completed"


@dataclass
class SessionEvent:
    """Notification emitted by a QuizSession."""
    kind: EventKind
    session: "QuizSession"
    detail: Dict[str, Any] = field(default_factory=dict)


class QuizSession:
    """
    State machine for one quiz round.

    A session moves IDLE -> RUNNING -> COMPLETED and never leaves COMPLETED.
    Events outside their valid state are logged and ignored.
    """

    def __init__(
        self,
        settings: Optional[SessionSettings] = None,
        listener: Optional[Callable[[SessionEvent], Any]] = None
    ):
        """
        Initialize an idle session.

        Args:
            settings: Round settings, defaults if None
            listener: Optional callback receiving every SessionEvent
        """
        self.settings = settings or SessionSettings()
        self.listener = listener
        self.session_id = uuid.uuid4().hex[:8]

        self.state = SessionState.IDLE
        self.category: Optional[Category] = None
        self.questions: List[Question] = []
        self.current_index = 0
        self.score = 0
        self.mistake_count = 0
        self.remaining_time = self.settings.timer_duration
        self.disabled_options: Set[int] = set()
        self.highlight_correct = False
        self.questions_answered = 0
        self.completion_reason: Optional[CompletionReason] = None
        self._outcome: Optional[SessionOutcome] = None

    @property
    def max_mistakes(self) -> int:
        return self.settings.max_mistakes

    @property
    def question_count(self) -> int:
        return len(self.questions)

    @property
    def is_running(self) -> bool:
        return self.state is SessionState.RUNNING

    @property
    def is_completed(self) -> bool:
        return self.state is SessionState.COMPLETED

    @property
    def current_question(self) -> Optional[Question]:
        if self.current_index < len(self.questions):
            return self.questions[self.current_index]
        return None

    @property
    def outcome(self) -> Optional[SessionOutcome]:
        """Final figures, available once the session has completed."""
        return self._outcome

    def start(self, category: Category, bank) -> bool:
        """
        Draw a round and begin the countdown state.

        Args:
            category: Category to play
            bank: QuestionBank to draw from

        Returns:
            True if the session is now running
        """
        try:
            self._require_state(SessionState.IDLE, "start")
        except InvalidTransitionError as e:
            self._log_rejected("start", e)
            return False

        questions = bank.draw_round(category, self.settings.round_size)
        if not questions:
            logger.error(
                f"Cannot start session {self.session_id}: no questions for {category.value}",
                extra={
                    'event_type': 'session_start_failed',
                    'session_id': self.session_id,
                    'category': category.value
                }
            )
            return False

        self.category = category
        self.questions = questions
        self.current_index = 0
        self.score = 0
        self.mistake_count = 0
        self.questions_answered = 0
        self.remaining_time = self.settings.timer_duration
        self._clear_question_flags()
        self.state = SessionState.RUNNING

        logger.info(
            f"Session {self.session_id} started: category={category.value}, "
            f"questions={len(questions)}",
            extra={
                'event_type': 'session_started',
                'session_id': self.session_id,
                'category': category.value,
                'question_count': len(questions),
                'timestamp': time.time()
            }
        )
        self._emit(EventKind.STARTED, question_count=len(questions))
        return True

    def tick(self) -> bool:
        """
        Advance the clock by one second.

        Returns:
            True if the tick was applied
        """
        try:
            self._require_state(SessionState.RUNNING, "tick")
        except InvalidTransitionError as e:
            self._log_rejected("tick", e, level=logging.DEBUG)
            return False

        self.remaining_time = max(0, self.remaining_time - 1)
        TimerLifecycleLogger.log_timer_update(
            self.session_id, self.remaining_time, self.settings.timer_duration
        )
        self._emit(EventKind.TICK, remaining_time=self.remaining_time)

        if self.remaining_time == 0:
            self._complete(CompletionReason.TIMEOUT)
        return True

    def answer(self, option_index: int) -> bool:
        """
        Answer the current question.

        Args:
            option_index: Index of the chosen option

        Returns:
            True if the answer was accepted, False if it was ignored
        """
        try:
            self._require_state(SessionState.RUNNING, "answer")
            question = self._require_current_question("answer")
        except InvalidTransitionError as e:
            self._log_rejected("answer", e)
            return False

        if not isinstance(option_index, int) or isinstance(option_index, bool):
            logger.info(f"Ignoring answer {option_index!r}: option index must be an integer")
            return False

        if not 0 <= option_index < len(question.options):
            logger.info(f"Ignoring answer {option_index}: out of range for question {question.id}")
            return False

        if option_index in self.disabled_options:
            logger.info(f"Ignoring answer {option_index}: option is disabled")
            return False

        correct = option_index == question.correct_option_index
        self.questions_answered += 1

        if correct:
            self.score += question.difficulty.reward
        else:
            self.mistake_count += 1

        self._emit(
            EventKind.ANSWERED,
            question_id=question.id,
            option_index=option_index,
            correct=correct
        )

        if not correct and self.mistake_count >= self.max_mistakes:
            self._complete(CompletionReason.MISTAKE_LIMIT)
            return True

        self._advance()
        return True

    def use_hint(
        self,
        hint_type: HintType,
        coin_balance: int,
        debit: Optional[Callable[[int], bool]] = None
    ) -> bool:
        """
        Apply a coin-costed hint to the current question.

        Args:
            hint_type: Which hint to use
            coin_balance: Player's current coins
            debit: Called with the cost before the effect is applied. A falsy
                return aborts the hint.

        Returns:
            True if the hint was paid for and applied
        """
        try:
            self._require_state(SessionState.RUNNING, "use_hint")
            question = self._require_current_question("use_hint")
        except InvalidTransitionError as e:
            self._log_rejected("use_hint", e)
            return False

        if not isinstance(hint_type, HintType):
            logger.info(f"Ignoring hint {hint_type!r}: not a known hint type")
            return False

        cost = hint_type.cost
        if coin_balance < cost:
            logger.info(
                f"Hint {hint_type.value} refused: cost {cost} exceeds balance {coin_balance}",
                extra={
                    'event_type': 'hint_refused',
                    'session_id': self.session_id,
                    'hint': hint_type.value,
                    'cost': cost,
                    'balance': coin_balance
                }
            )
            return False

        if debit is not None and not debit(cost):
            logger.warning(f"Hint {hint_type.value} aborted: debit of {cost} coins failed")
            return False

        self._emit(EventKind.HINT_USED, hint=hint_type, cost=cost, question_id=question.id)

        if hint_type is HintType.SKIP:
            self._advance()
        elif hint_type is HintType.FIFTY_FIFTY:
            self._apply_fifty_fifty(question)
        elif hint_type is HintType.HIGHLIGHT:
            self.highlight_correct = True

        return True

    def _apply_fifty_fifty(self, question: Question) -> None:
        wrong_options = [
            i for i in range(len(question.options)) if i != question.correct_option_index
        ]
        self.disabled_options = set(random.sample(wrong_options, min(2, len(wrong_options))))

    def _advance(self) -> None:
        if self.current_index >= len(self.questions) - 1:
            self._complete(CompletionReason.EXHAUSTED)
            return

        self.current_index += 1
        self._clear_question_flags()

    def _clear_question_flags(self) -> None:
        self.disabled_options = set()
        self.highlight_correct = False

    def _complete(self, reason: CompletionReason) -> None:
        self.state = SessionState.COMPLETED
        self.completion_reason = reason
        self._outcome = SessionOutcome(
            category=self.category,
            score=self.score,
            mistake_count=self.mistake_count,
            remaining_time=self.remaining_time,
            elapsed_time=self.settings.timer_duration - self.remaining_time,
            questions_answered=self.questions_answered,
            question_count=len(self.questions),
            reason=reason
        )

        logger.info(
            f"Session {self.session_id} completed ({reason.value}): score={self.score}, "
            f"mistakes={self.mistake_count}, remaining={self.remaining_time}s",
            extra={
                'event_type': 'session_completed',
                'session_id': self.session_id,
                'reason': reason.value,
                'score': self.score,
                'mistake_count': self.mistake_count,
                'remaining_time': self.remaining_time,
                'timestamp': time.time()
            }
        )
        self._emit(EventKind.COMPLETED, outcome=self._outcome)

    def _require_state(self, expected: SessionState, operation: str) -> None:
        if self.state is not expected:
            raise InvalidTransitionError(
                f"{operation} requires state {expected.value}, session is {self.state.value}"
            )

    def _require_current_question(self, operation: str) -> Question:
        question = self.current_question
        if question is None:
            raise InvalidTransitionError(f"{operation} with no current question")
        return question

    def _log_rejected(self, operation: str, error: Exception, level: int = logging.WARNING) -> None:
        logger.log(
            level,
            f"Ignoring {operation} on session {self.session_id}: {error}",
            extra={
                'event_type': 'invalid_transition',
                'session_id': self.session_id,
                'operation': operation,
                'state': self.state.value
            }
        )

    def _emit(self, kind: EventKind, **detail) -> None:
        if self.listener is None:
            return
        try:
            self.listener(SessionEvent(kind=kind, session=self, detail=detail))
        except Exception as e:
            logger.error(
                f"Session listener failed on {kind.value} for session {self.session_id}: {e}",
                extra={
                    'event_type': 'listener_error',
                    'session_id': self.session_id,
                    'kind': kind.value
                }
            )

    def progress(self) -> Dict[str, Any]:
        """
        Get a read-only snapshot for rendering.

        Returns:
            Dictionary with the round's current figures
        """
        question = self.current_question if self.is_running else None
        return {
            'session_id': self.session_id,
            'state': self.state.value,
            'category': self.category.value if self.category else None,
            'question_number': self.current_index + 1 if question else None,
            'question_count': len(self.questions),
            'question': question,
            'score': self.score,
            'mistake_count': self.mistake_count,
            'max_mistakes': self.max_mistakes,
            'remaining_time': self.remaining_time,
            'disabled_options': sorted(self.disabled_options),
            'highlight_correct': self.highlight_correct,
            'completion_reason': self.completion_reason.value if self.completion_reason else None
        }

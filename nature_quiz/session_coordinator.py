"""
Session coordinator for the nature quiz.
Runs quiz rounds and reconciles their results into the player profile.
"""
import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

from .achievements import CATALOG, AchievementRules
from .models import (
    Category,
    CompletionReport,
    HintType,
    PlayerProfile,
    SessionOutcome,
    SessionSettings,
)
from .profile_store import ProfileStore
from .question_bank import QuestionBank
from .quiz_engine import EventKind, QuizSession, SessionEvent, SessionTimer


class SessionCoordinator:
    """
    Orchestrates quiz rounds for a single player.

    Holds at most one live QuizSession, forwards presentation-layer events to
    it, and applies coins, counters and achievements when it completes.
    """

    MAX_NICKNAME_LENGTH = 24

    def __init__(
        self,
        question_bank: QuestionBank,
        profile_store: ProfileStore,
        settings: Optional[SessionSettings] = None
    ):
        """
        Initialize the coordinator and load the player profile.

        Args:
            question_bank: Loaded question catalog
            profile_store: Persistence for the player profile
            settings: Round settings, defaults if None
        """
        self.logger = logging.getLogger(__name__)
        self.question_bank = question_bank
        self.profile_store = profile_store
        self.settings = settings or SessionSettings()

        self.profile: PlayerProfile = profile_store.load()
        self._session: Optional[QuizSession] = None
        self._timer: Optional[SessionTimer] = None
        self.last_report: Optional[CompletionReport] = None

        self.logger.info("SessionCoordinator initialized")

    @property
    def session(self) -> Optional[QuizSession]:
        return self._session

    def has_active_session(self) -> bool:
        return self._session is not None and self._session.is_running

    def start_round(self, category: Category) -> Dict[str, Any]:
        """
        Start a new round, replacing any previous session.

        Args:
            category: Category to play

        Returns:
            Dictionary with success status, round size and messages
        """
        self._cancel_timer()

        if self._session is not None and self._session.is_running:
            self.logger.info(
                f"Abandoning running session {self._session.session_id} for a new round",
                extra={
                    'event_type': 'session_superseded',
                    'session_id': self._session.session_id,
                    'timestamp': time.time()
                }
            )

        session = QuizSession(self.settings, listener=self._on_session_event)
        self._session = session
        self.last_report = None

        if not session.start(category, self.question_bank):
            return {
                'success': False,
                'error': f"No questions available for {category.value}",
                'user_message': f"❌ No {category.display_name} questions are available right now",
                'question_count': 0
            }

        short_round = session.question_count < self.settings.round_size
        return {
            'success': True,
            'message': f"Started {category.value} round with {session.question_count} questions",
            'user_message': f"✅ {category.display_name} quiz started",
            'question_count': session.question_count,
            'short_round': short_round
        }

    def answer(self, option_index: int) -> bool:
        """Forward an answer to the live session."""
        if self._session is None:
            self.logger.warning("Ignoring answer: no session has been started")
            return False
        return self._session.answer(option_index)

    def use_hint(self, hint_type: HintType) -> bool:
        """
        Spend coins on a hint for the current question.

        Returns:
            True if the hint was paid for and applied
        """
        if self._session is None:
            self.logger.warning("Ignoring hint: no session has been started")
            return False

        applied = self._session.use_hint(hint_type, self.profile.coins, self.profile.debit)
        if applied and not self._session.is_completed:
            # Completion persists on its own.
            self.profile_store.save(self.profile)
        return applied

    def tick(self) -> bool:
        """Advance the live session's clock by one second."""
        if self._session is None:
            return False
        return self._session.tick()

    def _tick_session(self, session: QuizSession) -> bool:
        """Timer callback. Returns False once ticking should stop."""
        if session is not self._session:
            self.logger.warning(
                f"Stale timer tick for superseded session {session.session_id}",
                extra={'event_type': 'stale_tick', 'session_id': session.session_id}
            )
            return False
        session.tick()
        return session.is_running

    async def run_countdown(self) -> None:
        """
        Tick the live session once per tick interval until it completes.

        Starting a new round or calling shutdown() cancels the countdown.
        """
        session = self._session
        if session is None or not session.is_running:
            self.logger.warning("run_countdown called without a running session")
            return

        self._cancel_timer()
        timer = SessionTimer(session.session_id)
        self._timer = timer
        task = timer.start(self.settings.tick_interval, lambda: self._tick_session(session))
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            # The caller cancelled us; stop the timer and let the cancellation through.
            timer.cancel()
            raise
        finally:
            if self._timer is timer:
                self._timer = None

        if task.cancelled():
            self.logger.debug(
                f"Countdown cancelled for session {session.session_id}",
                extra={'event_type': 'countdown_cancelled', 'session_id': session.session_id}
            )
        elif task.exception() is not None:
            self.logger.error(f"Countdown for session {session.session_id} failed: {task.exception()}")

    async def shutdown(self) -> None:
        """Stop any pending countdown."""
        timer = self._timer
        self._cancel_timer()
        if timer is not None and timer.task is not None:
            try:
                await timer.task
            except asyncio.CancelledError:
                pass
        self.logger.info("SessionCoordinator shut down")

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_session_event(self, event: SessionEvent) -> None:
        if event.kind is EventKind.COMPLETED and event.session is self._session:
            self._cancel_timer()
            self.last_report = self._reconcile(event.detail['outcome'])

    def _reconcile(self, outcome: SessionOutcome) -> CompletionReport:
        """
        Apply a completed round to the profile and persist it once.

        Args:
            outcome: Final figures of the round

        Returns:
            CompletionReport describing the credited coins and achievements
        """
        coins_earned = outcome.score + self.settings.completion_bonus
        self.profile.credit(coins_earned)
        self.profile.increment_completed()
        self.profile.increment_category(outcome.category)

        report = CompletionReport(outcome=outcome, coins_earned=coins_earned)
        for achievement_id in AchievementRules.evaluate(self.profile, outcome):
            if self.profile.unlock(achievement_id):
                reward = CATALOG[achievement_id].reward
                self.profile.credit(reward)
                report.unlocked.append(achievement_id)
                report.achievement_coins += reward

        self.profile_store.save(self.profile)

        self.logger.info(
            f"Round reconciled: +{report.total_coins} coins, "
            f"{len(report.unlocked)} achievements unlocked",
            extra={
                'event_type': 'round_reconciled',
                'category': outcome.category.value,
                'coins_earned': coins_earned,
                'achievement_coins': report.achievement_coins,
                'unlocked': [a.value for a in report.unlocked],
                'timestamp': time.time()
            }
        )
        return report

    def reset_progress(self) -> None:
        """Replace the profile with a fresh default and persist it."""
        self.profile = PlayerProfile()
        self.profile_store.save(self.profile)
        self.logger.info("Player progress reset", extra={'event_type': 'progress_reset'})

    def set_nickname(self, nickname: str) -> Dict[str, Any]:
        """
        Rename the player.

        Args:
            nickname: New nickname, surrounding whitespace is stripped

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if not isinstance(nickname, str) or not nickname.strip():
            return {
                'success': False,
                'error': "Nickname cannot be empty",
                'user_message': "❌ Nickname cannot be empty"
            }

        nickname = nickname.strip()
        if len(nickname) > self.MAX_NICKNAME_LENGTH:
            return {
                'success': False,
                'error': f"Nickname cannot exceed {self.MAX_NICKNAME_LENGTH} characters",
                'user_message': f"❌ Nickname too long: Maximum is {self.MAX_NICKNAME_LENGTH} characters"
            }

        self.profile.nickname = nickname
        self.profile_store.save(self.profile)
        return {
            'success': True,
            'message': f"Nickname set to {nickname}",
            'user_message': f"✅ Nickname set to {nickname}"
        }

    def available_hints(self) -> List[HintType]:
        """Hints the current balance can pay for."""
        return [hint for hint in HintType if self.profile.coins >= hint.cost]

    def achievement_overview(self) -> List[Dict[str, Any]]:
        """
        List the whole catalog with the player's unlock flags.

        Returns:
            One dictionary per catalog entry, in catalog order
        """
        return [
            {
                'id': achievement.id.value,
                'title': achievement.title,
                'description': achievement.description,
                'reward': achievement.reward,
                'is_unlocked': self.profile.is_unlocked(achievement.id)
            }
            for achievement in CATALOG.values()
        ]

    def get_session_status(self) -> Optional[Dict[str, Any]]:
        """Read-only snapshot of the current session, None before the first round."""
        if self._session is None:
            return None
        return self._session.progress()

    def get_profile_summary(self) -> Dict[str, Any]:
        """
        Get a read-only snapshot of the player profile.

        Returns:
            Dictionary with nickname, coins and counters
        """
        return {
            'nickname': self.profile.nickname,
            'coins': self.profile.coins,
            'completed_quiz_count': self.profile.completed_quiz_count,
            'category_counts': {
                category.value: self.profile.category_count(category) for category in Category
            },
            'unlocked_achievements': sum(
                1 for state in self.profile.achievements if state.is_unlocked
            ),
            'total_achievements': len(CATALOG)
        }

"""
Core data models for the nature quiz game.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .exceptions import InsufficientFundsError


logger = logging.getLogger(__name__)

DEFAULT_NICKNAME = "Player"


class Category(Enum):
    """Topical tag on questions, also used to track achievement progress."""
    ANIMALS = "animals"
    PLANTS = "plants"
    ECOLOGY = "ecology"
    WATER = "water"
    FUNGI = "fungi"
    BIRDS = "birds"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()


class Difficulty(Enum):
    """Question difficulty with its fixed point reward."""
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"

    @property
    def reward(self) -> int:
        return _DIFFICULTY_REWARDS[self]


_DIFFICULTY_REWARDS = {
    Difficulty.EASY: 10,
    Difficulty.MEDIUM: 15,
    Difficulty.HARD: 20,
}


class HintType(Enum):
    """Coin-costed hints available during a round."""
    SKIP = "skip"
    FIFTY_FIFTY = "fifty_fifty"
    HIGHLIGHT = "highlight"

    @property
    def cost(self) -> int:
        return _HINT_COSTS[self]


_HINT_COSTS = {
    HintType.SKIP: 30,
    HintType.FIFTY_FIFTY: 20,
    HintType.HIGHLIGHT: 40,
}


class CompletionReason(Enum):
    """How a round reached its terminal state."""
    EXHAUSTED = "exhausted"
    MISTAKE_LIMIT = "mistake_limit"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class Question:
    """Represents a single multiple-choice question."""
    id: int
    text: str
    options: tuple
    correct_option_index: int
    category: Category
    difficulty: Difficulty

    @property
    def correct_answer(self) -> str:
        return self.options[self.correct_option_index]


@dataclass
class SessionSettings:
    """Configuration settings for a quiz round."""
    round_size: int = 10
    timer_duration: int = 35
    max_mistakes: int = 3
    completion_bonus: int = 50
    tick_interval: float = 1.0


@dataclass
class AchievementState:
    """Per-player unlock flag for one catalog achievement."""
    achievement_id: Any
    is_unlocked: bool = False


def _default_category_counts() -> Dict[Category, int]:
    return {category: 0 for category in Category}


@dataclass
class PlayerProfile:
    """
    Persisted player progress: coins, counters and achievements.

    Mutators never raise on bad input. They log and leave the profile
    unchanged, so a repeated UI event cannot corrupt it.
    """
    nickname: str = DEFAULT_NICKNAME
    coins: int = 0
    completed_quiz_count: int = 0
    category_counts: Dict[Category, int] = field(default_factory=_default_category_counts)
    achievements: List[AchievementState] = field(default_factory=list)

    def credit(self, amount: int) -> None:
        """Add coins. Negative amounts are ignored."""
        if amount < 0:
            logger.warning(f"Ignoring negative credit of {amount} coins")
            return
        self.coins += amount

    def debit(self, amount: int) -> bool:
        """
        Spend coins if the balance covers it.

        Args:
            amount: Number of coins to spend

        Returns:
            True if the coins were taken, False if the balance was insufficient
        """
        try:
            self._require_funds(amount)
        except InsufficientFundsError as e:
            logger.info(
                f"Debit refused: {e}",
                extra={
                    'event_type': 'debit_refused',
                    'amount': amount,
                    'balance': self.coins
                }
            )
            return False

        self.coins -= amount
        return True

    def _require_funds(self, amount: int) -> None:
        if amount < 0:
            raise InsufficientFundsError(f"invalid debit amount {amount}")
        if amount > self.coins:
            raise InsufficientFundsError(
                f"cost {amount} exceeds balance {self.coins}"
            )

    def increment_completed(self) -> None:
        self.completed_quiz_count += 1

    def increment_category(self, category: Category) -> None:
        self.category_counts[category] = self.category_counts.get(category, 0) + 1

    def category_count(self, category: Category) -> int:
        return self.category_counts.get(category, 0)

    def get_achievement_state(self, achievement_id) -> Optional[AchievementState]:
        for state in self.achievements:
            if state.achievement_id == achievement_id:
                return state
        return None

    def is_unlocked(self, achievement_id) -> bool:
        state = self.get_achievement_state(achievement_id)
        return state is not None and state.is_unlocked

    def unlock(self, achievement_id) -> bool:
        """
        Unlock an achievement, creating its state on first use.

        Args:
            achievement_id: Catalog identifier of the achievement

        Returns:
            True only if this call moved the achievement from locked to
            unlocked, so the reward is credited exactly once
        """
        state = self.get_achievement_state(achievement_id)
        if state is None:
            state = AchievementState(achievement_id=achievement_id)
            self.achievements.append(state)

        if state.is_unlocked:
            return False

        state.is_unlocked = True
        return True

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the persisted document layout."""
        return {
            "nickname": self.nickname,
            "coins": self.coins,
            "completed_quiz_count": self.completed_quiz_count,
            "category_counts": {
                category.value: self.category_count(category) for category in Category
            },
            "achievements": [
                {"id": state.achievement_id.value, "is_unlocked": state.is_unlocked}
                for state in self.achievements
            ],
        }


@dataclass(frozen=True)
class SessionOutcome:
    """Final figures of a completed round, handed to the coordinator."""
    category: Category
    score: int
    mistake_count: int
    remaining_time: int
    elapsed_time: int
    questions_answered: int
    question_count: int
    reason: CompletionReason


@dataclass
class CompletionReport:
    """What the coordinator credited when a round completed."""
    outcome: SessionOutcome
    coins_earned: int
    unlocked: List[Any] = field(default_factory=list)
    achievement_coins: int = 0

    @property
    def total_coins(self) -> int:
        return self.coins_earned + self.achievement_coins

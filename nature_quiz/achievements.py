"""
Achievement catalog and unlock rules.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List

from .models import Category, PlayerProfile, SessionOutcome


class AchievementId(Enum):
    """Closed set of achievement identifiers."""
    FIRST_QUIZ = "first_quiz"
    NATURE_EXPERT = "nature_expert"
    ANIMAL_LOVER = "animal_lover"
    ANIMAL_MASTER = "animal_master"
    PLANT_LOVER = "plant_lover"
    PLANT_MASTER = "plant_master"
    ECO_LOVER = "eco_lover"
    ECO_MASTER = "eco_master"
    WATER_LOVER = "water_lover"
    WATER_MASTER = "water_master"
    FUNGI_LOVER = "fungi_lover"
    FUNGI_MASTER = "fungi_master"
    BIRDS_LOVER = "birds_lover"
    BIRDS_MASTER = "birds_master"
    SPEEDSTER = "speedster"
    PERFECT_SCORE = "perfect_score"


@dataclass(frozen=True)
class Achievement:
    """Immutable catalog entry."""
    id: AchievementId
    title: str
    description: str
    reward: int


CATALOG: Dict[AchievementId, Achievement] = {
    entry.id: entry for entry in (
        Achievement(AchievementId.FIRST_QUIZ, "First Step", "Complete your first quiz", 100),
        Achievement(AchievementId.NATURE_EXPERT, "Nature Expert", "Complete 5 quizzes", 500),
        Achievement(AchievementId.ANIMAL_LOVER, "Animal Lover", "Complete an animal quiz", 200),
        Achievement(AchievementId.ANIMAL_MASTER, "Animal Master", "Complete 3 animal quizzes", 400),
        Achievement(AchievementId.PLANT_LOVER, "Plant Lover", "Complete a plant quiz", 200),
        Achievement(AchievementId.PLANT_MASTER, "Plant Master", "Complete 3 plant quizzes", 400),
        Achievement(AchievementId.ECO_LOVER, "Nature Defender", "Complete an ecology quiz", 200),
        Achievement(AchievementId.ECO_MASTER, "Ecology Master", "Complete 3 ecology quizzes", 400),
        Achievement(AchievementId.WATER_LOVER, "Water Lover", "Complete a water quiz", 200),
        Achievement(AchievementId.WATER_MASTER, "Water Master", "Complete 3 water quizzes", 400),
        Achievement(AchievementId.FUNGI_LOVER, "Fungi Lover", "Complete a fungi quiz", 200),
        Achievement(AchievementId.FUNGI_MASTER, "Fungi Master", "Complete 3 fungi quizzes", 400),
        Achievement(AchievementId.BIRDS_LOVER, "Bird Lover", "Complete a bird quiz", 200),
        Achievement(AchievementId.BIRDS_MASTER, "Bird Master", "Complete 3 bird quizzes", 400),
        Achievement(AchievementId.SPEEDSTER, "Speedster", "Complete a quiz within 20 seconds", 300),
        Achievement(AchievementId.PERFECT_SCORE, "Perfect Score", "Complete a quiz without mistakes", 500),
    )
}

_CATEGORY_ACHIEVEMENTS = {
    Category.ANIMALS: (AchievementId.ANIMAL_LOVER, AchievementId.ANIMAL_MASTER),
    Category.PLANTS: (AchievementId.PLANT_LOVER, AchievementId.PLANT_MASTER),
    Category.ECOLOGY: (AchievementId.ECO_LOVER, AchievementId.ECO_MASTER),
    Category.WATER: (AchievementId.WATER_LOVER, AchievementId.WATER_MASTER),
    Category.FUNGI: (AchievementId.FUNGI_LOVER, AchievementId.FUNGI_MASTER),
    Category.BIRDS: (AchievementId.BIRDS_LOVER, AchievementId.BIRDS_MASTER),
}


class AchievementRules:
    """Pure rule table mapping completion figures to achievement grants."""

    FIRST_QUIZ_COUNT = 1
    EXPERT_QUIZ_COUNT = 5
    CATEGORY_LOVER_COUNT = 1
    CATEGORY_MASTER_COUNT = 3
    SPEED_ELAPSED_SECONDS = 20

    @staticmethod
    def lover_for(category: Category) -> AchievementId:
        return _CATEGORY_ACHIEVEMENTS[category][0]

    @staticmethod
    def master_for(category: Category) -> AchievementId:
        return _CATEGORY_ACHIEVEMENTS[category][1]

    @staticmethod
    def evaluate(profile: PlayerProfile, outcome: SessionOutcome) -> List[AchievementId]:
        """
        Return the achievements whose conditions hold for this completion.

        Counts are read from the profile after this round's increments have
        been applied. Thresholds are exact, except the speed rule, so a
        caller must still rely on PlayerProfile.unlock to detect transitions.

        Args:
            profile: Player profile with updated counters
            outcome: Figures of the round that just completed

        Returns:
            Qualifying achievement ids in rule order
        """
        qualified = []

        if profile.completed_quiz_count == AchievementRules.FIRST_QUIZ_COUNT:
            qualified.append(AchievementId.FIRST_QUIZ)
        if profile.completed_quiz_count == AchievementRules.EXPERT_QUIZ_COUNT:
            qualified.append(AchievementId.NATURE_EXPERT)

        category_count = profile.category_count(outcome.category)
        if category_count == AchievementRules.CATEGORY_LOVER_COUNT:
            qualified.append(AchievementRules.lover_for(outcome.category))
        if category_count == AchievementRules.CATEGORY_MASTER_COUNT:
            qualified.append(AchievementRules.master_for(outcome.category))

        if outcome.elapsed_time <= AchievementRules.SPEED_ELAPSED_SECONDS:
            qualified.append(AchievementId.SPEEDSTER)
        if outcome.mistake_count == 0:
            qualified.append(AchievementId.PERFECT_SCORE)

        return qualified


def get_achievement(achievement_id: AchievementId) -> Achievement:
    return CATALOG[achievement_id]

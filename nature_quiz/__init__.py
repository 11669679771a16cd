"""
Nature quiz core: round state machine with a coin and achievement economy.
"""
from .achievements import CATALOG, Achievement, AchievementId, AchievementRules
from .config_manager import ConfigManager
from .models import Category, Difficulty, HintType, PlayerProfile, Question
from .profile_store import JsonKeyValueStore, ProfileStore
from .question_bank import QuestionBank
from .quiz_engine import QuizSession, SessionState
from .session_coordinator import SessionCoordinator

__all__ = [
    "CATALOG",
    "Achievement",
    "AchievementId",
    "AchievementRules",
    "ConfigManager",
    "Category",
    "Difficulty",
    "HintType",
    "PlayerProfile",
    "Question",
    "JsonKeyValueStore",
    "ProfileStore",
    "QuestionBank",
    "QuizSession",
    "SessionState",
    "SessionCoordinator",
]

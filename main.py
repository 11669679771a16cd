#!/usr/bin/env python3
"""
Nature Quiz - Main Entry Point

Loads configuration, the question bank and the saved player profile, then
prints a status report. Presentation layers build on SessionCoordinator.

Usage:
    python main.py [--config config.json] [--reset]

Configuration:
    1. Copy config.example.json to config.json and adjust as needed
    2. Or set NATURE_QUIZ_DATA_DIR to point at the data directory

Environment Variables:
    NATURE_QUIZ_DATA_DIR: Directory holding questions.json and store.json
        (overrides config.json)
"""
import argparse
import sys

from nature_quiz.config_manager import ConfigManager, load_config, setup_logging
from nature_quiz.exceptions import ConfigError
from nature_quiz.models import Category
from nature_quiz.profile_store import JsonKeyValueStore, ProfileStore
from nature_quiz.question_bank import QuestionBank
from nature_quiz.session_coordinator import SessionCoordinator


def build_coordinator(config: dict) -> SessionCoordinator:
    """Wire the bank, the profile store and the settings together."""
    config_manager = ConfigManager()
    for error in config_manager.apply_config(config):
        print(f"⚠️ Ignoring invalid setting: {error}")

    bank = QuestionBank()
    bank.load_safely(config_manager.get_questions_path())

    store = ProfileStore(JsonKeyValueStore(str(config_manager.get_store_path())))
    return SessionCoordinator(bank, store, config_manager.get_session_settings())


def print_status(coordinator: SessionCoordinator) -> None:
    summary = coordinator.get_profile_summary()
    bank_summary = coordinator.question_bank.get_loading_summary()

    print(f"👤 {summary['nickname']} - {summary['coins']} coins, "
          f"{summary['completed_quiz_count']} quizzes completed")
    print(f"🏆 Achievements: {summary['unlocked_achievements']}/{summary['total_achievements']}")
    print("📚 Questions per category:")
    for category in Category:
        print(f"  • {category.display_name}: {coordinator.question_bank.question_count(category)} "
              f"(played {summary['category_counts'][category.value]})")
    for error in bank_summary['errors']:
        print(f"❌ {error}")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Nature quiz status tool")
    parser.add_argument("--config", default="config.json", help="Path to config.json")
    parser.add_argument("--reset", action="store_true", help="Reset all player progress")
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"❌ Error: {e}")
        return 1

    setup_logging(config)
    coordinator = build_coordinator(config)

    if args.reset:
        coordinator.reset_progress()
        print("🔄 Player progress reset")

    print_status(coordinator)
    return 0


if __name__ == "__main__":
    sys.exit(main())

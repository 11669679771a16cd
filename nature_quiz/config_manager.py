"""
Configuration manager for nature quiz settings and storage locations.
"""
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from .exceptions import ConfigError
from .models import SessionSettings


DATA_DIR_ENV_VAR = "NATURE_QUIZ_DATA_DIR"


class ConfigManager:
    """Manages round settings and storage paths."""

    # Default configuration values
    DEFAULT_ROUND_SIZE = 10
    DEFAULT_TIMER_DURATION = 35
    DEFAULT_MAX_MISTAKES = 3
    DEFAULT_COMPLETION_BONUS = 50
    DEFAULT_DATA_DIRECTORY = "./data/"
    DEFAULT_QUESTIONS_FILE = "questions.json"
    DEFAULT_STORE_FILE = "store.json"

    # Validation limits
    MIN_ROUND_SIZE = 1
    MAX_ROUND_SIZE = 50
    MIN_TIMER_DURATION = 5
    MAX_TIMER_DURATION = 600  # 10 minutes
    MIN_MAX_MISTAKES = 1
    MAX_MAX_MISTAKES = 10

    def __init__(self):
        """Initialize ConfigManager with default settings."""
        self.logger = logging.getLogger(__name__)
        self._settings = SessionSettings()
        self._data_directory = self.DEFAULT_DATA_DIRECTORY
        self._questions_file = self.DEFAULT_QUESTIONS_FILE

    def get_session_settings(self) -> SessionSettings:
        """
        Get current round settings.

        Returns:
            Copy of the SessionSettings in effect
        """
        return SessionSettings(
            round_size=self._settings.round_size,
            timer_duration=self._settings.timer_duration,
            max_mistakes=self._settings.max_mistakes,
            completion_bonus=self._settings.completion_bonus,
            tick_interval=self._settings.tick_interval
        )

    def _set_bounded_int(self, name: str, value: Any, minimum: int, maximum: int, unit: str = "") -> Dict[str, Any]:
        """Validate an integer setting and store it on the settings object."""
        label = name.replace('_', ' ')
        suffix = f" {unit}" if unit else ""

        if not isinstance(value, int) or isinstance(value, bool):
            error_msg = f"{label.capitalize()} must be an integer, got {type(value).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a number, got {type(value).__name__}"
            }

        if value < minimum:
            error_msg = f"{label.capitalize()} must be at least {minimum}{suffix}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Too low: Minimum {label} is {minimum}{suffix}"
            }

        if value > maximum:
            error_msg = f"{label.capitalize()} cannot exceed {maximum}{suffix}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Too high: Maximum {label} is {maximum}{suffix}"
            }

        setattr(self._settings, name, value)
        self.logger.info(f"{label.capitalize()} set to {value}{suffix}")
        return {
            'success': True,
            'message': f"{label.capitalize()} set to {value}{suffix}",
            'user_message': f"✅ {label.capitalize()} set to {value}{suffix}"
        }

    def set_round_size(self, count: int) -> Dict[str, Any]:
        """
        Set the number of questions drawn per round.

        Args:
            count: Questions per round

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        return self._set_bounded_int("round_size", count, self.MIN_ROUND_SIZE, self.MAX_ROUND_SIZE)

    def set_timer_duration(self, duration: int) -> Dict[str, Any]:
        """
        Set the total time allowed for a round.

        Args:
            duration: Round duration in seconds

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        return self._set_bounded_int(
            "timer_duration", duration, self.MIN_TIMER_DURATION, self.MAX_TIMER_DURATION, "seconds"
        )

    def set_max_mistakes(self, mistakes: int) -> Dict[str, Any]:
        """
        Set how many wrong answers end a round.

        Args:
            mistakes: Mistake limit

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        return self._set_bounded_int(
            "max_mistakes", mistakes, self.MIN_MAX_MISTAKES, self.MAX_MAX_MISTAKES
        )

    def set_data_directory(self, directory: str) -> Dict[str, Any]:
        """
        Set the directory holding the question file and the profile store.

        Args:
            directory: Path to the data directory

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if not isinstance(directory, str):
            error_msg = f"Data directory must be a string, got {type(directory).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a path string, got {type(directory).__name__}"
            }

        if not directory.strip():
            error_msg = "Data directory cannot be empty"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': "❌ Directory path cannot be empty"
            }

        try:
            normalized_path = str(Path(directory).resolve())
        except (OSError, ValueError) as e:
            error_msg = f"Invalid directory path format: {e}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid path format: {directory}"
            }

        self._data_directory = normalized_path
        self.logger.info(f"Data directory set to {normalized_path}")
        return {
            'success': True,
            'message': f"Data directory set to {normalized_path}",
            'user_message': f"✅ Data directory set to {normalized_path}"
        }

    def get_data_directory(self) -> str:
        return self._data_directory

    def get_questions_path(self) -> Path:
        return Path(self._data_directory) / self._questions_file

    def get_store_path(self) -> Path:
        return Path(self._data_directory) / self.DEFAULT_STORE_FILE

    def apply_config(self, config: Dict[str, Any]) -> List[str]:
        """
        Apply a parsed configuration document.

        Invalid values are logged and skipped, keeping the previous setting.
        The NATURE_QUIZ_DATA_DIR environment variable overrides the file's
        data directory.

        Args:
            config: Parsed config.json contents

        Returns:
            List of error messages for rejected values
        """
        errors = []
        game = self._config_section(config, 'game', errors)
        setters = {
            'round_size': self.set_round_size,
            'timer_duration': self.set_timer_duration,
            'max_mistakes': self.set_max_mistakes,
        }
        for key, setter in setters.items():
            if key in game:
                result = setter(game[key])
                if not result['success']:
                    errors.append(result['error'])

        storage = self._config_section(config, 'storage', errors)
        data_directory = os.getenv(DATA_DIR_ENV_VAR) or storage.get('data_directory')
        if data_directory is not None:
            result = self.set_data_directory(data_directory)
            if not result['success']:
                errors.append(result['error'])

        questions_file = storage.get('questions_file')
        if isinstance(questions_file, str) and questions_file.strip():
            self._questions_file = questions_file

        return errors

    def _config_section(self, config: Dict[str, Any], name: str, errors: List[str]) -> Dict[str, Any]:
        """Return a config section, or an empty one if it is not an object."""
        section = config.get(name, {})
        if isinstance(section, dict):
            return section

        error_msg = f"Config section '{name}' must be an object, got {type(section).__name__}"
        self.logger.error(error_msg)
        errors.append(error_msg)
        return {}

    def reset_to_defaults(self) -> None:
        """Reset all settings to their default values."""
        self._settings = SessionSettings(
            round_size=self.DEFAULT_ROUND_SIZE,
            timer_duration=self.DEFAULT_TIMER_DURATION,
            max_mistakes=self.DEFAULT_MAX_MISTAKES,
            completion_bonus=self.DEFAULT_COMPLETION_BONUS
        )
        self._data_directory = self.DEFAULT_DATA_DIRECTORY
        self._questions_file = self.DEFAULT_QUESTIONS_FILE
        self.logger.info("All settings reset to default values")

    def validate_settings(self) -> Dict[str, Any]:
        """
        Validate current settings and return validation results.

        Returns:
            Dictionary with validation results and any issues found
        """
        validation_result = {
            "valid": True,
            "issues": []
        }

        checks = (
            ("round size", self._settings.round_size, self.MIN_ROUND_SIZE, self.MAX_ROUND_SIZE),
            ("timer duration", self._settings.timer_duration, self.MIN_TIMER_DURATION, self.MAX_TIMER_DURATION),
            ("max mistakes", self._settings.max_mistakes, self.MIN_MAX_MISTAKES, self.MAX_MAX_MISTAKES),
        )
        for label, value, minimum, maximum in checks:
            if not isinstance(value, int) or not minimum <= value <= maximum:
                validation_result["valid"] = False
                validation_result["issues"].append(f"Invalid {label}: {value}")

        if not isinstance(self._data_directory, str) or not self._data_directory.strip():
            validation_result["valid"] = False
            validation_result["issues"].append(
                f"Invalid data directory: {self._data_directory}"
            )

        return validation_result

    def get_settings_summary(self) -> str:
        """
        Get a formatted summary of current settings.

        Returns:
            Human-readable string describing current settings
        """
        return (
            f"Quiz Settings:\n"
            f"• Questions per round: {self._settings.round_size}\n"
            f"• Round timer: {self._settings.timer_duration} seconds\n"
            f"• Mistakes allowed: {self._settings.max_mistakes}\n"
            f"• Completion bonus: {self._settings.completion_bonus} coins\n"
            f"• Data Directory: {self._data_directory}"
        )


def load_config(config_path: str = "config.json") -> Dict[str, Any]:
    """
    Load configuration from a JSON file.

    Returns:
        Parsed configuration, or an empty dict if the file does not exist

    Raises:
        ConfigError: If the file exists but is not valid JSON
    """
    path = Path(config_path)
    if not path.exists():
        return {}

    try:
        with open(path, 'r', encoding='utf-8') as f:
            config = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {config_path}: {e}") from e
    except UnicodeDecodeError as e:
        raise ConfigError(f"Invalid UTF-8 in {config_path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Error loading {config_path}: {e}") from e

    if not isinstance(config, dict):
        raise ConfigError(f"{config_path} must contain a JSON object")
    return config


def setup_logging(config: Optional[Dict[str, Any]] = None) -> None:
    """Set up logging based on configuration."""
    log_config = (config or {}).get('logging', {})
    log_level = getattr(logging, str(log_config.get('level', 'INFO')).upper(), logging.INFO)
    log_directory = Path(log_config.get('log_directory', './logs/'))

    # Create logs directory
    log_directory.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(log_directory / "nature_quiz.log", encoding='utf-8')
        ]
    )

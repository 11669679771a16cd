"""
Question bank: loading, validation and round drawing for quiz questions.
"""
import json
import logging
import os
import random
from pathlib import Path
from typing import Any, Dict, List, Mapping, Set, Union

from .exceptions import BankLoadError
from .models import Category, Difficulty, Question


class QuestionBank:
    """Loads and holds the question catalog, grouped by category."""

    MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB
    MIN_OPTIONS = 2

    def __init__(self):
        """Initialize an empty bank."""
        self.logger = logging.getLogger(__name__)
        self._questions: Dict[Category, List[Question]] = {category: [] for category in Category}
        self.load_errors: List[str] = []
        self.source_name: str = ""

    def load(self, source: Union[str, Path, Mapping[str, Any]]) -> Set[Question]:
        """
        Load questions from a JSON file or an already-parsed document.

        Expected structure:
        {
            "questions": [
                {
                    "id": int,
                    "text": str,
                    "options": [str, ...],          # at least 2
                    "correctAnswerIndex": int,
                    "category": str,                # Category value
                    "difficulty": str               # easy | medium | hard
                }
            ]
        }

        Args:
            source: Path to the JSON document, or the parsed mapping

        Returns:
            Set of loaded Question objects

        Raises:
            BankLoadError: If the source is unreadable or malformed. The bank
                is left empty in that case.
        """
        self._clear()

        if isinstance(source, Mapping):
            data = source
            self.source_name = "<mapping>"
        else:
            data = self._read_source_file(Path(source))
            self.source_name = str(source)

        questions = self._parse_questions(data)

        for question in questions:
            self._questions[question.category].append(question)

        self.logger.info(
            f"Loaded {len(questions)} questions from {self.source_name}",
            extra={
                'event_type': 'bank_loaded',
                'question_count': len(questions),
                'per_category': {c.value: len(q) for c, q in self._questions.items()}
            }
        )
        return set(questions)

    def load_safely(self, source: Union[str, Path, Mapping[str, Any]]) -> Dict[str, Any]:
        """
        Load the bank, falling back to an empty bank on failure.

        Args:
            source: Path to the JSON document, or the parsed mapping

        Returns:
            Dictionary with success status and error message if applicable
        """
        try:
            questions = self.load(source)
            return {
                'success': True,
                'question_count': len(questions)
            }
        except BankLoadError as e:
            self._clear()
            self.load_errors.append(str(e))
            self.logger.error(f"Question bank failed to load, using empty bank: {e}")
            return {
                'success': False,
                'error': str(e),
                'question_count': 0
            }

    def _clear(self) -> None:
        for category in Category:
            self._questions[category] = []
        self.load_errors.clear()

    def _read_source_file(self, file_path: Path) -> Any:
        """
        Read and decode a question file.

        Args:
            file_path: Path to the JSON file

        Returns:
            Decoded JSON data

        Raises:
            BankLoadError: On missing, unreadable, oversized or invalid files
        """
        if not file_path.exists():
            raise BankLoadError(f"Question file not found: {file_path}")

        if not os.access(file_path, os.R_OK):
            raise BankLoadError(f"Permission denied: Cannot read {file_path}")

        try:
            file_size = file_path.stat().st_size
            if file_size > self.MAX_FILE_SIZE:
                raise BankLoadError(
                    f"File too large ({file_size / 1024 / 1024:.1f}MB). "
                    f"Maximum size is {self.MAX_FILE_SIZE / 1024 / 1024}MB"
                )

            with open(file_path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            raise BankLoadError(f"Invalid JSON in {file_path}: {e}") from e
        except UnicodeDecodeError as e:
            raise BankLoadError(f"Invalid UTF-8 in {file_path}: {e}") from e
        except OSError as e:
            raise BankLoadError(f"Failed to read question file {file_path}: {e}") from e

    def _parse_questions(self, data: Any) -> List[Question]:
        """
        Validate decoded data and build Question objects.

        Any malformed entry fails the whole load.
        """
        if not isinstance(data, Mapping):
            raise BankLoadError("Question data must be a JSON object")

        if "questions" not in data:
            raise BankLoadError("Question data must contain a 'questions' key")

        entries = data["questions"]
        if not isinstance(entries, list):
            raise BankLoadError("'questions' value must be an array")

        questions = []
        seen_ids = set()

        for i, entry in enumerate(entries):
            question = self._parse_entry(i, entry)
            if question.id in seen_ids:
                raise BankLoadError(f"Question {i} has duplicate id {question.id}")
            seen_ids.add(question.id)
            questions.append(question)

        return questions

    def _parse_entry(self, i: int, entry: Any) -> Question:
        if not isinstance(entry, Mapping):
            raise BankLoadError(f"Question {i} must be an object")

        for key in ("id", "text", "options", "category", "difficulty"):
            if key not in entry:
                raise BankLoadError(f"Question {i} missing '{key}' field")

        if "correctAnswerIndex" in entry:
            correct_index = entry["correctAnswerIndex"]
        elif "correct_option_index" in entry:
            correct_index = entry["correct_option_index"]
        else:
            raise BankLoadError(f"Question {i} missing 'correctAnswerIndex' field")

        question_id = entry["id"]
        if not isinstance(question_id, int) or isinstance(question_id, bool):
            raise BankLoadError(f"Question {i} 'id' field must be an integer")

        if not isinstance(entry["text"], str) or not entry["text"].strip():
            raise BankLoadError(f"Question {i} 'text' field must be a non-empty string")

        options = entry["options"]
        if not isinstance(options, list) or not all(isinstance(o, str) for o in options):
            raise BankLoadError(f"Question {i} 'options' field must be an array of strings")

        if len(options) < self.MIN_OPTIONS:
            raise BankLoadError(f"Question {i} needs at least {self.MIN_OPTIONS} options")

        if (not isinstance(correct_index, int) or isinstance(correct_index, bool)
                or not 0 <= correct_index < len(options)):
            raise BankLoadError(
                f"Question {i} correct answer index {correct_index!r} is out of range"
            )

        try:
            category = Category(entry["category"])
        except ValueError:
            raise BankLoadError(f"Question {i} has unknown category {entry['category']!r}")

        try:
            difficulty = Difficulty(entry["difficulty"])
        except ValueError:
            raise BankLoadError(f"Question {i} has unknown difficulty {entry['difficulty']!r}")

        return Question(
            id=question_id,
            text=entry["text"],
            options=tuple(options),
            correct_option_index=correct_index,
            category=category,
            difficulty=difficulty
        )

    def questions_for(self, category: Category) -> List[Question]:
        """
        Get all questions tagged with a category.

        Args:
            category: Category to look up

        Returns:
            New list of questions, in load order
        """
        return list(self._questions.get(category, []))

    def draw_round(self, category: Category, count: int) -> List[Question]:
        """
        Draw a random round of distinct questions.

        Args:
            category: Category to draw from
            count: Requested round size

        Returns:
            Uniformly random permutation of up to count questions

        Note:
            If the category holds fewer than count questions, all of them are
            returned shuffled and a warning is logged. Callers should use
            len() of the result as the actual round size.
        """
        available = self._questions.get(category, [])
        if count < 1:
            return []

        if len(available) < count:
            self.logger.warning(
                f"Short round for {category.value}: requested {count}, "
                f"only {len(available)} available",
                extra={
                    'event_type': 'short_round',
                    'category': category.value,
                    'requested': count,
                    'available': len(available)
                }
            )
            count = len(available)

        return random.sample(available, count)

    def question_count(self, category: Category) -> int:
        return len(self._questions.get(category, []))

    def total_questions(self) -> int:
        return sum(len(questions) for questions in self._questions.values())

    def categories_available(self) -> List[Category]:
        """Categories with at least one question, in enum order."""
        return [category for category in Category if self._questions[category]]

    def has_load_errors(self) -> bool:
        return len(self.load_errors) > 0

    def get_loading_summary(self) -> Dict[str, Any]:
        """
        Get a summary of the last load operation.

        Returns:
            Dictionary with loading statistics and status
        """
        return {
            'total_questions': self.total_questions(),
            'per_category': {c.value: len(q) for c, q in self._questions.items()},
            'has_errors': self.has_load_errors(),
            'errors': list(self.load_errors),
            'source': self.source_name
        }

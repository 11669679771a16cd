"""
Durable storage for the player profile.
"""
import asyncio
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from .achievements import AchievementId
from .exceptions import ProfileLoadError
from .models import AchievementState, Category, PlayerProfile


class JsonKeyValueStore:
    """
    Minimal durable key-value store backed by a single JSON file.

    Writes go to a temporary file that replaces the target, so a reader never
    observes a partial document.
    """

    def __init__(self, file_path: str = "./data/store.json"):
        self.file_path = Path(file_path)
        self.logger = logging.getLogger(__name__)
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        """
        Read one key.

        Returns:
            The stored value, or None if the file or key is missing

        Raises:
            ProfileLoadError: If the file exists but is not a valid JSON object
        """
        with self._lock:
            data = self._read_all()
        return data.get(key)

    def set(self, key: str, value: Any) -> None:
        """
        Write one key, keeping the others.

        Raises:
            OSError: If the file cannot be written
        """
        with self._lock:
            try:
                data = self._read_all()
            except ProfileLoadError as e:
                self.logger.warning(f"Overwriting unreadable store {self.file_path}: {e}")
                data = {}
            data[key] = value
            self._write_all(data)

    def _read_all(self) -> Dict[str, Any]:
        if not self.file_path.exists():
            return {}
        try:
            with open(self.file_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ProfileLoadError(f"Invalid JSON in {self.file_path}: {e}") from e
        except UnicodeDecodeError as e:
            raise ProfileLoadError(f"Invalid UTF-8 in {self.file_path}: {e}") from e
        except OSError as e:
            raise ProfileLoadError(f"Failed to read {self.file_path}: {e}") from e

        if not isinstance(data, dict):
            raise ProfileLoadError(f"Store {self.file_path} must contain a JSON object")
        return data

    def _write_all(self, data: Dict[str, Any]) -> None:
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(
            dir=str(self.file_path.parent), prefix=".store-", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(temp_path, self.file_path)
        except BaseException:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise


class ProfileStore:
    """Loads and saves the PlayerProfile under a single well-known key."""

    PROFILE_KEY = "player"

    def __init__(self, store: JsonKeyValueStore):
        self.store = store
        self.logger = logging.getLogger(__name__)
        self._sequence = 0
        self._written_sequence = 0
        self._sequence_lock = threading.Lock()
        self._write_lock = threading.Lock()
        self.last_save_error: Optional[str] = None

    def load(self) -> PlayerProfile:
        """
        Load the persisted profile.

        Returns:
            The stored profile, or a fresh default profile if nothing is
            stored or the stored document cannot be decoded
        """
        try:
            document = self.store.get(self.PROFILE_KEY)
            if document is None:
                self.logger.info("No saved profile found, starting with defaults")
                return PlayerProfile()
            profile = profile_from_dict(document)
        except ProfileLoadError as e:
            self.logger.error(
                f"Saved profile is corrupt, starting fresh: {e}",
                extra={'event_type': 'profile_load_failed', 'error': str(e)}
            )
            return PlayerProfile()

        self.logger.info(
            f"Loaded profile '{profile.nickname}' with {profile.coins} coins",
            extra={'event_type': 'profile_loaded', 'coins': profile.coins}
        )
        return profile

    def save(self, profile: PlayerProfile) -> bool:
        """
        Persist the profile.

        Args:
            profile: Profile to write

        Returns:
            True on success, False if the write failed (error is logged)
        """
        return self._write_snapshot(self._next_sequence(), profile.to_dict())

    async def save_async(self, profile: PlayerProfile) -> bool:
        """
        Persist the profile on a worker thread.

        The snapshot is taken on the calling thread. An older snapshot that
        finishes after a newer one has been written is discarded.
        """
        sequence = self._next_sequence()
        snapshot = profile.to_dict()
        return await asyncio.to_thread(self._write_snapshot, sequence, snapshot)

    def _next_sequence(self) -> int:
        with self._sequence_lock:
            self._sequence += 1
            return self._sequence

    def _write_snapshot(self, sequence: int, snapshot: Dict[str, Any]) -> bool:
        with self._write_lock:
            if sequence < self._written_sequence:
                self.logger.debug(
                    f"Skipping stale profile snapshot {sequence}",
                    extra={
                        'event_type': 'profile_save_stale',
                        'sequence': sequence,
                        'written_sequence': self._written_sequence
                    }
                )
                return True

            try:
                self.store.set(self.PROFILE_KEY, snapshot)
            except OSError as e:
                self.last_save_error = str(e)
                self.logger.error(
                    f"Failed to save profile, will retry on next save: {e}",
                    extra={'event_type': 'profile_save_failed', 'error': str(e)}
                )
                return False

            self._written_sequence = sequence
            self.last_save_error = None
            return True


def profile_from_dict(document: Any) -> PlayerProfile:
    """
    Decode a persisted profile document.

    Unknown categories and achievement ids are dropped with a warning.

    Raises:
        ProfileLoadError: If required fields are missing or have wrong types
    """
    logger = logging.getLogger(__name__)

    if not isinstance(document, Mapping):
        raise ProfileLoadError("Profile document must be an object")

    nickname = document.get("nickname")
    if not isinstance(nickname, str):
        raise ProfileLoadError("Profile 'nickname' must be a string")

    coins = _non_negative_int(document, "coins")
    completed = _non_negative_int(document, "completed_quiz_count")

    raw_counts = document.get("category_counts", {})
    if not isinstance(raw_counts, Mapping):
        raise ProfileLoadError("Profile 'category_counts' must be an object")

    category_counts = {category: 0 for category in Category}
    for key, value in raw_counts.items():
        try:
            category = Category(key)
        except ValueError:
            logger.warning(f"Dropping unknown category {key!r} from saved profile")
            continue
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            raise ProfileLoadError(f"Category count for {key!r} must be a non-negative integer")
        category_counts[category] = value

    raw_achievements = document.get("achievements", [])
    if not isinstance(raw_achievements, list):
        raise ProfileLoadError("Profile 'achievements' must be an array")

    achievements = []
    seen = set()
    for entry in raw_achievements:
        if not isinstance(entry, Mapping) or not isinstance(entry.get("is_unlocked"), bool):
            raise ProfileLoadError(f"Malformed achievement entry: {entry!r}")
        try:
            achievement_id = AchievementId(entry.get("id"))
        except ValueError:
            logger.warning(f"Dropping unknown achievement {entry.get('id')!r} from saved profile")
            continue
        if achievement_id in seen:
            continue
        seen.add(achievement_id)
        achievements.append(AchievementState(achievement_id, entry["is_unlocked"]))

    return PlayerProfile(
        nickname=nickname,
        coins=coins,
        completed_quiz_count=completed,
        category_counts=category_counts,
        achievements=achievements
    )


def _non_negative_int(document: Mapping, key: str) -> int:
    value = document.get(key)
    if not isinstance(value, int) or isinstance(value, bool) or value < 0:
        raise ProfileLoadError(f"Profile {key!r} must be a non-negative integer")
    return value

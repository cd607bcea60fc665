"""
Sound effect preferences

Settings are an explicit object handed to whatever plays sounds, and they are
persisted through an injected storage backend instead of process-wide state.
"""

import json
import logging
from pathlib import Path
from typing import Dict, Optional, Protocol

from pydantic import BaseModel, ValidationError as PydanticValidationError, field_validator

logger = logging.getLogger(__name__)

SOUND_SETTINGS_KEY = "soundSettings"


class SoundSettings(BaseModel):
    enabled: bool = True
    volume: float = 0.5

    @field_validator("volume")
    @classmethod
    def _clamp_volume(cls, v: float) -> float:
        return max(0.0, min(1.0, v))


class PreferenceStorage(Protocol):
    """Key/value storage for serialized preferences"""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...


class InMemoryPreferenceStorage:
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value


class JsonFilePreferenceStorage:
    """Stores every key in one JSON object on disk"""

    def __init__(self, path):
        self.path = Path(path)

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Could not read preferences from {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")


class SoundPreferences:
    """
    Sound settings bound to a storage backend

    Every change is written back immediately. Missing or unreadable stored
    settings fall back to the defaults (enabled, volume 0.5).
    """

    def __init__(self, storage: PreferenceStorage, key: str = SOUND_SETTINGS_KEY):
        self.storage = storage
        self.key = key
        self.settings = self._load()

    def _load(self) -> SoundSettings:
        raw = self.storage.get(self.key)
        if raw is None:
            return SoundSettings()
        try:
            return SoundSettings.model_validate_json(raw)
        except PydanticValidationError as e:
            logger.warning(f"Ignoring invalid sound settings {raw!r}: {e.error_count()} error(s)")
            return SoundSettings()

    def _save(self) -> None:
        self.storage.set(self.key, self.settings.model_dump_json())

    @property
    def enabled(self) -> bool:
        return self.settings.enabled

    @property
    def volume(self) -> float:
        return self.settings.volume

    def set_enabled(self, enabled: bool) -> None:
        self.settings = SoundSettings(enabled=enabled, volume=self.settings.volume)
        self._save()

    def set_volume(self, volume: float) -> None:
        self.settings = SoundSettings(enabled=self.settings.enabled, volume=volume)
        self._save()

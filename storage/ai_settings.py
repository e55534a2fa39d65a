from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Optional

from pydantic import ValidationError

from app.schemas import AIProvider, AISettings
from models.catalog import default_ai_settings
from settings import get_settings

logger = logging.getLogger(__name__)


def merge_with_defaults(saved: Dict[str, Any], defaults: AISettings) -> AISettings:
    """Overlay a partial saved payload onto ``defaults`` one provider at a time."""
    merged = defaults.model_dump(mode="json")
    if "provider" in saved:
        merged["provider"] = saved["provider"]
    for provider in AIProvider:
        section = saved.get(provider.value)
        if isinstance(section, dict):
            merged[provider.value].update(section)
    return AISettings.model_validate(merged)


class AISettingsStore:
    """Holds the active AI settings and writes them to disk on every change."""

    def __init__(
        self,
        persistence_path: Optional[Path] = None,
        gemini_api_key: Optional[str] = None,
    ) -> None:
        self.persistence_path = persistence_path
        self._gemini_api_key = gemini_api_key
        self._lock = Lock()
        self._settings = self._apply_overrides(self._load_from_disk())

    def get(self) -> AISettings:
        with self._lock:
            return self._settings.model_copy(deep=True)

    def update(self, new_settings: AISettings) -> AISettings:
        with self._lock:
            self._settings = self._apply_overrides(new_settings.model_copy(deep=True))
            self._persist()
            logger.info("AI settings updated", extra={"provider": self._settings.provider})
            return self._settings.model_copy(deep=True)

    def _apply_overrides(self, candidate: AISettings) -> AISettings:
        # The environment key always wins over whatever was stored.
        if self._gemini_api_key:
            candidate.gemini.api_key = self._gemini_api_key
        return candidate

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        self.persistence_path.parent.mkdir(parents=True, exist_ok=True)
        payload = self._settings.model_dump(mode="json")
        self.persistence_path.write_text(json.dumps(payload, indent=2, sort_keys=True))

    def _load_from_disk(self) -> AISettings:
        defaults = default_ai_settings()
        if not self.persistence_path or not self.persistence_path.exists():
            return defaults

        try:
            raw = self.persistence_path.read_text() or "{}"
            data = json.loads(raw)
            if not isinstance(data, dict):
                raise ValueError("settings payload is not an object")
            return merge_with_defaults(data, defaults)
        except (OSError, ValueError, ValidationError) as exc:
            logger.warning(
                "Ignoring unreadable AI settings file",
                extra={"reason": str(exc).splitlines()[0]},
            )
            return defaults


@lru_cache
def build_default_settings_store(path: Optional[str] = None) -> AISettingsStore:
    settings = get_settings()
    store_path = settings.ai_settings_path if path is None else path
    persistence = Path(store_path) if store_path else None
    return AISettingsStore(persistence_path=persistence, gemini_api_key=settings.gemini_api_key)

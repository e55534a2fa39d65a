from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_TICK_SECONDS_ENV = "MONITOR_TICK_SECONDS"
_START_MODE_ENV = "MONITOR_START_MODE"
_AUTOSTART_ENV = "MONITOR_AUTOSTART"
_AI_SETTINGS_PATH_ENV = "AI_SETTINGS_PATH"
_AI_TIMEOUT_ENV = "AI_REQUEST_TIMEOUT"
_GEMINI_KEY_ENV = "GEMINI_API_KEY"
_LOG_LEVEL_ENV = "LOG_LEVEL"

_MODES = {"simulation", "live"}
_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}
_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


@dataclass(frozen=True)
class Settings:
    tick_seconds: float
    start_mode: str
    autostart: bool
    ai_settings_path: Optional[str]
    ai_request_timeout: float
    gemini_api_key: Optional[str]
    log_level: str


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_positive_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip().lower()
    if candidate in _TRUTHY:
        return True
    if candidate in _FALSY:
        return False
    return default


def _read_mode(default: str) -> str:
    value = os.getenv(_START_MODE_ENV)
    if value is None:
        return default
    candidate = value.strip().lower()
    return candidate if candidate in _MODES else default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    candidate = candidate.upper()
    return candidate if candidate in _LOG_LEVELS else default


@lru_cache
def get_settings() -> Settings:
    return Settings(
        tick_seconds=_read_positive_float(_TICK_SECONDS_ENV, 2.0),
        start_mode=_read_mode("simulation"),
        autostart=_read_bool(_AUTOSTART_ENV, True),
        ai_settings_path=_read_optional_env(_AI_SETTINGS_PATH_ENV, "./tmp/ai_settings.json"),
        ai_request_timeout=_read_positive_float(_AI_TIMEOUT_ENV, 60.0),
        gemini_api_key=_read_optional_env(_GEMINI_KEY_ENV, None),
        log_level=_read_log_level("INFO"),
    )

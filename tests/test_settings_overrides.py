from __future__ import annotations

from pathlib import Path
from typing import Iterable

from app.schemas import DataSourceMode
from services.ai_gateway import build_default_gateway
from services.monitor import build_default_monitor
from settings import get_settings
from storage.ai_settings import build_default_settings_store


def _clear_caches(caches: Iterable) -> None:
    for cache in caches:
        cache.cache_clear()


CACHES = (
    get_settings,
    build_default_monitor,
    build_default_gateway,
    build_default_settings_store,
)


def test_environment_overrides_apply(monkeypatch, tmp_path) -> None:
    settings_path = tmp_path / "ai_settings.json"

    monkeypatch.setenv("MONITOR_TICK_SECONDS", "0.5")
    monkeypatch.setenv("MONITOR_START_MODE", "LIVE")
    monkeypatch.setenv("MONITOR_AUTOSTART", "off")
    monkeypatch.setenv("AI_SETTINGS_PATH", str(settings_path))
    monkeypatch.setenv("AI_REQUEST_TIMEOUT", "15")
    monkeypatch.setenv("GEMINI_API_KEY", "env-gemini-key")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    _clear_caches(CACHES)

    try:
        settings = get_settings()
        monitor = build_default_monitor()
        store = build_default_settings_store()

        assert settings.autostart is False
        assert settings.ai_request_timeout == 15.0
        assert settings.log_level == "DEBUG"
        assert monitor.tick_seconds == 0.5
        assert monitor.mode == DataSourceMode.live
        assert store.persistence_path == Path(settings_path)
        assert store.get().gemini.api_key == "env-gemini-key"
    finally:
        _clear_caches(CACHES)


def test_invalid_values_fall_back_to_defaults(monkeypatch) -> None:
    monkeypatch.setenv("MONITOR_TICK_SECONDS", "-3")
    monkeypatch.setenv("MONITOR_START_MODE", "replay")
    monkeypatch.setenv("MONITOR_AUTOSTART", "maybe")
    monkeypatch.setenv("AI_REQUEST_TIMEOUT", "soon")
    monkeypatch.setenv("GEMINI_API_KEY", "   ")
    monkeypatch.setenv("LOG_LEVEL", "chatty")
    get_settings.cache_clear()

    try:
        settings = get_settings()

        assert settings.tick_seconds == 2.0
        assert settings.start_mode == "simulation"
        assert settings.autostart is True
        assert settings.ai_request_timeout == 60.0
        assert settings.gemini_api_key is None
        assert settings.log_level == "INFO"
    finally:
        get_settings.cache_clear()


def test_empty_settings_path_keeps_store_in_memory(monkeypatch) -> None:
    monkeypatch.setenv("AI_SETTINGS_PATH", "")
    _clear_caches(CACHES)

    try:
        assert build_default_settings_store().persistence_path is None
    finally:
        _clear_caches(CACHES)

"""In-process state for settings and the monitor engine.

Routes use this module to reach (and hot-reload) the singleton `MonitorEngine`.
The engine is created lazily and only runs after `/monitor/start`.
"""

from __future__ import annotations

from threading import RLock

from cashguard.api.services.engine import MonitorEngine
from cashguard.core.config.settings import MonitorSettings, load_settings, settings_to_dict

_settings: MonitorSettings | None = None
_engine: MonitorEngine | None = None
_lock = RLock()


def get_settings() -> MonitorSettings:
    global _settings
    with _lock:
        if _settings is None:
            _settings = load_settings()
    return _settings


def reload_settings(data: dict | None = None) -> MonitorSettings:
    """Reload settings (optionally patched) and rebuild the engine.

    A running engine is stopped and restarted with the new settings.
    """

    global _settings, _engine
    with _lock:
        base = settings_to_dict(get_settings())
        _settings = MonitorSettings(**{**base, **(data or {})})
        if _engine is not None:
            was_running = _engine.running
            _engine.close()
            _engine = MonitorEngine(_settings)
            if was_running:
                _engine.start()
    return _settings


def get_engine() -> MonitorEngine:
    """Return the singleton engine, creating it (stopped) if needed."""

    global _engine
    with _lock:
        if _engine is None:
            _engine = MonitorEngine(get_settings())
    return _engine


def stop_engine() -> None:
    """Close and discard the singleton engine (if present)."""

    global _engine
    with _lock:
        if _engine is not None:
            _engine.close()
            _engine = None

"""Load crawler settings from settings.json. Single source of truth for tunables.

The file is located through CRAWLER_SETTINGS_PATH, falling back to
settings.json next to this module (seeded from settings.example.json on first
use). Keys missing from the file are filled in from the example, so an older
settings.json picks up sections added later.
"""

import copy
import json
import os
import threading

_dir = os.path.dirname(__file__)
SETTINGS_PATH = os.path.join(_dir, "settings.json")
_EXAMPLE_PATH = os.path.join(_dir, "settings.example.json")

RATE_LIMIT_KEYS = {"requests_per_minute", "min_delay_ms", "backoff_multiplier", "max_backoff_ms"}

_settings = None
_lock = threading.Lock()


def _with_defaults(data: dict, defaults: dict) -> dict:
    """Recursively fill keys absent from ``data`` with values from ``defaults``."""
    merged = copy.deepcopy(defaults)
    for key, value in data.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _with_defaults(value, merged[key])
        else:
            merged[key] = value
    return merged


def _validate(data: dict) -> None:
    for source, limits in data.get("rate_limits", {}).items():
        if not isinstance(limits, dict) or set(limits) != RATE_LIMIT_KEYS:
            raise ValueError(f"rate_limits.{source} must define exactly {sorted(RATE_LIMIT_KEYS)}")
        for key, value in limits.items():
            if not isinstance(value, (int, float)) or value <= 0:
                raise ValueError(f"rate_limits.{source}.{key} must be a positive number, got {value!r}")
        if limits["backoff_multiplier"] < 1:
            raise ValueError(f"rate_limits.{source}.backoff_multiplier must be at least 1")


def get_settings(path: str | None = None) -> dict:
    """Get the cached settings, loading from disk on first access."""
    global _settings
    with _lock:
        if _settings is None:
            path = path or os.environ.get("CRAWLER_SETTINGS_PATH") or SETTINGS_PATH
            if not os.path.exists(path) and os.path.exists(_EXAMPLE_PATH):
                import shutil
                shutil.copy2(_EXAMPLE_PATH, path)
            with open(path, encoding="utf-8") as f:
                data = json.load(f)

            if os.path.exists(_EXAMPLE_PATH) and os.path.abspath(path) != os.path.abspath(_EXAMPLE_PATH):
                with open(_EXAMPLE_PATH, encoding="utf-8") as f:
                    data = _with_defaults(data, json.load(f))
            _validate(data)
            _settings = data
        return _settings


def reload_settings():
    """Clear the cached settings so the next get_settings() re-reads from disk."""
    global _settings
    with _lock:
        _settings = None

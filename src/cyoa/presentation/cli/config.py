"""CLI configuration helpers for options persistence."""
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict

_DEFAULTS: Dict[str, Any] = {"stories_path": None, "show_locked_choices": True}


def get_user_data_dir() -> Path:
    """Return the per-user data directory; ``CYOA_HOME`` overrides it."""
    override = os.environ.get("CYOA_HOME")
    if override:
        return Path(override)
    if os.name == "nt":
        base = os.environ.get("APPDATA")
        if base:
            return Path(base) / "CyoaEngine"
        return Path.home() / "CyoaEngine"
    return Path.home() / ".config" / "cyoa_engine"


def get_default_config_path() -> Path:
    """Return the default per-user config path."""
    return get_user_data_dir() / "config.json"


def get_save_dir() -> Path:
    """Return the per-user save directory."""
    return get_user_data_dir() / "saves"


def _normalize(raw: Dict[str, Any]) -> Dict[str, Any]:
    stories_path = raw.get("stories_path")
    show_locked = raw.get("show_locked_choices")
    return {
        "stories_path": stories_path if isinstance(stories_path, str) and stories_path else None,
        "show_locked_choices": show_locked if isinstance(show_locked, bool) else _DEFAULTS["show_locked_choices"],
    }


def load_config(path: Path | None = None) -> Dict[str, Any]:
    """Load config from disk or return defaults."""
    config_path = path or get_default_config_path()
    try:
        raw = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return dict(_DEFAULTS)
    if not isinstance(raw, dict):
        return dict(_DEFAULTS)
    return _normalize(raw)


def save_config(config: Dict[str, Any], path: Path | None = None) -> None:
    """Persist config to disk."""
    config_path = path or get_default_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(json.dumps(_normalize(config), indent=2, sort_keys=True), encoding="utf-8")

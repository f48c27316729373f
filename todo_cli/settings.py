"""Per-user settings read from an optional YAML file.

Example ``~/.todo_cli.yml``::

    log_level: INFO
    ui_host: 127.0.0.1
    ui_port: 8080
    style:
      status.done: "#87ff5f"
      cursor: "bold #ffffff bg:#303030"
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Dict, Optional

import yaml

DEFAULT_SETTINGS_PATH = os.path.expanduser("~/.todo_cli.yml")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

logger = logging.getLogger('todo_cli')


@dataclass
class UserSettings:
    log_level: Optional[str] = None
    ui_host: str = "127.0.0.1"
    ui_port: int = 8080
    style: Dict[str, str] = field(default_factory=dict)


def load_settings(path: Optional[str] = None) -> UserSettings:
    """Read settings from ``path``; a missing file means defaults."""
    path = path or DEFAULT_SETTINGS_PATH
    if not os.path.isfile(path):
        return UserSettings()
    with open(path, "r", encoding="utf-8") as f:
        try:
            raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Settings: cannot parse {path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ValueError(f"Settings: {path} must contain a mapping.")

    settings = UserSettings()
    level = raw.get("log_level")
    if level is not None:
        level = str(level).upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"Settings: 'log_level' must be one of {', '.join(LOG_LEVELS)}.")
        settings.log_level = level
    if raw.get("ui_host"):
        settings.ui_host = str(raw["ui_host"])
    if raw.get("ui_port") is not None:
        try:
            settings.ui_port = int(raw["ui_port"])
        except (TypeError, ValueError):
            raise ValueError("Settings: 'ui_port' must be an integer.") from None
    style = raw.get("style") or {}
    if not isinstance(style, dict):
        raise ValueError("Settings: 'style' must map style classes to style strings.")
    settings.style = {str(k): str(v) for k, v in style.items()}
    logger.debug("Loaded settings from %s", path)
    return settings

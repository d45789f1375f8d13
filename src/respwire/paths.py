"""Common path utilities for respwire."""

from __future__ import annotations

import os
from pathlib import Path


def get_respwire_home() -> Path:
    """Return the base respwire directory, honoring RESPWIRE_HOME if set."""

    env_path = os.environ.get("RESPWIRE_HOME")
    return Path(env_path).expanduser() if env_path else Path.home() / ".respwire"


def default_config_path() -> Path:
    return get_respwire_home() / "config.toml"


__all__ = ["default_config_path", "get_respwire_home"]

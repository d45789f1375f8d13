"""Configuration models and enums for respwire.

Settings are layered: CLI overrides, then environment, then ``config.toml``,
then defaults.
"""

from __future__ import annotations

import os
import stat
import tomllib
from collections.abc import Mapping
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

from respwire.paths import default_config_path


class LogLevel(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class ReasoningEffort(str, Enum):
    NONE = "none"
    MINIMAL = "minimal"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Verbosity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


DEFAULT_MODEL = "gpt-5-mini"
DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MAX_BUFFER_BYTES = 4 * 1024 * 1024
EXPECTED_FILE_MODE = stat.S_IRUSR | stat.S_IWUSR  # 0o600


class Settings(BaseModel):
    """Resolved respwire settings."""

    model_config = ConfigDict(frozen=True, validate_default=True, extra="forbid")

    api_key: str | None = None
    base_url: str = DEFAULT_BASE_URL
    organization: str | None = None
    model: str = DEFAULT_MODEL
    reasoning_effort: ReasoningEffort | None = None
    verbosity: Verbosity | None = None
    verify_done_text: bool = False
    skip_invalid_frames: bool = False
    max_buffer_bytes: int = DEFAULT_MAX_BUFFER_BYTES
    record_frames: bool = False
    log_level: LogLevel = LogLevel.INFO

    @field_validator("api_key", "organization")
    @classmethod
    def _strip_optional(cls, value: str | None) -> str | None:
        if value is None:
            return None
        stripped = value.strip()
        return stripped if stripped else None

    @field_validator("model")
    @classmethod
    def _validate_model(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("model cannot be empty")
        return value.strip()

    @field_validator("base_url")
    @classmethod
    def _validate_base_url(cls, value: str) -> str:
        value = value.strip().rstrip("/")
        if not value.startswith(("http://", "https://")):
            raise ValueError("base_url must be an http(s) URL")
        return value

    @field_validator("max_buffer_bytes")
    @classmethod
    def _validate_buffer(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("max_buffer_bytes must be positive")
        return value


def load_settings(
    cli_overrides: Mapping[str, Any] | None = None,
    env: Mapping[str, str] | None = None,
    config_path: Path | str | None = None,
    *,
    create_if_missing: bool = False,
) -> Settings:
    env = os.environ if env is None else env
    cli_overrides = cli_overrides or {}
    path = Path(config_path) if config_path else default_config_path()

    if not path.exists() and create_if_missing:
        write_config(Settings(), path)

    config_data: dict[str, Any] = {}
    if path.exists():
        _ensure_permissions(path)
        config_data = _read_toml(path)

    defaults = Settings()

    def pick(key: str, section: str, config_key: str | None = None, env_key: str | None = None) -> Any:
        return _first_value(
            _clean_str(cli_overrides.get(key)),
            _clean_str(env.get(env_key)) if env_key else None,
            _clean_str(_get_config_value(config_data, section, config_key or key)),
            getattr(defaults, key),
        )

    return Settings(
        api_key=pick("api_key", "auth", env_key="OPENAI_API_KEY"),
        organization=pick("organization", "auth", env_key="OPENAI_ORG_ID"),
        base_url=pick("base_url", "api", env_key="OPENAI_BASE_URL"),
        model=pick("model", "model", "id"),
        reasoning_effort=_coerce_enum(pick("reasoning_effort", "model"), ReasoningEffort, None),
        verbosity=_coerce_enum(pick("verbosity", "model"), Verbosity, None),
        verify_done_text=pick("verify_done_text", "stream"),
        skip_invalid_frames=pick("skip_invalid_frames", "stream"),
        max_buffer_bytes=pick("max_buffer_bytes", "stream"),
        record_frames=pick("record_frames", "stream"),
        log_level=_coerce_enum(pick("log_level", "logging"), LogLevel, LogLevel.INFO),
    )


def write_config(settings: Settings, config_path: Path | str | None = None) -> Path:
    path = Path(config_path) if config_path else default_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    sections: list[str] = []
    _append_section(sections, "auth", {"api_key": settings.api_key, "organization": settings.organization})
    _append_section(sections, "api", {"base_url": settings.base_url})
    _append_section(
        sections,
        "model",
        {"id": settings.model, "reasoning_effort": settings.reasoning_effort, "verbosity": settings.verbosity},
    )
    _append_section(
        sections,
        "stream",
        {
            "verify_done_text": settings.verify_done_text,
            "skip_invalid_frames": settings.skip_invalid_frames,
            "max_buffer_bytes": settings.max_buffer_bytes,
            "record_frames": settings.record_frames,
        },
    )
    _append_section(sections, "logging", {"log_level": settings.log_level})

    content = "\n\n".join(filter(None, sections)) + "\n"
    path.write_text(content, encoding="utf-8")
    path.chmod(EXPECTED_FILE_MODE)
    return path


def _ensure_permissions(path: Path) -> None:
    current_mode = stat.S_IMODE(path.stat().st_mode)
    if current_mode != EXPECTED_FILE_MODE:
        path.chmod(EXPECTED_FILE_MODE)


def _read_toml(path: Path) -> dict[str, Any]:
    with path.open("rb") as handle:
        return tomllib.load(handle)


def _get_config_value(config: Mapping[str, Any], section: str, key: str) -> Any:
    section_data = config.get(section)
    if not isinstance(section_data, dict):
        return None
    return section_data.get(key)


def _clean_str(value: Any) -> Any:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped if stripped else None
    return value


def _first_value(*candidates: Any) -> Any:
    for candidate in candidates:
        if candidate is not None:
            return candidate
    return None


def _coerce_enum(value: Any, enum_cls: type[Enum], default: Enum | None = None) -> Any:
    if value is None:
        return default
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        try:
            return enum_cls(value)
        except ValueError:
            return default
    return default


def _render_value(value: Any) -> str:
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        escaped = value.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return str(value)


def _append_section(parts: list[str], name: str, values: Mapping[str, Any]) -> None:
    filtered = {k: v for k, v in values.items() if v is not None}
    if not filtered:
        return
    lines = [f"[{name}]"]
    for key, val in filtered.items():
        lines.append(f"{key} = {_render_value(val)}")
    parts.append("\n".join(lines))


__all__ = [
    "DEFAULT_BASE_URL",
    "DEFAULT_MAX_BUFFER_BYTES",
    "DEFAULT_MODEL",
    "LogLevel",
    "ReasoningEffort",
    "Settings",
    "Verbosity",
    "load_settings",
    "write_config",
]

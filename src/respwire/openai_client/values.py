"""Opaque JSON values for event fields whose shape is not modeled.

Fields typed as :data:`OpaqueValue` accept any JSON tree and are kept verbatim.
Absent opaque fields decode as an empty object so callers can always inspect
them without ``None`` checks.
"""

from __future__ import annotations

from typing import Any, TypeAlias

from pydantic import Field, JsonValue

OpaqueValue: TypeAlias = JsonValue


def empty_opaque() -> Any:
    """Return the value used when an opaque field is missing from the wire."""

    return Field(default_factory=dict)


def is_empty(value: OpaqueValue) -> bool:
    return value is None or value == {} or value == [] or value == ""


def text_fragment(value: OpaqueValue) -> str | None:
    """Best-effort text extraction from an opaque delta.

    Strings are returned as-is; objects contribute their ``text`` or ``delta``
    member when it is a string. Anything else yields ``None``.
    """

    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        for key in ("text", "delta"):
            candidate = value.get(key)
            if isinstance(candidate, str):
                return candidate
    return None


__all__ = ["OpaqueValue", "empty_opaque", "is_empty", "text_fragment"]

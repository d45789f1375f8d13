"""Decode raw SSE frames into typed Responses stream events."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Iterable, Mapping
from typing import Any, cast

from pydantic import ValidationError

from respwire.openai_client.events import EVENT_TYPES, ResponseStreamEvent
from respwire.openai_client.types import (
    DecodeError,
    InvalidFieldError,
    MalformedFrameError,
    MissingDiscriminatorError,
    MissingRequiredFieldError,
    UnknownEventTypeError,
)

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"
_IGNORED_FIELDS = ("event:", "id:", "retry:")


def _iter_lines(chunk: str) -> Iterable[str]:
    """Split an SSE chunk into individual lines."""

    for line in chunk.splitlines():
        if line:
            yield line


def frame_payload(line: str) -> str | None:
    """Return the data carried by one SSE line, or ``None`` for non-data lines."""

    stripped = line.strip()
    if not stripped or stripped.startswith(":"):
        return None
    if stripped.startswith(_IGNORED_FIELDS):
        return None
    if stripped.startswith("data:"):
        return stripped[len("data:") :].strip()
    return stripped


def decode(raw: str | bytes | Mapping[str, Any]) -> ResponseStreamEvent:
    """Decode one wire frame into exactly one event.

    Raises a :class:`DecodeError` subclass when the frame is not JSON, has no
    discriminator, names an unknown event, or fails validation. Unknown tags
    are never dropped silently.
    """

    text: str | None = None
    if isinstance(raw, Mapping):
        payload: Any = raw
    else:
        if isinstance(raw, (bytes | bytearray)):
            try:
                text = bytes(raw).decode("utf-8")
            except UnicodeDecodeError as exc:
                raise MalformedFrameError("frame is not valid UTF-8", raw=repr(raw)) from exc
        else:
            text = raw
        content = frame_payload(text)
        if not content:
            raise MalformedFrameError("frame carries no data", raw=text)
        try:
            payload = json.loads(content)
        except json.JSONDecodeError as exc:
            raise MalformedFrameError(f"invalid JSON frame: {content}", raw=text) from exc

    if not isinstance(payload, Mapping):
        raise MalformedFrameError("frame is not a JSON object", raw=text)

    tag = payload.get("type")
    if not isinstance(tag, str):
        raise MissingDiscriminatorError(raw=text)

    model = EVENT_TYPES.get(tag)
    if model is None:
        raise UnknownEventTypeError(tag, raw=text)

    try:
        event = model.model_validate(payload)
    except ValidationError as exc:
        raise _classify_validation_error(tag, exc, text) from exc
    return cast(ResponseStreamEvent, event)


def _classify_validation_error(tag: str, exc: ValidationError, raw: str | None) -> DecodeError:
    errors = exc.errors(include_url=False)
    for error in errors:
        if error["type"] == "missing":
            return MissingRequiredFieldError(tag, _loc(error["loc"]), raw=raw)
    first = errors[0]
    return InvalidFieldError(tag, _loc(first["loc"]), first["msg"], raw=raw)


def _loc(loc: tuple[int | str, ...]) -> str:
    return ".".join(str(part) for part in loc) or "<root>"


async def decode_stream(chunks: AsyncIterator[str | bytes]) -> AsyncIterator[ResponseStreamEvent | DecodeError]:
    """Decode SSE chunks frame by frame.

    Failures are yielded in place of the event they replace, so one bad frame
    never hides the frames after it. ``[DONE]`` ends the stream.
    """

    async for raw in chunks:
        if isinstance(raw, (bytes | bytearray)):
            try:
                text = bytes(raw).decode("utf-8")
            except UnicodeDecodeError as exc:
                error = MalformedFrameError("frame is not valid UTF-8", raw=repr(raw))
                error.__cause__ = exc
                yield error
                continue
        else:
            text = raw
        for line in _iter_lines(text):
            content = frame_payload(line)
            if content is None:
                continue
            if content == DONE_SENTINEL:
                return
            try:
                yield decode(content)
            except DecodeError as exc:
                exc.raw = line
                yield exc


async def parse_stream(
    chunks: AsyncIterator[str | bytes], *, skip_invalid: bool = False
) -> AsyncIterator[ResponseStreamEvent]:
    """Parse SSE-style chunks into events.

    With ``skip_invalid`` undecodable frames are logged and dropped; otherwise
    the first one is raised.
    """

    async for item in decode_stream(chunks):
        if isinstance(item, DecodeError):
            if not skip_invalid:
                raise item
            logger.warning("skipping undecodable frame (tag=%s): %s", item.tag, item)
            continue
        yield item


__all__ = ["DONE_SENTINEL", "decode", "decode_stream", "frame_payload", "parse_stream"]

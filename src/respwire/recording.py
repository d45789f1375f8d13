"""Frame recordings: JSONL persistence of raw stream frames and offline replay."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import AsyncIterator, Iterable, Iterator, Mapping
from datetime import UTC, datetime
from pathlib import Path
from types import TracebackType
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict

from respwire.openai_client.aggregator import ResponseAggregator
from respwire.openai_client.parsing import DONE_SENTINEL, decode, frame_payload
from respwire.openai_client.transport import ResponsesTransport
from respwire.openai_client.types import DecodeError
from respwire.paths import get_respwire_home

logger = logging.getLogger(__name__)

FRAMES_FILE = "frames.jsonl"


class FrameRecord(BaseModel):
    """One raw frame as it came off the wire."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    timestamp: datetime
    index: int
    raw: str


def generate_recording_id(now: datetime | None = None) -> str:
    """Return a recording id in the form YYYYMMDDHHMM-uuid4."""

    instant = now or datetime.now(UTC)
    return f"{instant.strftime('%Y%m%d%H%M')}-{uuid4()}"


class JsonlFrameWriter:
    """Append-only JSONL writer for raw frames."""

    def __init__(self, path: Path | str, *, fsync_every: int | None = None) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._file = self.path.open("a", encoding="utf-8")
        self._closed = False
        self._fsync_every = fsync_every
        self._since_fsync = 0
        self._next_index = 0

    def append(self, record: FrameRecord) -> None:
        self._ensure_open()
        line = json.dumps(record.model_dump(mode="json"), ensure_ascii=False)
        self._file.write(line + "\n")
        self._file.flush()
        self._next_index = record.index + 1
        if self._fsync_every is not None:
            self._since_fsync += 1
            if self._since_fsync >= self._fsync_every:
                os.fsync(self._file.fileno())
                self._since_fsync = 0

    def write_frame(self, raw: str | bytes) -> FrameRecord:
        text = raw.decode("utf-8", errors="replace") if isinstance(raw, (bytes | bytearray)) else raw
        record = FrameRecord(timestamp=datetime.now(UTC), index=self._next_index, raw=text)
        self.append(record)
        return record

    def close(self) -> None:
        if self._closed:
            return
        self._file.flush()
        os.fsync(self._file.fileno())
        self._file.close()
        self._closed = True

    def _ensure_open(self) -> None:
        if self._closed or self._file.closed:
            self._file = self.path.open("a", encoding="utf-8")
            self._closed = False

    def __enter__(self) -> JsonlFrameWriter:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


def iter_frames(path: Path | str) -> Iterator[FrameRecord]:
    """Yield frame records from a JSONL file.

    Blank lines are skipped; malformed lines raise ``ValidationError``.
    """

    with Path(path).open("r", encoding="utf-8") as handle:
        for line in handle:
            stripped = line.strip()
            if not stripped:
                continue
            yield FrameRecord.model_validate_json(stripped)


def recording_dir(recording_id: str, base_dir: Path | None = None) -> Path:
    base = base_dir or (get_respwire_home() / "recordings")
    return base / recording_id


def recording_path(recording_id: str, base_dir: Path | None = None) -> Path:
    """Return the frames JSONL path for a recording inside its dedicated folder."""

    return recording_dir(recording_id, base_dir) / FRAMES_FILE


class RecordingInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    recording_id: str
    path: Path
    modified_at: datetime
    size_bytes: int


def list_recordings(base_dir: Path | None = None) -> list[RecordingInfo]:
    root = base_dir or (get_respwire_home() / "recordings")
    if not root.exists():
        return []

    entries: list[RecordingInfo] = []
    for directory in root.iterdir():
        if not directory.is_dir():
            continue
        path = directory / FRAMES_FILE
        if not path.exists():
            continue
        stat_result = path.stat()
        entries.append(
            RecordingInfo(
                recording_id=directory.name,
                path=path,
                modified_at=datetime.fromtimestamp(stat_result.st_mtime, tz=UTC),
                size_bytes=stat_result.st_size,
            )
        )

    # Most recent first
    entries.sort(key=lambda e: e.modified_at, reverse=True)
    return entries


def delete_recording(recording_id: str, base_dir: Path | None = None) -> bool:
    directory = recording_dir(recording_id, base_dir)
    if not directory.exists():
        return False
    for item in directory.iterdir():
        if item.is_file():
            item.unlink()
    try:
        directory.rmdir()
    except OSError:
        logger.warning("recording directory %s not empty; left in place", directory)
        return False
    return True


class RecordingTransport:
    """Transport wrapper that writes every raw frame to a recording."""

    def __init__(self, inner: ResponsesTransport, writer: JsonlFrameWriter) -> None:
        self._inner = inner
        self._writer = writer

    async def stream_response(self, payload: Mapping[str, Any]) -> AsyncIterator[str | bytes]:
        async for chunk in self._inner.stream_response(payload):
            self._writer.write_frame(chunk)
            yield chunk


def replay_frames(
    frames: Iterable[FrameRecord | str], aggregator: ResponseAggregator | None = None
) -> ResponseAggregator:
    """Decode and aggregate a recorded stream offline.

    Undecodable frames are rejected into the aggregator's diagnostics; the
    ``[DONE]`` sentinel ends the replay.
    """

    aggregator = aggregator or ResponseAggregator()
    for frame in frames:
        raw = frame.raw if isinstance(frame, FrameRecord) else frame
        for line in raw.splitlines():
            content = frame_payload(line)
            if content is None:
                continue
            if content == DONE_SENTINEL:
                return aggregator
            try:
                event = decode(content)
            except DecodeError as exc:
                exc.raw = line
                aggregator.reject(exc)
                continue
            aggregator.apply(event)
    return aggregator


__all__ = [
    "FRAMES_FILE",
    "FrameRecord",
    "JsonlFrameWriter",
    "RecordingInfo",
    "RecordingTransport",
    "delete_recording",
    "generate_recording_id",
    "iter_frames",
    "list_recordings",
    "recording_dir",
    "recording_path",
    "replay_frames",
]

import json
from datetime import UTC, datetime
from pathlib import Path

import pytest
from pydantic import ValidationError

from respwire.openai_client.aggregator import DecodeFailure, ResponseState
from respwire.openai_client.transport import MockResponsesTransport
from respwire.recording import (
    FRAMES_FILE,
    FrameRecord,
    JsonlFrameWriter,
    RecordingTransport,
    delete_recording,
    generate_recording_id,
    iter_frames,
    list_recordings,
    recording_dir,
    recording_path,
    replay_frames,
)


def test_generate_recording_id_format() -> None:
    recording_id = generate_recording_id(datetime(2024, 5, 6, 7, 8, tzinfo=UTC))

    prefix, _, suffix = recording_id.partition("-")
    assert prefix == "202405060708"
    assert len(suffix) == 36


def test_recording_paths_default_to_home(_isolate_respwire_home: Path) -> None:
    assert recording_dir("abc") == _isolate_respwire_home / "recordings" / "abc"
    assert recording_path("abc", Path("/base")) == Path("/base") / "abc" / FRAMES_FILE


def test_writer_appends_and_iter_frames_reads(tmp_path: Path) -> None:
    path = tmp_path / "rec" / FRAMES_FILE

    with JsonlFrameWriter(path, fsync_every=1) as writer:
        first = writer.write_frame("data: one")
        second = writer.write_frame(b"data: two")

    assert (first.index, second.index) == (0, 1)
    records = list(iter_frames(path))
    assert [r.raw for r in records] == ["data: one", "data: two"]
    assert all(isinstance(r, FrameRecord) for r in records)


def test_writer_reopens_after_close(tmp_path: Path) -> None:
    path = tmp_path / FRAMES_FILE
    writer = JsonlFrameWriter(path)
    writer.write_frame("a")
    writer.close()
    writer.close()

    writer.write_frame("b")
    writer.close()

    assert [r.index for r in iter_frames(path)] == [0, 1]


def test_iter_frames_skips_blank_and_rejects_malformed(tmp_path: Path) -> None:
    path = tmp_path / FRAMES_FILE
    record = {"timestamp": "2024-01-01T00:00:00Z", "index": 0, "raw": "x"}
    path.write_text(json.dumps(record) + "\n\n", encoding="utf-8")
    assert len(list(iter_frames(path))) == 1

    path.write_text("{not json}\n", encoding="utf-8")
    with pytest.raises(ValidationError):
        list(iter_frames(path))


def test_list_and_delete_recordings(tmp_path: Path) -> None:
    for recording_id in ("old", "new"):
        with JsonlFrameWriter(recording_path(recording_id, tmp_path)) as writer:
            writer.write_frame("data: [DONE]")
    (tmp_path / "stray.txt").write_text("x", encoding="utf-8")
    (tmp_path / "empty").mkdir()

    infos = list_recordings(tmp_path)

    assert {info.recording_id for info in infos} == {"old", "new"}
    assert all(info.size_bytes > 0 for info in infos)
    assert delete_recording("old", tmp_path) is True
    assert delete_recording("old", tmp_path) is False
    assert [info.recording_id for info in list_recordings(tmp_path)] == ["new"]


def test_list_recordings_missing_root(tmp_path: Path) -> None:
    assert list_recordings(tmp_path / "nope") == []


@pytest.mark.asyncio
async def test_recording_transport_writes_each_chunk(tmp_path: Path, sse_frame, text_stream_payloads) -> None:
    chunks = [sse_frame(p) for p in text_stream_payloads()]
    path = tmp_path / FRAMES_FILE
    writer = JsonlFrameWriter(path)
    transport = RecordingTransport(MockResponsesTransport(chunks), writer)

    passed = [chunk async for chunk in transport.stream_response({"model": "m"})]
    writer.close()

    assert passed == chunks
    assert [r.raw for r in iter_frames(path)] == chunks


def test_replay_frames_rebuilds_response(sse_frame, text_stream_payloads) -> None:
    frames = [sse_frame(p) for p in text_stream_payloads()]

    aggregator = replay_frames(frames)

    aggregate = aggregator.latest
    assert aggregate is not None
    assert aggregate.state is ResponseState.COMPLETED
    assert aggregate.output_text() == "Hello!"
    assert aggregator.diagnostics == []


def test_replay_frames_rejects_bad_frames_and_stops_at_done(sse_frame, text_stream_payloads) -> None:
    payloads = text_stream_payloads()
    frames = [sse_frame(p) for p in payloads[:2]]
    frames.append("data: {broken\n")
    frames.append("data: [DONE]\n")
    frames.append(sse_frame(payloads[-1]))

    aggregator = replay_frames(
        FrameRecord(timestamp=datetime.now(UTC), index=i, raw=raw) for i, raw in enumerate(frames)
    )

    failures = [d for d in aggregator.diagnostics if isinstance(d, DecodeFailure)]
    assert len(failures) == 1
    assert failures[0].error.raw == "data: {broken"
    assert aggregator.latest is not None
    assert aggregator.latest.state is ResponseState.IN_PROGRESS

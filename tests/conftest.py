import json
import pathlib
import sys
from collections.abc import AsyncIterator, Mapping
from typing import Any

import httpx
import pytest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"

# Ensure src/ is importable when running tests without installing the package.
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))


@pytest.fixture(autouse=True)
def _isolate_respwire_home(monkeypatch: pytest.MonkeyPatch, tmp_path: pathlib.Path):
    """Point RESPWIRE_HOME at a per-test sandbox so we never touch the real FS."""

    home = tmp_path / "respwire-home"
    home.mkdir(parents=True, exist_ok=True)
    monkeypatch.setenv("RESPWIRE_HOME", str(home))
    for key in ("OPENAI_API_KEY", "OPENAI_BASE_URL", "OPENAI_ORG_ID"):
        monkeypatch.delenv(key, raising=False)
    yield home


# ============================================================================
# Frame builders
# ============================================================================


def sse(payload: Mapping[str, Any]) -> str:
    return f"data: {json.dumps(payload)}\n"


def response_payload(
    response_id: str = "resp_1", status: str = "in_progress", output: list[dict[str, Any]] | None = None
) -> dict[str, Any]:
    return {
        "id": response_id,
        "object": "response",
        "created_at": 1700000000,
        "status": status,
        "model": "gpt-5-mini",
        "output": output or [],
    }


def message_item(item_id: str = "msg_1", text: str | None = None, status: str = "in_progress") -> dict[str, Any]:
    content = [] if text is None else [{"type": "output_text", "text": text, "annotations": []}]
    return {"id": item_id, "type": "message", "status": status, "role": "assistant", "content": content}


def text_stream(
    deltas: tuple[str, ...] = ("Hel", "lo", "!"),
    *,
    final: str | None = None,
    response_id: str = "resp_1",
    item_id: str = "msg_1",
) -> list[dict[str, Any]]:
    """Canonical single-message stream with sequence numbers starting at 0."""

    text = final if final is not None else "".join(deltas)
    scope = {"item_id": item_id, "output_index": 0, "content_index": 0}
    payloads: list[dict[str, Any]] = [
        {"type": "response.created", "response": response_payload(response_id, "in_progress")},
        {"type": "response.in_progress", "response": response_payload(response_id, "in_progress")},
        {"type": "response.output_item.added", "output_index": 0, "item": message_item(item_id)},
        {"type": "response.content_part.added", **scope, "part": {"type": "output_text", "text": ""}},
    ]
    payloads += [{"type": "response.output_text.delta", **scope, "delta": delta} for delta in deltas]
    payloads += [
        {"type": "response.output_text.done", **scope, "text": text},
        {"type": "response.content_part.done", **scope, "part": {"type": "output_text", "text": text}},
        {"type": "response.output_item.done", "output_index": 0, "item": message_item(item_id, text, "completed")},
        {
            "type": "response.completed",
            "response": response_payload(response_id, "completed", [message_item(item_id, text, "completed")]),
        },
    ]
    for index, payload in enumerate(payloads):
        payload["sequence_number"] = index
    return payloads


@pytest.fixture
def sse_frame():
    """Factory fixture rendering a payload as one SSE ``data:`` line."""

    return sse


@pytest.fixture
def response_snapshot():
    """Factory fixture for response snapshot payloads."""

    return response_payload


@pytest.fixture
def message_output_item():
    """Factory fixture for assistant message output items."""

    return message_item


@pytest.fixture
def text_stream_payloads():
    """Factory fixture for a complete text-only event stream."""

    return text_stream


# ============================================================================
# Transport fixtures
# ============================================================================


class SequenceTransport:
    """Yield predefined chunk sequences per stream_response call."""

    def __init__(self, sequences):
        self.sequences = list(sequences)

    async def stream_response(self, payload):  # type: ignore[override]
        if not self.sequences:
            raise RuntimeError("no more streams")
        stream = self.sequences.pop(0)

        async def gen():
            for chunk in stream:
                yield chunk

        return gen()


class CapturingTransport:
    """Transport that captures the last payload and yields predefined chunks."""

    def __init__(self, chunks: list[str]) -> None:
        self.chunks = chunks
        self.last_payload: Mapping[str, Any] | None = None

    async def stream_response(self, payload: Mapping[str, Any]) -> AsyncIterator[str]:
        self.last_payload = payload
        for chunk in self.chunks:
            yield chunk


class FailingTransport:
    """Transport that yields some chunks and then raises."""

    def __init__(self, chunks: list[str], error: BaseException) -> None:
        self.chunks = chunks
        self.error = error

    async def stream_response(self, payload: Mapping[str, Any]) -> AsyncIterator[str]:
        for chunk in self.chunks:
            yield chunk
        raise self.error


@pytest.fixture
def sequence_transport():
    """Factory fixture for SequenceTransport that yields predefined chunk sequences."""
    return SequenceTransport


@pytest.fixture
def capturing_transport():
    """Factory fixture for CapturingTransport that captures payloads and yields chunks."""
    return CapturingTransport


@pytest.fixture
def failing_transport():
    """Factory fixture for FailingTransport."""
    return FailingTransport


@pytest.fixture
def mock_http_handler():
    """Factory fixture for creating httpx request handlers with custom responses."""

    def _handler(
        status_code: int = 200,
        text: str = "",
        headers: dict[str, str] | None = None,
        record_request: dict[str, Any] | None = None,
    ):
        def handler(request: httpx.Request) -> httpx.Response:
            if record_request is not None:
                record_request["headers"] = dict(request.headers)
                record_request["url"] = str(request.url)
                record_request["json"] = json.loads(request.content or b"null")
            return httpx.Response(status_code, text=text, headers=headers or {}, request=request)

        return handler

    return _handler


@pytest.fixture
def mock_http_client(mock_http_handler):
    """Fixture factory that provides an httpx.AsyncClient with MockTransport."""

    def _client(handler=None):
        if handler is None:
            handler = mock_http_handler()
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return _client


@pytest.fixture
def conversation_request_factory():
    """Factory fixture for a minimal single-message ConversationRequest."""

    from respwire.openai_client.types import ConversationRequest, Message, MessageRole

    def _factory(content: str = "hi", model: str | None = "gpt-5-mini", **kwargs: Any) -> ConversationRequest:
        return ConversationRequest(messages=[Message(role=MessageRole.USER, content=content)], model=model, **kwargs)

    return _factory

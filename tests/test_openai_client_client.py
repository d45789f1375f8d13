import httpx
import pytest

from respwire.config import ReasoningEffort, Verbosity
from respwire.openai_client.aggregator import AggregationKind, DecodeFailure, ResponseAggregator, ResponseState
from respwire.openai_client.client import OpenAIResponsesClient, _map_status_error
from respwire.openai_client.events import OutputTextDeltaEvent, ResponseCompletedEvent
from respwire.openai_client.transport import MockResponsesTransport
from respwire.openai_client.types import (
    ApiAuthError,
    ApiClientError,
    ApiError,
    ApiRateLimitError,
    ApiServerError,
    ApiTimeoutError,
    ConversationRequest,
    Message,
    MessageRole,
    StreamFailure,
    StreamingParseError,
    TextFormat,
    TextFormatType,
    ToolDefinition,
    UnknownEventTypeError,
    UpstreamError,
)


def frames(sse_frame, payloads):
    return [sse_frame(payload) for payload in payloads] + ["data: [DONE]\n"]


@pytest.mark.asyncio
async def test_builds_payload_and_streams_events(capturing_transport, sse_frame, text_stream_payloads) -> None:
    transport = capturing_transport(chunks=frames(sse_frame, text_stream_payloads(("he", "llo"))))
    client = OpenAIResponsesClient(transport)

    request = ConversationRequest(
        messages=[
            Message(role=MessageRole.DEVELOPER, content="be brief"),
            Message(role=MessageRole.USER, content="hi"),
        ],
        model="gpt-5-mini",
        instructions="You are terse.",
        reasoning_effort=ReasoningEffort.LOW,
        verbosity=Verbosity.HIGH,
        tools=[ToolDefinition(name="list_dir", description="List", parameters={"type": "object", "properties": {}})],
        max_output_tokens=128,
        metadata={"trace": "abc"},
        previous_response_id="resp_0",
    )

    events = [event async for event in client.submit(request)]

    payload = transport.last_payload
    assert payload is not None
    assert payload["model"] == "gpt-5-mini"
    assert payload["stream"] is True
    assert payload["input"] == [
        {"role": "developer", "content": "be brief"},
        {"role": "user", "content": "hi"},
    ]
    assert payload["instructions"] == "You are terse."
    assert payload["tools"][0]["name"] == "list_dir"
    assert payload["tools"][0]["type"] == "function"
    assert payload["reasoning"] == {"effort": "low"}
    assert payload["text"] == {"verbosity": "high"}
    assert payload["max_output_tokens"] == 128
    assert payload["metadata"] == {"trace": "abc"}
    assert payload["previous_response_id"] == "resp_0"
    assert len(events) == 10
    assert isinstance(events[4], OutputTextDeltaEvent)
    assert isinstance(events[-1], ResponseCompletedEvent)


def test_payload_text_format(conversation_request_factory) -> None:
    client = OpenAIResponsesClient(MockResponsesTransport([]))
    schema = {"type": "object", "properties": {"answer": {"type": "string"}}}
    request = conversation_request_factory(
        verbosity=Verbosity.LOW,
        text_format=TextFormat(type=TextFormatType.JSON_SCHEMA, name="answer", schema=schema, strict=True),
    )

    payload = client._build_payload(request)

    assert payload["text"] == {
        "verbosity": "low",
        "format": {"type": "json_schema", "name": "answer", "schema": schema, "strict": True},
    }


def test_defaults_applied_when_missing(conversation_request_factory) -> None:
    client = OpenAIResponsesClient(
        MockResponsesTransport([]),
        default_model="gpt-5",
        default_reasoning_effort="medium",
        default_verbosity="low",
    )

    payload = client._build_payload(conversation_request_factory(model=None))

    assert payload["model"] == "gpt-5"
    assert payload["reasoning"] == {"effort": "medium"}
    assert payload["text"] == {"verbosity": "low"}
    assert "tools" not in payload
    assert "instructions" not in payload


def test_build_payload_requires_model(conversation_request_factory) -> None:
    client = OpenAIResponsesClient(MockResponsesTransport([]))

    with pytest.raises(ApiClientError):
        client._build_payload(conversation_request_factory(model=None))


def test_non_strict_tool_keeps_parameters_untouched() -> None:
    client = OpenAIResponsesClient(MockResponsesTransport([]))
    parameters = {"type": "object", "properties": {"a": {"type": "string"}}}
    request = ConversationRequest(
        messages=[Message(role=MessageRole.USER, content="hi")],
        model="gpt-5",
        tools=[
            ToolDefinition(name="strict", description="s", parameters=parameters),
            ToolDefinition(name="loose", description="l", parameters=parameters, strict=False),
        ],
    )

    tools = client._build_payload(request)["tools"]

    assert tools[0]["parameters"]["required"] == ["a"]
    assert tools[0]["strict"] is True
    assert "required" not in tools[1]["parameters"]
    assert tools[1]["strict"] is False


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status_code,expected_error_type",
    [
        (401, ApiAuthError),
        (403, ApiAuthError),
        (429, ApiRateLimitError),
        (500, ApiServerError),
        (400, ApiClientError),
    ],
)
async def test_http_errors_are_mapped(
    conversation_request_factory, status_code: int, expected_error_type: type[ApiError]
) -> None:
    client = OpenAIResponsesClient(MockResponsesTransport([], status_code=status_code))

    events = [event async for event in client.submit(conversation_request_factory())]

    assert len(events) == 1
    assert isinstance(events[0], StreamFailure)
    assert isinstance(events[0].error, expected_error_type)
    assert isinstance(events[0].error.__cause__, httpx.HTTPStatusError)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error,expected_error_type,message",
    [
        (httpx.ReadTimeout("timeout"), ApiTimeoutError, "request timed out"),
        (httpx.ConnectError("boom"), ApiClientError, "request failed"),
        (ApiRateLimitError("slow"), ApiRateLimitError, "slow"),
        (ValueError("boom"), ApiError, "unexpected error"),
    ],
)
async def test_transport_errors_are_mapped(
    failing_transport, conversation_request_factory, error, expected_error_type, message
) -> None:
    client = OpenAIResponsesClient(failing_transport([], error))

    events = [event async for event in client.submit(conversation_request_factory())]

    assert isinstance(events[-1], StreamFailure)
    assert type(events[-1].error) is expected_error_type
    assert str(events[-1].error) == message


@pytest.mark.asyncio
async def test_invalid_frame_ends_stream_with_failure(capturing_transport, sse_frame, conversation_request_factory) -> None:
    transport = capturing_transport(chunks=["data: {not-json\n", sse_frame({"type": "error"})])
    client = OpenAIResponsesClient(transport)

    events = [event async for event in client.submit(conversation_request_factory())]

    assert len(events) == 1
    assert isinstance(events[0], StreamFailure)
    assert isinstance(events[0].error, StreamingParseError)


@pytest.mark.asyncio
async def test_invalid_frames_can_be_skipped(capturing_transport, sse_frame, conversation_request_factory) -> None:
    transport = capturing_transport(chunks=[sse_frame({"type": "response.future"}), sse_frame({"type": "error"})])
    client = OpenAIResponsesClient(transport, skip_invalid_frames=True)

    events = [event async for event in client.submit(conversation_request_factory())]

    assert [event.type for event in events] == ["error"]


@pytest.mark.asyncio
async def test_cancel_early_does_not_error(capturing_transport, sse_frame, text_stream_payloads, conversation_request_factory) -> None:
    transport = capturing_transport(chunks=frames(sse_frame, text_stream_payloads()))
    client = OpenAIResponsesClient(transport)

    received = []
    async for event in client.submit(conversation_request_factory()):
        received.append(event.type)
        break  # stop early to simulate cancellation/back-pressure

    assert received == ["response.created"]


@pytest.mark.asyncio
async def test_collect_returns_completed_aggregate(capturing_transport, sse_frame, text_stream_payloads, conversation_request_factory) -> None:
    transport = capturing_transport(chunks=frames(sse_frame, text_stream_payloads(("a", "b", "c"))))
    client = OpenAIResponsesClient(transport, verify_done_text=True)

    aggregate = await client.collect(conversation_request_factory())

    assert aggregate.state is ResponseState.COMPLETED
    assert aggregate.output_text() == "abc"
    assert aggregate.diagnostics == []


@pytest.mark.asyncio
async def test_collect_uses_supplied_aggregator(capturing_transport, sse_frame, text_stream_payloads, conversation_request_factory) -> None:
    transport = capturing_transport(chunks=frames(sse_frame, text_stream_payloads(("x",))))
    client = OpenAIResponsesClient(transport)
    aggregator = ResponseAggregator()

    aggregate = await client.collect(conversation_request_factory(), aggregator)

    assert aggregator.get(aggregate.response_id) is aggregate
    assert aggregator.final_output_text() == "x"


@pytest.mark.asyncio
async def test_collect_raises_upstream_error(capturing_transport, sse_frame, response_snapshot, conversation_request_factory) -> None:
    transport = capturing_transport(
        chunks=[
            sse_frame({"type": "response.created", "response": response_snapshot(), "sequence_number": 0}),
            sse_frame({"type": "error", "code": "server_error", "param": None, "sequence_number": 1}),
        ]
    )
    client = OpenAIResponsesClient(transport)
    aggregator = client.new_aggregator()

    with pytest.raises(UpstreamError) as excinfo:
        await client.collect(conversation_request_factory(), aggregator)

    assert excinfo.value.code == "server_error"
    assert str(excinfo.value) == "OpenAI error (server_error)"
    assert aggregator.latest.state is ResponseState.INCOMPLETE
    assert aggregator.latest.cancelled


@pytest.mark.asyncio
async def test_collect_raises_mapped_transport_error(
    failing_transport, sse_frame, response_snapshot, conversation_request_factory
) -> None:
    transport = failing_transport(
        [sse_frame({"type": "response.created", "response": response_snapshot()})], httpx.ReadTimeout("slow")
    )
    client = OpenAIResponsesClient(transport)
    aggregator = client.new_aggregator()

    with pytest.raises(ApiTimeoutError):
        await client.collect(conversation_request_factory(), aggregator)

    assert aggregator.latest.state is ResponseState.INCOMPLETE


@pytest.mark.asyncio
async def test_collect_marks_truncated_stream_incomplete(capturing_transport, sse_frame, text_stream_payloads, conversation_request_factory) -> None:
    payloads = text_stream_payloads(("a", "b"))[:-1]
    client = OpenAIResponsesClient(capturing_transport(chunks=frames(sse_frame, payloads)))

    aggregate = await client.collect(conversation_request_factory())

    assert aggregate.state is ResponseState.INCOMPLETE
    assert aggregate.cancelled
    assert aggregate.output_text() == "ab"


@pytest.mark.asyncio
async def test_collect_without_response_raises(capturing_transport, conversation_request_factory) -> None:
    client = OpenAIResponsesClient(capturing_transport(chunks=["data: [DONE]\n"]))

    with pytest.raises(StreamingParseError):
        await client.collect(conversation_request_factory())


@pytest.mark.asyncio
async def test_collect_rejects_invalid_frames_when_skipping(capturing_transport, sse_frame, text_stream_payloads, conversation_request_factory) -> None:
    payloads = text_stream_payloads(("ok",))
    chunks = [sse_frame(payloads[0]), sse_frame({"type": "response.future"})] + frames(sse_frame, payloads[1:])
    client = OpenAIResponsesClient(capturing_transport(chunks=chunks), skip_invalid_frames=True)
    aggregator = client.new_aggregator()

    aggregate = await client.collect(conversation_request_factory(), aggregator)

    assert aggregate.state is ResponseState.COMPLETED
    [failure] = aggregator.diagnostics
    assert isinstance(failure, DecodeFailure)
    assert isinstance(failure.error, UnknownEventTypeError)


@pytest.mark.asyncio
async def test_collect_raises_invalid_frame_by_default(capturing_transport, sse_frame, text_stream_payloads, conversation_request_factory) -> None:
    payloads = text_stream_payloads(("ok",))
    chunks = [sse_frame(payloads[0]), sse_frame({"type": "response.future"})] + frames(sse_frame, payloads[1:])
    client = OpenAIResponsesClient(capturing_transport(chunks=chunks))

    with pytest.raises(UnknownEventTypeError):
        await client.collect(conversation_request_factory())


@pytest.mark.asyncio
async def test_submit_accepts_awaitable_transport(sequence_transport, sse_frame, text_stream_payloads, conversation_request_factory) -> None:
    transport = sequence_transport([frames(sse_frame, text_stream_payloads(("y",)))])
    client = OpenAIResponsesClient(transport)

    events = [event async for event in client.submit(conversation_request_factory())]
    aggregator = ResponseAggregator()
    results = [aggregator.apply(event) for event in events]

    assert results[-1].kind is AggregationKind.FINALIZED
    assert aggregator.final_output_text() == "y"


@pytest.mark.parametrize(
    "status_code,headers,expected_error_type,error_message_contains",
    [
        (401, None, ApiAuthError, None),
        (429, None, ApiRateLimitError, None),
        (429, {"Retry-After": "2"}, ApiRateLimitError, "retry after 2"),
        (500, None, ApiServerError, None),
        (404, None, ApiClientError, None),
    ],
)
def test_status_error_mapping_function(
    status_code: int,
    headers: dict[str, str] | None,
    expected_error_type: type[ApiError],
    error_message_contains: str | None,
) -> None:
    request = httpx.Request("POST", "https://api.openai.com/v1/responses")
    response = httpx.Response(status_code, request=request, headers=headers, text="details")
    err = httpx.HTTPStatusError("test", request=request, response=response)

    mapped_error = _map_status_error(err)

    assert isinstance(mapped_error, expected_error_type)
    assert "body=details" in str(mapped_error)
    if error_message_contains:
        assert error_message_contains in str(mapped_error)
    elif status_code == 429:
        assert "retry" not in str(mapped_error)

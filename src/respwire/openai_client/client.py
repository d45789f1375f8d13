"""OpenAI Responses client orchestrator."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable
from typing import Any, cast

import httpx

from respwire.openai_client.aggregator import DEFAULT_MAX_BUFFER_BYTES, ResponseAggregate, ResponseAggregator
from respwire.openai_client.events import ResponseStreamEvent
from respwire.openai_client.parsing import decode_stream
from respwire.openai_client.transport import ResponsesTransport
from respwire.openai_client.types import (
    ApiAuthError,
    ApiClientError,
    ApiError,
    ApiRateLimitError,
    ApiServerError,
    ApiTimeoutError,
    ConversationRequest,
    DecodeError,
    Message,
    StreamFailure,
    StreamingParseError,
    ToolDefinition,
    UpstreamError,
)

logger = logging.getLogger(__name__)


class OpenAIResponsesClient:
    """Async client that submits conversation requests and yields streaming events."""

    def __init__(
        self,
        transport: ResponsesTransport,
        *,
        default_model: str | None = None,
        default_reasoning_effort: str | None = None,
        default_verbosity: str | None = None,
        skip_invalid_frames: bool = False,
        verify_done_text: bool = False,
        max_buffer_bytes: int = DEFAULT_MAX_BUFFER_BYTES,
    ) -> None:
        self._transport = transport
        self._default_model = default_model
        self._default_reasoning_effort = default_reasoning_effort
        self._default_verbosity = default_verbosity
        self._skip_invalid_frames = skip_invalid_frames
        self._verify_done_text = verify_done_text
        self._max_buffer_bytes = max_buffer_bytes

    async def submit(self, request: ConversationRequest) -> AsyncIterator[ResponseStreamEvent | StreamFailure]:
        """Submit a conversation request and yield decoded streaming events.

        Failures end the stream with a single :class:`StreamFailure` item.
        """

        async for item in self._stream(request):
            if isinstance(item, DecodeError):
                if self._skip_invalid_frames:
                    logger.warning("skipping undecodable frame (tag=%s): %s", item.tag, item)
                    continue
                yield StreamFailure(error=item)
                return
            yield item

    async def collect(
        self, request: ConversationRequest, aggregator: ResponseAggregator | None = None
    ) -> ResponseAggregate:
        """Stream a request to completion and return its aggregate.

        Raises the mapped :class:`ApiError` on transport failures and
        :class:`UpstreamError` when the service sends an ``error`` event. An
        aggregate left unfinished by the stream is marked incomplete.
        """

        aggregator = aggregator or self.new_aggregator()
        stream = self._stream(request)
        try:
            async for item in stream:
                if isinstance(item, StreamFailure):
                    aggregator.cancel()
                    raise item.error
                if isinstance(item, DecodeError):
                    if not self._skip_invalid_frames:
                        aggregator.cancel()
                        raise item
                    aggregator.reject(item)
                    continue
                result = aggregator.apply(item)
                if result.upstream_error is not None:
                    aggregator.cancel()
                    error = result.upstream_error
                    raise UpstreamError(error.code, error.message, error.param)
        finally:
            await stream.aclose()

        aggregate = aggregator.latest
        if aggregate is None:
            raise StreamingParseError("stream ended before a response was created")
        if not aggregate.is_terminal:
            logger.warning("stream ended before response %s finished", aggregate.response_id)
            aggregator.cancel()
        return aggregate

    def new_aggregator(self) -> ResponseAggregator:
        return ResponseAggregator(verify_done_text=self._verify_done_text, max_buffer_bytes=self._max_buffer_bytes)

    async def _stream(
        self, request: ConversationRequest
    ) -> AsyncIterator[ResponseStreamEvent | DecodeError | StreamFailure]:
        payload = self._build_payload(request)
        try:
            stream_candidate = self._transport.stream_response(payload)
            stream: AsyncIterator[str | bytes]
            if hasattr(stream_candidate, "__aiter__"):
                stream = cast(AsyncIterator[str | bytes], stream_candidate)
            else:
                stream = await cast(Awaitable[AsyncIterator[str | bytes]], stream_candidate)

            async for item in decode_stream(stream):
                yield item
        except httpx.TimeoutException as exc:
            err: ApiError = ApiTimeoutError("request timed out")
            err.__cause__ = exc
            yield StreamFailure(error=err)
        except httpx.HTTPStatusError as exc:
            mapped = _map_status_error(exc)
            mapped.__cause__ = exc
            yield StreamFailure(error=mapped)
        except httpx.RequestError as exc:
            err = ApiClientError("request failed")
            err.__cause__ = exc
            yield StreamFailure(error=err)
        except ApiError as exc:
            yield StreamFailure(error=exc)
        except Exception as exc:
            err = ApiError("unexpected error")
            err.__cause__ = exc
            yield StreamFailure(error=err)

    def _build_payload(self, request: ConversationRequest) -> dict[str, Any]:
        model = request.model or self._default_model
        if not model:
            raise ApiClientError("model is required")

        payload: dict[str, Any] = {
            "model": model,
            "input": [_message_to_input(msg) for msg in request.messages],
            "stream": True,
        }

        if request.instructions:
            payload["instructions"] = request.instructions

        if request.tools:
            payload["tools"] = [_tool_to_dict(tool) for tool in request.tools]

        reasoning_effort = request.reasoning_effort or self._default_reasoning_effort
        if reasoning_effort is not None:
            payload["reasoning"] = {"effort": _enum_value(reasoning_effort)}

        verbosity = request.verbosity or self._default_verbosity
        if verbosity is not None:
            payload.setdefault("text", {})["verbosity"] = _enum_value(verbosity)

        if request.text_format is not None:
            payload.setdefault("text", {})["format"] = request.text_format.to_payload()

        if request.max_output_tokens is not None:
            payload["max_output_tokens"] = request.max_output_tokens

        if request.metadata:
            payload["metadata"] = dict(request.metadata)

        if request.previous_response_id:
            payload["previous_response_id"] = request.previous_response_id

        return payload


def _enum_value(value: Any) -> Any:
    return value.value if hasattr(value, "value") else value


def _message_to_input(message: Message) -> dict[str, Any]:
    return {"role": message.role.value, "content": message.content}


def _tool_to_dict(tool: ToolDefinition) -> dict[str, Any]:
    parameters = dict(tool.parameters)
    props = parameters.get("properties") or {}
    if tool.strict and isinstance(props, dict) and "required" not in parameters:
        parameters["required"] = list(props.keys())
    return {
        "type": "function",
        "name": tool.name,
        "description": tool.description,
        "parameters": parameters,
        "strict": tool.strict,
    }


def _map_status_error(exc: httpx.HTTPStatusError) -> ApiError:
    status = exc.response.status_code
    try:
        body = exc.response.text
    except httpx.ResponseNotRead:
        body = ""
    suffix = f" body={body}" if body else ""
    retry_after = exc.response.headers.get("retry-after")
    retry_suffix = f" (retry after {retry_after}s)" if retry_after else ""
    if status in (401, 403):
        return ApiAuthError(f"auth failed with status {status}{suffix}")
    if status == 429:
        return ApiRateLimitError(f"rate limited{retry_suffix}{suffix}")
    if status >= 500:
        return ApiServerError(f"server error {status}{suffix}")
    return ApiClientError(f"request failed with status {status}{suffix}")


__all__ = ["OpenAIResponsesClient", "_map_status_error"]

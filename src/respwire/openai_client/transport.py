"""Transport abstraction for the OpenAI Responses client."""

from __future__ import annotations

import json
import time
from collections.abc import AsyncIterator, Callable, Mapping, Sequence
from typing import Any, Protocol

import httpx
from openai import AsyncOpenAI

from respwire import __version__


class ResponsesTransport(Protocol):
    """Protocol for streaming Responses API payloads."""

    async def stream_response(self, payload: Mapping[str, Any]) -> AsyncIterator[str | bytes]:
        """Stream raw chunks returned by the API."""


DEFAULT_TIMEOUT = httpx.Timeout(60.0, connect=5.0)
DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_USER_AGENT = f"respwire/{__version__}"

TransportLogger = Callable[[str, dict[str, object]], None]


def build_headers(
    api_key: str,
    *,
    organization: str | None = None,
    beta_header: str | None = None,
    user_agent: str | None = None,
    extra_headers: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Headers sent with every streaming request."""

    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
        "Accept": "text/event-stream",
    }
    if organization:
        headers["OpenAI-Organization"] = organization
    if user_agent:
        headers["User-Agent"] = user_agent
    if beta_header:
        headers["OpenAI-Beta"] = beta_header
    if extra_headers:
        headers.update(extra_headers)
    return headers


class HttpResponsesTransport:
    """httpx-based transport for the real OpenAI Responses API."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = DEFAULT_BASE_URL,
        organization: str | None = None,
        timeout: httpx.Timeout | float | None = None,
        client: httpx.AsyncClient | None = None,
        user_agent: str | None = DEFAULT_USER_AGENT,
        beta_header: str | None = None,
        extra_headers: Mapping[str, str] | None = None,
        logger: TransportLogger | None = None,
    ) -> None:
        if not api_key.strip():
            raise ValueError("api_key cannot be empty")

        self.api_key = api_key.strip()
        self.base_url = base_url.rstrip("/")
        self.organization = organization
        self.timeout = timeout or DEFAULT_TIMEOUT
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=self.timeout)
        self._headers = build_headers(
            self.api_key,
            organization=organization,
            beta_header=beta_header,
            user_agent=user_agent,
            extra_headers=extra_headers,
        )
        self._logger = logger

    async def stream_response(self, payload: Mapping[str, Any]) -> AsyncIterator[str | bytes]:
        url = f"{self.base_url}/responses"
        start = time.perf_counter()
        async with self._client.stream(
            "POST", url, json=dict(payload), headers=self._headers, timeout=self.timeout
        ) as response:
            if response.is_error:
                # Read the body so the error mapper can surface it.
                await response.aread()
            response.raise_for_status()
            async for line in response.aiter_lines():
                if not line:
                    continue
                yield line
        if self._logger:
            self._logger(
                "response_complete",
                {
                    "status": response.status_code,
                    "request_id": response.headers.get("x-request-id"),
                    "duration_sec": time.perf_counter() - start,
                    "base_url": self.base_url,
                },
            )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> HttpResponsesTransport:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


class MockResponsesTransport:
    """In-memory transport that yields predefined chunks for tests/offline mode."""

    def __init__(
        self,
        chunks: Sequence[str | bytes],
        status_code: int = 200,
        logger: TransportLogger | None = None,
    ) -> None:
        self._chunks = list(chunks)
        self.status_code = status_code
        self._logger = logger
        self.payloads: list[dict[str, Any]] = []

    async def stream_response(self, payload: Mapping[str, Any]) -> AsyncIterator[str | bytes]:
        self.payloads.append(dict(payload))
        if self.status_code >= 400:
            request = httpx.Request("POST", "mock://responses")
            response = httpx.Response(self.status_code, request=request)
            raise httpx.HTTPStatusError("mock transport error", request=request, response=response)

        for chunk in self._chunks:
            yield chunk
        if self._logger:
            self._logger(
                "response_complete",
                {"status": self.status_code, "request_id": None, "duration_sec": 0.0, "base_url": "mock://responses"},
            )


class OpenAISDKResponsesTransport:
    """Transport backed by the official openai Python SDK (Responses API).

    SDK events are serialised back to their wire JSON so they run through the
    same decoder as raw SSE frames.
    """

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str | None = None,
        organization: str | None = None,
        project: str | None = None,
        beta_header: str | None = None,
        client: Any | None = None,
    ) -> None:
        if not api_key.strip():
            raise ValueError("api_key cannot be empty")

        self._beta_header = beta_header
        self._client = client or AsyncOpenAI(
            api_key=api_key.strip(),
            base_url=base_url,
            organization=organization,
            project=project,
        )

    async def stream_response(self, payload: Mapping[str, Any]) -> AsyncIterator[str | bytes]:
        extra_headers = {"OpenAI-Beta": self._beta_header} if self._beta_header else None
        request_payload = dict(payload)
        request_payload.pop("stream", None)
        stream = await self._client.responses.create(stream=True, extra_headers=extra_headers, **request_payload)
        async for event in stream:
            json_payload = sdk_event_payload(event)
            if json_payload is None:
                continue
            yield json.dumps(json_payload)


def sdk_event_payload(event: Any) -> dict[str, Any] | None:
    """Convert an SDK event object into its wire JSON mapping."""

    if isinstance(event, Mapping):
        return dict(event)
    dump = getattr(event, "model_dump", None)
    if callable(dump):
        data = dump(mode="json", exclude_unset=True)
        return data if isinstance(data, dict) and "type" in data else None
    return None


__all__ = [
    "DEFAULT_BASE_URL",
    "DEFAULT_TIMEOUT",
    "HttpResponsesTransport",
    "MockResponsesTransport",
    "OpenAISDKResponsesTransport",
    "ResponsesTransport",
    "TransportLogger",
    "build_headers",
    "sdk_event_payload",
]

"""Request models and error taxonomy for the Responses client."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from respwire.config import ReasoningEffort, Verbosity


class MessageRole(str, Enum):
    """Input message roles supported by the Responses API."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    DEVELOPER = "developer"


@dataclass(frozen=True, slots=True)
class Message:
    """Single input message sent to the model."""

    role: MessageRole
    content: str

    def __post_init__(self) -> None:
        if not self.content:
            raise ValueError("content cannot be empty")


@dataclass(frozen=True, slots=True)
class ToolDefinition:
    """JSON function tool advertised to the Responses API."""

    name: str
    description: str
    parameters: Mapping[str, Any]
    strict: bool = True

    def __post_init__(self) -> None:
        if not self.name.strip():
            raise ValueError("tool name cannot be empty")
        if not self.description.strip():
            raise ValueError("tool description cannot be empty")


class TextFormatType(str, Enum):
    TEXT = "text"
    JSON_OBJECT = "json_object"
    JSON_SCHEMA = "json_schema"


@dataclass(frozen=True, slots=True)
class TextFormat:
    """Output format requested through ``text.format``."""

    type: TextFormatType = TextFormatType.TEXT
    name: str | None = None
    schema: Mapping[str, Any] | None = None
    strict: bool | None = None

    def __post_init__(self) -> None:
        if self.type is TextFormatType.JSON_SCHEMA:
            if not self.name or not self.name.strip():
                raise ValueError("json_schema format requires a name")
            if self.schema is None:
                raise ValueError("json_schema format requires a schema")
        elif self.schema is not None:
            raise ValueError(f"{self.type.value} format does not take a schema")

    def to_payload(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type.value}
        if self.type is TextFormatType.JSON_SCHEMA:
            data["name"] = self.name
            data["schema"] = dict(self.schema or {})
            if self.strict is not None:
                data["strict"] = self.strict
        return data


@dataclass(frozen=True, slots=True)
class ConversationRequest:
    """Structured request used by the OpenAIResponsesClient."""

    messages: Sequence[Message]
    model: str | None
    instructions: str | None = None
    reasoning_effort: ReasoningEffort | None = None
    verbosity: Verbosity | None = None
    text_format: TextFormat | None = None
    tools: Sequence[ToolDefinition] = field(default_factory=tuple)
    max_output_tokens: int | None = None
    metadata: Mapping[str, str] | None = None
    previous_response_id: str | None = None

    def __post_init__(self) -> None:
        if isinstance(self.model, str) and not self.model.strip():
            raise ValueError("model cannot be empty string")
        if not self.messages:
            raise ValueError("messages cannot be empty")
        if self.max_output_tokens is not None and self.max_output_tokens <= 0:
            raise ValueError("max_output_tokens must be positive when provided")
        if self.previous_response_id is not None and not self.previous_response_id.strip():
            raise ValueError("previous_response_id cannot be an empty string")


@dataclass(frozen=True, slots=True)
class StreamFailure:
    """Terminal item yielded by ``submit`` when the stream cannot continue."""

    error: Exception


def describe_upstream_error(code: str | None, message: str | None) -> str:
    """Return a non-empty description for an upstream error payload."""

    if message:
        return message
    if code:
        return f"OpenAI error ({code})"
    return "OpenAI error (no additional details)"


class ApiError(Exception):
    """Base class for API-related errors."""


class ApiAuthError(ApiError):
    """Authentication/authorization error."""


class ApiRateLimitError(ApiError):
    """Rate limit exceeded."""


class ApiTimeoutError(ApiError):
    """Network timeout."""


class ApiServerError(ApiError):
    """5xx server error."""


class ApiClientError(ApiError):
    """4xx client-side error not covered by other errors."""


class UpstreamError(ApiError):
    """Error event emitted by the service inside the stream."""

    def __init__(self, code: str | None = None, message: str | None = None, param: str | None = None) -> None:
        self.code = code
        self.message = message
        self.param = param
        super().__init__(describe_upstream_error(code, message))

    @property
    def description(self) -> str:
        return describe_upstream_error(self.code, self.message)


class StreamingParseError(ApiError):
    """Raised when a streaming chunk cannot be parsed."""


class DecodeError(StreamingParseError):
    """A single wire frame could not be turned into an event.

    ``tag`` keeps the raw discriminator when one was read, ``raw`` the frame text.
    """

    def __init__(self, detail: str, *, tag: str | None = None, raw: str | None = None) -> None:
        self.tag = tag
        self.raw = raw
        super().__init__(detail)


class MalformedFrameError(DecodeError):
    """Frame is not a JSON object."""


class MissingDiscriminatorError(DecodeError):
    """Frame has no string ``type`` member."""

    def __init__(self, *, raw: str | None = None) -> None:
        super().__init__("event frame is missing the 'type' discriminator", raw=raw)


class UnknownEventTypeError(DecodeError):
    """Discriminator does not name a known event."""

    def __init__(self, tag: str, *, raw: str | None = None) -> None:
        super().__init__(f"unknown event type: {tag}", tag=tag, raw=raw)


class MissingRequiredFieldError(DecodeError):
    """A required member of a known event is absent."""

    def __init__(self, event: str, field_name: str, *, raw: str | None = None) -> None:
        self.event = event
        self.field = field_name
        super().__init__(f"{event} is missing required field '{field_name}'", tag=event, raw=raw)


class InvalidFieldError(DecodeError):
    """A member of a known event has the wrong type or value."""

    def __init__(self, event: str, field_name: str, detail: str, *, raw: str | None = None) -> None:
        self.event = event
        self.field = field_name
        super().__init__(f"{event} has invalid field '{field_name}': {detail}", tag=event, raw=raw)


__all__ = [
    "ApiAuthError",
    "ApiClientError",
    "ApiError",
    "ApiRateLimitError",
    "ApiServerError",
    "ApiTimeoutError",
    "ConversationRequest",
    "DecodeError",
    "InvalidFieldError",
    "MalformedFrameError",
    "Message",
    "MessageRole",
    "MissingDiscriminatorError",
    "MissingRequiredFieldError",
    "StreamFailure",
    "StreamingParseError",
    "TextFormat",
    "TextFormatType",
    "ToolDefinition",
    "UnknownEventTypeError",
    "UpstreamError",
    "describe_upstream_error",
]

"""OpenAI Responses streaming package."""

from __future__ import annotations

from .aggregator import (  # noqa: F401
    AggregationKind,
    AggregationResult,
    ResponseAggregate,
    ResponseAggregator,
    ResponseState,
)
from .client import OpenAIResponsesClient  # noqa: F401
from .events import EVENT_TYPES, ErrorEvent, ResponseStreamEvent  # noqa: F401
from .parsing import decode, decode_stream, parse_stream  # noqa: F401
from .sequence import SequenceGuard, SequenceObservation, SequenceStatus  # noqa: F401
from .transport import (  # noqa: F401
    HttpResponsesTransport,
    MockResponsesTransport,
    OpenAISDKResponsesTransport,
    ResponsesTransport,
)
from .types import (  # noqa: F401
    ApiAuthError,
    ApiClientError,
    ApiError,
    ApiRateLimitError,
    ApiServerError,
    ApiTimeoutError,
    ConversationRequest,
    DecodeError,
    Message,
    MessageRole,
    StreamFailure,
    TextFormat,
    TextFormatType,
    ToolDefinition,
    UpstreamError,
)

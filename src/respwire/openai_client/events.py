"""Typed streaming events of the Responses API.

Every wire frame carries a ``type`` discriminator that maps to exactly one
model below. :data:`EVENT_TYPES` is the complete mapping used by the decoder;
a tag outside it is a decode failure.

Ids, indices and sequence numbers are strict scalars. Fields whose shape the
service has not pinned down are :data:`~respwire.openai_client.values.OpaqueValue`
and decode as ``{}`` when absent.
"""

from __future__ import annotations

from typing import Literal, TypeAlias, get_args

from pydantic import BaseModel, ConfigDict, StrictInt, StrictStr

from respwire.openai_client.models import ContentPart, ResponseModel, StreamOutputItem, SummaryPart
from respwire.openai_client.types import describe_upstream_error
from respwire.openai_client.values import OpaqueValue, empty_opaque


class StreamEvent(BaseModel):
    """Fields shared by every streaming event."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    type: str
    sequence_number: StrictInt | None = None


class ItemScopedEvent(StreamEvent):
    item_id: StrictStr
    output_index: StrictInt


class ContentScopedEvent(ItemScopedEvent):
    content_index: StrictInt


class SummaryScopedEvent(ItemScopedEvent):
    summary_index: StrictInt


class ResponseLifecycleEvent(StreamEvent):
    response: ResponseModel


# Response lifecycle


class ResponseCreatedEvent(ResponseLifecycleEvent):
    type: Literal["response.created"] = "response.created"


class ResponseInProgressEvent(ResponseLifecycleEvent):
    type: Literal["response.in_progress"] = "response.in_progress"


class ResponseCompletedEvent(ResponseLifecycleEvent):
    type: Literal["response.completed"] = "response.completed"


class ResponseFailedEvent(ResponseLifecycleEvent):
    type: Literal["response.failed"] = "response.failed"


class ResponseIncompleteEvent(ResponseLifecycleEvent):
    type: Literal["response.incomplete"] = "response.incomplete"


class ResponseQueuedEvent(ResponseLifecycleEvent):
    type: Literal["response.queued"] = "response.queued"


# Output items and content parts


class OutputItemAddedEvent(StreamEvent):
    type: Literal["response.output_item.added"] = "response.output_item.added"
    output_index: StrictInt
    item: StreamOutputItem


class OutputItemDoneEvent(StreamEvent):
    type: Literal["response.output_item.done"] = "response.output_item.done"
    output_index: StrictInt
    item: StreamOutputItem


class ContentPartAddedEvent(ContentScopedEvent):
    type: Literal["response.content_part.added"] = "response.content_part.added"
    part: ContentPart


class ContentPartDoneEvent(ContentScopedEvent):
    type: Literal["response.content_part.done"] = "response.content_part.done"
    part: ContentPart


# Text streaming


class OutputTextDeltaEvent(ContentScopedEvent):
    type: Literal["response.output_text.delta"] = "response.output_text.delta"
    delta: str


class OutputTextDoneEvent(ContentScopedEvent):
    type: Literal["response.output_text.done"] = "response.output_text.done"
    text: str


class RefusalDeltaEvent(ContentScopedEvent):
    type: Literal["response.refusal.delta"] = "response.refusal.delta"
    delta: str


class RefusalDoneEvent(ContentScopedEvent):
    type: Literal["response.refusal.done"] = "response.refusal.done"
    refusal: str


class FunctionCallArgumentsDeltaEvent(ItemScopedEvent):
    type: Literal["response.function_call_arguments.delta"] = "response.function_call_arguments.delta"
    delta: str


class FunctionCallArgumentsDoneEvent(ItemScopedEvent):
    type: Literal["response.function_call_arguments.done"] = "response.function_call_arguments.done"
    arguments: str


# Hosted tool calls


class FileSearchCallInProgressEvent(ItemScopedEvent):
    type: Literal["response.file_search_call.in_progress"] = "response.file_search_call.in_progress"


class FileSearchCallSearchingEvent(ItemScopedEvent):
    type: Literal["response.file_search_call.searching"] = "response.file_search_call.searching"


class FileSearchCallCompletedEvent(ItemScopedEvent):
    type: Literal["response.file_search_call.completed"] = "response.file_search_call.completed"


class WebSearchCallInProgressEvent(ItemScopedEvent):
    type: Literal["response.web_search_call.in_progress"] = "response.web_search_call.in_progress"


class WebSearchCallSearchingEvent(ItemScopedEvent):
    type: Literal["response.web_search_call.searching"] = "response.web_search_call.searching"


class WebSearchCallCompletedEvent(ItemScopedEvent):
    type: Literal["response.web_search_call.completed"] = "response.web_search_call.completed"


class ImageGenerationCallInProgressEvent(ItemScopedEvent):
    type: Literal["response.image_generation_call.in_progress"] = "response.image_generation_call.in_progress"


class ImageGenerationCallGeneratingEvent(ItemScopedEvent):
    type: Literal["response.image_generation_call.generating"] = "response.image_generation_call.generating"


class ImageGenerationCallPartialImageEvent(ItemScopedEvent):
    type: Literal["response.image_generation_call.partial_image"] = "response.image_generation_call.partial_image"
    partial_image_index: StrictInt
    partial_image_b64: str


class ImageGenerationCallCompletedEvent(ItemScopedEvent):
    type: Literal["response.image_generation_call.completed"] = "response.image_generation_call.completed"


class MCPCallArgumentsDeltaEvent(ItemScopedEvent):
    type: Literal["response.mcp_call.arguments.delta"] = "response.mcp_call.arguments.delta"
    delta: OpaqueValue = empty_opaque()


class MCPCallArgumentsDoneEvent(ItemScopedEvent):
    type: Literal["response.mcp_call.arguments.done"] = "response.mcp_call.arguments.done"
    arguments: OpaqueValue = empty_opaque()


class MCPCallInProgressEvent(ItemScopedEvent):
    type: Literal["response.mcp_call.in_progress"] = "response.mcp_call.in_progress"


class OptionallyScopedEvent(StreamEvent):
    """Events the service may emit without an item scope."""

    item_id: StrictStr | None = None
    output_index: StrictInt | None = None


class MCPCallCompletedEvent(OptionallyScopedEvent):
    type: Literal["response.mcp_call.completed"] = "response.mcp_call.completed"


class MCPCallFailedEvent(OptionallyScopedEvent):
    type: Literal["response.mcp_call.failed"] = "response.mcp_call.failed"


class MCPListToolsInProgressEvent(OptionallyScopedEvent):
    type: Literal["response.mcp_list_tools.in_progress"] = "response.mcp_list_tools.in_progress"


class MCPListToolsCompletedEvent(OptionallyScopedEvent):
    type: Literal["response.mcp_list_tools.completed"] = "response.mcp_list_tools.completed"


class MCPListToolsFailedEvent(OptionallyScopedEvent):
    type: Literal["response.mcp_list_tools.failed"] = "response.mcp_list_tools.failed"


# Reasoning


class ReasoningSummaryPartAddedEvent(SummaryScopedEvent):
    type: Literal["response.reasoning_summary_part.added"] = "response.reasoning_summary_part.added"
    part: SummaryPart


class ReasoningSummaryPartDoneEvent(SummaryScopedEvent):
    type: Literal["response.reasoning_summary_part.done"] = "response.reasoning_summary_part.done"
    part: SummaryPart


class ReasoningSummaryTextDeltaEvent(SummaryScopedEvent):
    type: Literal["response.reasoning_summary_text.delta"] = "response.reasoning_summary_text.delta"
    delta: str


class ReasoningSummaryTextDoneEvent(SummaryScopedEvent):
    type: Literal["response.reasoning_summary_text.done"] = "response.reasoning_summary_text.done"
    text: str


class ReasoningDeltaEvent(ContentScopedEvent):
    type: Literal["response.reasoning.delta"] = "response.reasoning.delta"
    delta: OpaqueValue = empty_opaque()


class ReasoningDoneEvent(ContentScopedEvent):
    type: Literal["response.reasoning.done"] = "response.reasoning.done"
    text: str


class ReasoningSummaryDeltaEvent(SummaryScopedEvent):
    type: Literal["response.reasoning_summary.delta"] = "response.reasoning_summary.delta"
    delta: OpaqueValue = empty_opaque()


class ReasoningSummaryDoneEvent(SummaryScopedEvent):
    type: Literal["response.reasoning_summary.done"] = "response.reasoning_summary.done"
    text: str


# Annotations and errors


class OutputTextAnnotationAddedEvent(ContentScopedEvent):
    type: Literal["response.output_text_annotation.added"] = "response.output_text_annotation.added"
    annotation_index: StrictInt
    annotation: OpaqueValue = empty_opaque()


class ErrorEvent(StreamEvent):
    """Error reported by the service inside the stream.

    Every field is optional; :attr:`description` is always non-empty.
    """

    type: Literal["error"] = "error"
    code: str | None = None
    message: str | None = None
    param: str | None = None

    @property
    def description(self) -> str:
        return describe_upstream_error(self.code, self.message)


ResponseStreamEvent: TypeAlias = (
    ResponseCreatedEvent
    | ResponseInProgressEvent
    | ResponseCompletedEvent
    | ResponseFailedEvent
    | ResponseIncompleteEvent
    | ResponseQueuedEvent
    | OutputItemAddedEvent
    | OutputItemDoneEvent
    | ContentPartAddedEvent
    | ContentPartDoneEvent
    | OutputTextDeltaEvent
    | OutputTextDoneEvent
    | RefusalDeltaEvent
    | RefusalDoneEvent
    | FunctionCallArgumentsDeltaEvent
    | FunctionCallArgumentsDoneEvent
    | FileSearchCallInProgressEvent
    | FileSearchCallSearchingEvent
    | FileSearchCallCompletedEvent
    | WebSearchCallInProgressEvent
    | WebSearchCallSearchingEvent
    | WebSearchCallCompletedEvent
    | ReasoningSummaryPartAddedEvent
    | ReasoningSummaryPartDoneEvent
    | ReasoningSummaryTextDeltaEvent
    | ReasoningSummaryTextDoneEvent
    | ImageGenerationCallInProgressEvent
    | ImageGenerationCallGeneratingEvent
    | ImageGenerationCallPartialImageEvent
    | ImageGenerationCallCompletedEvent
    | MCPCallArgumentsDeltaEvent
    | MCPCallArgumentsDoneEvent
    | MCPCallInProgressEvent
    | MCPCallCompletedEvent
    | MCPCallFailedEvent
    | MCPListToolsInProgressEvent
    | MCPListToolsCompletedEvent
    | MCPListToolsFailedEvent
    | OutputTextAnnotationAddedEvent
    | ReasoningDeltaEvent
    | ReasoningDoneEvent
    | ReasoningSummaryDeltaEvent
    | ReasoningSummaryDoneEvent
    | ErrorEvent
)


def _tag_of(model: type[StreamEvent]) -> str:
    (tag,) = get_args(model.model_fields["type"].annotation)
    return tag


EVENT_TYPES: dict[str, type[StreamEvent]] = {_tag_of(model): model for model in get_args(ResponseStreamEvent)}

LIFECYCLE_EVENTS = (
    ResponseCreatedEvent,
    ResponseInProgressEvent,
    ResponseCompletedEvent,
    ResponseFailedEvent,
    ResponseIncompleteEvent,
    ResponseQueuedEvent,
)


__all__ = [
    "ContentPartAddedEvent",
    "ContentPartDoneEvent",
    "ContentScopedEvent",
    "EVENT_TYPES",
    "ErrorEvent",
    "FileSearchCallCompletedEvent",
    "FileSearchCallInProgressEvent",
    "FileSearchCallSearchingEvent",
    "FunctionCallArgumentsDeltaEvent",
    "FunctionCallArgumentsDoneEvent",
    "ImageGenerationCallCompletedEvent",
    "ImageGenerationCallGeneratingEvent",
    "ImageGenerationCallInProgressEvent",
    "ImageGenerationCallPartialImageEvent",
    "ItemScopedEvent",
    "LIFECYCLE_EVENTS",
    "MCPCallArgumentsDeltaEvent",
    "MCPCallArgumentsDoneEvent",
    "MCPCallCompletedEvent",
    "MCPCallFailedEvent",
    "MCPCallInProgressEvent",
    "MCPListToolsCompletedEvent",
    "MCPListToolsFailedEvent",
    "MCPListToolsInProgressEvent",
    "OptionallyScopedEvent",
    "OutputItemAddedEvent",
    "OutputItemDoneEvent",
    "OutputTextAnnotationAddedEvent",
    "OutputTextDeltaEvent",
    "OutputTextDoneEvent",
    "ReasoningDeltaEvent",
    "ReasoningDoneEvent",
    "ReasoningSummaryDeltaEvent",
    "ReasoningSummaryDoneEvent",
    "ReasoningSummaryPartAddedEvent",
    "ReasoningSummaryPartDoneEvent",
    "ReasoningSummaryTextDeltaEvent",
    "ReasoningSummaryTextDoneEvent",
    "RefusalDeltaEvent",
    "RefusalDoneEvent",
    "ResponseCompletedEvent",
    "ResponseCreatedEvent",
    "ResponseFailedEvent",
    "ResponseInProgressEvent",
    "ResponseIncompleteEvent",
    "ResponseLifecycleEvent",
    "ResponseQueuedEvent",
    "ResponseStreamEvent",
    "StreamEvent",
    "SummaryScopedEvent",
    "WebSearchCallCompletedEvent",
    "WebSearchCallInProgressEvent",
    "WebSearchCallSearchingEvent",
]

"""Fold a Responses event stream into complete response aggregates.

One :class:`ResponseAggregator` serves one stream. It keeps an arena of
:class:`ResponseAggregate` objects keyed by response id; item and content
events are routed to the response that is currently active (the latest one
that has not reached a terminal state).

Nothing in here raises for protocol problems. Sequence anomalies, late or
duplicate events, text mismatches and decode failures are returned as
diagnostics on the :class:`AggregationResult` and kept on the aggregate.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, TypeAlias

from respwire.openai_client.events import (
    LIFECYCLE_EVENTS,
    ContentPartAddedEvent,
    ContentPartDoneEvent,
    ErrorEvent,
    FileSearchCallCompletedEvent,
    FileSearchCallInProgressEvent,
    FileSearchCallSearchingEvent,
    FunctionCallArgumentsDeltaEvent,
    FunctionCallArgumentsDoneEvent,
    ImageGenerationCallCompletedEvent,
    ImageGenerationCallGeneratingEvent,
    ImageGenerationCallInProgressEvent,
    ImageGenerationCallPartialImageEvent,
    MCPCallArgumentsDeltaEvent,
    MCPCallArgumentsDoneEvent,
    MCPCallCompletedEvent,
    MCPCallFailedEvent,
    MCPCallInProgressEvent,
    MCPListToolsCompletedEvent,
    MCPListToolsFailedEvent,
    MCPListToolsInProgressEvent,
    OptionallyScopedEvent,
    OutputItemAddedEvent,
    OutputItemDoneEvent,
    OutputTextAnnotationAddedEvent,
    OutputTextDeltaEvent,
    OutputTextDoneEvent,
    ReasoningDeltaEvent,
    ReasoningDoneEvent,
    ReasoningSummaryDeltaEvent,
    ReasoningSummaryDoneEvent,
    ReasoningSummaryPartAddedEvent,
    ReasoningSummaryPartDoneEvent,
    ReasoningSummaryTextDeltaEvent,
    ReasoningSummaryTextDoneEvent,
    RefusalDeltaEvent,
    RefusalDoneEvent,
    ResponseCompletedEvent,
    ResponseCreatedEvent,
    ResponseFailedEvent,
    ResponseIncompleteEvent,
    ResponseInProgressEvent,
    ResponseQueuedEvent,
    ResponseStreamEvent,
    StreamEvent,
    WebSearchCallCompletedEvent,
    WebSearchCallInProgressEvent,
    WebSearchCallSearchingEvent,
)
from respwire.openai_client.models import ContentPart, ResponseModel, StreamOutputItem, SummaryPart
from respwire.openai_client.sequence import SequenceGuard, SequenceObservation
from respwire.openai_client.types import DecodeError
from respwire.openai_client.values import OpaqueValue, text_fragment

logger = logging.getLogger(__name__)

DEFAULT_MAX_BUFFER_BYTES = 4 * 1024 * 1024


class ResponseState(str, Enum):
    QUEUED = "queued"
    CREATED = "created"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    INCOMPLETE = "incomplete"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATES


_TERMINAL_STATES = frozenset({ResponseState.COMPLETED, ResponseState.FAILED, ResponseState.INCOMPLETE})

_LIFECYCLE_STATES: dict[type[StreamEvent], ResponseState] = {
    ResponseQueuedEvent: ResponseState.QUEUED,
    ResponseCreatedEvent: ResponseState.CREATED,
    ResponseInProgressEvent: ResponseState.IN_PROGRESS,
    ResponseCompletedEvent: ResponseState.COMPLETED,
    ResponseFailedEvent: ResponseState.FAILED,
    ResponseIncompleteEvent: ResponseState.INCOMPLETE,
}


def _rank(state: ResponseState) -> int:
    if state in (ResponseState.QUEUED, ResponseState.CREATED):
        return 0
    if state is ResponseState.IN_PROGRESS:
        return 1
    return 2


class AggregationKind(str, Enum):
    MUTATED = "mutated"
    FINALIZED = "finalized"
    NOOP = "noop"
    ERROR = "error"


# Diagnostics


@dataclass(frozen=True, slots=True)
class LateEventAfterTerminal:
    response_id: str
    event_type: str

    def __str__(self) -> str:
        return f"{self.event_type} arrived after response {self.response_id} was finalized"


@dataclass(frozen=True, slots=True)
class DuplicateEvent:
    event_type: str
    scope: tuple[int, ...]

    def __str__(self) -> str:
        return f"{self.event_type} for closed scope {self.scope}"


@dataclass(frozen=True, slots=True)
class TextMismatch:
    event_type: str
    scope: tuple[int, ...]
    accumulated: str
    final: str

    def __str__(self) -> str:
        return (
            f"{self.event_type} at {self.scope} disagrees with streamed deltas "
            f"({len(self.accumulated)} vs {len(self.final)} chars)"
        )


@dataclass(frozen=True, slots=True)
class BufferLimitExceeded:
    event_type: str
    scope: tuple[int, ...]
    limit: int

    def __str__(self) -> str:
        return f"{self.event_type} at {self.scope} exceeded buffer limit of {self.limit} bytes"


@dataclass(frozen=True, slots=True)
class UnscopedEvent:
    event_type: str
    reason: str

    def __str__(self) -> str:
        return f"{self.event_type}: {self.reason}"


@dataclass(frozen=True, slots=True)
class DecodeFailure:
    error: DecodeError

    @property
    def tag(self) -> str | None:
        return self.error.tag

    def __str__(self) -> str:
        return f"decode failure: {self.error}"


Diagnostic: TypeAlias = (
    SequenceObservation
    | LateEventAfterTerminal
    | DuplicateEvent
    | TextMismatch
    | BufferLimitExceeded
    | UnscopedEvent
    | DecodeFailure
)


@dataclass(frozen=True, slots=True)
class AggregationResult:
    """What applying one event did."""

    kind: AggregationKind
    event: ResponseStreamEvent | None = None
    response_id: str | None = None
    diagnostics: tuple[Diagnostic, ...] = ()
    upstream_error: ErrorEvent | None = None


# Accumulated state


@dataclass(slots=True)
class TextBuffer:
    """Delta accumulator frozen by its done event."""

    fragments: list[str] = field(default_factory=list)
    final: str | None = None
    size: int = 0

    @property
    def done(self) -> bool:
        return self.final is not None

    @property
    def text(self) -> str:
        return self.final if self.final is not None else "".join(self.fragments)


@dataclass(slots=True)
class ContentPartState:
    content_index: int
    type: str = "output_text"
    part: ContentPart | None = None
    buffer: TextBuffer = field(default_factory=TextBuffer)
    annotations: dict[int, OpaqueValue] = field(default_factory=dict)
    done: bool = False

    @property
    def text(self) -> str:
        return self.buffer.text

    @property
    def finalized(self) -> bool:
        return self.done or self.buffer.done


@dataclass(slots=True)
class SummaryState:
    summary_index: int
    part: SummaryPart | None = None
    buffer: TextBuffer = field(default_factory=TextBuffer)
    done: bool = False

    @property
    def text(self) -> str:
        return self.buffer.text


@dataclass(slots=True)
class OutputItemState:
    output_index: int
    item_id: str | None = None
    item: StreamOutputItem | None = None
    tool_status: str | None = None
    content: dict[int, ContentPartState] = field(default_factory=dict)
    arguments: TextBuffer | None = None
    mcp_argument_deltas: list[OpaqueValue] = field(default_factory=list)
    mcp_arguments: OpaqueValue = None
    mcp_arguments_done: bool = False
    reasoning: dict[int, TextBuffer] = field(default_factory=dict)
    summaries: dict[int, SummaryState] = field(default_factory=dict)
    partial_images: dict[int, str] = field(default_factory=dict)
    done: bool = False

    @property
    def type(self) -> str | None:
        return self.item.type if self.item is not None else None

    def ordered_content(self) -> list[ContentPartState]:
        return [self.content[index] for index in sorted(self.content)]


@dataclass(slots=True)
class ResponseAggregate:
    """In-memory reconstruction of one response.

    Owned by the aggregator until :attr:`is_terminal`; after that it is never
    mutated again and belongs to the caller.
    """

    response_id: str
    state: ResponseState
    snapshot: ResponseModel | None = None
    items: dict[int, OutputItemState] = field(default_factory=dict)
    diagnostics: list[Diagnostic] = field(default_factory=list)
    errors: list[ErrorEvent] = field(default_factory=list)
    cancelled: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    def ordered_items(self) -> list[OutputItemState]:
        return [self.items[index] for index in sorted(self.items)]

    def output_text(self) -> str:
        """Finalized output text ordered by output index, then content index."""

        parts = [
            part.text
            for item in self.ordered_items()
            for part in item.ordered_content()
            if part.type == "output_text" and part.finalized
        ]
        if not parts and self.snapshot is not None:
            return self.snapshot.output_text
        return "".join(parts)


class _Rejected(Exception):
    def __init__(self, kind: AggregationKind, diagnostic: Diagnostic) -> None:
        super().__init__(str(diagnostic))
        self.kind = kind
        self.diagnostic = diagnostic


_TOOL_STATUS: dict[type[StreamEvent], str] = {
    FileSearchCallInProgressEvent: "in_progress",
    FileSearchCallSearchingEvent: "searching",
    FileSearchCallCompletedEvent: "completed",
    WebSearchCallInProgressEvent: "in_progress",
    WebSearchCallSearchingEvent: "searching",
    WebSearchCallCompletedEvent: "completed",
    ImageGenerationCallInProgressEvent: "in_progress",
    ImageGenerationCallGeneratingEvent: "generating",
    ImageGenerationCallCompletedEvent: "completed",
    MCPCallInProgressEvent: "in_progress",
    MCPCallCompletedEvent: "completed",
    MCPCallFailedEvent: "failed",
    MCPListToolsInProgressEvent: "in_progress",
    MCPListToolsCompletedEvent: "completed",
    MCPListToolsFailedEvent: "failed",
}
_FINAL_TOOL_STATUSES = frozenset({"completed", "failed"})

_Handler: TypeAlias = Callable[[ResponseAggregate, Any, list[Diagnostic]], AggregationKind]


class ResponseAggregator:
    """Apply events of a single stream in arrival order."""

    def __init__(self, *, verify_done_text: bool = False, max_buffer_bytes: int = DEFAULT_MAX_BUFFER_BYTES) -> None:
        if max_buffer_bytes <= 0:
            raise ValueError("max_buffer_bytes must be positive")
        self._verify_done_text = verify_done_text
        self._max_buffer_bytes = max_buffer_bytes
        self._guard = SequenceGuard()
        self._responses: dict[str, ResponseAggregate] = {}
        self._active_id: str | None = None
        self._last_id: str | None = None
        self._diagnostics: list[Diagnostic] = []
        self._errors: list[ErrorEvent] = []
        self._handlers: dict[type[StreamEvent], _Handler] = {
            OutputItemAddedEvent: self._on_item_added,
            OutputItemDoneEvent: self._on_item_done,
            ContentPartAddedEvent: self._on_part_added,
            ContentPartDoneEvent: self._on_part_done,
            OutputTextDeltaEvent: self._on_text_delta,
            OutputTextDoneEvent: self._on_text_done,
            RefusalDeltaEvent: self._on_text_delta,
            RefusalDoneEvent: self._on_text_done,
            FunctionCallArgumentsDeltaEvent: self._on_arguments_delta,
            FunctionCallArgumentsDoneEvent: self._on_arguments_done,
            MCPCallArgumentsDeltaEvent: self._on_mcp_arguments_delta,
            MCPCallArgumentsDoneEvent: self._on_mcp_arguments_done,
            ImageGenerationCallPartialImageEvent: self._on_partial_image,
            OutputTextAnnotationAddedEvent: self._on_annotation,
            ReasoningSummaryPartAddedEvent: self._on_summary_part,
            ReasoningSummaryPartDoneEvent: self._on_summary_part,
            ReasoningSummaryTextDeltaEvent: self._on_summary_delta,
            ReasoningSummaryDeltaEvent: self._on_summary_delta,
            ReasoningSummaryTextDoneEvent: self._on_summary_done,
            ReasoningSummaryDoneEvent: self._on_summary_done,
            ReasoningDeltaEvent: self._on_reasoning_delta,
            ReasoningDoneEvent: self._on_reasoning_done,
        }
        for event_type in _TOOL_STATUS:
            self._handlers[event_type] = self._on_tool_status

    # Public API

    @property
    def responses(self) -> Mapping[str, ResponseAggregate]:
        return MappingProxyType(self._responses)

    @property
    def current(self) -> ResponseAggregate | None:
        """The aggregate item events are currently routed to."""

        return self._responses.get(self._active_id) if self._active_id else None

    @property
    def latest(self) -> ResponseAggregate | None:
        return self._responses.get(self._last_id) if self._last_id else None

    @property
    def diagnostics(self) -> list[Diagnostic]:
        return list(self._diagnostics)

    @property
    def errors(self) -> list[ErrorEvent]:
        return list(self._errors)

    @property
    def last_sequence_number(self) -> int | None:
        return self._guard.last_seen

    def get(self, response_id: str) -> ResponseAggregate | None:
        return self._responses.get(response_id)

    def apply(self, event: ResponseStreamEvent) -> AggregationResult:
        """Apply one decoded event and report what happened."""

        diagnostics: list[Diagnostic] = []
        observation = self._guard.observe(event.sequence_number)
        if observation.is_anomaly:
            logger.warning("%s on %s", observation, event.type)
            diagnostics.append(observation)

        if isinstance(event, ErrorEvent):
            return self._on_error(event, diagnostics)
        if isinstance(event, LIFECYCLE_EVENTS):
            return self._on_lifecycle(event, diagnostics)

        aggregate = self.current
        if aggregate is None:
            latest = self.latest
            if latest is not None and latest.is_terminal:
                late = LateEventAfterTerminal(latest.response_id, event.type)
                logger.warning("%s", late)
                diagnostics.append(late)
                return self._result(AggregationKind.NOOP, event, latest, diagnostics)
            unscoped = UnscopedEvent(event.type, "no response has been created on this stream")
            logger.warning("%s", unscoped)
            diagnostics.append(unscoped)
            return self._result(AggregationKind.ERROR, event, None, diagnostics)

        if isinstance(event, OptionallyScopedEvent) and event.output_index is None:
            return self._result(AggregationKind.NOOP, event, aggregate, diagnostics)

        if aggregate.state in (ResponseState.QUEUED, ResponseState.CREATED):
            logger.debug("response %s %s -> in_progress", aggregate.response_id, aggregate.state.value)
            aggregate.state = ResponseState.IN_PROGRESS

        handler = self._handlers[type(event)]
        try:
            kind = handler(aggregate, event, diagnostics)
        except _Rejected as rejected:
            logger.warning("%s", rejected.diagnostic)
            diagnostics.append(rejected.diagnostic)
            kind = rejected.kind
        return self._result(kind, event, aggregate, diagnostics)

    def reject(self, error: DecodeError) -> AggregationResult:
        """Record a frame that failed to decode without touching any aggregate."""

        failure = DecodeFailure(error)
        logger.warning("%s", failure)
        self._diagnostics.append(failure)
        return AggregationResult(AggregationKind.ERROR, response_id=self._active_id, diagnostics=(failure,))

    def cancel(self) -> list[ResponseAggregate]:
        """Mark every unfinished aggregate incomplete, e.g. when the stream is abandoned."""

        cancelled = []
        for aggregate in self._responses.values():
            if aggregate.is_terminal:
                continue
            aggregate.state = ResponseState.INCOMPLETE
            aggregate.cancelled = True
            cancelled.append(aggregate)
            logger.debug("response %s cancelled before completion", aggregate.response_id)
        self._active_id = None
        return cancelled

    def final_output_text(self, response_id: str | None = None) -> str | None:
        """Combined output text, available once the response is terminal."""

        aggregate = self._responses.get(response_id) if response_id else self.latest
        if aggregate is None or not aggregate.is_terminal:
            return None
        return aggregate.output_text()

    # Lifecycle and errors

    def _on_lifecycle(self, event: Any, diagnostics: list[Diagnostic]) -> AggregationResult:
        response: ResponseModel = event.response
        aggregate = self._responses.get(response.id)
        if aggregate is not None and aggregate.is_terminal:
            late = LateEventAfterTerminal(response.id, event.type)
            logger.warning("%s", late)
            diagnostics.append(late)
            return self._result(AggregationKind.NOOP, event, aggregate, diagnostics)

        target = _LIFECYCLE_STATES[type(event)]
        if aggregate is None:
            aggregate = ResponseAggregate(response_id=response.id, state=target)
            self._responses[response.id] = aggregate
        elif _rank(target) >= _rank(aggregate.state):
            aggregate.state = target
        aggregate.snapshot = response
        self._last_id = response.id
        logger.debug("response %s is %s", response.id, aggregate.state.value)

        if target.is_terminal:
            if self._active_id == response.id:
                self._active_id = None
            return self._result(AggregationKind.FINALIZED, event, aggregate, diagnostics)
        self._active_id = response.id
        return self._result(AggregationKind.MUTATED, event, aggregate, diagnostics)

    def _on_error(self, event: ErrorEvent, diagnostics: list[Diagnostic]) -> AggregationResult:
        logger.warning("upstream error: %s", event.description)
        self._errors.append(event)
        aggregate = self.current or self.latest
        if aggregate is not None:
            aggregate.errors.append(event)
        return self._result(AggregationKind.ERROR, event, aggregate, diagnostics, upstream_error=event)

    def _result(
        self,
        kind: AggregationKind,
        event: ResponseStreamEvent,
        aggregate: ResponseAggregate | None,
        diagnostics: list[Diagnostic],
        *,
        upstream_error: ErrorEvent | None = None,
    ) -> AggregationResult:
        self._diagnostics.extend(diagnostics)
        if aggregate is not None:
            aggregate.diagnostics.extend(diagnostics)
        return AggregationResult(
            kind=kind,
            event=event,
            response_id=aggregate.response_id if aggregate is not None else None,
            diagnostics=tuple(diagnostics),
            upstream_error=upstream_error,
        )

    # Scope helpers

    def _item(
        self, aggregate: ResponseAggregate, event: Any, *, item_id: str | None = None, allow_done: bool = False
    ) -> OutputItemState:
        index: int = event.output_index
        item_id = item_id or getattr(event, "item_id", None)
        item = aggregate.items.get(index)
        if item is None:
            item = OutputItemState(output_index=index, item_id=item_id)
            aggregate.items[index] = item
        elif item_id is not None and item.item_id is not None and item.item_id != item_id:
            raise _Rejected(
                AggregationKind.ERROR,
                UnscopedEvent(event.type, f"item {item_id} does not match output {index} ({item.item_id})"),
            )
        elif item.item_id is None:
            item.item_id = item_id
        if item.done and not allow_done:
            raise _Rejected(AggregationKind.NOOP, DuplicateEvent(event.type, (index,)))
        return item

    def _part(self, item: OutputItemState, event: Any) -> ContentPartState:
        index: int = event.content_index
        part = item.content.get(index)
        if part is None:
            part = ContentPartState(content_index=index)
            item.content[index] = part
        return part

    def _summary(self, item: OutputItemState, event: Any) -> SummaryState:
        index: int = event.summary_index
        summary = item.summaries.get(index)
        if summary is None:
            summary = SummaryState(summary_index=index)
            item.summaries[index] = summary
        return summary

    def _append(self, buffer: TextBuffer, fragment: str, event: Any, scope: tuple[int, ...]) -> None:
        if buffer.done:
            raise _Rejected(AggregationKind.NOOP, DuplicateEvent(event.type, scope))
        size = buffer.size + len(fragment.encode("utf-8"))
        if size > self._max_buffer_bytes:
            raise _Rejected(AggregationKind.ERROR, BufferLimitExceeded(event.type, scope, self._max_buffer_bytes))
        buffer.fragments.append(fragment)
        buffer.size = size

    def _finish(
        self,
        buffer: TextBuffer,
        final: str,
        event: Any,
        scope: tuple[int, ...],
        diagnostics: list[Diagnostic],
    ) -> None:
        # The done value always wins over what was accumulated.
        if self._verify_done_text and buffer.fragments:
            accumulated = "".join(buffer.fragments)
            if accumulated != final:
                mismatch = TextMismatch(event.type, scope, accumulated, final)
                logger.warning("%s", mismatch)
                diagnostics.append(mismatch)
        buffer.final = final
        buffer.fragments.clear()
        buffer.size = len(final.encode("utf-8"))

    # Output items and content parts

    def _on_item_added(self, aggregate: ResponseAggregate, event: OutputItemAddedEvent, diagnostics: list) -> AggregationKind:
        item = self._item(aggregate, event, item_id=event.item.id)
        item.item = event.item
        if event.item.status is not None:
            item.tool_status = event.item.status
        return AggregationKind.MUTATED

    def _on_item_done(self, aggregate: ResponseAggregate, event: OutputItemDoneEvent, diagnostics: list) -> AggregationKind:
        item = self._item(aggregate, event, item_id=event.item.id)
        item.item = event.item
        if event.item.status is not None:
            item.tool_status = event.item.status
        if event.item.arguments is not None and (item.arguments is None or not item.arguments.done):
            item.arguments = item.arguments or TextBuffer()
            self._finish(item.arguments, event.item.arguments, event, (event.output_index,), diagnostics)
        item.done = True
        return AggregationKind.MUTATED

    def _on_part_added(self, aggregate: ResponseAggregate, event: ContentPartAddedEvent, diagnostics: list) -> AggregationKind:
        item = self._item(aggregate, event)
        part = self._part(item, event)
        if part.done:
            raise _Rejected(AggregationKind.NOOP, DuplicateEvent(event.type, (event.output_index, event.content_index)))
        part.part = event.part
        part.type = event.part.type
        return AggregationKind.MUTATED

    def _on_part_done(self, aggregate: ResponseAggregate, event: ContentPartDoneEvent, diagnostics: list) -> AggregationKind:
        scope = (event.output_index, event.content_index)
        item = self._item(aggregate, event)
        part = self._part(item, event)
        if part.done:
            raise _Rejected(AggregationKind.NOOP, DuplicateEvent(event.type, scope))
        part.part = event.part
        part.type = event.part.type
        final = event.part.refusal if event.part.type == "refusal" else event.part.text
        if final is not None and final != part.buffer.final:
            self._finish(part.buffer, final, event, scope, diagnostics)
        part.done = True
        return AggregationKind.MUTATED

    def _on_text_delta(self, aggregate: ResponseAggregate, event: Any, diagnostics: list) -> AggregationKind:
        scope = (event.output_index, event.content_index)
        item = self._item(aggregate, event)
        part = self._part(item, event)
        if part.done:
            raise _Rejected(AggregationKind.NOOP, DuplicateEvent(event.type, scope))
        if part.part is None and isinstance(event, RefusalDeltaEvent):
            part.type = "refusal"
        self._append(part.buffer, event.delta, event, scope)
        return AggregationKind.MUTATED

    def _on_text_done(self, aggregate: ResponseAggregate, event: Any, diagnostics: list) -> AggregationKind:
        scope = (event.output_index, event.content_index)
        item = self._item(aggregate, event)
        part = self._part(item, event)
        if part.finalized:
            raise _Rejected(AggregationKind.NOOP, DuplicateEvent(event.type, scope))
        if isinstance(event, RefusalDoneEvent):
            if part.part is None:
                part.type = "refusal"
            final = event.refusal
        else:
            final = event.text
        self._finish(part.buffer, final, event, scope, diagnostics)
        return AggregationKind.MUTATED

    def _on_annotation(
        self, aggregate: ResponseAggregate, event: OutputTextAnnotationAddedEvent, diagnostics: list
    ) -> AggregationKind:
        scope = (event.output_index, event.content_index, event.annotation_index)
        item = self._item(aggregate, event)
        part = self._part(item, event)
        if part.done or event.annotation_index in part.annotations:
            raise _Rejected(AggregationKind.NOOP, DuplicateEvent(event.type, scope))
        part.annotations[event.annotation_index] = event.annotation
        return AggregationKind.MUTATED

    # Tool calls

    def _on_arguments_delta(
        self, aggregate: ResponseAggregate, event: FunctionCallArgumentsDeltaEvent, diagnostics: list
    ) -> AggregationKind:
        item = self._item(aggregate, event)
        item.arguments = item.arguments or TextBuffer()
        self._append(item.arguments, event.delta, event, (event.output_index,))
        return AggregationKind.MUTATED

    def _on_arguments_done(
        self, aggregate: ResponseAggregate, event: FunctionCallArgumentsDoneEvent, diagnostics: list
    ) -> AggregationKind:
        item = self._item(aggregate, event)
        item.arguments = item.arguments or TextBuffer()
        if item.arguments.done:
            raise _Rejected(AggregationKind.NOOP, DuplicateEvent(event.type, (event.output_index,)))
        self._finish(item.arguments, event.arguments, event, (event.output_index,), diagnostics)
        return AggregationKind.MUTATED

    def _on_mcp_arguments_delta(
        self, aggregate: ResponseAggregate, event: MCPCallArgumentsDeltaEvent, diagnostics: list
    ) -> AggregationKind:
        item = self._item(aggregate, event)
        if item.mcp_arguments_done:
            raise _Rejected(AggregationKind.NOOP, DuplicateEvent(event.type, (event.output_index,)))
        item.mcp_argument_deltas.append(event.delta)
        return AggregationKind.MUTATED

    def _on_mcp_arguments_done(
        self, aggregate: ResponseAggregate, event: MCPCallArgumentsDoneEvent, diagnostics: list
    ) -> AggregationKind:
        item = self._item(aggregate, event)
        if item.mcp_arguments_done:
            raise _Rejected(AggregationKind.NOOP, DuplicateEvent(event.type, (event.output_index,)))
        item.mcp_arguments = event.arguments
        item.mcp_arguments_done = True
        return AggregationKind.MUTATED

    def _on_tool_status(self, aggregate: ResponseAggregate, event: Any, diagnostics: list) -> AggregationKind:
        item = self._item(aggregate, event)
        if item.tool_status in _FINAL_TOOL_STATUSES:
            raise _Rejected(AggregationKind.NOOP, DuplicateEvent(event.type, (event.output_index,)))
        item.tool_status = _TOOL_STATUS[type(event)]
        return AggregationKind.MUTATED

    def _on_partial_image(
        self, aggregate: ResponseAggregate, event: ImageGenerationCallPartialImageEvent, diagnostics: list
    ) -> AggregationKind:
        item = self._item(aggregate, event)
        if item.tool_status in _FINAL_TOOL_STATUSES:
            raise _Rejected(AggregationKind.NOOP, DuplicateEvent(event.type, (event.output_index,)))
        item.partial_images[event.partial_image_index] = event.partial_image_b64
        return AggregationKind.MUTATED

    # Reasoning

    def _on_summary_part(self, aggregate: ResponseAggregate, event: Any, diagnostics: list) -> AggregationKind:
        scope = (event.output_index, event.summary_index)
        item = self._item(aggregate, event)
        summary = self._summary(item, event)
        if summary.done:
            raise _Rejected(AggregationKind.NOOP, DuplicateEvent(event.type, scope))
        summary.part = event.part
        if isinstance(event, ReasoningSummaryPartDoneEvent):
            if not summary.buffer.done:
                self._finish(summary.buffer, event.part.text, event, scope, diagnostics)
            summary.done = True
        return AggregationKind.MUTATED

    def _on_summary_delta(self, aggregate: ResponseAggregate, event: Any, diagnostics: list) -> AggregationKind:
        scope = (event.output_index, event.summary_index)
        item = self._item(aggregate, event)
        summary = self._summary(item, event)
        if summary.done:
            raise _Rejected(AggregationKind.NOOP, DuplicateEvent(event.type, scope))
        fragment = text_fragment(event.delta)
        if fragment is None:
            return AggregationKind.NOOP
        self._append(summary.buffer, fragment, event, scope)
        return AggregationKind.MUTATED

    def _on_summary_done(self, aggregate: ResponseAggregate, event: Any, diagnostics: list) -> AggregationKind:
        scope = (event.output_index, event.summary_index)
        item = self._item(aggregate, event)
        summary = self._summary(item, event)
        if summary.done or summary.buffer.done:
            raise _Rejected(AggregationKind.NOOP, DuplicateEvent(event.type, scope))
        self._finish(summary.buffer, event.text, event, scope, diagnostics)
        return AggregationKind.MUTATED

    def _on_reasoning_delta(
        self, aggregate: ResponseAggregate, event: ReasoningDeltaEvent, diagnostics: list
    ) -> AggregationKind:
        scope = (event.output_index, event.content_index)
        item = self._item(aggregate, event)
        buffer = item.reasoning.setdefault(event.content_index, TextBuffer())
        fragment = text_fragment(event.delta)
        if fragment is None:
            if buffer.done:
                raise _Rejected(AggregationKind.NOOP, DuplicateEvent(event.type, scope))
            return AggregationKind.NOOP
        self._append(buffer, fragment, event, scope)
        return AggregationKind.MUTATED

    def _on_reasoning_done(
        self, aggregate: ResponseAggregate, event: ReasoningDoneEvent, diagnostics: list
    ) -> AggregationKind:
        scope = (event.output_index, event.content_index)
        item = self._item(aggregate, event)
        buffer = item.reasoning.setdefault(event.content_index, TextBuffer())
        if buffer.done:
            raise _Rejected(AggregationKind.NOOP, DuplicateEvent(event.type, scope))
        self._finish(buffer, event.text, event, scope, diagnostics)
        return AggregationKind.MUTATED


__all__ = [
    "DEFAULT_MAX_BUFFER_BYTES",
    "AggregationKind",
    "AggregationResult",
    "BufferLimitExceeded",
    "ContentPartState",
    "DecodeFailure",
    "Diagnostic",
    "DuplicateEvent",
    "LateEventAfterTerminal",
    "OutputItemState",
    "ResponseAggregate",
    "ResponseAggregator",
    "ResponseState",
    "SummaryState",
    "TextBuffer",
    "TextMismatch",
    "UnscopedEvent",
]

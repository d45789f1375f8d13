"""Response snapshot models embedded in streaming events.

These mirror the non-streaming response shape closely enough for the
aggregator; everything not declared here is retained through ``extra="allow"``.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr

from respwire.openai_client.values import OpaqueValue


class ContentPart(BaseModel):
    """Content part of a message item (``output_text`` or ``refusal``)."""

    model_config = ConfigDict(frozen=True, extra="allow")

    type: StrictStr
    text: str | None = None
    refusal: str | None = None
    annotations: list[OpaqueValue] | None = None


class SummaryPart(BaseModel):
    """Reasoning summary part."""

    model_config = ConfigDict(frozen=True, extra="allow")

    type: StrictStr
    text: str


class StreamOutputItem(BaseModel):
    """Output item as carried by ``response.output_item.*`` events and snapshots."""

    model_config = ConfigDict(frozen=True, extra="allow")

    id: StrictStr
    type: StrictStr
    status: str | None = None
    role: str | None = None
    content: list[ContentPart] | None = None
    summary: list[SummaryPart] | None = None
    # function_call items
    call_id: str | None = None
    name: str | None = None
    arguments: str | None = None

    @property
    def output_text(self) -> str:
        if not self.content:
            return ""
        return "".join(part.text or "" for part in self.content if part.type == "output_text")


class ResponseError(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")

    code: str | None = None
    message: str | None = None


class Usage(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")

    input_tokens: StrictInt | None = None
    output_tokens: StrictInt | None = None
    total_tokens: StrictInt | None = None


class ResponseModel(BaseModel):
    """Full response snapshot carried by the lifecycle events."""

    model_config = ConfigDict(frozen=True, extra="allow")

    id: StrictStr
    object: str = "response"
    created_at: int | float | None = None
    status: str | None = None
    model: str | None = None
    output: list[StreamOutputItem] = Field(default_factory=list)
    error: ResponseError | None = None
    incomplete_details: OpaqueValue = None
    usage: Usage | None = None

    @property
    def output_text(self) -> str:
        """Concatenated ``output_text`` content across message items."""

        return "".join(item.output_text for item in self.output if item.type == "message")


__all__ = [
    "ContentPart",
    "ResponseError",
    "ResponseModel",
    "StreamOutputItem",
    "SummaryPart",
    "Usage",
]

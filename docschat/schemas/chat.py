from __future__ import annotations
from typing import Annotated, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class ChatMessage(BaseModel):
    role: str = Field(..., pattern=r"^(user|assistant|system)$")
    content: str


class ChatRequest(BaseModel):
    """Body of ``POST /api/chat`` (single-shot)."""

    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())

    message: Optional[str] = None
    provider_id: Optional[str] = Field(default=None, alias="providerId")
    model_id: Optional[str] = Field(default=None, alias="modelId")
    # Prior turns; when present the last entry is expected to be the user message
    messages: Optional[List[ChatMessage]] = None


class ChatResponse(BaseModel):
    message: str
    provider: str
    model: str


class StreamChatRequest(BaseModel):
    """Body of ``POST /api/chat/stream``."""

    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())

    provider: str
    model_id: Optional[str] = Field(default=None, alias="modelId")
    messages: List[ChatMessage]
    max_tokens: Optional[int] = Field(default=None, ge=1, alias="maxTokens")


class DeltaEvent(BaseModel):
    type: Literal["delta"] = "delta"
    text: str


class DoneEvent(BaseModel):
    type: Literal["done"] = "done"


class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    error: str = "Stream error"


StreamEvent = Annotated[Union[DeltaEvent, DoneEvent, ErrorEvent], Field(discriminator="type")]

stream_event_adapter: TypeAdapter = TypeAdapter(StreamEvent)


def encode_event(event: Union[DeltaEvent, DoneEvent, ErrorEvent]) -> str:
    """Serialize one event as a newline-terminated NDJSON record."""
    return event.model_dump_json() + "\n"

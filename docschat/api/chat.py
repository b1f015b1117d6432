from fastapi import APIRouter, Depends, HTTPException
import logging
from fastapi.responses import StreamingResponse
from typing import AsyncIterator, List

from docschat.api.deps import get_app_settings, get_catalog, get_provider_router, rate_limited
from docschat.catalog import ProviderCatalog
from docschat.config import Settings
from docschat.errors import ProviderError
from docschat.providers.router import ProviderRouter
from docschat.schemas.catalog import ModelInfo
from docschat.schemas.chat import (
    ChatMessage,
    ChatRequest,
    ChatResponse,
    DeltaEvent,
    DoneEvent,
    ErrorEvent,
    StreamChatRequest,
    encode_event,
)

router = APIRouter()
logger = logging.getLogger(__name__)


def _max_tokens(model: ModelInfo, requested: int | None, settings: Settings) -> int:
    limit = requested or settings.default_max_tokens
    if model.max_tokens:
        limit = min(limit, model.max_tokens)
    return limit


def _with_user_turn(history: List[ChatMessage] | None, message: str) -> List[ChatMessage]:
    messages = list(history or [])
    last = messages[-1] if messages else None
    if last is None or last.role != "user" or last.content.strip() != message:
        messages.append(ChatMessage(role="user", content=message))
    return messages


@router.post("/chat", dependencies=[Depends(rate_limited)])
async def chat(
    request: ChatRequest,
    catalog: ProviderCatalog = Depends(get_catalog),
    providers: ProviderRouter = Depends(get_provider_router),
    settings: Settings = Depends(get_app_settings),
):
    """Single-shot chat: waits for the complete answer."""
    message = (request.message or "").strip()
    if not message:
        raise HTTPException(status_code=400, detail="Message is required")

    provider_id = request.provider_id
    model_id = request.model_id
    if provider_id is None:
        default = catalog.default_selection()
        provider_id = default.provider_id
        model_id = model_id or default.model_id
    # InvalidSelectionError is mapped to 400 by the app's exception handlers
    provider, model = catalog.validate(provider_id, model_id)

    messages = _with_user_turn(request.messages, message)
    logger.info("/chat provider=%s model=%s messages=%d", provider.id, model.id, len(messages))
    backend = providers.get_backend(provider.id)
    parts: List[str] = []
    try:
        async for text in backend.stream(model.id, messages, _max_tokens(model, None, settings)):
            parts.append(text)
    except ProviderError as e:
        raise HTTPException(status_code=502, detail=e.message) from e

    return ChatResponse(message="".join(parts), provider=provider.id, model=model.id).model_dump()


@router.post("/chat/stream", dependencies=[Depends(rate_limited)])
async def stream_chat(
    request: StreamChatRequest,
    catalog: ProviderCatalog = Depends(get_catalog),
    providers: ProviderRouter = Depends(get_provider_router),
    settings: Settings = Depends(get_app_settings),
):
    """Stream the answer as newline-delimited JSON events (delta/done/error)."""
    if not request.messages:
        raise HTTPException(status_code=400, detail="Messages are required")
    provider, model = catalog.validate(request.provider, request.model_id)
    backend = providers.get_backend(provider.id)
    max_tokens = _max_tokens(model, request.max_tokens, settings)
    logger.info("/chat/stream start provider=%s model=%s messages=%d", provider.id, model.id, len(request.messages))

    async def generator() -> AsyncIterator[str]:
        # Headers are already sent; failures become an in-band error event
        try:
            async for text in backend.stream(model.id, request.messages, max_tokens):
                yield encode_event(DeltaEvent(text=text))
        except ProviderError as e:
            yield encode_event(ErrorEvent(error=e.message))
            return
        except Exception:
            logger.exception("/chat/stream failed provider=%s model=%s", provider.id, model.id)
            yield encode_event(ErrorEvent(error="Internal server error"))
            return
        yield encode_event(DoneEvent())

    return StreamingResponse(
        generator(),
        media_type="application/x-ndjson",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
    )

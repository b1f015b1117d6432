"""Sends one chat turn and turns the reply into a transcript entry."""
from __future__ import annotations
import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from docschat.client.selection import CatalogStore
from docschat.client.session import ChatSession, ConversationTurn
from docschat.client.stream import NO_RESPONSE, DeltaCallback, StreamConsumer, finalize
from docschat.config import Settings, get_settings
from docschat.errors import (
    DispatchInProgressError,
    DocsChatError,
    EmptyMessageError,
    InvalidSelectionError,
    RequestFailedError,
)
from docschat.schemas.catalog import ModelInfo, Provider
from docschat.schemas.chat import ChatMessage

logger = logging.getLogger(__name__)

ERROR_PREFIX = "(error) "


def make_http_client(settings: Optional[Settings] = None, **kwargs: Any) -> httpx.AsyncClient:
    settings = settings or get_settings()
    kwargs.setdefault("base_url", settings.api_base)
    kwargs.setdefault("timeout", httpx.Timeout(settings.request_timeout, connect=10.0))
    return httpx.AsyncClient(**kwargs)


async def raise_for_chat_status(resp: httpx.Response) -> None:
    """Raise RequestFailedError, preferring the server's ``{"error": ...}`` message."""
    if resp.is_success:
        return
    await resp.aread()
    message = None
    try:
        body = resp.json()
        if isinstance(body, dict) and body.get("error"):
            message = str(body["error"])
    except ValueError:
        pass
    raise RequestFailedError(message or f"{resp.status_code} {resp.reason_phrase}", status=resp.status_code)


class ChatDispatcher:
    def __init__(self, client: httpx.AsyncClient, store: CatalogStore, session: ChatSession) -> None:
        self.client = client
        self.store = store
        self.session = session
        self.streaming_content = ""
        self._task: Optional[asyncio.Task] = None
        self._cancelled = False

    @property
    def in_flight(self) -> bool:
        return self._task is not None

    def build_messages(self, new_message: str, instructions: Optional[str] = None) -> List[ChatMessage]:
        """``[system from instructions] + history + [new user turn]``."""
        messages: List[ChatMessage] = []
        if instructions and instructions.strip():
            messages.append(ChatMessage(role="system", content=instructions.strip()))
        messages.extend(self.session.history())
        messages.append(ChatMessage(role="user", content=new_message))
        return messages

    async def send(
        self,
        new_message: str,
        instructions: Optional[str] = None,
        on_delta: Optional[DeltaCallback] = None,
    ) -> Optional[ConversationTurn]:
        """Send ``new_message`` and append the user and assistant turns.

        Validation problems raise before anything is sent or recorded. Once the
        request is issued, failures become an ``(error) ...`` assistant turn.
        Returns the assistant turn, or None when the request was cancelled.
        """
        if self.in_flight:
            raise DispatchInProgressError()
        text = (new_message or "").strip()
        if not text:
            raise EmptyMessageError()
        selection = self.store.selection
        provider = self.store.selected_provider
        model = self.store.selected_model
        if (
            provider is None
            or model is None
            or not self.store.catalog.is_valid_selection(selection.provider_id, selection.model_id)
        ):
            raise InvalidSelectionError()

        messages = self.build_messages(text, instructions)
        self.session.add_turn("user", text)
        self._cancelled = False
        self._task = asyncio.ensure_future(self._dispatch(provider, model, messages, on_delta))
        try:
            content = await self._task
        except asyncio.CancelledError:
            if not self._cancelled:
                # The caller itself was cancelled; take the request down with it
                self._task.cancel()
                raise
            logger.info("Chat request cancelled provider=%s model=%s", provider.id, model.id)
            return None
        except (httpx.HTTPError, DocsChatError, ValueError) as e:
            reason = getattr(e, "message", None) or str(e) or e.__class__.__name__
            logger.warning("Chat request failed provider=%s model=%s: %s", provider.id, model.id, reason)
            return self.session.add_turn("assistant", ERROR_PREFIX + reason, synthetic=True)
        except Exception as e:
            logger.exception("Unexpected error in chat request provider=%s model=%s", provider.id, model.id)
            return self.session.add_turn("assistant", ERROR_PREFIX + (str(e) or e.__class__.__name__), synthetic=True)
        finally:
            self._task = None
            self.streaming_content = ""
        return self.session.add_turn("assistant", content, synthetic=content == NO_RESPONSE)

    def cancel(self) -> bool:
        """Abort the in-flight request. Returns False when there is nothing to cancel."""
        if self._task is None or self._task.done():
            return False
        self._cancelled = self._task.cancel()
        return self._cancelled

    async def _dispatch(
        self,
        provider: Provider,
        model: ModelInfo,
        messages: List[ChatMessage],
        on_delta: Optional[DeltaCallback],
    ) -> str:
        if provider.supports_streaming:
            return await self._stream(provider, model, messages, on_delta)
        return await self._single_shot(provider, model, messages)

    async def _stream(
        self,
        provider: Provider,
        model: ModelInfo,
        messages: List[ChatMessage],
        on_delta: Optional[DeltaCallback],
    ) -> str:
        def _update(content: str) -> None:
            self.streaming_content = content
            if on_delta is not None:
                on_delta(content)

        payload: Dict[str, Any] = {
            "provider": provider.id,
            "modelId": model.id,
            "messages": [m.model_dump() for m in messages],
        }
        # The context manager closes the response on every exit path, cancellation included
        async with self.client.stream("POST", "/api/chat/stream", json=payload) as resp:
            await raise_for_chat_status(resp)
            return await StreamConsumer(on_delta=_update).consume(resp.aiter_bytes())

    async def _single_shot(self, provider: Provider, model: ModelInfo, messages: List[ChatMessage]) -> str:
        payload: Dict[str, Any] = {
            "message": messages[-1].content,
            "providerId": provider.id,
            "modelId": model.id,
            "messages": [m.model_dump() for m in messages],
        }
        resp = await self.client.post("/api/chat", json=payload)
        await raise_for_chat_status(resp)
        body = resp.json()
        return finalize(str(body.get("message") or "") if isinstance(body, dict) else "")

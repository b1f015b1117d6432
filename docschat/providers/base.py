from __future__ import annotations
import asyncio
import logging
from typing import AsyncIterator, List, Optional, Protocol, Tuple
import httpx

from docschat.config import Settings, get_settings
from docschat.errors import ProviderError
from docschat.schemas.chat import ChatMessage

logger = logging.getLogger(__name__)

# Retrying these cannot succeed
NON_RETRYABLE_STATUSES = (400, 401, 402, 403, 404)


class ChatBackend(Protocol):
    id: str

    def stream(self, model: str, messages: List[ChatMessage], max_tokens: int) -> AsyncIterator[str]:
        """Yield assistant text fragments in order; raise ProviderError on failure."""
        ...


def friendly_error(label: str, status: Optional[int], detail: str) -> str:
    if status == 429:
        return f"[{label}] Too many requests. You have hit the rate limit. Please wait a moment and try again."
    if status in (401, 403):
        return f"[{label}] Authentication/permission issue. Check your API key and model access."
    if status == 402:
        return f"[{label}] Payment required. Please enable billing or choose another model."
    if status == 400:
        return f"[{label}] Bad request. Please verify the model id and payload parameters."
    return f"[{label}] request failed: {detail}"


def error_details(exc: Exception) -> Tuple[Optional[int], str]:
    if isinstance(exc, httpx.HTTPStatusError):
        try:
            body = exc.response.text
        except httpx.ResponseNotRead:
            body = ""
        return exc.response.status_code, body or str(exc)
    return None, str(exc) or exc.__class__.__name__


async def ensure_ok(resp: httpx.Response) -> None:
    """raise_for_status, reading the body first so it can be shown to the user."""
    if resp.is_error:
        await resp.aread()
    resp.raise_for_status()


class HTTPBackend:
    """Retry/backoff and mock fallback shared by the upstream backends.

    Subclasses implement ``_request`` against an open client and ``_api_key``.
    A request is only retried while no text has been yielded, so the caller
    never sees duplicated fragments.
    """

    id = "base"
    label = "base"

    def __init__(self, settings: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.settings = settings or get_settings()
        self._transport = transport

    def _api_key(self) -> Optional[str]:
        return None

    def _timeout(self) -> httpx.Timeout:
        return httpx.Timeout(connect=10.0, read=120.0, write=30.0, pool=10.0)

    def _request(self, client: httpx.AsyncClient, model: str, messages: List[ChatMessage], max_tokens: int) -> AsyncIterator[str]:
        raise NotImplementedError

    async def stream(self, model: str, messages: List[ChatMessage], max_tokens: int) -> AsyncIterator[str]:
        if not self._api_key():
            async for chunk in self._mock_stream(messages):
                yield chunk
            return

        max_attempts = max(1, self.settings.upstream_max_attempts)
        backoff = self.settings.upstream_backoff
        for attempt in range(1, max_attempts + 1):
            emitted = False
            try:
                async with httpx.AsyncClient(timeout=self._timeout(), trust_env=True, transport=self._transport) as client:
                    async for text in self._request(client, model, messages, max_tokens):
                        emitted = True
                        yield text
                return
            except httpx.HTTPError as e:
                status, detail = error_details(e)
                retryable = not emitted and status not in NON_RETRYABLE_STATUSES
                if retryable and attempt < max_attempts:
                    logger.warning("%s attempt %d/%d failed: %s", self.label, attempt, max_attempts, e)
                    await asyncio.sleep(backoff)
                    backoff *= 2
                    continue
                logger.error("%s request failed status=%s: %s", self.label, status, detail)
                raise ProviderError(friendly_error(self.label, status, detail), status=status) from e

    async def _mock_stream(self, messages: List[ChatMessage]) -> AsyncIterator[str]:
        last = messages[-1].content if messages else ""
        words = f"[{self.id}-mock] You said: '{last}'".split()
        for i, word in enumerate(words):
            yield word + (" " if i < len(words) - 1 else "")
            if self.settings.mock_delay:
                await asyncio.sleep(self.settings.mock_delay)

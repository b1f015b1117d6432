from __future__ import annotations
import asyncio
from typing import AsyncIterator, Iterable, List, Optional

import httpx
import pytest
from fastapi.testclient import TestClient

from docschat.catalog import build_catalog
from docschat.config import Settings
from docschat.errors import ProviderError
from docschat.main import create_app
from docschat.providers.router import ProviderRouter
from docschat.schemas.chat import ChatMessage


def make_settings(**overrides) -> Settings:
    values = dict(
        anthropic_api_key=None,
        openai_api_key=None,
        google_api_key=None,
        gemini_api_key=None,
        granite_base_url=None,
        granite_api_key=None,
        mock_delay=0,
        upstream_backoff=0,
        rate_limit_per_minute=0,
        log_level="WARNING",
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


class StubBackend:
    """Scripted upstream backend: yields ``texts`` then optionally raises ``error``."""

    def __init__(self, id: str, texts: Iterable[str] = ("Hello", " world"), error: Optional[Exception] = None) -> None:
        self.id = id
        self.texts = list(texts)
        self.error = error
        self.calls: List[dict] = []

    async def stream(self, model: str, messages: List[ChatMessage], max_tokens: int) -> AsyncIterator[str]:
        self.calls.append({"model": model, "messages": messages, "max_tokens": max_tokens})
        for text in self.texts:
            yield text
        if self.error is not None:
            raise self.error


class ChunkedStream(httpx.AsyncByteStream):
    """Response body delivered in the given chunks, optionally hanging afterwards."""

    def __init__(self, chunks: Iterable[bytes], hang: bool = False) -> None:
        self.chunks = list(chunks)
        self.hang = hang
        self.closed = False

    async def __aiter__(self) -> AsyncIterator[bytes]:
        for chunk in self.chunks:
            yield chunk
            await asyncio.sleep(0)
        if self.hang:
            await asyncio.Event().wait()

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def stub_backends():
    return {pid: StubBackend(pid) for pid in ("anthropic", "openai", "google", "ibm")}


@pytest.fixture
def app(settings, stub_backends):
    return create_app(settings=settings, catalog=build_catalog(), provider_router=ProviderRouter(settings, backends=stub_backends))


@pytest.fixture
def client(app):
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c


@pytest.fixture
def provider_error():
    return ProviderError("[Stub] upstream exploded", status=500)

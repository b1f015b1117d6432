from __future__ import annotations
import json
import logging
from typing import AsyncIterator, Dict, List, Optional
import httpx

from docschat.providers.base import HTTPBackend, ensure_ok
from docschat.schemas.chat import ChatMessage

logger = logging.getLogger(__name__)


class OpenAIProvider(HTTPBackend):
    """OpenAI Chat Completions with ``stream: true`` (server-sent events)."""

    id = "openai"
    label = "OpenAI"
    url = "https://api.openai.com/v1/chat/completions"

    def _api_key(self) -> Optional[str]:
        return self.settings.openai_api_key

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key()}",
            "Content-Type": "application/json",
        }

    async def _request(self, client: httpx.AsyncClient, model: str, messages: List[ChatMessage], max_tokens: int) -> AsyncIterator[str]:
        payload = {
            "model": model,
            "messages": [m.model_dump() for m in messages if m.content.strip()],
            "max_tokens": max_tokens,
            "stream": True,
        }
        async with client.stream("POST", self.url, headers=self._headers(), json=payload) as resp:
            await ensure_ok(resp)
            async for line in resp.aiter_lines():
                if not line.startswith("data: "):
                    continue
                data = line[len("data: "):]
                if data.strip() == "[DONE]":
                    return
                try:
                    obj = json.loads(data)
                except json.JSONDecodeError:
                    logger.debug("skipping malformed %s chunk: %r", self.label, data)
                    continue
                choices = obj.get("choices") or [{}]
                content = (choices[0].get("delta") or {}).get("content")
                if content:
                    yield content

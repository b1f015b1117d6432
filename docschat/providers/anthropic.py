from __future__ import annotations
import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional
import httpx

from docschat.errors import ProviderError
from docschat.providers.base import HTTPBackend, ensure_ok
from docschat.schemas.chat import ChatMessage

logger = logging.getLogger(__name__)

API_URL = "https://api.anthropic.com/v1/messages"


def to_anthropic_payload(model: str, messages: List[ChatMessage], max_tokens: int) -> Dict[str, Any]:
    # System turns go into the top-level "system" field
    turns = []
    system_text_parts: List[str] = []
    for m in messages:
        text = (m.content or "").strip()
        if not text:
            continue
        if m.role == "system":
            system_text_parts.append(text)
            continue
        role = "assistant" if m.role == "assistant" else "user"
        turns.append({"role": role, "content": [{"type": "text", "text": text}]})

    payload: Dict[str, Any] = {
        "model": model,
        "messages": turns,
        "max_tokens": max_tokens,
        "stream": True,
    }
    if system_text_parts:
        payload["system"] = "\n\n".join(system_text_parts)
    return payload


class AnthropicProvider(HTTPBackend):
    id = "anthropic"
    label = "Anthropic"

    def _api_key(self) -> Optional[str]:
        return self.settings.anthropic_api_key

    async def _request(self, client: httpx.AsyncClient, model: str, messages: List[ChatMessage], max_tokens: int) -> AsyncIterator[str]:
        headers = {
            "x-api-key": self._api_key() or "",
            "anthropic-version": "2023-06-01",
            "content-type": "application/json",
            "accept": "text/event-stream",
        }
        payload = to_anthropic_payload(model, messages, max_tokens)
        async with client.stream("POST", API_URL, headers=headers, json=payload) as resp:
            await ensure_ok(resp)
            async for line in resp.aiter_lines():
                if not line.startswith("data: "):
                    continue
                try:
                    obj = json.loads(line[len("data: "):])
                except json.JSONDecodeError:
                    logger.debug("skipping malformed anthropic event: %r", line)
                    continue
                etype = obj.get("type")
                # message_start, content_block_start, content_block_delta {type:text_delta,text}, message_stop
                if etype == "content_block_delta":
                    delta = obj.get("delta") or {}
                    if delta.get("type") == "text_delta" and delta.get("text"):
                        yield delta["text"]
                elif etype == "message_stop":
                    return
                elif etype == "error":
                    err = obj.get("error") or {}
                    raise ProviderError(f"[{self.label}] {err.get('message') or 'stream error'}")

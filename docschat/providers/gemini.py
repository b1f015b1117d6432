from __future__ import annotations
from typing import Any, AsyncIterator, Dict, List, Optional
import httpx

from docschat.providers.base import HTTPBackend, ensure_ok
from docschat.schemas.chat import ChatMessage

BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


def to_gemini_payload(messages: List[ChatMessage], max_tokens: int) -> Dict[str, Any]:
    contents: List[Dict[str, Any]] = []
    system_parts: List[Dict[str, str]] = []
    for m in messages:
        text = (m.content or "").strip()
        if not text:
            continue
        if m.role == "system":
            system_parts.append({"text": text})
            continue
        # Gemini roles: "user" and "model"
        role = "model" if m.role == "assistant" else "user"
        contents.append({"role": role, "parts": [{"text": text}]})
    payload: Dict[str, Any] = {
        "contents": contents,
        "generationConfig": {"maxOutputTokens": max_tokens},
    }
    if system_parts:
        payload["systemInstruction"] = {"parts": system_parts}
    return payload


class GeminiProvider(HTTPBackend):
    """Google Gemini via the non-streaming ``generateContent`` call.

    The whole answer arrives at once and is yielded part by part.
    """

    id = "google"
    label = "Gemini"

    def _api_key(self) -> Optional[str]:
        return self.settings.google_api_key or self.settings.gemini_api_key

    def _timeout(self) -> httpx.Timeout:
        return httpx.Timeout(connect=10.0, read=60.0, write=30.0, pool=10.0)

    async def _request(self, client: httpx.AsyncClient, model: str, messages: List[ChatMessage], max_tokens: int) -> AsyncIterator[str]:
        url = f"{BASE_URL}/models/{model}:generateContent"
        # Header instead of ?key= keeps the key out of request logs
        headers = {"x-goog-api-key": self._api_key() or ""}
        resp = await client.post(url, headers=headers, json=to_gemini_payload(messages, max_tokens))
        await ensure_ok(resp)
        candidates = resp.json().get("candidates") or []
        if not candidates:
            return
        for part in candidates[0].get("content", {}).get("parts", []):
            text = part.get("text")
            if text:
                yield text

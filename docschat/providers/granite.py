from __future__ import annotations
from typing import Dict, Optional

from docschat.providers.openai import OpenAIProvider


class GraniteProvider(OpenAIProvider):
    """IBM Granite served behind an OpenAI-compatible endpoint (vLLM, Ollama)."""

    id = "ibm"
    label = "Granite"

    @property
    def url(self) -> str:  # type: ignore[override]
        return (self.settings.granite_base_url or "").rstrip("/") + "/v1/chat/completions"

    def _api_key(self) -> Optional[str]:
        # Local servers usually run without auth; the base URL is what enables the backend
        if not self.settings.granite_base_url:
            return None
        return self.settings.granite_api_key or "none"

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.settings.granite_api_key:
            headers["Authorization"] = f"Bearer {self.settings.granite_api_key}"
        return headers

from __future__ import annotations
from typing import Dict, Optional

from docschat.config import Settings, get_settings
from docschat.providers.anthropic import AnthropicProvider
from docschat.providers.base import ChatBackend
from docschat.providers.gemini import GeminiProvider
from docschat.providers.granite import GraniteProvider
from docschat.providers.openai import OpenAIProvider


class ProviderRouter:
    """Maps catalog provider ids to upstream backends."""

    def __init__(self, settings: Optional[Settings] = None, backends: Optional[Dict[str, ChatBackend]] = None) -> None:
        settings = settings or get_settings()
        if backends is None:
            backends = {
                "anthropic": AnthropicProvider(settings),
                "openai": OpenAIProvider(settings),
                "google": GeminiProvider(settings),
                "ibm": GraniteProvider(settings),
            }
        self.backends = backends

    def get_backend(self, provider_id: str) -> ChatBackend:
        try:
            return self.backends[provider_id]
        except KeyError:
            raise LookupError(f"No backend registered for provider {provider_id}") from None

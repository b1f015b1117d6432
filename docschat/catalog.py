"""Static provider/model catalog.

The catalog is built once and never mutated afterwards, so a single instance
can be shared by every request handler and client object without locking.
"""
from __future__ import annotations
from typing import Iterable, List, Optional, Sequence, Tuple

from docschat.errors import CatalogConfigError, InvalidSelectionError
from docschat.schemas.catalog import ModelInfo, Provider, Selection


DEFAULT_PROVIDERS: Tuple[Provider, ...] = (
    Provider(
        id="anthropic",
        name="Anthropic",
        description="Claude family of models for conversational AI",
        is_enabled=True,
        supports_streaming=True,
        models=(
            ModelInfo(
                id="claude-3-5-sonnet-20241022",
                name="Claude 3.5 Sonnet",
                description="Most capable model for complex reasoning and analysis",
                max_tokens=200_000,
                supports_functions=True,
                is_default=True,
            ),
            ModelInfo(
                id="claude-3-5-haiku-20241022",
                name="Claude 3.5 Haiku",
                description="Fastest model for quick responses",
                max_tokens=200_000,
                supports_functions=True,
            ),
            ModelInfo(
                id="claude-3-opus-20240229",
                name="Claude 3 Opus",
                description="Most powerful model for complex tasks",
                max_tokens=200_000,
                supports_functions=True,
            ),
        ),
    ),
    Provider(
        id="openai",
        name="OpenAI",
        description="GPT models for natural language processing",
        is_enabled=True,
        models=(
            ModelInfo(id="gpt-4o", name="GPT-4o", description="Latest multimodal flagship model", max_tokens=128_000, supports_functions=True),
            ModelInfo(id="gpt-4o-mini", name="GPT-4o Mini", description="Affordable and intelligent small model", max_tokens=128_000, supports_functions=True),
            ModelInfo(id="gpt-4-turbo", name="GPT-4 Turbo", description="High-performance model with vision capabilities", max_tokens=128_000, supports_functions=True),
        ),
    ),
    Provider(
        id="google",
        name="Google",
        description="Gemini models for multimodal AI tasks",
        is_enabled=True,
        models=(
            ModelInfo(id="gemini-1.5-pro", name="Gemini 1.5 Pro", description="Advanced reasoning and code generation", max_tokens=2_097_152, supports_functions=True),
            ModelInfo(id="gemini-1.5-flash", name="Gemini 1.5 Flash", description="Fast and efficient model", max_tokens=1_048_576, supports_functions=True),
        ),
    ),
    Provider(
        id="ibm",
        name="IBM",
        description="Granite models for enterprise applications",
        is_enabled=False,  # requires a self-hosted endpoint
        supports_streaming=True,
        models=(
            ModelInfo(id="granite-3.0-8b-instruct", name="Granite 3.0 8B Instruct", description="Enterprise-focused instruction-following model", max_tokens=4096),
            ModelInfo(id="granite-3.0-2b-instruct", name="Granite 3.0 2B Instruct", description="Lightweight enterprise model", max_tokens=4096),
        ),
    ),
)

DEFAULT_SELECTION = Selection(provider_id="anthropic", model_id="claude-3-5-sonnet-20241022")


class ProviderCatalog:
    def __init__(self, providers: Iterable[Provider] = DEFAULT_PROVIDERS, default: Optional[Selection] = None) -> None:
        self._providers: Tuple[Provider, ...] = tuple(providers)
        self._by_id = {}
        for provider in self._providers:
            self._check(provider)
            self._by_id[provider.id] = provider
        self._default = default

    def _check(self, provider: Provider) -> None:
        if provider.id in self._by_id:
            raise CatalogConfigError(f"Duplicate provider id: {provider.id}")
        if not provider.models:
            raise CatalogConfigError(f"Provider {provider.id} has no models")
        seen = set()
        for model in provider.models:
            if model.id in seen:
                raise CatalogConfigError(f"Duplicate model id {model.id} under provider {provider.id}")
            seen.add(model.id)
        if sum(1 for m in provider.models if m.is_default) > 1:
            raise CatalogConfigError(f"Provider {provider.id} flags more than one default model")

    def list_providers(self) -> List[Provider]:
        return list(self._providers)

    def available_providers(self) -> List[Provider]:
        return [p for p in self._providers if p.is_enabled]

    def get_provider(self, provider_id: Optional[str]) -> Optional[Provider]:
        if provider_id is None:
            return None
        return self._by_id.get(provider_id)

    def models_for(self, provider_id: str) -> List[ModelInfo]:
        provider = self.get_provider(provider_id)
        return list(provider.models) if provider else []

    def is_valid_selection(self, provider_id: Optional[str], model_id: Optional[str]) -> bool:
        provider = self.get_provider(provider_id)
        if not provider or not provider.is_enabled:
            return False
        return provider.find_model(model_id) is not None

    def default_model_for(self, provider_id: str) -> Optional[ModelInfo]:
        provider = self.get_provider(provider_id)
        if not provider:
            return None
        return next((m for m in provider.models if m.is_default), None) or next(iter(provider.models), None)

    def default_selection(self) -> Selection:
        """Configured default if still valid, else the first enabled provider's default model."""
        if self._default is not None and self.is_valid_selection(self._default.provider_id, self._default.model_id):
            return self._default
        for provider in self.available_providers():
            model = self.default_model_for(provider.id)
            if model is not None:
                return Selection(provider_id=provider.id, model_id=model.id)
        return Selection()

    def validate(self, provider_id: Optional[str], model_id: Optional[str] = None) -> Tuple[Provider, ModelInfo]:
        """Resolve a pair for an outgoing request; a missing model means the provider default."""
        provider = self.get_provider(provider_id)
        if not provider or not provider.is_enabled:
            raise InvalidSelectionError()
        model = provider.find_model(model_id) if model_id else self.default_model_for(provider.id)
        if model is None:
            raise InvalidSelectionError()
        return provider, model


def build_catalog(providers: Sequence[Provider] = DEFAULT_PROVIDERS) -> ProviderCatalog:
    default = DEFAULT_SELECTION if providers is DEFAULT_PROVIDERS else None
    return ProviderCatalog(providers, default=default)

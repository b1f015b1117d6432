from __future__ import annotations
import logging
from typing import List, Optional

import httpx

from docschat.catalog import ProviderCatalog
from docschat.errors import InvalidSelectionError
from docschat.schemas.catalog import ModelInfo, Provider, ProvidersResponse, Selection

logger = logging.getLogger(__name__)


class CatalogStore:
    """Client-side catalog plus the user's current provider/model selection."""

    def __init__(self, catalog: ProviderCatalog, selection: Optional[Selection] = None) -> None:
        self.catalog = catalog
        self._selection = Selection()
        if selection is not None and not selection.is_empty:
            self.set_selection(selection.provider_id, selection.model_id)
        else:
            self._selection = catalog.default_selection()

    @classmethod
    async def load(cls, client: httpx.AsyncClient) -> "CatalogStore":
        """Fetch ``/api/providers/models`` and pick the initial selection.

        The server's ``defaultSelection`` wins when it names an enabled
        provider and one of its models; otherwise the first enabled provider
        and its default model are used.
        """
        resp = await client.get("/api/providers/models")
        resp.raise_for_status()
        body = ProvidersResponse.model_validate(resp.json())
        store = cls(ProviderCatalog(body.providers))
        default = body.default_selection
        if default is not None and store.catalog.is_valid_selection(default.provider_id, default.model_id):
            store._selection = default
        logger.info("Loaded %d providers, selection=%s/%s", len(body.providers), store.selection.provider_id, store.selection.model_id)
        return store

    @property
    def selection(self) -> Selection:
        return self._selection

    @property
    def selected_provider(self) -> Optional[Provider]:
        return self.catalog.get_provider(self._selection.provider_id)

    @property
    def selected_model(self) -> Optional[ModelInfo]:
        provider = self.selected_provider
        return provider.find_model(self._selection.model_id) if provider else None

    def available_providers(self) -> List[Provider]:
        return self.catalog.available_providers()

    def available_models(self) -> List[ModelInfo]:
        provider = self.selected_provider
        return list(provider.models) if provider else []

    def select_provider(self, provider_id: str) -> Selection:
        """Switch provider, keeping the model if the new provider also has it, else its default."""
        provider = self.catalog.get_provider(provider_id)
        if provider is None or not provider.is_enabled:
            raise InvalidSelectionError("Provider not found or not enabled")
        model = provider.find_model(self._selection.model_id) or self.catalog.default_model_for(provider.id)
        if model is None:
            raise InvalidSelectionError("Provider has no models")
        self._selection = Selection(provider_id=provider.id, model_id=model.id)
        return self._selection

    def select_model(self, model_id: str) -> Selection:
        provider = self.selected_provider
        if provider is None:
            raise InvalidSelectionError("No provider selected")
        if provider.find_model(model_id) is None:
            raise InvalidSelectionError("Model not found in selected provider")
        self._selection = Selection(provider_id=provider.id, model_id=model_id)
        return self._selection

    def set_selection(self, provider_id: Optional[str], model_id: Optional[str]) -> Selection:
        if not self.catalog.is_valid_selection(provider_id, model_id):
            raise InvalidSelectionError()
        self._selection = Selection(provider_id=provider_id, model_id=model_id)
        return self._selection

    def reset(self) -> None:
        self._selection = self.catalog.default_selection()

from fastapi import APIRouter, Depends, HTTPException
from typing import Any, Dict

from docschat.api.deps import get_catalog
from docschat.catalog import ProviderCatalog
from docschat.schemas.catalog import ProviderModelsResponse, ProvidersResponse

router = APIRouter()


@router.get("/providers/models")
async def get_providers_and_models(catalog: ProviderCatalog = Depends(get_catalog)) -> Dict[str, Any]:
    """All providers (enabled and disabled) plus the default selection."""
    default = catalog.default_selection()
    body = ProvidersResponse(
        providers=catalog.list_providers(),
        default_selection=None if default.is_empty else default,
    )
    return body.model_dump(by_alias=True, exclude_none=True)


@router.get("/providers/{provider_id}/models")
async def get_provider_models(provider_id: str, catalog: ProviderCatalog = Depends(get_catalog)) -> Dict[str, Any]:
    provider = catalog.get_provider(provider_id)
    if provider is None:
        raise HTTPException(status_code=404, detail="Provider not found")
    body = ProviderModelsResponse(provider=provider.id, models=list(provider.models))
    return body.model_dump(by_alias=True, exclude_none=True)

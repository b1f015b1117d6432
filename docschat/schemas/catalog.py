from __future__ import annotations
from typing import List, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field


class ModelInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    name: str
    description: Optional[str] = None
    max_tokens: Optional[int] = Field(default=None, gt=0, alias="maxTokens")
    supports_functions: bool = Field(default=False, alias="supportsFunctions")
    is_default: bool = Field(default=False, alias="isDefault")


class Provider(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    name: str
    description: Optional[str] = None
    is_enabled: bool = Field(default=True, alias="isEnabled")
    # Chooses the NDJSON stream endpoint over the single-shot one
    supports_streaming: bool = Field(default=False, alias="supportsStreaming")
    models: Tuple[ModelInfo, ...] = ()

    def find_model(self, model_id: Optional[str]) -> Optional[ModelInfo]:
        return next((m for m in self.models if m.id == model_id), None)


class Selection(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True, protected_namespaces=())

    provider_id: Optional[str] = Field(default=None, alias="providerId")
    model_id: Optional[str] = Field(default=None, alias="modelId")

    @property
    def is_empty(self) -> bool:
        return self.provider_id is None or self.model_id is None


class ProvidersResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    providers: List[Provider]
    default_selection: Optional[Selection] = Field(default=None, alias="defaultSelection")


class ProviderModelsResponse(BaseModel):
    provider: str
    models: List[ModelInfo]

from __future__ import annotations
from fastapi import Request

from docschat.catalog import ProviderCatalog
from docschat.config import Settings
from docschat.core.ratelimit import RateLimiter
from docschat.providers.router import ProviderRouter


def get_catalog(request: Request) -> ProviderCatalog:
    return request.app.state.catalog


def get_provider_router(request: Request) -> ProviderRouter:
    return request.app.state.provider_router


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def rate_limited(request: Request) -> None:
    limiter: RateLimiter = request.app.state.rate_limiter
    limiter.enforce(request)

import logging
import time
from typing import Optional

from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import Settings, get_settings

# API routers
from .api.providers import router as providers_router
from .api.chat import router as chat_router
from .api.health import router as health_router
from .catalog import ProviderCatalog, build_catalog
from .core.logging import setup_logging
from .core.ratelimit import RateLimiter
from .errors import DocsChatError
from .providers.router import ProviderRouter

logger = logging.getLogger(__name__)


def _error(status_code: int, message: str, headers=None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message}, headers=headers)


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    loc = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    return f"Invalid request: {loc}: {first.get('msg')}" if loc else f"Invalid request: {first.get('msg')}"


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException):
        return _error(exc.status_code, str(exc.detail), getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError):
        return _error(400, _validation_message(exc))

    @app.exception_handler(DocsChatError)
    async def _domain_error(request: Request, exc: DocsChatError):
        return _error(exc.status_code, exc.message)

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error(500, "Internal server error")


def create_app(
    settings: Optional[Settings] = None,
    catalog: Optional[ProviderCatalog] = None,
    provider_router: Optional[ProviderRouter] = None,
) -> FastAPI:
    settings = settings or get_settings()
    # Setup logging early
    setup_logging(settings.log_level)
    app = FastAPI(title="DocsChat Server", version="0.1.0")

    app.state.settings = settings
    app.state.catalog = catalog or build_catalog()
    app.state.provider_router = provider_router or ProviderRouter(settings)
    app.state.rate_limiter = RateLimiter(limit=settings.rate_limit_per_minute, window_seconds=60)
    app.state.started_at = time.monotonic()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[str(o).rstrip("/") for o in settings.allowed_origins],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    api = APIRouter()
    api.include_router(health_router)
    api.include_router(providers_router)
    api.include_router(chat_router)
    app.include_router(api, prefix="/api")

    install_error_handlers(app)

    # Registered last so it only sees paths no other route matched
    @app.api_route("/{path:path}", methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"], include_in_schema=False)
    async def not_found(path: str):
        raise HTTPException(status_code=404, detail="Route not found")

    return app

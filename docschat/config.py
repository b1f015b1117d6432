from functools import lru_cache
from pydantic import AnyHttpUrl
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional


class Settings(BaseSettings):
    server_host: str = "127.0.0.1"
    server_port: int = 3001
    # Vite dev server and the packaged desktop shell
    allowed_origins: List[AnyHttpUrl] = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]  # type: ignore
    log_level: str = "INFO"

    # Upstream provider credentials; a missing key switches that backend to its mock stream
    anthropic_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    google_api_key: Optional[str] = None
    gemini_api_key: Optional[str] = None
    # IBM Granite is reached through any OpenAI-compatible server (vLLM, Ollama, watsonx proxy)
    granite_base_url: Optional[str] = None
    granite_api_key: Optional[str] = None

    upstream_max_attempts: int = 3
    upstream_backoff: float = 0.8
    mock_delay: float = 0.05
    default_max_tokens: int = 1024
    rate_limit_per_minute: int = 30

    # Client side
    api_base: str = "http://localhost:3001"
    request_timeout: float = 120.0

    model_config = SettingsConfigDict(
        env_prefix="",
        case_sensitive=False,
        env_file=".env",
        extra="ignore",  # ignore env vars not defined as fields
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()

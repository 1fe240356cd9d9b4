"""
Configuration Management Module

Configures application parameters via environment variables or .env file.
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application Configuration Class

    All configuration items can be overridden by environment variables, with names matching fields (uppercase).
    """

    # Application Config
    APP_NAME: str = "Gemini Proxy"
    DEBUG: bool = False

    # Server Config
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Upstream Config
    GEMINI_BASE_URL: str = "https://generativelanguage.googleapis.com"
    GEMINI_API_VERSION: str = "v1beta"
    # Sent as x-goog-api-client on every upstream call
    GEMINI_API_CLIENT: str = "genai-js/0.21.0"

    # Model Defaults
    # Used when the requested chat model is absent or not a Gemini model name
    DEFAULT_MODEL: str = "gemini-1.5-pro-latest"
    # Used when the requested embeddings model has no "models/" prefix
    DEFAULT_EMBEDDINGS_MODEL: str = "text-embedding-004"

    # HTTP Client Config
    # Request timeout (seconds). None disables timeouts; deadlines belong to the fronting server.
    HTTP_TIMEOUT: Optional[float] = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get application configuration (Singleton)

    Uses lru_cache to ensure configuration is loaded only once.

    Returns:
        Settings: Application configuration instance
    """
    return Settings()

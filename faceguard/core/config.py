"""Configuration settings for the face identification service."""
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings.

    These settings are loaded from environment variables with the following precedence:
    1. Environment variables
    2. .env file
    3. Default values

    Attributes:
        MODEL_URLS: Comma-separated, priority-ordered list of model sources
        MODEL_LOAD_TIMEOUT_MS: Upper bound for a single model source attempt
        DESCRIPTOR_DIM: Length of every feature vector accepted by the store
        MATCH_THRESHOLD: Maximum Euclidean distance accepted as a match
        MATCHER_STALENESS: Rebuild key of the matcher cache ("count" or "profiles")
        DEBOUNCE_WINDOW_MS: Window inside which a repeated log entry is suppressed
    """
    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_prefix="",  # No prefix for environment variables
        env_nested_delimiter="__"  # Use double underscore for nested settings
    )

    # Core Settings
    PROJECT_NAME: str = "FaceGuard Recognition Service"
    VERSION: str = "0.1.0"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "development"

    # CORS Settings
    ALLOWED_ORIGINS: str = "http://localhost:3000"

    @property
    def cors_origins(self) -> List[str]:
        """Get list of allowed origins."""
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",")]

    # Model Source Settings
    # Remote sources serve <MODEL_NAME>.zip, local sources hold a <MODEL_NAME>/ directory
    MODEL_URLS: str = (
        "https://github.com/deepinsight/insightface/releases/download/v0.7,"
        "~/.insightface/models"
    )
    MODEL_NAME: str = "buffalo_l"
    MODEL_CACHE_DIR: str = ".model_cache"
    MODEL_LOAD_TIMEOUT_MS: int = 60000  # Slow networks need the full minute
    DETECTION_SIZE: int = 640

    @property
    def model_urls(self) -> List[str]:
        """Get the priority-ordered list of model sources."""
        return [url.strip() for url in self.MODEL_URLS.split(",") if url.strip()]

    # Matching Settings
    DESCRIPTOR_DIM: int = 512  # buffalo_l recognition output
    # Euclidean distance between unit-length descriptors: d = sqrt(2 - 2 * cos),
    # so 0.55 accepts cosine similarity above ~0.85
    MATCH_THRESHOLD: float = 0.55
    MATCHER_STALENESS: str = "count"

    # Event Log Settings
    DEBOUNCE_WINDOW_MS: int = 1500
    LOG_HISTORY_LIMIT: int = 200
    LOG_MIN_CONFIDENCE: int = 50

    # Monitor Settings
    POLL_INTERVAL_MS: int = 100

    # Optional settings with defaults
    LOG_LEVEL: str = "INFO"
    DEBUG: bool = False
    HOST: str = "0.0.0.0"
    PORT: int = 8000

settings = Settings()

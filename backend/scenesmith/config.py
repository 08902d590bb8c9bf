from __future__ import annotations
"""Application configuration using Pydantic Settings."""

from functools import lru_cache
from urllib.parse import quote_plus

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """SceneSmith application settings.

    Loaded from environment variables or .env file.
    """

    # --- Application ---
    APP_NAME: str = "SceneSmith"
    DEBUG: bool = True
    USE_MOCK_API: bool = True
    CORS_ORIGINS: str = "http://localhost:3000,http://127.0.0.1:3000"
    DEFAULT_USER_ID: str = "local"  # used when a request carries no X-User-Id

    # --- Database (MySQL 8.0+) ---
    DB_HOST: str = "localhost"
    DB_PORT: int = 3306
    DB_USER: str = "root"
    DB_PASSWORD: str = ""
    DB_NAME: str = "scenesmith"
    DB_URL: str = ""  # full SQLAlchemy URL, overrides the DB_* fields

    @property
    def DATABASE_URL(self) -> str:
        """Async connection string (asyncmy driver unless DB_URL is set)."""
        if self.DB_URL:
            return self.DB_URL
        encoded_password = quote_plus(self.DB_PASSWORD)
        return (
            f"mysql+asyncmy://{self.DB_USER}:{encoded_password}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
            "?charset=utf8mb4"
        )

    # --- Redis (Celery broker, Pub/Sub, cancellation flags) ---
    REDIS_URL: str = "redis://localhost:6379/0"

    # --- Media Volume (object store) ---
    MEDIA_VOLUME: str = "media_volume"
    MEDIA_BASE_URL: str = "/media"

    # --- Replicate (video / image / music generation) ---
    REPLICATE_API_TOKEN: str = ""
    REPLICATE_BASE_URL: str = "https://api.replicate.com/v1"
    DEFAULT_VIDEO_MODEL: str = "google/veo-3.1"
    DEFAULT_IMAGE_MODEL: str = "google/imagen-4"
    MUSIC_MODEL: str = "minimax/music-01"
    PROVIDER_POLL_INTERVAL: float = 5.0
    PROVIDER_HTTP_TIMEOUT: float = 60.0

    # --- OpenRouter (script planning) ---
    OPENROUTER_BASE_URL: str = "https://openrouter.ai/api/v1"
    OPENROUTER_API_KEY: str = ""
    OPENROUTER_API_KEYS: str = ""  # comma-separated pool, takes priority
    STORY_MODEL: str = "openai/gpt-4o-mini"
    LLM_TIMEOUT: int = 60
    LLM_MAX_RETRIES: int = 3

    # --- Pipeline ---
    SCENE_CONCURRENCY_LIMIT: int = 3
    ASSET_CONCURRENCY_LIMIT: int = 5
    SCENE_GENERATION_TIMEOUT: float = 600.0
    ASSET_GENERATION_TIMEOUT: float = 180.0
    GENERATION_MAX_RETRIES: int = 1
    PIPELINE_TIMEOUT: float = 3600.0
    MAX_SCENE_SECONDS: float = 8.0
    DEFAULT_MUSIC_VOLUME: float = 0.5

    # --- FFmpeg ---
    FFMPEG_PATH: str = "ffmpeg"
    FFPROBE_PATH: str = "ffprobe"

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings singleton."""
    return Settings()

"""Application configuration using Pydantic Settings."""

from enum import Enum
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class StorageBackend(str, Enum):
    """Where usage counters and cached estimates are kept."""
    MEMORY = "memory"
    MONGO = "mongo"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Classifier provider (Hugging Face inference API)
    huggingface_token: str = ""
    classifier_url: str = "https://api-inference.huggingface.co/models/nateraw/food101"

    # Generative provider (OpenAI chat completions)
    openai_api_key: str = ""
    openai_url: str = "https://api.openai.com/v1/chat/completions"
    openai_model: str = "gpt-4o"

    # Provider behaviour
    provider_timeout: float = 30.0  # Hard timeout per provider call (seconds)
    provider_order: str = "classifier,generative"  # Fallback order, comma separated

    # Daily analysis limits per tier
    basic_daily_limit: int = 5
    premium_daily_limit: int = 8
    vip_daily_limit: int = 12
    quota_enforcement_enabled: bool = True  # False = record usage but never block

    # Storage
    storage_backend: StorageBackend = StorageBackend.MEMORY
    mongo_uri: str = "mongodb://localhost:27017"
    db_name: str = "meal_analysis"
    cache_ttl_seconds: int = 86400

    # App
    debug: bool = False
    log_level: str = "INFO"
    app_name: str = "Meal Analysis API"
    api_version: str = "1.0.0"

    @property
    def provider_names(self) -> list[str]:
        """Configured provider names in fallback order."""
        return [name.strip().lower() for name in self.provider_order.split(",") if name.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # App
    app_name: str = "CBT Diary"
    debug: bool = False

    # CORS
    frontend_url: str = "http://localhost:3000"

    # Redis (draft storage)
    redis_url: str = "redis://localhost:6379"

    # Chat service that receives finished diary entries
    chat_api_url: str = "http://localhost:3000"
    chat_api_timeout_seconds: float = 10.0

    # Clerk
    clerk_publishable_key: str = ""
    clerk_allowed_origins: list[str] = [
        "http://localhost:3000",
    ]
    # Optional strict audience validation for Clerk JWTs (empty = disabled)
    clerk_allowed_audiences: list[str] = []

    # Drafts
    saved_drafts_limit: int = 20  # oldest saved drafts beyond this are pruned


@lru_cache
def get_settings() -> Settings:
    return Settings()

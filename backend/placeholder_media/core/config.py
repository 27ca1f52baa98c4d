from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables or a .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)

    app_name: str = "Placeholder Media API"
    app_version: str = "0.1.0"
    environment: str = "local"

    log_json: bool = False
    log_level: str = "INFO"

    cors_origins: list[str] = ["http://localhost:3000"]
    cors_allow_credentials: bool = True
    cors_allow_methods: list[str] = ["*"]
    cors_allow_headers: list[str] = ["*"]

    cloudinary_cloud_name: str = "demo"
    cloudinary_api_key: str | None = None
    cloudinary_api_secret: str | None = None
    cloudinary_api_base_url: str = "https://api.cloudinary.com/v1_1"
    cloudinary_delivery_base_url: str = "https://res.cloudinary.com"
    # httpx's own default; remote calls carry no other deadline.
    remote_timeout_seconds: float = 5.0

    media_registry_path: str = "media-registry.json"
    media_registry_format: Literal["json", "module"] = "json"
    media_registry_marker: str = "export const IMAGE_ASSETS: Record<string, ImageAsset> = "

    media_proxy_cache_control: str = "public, max-age=31536000, immutable"


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()

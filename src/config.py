"""Application configuration loaded from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All configuration is loaded from environment variables (or .env file)."""

    # --- App ---
    app_name: str = "SuperCGM Companion"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"
    environment: str = "development"  # development | staging | production

    # --- Device ---
    device_platform: str = "basalt"
    device_monochrome: bool | None = None  # override the platform's palette
    device_row_count: int | None = None  # override the platform's row count
    device_forced_color: str | None = None  # e.g. "#FFFFFF" forces every row
    message_ack_timeout_seconds: float = 5.0
    max_message_bytes: int = 512

    # --- Storage ---
    store_path: str = ".supercgm/store.json"

    # --- Data sources ---
    http_timeout_seconds: float = 10.0
    weather_primary_url: str = "https://api.open-meteo.com/v1/forecast"
    weather_fallback_url: str = "https://wttr.in/{latitude},{longitude}"
    geolocation_url: str = "https://ipapi.co/json/"
    default_latitude: float = 52.52
    default_longitude: float = 13.405

    # --- Configuration page ---
    config_page_url: str = "http://supercgm-config.aize-it.de/config/index.html"

    # --- CORS ---
    cors_origins: list[str] = ["http://supercgm-config.aize-it.de"]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache
def get_settings() -> Settings:
    return Settings()

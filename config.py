from __future__ import annotations

from functools import lru_cache
from typing import Optional
from urllib.parse import urlparse

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _validate_http_url(value: str, field_name: str) -> None:
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError(f"{field_name} must be an absolute http(s) URL.")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "Meeting Room Booking API"
    debug: bool = False
    log_level: str = "INFO"

    # Storage: unset keeps bookings in memory
    database_path: Optional[str] = None

    # Collaborating services
    room_service_url: str = "http://127.0.0.1:8002"
    auth_service_url: str = "http://127.0.0.1:8001"

    # Bounded waits, in seconds
    downstream_timeout: float = Field(5.0, gt=0)
    lock_timeout: float = Field(5.0, gt=0)

    @model_validator(mode="after")
    def validate_urls(self):
        _validate_http_url(self.room_service_url, "ROOM_SERVICE_URL")
        _validate_http_url(self.auth_service_url, "AUTH_SERVICE_URL")
        return self


@lru_cache
def get_settings() -> Settings:
    return Settings()

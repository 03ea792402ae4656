from __future__ import annotations

from datetime import tzinfo
from typing import Literal
from zoneinfo import ZoneInfo

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    PIPELINE: Literal["development", "production"] = "development"
    HOST: str = "localhost"
    PORT: int = 8000

    WS_BASE_URL: str | None = None
    API_BASE_URL: str | None = None

    ACCESS_TOKEN: str | None = None
    LOGIN_USERNAME: str | None = None
    LOGIN_PASSWORD: str | None = None

    DISPLAY_TIMEZONE: str | None = None

    RECONNECT_BASE_DELAY_MS: int = 2000
    RECONNECT_BACKOFF_FACTOR: float = 1.5
    RECONNECT_MAX_ATTEMPTS: int = 5

    AUTH_SETTLE_SECONDS: float = 0.1
    SEND_SETTLE_SECONDS: float = 1.0

    WS_OPEN_TIMEOUT_SECONDS: float = 10.0
    HTTP_TIMEOUT_SECONDS: float = 10.0

    LOG_LEVEL: str = "INFO"

    @property
    def ws_base_url(self) -> str:
        if self.WS_BASE_URL:
            return self.WS_BASE_URL.rstrip("/")
        if self.PIPELINE == "production":
            return f"ws://{self.HOST}:{self.PORT}"
        return "ws://localhost:8000"

    @property
    def api_base_url(self) -> str:
        if self.API_BASE_URL:
            return self.API_BASE_URL.rstrip("/")
        if self.PIPELINE == "production":
            return f"http://{self.HOST}:{self.PORT}/api/v1"
        return "http://localhost:8000/api/v1"

    @property
    def display_tz(self) -> tzinfo | None:
        return ZoneInfo(self.DISPLAY_TIMEZONE) if self.DISPLAY_TIMEZONE else None

    model_config = ConfigDict(
        env_file=".env",
        extra="ignore",
    )


settings = Settings()

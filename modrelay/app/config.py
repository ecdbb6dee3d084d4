from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # App settings
    ENVIRONMENT: str = "development"
    PROJECT_NAME: str = "modrelay"
    VERSION: str = "0.1.0"

    # Stream Chat credentials
    STREAM_KEY: str = ""
    STREAM_SECRET: str = ""
    STREAM_TIMEOUT_S: float = 6.0

    # Moderation policy
    CHANNEL_TYPE: str = "messaging"
    BLOCKLIST_NAME: str = "profanity_en_2020_v1"

    # Identity used for every automated notice; events it authors are ignored
    SYSTEM_USER_ID: str = "system-bot"
    SYSTEM_USER_NAME: str = "System"

    # Notice dedupe window
    FLAG_TTL_S: float = 300.0
    # 0 keeps eviction purely lazy
    FLAG_SWEEP_INTERVAL_S: float = 0.0
    NOTICE_PREVIEW_CHARS: int = 120

    # /debug/flag injects a profane test message
    DEBUG_ROUTES_ENABLED: bool = True

    # CORS
    CORS_ORIGINS: List[str] = ["*"]

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 5050

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    @property
    def has_stream_credentials(self) -> bool:
        return bool(self.STREAM_KEY.strip() and self.STREAM_SECRET.strip())


@lru_cache()
def get_settings() -> Settings:
    settings = Settings()

    # Fail fast in production; other environments refuse to start in the lifespan
    if settings.ENVIRONMENT == "production":
        if not settings.has_stream_credentials:
            raise ValueError("STREAM_KEY and STREAM_SECRET are required in production environment")
        settings.DEBUG_ROUTES_ENABLED = False

    return settings

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional


class Settings(BaseSettings):
    # App settings
    debug: bool = False
    app_name: str = "Group Chat"
    cors_allowed_origins: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # Server
    host: str = "0.0.0.0"
    port: int = Field(
        default=4000,
        validation_alias=AliasChoices("APP_PORT", "PORT", "port"),
    )

    # Database settings
    database_url: str = "sqlite+aiosqlite:///./groupchat.db"

    # Realtime
    ws_send_timeout_seconds: float = 5

    # Metrics
    metrics_token: Optional[str] = None

    # Logging
    log_level: str = "INFO"
    log_sample_rate: float = 0.1

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="APP_",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )


settings = Settings()

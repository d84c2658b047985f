from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # API Configuration
    api_host: str = Field(default="0.0.0.0", alias="API_HOST")
    api_port: int = Field(default=8000, alias="API_PORT")

    # In-memory session ledger
    session_max_age_seconds: float = Field(
        default=24 * 60 * 60,
        alias="SESSION_MAX_AGE_SECONDS",
    )
    session_cleanup_interval_seconds: float = Field(
        default=300,
        alias="SESSION_CLEANUP_INTERVAL_SECONDS",
    )
    session_max_sessions: int = Field(
        default=0,
        alias="SESSION_MAX_SESSIONS",
    )
    session_strict_transitions: bool = Field(
        default=True,
        alias="SESSION_STRICT_TRANSITIONS",
    )

    # Variant comparison
    default_primary_metric: str = Field(
        default="cost",
        alias="DEFAULT_PRIMARY_METRIC",
    )
    strict_primary_metric: bool = Field(
        default=False,
        alias="STRICT_PRIMARY_METRIC",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()

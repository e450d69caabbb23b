"""
Application settings.
Loads environment variables (.env).

Per-campaign values (window, filters, batching) live in CampaignConfig;
only credentials and process-wide defaults belong here.
"""
from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Settings loaded from .env"""

    # App
    APP_NAME: str = "segment-blast"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Supabase (ledger + transactional records)
    SUPABASE_URL: str = ""
    SUPABASE_SERVICE_KEY: str = ""
    DB_TIMEOUT_SECONDS: float = 15.0
    DB_PAGE_SIZE: int = 1000

    # LINE Messaging API
    LINE_CHANNEL_ACCESS_TOKEN: str = ""
    LINE_API_URL: str = "https://api.line.me/v2/bot/message"
    LINE_TIMEOUT_SECONDS: float = 30.0

    # Dispatch defaults (overridden per campaign)
    DEFAULT_BATCH_SIZE: int = 500
    DEFAULT_SLEEP_MS: int = 200
    DEFAULT_LIMIT: int = 20000

    # Message files
    MESSAGES_DIR: str = "./messages"

    @property
    def is_production(self) -> bool:
        """Returns True when running in production."""
        return self.ENVIRONMENT.lower() == "production"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore unrelated .env variables


class LedgerConfig:
    """
    Constants for the segment_blast ledger table.

    Kept here so the repository and the migration agree.
    """

    TABLE: str = "segment_blast"
    ON_CONFLICT: str = "segment_key,user_id"

    # Upper bound for stored last_error text
    MAX_ERROR_CHARS: int = 500
    DEFAULT_ERROR: str = "SEND_FAILED"

    # Max ids per in.(...) filter in one PostgREST request
    ID_FILTER_CHUNK: int = 100

    # Rows per insert-if-absent request
    INSERT_CHUNK: int = 500


@lru_cache()
def get_settings() -> Settings:
    """Returns the cached settings instance."""
    return Settings()


settings = get_settings()

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
import os

class Settings(BaseSettings):
    model_config = SettingsConfigDict(extra="ignore", case_sensitive=False, env_file=".env")

    # Environment
    env: str = os.getenv("ENV", "dev")

    # Database
    database_url: str = "sqlite:///./betlink.db"

    # Logging
    log_level: str = "INFO"

    # CORS
    cors_allow_origins: str = os.getenv("ALLOWED_ORIGINS", "*")

    # Public base URL, only used to render example postback URLs for admins
    base_url: str = os.getenv("BASE_URL", "http://localhost:8001")

    # Admin endpoints require X-Admin-Token when set
    admin_api_token: Optional[str] = os.getenv("ADMIN_API_TOKEN") or None

    # Outbound calls to betting-house APIs
    house_api_timeout_s: float = float(os.getenv("HOUSE_API_TIMEOUT_S", "15"))
    house_api_max_attempts: int = int(os.getenv("HOUSE_API_MAX_ATTEMPTS", "3"))
    house_api_retry_initial_delay_s: float = float(os.getenv("HOUSE_API_RETRY_INITIAL_DELAY_S", "1.0"))

    # API polling sync
    sync_scheduler_enabled: bool = os.getenv("SYNC_SCHEDULER_ENABLED", "true").lower() == "true"
    default_sync_interval_min: int = int(os.getenv("DEFAULT_SYNC_INTERVAL_MIN", "30"))
    sync_lookback_days: int = int(os.getenv("SYNC_LOOKBACK_DAYS", "7"))
    sync_page_limit: int = int(os.getenv("SYNC_PAGE_LIMIT", "50"))

    def is_local(self) -> bool:
        return self.env.lower() in {"local", "dev", "test"}

# Global settings instance
settings = Settings()

from typing import Literal, Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    bot_token: Optional[str] = None
    n8n_webhook_url: Optional[str] = None
    redis_url: str = "redis://localhost:6379/0"
    redis_socket_timeout_seconds: float = 5.0

    processor_timeout_seconds: float = 180.0
    watermark_timeout_seconds: float = 30.0
    session_ttl_seconds: int = 60 * 60 * 24
    # Must outlive a full processor call plus the watermark download.
    lock_ttl_seconds: int = 240

    usage_limit: int = 10
    usage_window: Literal["daily", "weekly"] = "daily"
    usage_grace_seconds: int = 60 * 60
    usage_timezone: str = "UTC"

    default_language: str = "ru"
    watermark_text: str = "Dave Wrap"
    contact_phone: Optional[str] = None

    admin_token: Optional[str] = None
    log_level: str = "INFO"
    debug: bool = False

    class Config:
        env_file = ".env"
        extra = "ignore"

    @model_validator(mode="after")
    def _lock_outlives_processing(self) -> "Settings":
        longest_hold = self.processor_timeout_seconds + self.watermark_timeout_seconds
        if self.lock_ttl_seconds <= longest_hold:
            raise ValueError(
                f"LOCK_TTL_SECONDS ({self.lock_ttl_seconds}) must exceed PROCESSOR_TIMEOUT_SECONDS "
                f"+ WATERMARK_TIMEOUT_SECONDS ({longest_hold:g})"
            )
        return self

    def missing_required(self) -> list[str]:
        """Names of env variables the bot cannot start without."""
        missing = []
        if not self.bot_token:
            missing.append("BOT_TOKEN")
        if not self.n8n_webhook_url:
            missing.append("N8N_WEBHOOK_URL")
        return missing


settings = Settings()

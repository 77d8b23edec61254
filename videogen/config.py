"""Application settings from environment variables."""

from functools import lru_cache
from typing import Literal

from dotenv import load_dotenv
from pydantic_settings import BaseSettings

from videogen.utils.retry import RetryPolicy

# Load environment variables
load_dotenv()


class Settings(BaseSettings):
    """Application settings from environment."""

    # Provider
    provider_mode: Literal["http", "mock"] = "http"
    provider_base_url: str = "https://api.openai.com/v1"
    provider_api_key: str = ""
    provider_model: str = ""
    provider_contract: str = "sora-1"
    provider_timeout_seconds: float = 60.0

    # Retry
    max_retry_attempts: int = 3
    base_delay_seconds: float = 1.0
    backoff_multiplier: float = 2.0
    max_delay_seconds: float = 30.0

    # Batch processing
    batch_concurrency: int = 5
    batch_poll_interval_seconds: float = 5.0
    batch_job_timeout_seconds: float = 600.0

    # HTTP layer
    api_key: str = ""
    host: str = "0.0.0.0"
    port: int = 8000

    # Configuration
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "extra": "ignore"}

    @property
    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_retry_attempts,
            base_delay=self.base_delay_seconds,
            multiplier=self.backoff_multiplier,
            max_delay=self.max_delay_seconds,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()

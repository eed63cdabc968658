from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_MONITORED_PROVIDER_CHOICES = {"primary", "secondary"}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "Vehicle Valuation API"
    app_env: str = "local"
    api_v1_prefix: str = "/api/v1"
    log_level: str = "INFO"
    metrics_enabled: bool = False

    failure_threshold: float = 0.5
    revert_timeout_ms: int = 180_000
    min_requests_for_threshold: int = 10
    monitored_provider: str = "primary"

    provider_timeout_seconds: float = 10.0
    valuation_request_timeout_seconds: float = 25.0

    provider_log_background: bool = True
    provider_log_max_workers: int = 2

    @model_validator(mode="after")
    def validate_failover_settings(self) -> "Settings":
        if not 0.0 < self.failure_threshold <= 1.0:
            raise ValueError("FAILURE_THRESHOLD must be in the range (0, 1].")
        if self.revert_timeout_ms < 0:
            raise ValueError("REVERT_TIMEOUT_MS must not be negative.")
        if self.min_requests_for_threshold < 1:
            raise ValueError("MIN_REQUESTS_FOR_THRESHOLD must be at least 1.")
        if self.monitored_provider.lower() not in _MONITORED_PROVIDER_CHOICES:
            raise ValueError("MONITORED_PROVIDER must be 'primary' or 'secondary'.")
        if self.provider_timeout_seconds <= 0 or self.valuation_request_timeout_seconds <= 0:
            raise ValueError("Provider and valuation request timeouts must be positive.")
        if self.provider_log_max_workers < 1:
            raise ValueError("PROVIDER_LOG_MAX_WORKERS must be at least 1.")
        return self


@lru_cache
def get_settings() -> Settings:
    return Settings()

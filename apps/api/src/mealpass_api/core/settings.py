from functools import lru_cache
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_meal_windows() -> dict[str, dict[str, str]]:
    return {
        "breakfast": {"start": "06:30", "end": "10:00"},
        "lunch": {"start": "12:00", "end": "15:00"},
        "dinner": {"start": "19:00", "end": "22:00"},
    }


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    log_level: str = "INFO"
    database_url: str = "sqlite+aiosqlite:///./mealpass.db"
    redis_url: str = "redis://localhost:6379/0"

    # Shared expiring state (settings cache + deep-link nonces)
    shared_state_backend: Literal["memory", "redis"] = "memory"
    nonce_registry_max_entries: int = 50_000
    settings_cache_ttl_seconds: int = 60

    # Scan credentials
    qr_signing_secret: str = "change-me"
    deep_link_signing_secret: str | None = None
    deep_link_ttl_seconds: int = 180
    enforce_qr_expiry: bool = True

    # Storage
    storage_timeout_seconds: float = 5.0

    # Tenant scan defaults, used when a tenant has no stored configuration
    # or the settings store is unavailable.
    default_meal_windows: dict[str, dict[str, str]] = Field(default_factory=_default_meal_windows)
    default_double_scan_window_seconds: int = 30
    default_duplicate_policy: Literal["window", "same_day"] = "window"
    default_timezone: str = "UTC"
    alert_threshold_meals_remaining: int = 5

    # Scanner API security
    scanner_api_key: str = ""
    admin_scanner_roles: list[str] = Field(default_factory=lambda: ["admin"])

    @field_validator("admin_scanner_roles", mode="before")
    @classmethod
    def _parse_role_list(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [item.strip().lower() for item in value.split(",") if item.strip()]
        if isinstance(value, (list, tuple, set)):
            return [str(item).strip().lower() for item in value if str(item).strip()]
        return []

    # Redemption notifications
    notifier_backend: Literal["log", "redis"] = "log"
    notifier_channel_prefix: str = "mealpass:redemptions"
    notification_drain_timeout_seconds: float = 5.0

    # Batch replay
    batch_max_scans: int = 500
    # Offline scans older than this are refused instead of replayed.
    max_offline_scan_age_seconds: int = 24 * 60 * 60

    # Subscription sweep worker
    subscription_sweep_worker_enabled: bool = False
    subscription_sweep_interval_seconds: int = 15 * 60
    subscription_sweep_batch_size: int = 500

    @property
    def resolved_deep_link_secret(self) -> str:
        return self.deep_link_signing_secret or self.qr_signing_secret


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()

import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass(frozen=True)
class Settings:
    """Application settings loaded from environment variables."""

    # Runtime
    environment: str = os.getenv("APP_ENV", "development")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_json: bool = _env_bool("LOG_JSON", "false")

    # Data store
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./letter_archive.db")
    db_transaction_timeout: float = float(os.getenv("DB_TRANSACTION_TIMEOUT", "30"))
    db_isolation_level: str | None = os.getenv("DB_ISOLATION_LEVEL") or None

    # Durable storage
    storage_root: str = os.getenv("STORAGE_ROOT", "./storage")
    max_upload_bytes: int = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))

    # Cache
    cache_list_ttl: int = int(os.getenv("CACHE_LIST_TTL", "300"))  # 5 minutes
    cache_entity_ttl: int = int(os.getenv("CACHE_ENTITY_TTL", "600"))  # 10 minutes
    cache_notification_ttl: int = int(os.getenv("CACHE_NOTIFICATION_TTL", "60"))
    cache_sweep_interval: float = float(os.getenv("CACHE_SWEEP_INTERVAL", "60"))

    # Write protocol retry
    tx_max_attempts: int = int(os.getenv("TX_MAX_ATTEMPTS", "3"))
    tx_backoff_base: float = float(os.getenv("TX_BACKOFF_BASE", "1.0"))
    tx_backoff_max: float = float(os.getenv("TX_BACKOFF_MAX", "5.0"))

    # Maintenance jobs
    file_sweep_interval: float = float(os.getenv("FILE_SWEEP_INTERVAL", "3600"))
    staging_grace_seconds: float = float(os.getenv("STAGING_GRACE_SECONDS", "3600"))
    reminder_interval: float = float(os.getenv("REMINDER_INTERVAL", "86400"))
    notification_retention_days: int = int(os.getenv("NOTIFICATION_RETENTION_DAYS", "30"))
    scheduler_enabled: bool = _env_bool("SCHEDULER_ENABLED", "true")

    # Rate limiting
    rate_limit_requests: int = int(os.getenv("RATE_LIMIT_REQUESTS", "100"))
    rate_limit_window: int = int(os.getenv("RATE_LIMIT_WINDOW", "900"))  # 15 minutes

    # API
    api_host: str = os.getenv("API_HOST", "0.0.0.0")
    api_port: int = int(os.getenv("API_PORT", "8000"))
    api_reload: bool = _env_bool("API_RELOAD", "true")

    @property
    def is_production(self) -> bool:
        """Check if error responses must be stripped of diagnostics.

        Returns:
            True when running with APP_ENV=production
        """
        return self.environment.lower() == "production"

    def __post_init__(self) -> None:
        """Validate settings after initialization."""
        if self.max_upload_bytes <= 0:
            raise ValueError("MAX_UPLOAD_BYTES must be positive")

        if self.tx_max_attempts < 1:
            raise ValueError("TX_MAX_ATTEMPTS must be at least 1")

        if self.tx_backoff_base < 0 or self.tx_backoff_max < self.tx_backoff_base:
            raise ValueError(
                f"TX_BACKOFF_BASE/TX_BACKOFF_MAX must satisfy 0 <= base <= max, "
                f"got {self.tx_backoff_base}/{self.tx_backoff_max}"
            )

        for name in ("cache_list_ttl", "cache_entity_ttl", "cache_notification_ttl"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name.upper()} must be positive")

        if self.rate_limit_requests < 1 or self.rate_limit_window < 1:
            raise ValueError("RATE_LIMIT_REQUESTS and RATE_LIMIT_WINDOW must be positive")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()

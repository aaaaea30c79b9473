import json

from pydantic_settings import BaseSettings
from pydantic import field_validator
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App Settings
    APP_NAME: str = "Invoice Billing Engine"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # CORS Settings (bookkeeping dashboard)
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./billing.db"

    # Database Connection Pool Settings (ignored for SQLite)
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 1800

    # GST Jurisdiction
    SELLER_STATE_CODE: str = "29"  # Karnataka
    DEFAULT_STATE_CODE: str = "09"  # Uttar Pradesh, used when no state matches
    STRICT_JURISDICTION: bool = False  # Raise instead of falling back to DEFAULT_STATE_CODE
    LEGACY_JURISDICTION_MATCHING: bool = False  # Single-pass substring matching on names and abbreviations

    # Invoice Lifecycle
    ALLOW_UNCHECKED_STATUS_TRANSITIONS: bool = False  # Legacy any-to-any status changes
    INVOICE_SERIES_CODE: str = "INV"
    DEFAULT_PAYMENT_DUE_DAYS: int = 30

    # Recurring Invoices
    RECURRING_INVOICE_INITIAL_STATUS: str = "DRAFT"  # DRAFT or SENT

    # Background Scheduler
    SCHEDULER_ENABLED: bool = True
    SCHEDULER_TIMEZONE: str = "Asia/Kolkata"
    RECURRING_INVOICE_JOB_INTERVAL_MINUTES: int = 60
    OVERDUE_JOB_INTERVAL_MINUTES: int = 360
    RECURRING_CATCH_UP_LIMIT: int = 366  # Max occurrences generated per profile per job run

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [origin.strip() for origin in v.split(',')]
        return v

    @field_validator("SELLER_STATE_CODE", "DEFAULT_STATE_CODE", mode="before")
    @classmethod
    def pad_state_code(cls, v):
        if isinstance(v, int):
            v = str(v)
        if isinstance(v, str):
            return v.strip().zfill(2)
        return v

    @field_validator("RECURRING_INVOICE_INITIAL_STATUS", mode="before")
    @classmethod
    def validate_initial_status(cls, v):
        value = str(v).strip().upper()
        if value not in ("DRAFT", "SENT"):
            raise ValueError("RECURRING_INVOICE_INITIAL_STATUS must be DRAFT or SENT")
        return value

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()

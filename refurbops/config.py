from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict
from pydantic import field_validator
from typing import Annotated, Dict, List, Optional
import json


DEFAULT_TAT_ALLOWANCE_DAYS: Dict[str, int] = {
    "WAITING_FOR_SPARES": 2,
    "READY_FOR_REPAIR": 1,
    "UNDER_REPAIR": 5,
    "IN_PAINT": 2,
    "COMPLETED": 1,  # Awaiting QC
}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./refurbops.db"

    # Database Connection Pool Settings
    DB_POOL_SIZE: int = 10  # Base number of connections in pool
    DB_MAX_OVERFLOW: int = 20  # Extra connections allowed beyond pool_size
    DB_POOL_TIMEOUT: int = 30  # Seconds to wait for connection from pool
    DB_POOL_RECYCLE: int = 1800  # Recycle connections after 30 minutes
    DB_CONNECT_TIMEOUT: int = 10  # Seconds to establish a connection / wait on a lock

    # App Settings
    APP_NAME: str = "Refurb Ops"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # CORS - JSON list or comma-separated
    CORS_ORIGINS: Annotated[List[str], NoDecode] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Cron trigger secret (Authorization: Bearer <secret> or X-Cron-Secret)
    CRON_SECRET: Optional[str] = None

    # Email/SMTP Settings
    SMTP_HOST: str = "smtp.gmail.com"
    SMTP_PORT: int = 587
    SMTP_USER: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_FROM_EMAIL: str = "noreply@comprint.com"
    SMTP_FROM_NAME: str = "Comprint Operations"
    SMTP_TIMEOUT_SECONDS: int = 10

    # Alert routing
    WAREHOUSE_MANAGER_EMAIL: Optional[str] = None

    # TAT policy
    # Accepts JSON ({"UNDER_REPAIR": 5}) or comma-separated (UNDER_REPAIR=5,IN_PAINT=2)
    TAT_ALLOWANCE_DAYS: Annotated[Dict[str, int], NoDecode] = DEFAULT_TAT_ALLOWANCE_DAYS
    TAT_APPROACHING_WINDOW_HOURS: int = 24

    # PO aging policy (calendar days since creation, unaddressed)
    PO_AGING_THRESHOLD_DAYS: int = 10

    # Workload
    MAX_ACTIVE_REPAIRS_PER_ENGINEER: int = 10

    # Notification delivery
    NOTIFICATION_SEND_TIMEOUT_SECONDS: int = 15
    NOTIFICATION_CLAIM_TTL_MINUTES: int = 30

    # Scheduler
    SCHEDULER_ENABLED: bool = False
    SCHEDULER_TIMEZONE: str = "Asia/Kolkata"
    TAT_SCAN_INTERVAL_MINUTES: int = 60
    PO_AGING_HOUR: int = 8

    @field_validator("TAT_ALLOWANCE_DAYS", mode="before")
    @classmethod
    def parse_tat_allowances(cls, v):
        if isinstance(v, str):
            try:
                v = json.loads(v)
            except json.JSONDecodeError:
                pairs = [item.split("=", 1) for item in v.split(",") if item.strip()]
                v = {stage.strip(): days.strip() for stage, days in pairs}
        if isinstance(v, dict):
            return {str(stage).upper(): int(days) for stage, days in v.items()}
        return v

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @field_validator("CRON_SECRET", "WAREHOUSE_MANAGER_EMAIL", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")

    @property
    def email_configured(self) -> bool:
        return bool(self.SMTP_USER and self.SMTP_PASSWORD)


def get_settings(**overrides) -> Settings:
    """Build a settings instance from the environment, with explicit overrides."""
    return Settings(**overrides)

"""Application settings and configuration (Pydantic v2)."""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    """Application settings."""

    # Database (Docker uses host "db")
    database_url: str = Field(
        default="postgresql://attendance_user:attendance_pass@db:5432/attendance",
        description="Postgres DSN",
    )

    # Status scheduler
    scheduler_enabled: bool = Field(default=True)
    scheduler_interval_seconds: float = Field(default=15.0, gt=0)

    # Event scheduling rules
    event_min_duration_minutes: int = Field(default=30, ge=0)
    event_max_duration_minutes: int = Field(default=360, ge=1)

    # Attendance finalization tuning
    present_ratio_threshold: float = Field(default=0.70, ge=0, le=1)
    idle_ratio_threshold: float = Field(default=0.30, ge=0, le=1)
    attendance_grace_minutes: int = Field(default=0, ge=0)

    log_level: str = Field(default="INFO")

    # Pydantic v2 settings
    model_config = SettingsConfigDict(
        env_file=".env",               # also reads OS env from Docker Compose
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_prefix="",                 # no prefix
    )


# Global settings instance
settings = Settings()

# backend/imagestore/config.py
import os
from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .enums import LogLevel


def _cpu_count() -> int:
    return os.cpu_count() or 1


def default_max_image_threads() -> int:
    """If there are more than 3 cores, keep two free."""
    return max(_cpu_count() - 2, 1)


def default_max_image_queue() -> int:
    """Up to 5 items per thread, or 20, whichever is greater."""
    return max(_cpu_count() - 2, 4) * 5


class Settings(BaseSettings):
    environment: str = "development"

    # Image processor (external thumbnailing service)
    image_processor_service: str = Field(
        default="imageprocessor", description="Image processor host name"
    )
    image_processor_service_port: int = Field(
        default=80, ge=1, le=65535, description="Image processor port"
    )
    image_processor_job_path: str = Field(
        default="/job", description="Path jobs are POSTed to"
    )
    image_processor_timeout: Optional[float] = Field(
        default=None,
        gt=0,
        description="Total timeout for a processor request in seconds (None = no timeout)",
    )

    # Scheduler
    max_image_threads: int = Field(
        default_factory=default_max_image_threads,
        ge=1,
        le=256,
        description="Maximum simultaneous processor calls",
    )
    max_image_queue: int = Field(
        default_factory=default_max_image_queue,
        ge=1,
        le=10000,
        description="Queued + pending jobs at which the queue reports paused",
    )
    job_max_failures: int = Field(
        default=5, ge=1, le=100, description="Failures before a job is logged as exhausted"
    )
    job_retry_delays: List[int] = Field(
        default=[30, 120, 600],
        description="Backoff in seconds after each processor failure",
    )

    # Importer
    import_interval: float = Field(
        default=0.5, gt=0, le=60, description="Seconds between import cycles"
    )
    import_timeout: float = Field(
        default=5.0, gt=0, le=600, description="Deadline for one import cycle in seconds"
    )
    import_rejection_cooldown: float = Field(
        default=30.0,
        gt=0,
        le=3600,
        description="Seconds a record that failed admission is skipped by the importer",
    )

    # Catalog
    images_path: str = Field(default="/images", description="Image storage root")
    redis_url: str = Field(
        default="redis://localhost:6379/0", description="Catalog Redis connection URL"
    )
    reconcile_progress_interval: float = Field(
        default=5.0, gt=0, description="Seconds between reconciliation progress reports"
    )

    # Database
    pg_host: str = "localhost"
    pg_port: int = Field(default=5432, ge=1, le=65535)
    pg_user: str = "imagestore"
    pg_database: str = "imagestore"
    pg_password_file: str = Field(
        default="/mnt/creds/pgpassword", description="File holding the database password"
    )
    db_pool_min_size: int = Field(default=2, ge=1, le=100)
    db_pool_max_size: int = Field(default=10, ge=1, le=100)
    db_pool_timeout: float = Field(
        default=30.0, gt=0, le=300, description="Seconds to wait for a pooled connection"
    )
    camera_cache_ttl: int = Field(
        default=60, ge=0, le=86400, description="camera_exists cache TTL in seconds"
    )

    # API
    api_host: str = Field(default="0.0.0.0", description="API host to bind to")
    api_port: int = Field(default=8000, ge=1, le=65535, description="API port")

    # Logging
    log_level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    log_file: Optional[str] = Field(default=None, description="Log file path (optional)")

    @property
    def images_dir(self) -> Path:
        return Path(self.images_path)

    @property
    def image_processor_url(self) -> str:
        return (
            f"http://{self.image_processor_service}:"
            f"{self.image_processor_service_port}{self.image_processor_job_path}"
        )

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v) -> LogLevel:
        """Validate log level is one of the allowed values"""
        if isinstance(v, LogLevel):
            return v
        allowed_levels = LogLevel.__members__.keys()
        v_upper = str(v).upper()
        if v_upper not in allowed_levels:
            raise ValueError(
                f"Invalid log level '{v}'. Must be one of: {', '.join(allowed_levels)}"
            )
        return LogLevel[v_upper]

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment is one of the allowed values"""
        allowed_envs = ["development", "staging", "production", "test"]
        v_lower = v.lower()
        if v_lower not in allowed_envs:
            raise ValueError(
                f"Invalid environment '{v}'. Must be one of: {', '.join(allowed_envs)}"
            )
        return v_lower

    @field_validator("job_retry_delays")
    @classmethod
    def validate_retry_delays(cls, v: List[int]) -> List[int]:
        if not v:
            raise ValueError("job_retry_delays cannot be empty")
        if any(delay <= 0 for delay in v):
            raise ValueError("All retry delays must be positive")
        return v

    @field_validator("image_processor_job_path")
    @classmethod
    def validate_job_path(cls, v: str) -> str:
        return v if v.startswith("/") else f"/{v}"

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )


def get_settings() -> Settings:
    """Resolve settings once per call site; the application keeps a single instance."""
    return Settings()

"""
NominaHub - Configuration Settings

This module handles all application configuration using Pydantic Settings.
Environment variables are loaded from .env file.
"""

import os
from functools import lru_cache
from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # ===========================================
    # APPLICATION CONFIGURATION
    # ===========================================
    app_name: str = "NominaHub"
    app_env: str = "development"
    debug: bool = False
    api_version: str = "v1"
    log_level: str = "INFO"

    # ===========================================
    # REDIS CONFIGURATION (Celery broker/backend)
    # ===========================================
    redis_url: str = "redis://localhost:6379/0"

    # ===========================================
    # PAYROLL BATCH EXECUTION
    # batch_executor: "process" | "thread" | "serial"
    # batch_max_workers: 0 means one worker per CPU core
    # ===========================================
    batch_executor: str = "process"
    batch_max_workers: int = 0
    batch_timeout_seconds: float = 0

    @property
    def batch_workers(self) -> int:
        """Resolve the worker pool size."""
        if self.batch_max_workers > 0:
            return self.batch_max_workers
        return os.cpu_count() or 1

    @property
    def batch_timeout(self):
        """Batch timeout in seconds, or None when unbounded."""
        return self.batch_timeout_seconds if self.batch_timeout_seconds > 0 else None

    # ===========================================
    # PAYROLL CALCULATION POLICY
    # ===========================================
    floor_net_pay_at_zero: bool = True
    include_zero_lines: bool = False

    # ===========================================
    # CORS SETTINGS
    # ===========================================
    cors_origins: str = "http://localhost:3000,http://localhost:8000,http://127.0.0.1:8000"

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins string into list."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env.lower() == "development"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to avoid reading .env file on every call.
    """
    return Settings()


# Export settings instance
settings = get_settings()

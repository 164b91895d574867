from __future__ import annotations

import os
from pathlib import Path
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_prefix="RT_", case_sensitive=False, extra="ignore")
    """Application runtime configuration."""

    app_name: str = "RateTrack"
    host: str = os.getenv("RT_HOST", "127.0.0.1")
    port: int = int(os.getenv("RT_PORT", "8080"))
    cors_origins: str = "http://127.0.0.1:5173,http://localhost:5173"

    storage_backend: str = os.getenv("RT_STORAGE", "sqlite")
    sqlite_path: Path = Path(os.getenv("RT_SQLITE_PATH", "./data/ratetrack.db"))

    log_level: str = "INFO"
    log_json: bool = False

    tick_interval_seconds: float = Field(default=1.0, ge=0)
    default_tax_rate: float = Field(default=30.0, ge=0, allow_inf_nan=False)

    @field_validator("storage_backend")
    @classmethod
    def _check_backend(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in {"sqlite", "memory"}:
            raise ValueError("storage_backend must be 'sqlite' or 'memory'")
        return normalized

    @property
    def cors_origin_list(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


settings = Settings()

if settings.storage_backend == "sqlite":
    settings.sqlite_path.parent.mkdir(parents=True, exist_ok=True)

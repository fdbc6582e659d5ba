from __future__ import annotations

import os
import tempfile
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def default_storage_dir() -> Path:
    return Path(tempfile.gettempdir()) / "telemetry-spool"


class SpoolRuntimeSettings(BaseSettings):
    """Environment-driven spool configuration (prefix ``SPOOL_``).

    Example:
        SPOOL_ENDPOINT=https://collector:4318/v1/traces
        SPOOL_ENDPOINT=https://collector:4318 SPOOL_SIGNAL=logs   (posts to /v1/logs)
        SPOOL_STORAGE_DIR=/var/lib/myapp/spool
        SPOOL_DRAIN_INTERVAL_MS=60000
    """

    model_config = SettingsConfigDict(
        env_prefix="SPOOL_", env_file=".env", case_sensitive=False, extra="ignore"
    )

    endpoint: str = "http://localhost:4318/v1/traces"
    # When set, endpoint is the collector base URL and the signal path is appended
    signal: Optional[Literal["traces", "metrics", "logs"]] = None
    headers: dict[str, str] = Field(default_factory=dict)

    export_timeout_ms: int = Field(10_000, gt=0)
    redelivery_timeout_ms: int = Field(2_000, gt=0)
    lease_ms: int = Field(3_000, gt=0)
    renewal_ms: int = Field(1_000, gt=0)
    drain_interval_ms: int = Field(120_000, gt=0)
    shutdown_timeout_ms: int = Field(5_000, ge=0)

    storage_dir: Path = Field(default_factory=default_storage_dir, validate_default=True)
    max_storage_bytes: int | None = 50 * 1024 * 1024
    retention_ms: int | None = 2 * 24 * 3600 * 1000

    inline_drain: bool = True
    scheduled_drain: bool = True

    @field_validator("storage_dir")
    @classmethod
    def _usable_dir(cls, v: Path) -> Path:
        v = v.expanduser()
        if not v.is_absolute():
            v = v.resolve()
        try:
            v.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ValueError(f"cannot create storage_dir {v}: {exc}") from exc
        if not v.is_dir():
            raise ValueError(f"storage_dir is not a directory: {v}")
        if not os.access(v, os.W_OK | os.X_OK):
            raise ValueError(f"storage_dir is not writable: {v}")
        return v

    @field_validator("max_storage_bytes", "retention_ms")
    @classmethod
    def _positive_or_none(cls, v: int | None) -> int | None:
        if v is not None and v <= 0:
            raise ValueError("must be > 0 (or unset)")
        return v

    @model_validator(mode="after")
    def _lease_covers_redelivery(self) -> "SpoolRuntimeSettings":
        if self.lease_ms < self.redelivery_timeout_ms:
            raise ValueError(
                f"lease_ms ({self.lease_ms}) must be >= redelivery_timeout_ms "
                f"({self.redelivery_timeout_ms})"
            )
        return self


@lru_cache()
def get_settings() -> SpoolRuntimeSettings:
    return SpoolRuntimeSettings()

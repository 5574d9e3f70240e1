"""Application configuration."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")

MB = 1024 * 1024


@dataclass(frozen=True)
class ExportConfig:
    """Tunables for the streaming export pipeline."""

    compression_level: int = 3
    chunk_size: int = 32 * 1024
    batch_size: int = 10
    max_concurrent_files: int = 5
    timeout_seconds: float = 300.0
    memory_limit_mb: int = 512
    gc_frequency: int = 50
    max_retry_attempts: int = 3
    retry_base_delay_seconds: float = 0.1
    continue_on_error: bool = True
    max_file_size_bytes: int = 50 * MB
    log_progress_interval: int = 25


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    data_root: Path = Path("data")
    storage_backend: Literal["json", "supabase"] = "json"
    supabase_url: str | None = None
    supabase_service_key: str | None = None
    environment: str = _ENVIRONMENT

    export_compression_level: int = 3
    export_chunk_size: int = 32 * 1024
    export_batch_size: int = 10
    export_max_concurrent_files: int = 5
    export_timeout_seconds: float = 300.0
    export_memory_limit_mb: int = 512
    export_gc_frequency: int = 50
    export_max_retry_attempts: int = 3
    export_retry_base_delay_seconds: float = 0.1
    export_continue_on_error: bool = True
    export_max_file_size_bytes: int = 50 * MB
    export_log_progress_interval: int = 25

    progress_poll_interval_seconds: float = 0.5
    progress_grace_seconds: float = 2.0
    progress_max_age_seconds: float = 3600.0
    progress_stream_max_seconds: float = 600.0

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )

    def export_config(self) -> ExportConfig:
        """Build the export tunables from settings."""
        return ExportConfig(
            compression_level=self.export_compression_level,
            chunk_size=self.export_chunk_size,
            batch_size=max(1, self.export_batch_size),
            max_concurrent_files=max(1, self.export_max_concurrent_files),
            timeout_seconds=self.export_timeout_seconds,
            memory_limit_mb=self.export_memory_limit_mb,
            gc_frequency=max(1, self.export_gc_frequency),
            max_retry_attempts=max(1, self.export_max_retry_attempts),
            retry_base_delay_seconds=self.export_retry_base_delay_seconds,
            continue_on_error=self.export_continue_on_error,
            max_file_size_bytes=self.export_max_file_size_bytes,
            log_progress_interval=max(1, self.export_log_progress_interval),
        )


def parse_user_header(raw: str | None) -> str | None:
    """Normalize the upstream user id header."""
    if raw is None:
        return None
    cleaned = raw.strip()
    return cleaned or None

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "CASEOPS_",
        "extra": "ignore",
    }

    # Record store (PostgREST-compatible endpoint)
    store_url: str = "http://127.0.0.1:54321"
    store_key: str = ""
    service_role_key: str = ""  # used for mutations when present
    store_timeout: float = 10.0  # seconds, per request

    # Tables
    primary_table: str = "service_requests"
    required_tables: list[str] = ["service_requests"]
    optional_tables: list[str] = ["waitlist_signups", "system_backups", "system_logs"]
    backup_tables: list[str] = ["service_requests", "waitlist_signups"]

    # Health checks
    latency_samples: int = 5
    latency_pass_ms: float = 500.0
    latency_warn_ms: float = 1000.0
    burst_size: int = 8
    burst_budget_ms: float = 3000.0
    mixed_query_budget_ms: float = 3000.0
    health_budget_seconds: float = 30.0
    bytes_per_row_estimate: int = 500

    # Workload thresholds
    pending_alert_threshold: int = 50
    urgent_alert_threshold: int = 10
    pending_age_alert_days: int = 7

    # Integrity
    stale_after_days: int = 90

    # Backups
    backup_dir: Path = Path("backups")
    max_backups: int = 10
    compress_backups: bool = True
    restore_delay_ms: int = 0

    # Monitor
    monitor_interval: float = 10.0
    monitor_history: int = 10

    # Display
    timezone: str = "America/Sao_Paulo"

    # Logging
    log_level: str = "INFO"


settings = Settings()

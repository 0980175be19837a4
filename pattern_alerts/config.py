"""
Configuration module for Pattern Alerts.

Loads environment variables and provides configuration constants.
All sensitive values should be in .env file (never commit to git).
"""

import os
from dataclasses import dataclass
from typing import Optional
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


@dataclass
class SupabaseConfig:
    """Supabase connection configuration."""
    url: str
    key: str  # Service role key for server-side operations

    @classmethod
    def from_env(cls) -> "SupabaseConfig":
        return cls(
            url=os.getenv("SUPABASE_URL", ""),
            key=os.getenv("SUPABASE_KEY", ""),
        )


@dataclass
class NotificationConfig:
    """Push/email delivery settings (the delivery functions themselves are external)."""
    functions_url: str  # Base URL of the send-push / send-email functions
    service_key: str
    icon_url: str = ""
    dashboard_url: str = "/dashboard"
    timeout: int = 15

    # Fan-out shape
    push_summary_count: int = 3
    email_max_matches: int = 10

    @classmethod
    def from_env(cls) -> "NotificationConfig":
        supabase_url = os.getenv("SUPABASE_URL", "").rstrip("/")
        default_functions = f"{supabase_url}/functions/v1" if supabase_url else ""
        return cls(
            functions_url=os.getenv("NOTIFY_FUNCTIONS_URL", default_functions),
            service_key=os.getenv("SUPABASE_KEY", ""),
            icon_url=os.getenv("NOTIFY_ICON_URL", ""),
            dashboard_url=os.getenv("NOTIFY_DASHBOARD_URL", "/dashboard"),
            timeout=int(os.getenv("NOTIFY_TIMEOUT", "15")),
            push_summary_count=int(os.getenv("PUSH_SUMMARY_COUNT", "3")),
            email_max_matches=int(os.getenv("EMAIL_MAX_MATCHES", "10")),
        )


@dataclass
class MatchingConfig:
    """Scan sizing, time budgets and retention for the matching runs."""
    # Batching (rows per inventory page and page caps per run type)
    scan_batch_size: int = 1000
    sweep_max_batches: int = 10  # 10k auctions per sweep
    sweep_window_days: int = 7
    check_max_batches: int = 10
    backfill_max_batches_per_token: int = 50
    backfill_fallback_max_batches: int = 50

    # Time budgets
    pattern_batch_budget_ms: int = 250
    run_timeout_seconds: float = 120.0
    check_min_interval_seconds: int = 30

    # Ledger
    alert_retention_days: int = 8
    ledger_insert_batch: int = 500

    # Scheduling
    sweep_interval_minutes: int = 30

    # Free-plan pattern limit
    max_patterns_per_owner: int = 30

    @classmethod
    def from_env(cls) -> "MatchingConfig":
        return cls(
            scan_batch_size=int(os.getenv("SCAN_BATCH_SIZE", "1000")),
            sweep_max_batches=int(os.getenv("SWEEP_MAX_BATCHES", "10")),
            sweep_window_days=int(os.getenv("SWEEP_WINDOW_DAYS", "7")),
            check_max_batches=int(os.getenv("CHECK_MAX_BATCHES", "10")),
            backfill_max_batches_per_token=int(os.getenv("BACKFILL_MAX_BATCHES_PER_TOKEN", "50")),
            backfill_fallback_max_batches=int(os.getenv("BACKFILL_FALLBACK_MAX_BATCHES", "50")),
            pattern_batch_budget_ms=int(os.getenv("PATTERN_BATCH_BUDGET_MS", "250")),
            run_timeout_seconds=float(os.getenv("RUN_TIMEOUT_SECONDS", "120")),
            check_min_interval_seconds=int(os.getenv("CHECK_MIN_INTERVAL_SECONDS", "30")),
            alert_retention_days=int(os.getenv("ALERT_RETENTION_DAYS", "8")),
            ledger_insert_batch=int(os.getenv("LEDGER_INSERT_BATCH", "500")),
            sweep_interval_minutes=int(os.getenv("SWEEP_INTERVAL_MINUTES", "30")),
            max_patterns_per_owner=int(os.getenv("MAX_PATTERNS_PER_OWNER", "30")),
        )


# Global configuration instances (lazy loaded)
_supabase_config: Optional[SupabaseConfig] = None
_notification_config: Optional[NotificationConfig] = None
_matching_config: Optional[MatchingConfig] = None


def get_supabase_config() -> SupabaseConfig:
    """Get Supabase configuration (cached)."""
    global _supabase_config
    if _supabase_config is None:
        _supabase_config = SupabaseConfig.from_env()
    return _supabase_config


def get_notification_config() -> NotificationConfig:
    """Get notification configuration (cached)."""
    global _notification_config
    if _notification_config is None:
        _notification_config = NotificationConfig.from_env()
    return _notification_config


def get_matching_config() -> MatchingConfig:
    """Get matching configuration (cached)."""
    global _matching_config
    if _matching_config is None:
        _matching_config = MatchingConfig.from_env()
    return _matching_config

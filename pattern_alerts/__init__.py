"""
Pattern Alerts - Domain auction pattern matching and alerting

Users save regex-like patterns with price, TLD, length and age filters.
Every pattern is checked against the live auction inventory, each match is
surfaced at most once, and owners get one summarized notification per run.

Modules:
- config: Configuration and environment variables
- errors: Exception taxonomy
- models: Data models (dataclasses)
- db: Supabase integration for storage and inventory reads
- normalization: Domain-name helpers and structured shorthand
- regex_syntax: Tokenizer/parser for user patterns
- regex_safety: ReDoS safety validator
- prefilter: Literal-hint pre-filter
- matching: Match evaluator and query pushdown
- ledger: Alert ledger (dedup + retention)
- patterns: Pattern create/edit/delete
- notifications: Push/email fan-out
- pipeline: On-demand check, global sweep and backfill
- scheduler: APScheduler setup for the sweep
- api_server: HTTP API
"""

__version__ = "0.1.0"

# Convenient imports
from .models import (
    Pattern,
    PatternType,
    InventoryRow,
    MatchResult,
    AlertRecord,
    AuctionQuery,
    CheckResult,
    CheckStatus,
    SweepResult,
    BackfillResult,
)
from .errors import (
    PatternAlertsError,
    ValidationError,
    InventoryReadError,
    EvaluationTimeout,
    DeliveryError,
    StorageError,
    AuthError,
    PatternNotFound,
    PatternLimitReached,
)
from .regex_safety import validate, compile_pattern, ValidationResult
from .prefilter import derive_literal_hint, LiteralHint
from .matching import evaluate, prepare, PatternMatcher
from .ledger import AlertLedger
from .patterns import PatternService
from .notifications import NotificationFanout
from .pipeline import (
    check_owner_patterns,
    sweep_all_patterns,
    backfill_pattern,
    RunBudget,
)

__all__ = [
    # Models
    "Pattern",
    "PatternType",
    "InventoryRow",
    "MatchResult",
    "AlertRecord",
    "AuctionQuery",
    "CheckResult",
    "CheckStatus",
    "SweepResult",
    "BackfillResult",
    # Errors
    "PatternAlertsError",
    "ValidationError",
    "InventoryReadError",
    "EvaluationTimeout",
    "DeliveryError",
    "StorageError",
    "AuthError",
    "PatternNotFound",
    "PatternLimitReached",
    # Validation and matching
    "validate",
    "compile_pattern",
    "ValidationResult",
    "derive_literal_hint",
    "LiteralHint",
    "evaluate",
    "prepare",
    "PatternMatcher",
    # Ledger and patterns
    "AlertLedger",
    "PatternService",
    # Notifications
    "NotificationFanout",
    # Pipeline
    "check_owner_patterns",
    "sweep_all_patterns",
    "backfill_pattern",
    "RunBudget",
]

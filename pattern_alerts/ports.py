"""Ports (interfaces) used by the matching pipeline.

Ports define the minimal contracts for storage, inventory and delivery so
the pipeline runs unchanged against Supabase in production and in-memory
fakes in tests.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional, Protocol

from .models import AlertRecord, AuctionQuery, InventoryRow, Pattern


class InventorySource(Protocol):
    """Read-only, paginated view of the auction corpus."""

    def list_auctions(self, query: AuctionQuery, offset: int, limit: int) -> list[InventoryRow]:
        ...


class PatternRepository(Protocol):
    """Durable pattern definitions."""

    def get_pattern(self, owner: str, pattern_id: str) -> Optional[Pattern]:
        ...

    def list_patterns(self, owner: str) -> list[Pattern]:
        ...

    def list_enabled_patterns(self, owner: Optional[str] = None) -> list[Pattern]:
        ...

    def count_patterns(self, owner: str) -> int:
        ...

    def insert_pattern(self, data: dict) -> Pattern:
        ...

    def update_pattern(self, owner: str, pattern_id: str, changes: dict) -> Pattern:
        ...

    def delete_pattern(self, owner: str, pattern_id: str) -> None:
        ...

    def delete_all_patterns(self, owner: str) -> int:
        ...

    def mark_matched(self, pattern_ids: Iterable[str], matched_at: datetime) -> None:
        ...


class AlertLedgerStore(Protocol):
    """Dedup ledger of (owner, pattern_id, auction_id) triples."""

    def insert_alerts_ignore_duplicates(self, records: list[AlertRecord]) -> list[AlertRecord]:
        """Insert records, skipping existing triples; return only rows actually inserted."""
        ...

    def alerted_auction_ids(self, owner: str, pattern_id: str) -> set[str]:
        ...

    def delete_alerts(self, owner: str, pattern_id: Optional[str] = None) -> int:
        ...

    def delete_alerts_before(self, cutoff: datetime) -> int:
        ...


class CheckLog(Protocol):
    """Per-owner timestamp of the last on-demand check (debounce state)."""

    def claim_check(self, owner: str, now: datetime, min_interval_seconds: int) -> bool:
        """Record a check at ``now`` unless one happened within the interval."""
        ...


class NotificationTransport(Protocol):
    """Push/email delivery capability (fire-and-forget from our side)."""

    def send_push(self, owner: str, payload: dict) -> None:
        ...

    def send_email(self, owner: str, payload: dict) -> None:
        ...

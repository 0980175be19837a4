"""
Alert Ledger for Pattern Alerts.

Records which (owner, pattern, auction) triples have already been surfaced
so every match is notified at most once. The storage-level uniqueness
constraint is the source of truth; inserts ignore conflicts, so concurrent
runs racing the same triple neither error nor duplicate.

Retention cleanup is advisory housekeeping only.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from .models import AlertRecord, MatchResult, utcnow
from .ports import AlertLedgerStore

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_DAYS = 8
DEFAULT_INSERT_BATCH = 500


class AlertLedger:
    """
    Dedup ledger over an AlertLedgerStore.

    Usage:
        ledger = AlertLedger(get_db())
        new = ledger.record(matches)   # only the never-seen-before matches
    """

    def __init__(self, store: AlertLedgerStore, insert_batch: int = DEFAULT_INSERT_BATCH):
        self.store = store
        self.insert_batch = insert_batch

    def already_alerted(self, owner: str, pattern_id: str) -> set[str]:
        """Auction ids already surfaced for this owner's pattern."""
        return self.store.alerted_auction_ids(owner, pattern_id)

    def record(self, matches: list[MatchResult], alerted_at: Optional[datetime] = None) -> list[MatchResult]:
        """
        Persist matches as AlertRecords, returning only those newly inserted.

        Duplicates within the list and triples already in storage are
        dropped silently; that is the expected path, not an error.
        """
        if not matches:
            return []

        alerted_at = alerted_at or utcnow()
        by_key: dict[tuple[str, str, str], MatchResult] = {}
        for match in matches:
            record = match.to_alert(alerted_at)
            by_key.setdefault(record.key, match)

        records = [match.to_alert(alerted_at) for match in by_key.values()]
        inserted: list[AlertRecord] = []
        for start in range(0, len(records), self.insert_batch):
            batch = records[start:start + self.insert_batch]
            inserted.extend(self.store.insert_alerts_ignore_duplicates(batch))

        skipped = len(records) - len(inserted)
        if skipped:
            logger.debug(f"Ledger absorbed {skipped} already-recorded matches")

        return [by_key[record.key] for record in inserted if record.key in by_key]

    def invalidate_pattern(self, owner: str, pattern_id: str) -> int:
        """Forget everything a pattern has surfaced (after a filter edit)."""
        deleted = self.store.delete_alerts(owner, pattern_id)
        logger.info(f"Invalidated {deleted} alerts for pattern {pattern_id}")
        return deleted

    def clear(self, owner: str, pattern_id: Optional[str] = None) -> int:
        """User-initiated bulk clear of an owner's alerts."""
        deleted = self.store.delete_alerts(owner, pattern_id)
        logger.info(f"Cleared {deleted} alerts for {owner}")
        return deleted

    def purge_expired(self, retention_days: int = DEFAULT_RETENTION_DAYS, now: Optional[datetime] = None) -> int:
        """Delete AlertRecords older than the retention horizon."""
        cutoff = (now or utcnow()) - timedelta(days=retention_days)
        deleted = self.store.delete_alerts_before(cutoff)
        logger.info(f"Purged {deleted} alerts older than {cutoff.isoformat()}")
        return deleted

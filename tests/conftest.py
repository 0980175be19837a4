from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

import pytest

from pattern_alerts.config import MatchingConfig, NotificationConfig
from pattern_alerts.errors import DeliveryError, InventoryReadError, PatternNotFound
from pattern_alerts.models import AlertRecord, AuctionQuery, InventoryRow, Pattern
from pattern_alerts.normalization import split_domain

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


class InMemoryInventory:
    """Applies AuctionQuery predicates the way the database would."""

    def __init__(self, rows: Optional[list[InventoryRow]] = None) -> None:
        self.rows: list[InventoryRow] = list(rows or [])
        self.queries: list[tuple[AuctionQuery, int, int]] = []
        self.fail_offsets: set[int] = set()

    def add(self, domain_name: str, price: float = 10.0, **kwargs) -> InventoryRow:
        kwargs.setdefault("end_time", NOW + timedelta(days=1))
        kwargs.setdefault("updated_at", NOW)
        kwargs.setdefault("tld", split_domain(domain_name)[1])
        row = InventoryRow(id=kwargs.pop("id", f"a{len(self.rows) + 1}"), domain_name=domain_name, price=price, **kwargs)
        self.rows.append(row)
        return row

    def list_auctions(self, query: AuctionQuery, offset: int, limit: int) -> list[InventoryRow]:
        self.queries.append((query, offset, limit))
        if offset in self.fail_offsets:
            raise InventoryReadError(f"page @{offset} unavailable")

        selected = [row for row in self.rows if self._admits(query, row)]
        selected.sort(key=lambda row: (getattr(row, query.order_by) or NOW, row.id), reverse=query.descending)
        return selected[offset:offset + limit]

    def _admits(self, query: AuctionQuery, row: InventoryRow) -> bool:
        name = row.domain_name.lower()
        if query.ending_after and row.end_time and row.end_time < query.ending_after:
            return False
        if query.ending_before and row.end_time and row.end_time > query.ending_before:
            return False
        if query.min_price is not None and row.price < query.min_price:
            return False
        if query.max_price is not None and row.price > query.max_price:
            return False
        if query.tld and row.tld and not row.tld.lower().endswith(query.tld):
            return False
        if query.known_age_only and not row.has_known_age:
            return False
        if query.min_age is not None and (row.domain_age or 0) < query.min_age:
            return False
        if query.max_age is not None and (row.domain_age or 0) > query.max_age:
            return False
        if query.contains_any and not any(token in name for token in query.contains_any):
            return False
        return True


class FakeStore:
    """Pattern repository, alert ledger store and check log backed by dicts."""

    def __init__(self) -> None:
        self.patterns: dict[str, Pattern] = {}
        self.alerts: dict[tuple[str, str, str], AlertRecord] = {}
        self.checks: dict[str, datetime] = {}
        self.marked: list[tuple[set[str], datetime]] = []

    # Patterns
    def add_pattern(self, owner: str = "user-1", pattern: str = "^ai", **fields) -> Pattern:
        data = {"id": fields.pop("id", uuid.uuid4().hex[:8]), "user_id": owner, "pattern": pattern}
        data.update(fields)
        return self.insert_pattern(data)

    def get_pattern(self, owner: str, pattern_id: str) -> Optional[Pattern]:
        pattern = self.patterns.get(pattern_id)
        return pattern if pattern and pattern.owner == owner else None

    def list_patterns(self, owner: str) -> list[Pattern]:
        return [p for p in self.patterns.values() if p.owner == owner]

    def list_enabled_patterns(self, owner: Optional[str] = None) -> list[Pattern]:
        return [p for p in self.patterns.values() if p.enabled and (owner is None or p.owner == owner)]

    def count_patterns(self, owner: str) -> int:
        return len(self.list_patterns(owner))

    def insert_pattern(self, data: dict) -> Pattern:
        data = dict(data)
        data.setdefault("id", uuid.uuid4().hex[:8])
        pattern = Pattern.from_dict(data)
        self.patterns[pattern.id] = pattern
        return pattern

    def update_pattern(self, owner: str, pattern_id: str, changes: dict) -> Pattern:
        current = self.get_pattern(owner, pattern_id)
        if current is None:
            raise PatternNotFound(pattern_id)
        data = current.to_dict()
        data.update(changes)
        updated = Pattern.from_dict(data)
        self.patterns[pattern_id] = updated
        return updated

    def delete_pattern(self, owner: str, pattern_id: str) -> None:
        if self.get_pattern(owner, pattern_id):
            del self.patterns[pattern_id]

    def delete_all_patterns(self, owner: str) -> int:
        ids = [p.id for p in self.list_patterns(owner)]
        for pattern_id in ids:
            del self.patterns[pattern_id]
        return len(ids)

    def mark_matched(self, pattern_ids: Iterable[str], matched_at: datetime) -> None:
        ids = set(pattern_ids)
        self.marked.append((ids, matched_at))
        for pattern_id in ids:
            if pattern_id in self.patterns:
                self.patterns[pattern_id].last_matched_at = matched_at

    # Alert ledger
    def insert_alerts_ignore_duplicates(self, records: list[AlertRecord]) -> list[AlertRecord]:
        inserted = []
        for record in records:
            if record.key in self.alerts:
                continue
            self.alerts[record.key] = record
            inserted.append(record)
        return inserted

    def alerted_auction_ids(self, owner: str, pattern_id: str) -> set[str]:
        return {a for (o, p, a) in self.alerts if o == owner and p == pattern_id}

    def delete_alerts(self, owner: str, pattern_id: Optional[str] = None) -> int:
        keys = [k for k in self.alerts if k[0] == owner and (pattern_id is None or k[1] == pattern_id)]
        for key in keys:
            del self.alerts[key]
        return len(keys)

    def delete_alerts_before(self, cutoff: datetime) -> int:
        keys = [k for k, record in self.alerts.items() if record.alerted_at < cutoff]
        for key in keys:
            del self.alerts[key]
        return len(keys)

    # Check log
    def claim_check(self, owner: str, now: datetime, min_interval_seconds: int) -> bool:
        last = self.checks.get(owner)
        if last and now - last < timedelta(seconds=min_interval_seconds):
            return False
        self.checks[owner] = now
        return True


class FakeTransport:
    def __init__(self, failing_owners: Iterable[str] = ()) -> None:
        self.pushes: list[tuple[str, dict]] = []
        self.emails: list[tuple[str, dict]] = []
        self.failing_owners = set(failing_owners)

    def send_push(self, owner: str, payload: dict) -> None:
        if owner in self.failing_owners:
            raise DeliveryError("push", owner, "endpoint gone")
        self.pushes.append((owner, payload))

    def send_email(self, owner: str, payload: dict) -> None:
        if owner in self.failing_owners:
            raise DeliveryError("email", owner, "mailbox unavailable")
        self.emails.append((owner, payload))


@pytest.fixture
def inventory() -> InMemoryInventory:
    return InMemoryInventory()


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def matching_config() -> MatchingConfig:
    return MatchingConfig(scan_batch_size=100, pattern_batch_budget_ms=None, run_timeout_seconds=0)


@pytest.fixture
def notification_config() -> NotificationConfig:
    return NotificationConfig(functions_url="https://example.test/functions/v1", service_key="service")


@pytest.fixture
def now() -> datetime:
    return NOW

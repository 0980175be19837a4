from __future__ import annotations

from datetime import timedelta

from conftest import FakeStore
from pattern_alerts.ledger import AlertLedger
from pattern_alerts.models import AlertRecord, MatchResult


def _match(auction_id: str, pattern_id: str = "p1", owner: str = "user-1") -> MatchResult:
    return MatchResult(
        auction_id=auction_id,
        domain_name=f"{auction_id}.com",
        price=10.0,
        end_time=None,
        pattern_id=pattern_id,
        pattern_description="^a",
        owner=owner,
    )


def test_record_returns_only_new_matches(store: FakeStore) -> None:
    ledger = AlertLedger(store)

    first = ledger.record([_match("a1"), _match("a2")])
    second = ledger.record([_match("a2"), _match("a3")])

    assert [m.auction_id for m in first] == ["a1", "a2"]
    assert [m.auction_id for m in second] == ["a3"]
    assert len(store.alerts) == 3


def test_duplicates_within_one_call_are_collapsed(store: FakeStore) -> None:
    ledger = AlertLedger(store)

    new = ledger.record([_match("a1"), _match("a1"), _match("a1", pattern_id="p2")])

    assert len(new) == 2
    assert set(store.alerts) == {("user-1", "p1", "a1"), ("user-1", "p2", "a1")}


def test_inserts_in_batches(store: FakeStore) -> None:
    calls = []
    original = store.insert_alerts_ignore_duplicates

    def spy(records):
        calls.append(len(records))
        return original(records)

    store.insert_alerts_ignore_duplicates = spy
    ledger = AlertLedger(store, insert_batch=2)

    ledger.record([_match(f"a{i}") for i in range(5)])

    assert calls == [2, 2, 1]


def test_already_alerted_is_scoped_to_owner_and_pattern(store: FakeStore) -> None:
    ledger = AlertLedger(store)
    ledger.record([_match("a1"), _match("a2", pattern_id="p2"), _match("a3", owner="user-2")])

    assert ledger.already_alerted("user-1", "p1") == {"a1"}


def test_invalidate_and_clear(store: FakeStore) -> None:
    ledger = AlertLedger(store)
    ledger.record([_match("a1"), _match("a2", pattern_id="p2"), _match("a3", owner="user-2")])

    assert ledger.invalidate_pattern("user-1", "p1") == 1
    assert ledger.clear("user-1") == 1
    assert set(store.alerts) == {("user-2", "p1", "a3")}


def test_purge_expired_respects_retention(store: FakeStore, now) -> None:
    store.alerts[("u", "p", "old")] = AlertRecord("u", "p", "old", "old.com", alerted_at=now - timedelta(days=9))
    store.alerts[("u", "p", "new")] = AlertRecord("u", "p", "new", "new.com", alerted_at=now - timedelta(days=1))

    purged = AlertLedger(store).purge_expired(retention_days=8, now=now)

    assert purged == 1
    assert set(store.alerts) == {("u", "p", "new")}

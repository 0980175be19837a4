from __future__ import annotations

import pytest

from conftest import FakeStore
from pattern_alerts.errors import PatternLimitReached, PatternNotFound, ValidationError
from pattern_alerts.ledger import AlertLedger
from pattern_alerts.models import MatchResult, PatternType
from pattern_alerts.patterns import PatternService
from pattern_alerts.regex_safety import REASON_EMPTY, REASON_NESTED


@pytest.fixture
def service(store: FakeStore) -> PatternService:
    return PatternService(store, AlertLedger(store))


def _seed_alert(store: FakeStore, pattern_id: str, owner: str = "user-1") -> None:
    AlertLedger(store).record([
        MatchResult("a1", "aidog.com", 50.0, None, pattern_id, "^ai", owner=owner),
    ])


def test_create_stores_validated_pattern(service: PatternService, store: FakeStore) -> None:
    pattern = service.create("user-1", {"pattern": " ^ai ", "tld_filter": ".COM", "max_price": "100"}, max_patterns=5)

    assert pattern.pattern == "^ai"
    assert pattern.tld_filter == "com"
    assert pattern.max_price == 100.0
    assert pattern.enabled
    assert store.patterns[pattern.id].owner == "user-1"


def test_create_rejects_unsafe_pattern(service: PatternService, store: FakeStore) -> None:
    with pytest.raises(ValidationError) as excinfo:
        service.create("user-1", {"pattern": "(a+)+"}, max_patterns=5)

    assert excinfo.value.reason == REASON_NESTED
    assert not store.patterns


def test_create_rejects_empty_pattern(service: PatternService) -> None:
    with pytest.raises(ValidationError) as excinfo:
        service.create("user-1", {"pattern": "  "}, max_patterns=5)

    assert excinfo.value.reason == REASON_EMPTY


def test_create_enforces_plan_limit(service: PatternService, store: FakeStore) -> None:
    store.add_pattern("user-1", "^a")
    store.add_pattern("user-1", "^b")

    with pytest.raises(PatternLimitReached):
        service.create("user-1", {"pattern": "^c"}, max_patterns=2)


def test_create_accepts_structure_shorthand(service: PatternService) -> None:
    pattern = service.create("user-1", {"pattern": "CVCV", "pattern_type": "pronounceable"}, max_patterns=5)

    assert pattern.pattern_type is PatternType.PRONOUNCEABLE
    assert pattern.regex_source.startswith("^")


def test_unknown_field_is_rejected(service: PatternService) -> None:
    with pytest.raises(ValueError):
        service.create("user-1", {"pattern": "^ai", "owner": "someone-else"}, max_patterns=5)


def test_editing_max_price_invalidates_alerts(service: PatternService, store: FakeStore) -> None:
    pattern = store.add_pattern("user-1", "^ai")
    _seed_alert(store, pattern.id)

    updated, invalidated = service.update("user-1", pattern.id, {"max_price": 25})

    assert invalidated
    assert updated.max_price == 25.0
    assert store.alerted_auction_ids("user-1", pattern.id) == set()


def test_editing_description_keeps_alerts(service: PatternService, store: FakeStore) -> None:
    pattern = store.add_pattern("user-1", "^ai")
    _seed_alert(store, pattern.id)

    updated, invalidated = service.update("user-1", pattern.id, {"description": "AI names"})

    assert not invalidated
    assert updated.description == "AI names"
    assert store.alerted_auction_ids("user-1", pattern.id) == {"a1"}


def test_resaving_same_tld_in_other_spelling_keeps_alerts(service: PatternService, store: FakeStore) -> None:
    pattern = store.add_pattern("user-1", "^ai", tld_filter="io")
    _seed_alert(store, pattern.id)

    _, invalidated = service.update("user-1", pattern.id, {"tld_filter": ".IO"})

    assert not invalidated


def test_edit_with_unsafe_pattern_changes_nothing(service: PatternService, store: FakeStore) -> None:
    pattern = store.add_pattern("user-1", "^ai")
    _seed_alert(store, pattern.id)

    with pytest.raises(ValidationError):
        service.update("user-1", pattern.id, {"pattern": "(x*)*"})

    assert store.patterns[pattern.id].pattern == "^ai"
    assert store.alerted_auction_ids("user-1", pattern.id) == {"a1"}


def test_update_of_other_owners_pattern_is_not_found(service: PatternService, store: FakeStore) -> None:
    pattern = store.add_pattern("user-2", "^ai")

    with pytest.raises(PatternNotFound):
        service.update("user-1", pattern.id, {"max_price": 5})


def test_delete_removes_pattern_and_its_alerts(service: PatternService, store: FakeStore) -> None:
    pattern = store.add_pattern("user-1", "^ai")
    _seed_alert(store, pattern.id)

    service.delete("user-1", pattern.id)

    assert pattern.id not in store.patterns
    assert not store.alerts


def test_delete_all_and_toggle(service: PatternService, store: FakeStore) -> None:
    first = store.add_pattern("user-1", "^a")
    store.add_pattern("user-1", "^b")
    store.add_pattern("user-2", "^c")

    assert not service.set_enabled("user-1", first.id, False).enabled
    assert [p.pattern for p in service.enabled_for("user-1")] == ["^b"]
    assert service.delete_all("user-1") == 2
    assert [p.owner for p in service.enabled_for()] == ["user-2"]

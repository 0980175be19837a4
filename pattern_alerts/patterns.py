"""
Pattern lifecycle for Pattern Alerts.

Create, edit, toggle and delete user patterns. Every pattern passes the
safety validator before it is stored. Editing any filter field drops the
pattern's existing alerts so the next run re-evaluates under the new
filters; editing only the description leaves them alone.
"""

import logging
from typing import Optional

from .errors import PatternLimitReached, PatternNotFound, ValidationError
from .ledger import AlertLedger
from .models import FILTER_FIELDS, Pattern, PatternType
from .normalization import expand_shorthand, is_shorthand, normalize_tld
from .ports import PatternRepository
from .regex_safety import REASON_EMPTY, ensure_valid

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = FILTER_FIELDS + ("description",)


def _regex_for(pattern_text: str, pattern_type: PatternType) -> str:
    if pattern_type in (PatternType.STRUCTURE, PatternType.PRONOUNCEABLE) and is_shorthand(pattern_text):
        return expand_shorthand(pattern_text)
    return pattern_text


def _clean(fields: dict) -> dict:
    """Normalize user input into column values."""
    cleaned = {}
    for name, value in fields.items():
        if name not in EDITABLE_FIELDS:
            raise ValueError(f"Unknown pattern field: {name}")
        if name == "pattern_type":
            value = PatternType(value).value
        elif name == "tld_filter":
            value = normalize_tld(value) or None
        elif name == "description":
            value = (value or "").strip() or None
        elif name == "pattern":
            value = value.strip() if isinstance(value, str) else value
        elif name == "min_price":
            value = float(value or 0)
        elif value is not None and value != "":
            value = float(value) if name in ("max_price", "min_age", "max_age") else int(value)
        else:
            value = None
        cleaned[name] = value
    return cleaned


class PatternService:
    """
    Pattern create/edit/delete with validation and alert invalidation.

    Usage:
        service = PatternService(get_db(), AlertLedger(get_db()))
        pattern = service.create(owner, {"pattern": "^ai"}, max_patterns=5)
    """

    def __init__(self, repository: PatternRepository, ledger: AlertLedger):
        self.repository = repository
        self.ledger = ledger

    def get(self, owner: str, pattern_id: str) -> Pattern:
        pattern = self.repository.get_pattern(owner, pattern_id)
        if pattern is None:
            raise PatternNotFound(pattern_id)
        return pattern

    def create(self, owner: str, fields: dict, max_patterns: int) -> Pattern:
        """
        Validate and store a new pattern.

        Args:
            owner: Owner user id
            fields: Pattern text and filters (see EDITABLE_FIELDS)
            max_patterns: The owner's plan limit

        Raises:
            PatternLimitReached: If the owner is already at the limit
            ValidationError: If the pattern is unsafe or invalid
        """
        if not (fields.get("pattern") or "").strip():
            raise ValidationError(REASON_EMPTY)
        if self.repository.count_patterns(owner) >= max_patterns:
            raise PatternLimitReached(max_patterns)

        data = {"pattern_type": PatternType.REGEX.value, "min_price": 0.0}
        data.update(_clean(fields))
        ensure_valid(_regex_for(data["pattern"], PatternType(data["pattern_type"])))

        data["user_id"] = owner
        data["enabled"] = True
        return self.repository.insert_pattern(data)

    def update(self, owner: str, pattern_id: str, fields: dict) -> tuple[Pattern, bool]:
        """
        Apply an edit.

        Returns:
            (updated pattern, whether its alerts were invalidated)

        Raises:
            PatternNotFound: If the pattern is not the owner's
            ValidationError: If the new pattern text is rejected
        """
        current = self.get(owner, pattern_id)
        changes = _clean(fields)

        before = current.filter_values()
        after = dict(before)
        after.update({name: value for name, value in changes.items() if name in FILTER_FIELDS})
        if "pattern" in changes or "pattern_type" in changes:
            ensure_valid(_regex_for(after["pattern"], PatternType(after["pattern_type"])))

        updated = self.repository.update_pattern(owner, pattern_id, changes)

        filters_changed = updated.filter_values() != before
        if filters_changed:
            self.ledger.invalidate_pattern(owner, pattern_id)
        return updated, filters_changed

    def set_enabled(self, owner: str, pattern_id: str, enabled: bool) -> Pattern:
        return self.repository.update_pattern(owner, pattern_id, {"enabled": enabled})

    def delete(self, owner: str, pattern_id: str) -> None:
        """Delete a pattern and its ledger rows."""
        self.get(owner, pattern_id)
        self.repository.delete_pattern(owner, pattern_id)
        self.ledger.clear(owner, pattern_id)

    def delete_all(self, owner: str) -> int:
        deleted = self.repository.delete_all_patterns(owner)
        self.ledger.clear(owner)
        return deleted

    def list_for(self, owner: str) -> list[Pattern]:
        return self.repository.list_patterns(owner)

    def enabled_for(self, owner: Optional[str] = None) -> list[Pattern]:
        return self.repository.list_enabled_patterns(owner)

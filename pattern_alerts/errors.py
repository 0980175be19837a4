"""
Error taxonomy for Pattern Alerts.

Only AuthError and StorageError are run-level failures. Everything else is
local to one pattern, owner or batch and is logged by the pipeline without
aborting the rest of the run.
"""

from typing import Optional


class PatternAlertsError(Exception):
    """Base class for all errors raised by this package."""


class ValidationError(PatternAlertsError):
    """Pattern rejected by the safety validator. Never stored, never retried."""

    def __init__(self, reason: str, pattern: Optional[str] = None):
        self.reason = reason
        self.pattern = pattern
        super().__init__(reason)


class InventoryReadError(PatternAlertsError):
    """A batch fetch from the inventory source failed."""


class EvaluationTimeout(PatternAlertsError):
    """A pattern exceeded its per-batch time budget."""

    def __init__(self, pattern_id: str, elapsed_ms: float, budget_ms: float, matches: Optional[list] = None):
        self.pattern_id = pattern_id
        self.elapsed_ms = elapsed_ms
        self.budget_ms = budget_ms
        # Matches found in the batch before the budget ran out
        self.matches = matches or []
        super().__init__(
            f"Pattern {pattern_id} exceeded {budget_ms:.0f}ms batch budget ({elapsed_ms:.0f}ms)"
        )


class DeliveryError(PatternAlertsError):
    """A push or email send failed for one owner."""

    def __init__(self, channel: str, owner: str, message: str):
        self.channel = channel
        self.owner = owner
        super().__init__(f"{channel} delivery to {owner} failed: {message}")


class StorageError(PatternAlertsError):
    """Pattern store or alert ledger unavailable."""


class AuthError(PatternAlertsError):
    """Owner identity could not be established."""


class PatternNotFound(PatternAlertsError):
    """Pattern does not exist or belongs to another owner."""


class PatternLimitReached(PatternAlertsError):
    """Owner is already at the plan's pattern limit."""

    def __init__(self, max_patterns: int):
        self.max_patterns = max_patterns
        super().__init__(f"You can only have {max_patterns} patterns on your current plan")

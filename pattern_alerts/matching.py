"""
Pattern Matching module for Pattern Alerts.

Evaluates inventory rows against user patterns. A row matches when every
structured filter passes (price, TLD, length, age) and the pattern's regex
matches the domain name with its TLD stripped, case-insensitively.

Structured filters are checked first and are also pushed down to the
inventory source (see build_query) so most rows never reach the regex.
"""

import re
import time
import logging
from dataclasses import dataclass, replace
from typing import Callable, Iterable, Optional

from .errors import EvaluationTimeout
from .models import AuctionQuery, InventoryRow, MatchResult, Pattern
from .prefilter import LiteralHint, NO_HINT, derive_literal_hint
from .regex_safety import compile_pattern

logger = logging.getLogger(__name__)


# =============================================================================
# COMPILED PATTERN
# =============================================================================

@dataclass(frozen=True)
class CompiledPattern:
    """A validated pattern ready for evaluation."""
    pattern: Pattern
    regex: re.Pattern
    hint: LiteralHint = NO_HINT

    @property
    def id(self) -> str:
        return self.pattern.id


def prepare(pattern: Pattern) -> CompiledPattern:
    """
    Validate and compile a stored pattern.

    Validation runs again here even though patterns are validated on save,
    so rows stored under older rules can never be evaluated unchecked.

    Raises:
        ValidationError: If the pattern no longer passes the validator
    """
    source = pattern.regex_source
    regex = compile_pattern(source)
    return CompiledPattern(pattern=pattern, regex=regex, hint=derive_literal_hint(source))


# =============================================================================
# PATTERN MATCHER
# =============================================================================

class PatternMatcher:
    """
    Applies compiled patterns to inventory rows.

    Each call to evaluate() is one batch for one pattern and is held to a
    wall-clock budget; going over raises EvaluationTimeout so the caller
    can drop the pattern for the rest of the run.

    Usage:
        matcher = PatternMatcher(batch_budget_ms=250)
        matches = matcher.evaluate(prepare(pattern), rows)
    """

    def __init__(
        self,
        batch_budget_ms: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.batch_budget_ms = batch_budget_ms
        self._clock = clock

    def evaluate(self, compiled: CompiledPattern, rows: Iterable[InventoryRow]) -> list[MatchResult]:
        """
        Evaluate one batch of rows against one pattern.

        Raises:
            EvaluationTimeout: If the batch takes longer than the budget;
                it carries the matches found before the budget ran out
        """
        matches = []
        started = self._clock()

        for row in rows:
            if self.batch_budget_ms is not None:
                elapsed_ms = (self._clock() - started) * 1000
                if elapsed_ms > self.batch_budget_ms:
                    raise EvaluationTimeout(compiled.id, elapsed_ms, self.batch_budget_ms, matches=matches)

            if self.matches(compiled, row):
                matches.append(self._to_result(compiled.pattern, row))

        return matches

    def matches(self, compiled: CompiledPattern, row: InventoryRow) -> bool:
        """Full match decision for a single row."""
        pattern = compiled.pattern
        name = row.name_only

        if not self._check_price(row, pattern):
            return False
        if not self._check_tld(row, pattern):
            return False
        if not self._check_length(name, pattern):
            return False
        if not self._check_age(row, pattern):
            return False

        if not compiled.hint.admits(name):
            return False
        if compiled.hint.exact:
            return True
        return compiled.regex.search(name) is not None

    def _check_price(self, row: InventoryRow, pattern: Pattern) -> bool:
        if row.price < pattern.min_price:
            return False
        if pattern.max_price is not None and row.price > pattern.max_price:
            return False
        return True

    def _check_tld(self, row: InventoryRow, pattern: Pattern) -> bool:
        if not pattern.tld:
            return True
        return row.effective_tld == pattern.tld

    def _check_length(self, name: str, pattern: Pattern) -> bool:
        if pattern.min_length is not None and len(name) < pattern.min_length:
            return False
        if pattern.max_length is not None and len(name) > pattern.max_length:
            return False
        return True

    def _check_age(self, row: InventoryRow, pattern: Pattern) -> bool:
        """Unknown (missing or zero) age never satisfies an age-bounded pattern."""
        if not pattern.is_age_bounded:
            return True
        if not row.has_known_age:
            return False
        if pattern.min_age is not None and row.domain_age < pattern.min_age:
            return False
        if pattern.max_age is not None and row.domain_age > pattern.max_age:
            return False
        return True

    def _to_result(self, pattern: Pattern, row: InventoryRow) -> MatchResult:
        return MatchResult(
            auction_id=row.id,
            domain_name=row.domain_name,
            price=row.price,
            end_time=row.end_time,
            pattern_id=pattern.id,
            pattern_description=pattern.display_name,
            owner=pattern.owner,
        )


# =============================================================================
# PREDICATE PUSHDOWN
# =============================================================================

def build_query(
    compiled: CompiledPattern,
    base: AuctionQuery,
    use_hint: bool = True,
) -> AuctionQuery:
    """
    Add a pattern's structured filters (and literal hint) to a base query.

    Length is not pushed down; the evaluator checks it in process.
    """
    pattern = compiled.pattern
    return replace(
        base,
        min_price=pattern.min_price if pattern.min_price > 0 else None,
        max_price=pattern.max_price,
        tld=pattern.tld or None,
        min_age=pattern.min_age,
        max_age=pattern.max_age,
        known_age_only=pattern.is_age_bounded,
        contains_any=compiled.hint.tokens if use_hint else (),
    )


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def evaluate(pattern: Pattern, rows: Iterable[InventoryRow]) -> list[MatchResult]:
    """
    Convenience function to evaluate one pattern against rows, no budget.

    Raises:
        ValidationError: If the pattern fails validation
    """
    matcher = PatternMatcher()
    return matcher.evaluate(prepare(pattern), rows)

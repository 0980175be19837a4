"""
Regex safety validation for user-submitted patterns.

Rejects patterns likely to cause catastrophic backtracking (ReDoS) before
they are stored, and again before every evaluation. This is a heuristic
allow-list: it blocks the known-dangerous shapes, it does not prove that a
pattern runs in polynomial time.

Every code path that stores or evaluates a pattern must go through
validate() / compile_pattern() so the rules never drift apart.
"""

import re
import logging
from dataclasses import dataclass
from typing import Optional

from .errors import ValidationError
from .regex_syntax import (
    CLOSE,
    OPEN,
    QUANT,
    Alternation,
    Group,
    Quantified,
    RegexSyntaxError,
    contains_quantifier,
    parse,
    tokenize,
    walk,
)

logger = logging.getLogger(__name__)

# Maximum allowed pattern length
MAX_PATTERN_LENGTH = 200

# Maximum allowed nesting depth for groups
MAX_NESTING_DEPTH = 3

# Maximum number of quantifiers allowed
MAX_QUANTIFIERS = 5

REASON_TOO_LONG = f"Pattern too long (max {MAX_PATTERN_LENGTH} characters)"
REASON_EMPTY = "Pattern cannot be empty"
REASON_NESTED = "Nested quantifiers detected - this pattern could cause performance issues"
REASON_ALTERNATION = "Alternation with quantifiers detected - this pattern could cause performance issues"
REASON_DEPTH = f"Pattern nesting too deep (max {MAX_NESTING_DEPTH} levels)"
REASON_QUANTIFIERS = f"Too many quantifiers (max {MAX_QUANTIFIERS})"
REASON_ADJACENT = "Consecutive quantifiers are not allowed"
REASON_INVALID = "Invalid regex syntax"


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validate(): ok, or rejected with a user-facing reason."""
    ok: bool
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.ok


OK = ValidationResult(ok=True)


def _rejected(reason: str) -> ValidationResult:
    return ValidationResult(ok=False, reason=reason)


def validate(pattern: str) -> ValidationResult:
    """
    Validate a pattern for safety against ReDoS.

    Checks, in order:
    - length limit and non-empty
    - a repeating quantifier (+, *, {m,n}) applied to a group that itself
      contains a quantifier, e.g. (a+)+ or (a*){3}
    - a repeated alternation group where any alternative is quantified
    - group nesting depth
    - total quantifier count
    - adjacent quantifiers (a+*, a{2}+, lazy a+?)
    - compilation with the host ``re`` engine

    Returns:
        ValidationResult (truthy when the pattern is accepted)
    """
    if len(pattern) > MAX_PATTERN_LENGTH:
        return _rejected(REASON_TOO_LONG)

    if not pattern.strip():
        return _rejected(REASON_EMPTY)

    try:
        tokens = tokenize(pattern)
        tree = parse(pattern)
    except RegexSyntaxError as e:
        logger.debug(f"Pattern {pattern!r} failed to parse: {e}")
        return _rejected(REASON_INVALID)

    reason = _check_repeated_groups(tree)
    if reason:
        return _rejected(reason)

    depth = 0
    max_depth = 0
    for token in tokens:
        if token.kind == OPEN:
            depth += 1
            max_depth = max(max_depth, depth)
        elif token.kind == CLOSE:
            depth -= 1
    if max_depth > MAX_NESTING_DEPTH:
        return _rejected(REASON_DEPTH)

    quantifiers = [i for i, token in enumerate(tokens) if token.kind == QUANT]
    if len(quantifiers) > MAX_QUANTIFIERS:
        return _rejected(REASON_QUANTIFIERS)

    if any(b - a == 1 for a, b in zip(quantifiers, quantifiers[1:])):
        return _rejected(REASON_ADJACENT)

    try:
        re.compile(pattern)
    except re.error:
        return _rejected(REASON_INVALID)

    return OK


def _check_repeated_groups(tree) -> Optional[str]:
    """Find a repeating quantifier wrapped around a quantified group."""
    for node in walk(tree):
        if not isinstance(node, Quantified) or not _repeats(node.quantifier):
            continue
        inner = node.node
        if not isinstance(inner, Group):
            continue
        if isinstance(inner.body, Alternation):
            if any(contains_quantifier(branch) for branch in inner.body.branches):
                return REASON_ALTERNATION
        if contains_quantifier(inner.body):
            return REASON_NESTED
    return None


def _repeats(quantifier) -> bool:
    """+, * and counted {m,n} repeat; a plain ? does not."""
    return quantifier.max is None or quantifier.max > 1


def ensure_valid(pattern: str) -> None:
    """
    Validate and raise instead of returning a result.

    Raises:
        ValidationError: If the pattern is rejected
    """
    result = validate(pattern)
    if not result.ok:
        raise ValidationError(result.reason, pattern=pattern)


def compile_pattern(pattern: str) -> re.Pattern:
    """
    Validate then compile a pattern for case-insensitive matching.

    Case folding is ASCII-only, the same folding the literal hint uses, so
    "shop" never matches a name spelled with a long s (U+017F).

    Raises:
        ValidationError: If the pattern is rejected
    """
    ensure_valid(pattern)
    return re.compile(pattern, re.IGNORECASE | re.ASCII)

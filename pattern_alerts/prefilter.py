"""
Candidate pre-filter for pattern matching.

Derives a LiteralHint from a pattern: a set of lowercase literal tokens
such that every string the pattern matches contains at least one of them.
The inventory source can then narrow a scan with a cheap case-insensitive
"contains any token" predicate before any regex runs.

This is an approximation of the pattern, not a compilation of it. Tokens
only come from characters every match must contain:

- optional items (?, *, {0,n}) break literal runs and contribute nothing
- character classes, escapes like \\d, dots, anchors and backreferences
  break literal runs
- an alternation contributes only if every branch contributes, and then
  contributes the union of its branches' tokens
- lookarounds, conditionals and verbose-mode patterns contribute nothing

When no token of at least MIN_TOKEN_LENGTH survives, the hint is empty and
callers must fall back to a bounded full scan.
"""

import re
import logging
from dataclasses import dataclass
from typing import Optional

from .regex_syntax import (
    FLAGS,
    LITERAL,
    LOOKAROUND,
    CONDITIONAL,
    Alternation,
    Atom,
    Group,
    Node,
    Quantified,
    RegexSyntaxError,
    Sequence,
    parse,
    walk,
)

logger = logging.getLogger(__name__)

MIN_TOKEN_LENGTH = 2

# Characters allowed inside a pushed-down token; others split the run.
# Keeps tokens safe to embed in an ILIKE filter.
_TOKEN_CHARS = re.compile(r"[a-z0-9-]+")

_BARE_LITERAL = re.compile(r"[A-Za-z0-9]+")


@dataclass(frozen=True)
class LiteralHint:
    """
    Literal tokens at least one of which every match must contain.

    ``exact`` marks a pattern that is nothing but an alphanumeric literal:
    for those the substring test is a complete evaluation on its own.
    """
    tokens: tuple[str, ...] = ()
    exact: bool = False

    @property
    def usable(self) -> bool:
        return bool(self.tokens)

    def admits(self, text: str) -> bool:
        """Cheap superset test: True if the text could match the pattern."""
        if not self.tokens:
            return True
        lowered = text.lower()
        return any(token in lowered for token in self.tokens)


NO_HINT = LiteralHint()


def derive_literal_hint(pattern: str) -> LiteralHint:
    """
    Derive the literal hint for a (validated) pattern.

    Returns NO_HINT when nothing safe can be derived.
    """
    if _BARE_LITERAL.fullmatch(pattern):
        if len(pattern) >= MIN_TOKEN_LENGTH:
            return LiteralHint(tokens=(pattern.lower(),), exact=True)
        return NO_HINT

    try:
        tree = parse(pattern)
    except RegexSyntaxError:
        return NO_HINT

    if _uses_verbose_mode(tree):
        return NO_HINT

    required = _required(tree)
    if not required:
        logger.debug(f"No literal hint for pattern {pattern!r}")
        return NO_HINT

    return LiteralHint(tokens=tuple(sorted(required)))


def _uses_verbose_mode(tree: Node) -> bool:
    for node in walk(tree):
        if isinstance(node, Atom) and node.token.kind == FLAGS and "x" in node.token.flags:
            return True
        if isinstance(node, Group) and "x" in node.flags.split("-")[0]:
            return True
    return False


def _literal_text(node: Node) -> Optional[str]:
    """The exact text a node always matches, if it is a plain literal run."""
    if isinstance(node, Atom):
        return node.token.value.lower() if node.is_literal else None
    if isinstance(node, Group) and node.kind not in (LOOKAROUND, CONDITIONAL):
        return _literal_text(node.body)
    if isinstance(node, Sequence):
        parts = [_literal_text(item) for item in node.items]
        if not parts or any(part is None for part in parts):
            return None
        return "".join(parts)
    return None


def _required(node: Node) -> Optional[frozenset]:
    """Token set every match of ``node`` contains one of, or None."""
    if isinstance(node, Alternation):
        union: set = set()
        for branch in node.branches:
            branch_tokens = _required(branch)
            if not branch_tokens:
                return None
            union |= branch_tokens
        return frozenset(union)

    if isinstance(node, Group):
        if node.kind in (LOOKAROUND, CONDITIONAL):
            return None
        return _required(node.body)

    if isinstance(node, Quantified):
        if node.quantifier.min >= 1:
            return _required(node.node)
        return None

    if isinstance(node, Sequence):
        return _required_in_sequence(node)

    if isinstance(node, Atom) and node.is_literal:
        return _as_tokens(node.token.value.lower())

    return None


def _required_in_sequence(seq: Sequence) -> Optional[frozenset]:
    candidates: list[frozenset] = []
    run = ""

    def close_run():
        nonlocal run
        tokens = _as_tokens(run)
        if tokens:
            candidates.append(tokens)
        run = ""

    for item in seq.items:
        text = _literal_text(item)
        if text is not None:
            run += text
            continue

        if isinstance(item, Quantified) and item.quantifier.min >= 1:
            repeated = _literal_text(item.node)
            if repeated is not None:
                # "ab+c" always contains "ab" and "bc"
                run += repeated
                close_run()
                run = repeated
                continue

        close_run()
        nested = _required(item)
        if nested:
            candidates.append(nested)

    close_run()

    if not candidates:
        return None
    # Prefer the most selective set: longest shortest-token, then fewest tokens
    return max(candidates, key=lambda tokens: (min(len(t) for t in tokens), -len(tokens)))


def _as_tokens(run: str) -> Optional[frozenset]:
    """The longest token-safe piece of a literal run, as a one-token set."""
    pieces = [piece for piece in _TOKEN_CHARS.findall(run) if len(piece) >= MIN_TOKEN_LENGTH]
    if not pieces:
        return None
    return frozenset([max(pieces, key=len)])

"""
Tokenizer and parser for user-submitted patterns.

Understands enough of Python's ``re`` syntax to reason about structure:
groups and their kinds, alternation, quantifiers, character classes,
escapes and anchors. It is not a regex engine and does not try to be one.
The validator uses the token stream and the tree; the pre-filter uses the
tree to find literals every match must contain.

Anything the parser cannot make sense of raises RegexSyntaxError. Callers
treat that conservatively (reject / no literal hint) and leave the final
word on validity to ``re.compile``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Optional, Union


class RegexSyntaxError(ValueError):
    """Pattern could not be tokenized or parsed."""


# =============================================================================
# TOKENS
# =============================================================================

LITERAL = "literal"    # one literal character (value = the character)
CLASS = "class"        # [..], ., \d, \w, \x41 ... anything matching one of several chars
ANCHOR = "anchor"      # ^ $ \b \B \A \Z
BACKREF = "backref"    # \1, (?P=name)
FLAGS = "flags"        # (?imx) global inline flags
OPEN = "open"          # ( (?: (?P<n> (?= (?! (?<= (?<! (?> (?flags:
CLOSE = "close"
ALT = "alt"
QUANT = "quant"

# Group kinds (Token.group_kind)
CAPTURE = "capture"
NONCAPTURE = "noncapture"
ATOMIC = "atomic"
LOOKAROUND = "lookaround"
CONDITIONAL = "conditional"

_COUNTED_QUANT = re.compile(r"\{(\d+)(,(\d*))?\}|\{,(\d+)\}")
_FLAG_CHARS = set("aiLmsux-")
_CLASS_ESCAPES = set("dDwWsS")
_ANCHOR_ESCAPES = set("bBAZ")
_CONTROL_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "f": "\f", "v": "\v", "a": "\a"}


@dataclass(frozen=True)
class Token:
    kind: str
    text: str
    value: str = ""              # literal character for LITERAL tokens
    group_kind: str = ""         # for OPEN tokens
    flags: str = ""              # inline flags on OPEN / FLAGS tokens
    min: int = 0                 # for QUANT tokens
    max: Optional[int] = None    # None = unbounded


def tokenize(pattern: str) -> list[Token]:
    """Split a pattern into tokens."""
    tokens: list[Token] = []
    i = 0
    n = len(pattern)

    while i < n:
        ch = pattern[i]

        if ch == "\\":
            token, i = _read_escape(pattern, i)
            tokens.append(token)
        elif ch == "[":
            end = _find_class_end(pattern, i)
            tokens.append(Token(CLASS, pattern[i:end]))
            i = end
        elif ch == "(":
            token, i = _read_open(pattern, i)
            if token is not None:
                tokens.append(token)
        elif ch == ")":
            tokens.append(Token(CLOSE, ch))
            i += 1
        elif ch == "|":
            tokens.append(Token(ALT, ch))
            i += 1
        elif ch in "*+?":
            lo, hi = {"*": (0, None), "+": (1, None), "?": (0, 1)}[ch]
            tokens.append(Token(QUANT, ch, min=lo, max=hi))
            i += 1
        elif ch == "{" and _COUNTED_QUANT.match(pattern, i):
            m = _COUNTED_QUANT.match(pattern, i)
            if m.group(4) is not None:
                lo, hi = 0, int(m.group(4))
            else:
                lo = int(m.group(1))
                if m.group(2) is None:
                    hi = lo
                else:
                    hi = int(m.group(3)) if m.group(3) else None
            tokens.append(Token(QUANT, m.group(0), min=lo, max=hi))
            i = m.end()
        elif ch in "^$":
            tokens.append(Token(ANCHOR, ch))
            i += 1
        elif ch == ".":
            tokens.append(Token(CLASS, ch))
            i += 1
        else:
            tokens.append(Token(LITERAL, ch, value=ch))
            i += 1

    return tokens


def _read_escape(pattern: str, i: int) -> tuple[Token, int]:
    if i + 1 >= len(pattern):
        raise RegexSyntaxError("Pattern ends with a bare backslash")
    nxt = pattern[i + 1]

    if nxt.isdigit():
        j = i + 1
        while j < len(pattern) and pattern[j].isdigit() and j - i <= 3:
            j += 1
        return Token(BACKREF, pattern[i:j]), j
    if nxt in _CLASS_ESCAPES:
        return Token(CLASS, pattern[i:i + 2]), i + 2
    if nxt in _ANCHOR_ESCAPES:
        return Token(ANCHOR, pattern[i:i + 2]), i + 2
    if nxt in _CONTROL_ESCAPES:
        return Token(LITERAL, pattern[i:i + 2], value=_CONTROL_ESCAPES[nxt]), i + 2
    if nxt in "xuU":
        width = {"x": 2, "u": 4, "U": 8}[nxt]
        return Token(CLASS, pattern[i:i + 2 + width]), i + 2 + width
    if nxt == "N":
        end = pattern.find("}", i)
        end = len(pattern) if end == -1 else end + 1
        return Token(CLASS, pattern[i:end]), end
    if nxt.isalnum():
        # Unknown letter escapes are rejected by re.compile; keep them opaque
        return Token(CLASS, pattern[i:i + 2]), i + 2
    return Token(LITERAL, pattern[i:i + 2], value=nxt), i + 2


def _find_class_end(pattern: str, i: int) -> int:
    """Index just past the ``]`` closing the class opened at ``i``."""
    j = i + 1
    if j < len(pattern) and pattern[j] == "^":
        j += 1
    if j < len(pattern) and pattern[j] == "]":
        j += 1
    while j < len(pattern):
        if pattern[j] == "\\":
            j += 2
            continue
        if pattern[j] == "]":
            return j + 1
        j += 1
    raise RegexSyntaxError("Unterminated character class")


def _read_open(pattern: str, i: int) -> tuple[Optional[Token], int]:
    if not pattern.startswith("(?", i):
        return Token(OPEN, "(", group_kind=CAPTURE), i + 1

    rest = pattern[i + 2:]
    if rest.startswith(":"):
        return Token(OPEN, "(?:", group_kind=NONCAPTURE), i + 3
    if rest.startswith(">"):
        return Token(OPEN, "(?>", group_kind=ATOMIC), i + 3
    for prefix in ("=", "!", "<=", "<!"):
        if rest.startswith(prefix):
            return Token(OPEN, "(?" + prefix, group_kind=LOOKAROUND), i + 2 + len(prefix)
    if rest.startswith("P<") or (rest.startswith("<") and not rest.startswith(("<=", "<!"))):
        end = pattern.find(">", i)
        if end == -1:
            raise RegexSyntaxError("Unterminated group name")
        return Token(OPEN, pattern[i:end + 1], group_kind=CAPTURE), end + 1
    if rest.startswith("P="):
        end = pattern.find(")", i)
        if end == -1:
            raise RegexSyntaxError("Unterminated named backreference")
        return Token(BACKREF, pattern[i:end + 1]), end + 1
    if rest.startswith("#"):
        end = pattern.find(")", i)
        if end == -1:
            raise RegexSyntaxError("Unterminated comment")
        return None, end + 1
    if rest.startswith("("):
        end = pattern.find(")", i + 3)
        if end == -1:
            raise RegexSyntaxError("Unterminated conditional")
        return Token(OPEN, pattern[i:end + 1], group_kind=CONDITIONAL), end + 1

    j = i + 2
    while j < len(pattern) and pattern[j] in _FLAG_CHARS:
        j += 1
    flags = pattern[i + 2:j]
    if j < len(pattern) and pattern[j] == ")" and flags:
        return Token(FLAGS, pattern[i:j + 1], flags=flags), j + 1
    if j < len(pattern) and pattern[j] == ":" and flags:
        return Token(OPEN, pattern[i:j + 1], group_kind=NONCAPTURE, flags=flags), j + 1
    raise RegexSyntaxError(f"Unknown group syntax at position {i}")


# =============================================================================
# SYNTAX TREE
# =============================================================================

@dataclass
class Atom:
    """A single token that consumes or asserts without nesting."""
    token: Token

    @property
    def is_literal(self) -> bool:
        return self.token.kind == LITERAL


@dataclass
class Group:
    kind: str
    body: "Node"
    flags: str = ""


@dataclass
class Quantified:
    node: "Node"
    quantifier: Token


@dataclass
class Sequence:
    items: list["Node"] = field(default_factory=list)


@dataclass
class Alternation:
    branches: list["Node"] = field(default_factory=list)


Node = Union[Atom, Group, Quantified, Sequence, Alternation]


def parse(pattern: str) -> Node:
    """Parse a pattern into a syntax tree."""
    return _Parser(tokenize(pattern)).parse()


class _Parser:
    def __init__(self, tokens: list[Token]):
        self.tokens = tokens
        self.pos = 0

    def parse(self) -> Node:
        node = self._alternation()
        if self.pos != len(self.tokens):
            raise RegexSyntaxError("Unbalanced parenthesis")
        return node

    def _peek(self) -> Optional[Token]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _alternation(self) -> Node:
        branches = [self._sequence()]
        while self._peek() is not None and self._peek().kind == ALT:
            self.pos += 1
            branches.append(self._sequence())
        return branches[0] if len(branches) == 1 else Alternation(branches)

    def _sequence(self) -> Sequence:
        seq = Sequence()
        while True:
            tok = self._peek()
            if tok is None or tok.kind in (ALT, CLOSE):
                return seq
            if tok.kind == QUANT:
                if not seq.items:
                    raise RegexSyntaxError("Nothing to repeat")
                # Stacked quantifiers (a+*, a{2}+) nest, so the validator still sees them
                seq.items[-1] = Quantified(seq.items[-1], tok)
                self.pos += 1
                continue
            seq.items.append(self._atom())

    def _atom(self) -> Node:
        tok = self.tokens[self.pos]
        self.pos += 1
        if tok.kind != OPEN:
            return Atom(tok)
        body = self._alternation()
        closing = self._peek()
        if closing is None or closing.kind != CLOSE:
            raise RegexSyntaxError("Missing closing parenthesis")
        self.pos += 1
        return Group(tok.group_kind, body, tok.flags)


# =============================================================================
# TREE HELPERS
# =============================================================================

def contains_quantifier(node: Node) -> bool:
    """True if any quantifier appears anywhere inside the node."""
    if isinstance(node, Quantified):
        return True
    if isinstance(node, Group):
        return contains_quantifier(node.body)
    if isinstance(node, Sequence):
        return any(contains_quantifier(item) for item in node.items)
    if isinstance(node, Alternation):
        return any(contains_quantifier(branch) for branch in node.branches)
    return False


def walk(node: Node):
    """Yield every node in the tree, depth first."""
    yield node
    if isinstance(node, Quantified):
        yield from walk(node.node)
    elif isinstance(node, Group):
        yield from walk(node.body)
    elif isinstance(node, Sequence):
        for item in node.items:
            yield from walk(item)
    elif isinstance(node, Alternation):
        for branch in node.branches:
            yield from walk(branch)

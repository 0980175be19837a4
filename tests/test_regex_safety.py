from __future__ import annotations

import re

import pytest

from pattern_alerts.errors import ValidationError
from pattern_alerts.regex_safety import (
    MAX_PATTERN_LENGTH,
    REASON_ADJACENT,
    REASON_ALTERNATION,
    REASON_DEPTH,
    REASON_EMPTY,
    REASON_INVALID,
    REASON_NESTED,
    REASON_QUANTIFIERS,
    REASON_TOO_LONG,
    compile_pattern,
    ensure_valid,
    validate,
)


def test_rejects_patterns_over_length_limit() -> None:
    result = validate("a" * (MAX_PATTERN_LENGTH + 1))

    assert not result
    assert result.reason == REASON_TOO_LONG


def test_accepts_pattern_at_length_limit() -> None:
    assert validate("a" * MAX_PATTERN_LENGTH)


def test_rejects_blank_pattern() -> None:
    assert validate("   ").reason == REASON_EMPTY


@pytest.mark.parametrize(
    "pattern",
    ["(a+)+", "(a*)*", "(\\d+)*", "(ab+)+", "(a+){3}", "(?:x+)+$", "^(a+b)*c"],
)
def test_rejects_nested_quantifiers(pattern: str) -> None:
    assert validate(pattern).reason == REASON_NESTED


@pytest.mark.parametrize("pattern", ["(a|a+)+", "(ab|c*)*", "(?:x|y+){2,}"])
def test_rejects_repeated_alternation_with_quantified_branch(pattern: str) -> None:
    assert validate(pattern).reason == REASON_ALTERNATION


def test_allows_optional_group_with_quantifier_inside() -> None:
    assert validate("^(ab+)?c")


def test_allows_repeated_group_without_inner_quantifier() -> None:
    assert validate("^(ab)+$")
    assert validate("(cat|dog)+")


def test_rejects_deep_nesting() -> None:
    assert validate("((((a))))").reason == REASON_DEPTH


def test_accepts_nesting_at_limit() -> None:
    assert validate("(((a)))")


def test_rejects_too_many_quantifiers() -> None:
    assert validate("a+b+c+d+e+f+").reason == REASON_QUANTIFIERS


def test_accepts_five_quantifiers() -> None:
    assert validate("a+b+c+d+e+")


@pytest.mark.parametrize("pattern", ["a+*", "a{2}+", "a+?"])
def test_rejects_adjacent_quantifiers(pattern: str) -> None:
    assert validate(pattern).reason == REASON_ADJACENT


@pytest.mark.parametrize("pattern", ["(abc", "abc)", "[abc", "*abc", "a\\"])
def test_rejects_invalid_syntax(pattern: str) -> None:
    assert validate(pattern).reason == REASON_INVALID


@pytest.mark.parametrize(
    "pattern",
    ["^ai", "^[a-z]{3}$", "shop", "^(get|try)[a-z]+$", "\\d{2,4}", "^[^aeiou]+$", "(?i)crypto"],
)
def test_accepts_ordinary_patterns(pattern: str) -> None:
    assert validate(pattern)


def test_ensure_valid_raises_with_reason() -> None:
    with pytest.raises(ValidationError) as excinfo:
        ensure_valid("(a+)+")

    assert excinfo.value.reason == REASON_NESTED
    assert excinfo.value.pattern == "(a+)+"


def test_compile_pattern_is_case_insensitive() -> None:
    regex = compile_pattern("^ai")

    assert regex.flags & re.IGNORECASE
    assert regex.search("AIdog")

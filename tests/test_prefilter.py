from __future__ import annotations

import pytest

from pattern_alerts.prefilter import NO_HINT, derive_literal_hint
from pattern_alerts.regex_safety import compile_pattern


def test_bare_literal_is_exact() -> None:
    hint = derive_literal_hint("Shop")

    assert hint.tokens == ("shop",)
    assert hint.exact


def test_single_character_literal_has_no_hint() -> None:
    assert derive_literal_hint("x") == NO_HINT


def test_anchored_prefix() -> None:
    hint = derive_literal_hint("^ai")

    assert hint.tokens == ("ai",)
    assert not hint.exact


def test_optional_character_is_not_required() -> None:
    # shop? also matches "sho", so "shop" must not be required
    assert derive_literal_hint("shop?").tokens == ("sho",)


def test_quantified_literal_splits_runs() -> None:
    assert derive_literal_hint("ab+cd").tokens in (("bcd",), ("ab",))
    assert derive_literal_hint("^crypto[0-9]+$").tokens == ("crypto",)


def test_alternation_unions_branches() -> None:
    assert derive_literal_hint("^(cat|dog)").tokens == ("cat", "dog")


def test_alternation_with_unconstrained_branch_has_no_hint() -> None:
    assert derive_literal_hint("^(cat|[0-9]+)") == NO_HINT


@pytest.mark.parametrize(
    "pattern",
    ["^[a-z]{3}$", "^\\d+$", "(?x) s h o p", "(?=.*ai)", "^.{5}$", "(shop)?"],
)
def test_patterns_without_required_literals_fall_back(pattern: str) -> None:
    assert not derive_literal_hint(pattern).usable


def test_class_breaks_literal_run() -> None:
    assert derive_literal_hint("best[0-9]deal").tokens == ("best",)


def test_admits_is_case_insensitive_superset() -> None:
    hint = derive_literal_hint("^(cat|dog)")

    assert hint.admits("CATNIP")
    assert hint.admits("hotdog")
    assert not hint.admits("bird")


@pytest.mark.parametrize(
    "pattern",
    ["shop?", "^ai", "ab+c", "^(cat|dog)s?$", "(get|try)shop", "x?yz+", "best[0-9]deal", "^(?:pro)+app"],
)
def test_hint_never_excludes_a_regex_match(pattern: str) -> None:
    words = [
        "shop", "sho", "shoe", "aidog", "claim", "abc", "abbbc", "ac", "cats", "dog",
        "getshop", "tryshop", "yz", "xyzz", "best1deal", "proapp", "propropp", "proproapp",
        "\u017fhop", "SHOE", "\u212aat", "dog\u0130",
    ]
    hint = derive_literal_hint(pattern)
    regex = compile_pattern(pattern)

    for word in words:
        if regex.search(word):
            assert hint.admits(word), f"{pattern!r} hint {hint.tokens} excluded {word!r}"


def test_regex_and_hint_agree_on_non_ascii_case_folding() -> None:
    # Unicode folding would let "s" match the long s; the hint never would
    assert not compile_pattern("shop").search("ſhop")
    assert not derive_literal_hint("shop").admits("ſhop")

from __future__ import annotations

import re

import pytest

from pattern_alerts.models import InventoryRow, Pattern, parse_timestamp
from pattern_alerts.normalization import expand_shorthand, is_shorthand, normalize_tld, split_domain


def test_split_domain_uses_last_dot() -> None:
    assert split_domain("Shop.co.UK") == ("shop.co", "uk")
    assert split_domain("localhost") == ("localhost", "")


def test_normalize_tld() -> None:
    assert normalize_tld(".IO") == "io"
    assert normalize_tld(None) == ""


@pytest.mark.parametrize(
    "shorthand, expected",
    [
        ("LLL", "^[a-z]{3}$"),
        ("LLNN", "^[a-z]{2}[0-9]{2}$"),
        ("L-N", "^[a-z]-[0-9]$"),
    ],
)
def test_expand_shorthand(shorthand: str, expected: str) -> None:
    assert expand_shorthand(shorthand) == expected


def test_cvcv_matches_pronounceable_names() -> None:
    regex = re.compile(expand_shorthand("CVCV"))

    assert regex.search("bako")
    assert not regex.search("abko")


def test_lowercase_text_is_not_shorthand() -> None:
    assert not is_shorthand("lll")
    with pytest.raises(ValueError):
        expand_shorthand("^ai")


def test_row_tld_prefers_the_tld_column() -> None:
    assert InventoryRow(id="1", domain_name="shop.co.uk", tld=".CO.UK").effective_tld == "co.uk"
    assert InventoryRow(id="3", domain_name="cat.io").effective_tld == "io"
    assert InventoryRow(id="2", domain_name="cat", tld=".AI").effective_tld == "ai"


def test_pattern_from_dict_treats_zero_bounds_as_unset() -> None:
    pattern = Pattern.from_dict({
        "id": 7,
        "user_id": "user-1",
        "pattern": "^ai",
        "min_price": None,
        "min_length": 0,
        "max_age": 0,
        "max_price": None,
    })

    assert pattern.id == "7"
    assert pattern.min_price == 0.0
    assert pattern.min_length is None
    assert pattern.max_age is None
    assert not pattern.is_age_bounded


def test_parse_timestamp_handles_postgres_precision() -> None:
    parsed = parse_timestamp("2025-03-01T12:00:00.1234567Z")

    assert parsed.tzinfo is not None
    assert parsed.microsecond == 123456

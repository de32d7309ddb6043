"""Tests for price, quantity and date normalization helpers."""

import datetime as dt

import pytest

from snaptally.core.utils import (
    coerce_quantity,
    divide_price,
    find_date,
    iso_from_canonical,
    multiply_price,
    normalize_price,
    parse_date_text,
    slugify,
    today_str,
)


@pytest.mark.parametrize("raw, expected", [
    ("$1,234.5", "1234.50"),
    ("", "0.00"),
    ("abc", "0.00"),
    (None, "0.00"),
    ("12", "12.00"),
    (" € 3.456 ", "3.46"),
    (7.5, "7.50"),
    ("USD 19.99", "19.99"),
])
def test_normalize_price(raw, expected) -> None:
    assert normalize_price(raw) == expected


@pytest.mark.parametrize("raw", ["$1,234.5", "", "abc", "0.004", "£12", "1.2.3"])
def test_normalize_price_is_idempotent(raw) -> None:
    once = normalize_price(raw)
    assert normalize_price(once) == once


def test_normalize_price_never_raises_on_odd_input() -> None:
    assert normalize_price(True) == "0.00"
    assert normalize_price(object()) == "0.00"


@pytest.mark.parametrize("raw, expected", [
    (None, 1), ("", 1), ("3", 3), ("2 pcs", 2), (0, 1), (-4, 1), ("abc", 1), (2.7, 2),
])
def test_coerce_quantity(raw, expected) -> None:
    assert coerce_quantity(raw) == expected


def test_price_arithmetic_rounds_half_up() -> None:
    assert multiply_price("1.50", 3) == "4.50"
    assert divide_price("5.00", 2) == "2.50"
    assert divide_price("1.00", 3) == "0.33"
    assert divide_price("3.99", 1) == "3.99"


@pytest.mark.parametrize("text, expected", [
    ("01/15/2024", "01/15/2024"),
    ("2024-01-15", "01/15/2024"),
    ("15/01/2024", "01/15/2024"),
    ("03/04/2024", "03/04/2024"),
    ("1-5-24", "01/05/2024"),
    ("Jan 15, 2024", "01/15/2024"),
    ("15 January 2024", "01/15/2024"),
    ("Date: 2024.02.29 10:31", "02/29/2024"),
])
def test_find_date_shapes(text, expected) -> None:
    assert find_date(text) == expected


def test_find_date_rejects_impossible_dates() -> None:
    assert find_date("13/32/2024") is None
    assert find_date("no date here") is None
    assert parse_date_text(None) is None


def test_today_str_uses_injected_clock() -> None:
    assert today_str(dt.date(2024, 3, 1)) == "03/01/2024"


def test_iso_from_canonical() -> None:
    assert iso_from_canonical("01/15/2024") == "2024-01-15"
    assert iso_from_canonical("not a date") is None


def test_slugify() -> None:
    assert slugify("Home Improvement") == "home-improvement"

"""Tests for price normalization, increments and bid quantities."""
import pytest

from bidsnipr.prices import (
    INCREMENTS,
    bid_quantity,
    is_valid_bid_price,
    lookup_increment,
    parse_price,
    price_fixup,
)


@pytest.mark.parametrize(
    "text, expected",
    [
        ("US $1,234.56", ("US", "1234.56")),
        ("EUR 1.234,56", ("EUR", "1234.56")),
        ("12", ("", "12")),
        ("GBP 7,5", ("GBP", "7.5")),
        ("C $ 3.00", ("C", "3.00")),
    ],
)
def test_price_fixup(text, expected):
    assert price_fixup(text) == expected


def test_parse_price():
    assert parse_price("12.50") == 12.5
    assert parse_price("") is None


def test_lookup_increment_thresholds():
    assert lookup_increment(0.5, "US") == 0.05
    assert lookup_increment(12.0, "US") == 0.5
    assert lookup_increment(25.0, "US") == 1.0
    assert lookup_increment(99999.0, "US") == 100.0
    assert lookup_increment(40.0, "EUR") == 0.5
    assert lookup_increment(1.01, "GBP") == 0.2


@pytest.mark.parametrize("currency", sorted(INCREMENTS))
def test_increments_never_shrink_as_price_rises(currency):
    table = INCREMENTS[currency]
    thresholds = [t for t, _ in table if t >= 0]
    prices = [0.0] + [p for t in thresholds for p in (t - 0.01, t, t + 0.01)] + [10**7]
    steps = [lookup_increment(p, currency) for p in prices]
    assert steps == sorted(steps)
    assert lookup_increment(10**7, currency) == table[-1][1]


def test_lookup_increment_missing_or_unknown_currency():
    assert lookup_increment(12.0, None) == 0.5
    assert lookup_increment(12.0, "XYZ") == 0.01


def test_bid_must_clear_increment_when_fully_subscribed():
    assert is_valid_bid_price(13.0, 12.5, "US", quantity=1, quantity_bid=1, winning=0)
    assert not is_valid_bid_price(12.9, 12.5, "US", quantity=1, quantity_bid=1, winning=0)


def test_no_increment_while_winning_or_undersubscribed():
    assert is_valid_bid_price(12.5, 12.5, "US", quantity=1, quantity_bid=1, winning=1)
    assert is_valid_bid_price(12.5, 12.5, "US", quantity=5, quantity_bid=2, winning=0)


def test_increment_comparison_tolerates_rounding():
    assert is_valid_bid_price(0.3, 0.25, "US", quantity=1, quantity_bid=1)


@pytest.mark.parametrize(
    "want, available, expected",
    [(1, 10, 1), (5, 1, 1), (3, 10, 3), (5, 5, 4), (8, 4, 3)],
)
def test_bid_quantity(want, available, expected):
    assert bid_quantity(want, available) == expected

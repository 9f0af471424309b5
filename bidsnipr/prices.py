"""
Price text normalization and the per-currency bid-increment tables.
"""

from __future__ import annotations

from typing import Optional

# Tolerance absorbing float rounding when comparing against price + increment.
EPSILON = 0.0001

# (threshold, increment) pairs, ascending; -1 terminates with the default.
_US = [
    (1.0, 0.05),
    (5.0, 0.25),
    (25.0, 0.5),
    (100.0, 1.0),
    (250.0, 2.5),
    (500.0, 5.0),
    (1000.0, 10.0),
    (2500.0, 25.0),
    (5000.0, 50.0),
    (-1, 100.0),
]
_EUR = [(50.0, 0.5), (500.0, 1.0), (1000.0, 5.0), (5000.0, 10.0), (-1, 50.0)]
_CA = [(1.0, 0.05), (5.0, 0.25), (25.0, 0.5), (100.0, 1.0), (-1, 2.5)]
_GBP = [
    (1.01, 0.05),
    (5.01, 0.2),
    (15.01, 0.5),
    (60.01, 1.0),
    (150.01, 2.0),
    (300.01, 5.0),
    (600.01, 10.0),
    (1500.01, 20.0),
    (3000.01, 50.0),
    (-1, 100.0),
]
_HK = [(-1, 0.01)]
_TW = [(501.0, 15.0), (2501.0, 30.0), (5001.0, 50.0), (25001.0, 100.0), (-1, 200.0)]
_DEFAULT = [(-1, 0.01)]

INCREMENTS: dict[str, list[tuple[float, float]]] = {
    "AU": _US,
    "US": _US,
    "EUR": _EUR,
    "CHF": _EUR,
    "C": _CA,
    "RMB": _GBP,
    "GBP": _GBP,
    "HKD": _HK,
    "SGD": _HK,
    "NT": _TW,
}


def lookup_increment(price: float, currency: Optional[str]) -> float:
    """Increment for the first threshold strictly above ``price``.

    No currency at all means US rules; an unknown code gets the small default.
    """
    table = INCREMENTS["US"] if currency is None else INCREMENTS.get(currency, _DEFAULT)
    for threshold, increment in table:
        if threshold < 0 or price < threshold:
            return increment
    return table[-1][1]


def is_valid_bid_price(
    bid_price: float,
    price: float,
    currency: Optional[str],
    *,
    quantity: int = 1,
    quantity_bid: int = 0,
    winning: int = 0,
) -> bool:
    # Increments only apply once a dutch auction is fully subscribed and we are
    # not already among the winners.
    increment = 0.0
    if quantity_bid == quantity and winning == 0:
        increment = lookup_increment(price, currency)
    return bid_price >= price + increment - EPSILON


def price_fixup(text: str) -> tuple[str, str]:
    """Split ``text`` into ``(currency_prefix, numeric_text)``.

    ``"US $1,234.56"`` gives ``("US", "1234.56")``; only the last ``.`` or
    ``,`` is kept as the decimal separator.
    """
    i = 0
    while i < len(text) and text[i].isalpha():
        i += 1
    currency = text[:i]

    while i < len(text) and not (text[i].isdigit() or text[i] in ",."):
        i += 1
    end = i
    while end < len(text) and (text[end].isdigit() or text[end] in ",."):
        end += 1
    raw = text[i:end]

    last_sep = max(raw.rfind("."), raw.rfind(","))
    digits = []
    for pos, ch in enumerate(raw):
        if ch.isdigit():
            digits.append(ch)
        elif pos == last_sep:
            digits.append(".")
    return currency, "".join(digits)


def parse_price(text: str) -> Optional[float]:
    """Float value of normalized price text, or None when it does not convert."""
    try:
        return float(text)
    except ValueError:
        return None


def bid_quantity(want: int, available: int) -> int:
    """Quantity to submit: never take every item of a multi-item auction."""
    if want == 1 or available == 1:
        return 1
    if available > want:
        return want
    return available - 1

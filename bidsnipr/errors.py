"""
Closed failure taxonomy shared by the parsers, the site client and the
scheduler.

Every member's value is the user-facing message template; ``{auction}`` and
``{detail}`` are filled in by :func:`format_error`.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    BAD_ITEM = "Auction {auction}: Unknown item"
    NO_TITLE = "Auction {auction}: Title not found"
    NO_PRICE = "Auction {auction}: Current price not found"
    CONV_PRICE = 'Auction {auction}: Cannot convert price "{detail}"'
    NO_QUANTITY = "Auction {auction}: Quantity not found"
    NO_TIME = "Auction {auction}: Time remaining not found"
    BAD_TIME = 'Auction {auction}: Unknown time interval "{detail}"'
    NO_HIGH_BID = "Auction {auction}: High bidder not found"
    NETWORK = "Auction {auction}: Cannot connect to URL {detail}"
    BID_PRICE = "Auction {auction}: Bid price less than minimum bid price"
    BID_TOKEN = "Auction {auction}: Bid uiid not found"
    BAD_PASSWORD = "Auction {auction}: Bad username or password"
    OUTBID = "Auction {auction}: You have been outbid"
    RESERVE_NOT_MET = "Auction {auction}: Reserve not met"
    ENDED = "Auction {auction}: Auction has ended"
    DUPLICATE = "Auction {auction}: Duplicate auction"
    TOO_MANY = "Auction {auction}: Too many errors, quitting"
    UNAVAILABLE = "Auction {auction}: eBay temporarily unavailable"
    LOGIN = "Auction {auction}: Login failed"
    BUYER_BLOCKED = "Auction {auction}: Seller has blocked your userid"
    NO_SHIP_TO_LOCATION = (
        "Auction {auction}: Seller does not ship to your location"
    )
    NO_LINKED_PAYPAL = (
        "Auction {auction}: Seller requires buyer to have paypal account"
    )
    HIGH_BIDDER = (
        "Auction {auction}: Bid amount must be higher than the proxy you already placed"
    )
    MUST_SIGN_IN = "Auction {auction}: Must sign in"
    CANNOT_BID = "Auction {auction}: Cannot bid on item (fixed price item?)"
    DUTCH_SAME_QUANTITY = (
        "Auction {auction}: Dutch auction bid must have higher price or quantity"
        " than prior bid"
    )
    CAPTCHA = "Auction {auction}: Login failed due to captcha"
    CANCELLED = "Auction {auction}: Cancelled"
    BID_ASSISTANT = (
        "Auction {auction}: Do not use bidsnipr and eBay's bid assistant together!"
    )
    ITEM_COUNT_LIMIT = (
        "Auction {auction}: You are currently winning or have bought the"
        " maximum-allowed number of this seller's items in the last 10 days."
    )
    BID_ABOVE_BUY_NOW = (
        "Auction {auction}: Your maximum bid is above or equal to the Buy It Now"
        " price. Your bid must be lower."
    )
    ALERT = (
        "Auction {auction}: An alert message was displayed. Your bid was not accepted."
    )
    BUYER_REQUIREMENTS = (
        "Auction {auction}: Seller has set some requirements."
        " You cannot bid on this article."
    )
    UNRECOGNIZED_PAGE = "Auction {auction}: Unrecognized page {detail}"
    UNKNOWN = "Auction {auction}: Unknown error {detail}"


# Kinds that mean the session itself is unusable, not just this auction.
SESSION_KINDS = frozenset(
    {ErrorKind.LOGIN, ErrorKind.MUST_SIGN_IN, ErrorKind.BAD_PASSWORD, ErrorKind.CAPTCHA}
)

# A missing title on the very first fetch is treated as "not loaded yet".
TITLE_KINDS = frozenset({ErrorKind.NO_TITLE, ErrorKind.UNRECOGNIZED_PAGE})


def format_error(kind: ErrorKind, auction: str, detail: Optional[str] = None) -> str:
    return kind.value.format(auction=auction, detail=detail or "").rstrip()


class AuctionError(Exception):
    """An auction-level failure carrying its taxonomy kind."""

    def __init__(
        self, kind: ErrorKind, detail: Optional[str] = None, auction: str = "?"
    ):
        self.kind = kind
        self.detail = detail
        self.auction = auction
        super().__init__(format_error(kind, auction, detail))


class BatchAborted(AuctionError):
    """Raised by the sequencer when the whole batch cannot continue."""

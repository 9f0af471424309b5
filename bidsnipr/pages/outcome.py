"""
Classifiers for pages returned by bid, pre-bid and sign-in requests.

Each classifier is an ordered table of :class:`PageRule` entries; the first
rule that matches a page's identity decides the outcome.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Optional, Union

from bidsnipr.errors import AuctionError, ErrorKind
from bidsnipr.markup.pageinfo import PageInfo, read_page_info
from bidsnipr.markup.tokenizer import Tokenizer
from bidsnipr.models import AuctionRecord

log = logging.getLogger("bidsnipr.outcome")

_UIID_RE = re.compile(r'name="uiid"', re.I)
_VALUE_RE = re.compile(r'value="([^"]*)"', re.I)


@dataclass(frozen=True)
class BidOutcome:
    accepted: bool
    kind: Optional[ErrorKind] = None


ACCEPTED = BidOutcome(True)


@dataclass(frozen=True)
class PageRule:
    """Match ``literal`` against one identity field of a page.

    ``mode`` is one of ``exact``, ``prefix``, ``iexact`` or ``iprefix`` (the
    ``i`` variants ignore case). ``field`` is ``page_name`` or ``src_id``.
    """

    literal: str
    outcome: BidOutcome
    mode: str = "exact"
    field: str = "page_name"
    unnamed_only: bool = False

    def matches(self, info: PageInfo) -> bool:
        if self.unnamed_only and info.page_name is not None:
            return False
        value = getattr(info, self.field)
        if value is None:
            return False
        literal = self.literal
        if self.mode.startswith("i"):
            value, literal = value.lower(), literal.lower()
        if self.mode.endswith("prefix"):
            return value.startswith(literal)
        return value == literal


def _fails(kind: ErrorKind) -> BidOutcome:
    return BidOutcome(False, kind)


ACCEPT_BID_RULES = (
    PageRule("Bid confirmation", ACCEPTED),
    PageRule("AcceptBid_HighBidder", ACCEPTED, "prefix"),
    PageRule("AcceptBid_Outbid", _fails(ErrorKind.OUTBID), "prefix"),
    PageRule("AcceptBid_ReserveNotMet", _fails(ErrorKind.RESERVE_NOT_MET), "prefix"),
)

_MAKE_BID_ERRORS = {
    "": ErrorKind.ENDED,
    "AuctionEnded": ErrorKind.ENDED,
    "AuctionEnded_BINblock": ErrorKind.CANCELLED,
    "AuctionEnded_BINblock ": ErrorKind.CANCELLED,
    "Password": ErrorKind.BAD_PASSWORD,
    "MinBid": ErrorKind.BID_PRICE,
    "BuyerBlockPref": ErrorKind.BUYER_BLOCKED,
    "BuyerBlockPrefDoesNotShipToLocation": ErrorKind.NO_SHIP_TO_LOCATION,
    "BuyerBlockPrefNoLinkedPaypalAccount": ErrorKind.NO_LINKED_PAYPAL,
    "HighBidder": ErrorKind.HIGH_BIDDER,
    "CannotBidOnItem": ErrorKind.CANNOT_BID,
    "DutchSameBidQuantity": ErrorKind.DUTCH_SAME_QUANTITY,
    "BuyerBlockPrefItemCountLimitExceeded": ErrorKind.ITEM_COUNT_LIMIT,
    "BidGreaterThanBin_BINblock": ErrorKind.BID_ABOVE_BUY_NOW,
}

MAKE_BID_ERROR_RULES = (
    # no page name at all: the item page itself means the auction is over
    PageRule("ViewItem", _fails(ErrorKind.ENDED), "iexact", "src_id", True),
    PageRule("Place bid", _fails(ErrorKind.OUTBID), "iexact"),
    PageRule("eBay Alerts", _fails(ErrorKind.ALERT), "iexact"),
    PageRule("Buyer Requirements", _fails(ErrorKind.BUYER_REQUIREMENTS), "iexact"),
    PageRule("PageSignIn", _fails(ErrorKind.MUST_SIGN_IN), "iexact"),
    PageRule("BidManager", _fails(ErrorKind.BID_ASSISTANT), "iprefix"),
    PageRule("BidAssistant", _fails(ErrorKind.BID_ASSISTANT), "iprefix"),
) + tuple(
    PageRule("MakeBidError" + suffix, _fails(kind), "iexact")
    for suffix, kind in _MAKE_BID_ERRORS.items()
)

LOGIN_RULES = (
    PageRule("SignInAlertSupressor", ACCEPTED, "exact", "src_id"),
    PageRule("MyeBay", ACCEPTED, "iprefix"),
    PageRule("My eBay", ACCEPTED, "iprefix"),
    PageRule("Welcome to eBay", _fails(ErrorKind.BAD_PASSWORD)),
    PageRule("Welcome to eBay - Sign in - Error", _fails(ErrorKind.BAD_PASSWORD)),
    PageRule("PageSignIn", _fails(ErrorKind.LOGIN)),
    PageRule("Captcha.xsl", _fails(ErrorKind.CAPTCHA), "exact", "src_id"),
)


def classify(info: Optional[PageInfo], rules: Iterable[PageRule]) -> Optional[BidOutcome]:
    if info is None:
        return None
    for rule in rules:
        if rule.matches(info):
            return rule.outcome
    return None


def classify_bid_page(info: Optional[PageInfo]) -> Optional[BidOutcome]:
    """Accept-bid rules first, then the broader failure table."""
    return classify(info, ACCEPT_BID_RULES) or classify(info, MAKE_BID_ERROR_RULES)


def classify_login_page(info: Optional[PageInfo]) -> Optional[BidOutcome]:
    return classify(info, LOGIN_RULES)


def _report(reporter, where: str, reason: str, record, document) -> None:
    if reporter is not None:
        reporter.capture(where, reason, record=record, content=document)


# ---------------------------------------------------------------------------
#  Page parsers
# ---------------------------------------------------------------------------


def parse_bid_result(
    document: Union[bytes, str], record: AuctionRecord, reporter=None
) -> BidOutcome:
    """Read the page returned by the real bid submission.

    A recognized failure is recorded on ``record`` and raised. An
    unrecognized page is only reported: the caller assumes no bid happened.
    """
    record.reset_error()
    record.bid_result = None
    info = read_page_info(Tokenizer(document))
    outcome = classify_bid_page(info)
    if outcome is None:
        log.warning("Cannot determine result of bid")
        _report(reporter, "parse_bid_result", "unrecognized bid result page", record, document)
        return BidOutcome(False)
    record.bid_result = outcome.accepted
    if not outcome.accepted:
        raise record.fail(outcome.kind)
    return outcome


def find_bid_token(text: str) -> Optional[str]:
    """``value`` of the tag carrying ``name="uiid"`` (case-insensitive)."""
    flat = text.replace("\r", "").replace("\n", "")
    for match in _UIID_RE.finditer(flat):
        start = flat.rfind("<", 0, match.start()) + 1
        end = flat.find(">", match.end())
        if end < 0:
            end = len(flat)
        value = _VALUE_RE.search(flat, start, end)
        if value:
            return value.group(1)
    return None


def parse_pre_bid(
    document: Union[bytes, str], record: AuctionRecord, reporter=None
) -> str:
    """Extract the one-time bid token into ``record.bid_token``."""
    record.reset_error()
    tok = Tokenizer(document)
    token = find_bid_token(tok.text)
    if token is not None:
        record.bid_token = token
        return token

    outcome = classify(read_page_info(tok), MAKE_BID_ERROR_RULES)
    if outcome is not None and outcome.kind is not None:
        raise record.fail(outcome.kind)
    log.warning("Cannot find bid uiid")
    _report(reporter, "parse_pre_bid", "cannot find bid uiid", record, document)
    raise record.fail(ErrorKind.BID_TOKEN)


def parse_login_result(
    document: Union[bytes, str], record: Optional[AuctionRecord] = None, reporter=None
) -> None:
    """Raise unless ``document`` is a signed-in landing page."""
    info = read_page_info(Tokenizer(document))
    outcome = classify_login_page(info)
    if outcome is not None and outcome.accepted:
        return
    if outcome is None:
        log.warning("Cannot determine login result: %s", info.describe() if info else "no page info")
        _report(reporter, "login", "unrecognized login result page", record, document)
        kind = ErrorKind.LOGIN
    else:
        kind = outcome.kind
    if record is not None:
        raise record.fail(kind)
    raise AuctionError(kind)

"""
Bid-history page interpreter.

Turns a fetched "view bids" (or buy-it-now "view transactions") document into
the observed fields of an :class:`~bidsnipr.models.AuctionRecord`. Every step
either fills in the record or fails the whole parse with a specific
:class:`~bidsnipr.errors.ErrorKind`; structural surprises are also handed to
the diagnostic reporter so the page can be inspected later.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Union

from bidsnipr.errors import AuctionError, ErrorKind
from bidsnipr.markup.pageinfo import PageInfo, read_page_info
from bidsnipr.markup.tables import Cell, TableReader, table_start
from bidsnipr.markup.tokenizer import Tokenizer, leading_int
from bidsnipr.models import AuctionRecord
from bidsnipr.prices import parse_price, price_fixup

log = logging.getLogger("bidsnipr.history")

PRIVATE = "private auction - bidders' identities protected"
ENDED = "ended"
NO_BIDS_TEXTS = ("No bids have been placed.", "No purchases have been made.")
PRICE_LABELS = ("current bid:", "winning bid:", "your maximum bid:", "price:")


class PageType(Enum):
    VIEW_BIDS = "PageViewBids"
    VIEW_TRANSACTIONS = "PageViewTransactions"


class AuctionState(Enum):
    ACTIVE = "Active"
    CLOSED = "Closed"


class AuctionResult(Enum):
    HIGH_BIDDER = "HighBidder"
    NONE = "None"
    OUTBID = "Outbid"


@dataclass(frozen=True)
class PageKind:
    page_type: PageType
    state: Optional[AuctionState] = None
    result: Optional[AuctionResult] = None


# ---------------------------------------------------------------------------
#  Time-left grammar
# ---------------------------------------------------------------------------

_NUMBER_RE = re.compile(r"\s*([+-]?[0-9]+)?\s*")
_UNITS = (("min", 60), ("hour", 3600), ("day", 86400))


def parse_seconds(text: str) -> int:
    """Convert "1 day 2 hours"-style text to seconds.

    Blank or ``--`` text means the page is between "1 sec" and "ended", so
    1 second is assumed. Returns -1 for an unknown unit.
    """
    text = text.strip()
    if not text or text.startswith("--"):
        return 1
    if ENDED in text:
        return 0

    accum = 0
    i, n = 0, len(text)
    while i < n:
        m = _NUMBER_RE.match(text, i)
        num = int(m.group(1)) if m.group(1) else 0
        i = m.end()
        if text.startswith("sec", i):
            return accum + num
        for unit, seconds in _UNITS:
            if text.startswith(unit, i):
                accum += num * seconds
                break
        else:
            return -1
        while i < n and text[i] not in "0123456789":
            i += 1
    return accum


# ---------------------------------------------------------------------------
#  Parser
# ---------------------------------------------------------------------------


class BidHistoryParser:
    def __init__(
        self,
        document: Union[bytes, str],
        record: AuctionRecord,
        start: float,
        *,
        username: str = "",
        bid_time: int = 0,
        debug: bool = False,
        reporter=None,
        now: Callable[[], float] = time.time,
    ):
        self.document = document
        self.tok = Tokenizer(document)
        self.record = record
        self.start = start
        self.username = username
        self.bid_time = bid_time
        self.debug = debug
        self.reporter = reporter
        self.now = now

    # ---- failure helpers ---------------------------------------------------

    def report(self, reason: str) -> None:
        if self.reporter is not None:
            self.reporter.capture(
                "parse_bid_history", reason, record=self.record, content=self.document
            )

    def fail(
        self, kind: ErrorKind, reason: Optional[str] = None, detail: Optional[str] = None
    ) -> AuctionError:
        if reason:
            log.debug("parse_bid_history(): %s", reason)
            self.report(reason)
        return self.record.fail(kind, detail)

    # ---- steps -------------------------------------------------------------

    def parse(self) -> None:
        self.record.reset_error()
        info = read_page_info(self.tok)
        if info is None:
            raise self.fail(ErrorKind.NO_TITLE, "page info not found")

        kind = self._classify(info)
        self._read_item_id()
        self._read_title()
        self._read_prices()
        self._read_time_left()
        if self._read_total_bids():
            return

        reader = self._find_bid_table()
        row = reader.next_row()
        while row is not None and len(row) == 1:
            row = reader.next_row()
        columns = len(row) if row is not None else 0
        log.debug("columns in bid table: %d", columns)

        if columns == 2:
            self._no_bids_row(row, kind)
        elif columns == 6 and kind.page_type is not PageType.VIEW_BIDS:
            self._purchases(row, reader)
        elif columns in (5, 6):
            self._high_bidder(row, reader, kind)
        elif not self._infer(kind):
            raise self.fail(ErrorKind.NO_HIGH_BID, f"{columns} columns in bid table")

    def _classify(self, info: PageInfo) -> PageKind:
        name = info.page_name or ""
        if info.src_id == "Captcha.xsl" or name.startswith("Security Measure"):
            raise self.fail(ErrorKind.CAPTCHA)

        if name.startswith(PageType.VIEW_BIDS.value):
            parts = name.split("_")
            state = result = None
            if len(parts) > 1:
                state = _lookup(AuctionState, parts[1])
            if len(parts) > 2:
                result = _lookup(AuctionResult, parts[2])
            for text in self.tok.texts():
                if text == "Bid History":
                    break
                if text == "Unknown Item":
                    raise self.fail(ErrorKind.BAD_ITEM)
            return PageKind(PageType.VIEW_BIDS, state, result)
        if name.startswith(PageType.VIEW_TRANSACTIONS.value):
            return PageKind(PageType.VIEW_TRANSACTIONS)
        if name == "PageSignIn":
            raise self.fail(ErrorKind.MUST_SIGN_IN)
        raise self.fail(ErrorKind.UNRECOGNIZED_PAGE, "unknown page name", info.describe())

    def _labelled_value(self, *markers: str) -> Optional[str]:
        """Value text following the label inside the element carrying a marker."""
        tok = self.tok
        tok.reset()
        if not tok.find_any(*markers):
            return None
        tok.skip_past(">")
        tok.next_text()
        return tok.next_text()

    def _read_item_id(self) -> None:
        number = self._labelled_value('"BHCtBidLabel"', '"vizItemNum"', '"BHitemNo"')
        if not number:
            raise self.fail(ErrorKind.BAD_ITEM, "no item number")
        if self.debug:
            self.record.auction_id = number
        elif number != self.record.auction_id:
            log.debug(
                "item number %s does not match given number %s",
                number,
                self.record.auction_id,
            )
            raise self.fail(ErrorKind.BAD_ITEM, "mismatched item number")

    def _read_title(self) -> None:
        title = self._labelled_value('"itemTitle"', '"BHitemTitle"', '"BHitemDesc"')
        if not title:
            raise self.fail(ErrorKind.NO_TITLE, "item title not found")
        self.record.title = title
        log.info("Auction %s: %s", self.record.auction_id, title)

    def _price(self, text: str) -> float:
        currency, normalized = price_fixup(text)
        if self.record.currency is None:
            self.record.currency = currency
        return parse_price(normalized) or 0.0

    def _read_prices(self) -> None:
        tok, record = self.tok, self.record
        tok.reset()
        record.quantity = 1
        got: set[str] = set()
        while len(got) < 3 and tok.find('"BHCtBid"'):
            if not tok.skip_past(">"):
                break
            label = (tok.next_text() or "").lower()
            if label in PRICE_LABELS:
                text = tok.next_text()
                if text is None:
                    raise self.fail(ErrorKind.NO_PRICE, "item price not found")
                log.debug("Currently: %s", text)
                record.price = self._price(text)
                if record.price < 0.01:
                    raise self.fail(
                        ErrorKind.CONV_PRICE, "item price could not be converted", text
                    )
                got.add("price")
                save = tok.tell()
                record.reserve_not_met = (
                    tok.next_text() or ""
                ).lower() == "reserve not met"
                if not record.reserve_not_met:
                    tok.seek(save)
            elif label == "quantity:":
                text = tok.next_text()
                if text is None:
                    raise self.fail(ErrorKind.NO_QUANTITY, "item quantity not found")
                record.quantity = leading_int(text) if text[0].isdigit() else 1
                log.debug("quantity: %d", record.quantity)
                got.add("quantity")
            elif label == "shipping:":
                text = tok.next_text()
                if text:
                    record.shipping = text
                got.add("shipping")

    def _read_time_left(self) -> None:
        tok, record = self.tok, self.record
        tok.reset()
        if record.quantity == 0 or tok.find("Time Ended:"):
            raw, remain = ENDED, 0
        elif tok.find("timeLeft"):
            tok.skip_past(">")
            raw = tok.next_text() or ""
            lowered = raw.lower()
            if lowered in ("duration:", "refresh"):
                # the next label instead of a value: time left is blank
                raw, remain = "", 1
            elif lowered.startswith("undefined"):
                remain = 1
            else:
                remain = parse_seconds(raw)
            if remain < 0:
                raise self.fail(
                    ErrorKind.BAD_TIME, "remaining time could not be converted", raw
                )
        else:
            raise self.fail(ErrorKind.NO_TIME, "remaining time not found")

        record.remain_raw = raw
        record.remain = remain
        record.end_time = self.start + remain
        log.info("Time remaining: %s (%d seconds)", raw, remain)
        if remain and not self.debug:
            log.info(
                "End time: %s",
                time.strftime("%d/%m/%Y %H:%M:%S", time.localtime(record.end_time)),
            )

    def _log_no_bids(self) -> None:
        log.info("# of bids: 0")
        log.info("Currently: --  (your maximum bid: %s)", self.record.bid_price_str)
        if self.username:
            log.info("High bidder: -- (NOT %s)", self.username)
        else:
            log.info("High bidder: --")

    def _read_total_bids(self) -> bool:
        """True when the page states there are no bids at all."""
        tok, record = self.tok, self.record
        tok.reset()
        record.bids = -1
        if not tok.find("Total Bids:"):
            return False
        tok.next_text()
        text = tok.next_text()
        if not text or not text[0].isdigit():
            return False
        record.bids = leading_int(text)
        if record.bids == 0:
            record.quantity_bid = 0
            record.price = 0.0
            self._log_no_bids()
            return True
        return False

    def _find_bid_table(self) -> TableReader:
        tok = self.tok
        tok.reset()
        while table_start(tok):
            save = tok.tell()
            reader = TableReader(tok)
            header = reader.next_row()
            if (
                header
                and len(header) >= 5
                and header[1].text.startswith(("Bidder", "User ID"))
            ):
                return reader
            tok.seek(save)
        raise self.fail(ErrorKind.NO_HIGH_BID, "cannot find bid table header")

    # ---- table dispatch ----------------------------------------------------

    def _no_bids_row(self, row: list[Cell], kind: PageKind) -> None:
        if row[1].text in NO_BIDS_TEXTS:
            self.record.quantity_bid = 0
            self.record.bids = 0
            self.record.price = 0.0
            self._log_no_bids()
        elif not self._infer(kind):
            raise self.fail(ErrorKind.NO_HIGH_BID, "unrecognized bid table line")

    def _purchases(self, row: Optional[list[Cell]], reader: TableReader) -> None:
        record = self.record
        currently = row[2].text
        user = self.username.lower()
        record.bids = record.quantity_bid = 0
        record.won = record.winning = 0
        # blank, user, price, quantity, date, blank
        while row is not None:
            if len(row) == 6:
                quantity = leading_int(row[3].text)
                record.bids += 1
                record.quantity_bid += quantity
                if user and row[1].text.lower() == user:
                    record.won += quantity
                    record.winning += quantity
            row = reader.next_row()

        log.info("# of bids: %d", record.bids)
        log.info("Currently: %s  (your maximum bid: %s)", currently, record.bid_price_str)
        if record.winning == 0:
            if self.username:
                log.info("High bidder: various purchasers (NOT %s)", self.username)
            else:
                log.info("High bidder: various purchasers")
        elif record.winning == 1:
            log.info("High bidder: %s!!!", self.username)
        else:
            log.info("High bidder: %s!!! (%d items)", self.username, record.winning)

    def _high_bidder(
        self, row: list[Cell], reader: TableReader, kind: PageKind
    ) -> None:
        record = self.record
        # blank, user, price, date, blank
        winner = row[1].text
        currently = row[2].text
        if winner.lower() == "member id:":
            winner = row[1].run(1)

        record.quantity_bid = 1
        record.price = self._price(currently)
        if record.price < 0.01:
            if self._infer(kind):
                return
            raise self.fail(
                ErrorKind.CONV_PRICE, "bid price could not be converted", currently
            )
        log.info("Currently: %s  (your maximum bid: %s)", currently, record.bid_price_str)

        if winner == PRIVATE:
            ours = record.price <= record.bid_price and (
                record.bid_result is True
                or (
                    record.bid_result is None
                    and record.end_time - self.now() < self.bid_time
                )
            )
            winner = self.username if ours else "[private]"

        if record.bids < 0:
            record.bids = 1
            for later in reader.rows():
                if len(later) != 5:
                    continue
                if later[1].text == "Starting Price":
                    break
                record.bids += 1
        log.info("# of bids: %d", record.bids)

        ended = record.remain == 0
        if not self.username or winner.lower() != self.username.lower():
            if self.username:
                log.info("High bidder: %s (NOT %s)", winner, self.username)
            else:
                log.info("High bidder: %s", winner)
            record.winning = 0
            if ended:
                record.won = 0
        elif record.reserve_not_met:
            log.info("High bidder: %s (reserve not met)", winner)
            record.winning = 0
            if ended:
                record.won = 0
        else:
            log.info("High bidder: %s!!!", winner)
            record.winning = 1
            if ended:
                record.won = 1

    def _infer(self, kind: PageKind) -> bool:
        """Derive the outcome from the page name alone when the table is unusable."""
        if (
            kind.page_type is not PageType.VIEW_BIDS
            or kind.state is None
            or kind.result is None
        ):
            return False
        record = self.record
        high = kind.result is AuctionResult.HIGH_BIDDER
        if kind.state is AuctionState.ACTIVE:
            record.won = 0
            if high:
                # assume one item; zero quantity stops re-evaluation
                record.quantity_bid = record.winning = 1
                record.quantity = 0
            else:
                record.quantity_bid = record.winning = 0
        elif high:
            record.quantity_bid = record.winning = record.won = 1
            record.quantity = 1
        else:
            record.quantity_bid = record.winning = record.won = 0
            record.quantity = 0

        if high:
            log.info("High bidder: %s!!!", self.username)
        else:
            log.info("High bidder: (unknown) (NOT %s)", self.username)
        return True


def _lookup(enum_cls, value: str):
    try:
        return enum_cls(value)
    except ValueError:
        return None


def parse_bid_history(
    document: Union[bytes, str],
    record: AuctionRecord,
    start: float,
    **options,
) -> AuctionRecord:
    """Parse ``document`` into ``record``; raises AuctionError on failure."""
    BidHistoryParser(document, record, start, **options).parse()
    return record

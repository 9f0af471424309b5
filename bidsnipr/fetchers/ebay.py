"""
eBay site client: the request sequences behind watching, signing in,
obtaining a bid token and placing a bid.

All network access goes through a :class:`~bidsnipr.core.Transport`; page
interpretation is delegated to :mod:`bidsnipr.pages`.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional
from urllib.parse import quote

from bidsnipr.core import Page, Transport, TransportError
from bidsnipr.diagnostics import BugReporter
from bidsnipr.errors import AuctionError, ErrorKind
from bidsnipr.markup.tables import Cell, TableReader, table_start
from bidsnipr.markup.tokenizer import Tokenizer
from bidsnipr.models import AuctionRecord
from bidsnipr.pages.history import parse_bid_history
from bidsnipr.pages.outcome import (
    BidOutcome,
    parse_bid_result,
    parse_login_result,
    parse_pre_bid,
)
from bidsnipr.prices import bid_quantity
from bidsnipr.session import LoginSession
from bidsnipr.settings import Settings

log = logging.getLogger("bidsnipr.ebay")

# --------------------------------------------------------------------------- #
#  URL templates
# --------------------------------------------------------------------------- #

HISTORY_URL = "http://{host}/ws/eBayISAPI.dll?ViewBids&item={item}"
# quant=1 only gets the pre-bid through; the real quantity goes with the bid
PRE_BID_URL = (
    "http://{host}/ws/eBayISAPI.dll?MfcISAPICommand=MakeBid&fb=2"
    "&co_partner_id=&item={item}&maxbid={price}&quant={quantity}"
)
LOGIN_1_URL = "https://{host}/ws/eBayISAPI.dll?SignIn"
LOGIN_2_URL = (
    "https://{host}/ws/eBayISAPI.dll?SignInWelcome"
    "&userid={user}&pass={password}&keepMeSignInOption=1"
)
BID_URL = (
    "http://{host}/ws/eBayISAPI.dll?MfcISAPICommand=MakeBid&maxbid={price}"
    "&quant={quantity}&mode=1&uiid={token}&co_partnerid=2&user={user}"
    "&fb=2&item={item}"
)
MY_ITEMS_URL = "http://{host}/ws/eBayISAPI.dll?MyeBay&CurrentPage=MyeBayWatching"

MY_ITEMS_TABLE = 'class="my_itl-iT"'


@dataclass
class WatchedItem:
    item_id: str = ""
    description: str = ""
    seller: str = ""
    feedback: str = ""
    rating: str = ""
    time_left: str = ""
    price: str = ""
    bids: str = ""
    shipping: str = ""

    def lines(self) -> list[str]:
        return [
            f"ItemNr:\t\t{self.item_id}",
            f"Description:\t{self.description}",
            f"Seller:\t\t{self.seller} ( {self.feedback} | {self.rating} )",
            f"Time left:\t{self.time_left}",
            f"Price:\t\t{self.price}",
            f"Bids:\t\t{self.bids}",
            f"Shipping:\t{self.shipping}",
        ]


def _nth(runs: list[str], n: int) -> str:
    return runs[n] if n < len(runs) else ""


def _watched_item(row: list[Cell]) -> WatchedItem:
    item = WatchedItem()
    raw = row[0].raw
    pos = raw.find("value=")
    if pos >= 0:
        digits = raw[pos + 6 :].lstrip("\"' ")
        end = 0
        while end < len(digits) and digits[end].isdigit():
            end += 1
        item.item_id = digits[:end]

    runs = row[2].runs
    if runs and "ENDING SOON" in runs[0]:
        runs = runs[1:]
    item.description = _nth(runs, 0)
    item.seller = _nth(runs, 2)
    item.feedback = _nth(runs, 5)
    item.rating = _nth(runs, 7)
    item.time_left = row[3].text
    item.price = row[4].run(0)
    item.bids = row[4].run(2)
    item.shipping = row[4].run(4)
    return item


# --------------------------------------------------------------------------- #
#  Client
# --------------------------------------------------------------------------- #


class EbayClient:
    def __init__(
        self,
        transport: Transport,
        settings: Settings,
        session: Optional[LoginSession] = None,
        reporter: Optional[BugReporter] = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.transport = transport
        self.settings = settings
        self.session = session or LoginSession(interval=settings.login_interval)
        self.reporter = reporter
        self.clock = clock
        self.sleep = sleep

    @property
    def _user(self) -> str:
        return quote(self.settings.username, safe="")

    # ---------------- HTTP ---------------- #

    def _fetch(
        self, record: Optional[AuctionRecord], url: str, log_url: Optional[str] = None
    ) -> Page:
        try:
            return self.transport.fetch(url, log_url)
        except TransportError as exc:
            kind = ErrorKind.UNAVAILABLE if exc.unavailable else ErrorKind.NETWORK
            detail = f"{exc.url}: {exc.reason}"
            if record is None:
                raise AuctionError(kind, detail) from exc
            raise record.fail(kind, detail) from exc

    # --------------- LOGIN ---------------- #

    def login(
        self, record: Optional[AuctionRecord] = None, interval: Optional[int] = None
    ) -> None:
        """Sign in unless the last sign-in is younger than ``interval``."""
        if self.session.is_fresh(self.clock(), interval):
            return
        self.transport.reset()
        host = self.settings.hosts.login
        self._fetch(record, LOGIN_1_URL.format(host=host))

        password = quote(self.settings.password.get_secret_value(), safe="")
        url = LOGIN_2_URL.format(host=host, user=self._user, password=password)
        log_url = LOGIN_2_URL.format(host=host, user=self._user, password="*****")
        page = self._fetch(record, url, log_url)
        parse_login_result(page.content, record, self.reporter)
        self.session.mark(self.clock())
        log.debug("signed in as %s", self.settings.username)

    def force_login(self, record: Optional[AuctionRecord] = None) -> None:
        self.session.reset()
        self.login(record)

    # --------------- AUCTION ---------------- #

    def history_url(self, record: AuctionRecord) -> str:
        return HISTORY_URL.format(host=self.settings.hosts.history, item=record.auction_id)

    def get_info(self, record: AuctionRecord) -> Optional[float]:
        """Refresh ``record`` from its bid history page.

        Returns the time the first byte of the page arrived, when known.
        """
        log.debug(
            "get_info auction %s price %s user %s",
            record.auction_id,
            record.bid_price_str,
            self.settings.username,
        )
        self.login(record)
        for attempt in range(3):
            start = self.clock()
            page = self._fetch(record, self.history_url(record))
            try:
                parse_bid_history(
                    page.content,
                    record,
                    start,
                    username=self.settings.username,
                    bid_time=self.settings.bid_time,
                    reporter=self.reporter,
                    now=self.clock,
                )
                return page.time_to_first_byte
            except AuctionError as exc:
                if attempt == 0 and exc.kind is ErrorKind.MUST_SIGN_IN:
                    self.force_login(record)
                elif exc.kind is ErrorKind.NO_TIME and attempt < 2:
                    # blank time remaining, give it another chance
                    self.sleep(2)
                else:
                    raise
        return None

    def pre_bid(self, record: AuctionRecord) -> str:
        """Fetch a one-time bid token into ``record.bid_token``."""
        self.login(record)
        url = PRE_BID_URL.format(
            host=self.settings.hosts.prebid,
            item=record.auction_id,
            price=record.bid_price_str,
            quantity=1,
        )
        log.debug("pre_bid(): url is %s", url)
        page = self._fetch(record, url)
        return parse_pre_bid(page.content, record, self.reporter)

    def bid(self, record: AuctionRecord, quantity: int) -> BidOutcome:
        if not record.bid_token:
            raise record.fail(ErrorKind.BID_TOKEN)
        self.login(record)
        fields = dict(
            host=self.settings.hosts.bid,
            price=record.bid_price_str,
            quantity=bid_quantity(quantity, record.quantity),
            item=record.auction_id,
        )
        url = BID_URL.format(token=record.bid_token, user=self._user, **fields)
        log_url = BID_URL.format(
            token="*" * len(record.bid_token), user="*" * len(self._user), **fields
        )

        if not self.settings.bid:
            log.info("Bidding disabled")
            log.debug("bid(): query url: %s", log_url)
            record.reset_error()
            record.bid_result = True
            return BidOutcome(True)
        page = self._fetch(record, url, log_url)
        return parse_bid_result(page.content, record, self.reporter)

    # --------------- MY EBAY ---------------- #

    def my_items(self) -> list[WatchedItem]:
        self.login()
        page = self._fetch(None, MY_ITEMS_URL.format(host=self.settings.hosts.my_ebay))
        tok = Tokenizer(page.content)
        items: list[WatchedItem] = []
        while True:
            table = table_start(tok)
            if table is None:
                break
            if MY_ITEMS_TABLE not in table:
                continue
            reader = TableReader(tok)
            # first row only describes the columns
            if reader.next_row() is None:
                break
            for row in reader.rows():
                if len(row) >= 5:
                    items.append(_watched_item(row))
        return items

"""
Snipe scheduler: watch one auction until the bid moment, place the bid and
check the result.

The loop is synchronous and only ever suspends in ``sleep``; ``clock`` and
``sleep`` are injectable so the timing logic can be driven by a fake clock.
"""

import logging
import time
from enum import Enum
from typing import Callable, Iterable, Optional

from bidsnipr.db import save_snapshot
from bidsnipr.errors import TITLE_KINDS, AuctionError, BatchAborted, ErrorKind
from bidsnipr.fetchers.ebay import EbayClient
from bidsnipr.logs import auction_log
from bidsnipr.models import AuctionRecord
from bidsnipr.sequencer import Sequencer
from bidsnipr.settings import Settings

log = logging.getLogger("bidsnipr.scheduler")

MAX_ERRORS = 50
UNAVAILABLE_SLEEP = 3600
TOKEN_ATTEMPTS = 5
LOGIN_CHECK_WINDOW = 300
TOKEN_WINDOW = 150
# latencies outside [0, MAX_LATENCY) are measurement noise
MAX_LATENCY = 600


class Phase(Enum):
    WATCHING = "watching"
    NEAR_CLOSE = "near close"
    TOKEN_ACQUIRED = "token acquired"
    BIDDING = "bidding"
    BID_CONFIRMED = "bid confirmed"
    BID_FAILED = "bid failed"
    VERIFYING = "verifying"


def sleep_schedule(remain: float) -> int:
    """Seconds to sleep with ``remain`` seconds left before the bid.

    Updates come roughly once a day, then at 2 hours, 1 hour, 5 minutes and
    2 minutes before the end.
    """
    if remain <= 150:
        return int(remain)
    if remain < 720:
        return int(remain - 120)
    if remain < 3900:
        return int(remain - 600)
    if remain < 10800:
        return int(remain - 3600)
    if remain < 97200:
        return int(remain - 7200)
    return 86400


def describe_sleep(seconds: int) -> str:
    if seconds >= 86400:
        return "Sleeping for a day"
    if seconds >= 3600:
        return f"Sleeping for {seconds // 3600} hours {(seconds % 3600) // 60} minutes"
    if seconds >= 60:
        return f"Sleeping for {seconds // 60} minutes {seconds % 60} seconds"
    return f"Sleeping for {seconds} seconds"


class Sniper:
    def __init__(
        self,
        client: EbayClient,
        settings: Settings,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
        ledger=None,
    ):
        self.client = client
        self.settings = settings
        self.clock = clock
        self.sleep = sleep
        self.ledger = ledger
        # items still wanted; shrinks as auctions are won
        self.quantity = settings.quantity
        self.phase = Phase.WATCHING

    def _enter(self, phase: Phase, record: AuctionRecord) -> None:
        if phase is not self.phase:
            log.debug("auction %s: %s -> %s", record.auction_id, self.phase.value, phase.value)
        self.phase = phase

    def remaining(self, record: AuctionRecord) -> float:
        """Seconds until the moment the bid has to go out."""
        return record.end_time - self.clock() - record.latency - self.settings.bid_time

    def _get_info(self, record: AuctionRecord) -> Optional[float]:
        ttfb = self.client.get_info(record)
        save_snapshot(self.ledger, record)
        return ttfb

    # ---- watching ----------------------------------------------------------

    def watch(self, record: AuctionRecord) -> None:
        """Watch until it is time to bid; raises AuctionError on fatal errors."""
        self._enter(Phase.WATCHING, record)
        log.debug(
            "WATCHING auction %s price-each %s quantity %d bidtime %d",
            record.auction_id,
            record.bid_price_str,
            self.quantity,
            self.settings.bid_time,
        )
        errors = 0
        remain: Optional[float] = None
        while True:
            start = self.clock()
            error = None
            ttfb = None
            try:
                ttfb = self._get_info(record)
            except AuctionError as exc:
                error = exc
            end = self.clock()

            latency = (ttfb if ttfb is not None else end) - start
            if 0 <= latency < MAX_LATENCY:
                record.latency = latency
            log.info("Latency: %d seconds", record.latency)

            if error is not None:
                log.warning("%s", error)
                if error.kind is ErrorKind.UNAVAILABLE:
                    # maintenance usually lasts about two hours
                    if remain is not None:
                        remain = self.remaining(record)
                    if remain is None or remain > 86400:
                        log.info("Will try again, sleeping for an hour")
                        self.sleep(UNAVAILABLE_SLEEP)
                        continue
                elif remain is None:
                    # first fetch: the page may not be ready yet
                    for _ in range(3):
                        if error.kind not in TITLE_KINDS:
                            break
                        try:
                            self._get_info(record)
                            error = None
                            break
                        except AuctionError as exc:
                            error = exc
                    if error is not None:
                        raise error
                    remain = self.remaining(record)
                else:
                    errors += 1
                    log.debug("ERROR %d!!!", errors)
                    if errors > MAX_ERRORS:
                        raise record.fail(ErrorKind.TOO_MANY)
                    log.warning(
                        "Cannot find auction - internet or eBay problem? "
                        "Will try again after sleep."
                    )
                    remain = self.remaining(record)
            elif not record.valid_bid_price():
                raise record.fail(ErrorKind.BID_PRICE)
            else:
                remain = self.remaining(record)

            if remain <= LOGIN_CHECK_WINDOW:
                self._enter(Phase.NEAR_CLOSE, record)
                self.client.login(record, self.settings.login_interval - 600)
                remain = self.remaining(record)

            if remain <= TOKEN_WINDOW and record.bid_token is None and record.error is None:
                self._acquire_token(record)

            remain = self.remaining(record)
            if remain <= 0:
                break

            seconds = sleep_schedule(remain)
            log.info(describe_sleep(seconds))
            self.sleep(seconds)
            remain = self.remaining(record)
            if remain <= 0:
                break

    def _acquire_token(self, record: AuctionRecord) -> None:
        for _ in range(TOKEN_ATTEMPTS):
            try:
                self.client.pre_bid(record)
                break
            except AuctionError as exc:
                # the page loaded but had no token; asking again will not help
                if exc.kind is ErrorKind.BID_TOKEN:
                    break
                if exc.kind is ErrorKind.MUST_SIGN_IN:
                    try:
                        self.client.force_login(record)
                    except AuctionError:
                        break
        if record.error is not None and record.error is not ErrorKind.HIGH_BIDDER:
            log.error("Cannot get bid key")
            raise AuctionError(record.error, record.error_detail, auction=record.auction_id)
        if record.bid_token:
            self._enter(Phase.TOKEN_ACQUIRED, record)

    # ---- bidding -----------------------------------------------------------

    def _submit(self, record: AuctionRecord) -> None:
        self._enter(Phase.BIDDING, record)
        log.info("Auction %s: Bidding...", record.auction_id)
        try:
            self._place_bid(record)
        except AuctionError:
            self._enter(Phase.BID_FAILED, record)
            raise
        self._enter(Phase.BID_CONFIRMED, record)

    def _place_bid(self, record: AuctionRecord) -> None:
        try:
            self.client.bid(record, self.quantity)
        except AuctionError as exc:
            if exc.kind is not ErrorKind.MUST_SIGN_IN:
                raise
            self.client.force_login(record)
            self.client.bid(record, self.quantity)

    def _verify(self, record: AuctionRecord) -> None:
        self._enter(Phase.VERIFYING, record)
        short_lead = 0 < self.settings.bid_time < 60
        for _ in range(2):
            if short_lead:
                # 2 extra seconds to make sure the auction is over
                seconds = max(record.end_time - self.clock(), 0) + 2
                log.info(
                    "Auction %s: Waiting %d seconds for auction to complete...",
                    record.auction_id,
                    seconds,
                )
                self.sleep(seconds)
            log.info("Auction %s: Post-bid info:", record.auction_id)
            try:
                self._get_info(record)
            except AuctionError as exc:
                log.error("%s", exc)
            if not (short_lead and 0 < record.remain < 60):
                break

    def snipe(self, record: AuctionRecord) -> int:
        """Run one auction's turn; returns the number of items won."""
        with auction_log(record.auction_id, self.settings.log_dir, self.settings.debug):
            log.debug(
                "auction %s price %s quantity %d user %s bidtime %d",
                record.auction_id,
                record.bid_price_str,
                self.quantity,
                "*" * len(self.settings.username),
                self.settings.bid_time,
            )
            try:
                self.client.login(record)
                if self.settings.now:
                    self.client.pre_bid(record)
                else:
                    self.watch(record)
            except AuctionError as exc:
                log.error("%s", exc)
                if exc.kind is not ErrorKind.HIGH_BIDDER:
                    return 0

            if record.end_time <= self.clock():
                log.error("%s", record.fail(ErrorKind.ENDED))
                return 0

            if record.error is not ErrorKind.HIGH_BIDDER:
                try:
                    self._submit(record)
                except AuctionError as exc:
                    log.error("%s", exc)
                    return 0

            self._verify(record)
            return self._count_won(record)

    def _count_won(self, record: AuctionRecord) -> int:
        if record.won == -1:
            won = min(self.quantity, record.quantity)
            log.info("unknown outcome, assume that you have won %d items", won)
        else:
            won = record.won
            log.info("won %d item(s)", won)
        self.quantity -= won
        return won

    # ---- batch -------------------------------------------------------------

    def run(self, records: Iterable[AuctionRecord], info_only: bool = False) -> int:
        """Sequence the batch, then snipe in order; returns total items won."""
        records = list(records)
        multiple = len(records) > 1
        sequencer = Sequencer(
            self.client, self.settings, clock=self.clock, sleep=self.sleep, ledger=self.ledger
        )
        try:
            records, quantity = sequencer.prepare(records, self.quantity)
        except BatchAborted as exc:
            log.error("%s", exc)
            return 0

        if quantity < self.quantity:
            log.info("You have already won %d item(s).", self.quantity - quantity)
            if self.settings.reduce:
                self.quantity = quantity
                log.info("Quantity reduced to %d item(s).", self.quantity)

        if info_only:
            if multiple:
                log.info("Remaining auctions: %d", len(records))
            return 0

        won = 0
        for i, record in enumerate(records):
            if self.quantity <= 0:
                break
            if multiple:
                log.info("Remaining auctions: %d", len(records) - i)
            won += self.snipe(record)
        return won

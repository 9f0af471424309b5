import logging
import time
from typing import Callable, Iterable

from bidsnipr.db import save_snapshot
from bidsnipr.errors import SESSION_KINDS, AuctionError, BatchAborted, ErrorKind
from bidsnipr.logs import auction_log
from bidsnipr.models import AuctionRecord

log = logging.getLogger("bidsnipr.sequencer")

FETCH_ATTEMPTS = 3
UNAVAILABLE_SLEEP = 3600


class Sequencer:
    """Fetch, order and weed out a batch of auctions before sniping starts."""

    def __init__(
        self,
        client,
        settings,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
        ledger=None,
    ):
        self.client = client
        self.settings = settings
        self.clock = clock
        self.sleep = sleep
        self.ledger = ledger

    def fetch_all(self, records: Iterable[AuctionRecord]) -> None:
        for record in records:
            with auction_log(record.auction_id, self.settings.log_dir, self.settings.debug):
                self._fetch(record)

    def _fetch(self, record: AuctionRecord) -> None:
        attempts = 0
        while attempts < FETCH_ATTEMPTS:
            if attempts > 0:
                log.warning("Retrying...")
            # spacing requests avoids the site's "security measure" page
            if self.settings.delay > 0:
                self.sleep(self.settings.delay)
            try:
                self.client.get_info(record)
            except AuctionError as exc:
                log.warning("%s", exc)
                if exc.kind is ErrorKind.UNAVAILABLE:
                    log.warning("Will retry, sleeping for an hour")
                    self.sleep(UNAVAILABLE_SLEEP)
                    continue
                if exc.kind in SESSION_KINDS:
                    raise BatchAborted(exc.kind, exc.detail, auction=record.auction_id) from exc
                attempts += 1
                continue
            save_snapshot(self.ledger, record)
            return

    @staticmethod
    def sort(records: Iterable[AuctionRecord]) -> list[AuctionRecord]:
        """Winning first, then soonest end, then cheapest."""
        return sorted(records, key=AuctionRecord.sort_key)

    def purge(
        self, records: Iterable[AuctionRecord], quantity: int
    ) -> tuple[list[AuctionRecord], int]:
        """Drop entries that cannot or need not be bid on.

        Returns the survivors and ``quantity`` less anything already won.
        """
        now = self.clock()
        kept: list[AuctionRecord] = []
        seen: set[str] = set()
        for record in records:
            if record.auction_id in seen:
                record.fail(ErrorKind.DUPLICATE)
            elif record.won > 0:
                quantity -= record.won
                log.info("Auction %s: already won %d item(s)", record.auction_id, record.won)
                seen.add(record.auction_id)
                continue
            elif record.error is not None:
                pass
            elif record.end_time <= now:
                record.fail(ErrorKind.ENDED)
            elif not record.valid_bid_price():
                record.fail(ErrorKind.BID_PRICE)
            else:
                kept.append(record)
                seen.add(record.auction_id)
                continue
            seen.add(record.auction_id)
            log.warning("%s", record.error_message())
        return kept, quantity

    def prepare(
        self, records: list[AuctionRecord], quantity: int
    ) -> tuple[list[AuctionRecord], int]:
        self.fetch_all(records)
        if len(records) > 1:
            log.info("Sorting auctions...")
            records = self.sort(records)
        return self.purge(records, quantity)

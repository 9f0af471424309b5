from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Optional

from bidsnipr.errors import AuctionError, ErrorKind, format_error
from bidsnipr.prices import is_valid_bid_price, parse_price, price_fixup


@dataclass
class AuctionRecord:
    """Everything known about one auction during a run.

    Owned by whichever turn is currently working on it; every successful
    parse overwrites the observed fields in place.
    """

    auction_id: str
    bid_price_str: str = ""
    bid_price: float = -1.0
    title: Optional[str] = None
    # observed state
    remain: int = 0
    remain_raw: Optional[str] = None
    end_time: float = 0.0
    latency: float = 0.0
    quantity: int = 0
    quantity_bid: int = 0
    bids: int = 0
    price: float = 0.0
    shipping: Optional[str] = None
    currency: Optional[str] = None
    reserve_not_met: bool = False
    # session artifacts
    bid_token: Optional[str] = None
    bid_result: Optional[bool] = None
    # outcome, -1 means unknown
    won: int = -1
    winning: int = 0
    # error state
    error: Optional[ErrorKind] = None
    error_detail: Optional[str] = None

    @classmethod
    def create(cls, auction_id: str, price_text: str) -> "AuctionRecord":
        _, normalized = price_fixup(price_text)
        value = parse_price(normalized)
        return cls(
            auction_id=auction_id,
            bid_price_str=normalized,
            bid_price=value if value is not None else -1.0,
        )

    # ---- error state -------------------------------------------------------

    def reset_error(self) -> None:
        self.error = None
        self.error_detail = None

    def fail(self, kind: ErrorKind, detail: Optional[str] = None) -> AuctionError:
        """Record ``kind`` as the active error and return the matching exception."""
        self.reset_error()
        self.error = kind
        self.error_detail = detail
        return AuctionError(kind, detail, auction=self.auction_id)

    def error_message(self) -> Optional[str]:
        if self.error is None:
            return None
        return format_error(self.error, self.auction_id, self.error_detail)

    # ---- derived -----------------------------------------------------------

    def valid_bid_price(self) -> bool:
        return is_valid_bid_price(
            self.bid_price,
            self.price,
            self.currency,
            quantity=self.quantity,
            quantity_bid=self.quantity_bid,
            winning=self.winning,
        )

    def sort_key(self) -> tuple[int, float, int]:
        # integer cents keep the comparison transitive
        return (-self.winning, self.end_time, int(round(self.price * 100)))

    def as_dict(self) -> dict:
        data = asdict(self)
        data["error"] = self.error.name if self.error else None
        data["bid_token"] = "*****" if self.bid_token else None
        return data

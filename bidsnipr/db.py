# bidsnipr/db.py
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import aliased
from sqlmodel import Field, Session, SQLModel, create_engine, select

from bidsnipr.models import AuctionRecord

log = logging.getLogger("bidsnipr.db")


class Observation(SQLModel, table=True):
    __tablename__ = "observation"
    id: Optional[int] = Field(default=None, primary_key=True)
    auction_id: str = Field(index=True)
    title: Optional[str] = None
    timestamp: datetime = Field(index=True, description="Snapshot time (UTC)")
    price: float = Field(description="Current price at timestamp")
    currency: Optional[str] = Field(default=None, max_length=8)
    quantity: int = 0
    quantity_bid: int = 0
    bids: int = 0
    remain: int = 0
    end_time: Optional[datetime] = None
    winning: int = 0
    won: int = -1
    reserve_not_met: bool = False
    error: Optional[str] = None


class Ledger:
    """Append-only store of every auction snapshot we observed."""

    def __init__(self, url: str = "sqlite:///bidsnipr.sqlite", engine=None):
        self.engine = engine if engine is not None else create_engine(url, echo=False)
        SQLModel.metadata.create_all(self.engine)

    def record(
        self, record: AuctionRecord, timestamp: Optional[datetime] = None
    ) -> Observation:
        end_time = None
        if record.end_time > 0:
            end_time = datetime.fromtimestamp(record.end_time, tz=timezone.utc)
        row = Observation(
            auction_id=record.auction_id,
            title=record.title,
            timestamp=timestamp or datetime.now(timezone.utc),
            price=record.price,
            currency=record.currency,
            quantity=record.quantity,
            quantity_bid=record.quantity_bid,
            bids=record.bids,
            remain=record.remain,
            end_time=end_time,
            winning=record.winning,
            won=record.won,
            reserve_not_met=record.reserve_not_met,
            error=record.error.name if record.error else None,
        )
        with Session(self.engine) as s:
            s.add(row)
            s.commit()
            s.refresh(row)
            return row

    def history_for(self, auction_id: str, limit: int = 100) -> list[Observation]:
        with Session(self.engine) as s:
            stmt = (
                select(Observation)
                .where(Observation.auction_id == auction_id)
                .order_by(Observation.timestamp.desc())
                .limit(limit)
            )
            return list(s.exec(stmt).all())

    def latest_observations(self, limit: int = 50) -> list[Observation]:
        """Newest snapshot of each auction, newest first."""
        with Session(self.engine) as s:
            ranked = select(
                Observation,
                func.row_number()
                .over(
                    partition_by=Observation.auction_id,
                    order_by=Observation.timestamp.desc(),
                )
                .label("rn"),
            ).subquery()
            ObservationAlias = aliased(Observation, ranked)
            stmt = (
                select(ObservationAlias)
                .where(ranked.c.rn == 1)
                .order_by(ObservationAlias.timestamp.desc())
                .limit(limit)
            )
            return list(s.exec(stmt).all())


def save_snapshot(ledger: Optional[Ledger], record: AuctionRecord) -> None:
    """Write ``record`` to ``ledger`` if there is one. Never raises."""
    if ledger is None:
        return
    try:
        ledger.record(record)
    except SQLAlchemyError as exc:
        log.warning("auction %s: snapshot not saved: %s", record.auction_id, exc)

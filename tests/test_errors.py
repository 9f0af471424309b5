"""Tests for the error taxonomy and the auction record's error state."""
from bidsnipr.errors import SESSION_KINDS, AuctionError, BatchAborted, ErrorKind, format_error
from bidsnipr.models import AuctionRecord
from bidsnipr.session import LoginSession


def test_format_error_fills_auction_and_detail():
    assert format_error(ErrorKind.CONV_PRICE, "42", "abc") == 'Auction 42: Cannot convert price "abc"'
    assert format_error(ErrorKind.UNKNOWN, "42") == "Auction 42: Unknown error"


def test_messages_for_bid_rejections():
    assert str(AuctionError(ErrorKind.HIGH_BIDDER, auction="7")) == (
        "Auction 7: Bid amount must be higher than the proxy you already placed"
    )
    assert format_error(ErrorKind.MUST_SIGN_IN, "7") == "Auction 7: Must sign in"
    assert format_error(ErrorKind.CANNOT_BID, "7") == "Auction 7: Cannot bid on item (fixed price item?)"
    assert len({kind.value for kind in ErrorKind}) == len(ErrorKind)


def test_auction_error_carries_kind():
    err = AuctionError(ErrorKind.OUTBID, auction="7")
    assert err.kind is ErrorKind.OUTBID
    assert str(err) == "Auction 7: You have been outbid"
    assert isinstance(BatchAborted(ErrorKind.LOGIN), AuctionError)


def test_session_kinds():
    assert ErrorKind.CAPTCHA in SESSION_KINDS
    assert ErrorKind.OUTBID not in SESSION_KINDS


def test_fail_replaces_previous_error():
    record = AuctionRecord.create("1", "5")
    record.fail(ErrorKind.NO_TIME)
    err = record.fail(ErrorKind.BAD_TIME, "3 weeks")
    assert record.error is ErrorKind.BAD_TIME
    assert record.error_detail == "3 weeks"
    assert err.kind is ErrorKind.BAD_TIME
    assert record.error_message() == 'Auction 1: Unknown time interval "3 weeks"'
    record.reset_error()
    assert record.error is None
    assert record.error_message() is None


def test_create_normalizes_bid_price():
    record = AuctionRecord.create("1", "1.234,50")
    assert record.bid_price_str == "1234.50"
    assert record.bid_price == 1234.5
    assert record.won == -1
    assert record.currency is None


def test_sort_key_orders_winning_then_end_then_price():
    a = AuctionRecord("a", end_time=200, price=5)
    b = AuctionRecord("b", end_time=100, price=9)
    c = AuctionRecord("c", end_time=100, price=3)
    d = AuctionRecord("d", end_time=300, price=1, winning=1)
    assert [r.auction_id for r in sorted([a, b, c, d], key=AuctionRecord.sort_key)] == [
        "d",
        "c",
        "b",
        "a",
    ]


def test_as_dict_masks_token():
    record = AuctionRecord("1", bid_token="secret", error=ErrorKind.ENDED)
    data = record.as_dict()
    assert data["bid_token"] == "*****"
    assert data["error"] == "ENDED"


def test_login_session_freshness():
    session = LoginSession(interval=100)
    assert not session.is_fresh(1000.0)
    session.mark(1000.0)
    assert session.is_fresh(1050.0)
    assert not session.is_fresh(1100.0)
    assert not session.is_fresh(1050.0, interval=0)
    session.reset()
    assert not session.is_fresh(1050.0)

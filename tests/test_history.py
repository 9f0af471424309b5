"""Tests for the bid-history page interpreter."""
from dataclasses import asdict
from unittest.mock import MagicMock

import pytest

from bidsnipr.errors import AuctionError, ErrorKind
from bidsnipr.models import AuctionRecord
from bidsnipr.pages.history import PRIVATE, parse_bid_history, parse_seconds
from tests.pages import bid_row, history_page, named_page

START = 1_000_000.0


def _record(item="123", price="20"):
    return AuctionRecord.create(item, price)


def _parse(document, record=None, **options):
    record = record or _record()
    options.setdefault("now", lambda: START)
    return parse_bid_history(document, record, START, **options)


@pytest.mark.parametrize(
    "text, seconds",
    [
        ("1 hour 30 mins", 5400),
        ("2 days 3 hours", 183600),
        ("45 secs", 45),
        ("1 min 10 secs", 70),
        ("--", 1),
        ("", 1),
        ("ended", 0),
        ("3 fortnights", -1),
    ],
)
def test_parse_seconds(text, seconds):
    assert parse_seconds(text) == seconds


def test_active_auction_with_other_high_bidder():
    record = _parse(history_page(), username="bob")
    assert record.title == "Vintage Radio"
    assert record.price == 12.5
    assert record.currency == "US"
    assert record.quantity == 1
    assert record.quantity_bid == 1
    assert record.bids == 3
    assert record.remain == 5400
    assert record.remain_raw == "1 hour 30 mins"
    assert record.end_time == START + 5400
    assert record.winning == 0
    assert record.won == -1
    assert record.error is None


def _observed(record):
    fields = asdict(record)
    for timed in ("end_time", "latency"):
        fields.pop(timed)
    return fields


@pytest.mark.parametrize(
    "document",
    [
        history_page(),
        history_page(page_name="PageViewBids_Closed_HighBidder", ended=True),
        history_page(rows=[]),
    ],
)
def test_parsing_the_same_page_twice_gives_the_same_record(document):
    first = _parse(document, username="alice")
    expected = _observed(first)
    later = START + 30
    again = parse_bid_history(document, _record(), later, username="alice", now=lambda: later)
    assert _observed(again) == expected
    reparsed = _parse(document, record=first, username="alice")
    assert _observed(reparsed) == expected


def test_active_auction_where_we_lead():
    record = _parse(history_page(), username="ALICE")
    assert record.winning == 1
    assert record.won == -1


def test_closed_auction_we_won():
    page = history_page(page_name="PageViewBids_Closed_HighBidder", ended=True)
    record = _parse(page, username="alice")
    assert record.remain == 0
    assert record.remain_raw == "ended"
    assert record.end_time == START
    assert record.winning == 1
    assert record.won == 1


def test_closed_auction_reserve_not_met():
    page = history_page(ended=True, body="").replace(
        b"<span>US $12.50</span>", b"<span>US $12.50</span><span>Reserve not met</span>", 1
    )
    record = _parse(page, username="alice")
    assert record.reserve_not_met
    assert record.winning == 0
    assert record.won == 0


def test_bid_count_from_rows_until_starting_price():
    rows = [
        bid_row("alice", "US $12.50"),
        bid_row("bob", "US $12.00"),
        bid_row("carol", "US $10.00"),
        bid_row("Starting Price", "US $1.00"),
        bid_row("dave", "US $0.50"),
    ]
    record = _parse(history_page(total_bids=None, rows=rows))
    assert record.bids == 3


def test_zero_total_bids_short_circuits():
    record = _parse(history_page(total_bids="0", rows=[]))
    assert record.bids == 0
    assert record.quantity_bid == 0
    assert record.price == 0.0


def test_no_bids_sentinel_row():
    rows = ["<tr><td></td><td>No bids have been placed.</td></tr>"]
    record = _parse(history_page(total_bids=None, rows=rows))
    assert record.bids == 0
    assert record.quantity_bid == 0


def test_quantity_is_read():
    record = _parse(history_page(quantity="5 available"))
    assert record.quantity == 5


def test_private_auction_resolves_to_user_inside_lead_window():
    rows = [bid_row(PRIVATE, "US $12.50")]
    page = history_page(time_left="5 secs", rows=rows)
    record = _record(price="20")
    _parse(page, record, username="alice", bid_time=10)
    assert record.winning == 1


def test_private_auction_outside_lead_window_is_someone_else():
    rows = [bid_row(PRIVATE, "US $12.50")]
    record = _parse(history_page(rows=rows), username="alice", bid_time=10)
    assert record.winning == 0


def test_member_id_indirection():
    rows = [
        '<tr><td></td><td>Member Id: <a href="#">alice</a></td>'
        "<td>US $12.50</td><td>date</td><td></td></tr>"
    ]
    record = _parse(history_page(rows=rows), username="alice")
    assert record.winning == 1


def test_purchase_ledger_sums_our_quantities():
    header = "<tr><th></th><th>User ID</th><th>Price</th><th>Qty</th><th>Date</th><th></th></tr>"
    purchases = "".join(
        f"<tr><td></td><td>{user}</td><td>US $5.00</td><td>{qty}</td><td>d</td><td></td></tr>"
        for user, qty in (("alice", 2), ("bob", 1), ("Alice", 1))
    )
    page = (
        named_page("PageViewTransactions", body=(
            '<span class="BHCtBidLabel">Item number:</span> <span>123</span>'
            '<span class="itemTitle">Item title:</span> <span>Widgets</span>'
            '<span class="BHCtBid">Price:</span> <span>US $5.00</span>'
            '<span class="timeLeft">2 days</span>'
            f"<table>{header}{purchases}</table>"
        ))
    )
    record = _parse(page, username="alice")
    assert record.bids == 3
    assert record.quantity_bid == 4
    assert record.won == 3
    assert record.winning == 3


@pytest.mark.parametrize(
    "page_name, expected",
    [
        ("PageViewBids_Active_HighBidder", dict(won=0, winning=1, quantity_bid=1, quantity=0)),
        ("PageViewBids_Active_Outbid", dict(won=0, winning=0, quantity_bid=0, quantity=1)),
        ("PageViewBids_Closed_HighBidder", dict(won=1, winning=1, quantity_bid=1, quantity=1)),
        ("PageViewBids_Closed_None", dict(won=0, winning=0, quantity_bid=0, quantity=0)),
    ],
)
def test_inference_from_page_name(page_name, expected):
    rows = ["<tr><td></td><td>something unexpected</td></tr>"]
    record = _parse(history_page(page_name=page_name, total_bids=None, rows=rows))
    for field, value in expected.items():
        assert getattr(record, field) == value, field


def test_unusable_table_without_inference_fails():
    rows = ["<tr><td></td><td>something unexpected</td></tr>"]
    reporter = MagicMock()
    with pytest.raises(AuctionError) as exc:
        _parse(history_page(page_name="PageViewBids", total_bids=None, rows=rows), reporter=reporter)
    assert exc.value.kind is ErrorKind.NO_HIGH_BID
    reporter.capture.assert_called_once()


def test_missing_table_is_no_high_bid():
    record = _record()
    with pytest.raises(AuctionError) as exc:
        _parse(history_page(total_bids=None, rows=[]), record)
    assert exc.value.kind is ErrorKind.NO_HIGH_BID
    assert record.error is ErrorKind.NO_HIGH_BID


@pytest.mark.parametrize(
    "document, kind",
    [
        (named_page(src_id="Captcha.xsl"), ErrorKind.CAPTCHA),
        (named_page("Security Measure"), ErrorKind.CAPTCHA),
        (named_page("PageSignIn"), ErrorKind.MUST_SIGN_IN),
        (named_page("SomethingElse"), ErrorKind.UNRECOGNIZED_PAGE),
        (b"<html><body>nothing here</body></html>", ErrorKind.NO_TITLE),
        (named_page("PageViewBids_Active_None", body="<p>Unknown Item</p>"), ErrorKind.BAD_ITEM),
    ],
)
def test_page_identity_failures(document, kind):
    with pytest.raises(AuctionError) as exc:
        _parse(document)
    assert exc.value.kind is kind


def test_mismatched_item_number():
    with pytest.raises(AuctionError) as exc:
        _parse(history_page(item="999"))
    assert exc.value.kind is ErrorKind.BAD_ITEM


def test_debug_mode_adopts_page_item_number():
    record = _parse(history_page(item="999"), debug=True)
    assert record.auction_id == "999"


def test_missing_title():
    page = history_page().replace(b'class="itemTitle"', b'class="other"')
    with pytest.raises(AuctionError) as exc:
        _parse(page)
    assert exc.value.kind is ErrorKind.NO_TITLE


def test_unconvertible_price_keeps_raw_text():
    with pytest.raises(AuctionError) as exc:
        _parse(history_page(price="US $0.00"))
    assert exc.value.kind is ErrorKind.CONV_PRICE
    assert exc.value.detail == "US $0.00"


def test_unknown_time_unit():
    with pytest.raises(AuctionError) as exc:
        _parse(history_page(time_left="3 fortnights"))
    assert exc.value.kind is ErrorKind.BAD_TIME


def test_missing_time_left():
    page = history_page().replace(b'class="timeLeft"', b'class="other"')
    with pytest.raises(AuctionError) as exc:
        _parse(page)
    assert exc.value.kind is ErrorKind.NO_TIME


def test_blank_time_left_means_one_second():
    page = history_page().replace(
        b'<span class="timeLeft">1 hour 30 mins</span>',
        b'<span class="timeLeft"></span><span>Duration:</span>',
    )
    record = _parse(page)
    assert record.remain == 1

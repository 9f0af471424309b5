"""Small HTML builders shaped like the site's pages."""


def comment_ids(page_name=None, src_id=None, page_id=None):
    parts = []
    if page_name is not None:
        parts.append(f'<!-- var pageName = "{page_name}"; -->')
    if page_id is not None:
        parts.append(f"<!-- Page id: {page_id} -->")
    if src_id is not None:
        parts.append(f"<!-- srcId: {src_id} -->")
    return "\n".join(parts)


def bid_row(bidder, amount, date="01-Jan-26 10:00:00"):
    return (
        f"<tr><td></td><td><a href=\"#\">{bidder}</a> ( 12 )</td>"
        f"<td>{amount}</td><td>{date}</td><td></td></tr>"
    )


def bid_table(rows):
    header = (
        "<tr><th></th><th>Bidder</th><th>Bid Amount</th><th>Bid Time</th><th></th></tr>"
    )
    return f'<table class="bids">{header}{"".join(rows)}</table>'


def history_page(
    item="123",
    title="Vintage Radio",
    price="US $12.50",
    time_left="1 hour 30 mins",
    page_name="PageViewBids_Active_None",
    total_bids="3",
    quantity=None,
    rows=None,
    ended=False,
    body="",
):
    """A bid-history page; pass ``rows=[]`` for no table at all."""
    if rows is None:
        rows = [bid_row("alice", price), bid_row("Starting Price", "US $1.00")]
    parts = [
        "<html><head><title>eBay</title>",
        comment_ids(page_name, "ViewBids.xsl"),
        "</head><body><h1>Bid History</h1>",
        f'<span class="BHCtBidLabel">Item number:</span> <span>{item}</span>',
        f'<span class="itemTitle">Item title:</span> <span>{title}</span>',
        f'<span class="BHCtBid">Current bid:</span> <span>{price}</span>',
    ]
    if quantity is not None:
        parts.append(f'<span class="BHCtBid">Quantity:</span> <span>{quantity}</span>')
    if ended:
        parts.append("<span>Time Ended:</span> <span>01-Jan-26</span>")
    else:
        parts.append(f'<span class="timeLeft">{time_left}</span>')
    if total_bids is not None:
        parts.append(f"<span>Total Bids:</span> <span>{total_bids}</span>")
    parts.append(body)
    if rows:
        parts.append(bid_table(rows))
    parts.append("</body></html>")
    return "\n".join(parts).encode("utf-8")


def named_page(page_name=None, src_id=None, body=""):
    return (
        f"<html><head>{comment_ids(page_name, src_id)}</head><body>{body}</body></html>"
    ).encode("utf-8")


def pre_bid_page(token="abc123"):
    return named_page(
        "MakeBidConfirm",
        body=f'<form><input type="hidden" name="uiid" value="{token}"></form>',
    )

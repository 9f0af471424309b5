import logging
import os
import time
from enum import Enum
from pathlib import Path
from typing import Annotated, Any, Optional

import typer
from pydantic import ValidationError

from bidsnipr.auctionfile import AuctionFileError, read_auction_file
from bidsnipr.db import Ledger
from bidsnipr.diagnostics import BugReporter
from bidsnipr.errors import AuctionError
from bidsnipr.fetchers.ebay import EbayClient
from bidsnipr.fetchers.http import HttpTransport
from bidsnipr.logs import configure_logging
from bidsnipr.markup.pageinfo import read_page_info
from bidsnipr.markup.tables import TableReader, table_start
from bidsnipr.markup.tokenizer import Tokenizer, text_runs
from bidsnipr.models import AuctionRecord
from bidsnipr.pages.history import parse_bid_history
from bidsnipr.pages.outcome import parse_bid_result, parse_pre_bid
from bidsnipr.scheduler import Sniper
from bidsnipr.settings import Settings, apply_overrides, load_settings

if os.getenv("BIDSNIPR_DEBUGPY", "0") == "1":
    import debugpy

    debugpy.listen(("0.0.0.0", 5679))
    if os.getenv("DEBUGPY_WAIT", "0") == "1":
        debugpy.wait_for_client()

log = logging.getLogger("bidsnipr")

app = typer.Typer(help="bidsnipr: place a bid in the last seconds of an eBay auction")


class ParseMode(str, Enum):
    text = "text"
    history = "history"
    bid = "bid"
    prebid = "prebid"
    table = "table"


ConfigOpt = Annotated[
    Optional[Path], typer.Option("--config", "-c", help="TOML configuration file.")
]
UsernameOpt = Annotated[Optional[str], typer.Option("--username", "-u", help="eBay user name.")]


# ---------------------------------------------------------------------------
# Settings assembly
# ---------------------------------------------------------------------------


def _override(settings: Settings, overrides: dict[str, Any]) -> Settings:
    if not overrides:
        return settings
    try:
        return apply_overrides(settings, overrides)
    except ValidationError as e:
        raise typer.BadParameter(str(e)) from e


def _credentials(settings: Settings) -> Settings:
    """Prompt for whatever is missing; batch mode never prompts."""
    missing = []
    if not settings.username:
        missing.append("username")
    if not settings.password.get_secret_value():
        missing.append("password")
    if not missing:
        return settings
    if settings.batch:
        raise typer.BadParameter(f"{' and '.join(missing)} required in batch mode")
    overrides: dict[str, Any] = {}
    if "username" in missing:
        overrides["username"] = typer.prompt("username")
    if "password" in missing:
        overrides["password"] = typer.prompt("password", hide_input=True)
    return _override(settings, overrides)


def _records_from_args(args: list[str]) -> tuple[list[AuctionRecord], dict]:
    if len(args) == 1:
        try:
            return read_auction_file(args[0])
        except (AuctionFileError, OSError) as e:
            raise typer.BadParameter(str(e)) from e
    if len(args) % 2:
        raise typer.BadParameter("expected an auction file or <item> <price> pairs")
    records = [AuctionRecord.create(item, price) for item, price in zip(args[::2], args[1::2])]
    return records, {}


def _client(settings: Settings) -> tuple[EbayClient, HttpTransport]:
    transport = HttpTransport(
        headers=settings.request_headers(),
        proxy=settings.network.proxy,
        timeout=settings.network.timeout,
    )
    reporter = BugReporter(settings.diagnostics_dir)
    return EbayClient(transport, settings, reporter=reporter), transport


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def snipe(
    args: Annotated[
        list[str], typer.Argument(help="Auction file, or <item> <price> pairs.")
    ],
    config: ConfigOpt = None,
    username: UsernameOpt = None,
    seconds: Annotated[
        Optional[str], typer.Option("--seconds", "-s", help="Bid lead time, or 'now'.")
    ] = None,
    quantity: Annotated[
        Optional[int], typer.Option("--quantity", "-q", help="Number of items wanted.")
    ] = None,
    proxy: Annotated[Optional[str], typer.Option("--proxy", "-p", help="HTTP proxy.")] = None,
    log_dir: Annotated[
        Optional[Path], typer.Option("--log-dir", "-l", help="Directory for log files.")
    ] = None,
    no_bid: Annotated[bool, typer.Option("--no-bid", "-n", help="Do not place bids.")] = False,
    no_reduce: Annotated[
        bool, typer.Option("--no-reduce", "-r", help="Keep quantity after wins.")
    ] = False,
    batch: Annotated[bool, typer.Option("--batch", "-b", help="Never prompt.")] = False,
    debug: Annotated[bool, typer.Option("--debug", "-d", help="Debug logging.")] = False,
    info: Annotated[
        bool, typer.Option("--info", "-i", help="Show auction info and exit.")
    ] = False,
):
    """Snipe the given auctions."""
    records, file_overrides = _records_from_args(args)
    settings = _override(load_settings(config), file_overrides)

    cli_overrides: dict[str, Any] = {}
    for key, value in (
        ("username", username),
        ("seconds", seconds),
        ("quantity", quantity),
        ("proxy", proxy),
        ("logdir", log_dir),
    ):
        if value is not None:
            cli_overrides[key] = value
    for key, flag, value in (
        ("bid", no_bid, False),
        ("reduce", no_reduce, False),
        ("batch", batch, True),
        ("debug", debug, True),
    ):
        if flag:
            cli_overrides[key] = value
    settings = _override(settings, cli_overrides)

    configure_logging(settings.debug, settings.log_dir)
    settings = _credentials(settings)

    client, transport = _client(settings)
    ledger = Ledger(settings.history_db) if settings.history_db else None
    sniper = Sniper(client, settings, ledger=ledger)
    try:
        won = sniper.run(records, info_only=info)
    finally:
        transport.close()
    if info:
        raise typer.Exit(0)
    raise typer.Exit(0 if won > 0 else 1)


@app.command()
def myitems(config: ConfigOpt = None, username: UsernameOpt = None):
    """List the items on your watch list."""
    settings = load_settings(config)
    if username:
        settings = _override(settings, {"username": username})
    configure_logging(settings.debug, settings.log_dir)
    settings = _credentials(settings)

    client, transport = _client(settings)
    try:
        items = client.my_items()
    except AuctionError as e:
        log.error("%s", e)
        raise typer.Exit(1)
    finally:
        transport.close()
    for item in items:
        for line in item.lines():
            typer.echo(line)
        typer.echo("")


@app.command()
def parse(
    file: Annotated[Path, typer.Argument(exists=True, dir_okay=False, help="Saved page.")],
    mode: Annotated[ParseMode, typer.Option("--mode", "-m")] = ParseMode.text,
    username: UsernameOpt = None,
):
    """Run one of the page parsers over a saved page."""
    content = file.read_bytes()
    record = AuctionRecord(auction_id=file.stem)

    if mode is ParseMode.text:
        for run in text_runs(content):
            typer.echo(run)
        info = read_page_info(Tokenizer(content))
        typer.echo(f"PAGE: {info.describe() if info else '(none)'}")
        return

    if mode is ParseMode.table:
        tok = Tokenizer(content)
        while table_start(tok) is not None:
            for row in TableReader(tok).rows():
                typer.echo(" | ".join(cell.text for cell in row))
            typer.echo("")
        return

    try:
        if mode is ParseMode.history:
            parse_bid_history(content, record, time.time(), username=(username or "").lower())
            for key, value in record.as_dict().items():
                typer.echo(f"{key}: {value}")
        elif mode is ParseMode.bid:
            outcome = parse_bid_result(content, record)
            typer.echo("accepted" if outcome.accepted else "unknown")
        else:
            typer.echo(f"uiid: {parse_pre_bid(content, record)}")
    except AuctionError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(1)


@app.command()
def history(
    auction_id: Annotated[Optional[str], typer.Argument(help="Auction to show.")] = None,
    config: ConfigOpt = None,
    limit: Annotated[int, typer.Option("--limit", "-n", help="Number of rows.")] = 20,
):
    """Show recent snapshots from the ledger."""
    settings = load_settings(config)
    if not settings.history_db:
        raise typer.BadParameter("history_db is not configured")
    ledger = Ledger(settings.history_db)
    if auction_id:
        rows = ledger.history_for(auction_id, limit=limit)
    else:
        rows = ledger.latest_observations(limit=limit)
    for row in rows:
        currency = row.currency or ""
        typer.echo(
            f"{row.timestamp:%Y-%m-%d %H:%M:%S} | {row.auction_id:>12} | "
            f"{(row.title or '')[:40]:40} | {currency}{row.price:,.2f} | bids {row.bids}"
        )


if __name__ == "__main__":
    app()

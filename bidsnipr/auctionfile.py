"""
Auction batch files.

One auction per line, ``<item-number> [<price>] [# comment]``. Blank lines
and ``#`` comments are skipped, lines starting with a letter are
configuration entries, and an item without a price reuses the previous one.
Any malformed line rejects the whole file.
"""

import re
from pathlib import Path
from typing import Union

from bidsnipr.models import AuctionRecord
from bidsnipr.settings import parse_config_lines

_AUCTION_RE = re.compile(
    r"^(?P<item>[0-9]+)[ \t]*(?:(?P<price>[0-9.,]+)[ \t]*)?(?:#.*)?$"
)


class AuctionFileError(ValueError):
    """Raised for a batch file that cannot be used as a whole."""


def parse_auction_lines(text: str, source: str = "<auctions>") -> list[AuctionRecord]:
    records: list[AuctionRecord] = []
    price = None
    for lineno, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith("#") or line[0].isalpha():
            continue
        m = _AUCTION_RE.match(line)
        if m is None or (m.group("price") and not any(c.isdigit() for c in m.group("price"))):
            raise AuctionFileError(f"{source}:{lineno}: invalid line {raw.strip()!r}")
        if m.group("price"):
            price = m.group("price")
        elif price is None:
            raise AuctionFileError(f"{source}:{lineno}: cannot find price on first auction")
        records.append(AuctionRecord.create(m.group("item"), price))
    return records


def read_auction_file(path: Union[str, Path]) -> tuple[list[AuctionRecord], dict]:
    """Auctions and configuration entries found in ``path``."""
    path = Path(path)
    text = path.read_text(encoding="utf-8", errors="replace")
    return parse_auction_lines(text, str(path)), parse_config_lines(text)

"""Page identity markers embedded in the site's HTML comments."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from bidsnipr.markup.tokenizer import Tokenizer, tag_name

PAGE_NAME = 'var pageName = "'
PAGE_ID = "Page id: "
SRC_ID = "srcId: "


@dataclass(frozen=True)
class PageInfo:
    page_name: Optional[str] = None
    page_id: Optional[str] = None
    src_id: Optional[str] = None

    def describe(self) -> str:
        return (
            f"pageName={self.page_name or '-'} "
            f"pageId={self.page_id or '-'} srcId={self.src_id or '-'}"
        )


def _comment_trailer(tag: str, marker: str) -> Optional[str]:
    idx = tag.find(marker)
    if idx < 0:
        return None
    rest = tag[idx + len(marker) :]
    cut = rest.rfind("--")
    if cut >= 0:
        rest = rest[:cut]
    return rest.strip()


def read_page_info(tok: Tokenizer) -> Optional[PageInfo]:
    """Scan the whole document for its page name, page id and source id.

    Leaves the tokenizer rewound. Returns None when none of the three is found.
    """
    tok.reset()
    name = page_id = src_id = title = None
    while name is None or page_id is None or src_id is None:
        tag = tok.next_tag()
        if tag is None:
            break
        if tag.startswith("!--"):
            # each comment fills at most one field
            if name is None and PAGE_NAME in tag:
                idx = tag.find(PAGE_NAME)
                name = tag[idx + len(PAGE_NAME) :].split('"', 1)[0]
            elif page_id is None and PAGE_ID in tag:
                page_id = _comment_trailer(tag, PAGE_ID)
            elif src_id is None and SRC_ID in tag:
                src_id = _comment_trailer(tag, SRC_ID)
        elif title is None and tag_name(tag) == "title":
            title = tok.next_text()
    tok.reset()

    if name is None:
        name = title
    if name is None and page_id is None and src_id is None:
        return None
    return PageInfo(name, page_id, src_id)

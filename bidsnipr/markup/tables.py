"""
Table/row/cell grouping on top of :class:`~bidsnipr.markup.tokenizer.Tokenizer`.

Only depth-1 boundaries count: a table nested inside a cell is carried along
in that cell's raw markup.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, Optional, Union

from bidsnipr.markup.tokenizer import Tokenizer, tag_name, text_runs


class TableMark(Enum):
    ROW_END = "row-end"
    TABLE_END = "table-end"


@dataclass
class Cell:
    raw: str
    runs: list[str] = field(default_factory=list)

    def __post_init__(self):
        if not self.runs:
            self.runs = text_runs(self.raw)

    @property
    def text(self) -> str:
        """First text run, the part callers usually compare against."""
        return self.runs[0] if self.runs else ""

    def run(self, n: int) -> str:
        return self.runs[n] if n < len(self.runs) else ""


def table_start(tok: Tokenizer) -> Optional[str]:
    """Advance past the next ``<table ...>`` tag and return its content."""
    while True:
        tag = tok.next_tag()
        if tag is None:
            return None
        if tag_name(tag) == "table":
            return tag


class TableReader:
    """Reads cells and rows of the table whose opening tag was just consumed."""

    def __init__(self, tok: Tokenizer):
        self.tok = tok
        self.nesting = 1
        self.done = False

    def next_cell(self) -> Union[Cell, TableMark]:
        tok = self.tok
        start: Optional[int] = None
        while True:
            tag_pos = tok.text.find("<", tok.pos)
            tag = tok.next_tag()
            if tag is None:
                self.done = True
                if start is not None:
                    return Cell(tok.text[start:])
                return TableMark.TABLE_END
            name = tag_name(tag)
            if name == "table":
                self.nesting += 1
                continue
            if name == "/table":
                self.nesting -= 1
                if self.nesting == 0:
                    self.done = True
                    return TableMark.TABLE_END
                continue
            if self.nesting > 1:
                continue

            if name in ("td", "th"):
                if start is None:
                    start = tok.pos
                    continue
                # unclosed cell: hand it out and re-read this tag next time
                tok.seek(tag_pos)
                return Cell(tok.text[start:tag_pos])
            if name in ("/td", "/th") and start is not None:
                return Cell(tok.text[start:tag_pos])
            if name == "/tr":
                return TableMark.ROW_END

    def next_row(self) -> Optional[list[Cell]]:
        """Cells of the next row, or None once the table is exhausted."""
        if self.done:
            return None
        cells: list[Cell] = []
        while True:
            item = self.next_cell()
            if item is TableMark.ROW_END:
                return cells
            if item is TableMark.TABLE_END:
                return cells or None
            cells.append(item)

    def rows(self) -> Iterator[list[Cell]]:
        while True:
            row = self.next_row()
            if row is None:
                return
            yield row

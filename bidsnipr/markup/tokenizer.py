"""
Minimal markup tokenizer for auction pages.

The pages we read are not reliably well formed, so rather than building a
tree this walks the document with a cursor and hands out two kinds of token:

  • tags   - raw inner content of ``<...>`` (name and attributes, unnormalized);
             comments come back as ``!--...`` with blank runs collapsed
  • texts  - runs of content between tags, entities decoded, whitespace
             collapsed to single spaces and trimmed

An unterminated tag ends the stream instead of raising.
"""

from __future__ import annotations

from typing import Iterator, Optional, Union

# ASCII whitespace plus the non-breaking and thin spaces the site sprinkles in.
SOFT_SPACES = frozenset(" \t\n\r\v\f\xa0\u2002\u2009\u202f")

_ENTITIES = {
    "amp": "&",
    "lt": "<",
    "gt": ">",
    "quot": '"',
    "apos": "'",
    "nbsp": " ",
}


def decode_document(data: Union[bytes, str]) -> str:
    if isinstance(data, str):
        return data
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return data.decode("latin-1")


def tag_name(tag: str) -> str:
    """Lower-cased element name of a raw tag (``"/TD"`` -> ``"/td"``)."""
    return tag.split(" ", 1)[0].lower()


class Tokenizer:
    """Cursor over one decoded document."""

    def __init__(self, source: Union[bytes, str]):
        self.text = decode_document(source)
        self.pos = 0

    # ---- cursor ----------------------------------------------------------

    def reset(self) -> None:
        self.pos = 0

    def tell(self) -> int:
        return self.pos

    def seek(self, pos: int) -> None:
        self.pos = max(0, min(pos, len(self.text)))

    def at_end(self) -> bool:
        return self.pos >= len(self.text)

    def find(self, marker: str) -> bool:
        """Move to the start of the next ``marker``; stay put if absent."""
        idx = self.text.find(marker, self.pos)
        if idx < 0:
            return False
        self.pos = idx
        return True

    def find_any(self, *markers: str) -> bool:
        """Try each marker in priority order from the current position."""
        return any(self.find(m) for m in markers)

    def skip_past(self, char: str) -> bool:
        idx = self.text.find(char, self.pos)
        if idx < 0:
            return False
        self.pos = idx + 1
        return True

    # ---- tokens ----------------------------------------------------------

    def next_tag(self) -> Optional[str]:
        """Inner content of the next tag, or None at end of document."""
        text, n = self.text, len(self.text)
        start = text.find("<", self.pos)
        if start < 0:
            self.pos = n
            return None
        i = start + 1
        if text.startswith("!--", i):
            return self._read_comment(i + 3)

        buf: list[str] = []
        in_quote = False
        while i < n:
            c = text[i]
            i += 1
            if c == "\\" and i < n:
                buf.append(c)
                buf.append(text[i])
                i += 1
            elif c == '"':
                in_quote = not in_quote
                buf.append(c)
            elif c == ">" and not in_quote:
                self.pos = i
                return "".join(buf).rstrip()
            elif c in SOFT_SPACES and not in_quote:
                if buf and buf[-1] != " ":
                    buf.append(" ")
            else:
                buf.append(c)
        self.pos = n
        return "".join(buf).rstrip()

    def _read_comment(self, i: int) -> str:
        text, n = self.text, len(self.text)
        buf = ["!", "-", "-"]
        while i < n:
            c = text[i]
            i += 1
            if c == ">" and buf[-1] == "-" and buf[-2] == "-":
                self.pos = i
                return "".join(buf)
            if c in SOFT_SPACES:
                if buf[-1] == " ":
                    continue
                c = " "
            buf.append(c)
        self.pos = n
        return "".join(buf)

    def next_text(self) -> Optional[str]:
        """Next non-empty text run, skipping any tags in between."""
        text, n = self.text, len(self.text)
        i = self.pos
        while i < n:
            buf: list[str] = []
            while i < n and text[i] != "<":
                c = text[i]
                if c == "&":
                    c, i = self._entity(i)
                else:
                    i += 1
                if c in SOFT_SPACES:
                    if buf and buf[-1] != " ":
                        buf.append(" ")
                else:
                    buf.append(c)
            run = "".join(buf).rstrip()
            if run:
                self.pos = i
                return run
            if i >= n:
                break
            self.pos = i
            self.next_tag()
            i = self.pos
        self.pos = n
        return None

    def texts(self) -> Iterator[str]:
        return iter(self.next_text, None)

    def _entity(self, i: int) -> tuple[str, int]:
        end = self.text.find(";", i + 1, i + 12)
        if end < 0:
            return "&", i + 1
        name = self.text[i + 1 : end]
        if name.startswith("#"):
            try:
                if name[1:2] in ("x", "X"):
                    code = int(name[2:], 16)
                else:
                    code = int(name[1:])
                return chr(code), end + 1
            except (ValueError, OverflowError):
                return "&", i + 1
        if name in _ENTITIES:
            return _ENTITIES[name], end + 1
        return "&", i + 1


# ---- helpers over a markup fragment --------------------------------------


def text_runs(markup: Union[bytes, str]) -> list[str]:
    return list(Tokenizer(markup).texts())


def nth_text(markup: Union[bytes, str], n: int) -> str:
    """``n``-th (zero-based) text run of a fragment, or an empty string."""
    runs = text_runs(markup)
    return runs[n] if n < len(runs) else ""


def leading_int(text: Optional[str]) -> int:
    """Integer value of the leading digits of ``text`` (0 when there are none)."""
    if not text:
        return 0
    text = text.strip()
    end = 0
    while end < len(text) and text[end].isdigit():
        end += 1
    return int(text[:end]) if end else 0

"""Diagnostic capture for pages the parsers could not make sense of.

Each capture logs a warning and, when a directory is configured, writes the
page as ``bidsnipr.<pid>.<n>.bug.html`` next to a JSON sidecar holding the
page identity and the auction record at that moment.
"""
import json
import logging
import os
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Optional, Union

from bidsnipr.markup.pageinfo import read_page_info
from bidsnipr.markup.tokenizer import Tokenizer

log = logging.getLogger("bidsnipr.diagnostics")


@dataclass
class BugReport:
    where: str
    reason: str
    auction_id: str = ""
    page_name: str = ""
    page_id: str = ""
    src_id: str = ""
    record: dict[str, Any] = field(default_factory=dict)
    page_path: str = ""
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return asdict(self)


class BugReporter:
    def __init__(self, directory: Optional[Union[str, Path]] = None, prefix: str = "bidsnipr"):
        self.directory = Path(directory) if directory else None
        self.prefix = prefix
        self.reports: list[BugReport] = []
        self._count = 0

    def capture(
        self,
        where: str,
        reason: str,
        record=None,
        content: Optional[Union[bytes, str]] = None,
    ) -> BugReport:
        """Best-effort capture of a surprising page. Never raises."""
        report = BugReport(where=where, reason=reason)
        if record is not None:
            report.auction_id = record.auction_id
            report.record = record.as_dict()
        if content is not None:
            info = read_page_info(Tokenizer(content))
            if info is not None:
                report.page_name = info.page_name or ""
                report.page_id = info.page_id or ""
                report.src_id = info.src_id or ""

        log.warning(
            "%s: %s (auction %s, pageName=%s)",
            where,
            reason,
            report.auction_id or "-",
            report.page_name or "-",
        )
        self.reports.append(report)
        if self.directory is not None:
            self._save(report, content)
        return report

    def _save(self, report: BugReport, content) -> None:
        self._count += 1
        stem = f"{self.prefix}.{os.getpid()}.{self._count}.bug"
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            if content is not None:
                page_path = self.directory / f"{stem}.html"
                data = content.encode("utf-8") if isinstance(content, str) else content
                page_path.write_bytes(data)
                report.page_path = str(page_path)
            with open(self.directory / f"{stem}.json", "w", encoding="utf-8") as f:
                json.dump(report.to_dict(), f, ensure_ascii=False, indent=2, default=str)
        except OSError as e:
            log.warning("Failed to save bug report %s: %s", stem, e)

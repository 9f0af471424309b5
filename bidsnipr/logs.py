import logging
import os
from contextlib import contextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Iterator, Optional

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s -- %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(
    debug: bool = False, log_dir: Optional[Path] = None, filename: str = "bidsnipr.log"
) -> RotatingFileHandler:
    """Console plus rotating file logging, set once per process."""
    level = logging.DEBUG if debug or os.getenv("BIDSNIPR_DEBUG", "0") == "1" else logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=DATE_FORMAT)

    directory = Path(log_dir) if log_dir else Path(".")
    directory.mkdir(parents=True, exist_ok=True)
    file_handler = RotatingFileHandler(
        directory / filename, maxBytes=10 * 1024 * 1024, backupCount=5, encoding="utf-8"
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))

    root = logging.getLogger()
    root.setLevel(level)
    root.addHandler(file_handler)
    return file_handler


@contextmanager
def auction_log(
    auction_id: str, log_dir: Optional[Path] = None, enabled: bool = True
) -> Iterator[Optional[logging.Handler]]:
    """Mirror everything logged during one auction's turn to its own file."""
    if not enabled:
        yield None
        return
    directory = Path(log_dir) if log_dir else Path(".")
    directory.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(directory / f"bidsnipr.{auction_id}.log", encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    logger = logging.getLogger("bidsnipr")
    logger.addHandler(handler)
    try:
        yield handler
    finally:
        logger.removeHandler(handler)
        handler.close()

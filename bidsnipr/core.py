from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Page:
    content: bytes
    url: str
    # seconds since the epoch when the first byte arrived, if measured
    time_to_first_byte: Optional[float] = None


class TransportError(RuntimeError):
    """Raised when a page cannot be fetched at all."""

    def __init__(self, url: str, reason: str, unavailable: bool = False):
        self.url = url
        self.reason = reason
        self.unavailable = unavailable
        super().__init__(f"{url}: {reason}")


class Transport(ABC):
    """A pluggable page fetcher."""

    @abstractmethod
    def fetch(self, url: str, log_url: Optional[str] = None) -> Page: ...

    # Optional: drop cookies before a fresh sign-in
    def reset(self) -> None: ...

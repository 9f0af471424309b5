from dataclasses import dataclass
from typing import Optional

DEFAULT_LOGIN_INTERVAL = 12 * 60 * 60


@dataclass
class LoginSession:
    """When we last signed in successfully; ``0`` means never."""

    interval: int = DEFAULT_LOGIN_INTERVAL
    last_login: float = 0.0

    def is_fresh(self, now: float, interval: Optional[int] = None) -> bool:
        if interval is None:
            interval = self.interval
        return self.last_login > 0 and now - self.last_login < interval

    def mark(self, now: float) -> None:
        self.last_login = now

    def reset(self) -> None:
        self.last_login = 0.0

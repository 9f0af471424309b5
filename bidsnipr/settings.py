import logging
import os
import random
import tomllib
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field, SecretStr, field_validator

from bidsnipr.session import DEFAULT_LOGIN_INTERVAL

log = logging.getLogger("bidsnipr")

MIN_BID_TIME = 5

_UA_POOL = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 13_5) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Safari/605.1.15",
]

_BOOL_WORDS = {
    "0": False,
    "1": True,
    "n": False,
    "y": True,
    "no": False,
    "yes": True,
    "off": False,
    "on": True,
    "false": False,
    "true": True,
    "disabled": False,
    "enabled": True,
}


class HostsCfg(BaseModel):
    history: str = "offer.ebay.com"
    prebid: str = "offer.ebay.com"
    bid: str = "offer.ebay.com"
    login: str = "signin.ebay.com"
    my_ebay: str = "my.ebay.com"


class NetworkCfg(BaseModel):
    rotate_user_agents: bool = True
    proxy: Optional[str] = None
    timeout: float = 30.0


class Settings(BaseModel):
    username: str = ""
    password: SecretStr = SecretStr("")
    bid_time: int = 10
    quantity: int = Field(default=1, gt=0)
    bid: bool = True
    reduce: bool = True
    debug: bool = False
    batch: bool = False
    log_dir: Optional[Path] = None
    diagnostics_dir: Optional[Path] = None
    delay: int = Field(default=2, ge=0)
    login_interval: int = DEFAULT_LOGIN_INTERVAL
    history_db: str = "sqlite:///bidsnipr.sqlite"
    hosts: HostsCfg = HostsCfg()
    network: NetworkCfg = NetworkCfg()

    @field_validator("username")
    @classmethod
    def _lower_username(cls, v: str) -> str:
        return v.lower()

    @field_validator("bid_time", mode="before")
    @classmethod
    def _bid_time(cls, v: Any) -> int:
        if isinstance(v, str):
            v = v.strip().lower()
            if v == "now":
                return 0
        v = int(v)
        if v < 0:
            raise ValueError("bid time must not be negative")
        if 0 < v < MIN_BID_TIME:
            log.warning("Bid time %d too small, using %d seconds", v, MIN_BID_TIME)
            return MIN_BID_TIME
        return v

    @field_validator("bid", "reduce", "debug", "batch", mode="before")
    @classmethod
    def _bool_word(cls, v: Any) -> Any:
        # "name" without a value means enabled
        if v is None:
            return True
        if isinstance(v, str):
            word = v.strip().lower()
            if word not in _BOOL_WORDS:
                raise ValueError(f"invalid boolean value {v!r}")
            return _BOOL_WORDS[word]
        return v

    # ---- helpers -----------------------------------------------------

    def request_headers(self) -> dict[str, str]:
        ua = random.choice(_UA_POOL) if self.network.rotate_user_agents else _UA_POOL[0]
        return {
            "User-Agent": ua,
            "Accept": "text/*",
            "Accept-Language": "en",
            "Accept-Charset": "iso-8859-1,*,utf-8",
            "Cache-Control": "no-cache",
        }

    @property
    def now(self) -> bool:
        return self.bid_time == 0


def load_settings(path: Optional[Path] = None) -> Settings:
    cfg_path = Path(path or os.getenv("BIDSNIPR_CONFIG", "bidsnipr.toml"))
    raw = tomllib.loads(cfg_path.read_text()) if cfg_path.exists() else {}
    return Settings.model_validate(raw)


# ---- key = value overrides (auction files, command line) ----------------

_ALIASES = {
    "seconds": "bid_time",
    "bidtime": "bid_time",
    "bid_time": "bid_time",
    "logdir": "log_dir",
    "log_dir": "log_dir",
    "historyhost": "hosts.history",
    "prebidhost": "hosts.prebid",
    "bidhost": "hosts.bid",
    "loginhost": "hosts.login",
    "myebayhost": "hosts.my_ebay",
    "proxy": "network.proxy",
    "username": "username",
    "password": "password",
    "quantity": "quantity",
    "bid": "bid",
    "reduce": "reduce",
    "debug": "debug",
    "batch": "batch",
    "delay": "delay",
}


def parse_config_lines(text: str) -> dict[str, Optional[str]]:
    """``name = value`` lines; only lines starting with a letter are considered."""
    entries: dict[str, Optional[str]] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or not line[0].isalpha():
            continue
        name, sep, value = line.partition("=")
        entries[name.strip()] = value.strip() if sep else None
    return entries


def apply_overrides(settings: Settings, overrides: dict[str, Any]) -> Settings:
    """Return a new Settings with ``overrides`` applied and re-validated."""
    data = settings.model_dump()
    data["password"] = settings.password.get_secret_value()
    for key, value in overrides.items():
        target = _ALIASES.get(key.lower())
        if target is None:
            log.warning("Unknown configuration option %s ignored", key)
            continue
        section, _, name = target.rpartition(".")
        (data[section] if section else data)[name] = value
    return Settings.model_validate(data)

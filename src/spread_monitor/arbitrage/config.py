from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Mapping, Optional, Union

from dotenv import load_dotenv

from .markets import UnknownMarketError, resolve_market
from ..symbols import split_symbol

DEFAULT_SPREAD_THRESHOLD = 0.005
DEFAULT_TELEGRAM_API_URL = "https://api.telegram.org"
DEFAULT_NATS_URL = "nats://127.0.0.1:4222"


class ConfigError(ValueError):
    """Startup configuration is missing or invalid."""


class FeedTransport(str, Enum):
    CCXT = "ccxt"
    NATS = "nats"


@dataclass(frozen=True)
class MonitorConfig:
    """
    Configuration for the spread monitor, loaded once at startup.

    - symbol: unified pair, e.g. "BTC/USDT"
    - primary_market / secondary_market: registry ids, e.g. "binance", "bybit"
    - spread_threshold: ratio, 0.005 = 0.5%; alerts fire when spread > threshold
    - notification_token / notification_recipient: Telegram bot token and chat id
    - feed_transport: ccxt (exchange websockets) or nats (published snapshots)
    - alert_cooldown_sec: suppress repeat alerts per direction; 0 alerts every cycle
    - feed_timeout_sec: per-cycle deadline for both feeds; None waits forever
    """

    symbol: str
    primary_market: str
    secondary_market: str
    notification_token: str
    notification_recipient: str

    spread_threshold: float = DEFAULT_SPREAD_THRESHOLD
    notification_api_url: str = DEFAULT_TELEGRAM_API_URL

    feed_transport: FeedTransport = FeedTransport.CCXT
    nats_url: str = DEFAULT_NATS_URL

    alert_cooldown_sec: float = 0.0
    feed_timeout_sec: Optional[float] = None
    notify_timeout_sec: float = 10.0

    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if not self.symbol:
            raise ConfigError("SYMBOL is required")
        try:
            split_symbol(self.symbol)
        except ValueError as exc:
            raise ConfigError(f"SYMBOL {self.symbol!r} has no recognisable base/quote") from exc
        for label, market_id in (
            ("PRIMARY_EXCHANGE", self.primary_market),
            ("SECONDARY_EXCHANGE", self.secondary_market),
        ):
            if not market_id:
                raise ConfigError(f"{label} is required")
            try:
                resolve_market(market_id)
            except UnknownMarketError as exc:
                raise ConfigError(f"{label}: {exc}") from exc
        if self.primary_market.lower() == self.secondary_market.lower():
            raise ConfigError("PRIMARY_EXCHANGE and SECONDARY_EXCHANGE must differ")

        if not self.notification_token:
            raise ConfigError("TELEGRAM_BOT_TOKEN is required")
        if not self.notification_recipient:
            raise ConfigError("TELEGRAM_CHAT_ID is required")

        if not math.isfinite(self.spread_threshold) or self.spread_threshold < 0:
            raise ConfigError(f"SPREAD_THRESHOLD must be >= 0, got {self.spread_threshold}")
        if self.alert_cooldown_sec < 0:
            raise ConfigError(f"ALERT_COOLDOWN_SEC must be >= 0, got {self.alert_cooldown_sec}")
        if self.feed_timeout_sec is not None and self.feed_timeout_sec <= 0:
            raise ConfigError(f"FEED_TIMEOUT_SEC must be > 0, got {self.feed_timeout_sec}")
        if self.notify_timeout_sec <= 0:
            raise ConfigError(f"NOTIFY_TIMEOUT_SEC must be > 0, got {self.notify_timeout_sec}")
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ConfigError(f"LOG_LEVEL {self.log_level!r} is not a logging level")

    @property
    def log_level_value(self) -> int:
        return logging.getLevelName(self.log_level.upper())


def _get(env: Mapping[str, str], name: str, default: str = "") -> str:
    return (env.get(name) or default).strip()


def _float(env: Mapping[str, str], name: str, default: Optional[float]) -> Optional[float]:
    raw = _get(env, name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc


def _transport(env: Mapping[str, str]) -> FeedTransport:
    raw = _get(env, "FEED_TRANSPORT", FeedTransport.CCXT.value).lower()
    try:
        return FeedTransport(raw)
    except ValueError as exc:
        choices = ",".join(t.value for t in FeedTransport)
        raise ConfigError(f"FEED_TRANSPORT must be one of {choices}, got {raw!r}") from exc


def load_config_from_env(
    environ: Optional[Mapping[str, str]] = None,
    dotenv_path: Optional[Union[str, Path]] = None,
) -> MonitorConfig:
    """
    Build MonitorConfig from environment variables.

    When `environ` is None, a .env file is loaded first (existing variables win)
    and os.environ is read.
    """
    if environ is None:
        load_dotenv(dotenv_path=dotenv_path, override=False)
        environ = os.environ

    return MonitorConfig(
        symbol=_get(environ, "SYMBOL"),
        primary_market=_get(environ, "PRIMARY_EXCHANGE").lower(),
        secondary_market=_get(environ, "SECONDARY_EXCHANGE").lower(),
        notification_token=_get(environ, "TELEGRAM_BOT_TOKEN"),
        notification_recipient=_get(environ, "TELEGRAM_CHAT_ID"),
        spread_threshold=_float(environ, "SPREAD_THRESHOLD", DEFAULT_SPREAD_THRESHOLD),
        notification_api_url=_get(environ, "TELEGRAM_API_URL", DEFAULT_TELEGRAM_API_URL),
        feed_transport=_transport(environ),
        nats_url=_get(environ, "NATS_URL", DEFAULT_NATS_URL),
        alert_cooldown_sec=_float(environ, "ALERT_COOLDOWN_SEC", 0.0),
        feed_timeout_sec=_float(environ, "FEED_TIMEOUT_SEC", None),
        notify_timeout_sec=_float(environ, "NOTIFY_TIMEOUT_SEC", 10.0),
        log_level=_get(environ, "LOG_LEVEL", "INFO"),
    )

import logging
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from spread_monitor.arbitrage.config import (
    ConfigError,
    FeedTransport,
    MonitorConfig,
    load_config_from_env,
)


def base_env(**overrides):
    env = {
        "SYMBOL": "BTC/USDT",
        "PRIMARY_EXCHANGE": "binance",
        "SECONDARY_EXCHANGE": "bybit",
        "TELEGRAM_BOT_TOKEN": "123:abc",
        "TELEGRAM_CHAT_ID": "42",
    }
    env.update(overrides)
    return {k: v for k, v in env.items() if v is not None}


def test_defaults() -> None:
    cfg = load_config_from_env(environ=base_env())

    assert cfg.symbol == "BTC/USDT"
    assert cfg.primary_market == "binance"
    assert cfg.secondary_market == "bybit"
    assert cfg.spread_threshold == 0.005
    assert cfg.feed_transport is FeedTransport.CCXT
    assert cfg.alert_cooldown_sec == 0.0
    assert cfg.feed_timeout_sec is None
    assert cfg.notification_api_url == "https://api.telegram.org"
    assert cfg.log_level_value == logging.INFO


def test_overrides_are_parsed() -> None:
    cfg = load_config_from_env(
        environ=base_env(
            PRIMARY_EXCHANGE=" Bitget ",
            SPREAD_THRESHOLD="0.01",
            FEED_TRANSPORT="NATS",
            NATS_URL="nats://md:4222",
            ALERT_COOLDOWN_SEC="30",
            FEED_TIMEOUT_SEC="5",
            LOG_LEVEL="debug",
        )
    )

    assert cfg.primary_market == "bitget"
    assert cfg.spread_threshold == 0.01
    assert cfg.feed_transport is FeedTransport.NATS
    assert cfg.nats_url == "nats://md:4222"
    assert cfg.alert_cooldown_sec == 30.0
    assert cfg.feed_timeout_sec == 5.0
    assert cfg.log_level_value == logging.DEBUG


def test_explicit_zero_threshold_is_kept() -> None:
    cfg = load_config_from_env(environ=base_env(SPREAD_THRESHOLD="0"))

    assert cfg.spread_threshold == 0.0


def test_empty_threshold_falls_back_to_default() -> None:
    cfg = load_config_from_env(environ=base_env(SPREAD_THRESHOLD=""))

    assert cfg.spread_threshold == 0.005


@pytest.mark.parametrize(
    "overrides",
    [
        {"SYMBOL": None},
        {"SYMBOL": "NOTAPAIR"},
        {"PRIMARY_EXCHANGE": None},
        {"SECONDARY_EXCHANGE": "kraken"},
        {"SECONDARY_EXCHANGE": "bitmex"},
        {"SECONDARY_EXCHANGE": "BINANCE"},
        {"TELEGRAM_BOT_TOKEN": None},
        {"TELEGRAM_CHAT_ID": ""},
        {"SPREAD_THRESHOLD": "abc"},
        {"SPREAD_THRESHOLD": "-0.1"},
        {"SPREAD_THRESHOLD": "nan"},
        {"FEED_TRANSPORT": "http"},
        {"ALERT_COOLDOWN_SEC": "-1"},
        {"FEED_TIMEOUT_SEC": "0"},
        {"LOG_LEVEL": "LOUD"},
    ],
)
def test_invalid_configuration_is_fatal(overrides) -> None:
    with pytest.raises(ConfigError):
        load_config_from_env(environ=base_env(**overrides))


def test_symbol_without_slash_is_accepted() -> None:
    cfg = MonitorConfig(
        symbol="ETHUSDT",
        primary_market="mexc",
        secondary_market="bitfinex",
        notification_token="t",
        notification_recipient="c",
    )

    assert cfg.symbol == "ETHUSDT"


def test_config_error_is_value_error() -> None:
    assert issubclass(ConfigError, ValueError)

import asyncio
from datetime import datetime, timezone

import pytest

from confluence_signal_bot.config import AlertsConfig
from confluence_signal_bot.errors import DataUnavailable
from confluence_signal_bot.formatters import format_signal, format_status
from confluence_signal_bot.models import BUY, MEDIUM, Signal
from confluence_signal_bot.notifier.telegram import TelegramNotifier
from confluence_signal_bot.notifier.webhook import WebhookNotifier, signal_payload
from confluence_signal_bot.providers.base import ensure_filled, parse_interval
from confluence_signal_bot.providers.binance import binance_interval, binance_symbol, parse_klines
from confluence_signal_bot.providers.twelvedata import TwelveDataProvider, parse_values, twelvedata_interval, twelvedata_symbol

TS = datetime(2024, 1, 3, 9, 0, tzinfo=timezone.utc)


def _signal() -> Signal:
    return Signal(
        symbol="EUR/USD",
        direction=BUY,
        timestamp=TS,
        entry_price=1.2,
        stop_loss=1.196,
        take_profit=1.208,
        confidence_percent=60.0,
        confidence_tier=MEDIUM,
        reasons=("RSI oversold", "Price below lower Bollinger band"),
        profile="classic",
        interval="15min",
        candle_time=TS,
        conditions_met=2,
        conditions_total=5,
        stop_pct=0.33,
        target_pct=0.67,
        target_pips=80.0,
    ).with_id()


def test_interval_spellings():
    assert parse_interval("15min") == (15, "m")
    assert parse_interval("15m") == (15, "m")
    assert parse_interval("1day") == (1, "d")
    assert binance_interval("15min") == "15m"
    assert binance_interval("4h") == "4h"
    assert twelvedata_interval("15m") == "15min"
    assert twelvedata_interval("1d") == "1day"
    with pytest.raises(ValueError):
        parse_interval("fortnightly")


def test_symbol_mapping():
    assert binance_symbol("BTC/USDT") == "BTCUSDT"
    assert binance_symbol("eth-usdt") == "ETHUSDT"
    assert twelvedata_symbol("EUR/USD:FX") == "EUR/USD"


def test_binance_rows_become_an_oldest_first_series():
    rows = [
        [1704272400000, "1.0", "1.5", "0.5", "1.2", "10", 1704273299999],
        [1704273300000, "1.2", "1.6", "1.1", "1.4", "12", 1704274199999],
    ]
    s = parse_klines("BTC/USDT", "15m", rows)
    assert s.closes == [1.2, 1.4]
    assert s.last.timestamp == datetime(2024, 1, 3, 9, 15, tzinfo=timezone.utc)
    assert s.volumes == [10.0, 12.0]


def test_twelvedata_newest_first_payload_is_reversed():
    values = [
        {"datetime": "2024-01-03 09:30:00", "open": "1.3", "high": "1.4", "low": "1.2", "close": "1.35"},
        {"datetime": "2024-01-03 09:15:00", "open": "1.2", "high": "1.3", "low": "1.1", "close": "1.3"},
        {"datetime": "2024-01-03 09:00:00", "open": "1.1", "high": "1.2", "low": "1.0", "close": "1.2", "volume": "5"},
    ]
    s = parse_values("EUR/USD", "15min", values)
    assert s.closes == [1.2, 1.3, 1.35]
    assert s.volumes == [5.0, 0.0, 0.0]
    assert s.last.timestamp == datetime(2024, 1, 3, 9, 30, tzinfo=timezone.utc)


def test_short_payload_is_data_unavailable():
    rows = [[1704272400000 + i * 900000, "1", "1", "1", "1", "1"] for i in range(70)]
    s = parse_klines("BTC/USDT", "15m", rows)
    assert ensure_filled(s, 80, 0.8) is s
    with pytest.raises(DataUnavailable):
        ensure_filled(s, 100, 0.8)


def test_twelvedata_without_key_fails_closed():
    provider = TwelveDataProvider("")
    with pytest.raises(DataUnavailable):
        asyncio.run(provider.fetch_candles("EUR/USD", "15min", 500))


def test_html_message_is_escaped():
    sig = _signal()
    msg = format_signal(sig, AlertsConfig(footer="<not advice>"))
    assert "<b>EUR/USD</b>" in msg
    assert "Entry: 1.2" in msg
    assert "SL: 1.196 | TP: 1.208" in msg
    assert "- RSI oversold" in msg
    assert "&lt;not advice&gt;" in msg
    assert sig.signal_id not in msg

    internal = format_signal(sig, AlertsConfig(), detail_level="internal")
    assert sig.signal_id in internal


def test_markdown_message_escapes_specials():
    msg = format_signal(_signal(), AlertsConfig(parse_mode="MarkdownV2"))
    assert "*EUR/USD*" in msg
    assert "Entry: 1\\.2" in msg
    assert format_status("EUR/USD", "no_data", "x.y", AlertsConfig(parse_mode="MarkdownV2")).endswith("no\\_data: x\\.y")


def test_webhook_payload():
    sig = _signal()
    payload = signal_payload(sig, secret="s3")
    assert payload["symbol"] == "EUR/USD"
    assert payload["direction"] == BUY
    assert payload["stop_loss"] == 1.196
    assert payload["timestamp_ms"] == int(TS.timestamp() * 1000)
    assert payload["reasons"] == ["RSI oversold", "Price below lower Bollinger band"]
    assert payload["secret"] == "s3"
    assert "secret" not in signal_payload(sig)


def test_disabled_notifiers_do_nothing():
    tg = TelegramNotifier("", ["1"])
    assert not tg.enabled()
    assert asyncio.run(tg.send("hi")) == 0
    wh = WebhookNotifier(enabled=False, url="https://example.invalid", secret="", timeout_s=1, headers={})
    assert asyncio.run(wh.send_signal(_signal())) is False

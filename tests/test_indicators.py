import math
from datetime import datetime, timedelta, timezone

import pytest

from confluence_signal_bot.indicators import (
    RSI_NEUTRAL,
    adx,
    atr,
    bollinger_bands,
    ema,
    ema_series,
    macd,
    nearest_levels,
    percent_b,
    price_range,
    rsi,
    sma,
    support_resistance_levels,
    volume_ratio,
)
from confluence_signal_bot.models import Candle, CandleSeries

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _c(idx: int, o: float, h: float, l: float, c: float, v: float = 1.0) -> Candle:
    return Candle(T0 + timedelta(minutes=15 * idx), o, h, l, c, v)


def _wave(n: int, amp: float = 5.0, period: int = 17, base: float = 100.0):
    return [base + amp * math.sin(2 * math.pi * i / period) + 0.05 * i for i in range(n)]


@pytest.mark.parametrize("period", [1, 5, 20, 50])
def test_short_input_is_insufficient_not_an_error(period):
    values = [1.0] * (period - 1)
    assert sma(values, period) is None
    assert ema(values, period) is None
    assert ema_series(values, period) == []
    assert bollinger_bands(values, period) is None


def test_non_positive_period_is_insufficient():
    assert sma([1.0, 2.0], 0) is None
    assert ema([1.0, 2.0], -3) is None


def test_sma_and_ema_use_the_newest_values():
    values = [1.0, 2.0, 3.0, 4.0, 5.0]
    assert sma(values, 2) == 4.5
    # seed is the mean of the oldest three, then two steps with alpha 0.5
    assert ema_series(values, 3) == [2.0, 3.0, 4.0]
    assert ema(values, 3) == 4.0


def test_rsi_stays_within_bounds():
    for amp in (0.5, 3.0, 40.0):
        closes = _wave(120, amp=amp)
        for end in range(10, len(closes)):
            for wilder in (False, True):
                v = rsi(closes[:end], 14, wilder=wilder)
                assert 0.0 <= v <= 100.0


def test_rsi_is_100_only_when_there_are_no_losses():
    rising = [float(i) for i in range(30)]
    assert rsi(rising, 14) == 100.0
    assert rsi(rising, 14, wilder=True) == 100.0

    with_one_loss = rising[:-1] + [rising[-2] - 0.5]
    assert rsi(with_one_loss, 14) < 100.0


def test_rsi_defaults_to_neutral_when_short_or_flat():
    assert rsi([1.0, 2.0, 3.0], 14) == RSI_NEUTRAL
    assert rsi([100.0] * 50, 14) == RSI_NEUTRAL
    assert rsi([100.0] * 50, 14, wilder=True) == RSI_NEUTRAL


def test_bollinger_ordering_and_flat_collapse():
    for end in range(20, 120):
        b = bollinger_bands(_wave(120)[:end], 20, 2.0)
        assert b.upper >= b.middle >= b.lower

    flat = bollinger_bands([100.0] * 30, 20, 2.0)
    assert flat.upper == flat.middle == flat.lower == 100.0
    assert percent_b(100.0, flat) is None


def test_macd_needs_slow_plus_signal_bars():
    assert macd([1.0] * 33, 12, 26, 9) is None
    assert macd([1.0] * 60, 26, 12, 9) is None
    m = macd([1.0] * 34, 12, 26, 9)
    assert m.macd == 0.0 and m.signal == 0.0 and m.histogram == 0.0


def test_macd_histogram_sign_follows_the_trend_turn():
    closes = [200.0 - i for i in range(80)] + [120.0 + 0.8 * i for i in range(15)]
    m = macd(closes)
    assert m.macd > m.signal
    assert m.histogram > 0


def test_atr_of_constant_range_bars():
    closes = [100.0] * 30
    highs = [101.0] * 30
    lows = [99.0] * 30
    assert atr(highs, lows, closes, 14) == pytest.approx(2.0)
    assert atr(highs[:14], lows[:14], closes[:14], 14) is None


def test_adx_reports_a_clean_uptrend():
    closes = [float(i) for i in range(60)]
    highs = [c + 0.5 for c in closes]
    lows = [c - 0.5 for c in closes]
    d = adx(highs, lows, closes, 14)
    assert d.adx > 99.0
    assert d.plus_di > d.minus_di == 0.0
    assert adx(highs[:28], lows[:28], closes[:28], 14) is None


def test_adx_survives_zero_range_bars():
    flat = [100.0] * 40
    d = adx(flat, flat, flat, 14)
    assert d.adx == 0.0 and d.plus_di == 0.0 and d.minus_di == 0.0


def test_price_range_uses_the_last_bars_only():
    highs = [10.0, 50.0, 12.0, 13.0]
    lows = [9.0, 1.0, 11.0, 10.0]
    assert price_range(highs, lows, 2) == 3.0
    assert price_range(highs, lows, 5) is None


def test_support_and_resistance_clusters():
    closes = [5.0, 4.0, 3.0, 4.0, 5.0, 4.0, 3.0, 4.0, 5.0]
    levels = support_resistance_levels(closes, window=2, tolerance=0.002, top_k=5)
    assert [(lv.kind, lv.price, lv.strength) for lv in levels] == [("support", 3.0, 2), ("resistance", 5.0, 1)]
    assert nearest_levels(levels, 4.0) == (3.0, 5.0)
    assert nearest_levels(levels, 2.0) == (None, 5.0)
    assert support_resistance_levels(closes[:4], window=2) == []


def test_volume_ratio():
    vols = [100.0] * 49 + [200.0]
    assert volume_ratio(vols, 50) == pytest.approx(200.0 / 102.0)
    assert volume_ratio([0.0] * 50, 50) is None
    assert volume_ratio(vols[:10], 50) is None


def test_indicators_do_not_mutate_inputs():
    closes = _wave(80)
    before = list(closes)
    sma(closes, 20)
    ema(closes, 20)
    rsi(closes, 14, wilder=True)
    macd(closes)
    bollinger_bands(closes)
    support_resistance_levels(closes, window=5)
    assert closes == before


def test_series_is_normalized_oldest_first():
    bars = [_c(i, 1, 2, 0.5, float(i)) for i in range(5)]
    newest_first = list(reversed(bars))
    dup = _c(2, 1, 2, 0.5, 99.0)
    s = CandleSeries.from_candles("EUR/USD", "15min", newest_first + [dup])
    assert len(s) == 5
    assert s.closes == [0.0, 1.0, 99.0, 3.0, 4.0]
    assert s.last.close == 4.0


def test_naive_timestamps_are_treated_as_utc():
    naive = Candle(datetime(2024, 1, 1, 12, 0), 1, 1, 1, 1)
    s = CandleSeries.from_candles("X", "1h", [naive])
    assert s.last.timestamp.tzinfo is timezone.utc

from __future__ import annotations

from .errors import ComputationError, InsufficientHistory
from .indicators import (
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
    rsi_series,
    sma,
    support_resistance_levels,
    volume_ratio,
)
from .models import CandleSeries, IndicatorSnapshot
from .price_action import analyze_price_action
from .profiles import SignalProfile


def build_snapshot(series: CandleSeries, profile: SignalProfile) -> IndicatorSnapshot:
    """Compute every indicator the profile needs for the newest bar.

    Raises InsufficientHistory when the series is shorter than the longest
    window, and ComputationError for numeric failures.
    """
    need = profile.min_history
    if len(series) < need:
        raise InsufficientHistory(f"{series.symbol}: {len(series)} candles, need {need}")

    try:
        return _build(series, profile)
    except (ZeroDivisionError, ValueError, OverflowError) as e:
        raise ComputationError(f"{series.symbol}: {e!r}") from e


def _build(series: CandleSeries, p: SignalProfile) -> IndicatorSnapshot:
    closes = series.closes
    highs = series.highs
    lows = series.lows
    last = series.last

    ema_fast = ema(closes, p.ema_fast_len)
    average = ema if p.trend_average == "ema" else sma
    ma_mid = average(closes, p.ma_mid_len)
    ma_long = average(closes, p.ma_long_len)
    macd_val = macd(closes, p.macd_fast, p.macd_slow, p.macd_signal)
    bands = bollinger_bands(closes, p.bb_len, p.bb_mult)
    pa = analyze_price_action(series, p.pin_bar_body_ratio)
    if None in (ema_fast, ma_mid, ma_long, macd_val, bands, pa):
        raise InsufficientHistory(f"{series.symbol}: indicator window not filled")

    raw_rsi = rsi(closes, p.rsi_len, wilder=p.rsi_wilder)
    osc = raw_rsi
    if p.rsi_smoothing > 0:
        smoothed = ema_series(rsi_series(closes, p.rsi_len), p.rsi_smoothing)
        if not smoothed:
            raise InsufficientHistory(f"{series.symbol}: RSI smoothing window not filled")
        osc = smoothed[-1]

    levels = support_resistance_levels(closes, p.sr_window, p.sr_tolerance, p.sr_top_k)
    support, resistance = nearest_levels(levels, last.close)

    vr = volume_ratio(series.volumes, p.volume_len)
    low_volume = vr is not None and vr < p.low_volume_ratio

    return IndicatorSnapshot(
        symbol=series.symbol,
        candle_time=last.timestamp,
        last_price=last.close,
        ema_fast=ema_fast,
        ma_mid=ma_mid,
        ma_long=ma_long,
        rsi=raw_rsi,
        oscillator=osc,
        macd=macd_val,
        bollinger=bands,
        bb_percent=percent_b(last.close, bands),
        price_action=pa.label,
        has_pin_bar=pa.has_pin_bar,
        pin_bar_direction=pa.pin_bar_direction,
        atr=atr(highs, lows, closes, p.atr_len),
        adx=adx(highs, lows, closes, p.adx_len),
        range_high_low=price_range(highs, lows, p.range_len),
        levels=tuple(levels),
        nearest_support=support,
        nearest_resistance=resistance,
        volume_ratio=vr,
        is_low_volume=low_volume,
    )

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from .models import BEARISH, BULLISH, NEUTRAL, Candle, CandleSeries


@dataclass(frozen=True)
class PinBar:
    present: bool
    direction: str = NEUTRAL


@dataclass(frozen=True)
class PriceAction:
    label: str
    has_pin_bar: bool = False
    pin_bar_direction: str = NEUTRAL


def detect_price_action(closes: Sequence[float], lookback: int = 3) -> Optional[str]:
    """Momentum label from bar-over-bar moves among the last ``lookback`` closes."""
    if len(closes) < lookback or lookback < 2:
        return None
    recent = closes[-lookback:]
    ups = sum(1 for a, b in zip(recent, recent[1:]) if b > a)
    downs = sum(1 for a, b in zip(recent, recent[1:]) if b < a)
    if ups >= 2:
        return BULLISH
    if downs >= 2:
        return BEARISH
    return NEUTRAL


def detect_pin_bar(candle: Candle, body_ratio: float = 0.3) -> PinBar:
    total = candle.high - candle.low
    if total <= 0:
        return PinBar(present=False)
    body = abs(candle.close - candle.open)
    if body >= body_ratio * total:
        return PinBar(present=False)
    if candle.close > candle.open:
        return PinBar(present=True, direction=BULLISH)
    if candle.close < candle.open:
        return PinBar(present=True, direction=BEARISH)
    return PinBar(present=True, direction=NEUTRAL)


def analyze_price_action(series: CandleSeries, body_ratio: float = 0.3) -> Optional[PriceAction]:
    label = detect_price_action(series.closes)
    if label is None:
        return None
    pin = detect_pin_bar(series.last, body_ratio)
    # a directional pin bar decides an otherwise neutral tape
    if label == NEUTRAL and pin.present and pin.direction != NEUTRAL:
        label = pin.direction
    return PriceAction(label=label, has_pin_bar=pin.present, pin_bar_direction=pin.direction)

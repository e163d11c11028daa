from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Tuple

from . import classifier as preds
from .models import BULLISH, BEARISH, BUY, HIGH, LOW, MEDIUM, SELL, IndicatorSnapshot
from .profiles import SignalProfile, Tiers


@dataclass(frozen=True)
class Confidence:
    percent: float
    tier: str
    score: float = 0.0
    max_score: float = 0.0
    breakdown: Tuple[Tuple[str, float], ...] = ()


NO_CONFIDENCE = Confidence(percent=0.0, tier=LOW)


def _tier_credit(tiers: Tiers, passes: Callable[[float], bool]) -> float:
    # tiers are ordered strictest first
    for level, credit in tiers:
        if passes(level):
            return credit
    return 0.0


def _trend(s: IndicatorSnapshot, bull: bool, p: SignalProfile) -> float:
    if preds.ma_stack(s, bull, p):
        return 1.0
    if preds.ema_trend(s, bull, p):
        return p.trend_partial
    return 0.0


def _ema_trend(s: IndicatorSnapshot, bull: bool, p: SignalProfile) -> float:
    return 1.0 if preds.ema_trend(s, bull, p) else 0.0


def _long_trend(s: IndicatorSnapshot, bull: bool, p: SignalProfile) -> float:
    return p.long_trend_credit if preds.long_trend(s, bull, p) else 0.0


def _oscillator(s: IndicatorSnapshot, bull: bool, p: SignalProfile) -> float:
    if bull:
        return _tier_credit(p.oscillator_tiers, lambda lvl: s.oscillator < lvl)
    return _tier_credit(p.oscillator_tiers, lambda lvl: s.oscillator > 100.0 - lvl)


def _volatility(s: IndicatorSnapshot, bull: bool, p: SignalProfile) -> float:
    b = s.bollinger
    if preds.band_break(s, bull, p):
        return 1.0
    if bull and s.last_price < b.lower * (1.0 + p.band_proximity):
        return p.band_partial
    if not bull and s.last_price > b.upper * (1.0 - p.band_proximity):
        return p.band_partial
    return 0.0


def _band_position(s: IndicatorSnapshot, bull: bool, p: SignalProfile) -> float:
    return 1.0 if preds.band_position(s, bull, p) else 0.0


def _momentum(s: IndicatorSnapshot, bull: bool, p: SignalProfile) -> float:
    m = s.macd
    if bull:
        if m.macd <= m.signal:
            return 0.0
        return _tier_credit(p.momentum_tiers, lambda lvl: m.histogram > lvl)
    if m.macd >= m.signal:
        return 0.0
    return _tier_credit(p.momentum_tiers, lambda lvl: m.histogram < -lvl)


def _price_action(s: IndicatorSnapshot, bull: bool, p: SignalProfile) -> float:
    label = BULLISH if bull else BEARISH
    if s.price_action != label:
        return 0.0
    if s.has_pin_bar and s.pin_bar_direction == label:
        return 1.0
    return p.price_action_partial


def _adx(s: IndicatorSnapshot, bull: bool, p: SignalProfile) -> float:
    return 1.0 if preds.strong_trend(s, bull, p) else 0.0


def _level(s: IndicatorSnapshot, bull: bool, p: SignalProfile) -> float:
    return 1.0 if preds.near_level(s, bull, p) else 0.0


def _volume(s: IndicatorSnapshot, bull: bool, p: SignalProfile) -> float:
    return 1.0 if preds.volume_surge(s, bull, p) else 0.0


FACTOR_FUNCS: Dict[str, Callable[[IndicatorSnapshot, bool, SignalProfile], float]] = {
    "trend": _trend,
    "ema_trend": _ema_trend,
    "long_trend": _long_trend,
    "oscillator": _oscillator,
    "volatility": _volatility,
    "band_position": _band_position,
    "momentum": _momentum,
    "price_action": _price_action,
    "adx": _adx,
    "level": _level,
    "volume": _volume,
}


def tier_for(percent: float, profile: SignalProfile) -> str:
    if percent >= profile.tier_high:
        return HIGH
    if percent >= profile.tier_medium:
        return MEDIUM
    return LOW


def score_confidence(direction: str, snapshot: IndicatorSnapshot, profile: SignalProfile) -> Confidence:
    """Weighted partial credit per factor, normalized to 0..100.

    HOLD is never scored and comes back as 0 / LOW.
    """
    if direction not in (BUY, SELL):
        return NO_CONFIDENCE

    bull = direction == BUY
    score = 0.0
    max_score = 0.0
    breakdown = []
    for name, weight in profile.factor_weights.items():
        if weight <= 0:
            continue
        credit = FACTOR_FUNCS[name](snapshot, bull, profile)
        score += weight * credit
        max_score += weight
        breakdown.append((name, round(weight * credit, 2)))

    if max_score <= 0:
        return NO_CONFIDENCE
    percent = round(min(100.0, max(0.0, 100.0 * score / max_score)), 2)
    return Confidence(
        percent=percent,
        tier=tier_for(percent, profile),
        score=score,
        max_score=max_score,
        breakdown=tuple(breakdown),
    )


def recommendation(percent: float) -> str:
    if percent >= 70:
        return "Strong signal - good entry"
    if percent >= 50:
        return "Moderate signal - be careful"
    if percent >= 30:
        return "Weak signal - better to skip"
    return "Very weak signal - not recommended"

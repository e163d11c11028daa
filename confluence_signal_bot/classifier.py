from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Tuple

from .models import BEARISH, BULLISH, BUY, HOLD, SELL, IndicatorSnapshot
from .profiles import SignalProfile

Predicate = Callable[[IndicatorSnapshot, bool, SignalProfile], bool]


@dataclass(frozen=True)
class Condition:
    name: str
    label: str
    satisfied: bool
    weight: float = 1.0


@dataclass(frozen=True)
class ConditionSet:
    bullish: Tuple[Condition, ...]
    bearish: Tuple[Condition, ...]

    def side(self, direction: str) -> Tuple[Condition, ...]:
        return self.bullish if direction == BUY else self.bearish

    def score(self, direction: str) -> float:
        return sum(c.weight for c in self.side(direction) if c.satisfied)

    def count(self, direction: str) -> int:
        return sum(1 for c in self.side(direction) if c.satisfied)

    def satisfied(self, direction: str) -> Tuple[Condition, ...]:
        return tuple(c for c in self.side(direction) if c.satisfied)


@dataclass(frozen=True)
class Classification:
    direction: str
    conditions: ConditionSet
    met: int
    total: int
    gated: bool = False


# Each predicate answers for the bullish side when ``bull`` is True and for
# the mirrored bearish side otherwise.

def ema_trend(s: IndicatorSnapshot, bull: bool, p: SignalProfile) -> bool:
    return s.ema_fast > s.ma_mid if bull else s.ema_fast < s.ma_mid


def ma_stack(s: IndicatorSnapshot, bull: bool, p: SignalProfile) -> bool:
    if bull:
        return s.ema_fast > s.ma_mid > s.ma_long
    return s.ema_fast < s.ma_mid < s.ma_long


def long_trend(s: IndicatorSnapshot, bull: bool, p: SignalProfile) -> bool:
    return s.ma_mid > s.ma_long if bull else s.ma_mid < s.ma_long


def band_break(s: IndicatorSnapshot, bull: bool, p: SignalProfile) -> bool:
    if bull:
        return s.last_price < s.bollinger.lower
    return s.last_price > s.bollinger.upper


def price_action(s: IndicatorSnapshot, bull: bool, p: SignalProfile) -> bool:
    return s.price_action == (BULLISH if bull else BEARISH)


def band_or_pin_bar(s: IndicatorSnapshot, bull: bool, p: SignalProfile) -> bool:
    return band_break(s, bull, p) or (s.has_pin_bar and price_action(s, bull, p))


def band_position(s: IndicatorSnapshot, bull: bool, p: SignalProfile) -> bool:
    if s.bb_percent is None:
        return False
    return s.bb_percent < p.bb_low if bull else s.bb_percent > p.bb_high


def oscillator(s: IndicatorSnapshot, bull: bool, p: SignalProfile) -> bool:
    return s.oscillator < p.oversold if bull else s.oscillator > p.overbought


def stretch(s: IndicatorSnapshot, bull: bool, p: SignalProfile) -> bool:
    return oscillator(s, bull, p) or band_position(s, bull, p)


def macd_momentum(s: IndicatorSnapshot, bull: bool, p: SignalProfile) -> bool:
    m = s.macd
    if bull:
        return m.histogram > p.momentum_min_hist and m.macd > m.signal
    return m.histogram < -p.momentum_min_hist and m.macd < m.signal


def price_vs_ema(s: IndicatorSnapshot, bull: bool, p: SignalProfile) -> bool:
    return s.last_price > s.ema_fast if bull else s.last_price < s.ema_fast


def strong_trend(s: IndicatorSnapshot, bull: bool, p: SignalProfile) -> bool:
    d = s.adx
    if d is None or d.adx <= p.adx_threshold:
        return False
    return d.plus_di > d.minus_di if bull else d.minus_di > d.plus_di


def trend_or_adx(s: IndicatorSnapshot, bull: bool, p: SignalProfile) -> bool:
    return long_trend(s, bull, p) or strong_trend(s, bull, p)


def near_level(s: IndicatorSnapshot, bull: bool, p: SignalProfile) -> bool:
    if bull:
        return s.nearest_support is not None and s.last_price <= s.nearest_support * (1.0 + p.level_tolerance)
    return s.nearest_resistance is not None and s.last_price >= s.nearest_resistance * (1.0 - p.level_tolerance)


def volume_surge(s: IndicatorSnapshot, bull: bool, p: SignalProfile) -> bool:
    return s.volume_ratio is not None and s.volume_ratio > p.volume_surge_ratio


PREDICATE_FUNCS: Dict[str, Predicate] = {
    "ema_trend": ema_trend,
    "ma_stack": ma_stack,
    "long_trend": long_trend,
    "band_break": band_break,
    "band_or_pin_bar": band_or_pin_bar,
    "band_position": band_position,
    "oscillator": oscillator,
    "stretch": stretch,
    "macd_momentum": macd_momentum,
    "price_action": price_action,
    "price_vs_ema": price_vs_ema,
    "strong_trend": strong_trend,
    "trend_or_adx": trend_or_adx,
    "near_level": near_level,
    "volume_surge": volume_surge,
}

LABELS: Dict[str, Tuple[str, str]] = {
    "ema_trend": ("Short-term trend above medium-term (EMA > mid MA)", "Short-term trend below medium-term (EMA < mid MA)"),
    "ma_stack": ("Strong uptrend (EMA > mid MA > long MA)", "Strong downtrend (EMA < mid MA < long MA)"),
    "long_trend": ("Long-term uptrend (mid MA > long MA)", "Long-term downtrend (mid MA < long MA)"),
    "band_break": ("Price below lower Bollinger band", "Price above upper Bollinger band"),
    "band_or_pin_bar": ("Lower band break or bullish pin bar", "Upper band break or bearish pin bar"),
    "band_position": ("Price near lower Bollinger band", "Price near upper Bollinger band"),
    "oscillator": ("RSI oversold", "RSI overbought"),
    "stretch": ("RSI oversold or price near lower band", "RSI overbought or price near upper band"),
    "macd_momentum": ("Bullish MACD momentum", "Bearish MACD momentum"),
    "price_action": ("Bullish price action", "Bearish price action"),
    "price_vs_ema": ("Price above EMA", "Price below EMA"),
    "strong_trend": ("Strong trend (ADX) with buyers in control", "Strong trend (ADX) with sellers in control"),
    "trend_or_adx": ("Uptrend or strong ADX trend", "Downtrend or strong ADX trend"),
    "near_level": ("Close to support", "Close to resistance"),
    "volume_surge": ("High volume", "High volume"),
}


def build_conditions(snapshot: IndicatorSnapshot, profile: SignalProfile) -> ConditionSet:
    bullish = []
    bearish = []
    for name, weight in profile.predicates.items():
        fn = PREDICATE_FUNCS[name]
        bull_label, bear_label = LABELS[name]
        bullish.append(Condition(name, bull_label, bool(fn(snapshot, True, profile)), weight))
        bearish.append(Condition(name, bear_label, bool(fn(snapshot, False, profile)), weight))
    return ConditionSet(bullish=tuple(bullish), bearish=tuple(bearish))


def classify(snapshot: IndicatorSnapshot, profile: SignalProfile) -> Classification:
    """One EVALUATING -> BUY/SELL/HOLD decision for the newest bar."""
    conditions = build_conditions(snapshot, profile)
    total = len(profile.predicates)

    if profile.require_volume and snapshot.is_low_volume:
        return Classification(HOLD, conditions, 0, total, gated=True)

    bull = conditions.score(BUY)
    bear = conditions.score(SELL)
    if bull >= profile.threshold and bull > bear:
        return Classification(BUY, conditions, conditions.count(BUY), total)
    if bear >= profile.threshold and bear > bull:
        return Classification(SELL, conditions, conditions.count(SELL), total)
    return Classification(HOLD, conditions, max(conditions.count(BUY), conditions.count(SELL)), total)

"""Named signal policies.

A profile bundles every tunable of one trading cadence: indicator periods,
which predicates vote and with what weight, the vote threshold, scoring
weights and graduated tiers, confidence cutoffs and the risk policy. The
classifier, scorer and risk manager read all their constants from here.
"""
from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, Mapping, Optional, Tuple

from .errors import ConfigurationError
from .risk import RiskPolicy, VOLATILITY_SOURCES

TREND_AVERAGES = ("sma", "ema")


PREDICATES = (
    "ema_trend",
    "long_trend",
    "ma_stack",
    "band_break",
    "band_or_pin_bar",
    "band_position",
    "oscillator",
    "stretch",
    "macd_momentum",
    "price_action",
    "price_vs_ema",
    "strong_trend",
    "trend_or_adx",
    "near_level",
    "volume_surge",
)

FACTORS = (
    "trend",
    "ema_trend",
    "long_trend",
    "oscillator",
    "volatility",
    "band_position",
    "momentum",
    "price_action",
    "adx",
    "level",
    "volume",
)

Tiers = Tuple[Tuple[float, float], ...]


@dataclass(frozen=True)
class SignalProfile:
    name: str
    interval: str = "15min"
    lookback: int = 500

    # indicator periods
    ema_fast_len: int = 20
    ma_mid_len: int = 50
    ma_long_len: int = 200
    trend_average: str = "sma"  # sma | ema, applies to ma_mid and ma_long
    rsi_len: int = 14
    rsi_wilder: bool = False
    rsi_smoothing: int = 0  # EMA period applied to the RSI series, 0 = raw
    macd_fast: int = 12
    macd_slow: int = 26
    macd_signal: int = 9
    bb_len: int = 20
    bb_mult: float = 2.0
    atr_len: int = 14
    adx_len: int = 14
    range_len: int = 14
    sr_window: int = 50
    sr_tolerance: float = 0.002
    sr_top_k: int = 5
    volume_len: int = 50
    low_volume_ratio: float = 0.7
    pin_bar_body_ratio: float = 0.3

    # classifier
    predicates: Dict[str, float] = field(default_factory=dict)
    threshold: float = 2.0
    require_volume: bool = False
    oversold: float = 40.0
    overbought: float = 60.0
    momentum_min_hist: float = 0.0
    adx_threshold: float = 25.0
    bb_low: float = 0.2
    bb_high: float = 0.8
    level_tolerance: float = 0.005
    volume_surge_ratio: float = 1.5

    # scorer
    factor_weights: Dict[str, float] = field(default_factory=dict)
    oscillator_tiers: Tiers = ((30.0, 1.0), (40.0, 0.8), (45.0, 0.5))
    momentum_tiers: Tiers = ((0.0, 1.0),)
    trend_partial: float = 0.7
    long_trend_credit: float = 1.0
    band_partial: float = 0.7
    band_proximity: float = 0.01
    price_action_partial: float = 1.0
    tier_high: float = 70.0
    tier_medium: float = 50.0

    risk: RiskPolicy = field(default_factory=RiskPolicy)

    @property
    def min_history(self) -> int:
        rsi_need = self.rsi_len + 1 + max(self.rsi_smoothing - 1, 0)
        return max(
            self.ema_fast_len,
            self.ma_mid_len,
            self.ma_long_len,
            self.macd_slow + self.macd_signal - 1,
            self.bb_len,
            rsi_need,
            3,
        )


CLASSIC = SignalProfile(
    name="classic",
    interval="15min",
    predicates={
        "ema_trend": 1.0,
        "band_break": 1.0,
        "oscillator": 1.0,
        "macd_momentum": 1.0,
        "price_action": 1.0,
    },
    threshold=2.0,
    oversold=40.0,
    overbought=60.0,
    momentum_min_hist=-0.001,
    factor_weights={
        "ema_trend": 25.0,
        "long_trend": 15.0,
        "oscillator": 20.0,
        "volatility": 20.0,
        "momentum": 15.0,
        "price_action": 25.0,
    },
    long_trend_credit=0.7,
    oscillator_tiers=((30.0, 1.0), (40.0, 0.8), (45.0, 0.5)),
    momentum_tiers=((0.0, 1.0), (-0.1, 0.6)),
    risk=RiskPolicy(reward_ratio=2.0, risk_multiplier=0.0, min_stop_pips=40.0, volatility_source="none"),
)

CRYPTO_MOMENTUM = SignalProfile(
    name="crypto_momentum",
    interval="15m",
    rsi_smoothing=5,
    macd_fast=16,
    macd_slow=32,
    macd_signal=9,
    predicates={
        "ma_stack": 1.0,
        "band_or_pin_bar": 1.0,
        "oscillator": 1.0,
        "macd_momentum": 1.0,
        "price_action": 1.0,
        "price_vs_ema": 1.0,
    },
    threshold=1.0,
    oversold=35.0,
    overbought=65.0,
    momentum_min_hist=0.3,
    factor_weights={
        "trend": 25.0,
        "oscillator": 20.0,
        "volatility": 20.0,
        "momentum": 20.0,
        "price_action": 15.0,
    },
    oscillator_tiers=((30.0, 1.0), (35.0, 0.8)),
    momentum_tiers=((0.5, 1.0), (0.3, 0.7)),
    price_action_partial=0.7,
    tier_high=75.0,
    tier_medium=55.0,
    risk=RiskPolicy(reward_ratio=2.0, risk_multiplier=1.5, min_stop_pips=0.0, min_stop_pct=1.5, volatility_source="range"),
)

FX_STRUCTURE = SignalProfile(
    name="fx_structure",
    interval="5min",
    trend_average="ema",
    rsi_wilder=True,
    predicates={
        "trend_or_adx": 1.0,
        "stretch": 1.0,
        "macd_momentum": 1.0,
        "near_level": 1.0,
    },
    threshold=4.0,
    oversold=35.0,
    overbought=65.0,
    momentum_min_hist=0.0,
    factor_weights={
        "long_trend": 20.0,
        "adx": 15.0,
        "oscillator": 15.0,
        "band_position": 10.0,
        "momentum": 10.0,
        "level": 15.0,
        "volume": 15.0,
    },
    oscillator_tiers=((35.0, 1.0),),
    momentum_tiers=((0.0, 1.0),),
    tier_high=65.0,
    tier_medium=50.0,
    risk=RiskPolicy(reward_ratio=2.0, risk_multiplier=1.5, min_stop_pips=10.0, volatility_source="atr"),
)

PROFILES: Dict[str, SignalProfile] = {p.name: p for p in (CLASSIC, CRYPTO_MOMENTUM, FX_STRUCTURE)}


def _as_tiers(raw: Any, key: str) -> Tiers:
    try:
        return tuple((float(level), float(credit)) for level, credit in raw)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{key} must be a list of [level, credit] pairs: {e}") from e


def _as_weights(raw: Any, key: str) -> Dict[str, float]:
    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"{key} must be a mapping of name: weight")
    try:
        return {str(k): float(v) for k, v in raw.items()}
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{key} weights must be numbers: {e}") from e


def _coerce(current: Any, value: Any, key: str) -> Any:
    """Cast an override to the type of the field it replaces."""
    if isinstance(current, bool):
        if not isinstance(value, bool):
            raise ConfigurationError(f"{key} must be true or false, got {value!r}")
        return value
    if isinstance(current, (int, float)):
        if isinstance(value, bool):
            raise ConfigurationError(f"{key} must be a number, got {value!r}")
        try:
            number = float(value)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"{key} must be a number, got {value!r}") from e
        if isinstance(current, int):
            if not number.is_integer():
                raise ConfigurationError(f"{key} must be a whole number, got {value!r}")
            return int(number)
        return number
    if isinstance(current, str):
        return str(value)
    return value


def _risk_override(base: RiskPolicy, raw: Any) -> RiskPolicy:
    if raw is None:
        return base
    if not isinstance(raw, Mapping):
        raise ConfigurationError("risk override must be a mapping")
    risk_known = {f.name for f in fields(RiskPolicy)}
    bad = set(raw) - risk_known
    if bad:
        raise ConfigurationError(f"Unknown risk option(s): {', '.join(sorted(bad))}")
    return replace(base, **{k: _coerce(getattr(base, k), v, f"risk.{k}") for k, v in raw.items()})


def resolve_profile(name: str, overrides: Optional[Mapping[str, Any]] = None) -> SignalProfile:
    """Pick a built-in profile and apply config overrides, then validate."""
    base = PROFILES.get(name)
    if base is None:
        raise ConfigurationError(f"Unknown profile '{name}' (known: {', '.join(sorted(PROFILES))})")

    known = {f.name for f in fields(SignalProfile)}
    changes: Dict[str, Any] = {}
    for key, value in (overrides or {}).items():
        if key not in known or key == "name":
            raise ConfigurationError(f"Unknown profile option '{key}'")
        if key == "risk":
            changes[key] = _risk_override(base.risk, value)
        elif key in ("oscillator_tiers", "momentum_tiers"):
            changes[key] = _as_tiers(value, key)
        elif key in ("predicates", "factor_weights"):
            changes[key] = _as_weights(value or {}, key)
        else:
            changes[key] = _coerce(getattr(base, key), value, key)

    profile = replace(base, **changes) if changes else base
    validate_profile(profile)
    return profile


def validate_profile(p: SignalProfile) -> None:
    errs = []
    for key in (
        "ema_fast_len", "ma_mid_len", "ma_long_len", "rsi_len", "macd_fast", "macd_slow",
        "macd_signal", "bb_len", "atr_len", "adx_len", "range_len", "sr_window", "volume_len", "lookback",
    ):
        if int(getattr(p, key)) <= 0:
            errs.append(f"{key} must be > 0")
    if p.trend_average not in TREND_AVERAGES:
        errs.append(f"trend_average must be one of {TREND_AVERAGES}")
    if p.rsi_smoothing < 0:
        errs.append("rsi_smoothing must be >= 0")
    if p.macd_fast >= p.macd_slow:
        errs.append("macd_fast must be < macd_slow")
    if p.lookback < p.min_history:
        errs.append(f"lookback {p.lookback} is below the {p.min_history} candles the indicators need")

    unknown = set(p.predicates) - set(PREDICATES)
    if unknown:
        errs.append(f"unknown predicates: {', '.join(sorted(unknown))}")
    if not p.predicates:
        errs.append("at least one predicate is required")
    if any(w <= 0 for w in p.predicates.values()):
        errs.append("predicate weights must be > 0")
    if p.threshold <= 0 or p.threshold > sum(p.predicates.values()):
        errs.append("threshold must be > 0 and reachable by the predicate weights")

    unknown = set(p.factor_weights) - set(FACTORS)
    if unknown:
        errs.append(f"unknown factors: {', '.join(sorted(unknown))}")
    if any(w < 0 for w in p.factor_weights.values()) or sum(p.factor_weights.values()) <= 0:
        errs.append("factor weights must be >= 0 with a positive total")
    for key in ("oscillator_tiers", "momentum_tiers"):
        for _, credit in getattr(p, key):
            if not 0.0 <= credit <= 1.0:
                errs.append(f"{key} credits must be within [0, 1]")
                break
    for key in ("trend_partial", "long_trend_credit", "band_partial", "price_action_partial"):
        if not 0.0 <= getattr(p, key) <= 1.0:
            errs.append(f"{key} must be within [0, 1]")
    if not 0.0 <= p.oversold <= p.overbought <= 100.0:
        errs.append("need 0 <= oversold <= overbought <= 100")
    if not 0.0 <= p.tier_medium <= p.tier_high <= 100.0:
        errs.append("need 0 <= tier_medium <= tier_high <= 100")

    r = p.risk
    if r.reward_ratio <= 0:
        errs.append("risk.reward_ratio must be > 0")
    if r.risk_multiplier < 0 or r.min_stop_pips < 0 or r.min_stop_pct < 0:
        errs.append("risk multipliers and floors must be >= 0")
    if r.volatility_source not in VOLATILITY_SOURCES:
        errs.append(f"risk.volatility_source must be one of {VOLATILITY_SOURCES}")
    if r.min_stop_pips == 0 and r.min_stop_pct == 0 and (r.risk_multiplier == 0 or r.volatility_source == "none"):
        errs.append("risk policy yields a zero stop distance")

    if errs:
        raise ConfigurationError(f"Invalid profile '{p.name}': " + "; ".join(errs))


def profile_signature(p: SignalProfile) -> Dict[str, object]:
    out: Dict[str, object] = {}
    for f in fields(p):
        val = getattr(p, f.name)
        out[f.name] = val.__dict__ if isinstance(val, RiskPolicy) else val
    return out

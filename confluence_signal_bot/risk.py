from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Optional, Tuple

from .models import BUY, SELL

FX = "fx"
FX_JPY = "fx_jpy"
METAL = "metal"
CRYPTO = "crypto"
ASSET_CLASSES = (FX, FX_JPY, METAL, CRYPTO)

VOLATILITY_SOURCES = ("atr", "range", "none")

_FIAT = {"USD", "EUR", "GBP", "JPY", "CHF", "AUD", "NZD", "CAD", "SEK", "NOK", "DKK", "SGD", "HKD", "ZAR", "MXN", "TRY", "PLN"}
_METALS: Dict[str, Tuple[float, int]] = {
    "XAU": (0.1, 2),
    "XAG": (0.01, 3),
    "XPT": (0.1, 2),
    "XPD": (0.1, 2),
}
_CRYPTO_QUOTES = ("USDT", "USDC", "BUSD", "FDUSD")

_DEFAULTS: Dict[str, Tuple[float, int]] = {
    FX: (0.0001, 5),
    FX_JPY: (0.01, 3),
    CRYPTO: (0.001, 5),
}


@dataclass(frozen=True)
class InstrumentSpec:
    symbol: str
    asset_class: str
    pip_size: float
    precision: int


@dataclass(frozen=True)
class RiskPolicy:
    reward_ratio: float = 2.0
    risk_multiplier: float = 1.5
    min_stop_pips: float = 40.0
    min_stop_pct: float = 0.0
    volatility_source: str = "atr"  # atr | range | none


@dataclass(frozen=True)
class RiskLevels:
    stop_loss: float
    take_profit: float
    stop_distance: float
    target_distance: float
    stop_pct: Optional[float]
    target_pct: Optional[float]
    target_pips: Optional[float]


def _split_symbol(symbol: str) -> Tuple[str, str]:
    s = symbol.upper().split(":")[0].strip()
    if "/" in s:
        base, quote = s.split("/", 1)
        return base, quote
    for q in _CRYPTO_QUOTES:
        if s.endswith(q) and len(s) > len(q):
            return s[: -len(q)], q
    if len(s) == 6:
        return s[:3], s[3:]
    return s, ""


def classify_instrument(symbol: str, overrides: Optional[Dict[str, dict]] = None) -> InstrumentSpec:
    base, quote = _split_symbol(symbol)

    if base in _METALS:
        asset_class = METAL
        pip, precision = _METALS[base]
    elif quote in _CRYPTO_QUOTES:
        asset_class = CRYPTO
        pip, precision = _DEFAULTS[CRYPTO]
    elif base in _FIAT and quote in _FIAT:
        asset_class = FX_JPY if "JPY" in (base, quote) else FX
        pip, precision = _DEFAULTS[asset_class]
    else:
        asset_class = CRYPTO
        pip, precision = _DEFAULTS[CRYPTO]

    ov = (overrides or {}).get(symbol) or (overrides or {}).get(symbol.upper()) or {}
    return InstrumentSpec(
        symbol=symbol,
        asset_class=ov.get("asset_class", asset_class),
        pip_size=float(ov.get("pip_size", pip)),
        precision=int(ov.get("precision", precision)),
    )


def quantize(price: float, precision: int) -> float:
    q = Decimal(1).scaleb(-int(precision))
    return float(Decimal(str(price)).quantize(q, rounding=ROUND_HALF_UP))


def select_volatility(policy: RiskPolicy, atr: Optional[float], price_range: Optional[float]) -> float:
    if policy.volatility_source == "atr":
        return atr or 0.0
    if policy.volatility_source == "range":
        return price_range or 0.0
    return 0.0


def compute_levels(
    entry: float,
    direction: str,
    instrument: InstrumentSpec,
    volatility: float,
    policy: RiskPolicy,
) -> RiskLevels:
    """Stop-loss and take-profit for one entry.

    ``stop = max(floor, volatility * risk_multiplier)`` where the floor is
    the larger of the pip floor and the percent floor; the target is the
    stop scaled by the reward ratio. Anything but BUY/SELL collapses both
    levels onto the entry price.
    """
    p = instrument.precision
    if direction not in (BUY, SELL):
        e = quantize(entry, p)
        return RiskLevels(e, e, 0.0, 0.0, None, None, None)

    floor = max(policy.min_stop_pips * instrument.pip_size, entry * policy.min_stop_pct / 100.0)
    stop = max(floor, max(volatility, 0.0) * policy.risk_multiplier)
    target = stop * policy.reward_ratio

    if direction == BUY:
        sl, tp = entry - stop, entry + target
    else:
        sl, tp = entry + stop, entry - target

    stop_pct = (stop / entry * 100.0) if entry > 0 else None
    target_pct = (target / entry * 100.0) if entry > 0 else None
    target_pips = target / instrument.pip_size if instrument.pip_size > 0 else None

    return RiskLevels(
        stop_loss=quantize(max(sl, 0.0), p),
        take_profit=quantize(max(tp, 0.0), p),
        stop_distance=stop,
        target_distance=target,
        stop_pct=round(stop_pct, 2) if stop_pct is not None else None,
        target_pct=round(target_pct, 2) if target_pct is not None else None,
        target_pips=round(target_pips, 1) if target_pips is not None else None,
    )

"""Pure indicator functions.

All inputs are oldest-first lists (index -1 is the most recent bar), the
order ``CandleSeries`` guarantees. ``None`` means "insufficient data";
nothing here raises on short input and nothing mutates its arguments.
"""
from __future__ import annotations

import math
from typing import List, Optional, Sequence, Tuple

from .models import BollingerValue, DirectionalIndex, Level, MACDValue

RSI_NEUTRAL = 50.0


def ema_next(prev_ema: Optional[float], x: float, length: int) -> float:
    if length <= 1:
        return x
    alpha = 2.0 / (length + 1.0)
    return x if prev_ema is None else prev_ema + alpha * (x - prev_ema)


def rma_next(prev: Optional[float], x: float, length: int) -> float:
    """Wilder's smoothing step."""
    if length <= 1 or prev is None:
        return x
    return (prev * (length - 1) + x) / float(length)


def sma(values: Sequence[float], length: int) -> Optional[float]:
    if length <= 0 or len(values) < length:
        return None
    return sum(values[-length:]) / float(length)


def ema_series(values: Sequence[float], length: int) -> List[float]:
    """EMA for every bar from index ``length - 1`` onward.

    The seed is the SMA of the oldest ``length`` values; the recursion then
    walks toward the newest value.
    """
    if length <= 0 or len(values) < length:
        return []
    prev = sum(values[:length]) / float(length)
    out = [prev]
    for x in values[length:]:
        prev = ema_next(prev, x, length)
        out.append(prev)
    return out


def ema(values: Sequence[float], length: int) -> Optional[float]:
    series = ema_series(values, length)
    return series[-1] if series else None


def _rsi_from_averages(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        # flat window keeps the neutral default
        return RSI_NEUTRAL if avg_gain == 0 else 100.0
    rs = avg_gain / avg_loss
    return min(100.0, max(0.0, 100.0 - (100.0 / (1.0 + rs))))


def rsi(closes: Sequence[float], length: int = 14, *, wilder: bool = False) -> float:
    if length <= 0 or len(closes) <= length:
        return RSI_NEUTRAL

    if wilder:
        avg_gain = avg_loss = None
        gains = losses = 0.0
        for i in range(1, len(closes)):
            ch = closes[i] - closes[i - 1]
            g = ch if ch > 0 else 0.0
            l = -ch if ch < 0 else 0.0
            if i <= length:
                gains += g
                losses += l
                if i == length:
                    avg_gain = gains / length
                    avg_loss = losses / length
            else:
                avg_gain = rma_next(avg_gain, g, length)
                avg_loss = rma_next(avg_loss, l, length)
        return _rsi_from_averages(avg_gain, avg_loss)

    gains = 0.0
    losses = 0.0
    for i in range(-length, 0):
        ch = closes[i] - closes[i - 1]
        if ch >= 0:
            gains += ch
        else:
            losses -= ch
    return _rsi_from_averages(gains / length, losses / length)


def rsi_series(closes: Sequence[float], length: int = 14) -> List[float]:
    """Rolling simple-average RSI for every bar that has ``length`` deltas."""
    if length <= 0 or len(closes) <= length:
        return []
    return [rsi(closes[: i + 1], length) for i in range(length, len(closes))]


def macd_series(
    values: Sequence[float], fast: int = 12, slow: int = 26, signal: int = 9
) -> Optional[Tuple[List[float], List[float], List[float]]]:
    """Aligned (macd, signal, histogram) lists; all three end on the newest bar."""
    if fast <= 0 or slow <= fast or signal <= 0:
        return None
    fast_e = ema_series(values, fast)
    slow_e = ema_series(values, slow)
    if not slow_e:
        return None
    offset = slow - fast
    line = [f - s for f, s in zip(fast_e[offset:], slow_e)]
    sig = ema_series(line, signal)
    if not sig:
        return None
    line = line[signal - 1:]
    hist = [m - s for m, s in zip(line, sig)]
    return line, sig, hist


def macd(values: Sequence[float], fast: int = 12, slow: int = 26, signal: int = 9) -> Optional[MACDValue]:
    res = macd_series(values, fast, slow, signal)
    if res is None:
        return None
    line, sig, hist = res
    return MACDValue(macd=line[-1], signal=sig[-1], histogram=hist[-1])


def bollinger_bands(values: Sequence[float], length: int = 20, mult: float = 2.0) -> Optional[BollingerValue]:
    mid = sma(values, length)
    if mid is None:
        return None
    window = values[-length:]
    var = sum((x - mid) ** 2 for x in window) / float(length)
    sd = math.sqrt(var)
    return BollingerValue(upper=mid + mult * sd, middle=mid, lower=mid - mult * sd)


def percent_b(price: float, bands: BollingerValue) -> Optional[float]:
    width = bands.upper - bands.lower
    if width <= 0:
        return None
    return (price - bands.lower) / width


def true_range(high: float, low: float, prev_close: float) -> float:
    return max(high - low, abs(high - prev_close), abs(low - prev_close))


def _true_ranges(highs: Sequence[float], lows: Sequence[float], closes: Sequence[float]) -> List[float]:
    return [true_range(highs[i], lows[i], closes[i - 1]) for i in range(1, len(closes))]


def _wilder(values: Sequence[float], length: int) -> List[float]:
    if length <= 0 or len(values) < length:
        return []
    prev = sum(values[:length]) / float(length)
    out = [prev]
    for x in values[length:]:
        prev = rma_next(prev, x, length)
        out.append(prev)
    return out


def atr(highs: Sequence[float], lows: Sequence[float], closes: Sequence[float], length: int = 14) -> Optional[float]:
    if length <= 0 or len(closes) < length + 1:
        return None
    smoothed = _wilder(_true_ranges(highs, lows, closes), length)
    return smoothed[-1] if smoothed else None


def adx(highs: Sequence[float], lows: Sequence[float], closes: Sequence[float], length: int = 14) -> Optional[DirectionalIndex]:
    if length <= 0 or len(closes) < 2 * length + 1:
        return None

    plus_dm: List[float] = []
    minus_dm: List[float] = []
    for i in range(1, len(closes)):
        up = highs[i] - highs[i - 1]
        down = lows[i - 1] - lows[i]
        plus_dm.append(up if (up > down and up > 0) else 0.0)
        minus_dm.append(down if (down > up and down > 0) else 0.0)

    s_tr = _wilder(_true_ranges(highs, lows, closes), length)
    s_plus = _wilder(plus_dm, length)
    s_minus = _wilder(minus_dm, length)

    dx: List[float] = []
    plus_di = minus_di = 0.0
    for tr, p, m in zip(s_tr, s_plus, s_minus):
        if tr <= 0:
            plus_di = minus_di = 0.0
        else:
            plus_di = 100.0 * p / tr
            minus_di = 100.0 * m / tr
        total = plus_di + minus_di
        dx.append(100.0 * abs(plus_di - minus_di) / total if total > 0 else 0.0)

    smoothed = _wilder(dx, length)
    if not smoothed:
        return None
    return DirectionalIndex(adx=smoothed[-1], plus_di=plus_di, minus_di=minus_di)


def price_range(highs: Sequence[float], lows: Sequence[float], length: int = 14) -> Optional[float]:
    if length <= 0 or len(highs) < length or len(lows) < length:
        return None
    return max(highs[-length:]) - min(lows[-length:])


def support_resistance_levels(
    closes: Sequence[float], window: int = 50, tolerance: float = 0.002, top_k: int = 5
) -> List[Level]:
    """Swing-close clusters ranked by how many swings they absorbed."""
    if window <= 0 or len(closes) < 2 * window + 1:
        return []

    points: List[Tuple[str, float]] = []
    for i in range(window, len(closes) - window):
        neighbours = list(closes[i - window:i]) + list(closes[i + 1:i + window + 1])
        c = closes[i]
        if max(neighbours) < c:
            points.append(("resistance", c))
        if min(neighbours) > c:
            points.append(("support", c))

    clusters: List[List] = []  # [kind, mean price, count]
    for kind, price in points:
        for cl in clusters:
            if abs(cl[1] - price) < tolerance * cl[1]:
                cl[1] = (cl[1] * cl[2] + price) / (cl[2] + 1)
                cl[2] += 1
                break
        else:
            clusters.append([kind, price, 1])

    clusters.sort(key=lambda cl: cl[2], reverse=True)
    return [Level(kind=k, price=p, strength=n) for k, p, n in clusters[:top_k]]


def nearest_levels(levels: Sequence[Level], price: float) -> Tuple[Optional[float], Optional[float]]:
    """Closest support at/below price and closest resistance at/above it."""
    supports = [lv.price for lv in levels if lv.kind == "support" and lv.price <= price]
    resistances = [lv.price for lv in levels if lv.kind == "resistance" and lv.price >= price]
    return (max(supports) if supports else None, min(resistances) if resistances else None)


def volume_ratio(volumes: Sequence[float], length: int = 50) -> Optional[float]:
    avg = sma(volumes, length)
    if avg is None or avg <= 0:
        return None
    return volumes[-1] / avg

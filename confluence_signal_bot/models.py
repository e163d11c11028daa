from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Tuple

BUY = "BUY"
SELL = "SELL"
HOLD = "HOLD"

LOW = "LOW"
MEDIUM = "MEDIUM"
HIGH = "HIGH"

BULLISH = "bullish"
BEARISH = "bearish"
NEUTRAL = "neutral"


def utc_ms(ts: datetime) -> int:
    return int(ts.timestamp() * 1000)


@dataclass(frozen=True)
class Candle:
    timestamp: datetime  # bar open time, UTC
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0


@dataclass(frozen=True)
class CandleSeries:
    """OHLCV history for one symbol, ordered oldest-first.

    Index 0 is the oldest bar and index -1 the most recent one. Every
    indicator window is defined relative to this order, so providers must
    build series through ``from_candles`` instead of the constructor.
    """

    symbol: str
    interval: str
    candles: Tuple[Candle, ...] = ()

    @classmethod
    def from_candles(cls, symbol: str, interval: str, candles: Iterable[Candle]) -> "CandleSeries":
        by_ts = {}
        for c in candles:
            ts = c.timestamp
            if ts.tzinfo is None:
                ts = ts.replace(tzinfo=timezone.utc)
                c = Candle(ts, c.open, c.high, c.low, c.close, c.volume)
            by_ts[ts] = c  # last write wins on duplicate bars
        ordered = tuple(by_ts[ts] for ts in sorted(by_ts))
        return cls(symbol=symbol, interval=interval, candles=ordered)

    def __len__(self) -> int:
        return len(self.candles)

    @property
    def last(self) -> Optional[Candle]:
        return self.candles[-1] if self.candles else None

    @property
    def opens(self) -> List[float]:
        return [c.open for c in self.candles]

    @property
    def highs(self) -> List[float]:
        return [c.high for c in self.candles]

    @property
    def lows(self) -> List[float]:
        return [c.low for c in self.candles]

    @property
    def closes(self) -> List[float]:
        return [c.close for c in self.candles]

    @property
    def volumes(self) -> List[float]:
        return [c.volume for c in self.candles]


@dataclass(frozen=True)
class MACDValue:
    macd: float
    signal: float
    histogram: float


@dataclass(frozen=True)
class BollingerValue:
    upper: float
    middle: float
    lower: float


@dataclass(frozen=True)
class DirectionalIndex:
    adx: float
    plus_di: float
    minus_di: float


@dataclass(frozen=True)
class Level:
    kind: str  # support | resistance
    price: float
    strength: int


@dataclass(frozen=True)
class IndicatorSnapshot:
    symbol: str
    candle_time: datetime
    last_price: float
    ema_fast: float
    ma_mid: float
    ma_long: float
    rsi: float
    oscillator: float  # raw or smoothed RSI, per profile
    macd: MACDValue
    bollinger: BollingerValue
    bb_percent: Optional[float]
    price_action: str
    has_pin_bar: bool = False
    pin_bar_direction: str = NEUTRAL
    atr: Optional[float] = None
    adx: Optional[DirectionalIndex] = None
    range_high_low: Optional[float] = None
    levels: Tuple[Level, ...] = ()
    nearest_support: Optional[float] = None
    nearest_resistance: Optional[float] = None
    volume_ratio: Optional[float] = None
    is_low_volume: bool = False


@dataclass(frozen=True)
class Signal:
    symbol: str
    direction: str
    timestamp: datetime
    entry_price: float
    stop_loss: float
    take_profit: float
    confidence_percent: float
    confidence_tier: str
    reasons: Tuple[str, ...] = ()
    profile: str = ""
    interval: str = ""
    candle_time: Optional[datetime] = None
    conditions_met: int = 0
    conditions_total: int = 0
    stop_pct: Optional[float] = None
    target_pct: Optional[float] = None
    target_pips: Optional[float] = None
    signal_id: Optional[str] = None

    def with_id(self) -> "Signal":
        if self.signal_id:
            return self
        sid = f"{self.symbol}:{self.direction}:{utc_ms(self.timestamp)}"
        return replace(self, signal_id=sid)


@dataclass
class SymbolState:
    """Per-symbol record owned by the runner; written only by that symbol's task."""

    symbol: str
    last_signal: Optional[Signal] = None
    last_accepted_at: Optional[datetime] = None
    status: str = "idle"
    detail: str = ""
    updated_at: Optional[datetime] = None

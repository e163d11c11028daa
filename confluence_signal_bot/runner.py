from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .classifier import classify
from .config import Config
from .errors import ComputationError, DataUnavailable, InsufficientHistory
from .models import HOLD, CandleSeries, Signal
from .publisher import Publisher
from .risk import classify_instrument, compute_levels, quantize, select_volatility
from .scoring import score_confidence
from .snapshot import build_snapshot
from .store import SignalStore
from .timefilter import NewsWindowFilter

log = logging.getLogger("runner")

# per-symbol outcome / status values
ANALYZING = "analyzing"
SIGNAL = "signal"
HOLDING = "hold"
DEDUPED = "deduped"
SUPPRESSED = "suppressed"
NO_DATA = "no_data"
ERROR = "error"
CANCELLED = "cancelled"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SymbolOutcome:
    symbol: str
    status: str
    signal: Optional[Signal] = None
    detail: str = ""


@dataclass
class CycleReport:
    started_at: datetime
    finished_at: Optional[datetime] = None
    results: Dict[str, SymbolOutcome] = field(default_factory=dict)

    @property
    def signals(self) -> List[Signal]:
        return [o.signal for o in self.results.values() if o.status == SIGNAL and o.signal is not None]

    def count(self, status: str) -> int:
        return sum(1 for o in self.results.values() if o.status == status)


class SignalRunner:
    """Polls every symbol on a fixed cadence and pushes accepted signals.

    One pipeline per symbol: news check, fetch, indicators, classify, score,
    risk sizing, dedup, publish. Pipelines for different symbols run
    concurrently under a semaphore; a second request for a symbol that is
    already in flight joins the running task instead of starting another.
    """

    def __init__(
        self,
        cfg: Config,
        provider,
        publisher: Publisher,
        *,
        store: Optional[SignalStore] = None,
        news_filter: Optional[NewsWindowFilter] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.cfg = cfg
        self.profile = cfg.profile
        self.provider = provider
        self.publisher = publisher
        self.store = store or SignalStore(cfg.dedup.cooldown_minutes)
        self.news = news_filter or cfg.news_filter()
        self.clock = clock or _utcnow

        self.interval = cfg.interval
        self.lookback = cfg.lookback
        self.symbols: List[str] = [s.strip() for s in cfg.provider.symbols if s and s.strip()]

        self._inflight: Dict[str, asyncio.Task] = {}
        self._sem: Optional[asyncio.Semaphore] = None
        self._stop_event = asyncio.Event()
        self._stopping = False

    def _semaphore(self) -> asyncio.Semaphore:
        if self._sem is None:
            self._sem = asyncio.Semaphore(max(1, int(self.cfg.schedule.concurrency)))
        return self._sem

    @property
    def stopping(self) -> bool:
        return self._stopping

    async def run_forever(self) -> None:
        if not self.symbols:
            raise ValueError("No symbols configured.")
        log.info(
            "runner_start symbols=%d profile=%s interval=%s every=%ss concurrency=%s",
            len(self.symbols),
            self.profile.name,
            self.interval,
            self.cfg.schedule.interval_s,
            self.cfg.schedule.concurrency,
        )
        first = True
        while not self._stop_event.is_set():
            if not first or self.cfg.schedule.run_on_start:
                await self.run_cycle()
            first = False
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=float(self.cfg.schedule.interval_s))
            except asyncio.TimeoutError:
                pass
        log.info("runner_stopped")

    async def force_refresh(self, symbols: Optional[Iterable[str]] = None) -> CycleReport:
        """Manual trigger; symbols already in flight are joined, not restarted."""
        log.info("force_refresh symbols=%s", ",".join(symbols) if symbols else "all")
        return await self.run_cycle(symbols)

    async def run_cycle(self, symbols: Optional[Iterable[str]] = None) -> CycleReport:
        syms = list(dict.fromkeys(symbols if symbols is not None else self.symbols))
        report = CycleReport(started_at=self.clock())
        if self._stopping or not syms:
            report.finished_at = self.clock()
            return report

        log.info("cycle_start symbols=%d at=%s", len(syms), report.started_at.isoformat())
        outcomes = await asyncio.gather(*[self._guarded(s) for s in syms])
        for outcome in outcomes:
            report.results[outcome.symbol] = outcome
        report.finished_at = self.clock()
        log.info(
            "cycle_done signals=%d hold=%d deduped=%d suppressed=%d no_data=%d errors=%d",
            report.count(SIGNAL),
            report.count(HOLDING),
            report.count(DEDUPED),
            report.count(SUPPRESSED),
            report.count(NO_DATA),
            report.count(ERROR),
        )
        return report

    async def _guarded(self, symbol: str) -> SymbolOutcome:
        try:
            return await self.analyze_symbol(symbol)
        except asyncio.CancelledError:
            if not self._stopping:
                raise
            return SymbolOutcome(symbol, CANCELLED)

    async def analyze_symbol(self, symbol: str) -> SymbolOutcome:
        task = self._inflight.get(symbol)
        if task is None or task.done():
            task = asyncio.ensure_future(self._pipeline(symbol))
            self._inflight[symbol] = task
            task.add_done_callback(lambda t, s=symbol: self._forget(s, t))
        else:
            log.debug("single_flight_join symbol=%s", symbol)
        # a cancelled waiter must not cancel the pipeline other callers share
        return await asyncio.shield(task)

    def _forget(self, symbol: str, task: asyncio.Task) -> None:
        if self._inflight.get(symbol) is task:
            del self._inflight[symbol]

    async def stop(self) -> None:
        """Stop the loop and cancel in-flight pipelines; nothing half-done is published."""
        self._stopping = True
        self._stop_event.set()
        tasks = [t for t in self._inflight.values() if not t.done()]
        for t in tasks:
            t.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        log.info("runner_stop cancelled=%d", len(tasks))

    async def dismiss(self, key: str) -> Optional[Signal]:
        sig = self.store.dismiss(key)
        if sig is None:
            return None
        await self.publisher.delete(sig.signal_id)
        return sig

    async def _pipeline(self, symbol: str) -> SymbolOutcome:
        now = self.clock()
        event = self.news.active_event(now)
        if event is not None:
            log.info("cycle_suppressed symbol=%s event=%s event_time=%s", symbol, event.label, event.time)
            await self._status(symbol, SUPPRESSED, event.label, record=False)
            return SymbolOutcome(symbol, SUPPRESSED, detail=event.label)

        try:
            async with self._semaphore():
                await self._status(symbol, ANALYZING, at=now)
                series = await self._fetch(symbol)
            return await self._evaluate(symbol, series, now)
        except asyncio.CancelledError:
            # recorded only; the publisher is not awaited from a cancelled task
            self.store.set_status(symbol, CANCELLED, "", self.clock())
            raise
        except DataUnavailable as e:
            log.warning("fetch_failed symbol=%s err=%s", symbol, e)
            await self._status(symbol, NO_DATA, str(e))
            return SymbolOutcome(symbol, NO_DATA, detail=str(e))
        except Exception as e:
            log.exception("symbol_failed symbol=%s err=%s", symbol, e)
            await self._status(symbol, ERROR, repr(e))
            return SymbolOutcome(symbol, ERROR, detail=repr(e))

    async def _fetch(self, symbol: str) -> CandleSeries:
        timeout = float(self.cfg.provider.fetch_timeout_s)
        try:
            return await asyncio.wait_for(
                self.provider.fetch_candles(symbol, self.interval, self.lookback),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            raise DataUnavailable(f"{symbol}: fetch timed out after {timeout:g}s") from e

    async def _evaluate(self, symbol: str, series: CandleSeries, now: datetime) -> SymbolOutcome:
        try:
            signal = self.build_signal(symbol, series, now)
        except (InsufficientHistory, ComputationError) as e:
            log.info("symbol_hold symbol=%s reason=%s", symbol, e)
            await self._status(symbol, HOLDING, str(e))
            return SymbolOutcome(symbol, HOLDING, detail=str(e))

        if signal is None:
            await self._status(symbol, HOLDING)
            return SymbolOutcome(symbol, HOLDING)

        if not self.store.offer(signal):
            await self._status(symbol, DEDUPED, signal.direction)
            return SymbolOutcome(symbol, DEDUPED, signal=signal)

        log.info(
            "signal %s %s %s conf=%.2f tier=%s entry=%s sl=%s tp=%s met=%d/%d signal_id=%s",
            signal.symbol,
            signal.interval,
            signal.direction,
            signal.confidence_percent,
            signal.confidence_tier,
            signal.entry_price,
            signal.stop_loss,
            signal.take_profit,
            signal.conditions_met,
            signal.conditions_total,
            signal.signal_id,
        )
        await self._status(symbol, SIGNAL, signal.direction)
        try:
            await self.publisher.publish(signal)
        except Exception as e:
            log.warning("publish_failed symbol=%s signal_id=%s err=%s", symbol, signal.signal_id, e)
        return SymbolOutcome(symbol, SIGNAL, signal=signal)

    def build_signal(self, symbol: str, series: CandleSeries, now: datetime) -> Optional[Signal]:
        """Synchronous part of the pipeline; returns None for HOLD."""
        p = self.profile
        snap = build_snapshot(series, p)
        result = classify(snap, p)
        if result.direction == HOLD:
            return None

        conf = score_confidence(result.direction, snap, p)
        inst = classify_instrument(symbol, self.cfg.risk.instruments)
        vol = select_volatility(p.risk, snap.atr, snap.range_high_low)
        levels = compute_levels(snap.last_price, result.direction, inst, vol, p.risk)
        reasons: Tuple[str, ...] = tuple(c.label for c in result.conditions.satisfied(result.direction))

        return Signal(
            symbol=symbol,
            direction=result.direction,
            timestamp=now,
            entry_price=quantize(snap.last_price, inst.precision),
            stop_loss=levels.stop_loss,
            take_profit=levels.take_profit,
            confidence_percent=conf.percent,
            confidence_tier=conf.tier,
            reasons=reasons,
            profile=p.name,
            interval=series.interval,
            candle_time=snap.candle_time,
            conditions_met=result.met,
            conditions_total=result.total,
            stop_pct=levels.stop_pct,
            target_pct=levels.target_pct,
            target_pips=levels.target_pips,
        ).with_id()

    async def _status(
        self,
        symbol: str,
        status: str,
        detail: str = "",
        *,
        at: Optional[datetime] = None,
        record: bool = True,
    ) -> None:
        if record:
            self.store.set_status(symbol, status, detail, at or self.clock())
        try:
            await self.publisher.status(symbol, status, detail)
        except Exception as e:
            log.warning("status_publish_failed symbol=%s status=%s err=%s", symbol, status, e)

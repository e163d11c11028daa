import asyncio
from datetime import datetime, timedelta, timezone

from confluence_signal_bot.config import build_config
from confluence_signal_bot.errors import DataUnavailable
from confluence_signal_bot.models import BUY, LOW, Candle, CandleSeries
from confluence_signal_bot.publisher import MemoryPublisher
from confluence_signal_bot.runner import (
    CANCELLED,
    DEDUPED,
    ERROR,
    HOLDING,
    NO_DATA,
    SIGNAL,
    SUPPRESSED,
    SignalRunner,
)

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)
# Wednesday 09:00 UTC, well clear of the default news events
QUIET = datetime(2024, 1, 3, 9, 0, tzinfo=timezone.utc)


def _series(closes, symbol: str = "EUR/USD") -> CandleSeries:
    candles = []
    prev = closes[0]
    for i, c in enumerate(closes):
        candles.append(Candle(T0 + timedelta(minutes=15 * i), prev, max(prev, c), min(prev, c), c, 100.0))
        prev = c
    return CandleSeries.from_candles(symbol, "15min", candles)


def _capitulation():
    return [400.0 - i for i in range(180)] + [221.0] * 19 + [220.0]


class FakeProvider:
    def __init__(self, closes_by_symbol=None, *, gate=None, delay=0.0):
        self.closes_by_symbol = closes_by_symbol or {}
        self.gate = gate
        self.delay = delay
        self.calls = []

    async def fetch_candles(self, symbol, interval, limit):
        self.calls.append(symbol)
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if symbol == "BOOM":
            raise RuntimeError("provider bug")
        closes = self.closes_by_symbol.get(symbol)
        if closes is None:
            raise DataUnavailable(f"{symbol}: unknown symbol")
        return _series(closes, symbol)

    async def close(self):
        return None


class Clock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def _runner(symbols, fake, *, now=QUIET, **sections):
    raw = {
        "provider": {"symbols": list(symbols), "fetch_timeout_s": 5},
        "schedule": {"concurrency": 2, "interval_s": 3600},
        "telegram": {"enabled": False},
    }
    for section, values in sections.items():
        raw.setdefault(section, {}).update(values)
    cfg = build_config(raw)
    publisher = MemoryPublisher()
    clock = Clock(now)
    return SignalRunner(cfg, fake, publisher, clock=clock), publisher, clock


def test_one_bad_symbol_does_not_abort_the_cycle():
    provider = FakeProvider({"EUR/USD": _capitulation(), "SHORT": [1.0] * 50})
    runner, pub, _ = _runner(["EUR/USD", "MISSING", "SHORT", "BOOM"], provider)

    report = asyncio.run(runner.run_cycle())

    assert report.results["EUR/USD"].status == SIGNAL
    assert report.results["MISSING"].status == NO_DATA
    assert report.results["SHORT"].status == HOLDING
    assert report.results["BOOM"].status == ERROR
    assert len(pub.published) == 1

    sig = pub.published[0]
    assert sig.direction == BUY
    assert sig.confidence_percent == 45.83
    assert sig.confidence_tier == LOW
    assert sig.stop_loss < sig.entry_price < sig.take_profit
    assert sig.timestamp == QUIET
    assert runner.store.latest("EUR/USD") is sig
    assert pub.statuses_for("MISSING") == ["analyzing", NO_DATA]
    assert runner.store.state("MISSING").status == NO_DATA


def test_identical_signal_inside_cooldown_is_published_once():
    provider = FakeProvider({"EUR/USD": _capitulation()})
    runner, pub, clock = _runner(["EUR/USD"], provider)

    async def _run():
        first = await runner.run_cycle()
        clock.now += timedelta(minutes=15)
        second = await runner.run_cycle()
        clock.now += timedelta(minutes=46)
        third = await runner.run_cycle()
        return first, second, third

    first, second, third = asyncio.run(_run())
    assert first.results["EUR/USD"].status == SIGNAL
    assert second.results["EUR/USD"].status == DEDUPED
    assert third.results["EUR/USD"].status == SIGNAL
    assert len(pub.published) == 2
    assert runner.store.latest("EUR/USD") is third.results["EUR/USD"].signal


def test_news_window_suppresses_everything():
    provider = FakeProvider({"EUR/USD": _capitulation()})
    runner, pub, _ = _runner(["EUR/USD"], provider, now=datetime(2024, 1, 3, 12, 45, tzinfo=timezone.utc))

    report = asyncio.run(runner.run_cycle())

    assert report.results["EUR/USD"].status == SUPPRESSED
    assert provider.calls == []
    assert pub.published == []
    assert runner.store.latest("EUR/USD") is None
    assert runner.store.state("EUR/USD").status == "idle"


def test_news_filter_can_be_disabled():
    provider = FakeProvider({"EUR/USD": _capitulation()})
    runner, pub, _ = _runner(
        ["EUR/USD"], provider, now=datetime(2024, 1, 3, 12, 45, tzinfo=timezone.utc), news={"enabled": False}
    )
    report = asyncio.run(runner.run_cycle())
    assert report.results["EUR/USD"].status == SIGNAL


def test_force_refresh_joins_the_in_flight_pipeline():
    async def _run():
        gate = asyncio.Event()
        provider = FakeProvider({"EUR/USD": _capitulation()}, gate=gate)
        runner, pub, _ = _runner(["EUR/USD"], provider)

        periodic = asyncio.ensure_future(runner.run_cycle())
        for _ in range(5):
            await asyncio.sleep(0)
        manual = asyncio.ensure_future(runner.force_refresh(["EUR/USD"]))
        for _ in range(5):
            await asyncio.sleep(0)
        gate.set()
        a = await periodic
        b = await manual
        return provider, pub, a, b

    provider, pub, a, b = asyncio.run(_run())
    assert provider.calls == ["EUR/USD"]
    assert a.results["EUR/USD"] is b.results["EUR/USD"]
    assert len(pub.published) == 1


def test_stop_cancels_in_flight_fetches_without_publishing():
    async def _run():
        gate = asyncio.Event()  # never set
        provider = FakeProvider({"EUR/USD": _capitulation(), "GBP/USD": _capitulation()}, gate=gate)
        runner, pub, _ = _runner(["EUR/USD", "GBP/USD"], provider)

        cycle = asyncio.ensure_future(runner.run_cycle())
        for _ in range(5):
            await asyncio.sleep(0)
        await runner.stop()
        report = await cycle
        return runner, pub, report

    runner, pub, report = asyncio.run(_run())
    assert {o.status for o in report.results.values()} == {CANCELLED}
    assert pub.published == []
    assert runner.store.signals() == []
    assert runner.store.state("EUR/USD").status == CANCELLED
    assert runner.store.state("GBP/USD").status == CANCELLED
    # recorded in the store only; the publisher never hears about it
    assert CANCELLED not in pub.statuses_for("EUR/USD")


def test_fetch_timeout_is_reported_as_no_data():
    provider = FakeProvider({"EUR/USD": _capitulation()}, delay=1.0)
    runner, pub, _ = _runner(["EUR/USD"], provider, provider={"fetch_timeout_s": 0.05})

    report = asyncio.run(runner.run_cycle())

    outcome = report.results["EUR/USD"]
    assert outcome.status == NO_DATA
    assert "timed out" in outcome.detail
    assert pub.published == []


def test_dismiss_forwards_delete_to_the_publisher():
    provider = FakeProvider({"EUR/USD": _capitulation()})
    runner, pub, _ = _runner(["EUR/USD"], provider)

    async def _run():
        report = await runner.run_cycle()
        sig = report.results["EUR/USD"].signal
        dropped = await runner.dismiss(sig.signal_id)
        missing = await runner.dismiss("nope")
        return sig, dropped, missing

    sig, dropped, missing = asyncio.run(_run())
    assert dropped is sig
    assert missing is None
    assert pub.deleted == [sig.signal_id]
    assert runner.store.latest("EUR/USD") is None


def test_run_forever_runs_a_cycle_and_stops():
    async def _run():
        provider = FakeProvider({"EUR/USD": _capitulation()})
        runner, pub, _ = _runner(["EUR/USD"], provider)
        loop_task = asyncio.ensure_future(runner.run_forever())
        for _ in range(200):
            if pub.published:
                break
            await asyncio.sleep(0)
        await runner.stop()
        await asyncio.wait_for(loop_task, timeout=1.0)
        return pub

    pub = asyncio.run(_run())
    assert len(pub.published) == 1

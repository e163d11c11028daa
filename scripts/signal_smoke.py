from __future__ import annotations

from datetime import datetime, timedelta, timezone

from confluence_signal_bot.classifier import classify
from confluence_signal_bot.models import Candle, CandleSeries
from confluence_signal_bot.profiles import PROFILES
from confluence_signal_bot.scoring import recommendation, score_confidence
from confluence_signal_bot.snapshot import build_snapshot

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def series_from_closes(closes, interval: str = "15min") -> CandleSeries:
    candles = []
    prev = closes[0]
    for i, c in enumerate(closes):
        candles.append(Candle(T0 + timedelta(minutes=15 * i), prev, max(prev, c), min(prev, c), c, 100.0))
        prev = c
    return CandleSeries.from_candles("EUR/USD", interval, candles)


def capitulation_closes():
    """Long decline, flat base, then one more down bar."""
    closes = [400.0 - i for i in range(180)]
    closes += [221.0] * 19
    closes.append(220.0)
    return closes


def run_case(name: str, closes):
    series = series_from_closes(closes)
    for prof in PROFILES.values():
        if len(series) < prof.min_history:
            print(f"{name}/{prof.name}: skipped (needs {prof.min_history} candles)")
            continue
        snap = build_snapshot(series, prof)
        res = classify(snap, prof)
        conf = score_confidence(res.direction, snap, prof)
        print(
            f"{name}/{prof.name}: {res.direction} met={res.met}/{res.total} "
            f"conf={conf.percent} {conf.tier} rsi={snap.rsi:.1f} hist={snap.macd.histogram:.4f}"
        )
        if conf.percent:
            print("   ", recommendation(conf.percent))


def main():
    run_case("capitulation", capitulation_closes())
    run_case("flat", [100.0] * 220)


if __name__ == "__main__":
    main()

from datetime import datetime, timedelta, timezone

from confluence_signal_bot.models import BEARISH, BULLISH, NEUTRAL, Candle, CandleSeries
from confluence_signal_bot.price_action import analyze_price_action, detect_pin_bar, detect_price_action

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _c(idx: int, o: float, h: float, l: float, c: float, v: float = 1.0) -> Candle:
    return Candle(T0 + timedelta(minutes=15 * idx), o, h, l, c, v)


def test_three_candle_label():
    assert detect_price_action([1.0, 2.0, 3.0]) == BULLISH
    assert detect_price_action([3.0, 2.0, 1.0]) == BEARISH
    assert detect_price_action([1.0, 2.0, 1.0]) == NEUTRAL
    assert detect_price_action([5.0, 5.0, 5.0]) == NEUTRAL
    # only the last three closes count
    assert detect_price_action([9.0, 1.0, 2.0, 3.0]) == BULLISH


def test_price_action_needs_three_closes():
    assert detect_price_action([1.0, 2.0]) is None


def test_pin_bar_direction_follows_the_body():
    bull = detect_pin_bar(_c(0, 10.0, 11.0, 9.0, 10.2))
    assert bull.present and bull.direction == BULLISH

    bear = detect_pin_bar(_c(0, 10.2, 11.0, 9.0, 10.0))
    assert bear.present and bear.direction == BEARISH

    doji = detect_pin_bar(_c(0, 10.0, 11.0, 9.0, 10.0))
    assert doji.present and doji.direction == NEUTRAL


def test_big_body_or_zero_range_is_not_a_pin_bar():
    assert not detect_pin_bar(_c(0, 9.0, 11.0, 9.0, 11.0)).present
    assert not detect_pin_bar(_c(0, 10.0, 10.0, 10.0, 10.0)).present


def test_pin_bar_breaks_a_neutral_tape():
    candles = [
        _c(0, 10.0, 10.5, 9.5, 10.0),
        _c(1, 10.0, 10.5, 9.5, 10.3),
        _c(2, 10.3, 10.8, 8.0, 10.1),  # long lower wick, small bearish body
    ]
    pa = analyze_price_action(CandleSeries.from_candles("EUR/USD", "15min", candles))
    assert pa.has_pin_bar
    assert pa.label == BEARISH
    assert pa.pin_bar_direction == BEARISH


def test_directional_tape_wins_over_pin_bar():
    candles = [
        _c(0, 10.0, 10.5, 9.5, 10.0),
        _c(1, 10.0, 10.5, 9.5, 10.2),
        _c(2, 10.3, 11.0, 9.0, 10.4),
    ]
    pa = analyze_price_action(CandleSeries.from_candles("EUR/USD", "15min", candles))
    assert pa.label == BULLISH
    assert pa.has_pin_bar

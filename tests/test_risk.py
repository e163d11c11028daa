import pytest

from confluence_signal_bot.models import BUY, HOLD, SELL
from confluence_signal_bot.profiles import CLASSIC, CRYPTO_MOMENTUM, FX_STRUCTURE
from confluence_signal_bot.risk import (
    CRYPTO,
    FX,
    FX_JPY,
    METAL,
    RiskPolicy,
    classify_instrument,
    compute_levels,
    quantize,
    select_volatility,
)


@pytest.mark.parametrize(
    "symbol,asset_class,pip,precision",
    [
        ("EUR/USD", FX, 0.0001, 5),
        ("EUR/USD:FX", FX, 0.0001, 5),
        ("GBPUSD", FX, 0.0001, 5),
        ("USD/JPY", FX_JPY, 0.01, 3),
        ("XAU/USD", METAL, 0.1, 2),
        ("XAG/USD", METAL, 0.01, 3),
        ("BTC/USDT", CRYPTO, 0.001, 5),
        ("ETHUSDT", CRYPTO, 0.001, 5),
        ("SOMETHING", CRYPTO, 0.001, 5),
    ],
)
def test_instrument_classes(symbol, asset_class, pip, precision):
    spec = classify_instrument(symbol)
    assert spec.asset_class == asset_class
    assert spec.pip_size == pip
    assert spec.precision == precision


def test_instrument_overrides_from_config():
    spec = classify_instrument("XAU/USD", {"XAU/USD": {"pip_size": 0.01, "precision": 3}})
    assert spec.pip_size == 0.01
    assert spec.precision == 3
    assert spec.asset_class == METAL


def test_forty_pip_stop_on_eurusd():
    inst = classify_instrument("EUR/USD")
    lv = compute_levels(1.2000, BUY, inst, 0.0, CLASSIC.risk)
    assert lv.stop_loss == 1.196
    assert lv.take_profit == 1.208
    assert lv.stop_distance == pytest.approx(0.004)
    assert lv.target_pips == 80.0
    assert lv.stop_pct == 0.33


def test_sell_is_mirrored():
    inst = classify_instrument("EUR/USD")
    lv = compute_levels(1.2000, SELL, inst, 0.0, CLASSIC.risk)
    assert lv.stop_loss == 1.204
    assert lv.take_profit == 1.192


def test_hold_keeps_both_levels_on_entry():
    inst = classify_instrument("EUR/USD")
    lv = compute_levels(1.23456789, HOLD, inst, 0.01, CLASSIC.risk)
    assert lv.stop_loss == lv.take_profit == 1.23457
    assert lv.stop_distance == 0.0


def test_volatility_beats_the_floor():
    inst = classify_instrument("EUR/USD")
    # 50 pips of ATR x 1.5 = 75 pips, above the 10 pip floor
    lv = compute_levels(1.1000, BUY, inst, 0.0050, FX_STRUCTURE.risk)
    assert lv.stop_loss == pytest.approx(1.0925)
    assert lv.take_profit == pytest.approx(1.1150)


def test_percent_floor_for_crypto_momentum():
    inst = classify_instrument("BTC/USDT")
    small_range = compute_levels(100.0, BUY, inst, 0.5, CRYPTO_MOMENTUM.risk)
    assert small_range.stop_loss == 98.5
    assert small_range.take_profit == 103.0
    assert small_range.stop_pct == 1.5
    assert small_range.target_pct == 3.0

    wide_range = compute_levels(100.0, SELL, inst, 2.0, CRYPTO_MOMENTUM.risk)
    assert wide_range.stop_loss == 103.0
    assert wide_range.take_profit == 94.0


def test_levels_never_go_negative():
    inst = classify_instrument("EUR/USD")
    lv = compute_levels(0.002, BUY, inst, 0.0, CLASSIC.risk)
    assert lv.stop_loss == 0.0
    assert lv.take_profit > 0.002


def test_select_volatility_by_source():
    assert select_volatility(RiskPolicy(volatility_source="atr"), 1.5, 9.0) == 1.5
    assert select_volatility(RiskPolicy(volatility_source="range"), 1.5, 9.0) == 9.0
    assert select_volatility(RiskPolicy(volatility_source="none"), 1.5, 9.0) == 0.0
    assert select_volatility(RiskPolicy(volatility_source="atr"), None, 9.0) == 0.0


def test_quantize_rounds_half_up():
    assert quantize(1.000015, 5) == 1.00002
    assert quantize(2345.675, 2) == 2345.68

import numpy as np
import pytest

from conftest import make_candles
from reversal.indicators import (
    calculate_all_indicators,
    calculate_bollinger_bands,
    calculate_ema,
    calculate_macd,
    calculate_rsi,
    calculate_sma,
)


def test_sma_pads_with_nan():
    sma = calculate_sma([1, 2, 3, 4, 5], 3)
    assert np.isnan(sma[:2]).all()
    assert sma[2:].tolist() == pytest.approx([2, 3, 4])


def test_ema_is_seeded_with_sma():
    ema = calculate_ema([1, 2, 3, 4, 5], 3)
    assert np.isnan(ema[:2]).all()
    assert ema[2:].tolist() == pytest.approx([2, 3, 4])


def test_ema_shorter_than_period_is_all_nan():
    assert np.isnan(calculate_ema([1, 2], 5)).all()


def test_rsi_is_100_when_there_are_no_losses():
    rsi = calculate_rsi(make_candles([float(i) for i in range(1, 31)]))
    assert np.isnan(rsi[:14]).all()
    assert rsi[14:].tolist() == pytest.approx([100.0] * 16)


def test_rsi_is_zero_when_prices_only_fall():
    rsi = calculate_rsi(make_candles([float(100 - i) for i in range(30)]))
    assert rsi[-1] == pytest.approx(0.0)


def test_rsi_uses_wilder_smoothing():
    # 변화량: 0 x14, +1, -1
    rsi = calculate_rsi(make_candles([100.0] * 15 + [101.0, 100.0]))
    assert rsi[15] == pytest.approx(100.0)

    avg_gain = (1 / 14) * 13 / 14
    avg_loss = 1 / 14
    assert rsi[16] == pytest.approx(100 - 100 / (1 + avg_gain / avg_loss))


def test_macd_signal_starts_after_slow_and_signal_periods():
    macd = calculate_macd(make_candles([100 + np.sin(i / 3) for i in range(40)]))
    assert np.isnan(macd["macd"][:25]).all()
    assert not np.isnan(macd["macd"][25])
    assert np.isnan(macd["signal"][:33]).all()
    assert not np.isnan(macd["signal"][33])
    assert macd["histogram"][-1] == pytest.approx(macd["macd"][-1] - macd["signal"][-1])


def test_bollinger_bands_collapse_on_constant_prices():
    bands = calculate_bollinger_bands(make_candles([50.0] * 25))
    assert bands["upper"][-1] == pytest.approx(50.0)
    assert bands["lower"][-1] == pytest.approx(50.0)


def test_all_indicators_fall_back_to_neutral_values_on_short_data():
    values = calculate_all_indicators(make_candles([10, 11, 12, 13, 14]))
    assert values.rsi == 50.0
    assert values.macd.macd == 0.0
    assert values.bollinger_bands.upper == pytest.approx(14 * 1.1)
    assert values.moving_averages.ma7 == 14
    assert values.moving_averages.ma99 == pytest.approx(12.5)


def test_all_indicators_rejects_empty_input():
    with pytest.raises(ValueError):
        calculate_all_indicators([])

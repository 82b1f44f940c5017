#reversal/indicators
"""캔들 데이터로부터 RSI, MACD, 볼린저 밴드, 이동평균을 계산합니다.

모든 시계열 함수는 입력 캔들과 같은 길이의 배열을 반환하며,
값을 정의할 수 없는 앞부분은 NaN으로 채웁니다.
"""

from typing import Dict, List, Sequence

import numpy as np
import pandas as pd

from reversal.models import (
    BollingerValues,
    Candle,
    IndicatorValues,
    MACDValues,
    MovingAverageValues,
)


def _closes(candles: List[Candle]) -> np.ndarray:
    return np.array([c.close for c in candles], dtype=float)


def calculate_sma(values: Sequence[float], period: int) -> np.ndarray:
    """단순 이동평균을 계산합니다."""
    return pd.Series(values, dtype=float).rolling(window=period).mean().to_numpy()


def calculate_ema(values: Sequence[float], period: int) -> np.ndarray:
    """지수 이동평균을 계산합니다. 첫 값은 처음 period개의 단순 평균입니다."""
    data = np.asarray(values, dtype=float)
    ema = np.full(len(data), np.nan)
    if len(data) < period:
        return ema

    k = 2 / (period + 1)
    ema[period - 1] = data[:period].mean()
    for i in range(period, len(data)):
        ema[i] = data[i] * k + ema[i - 1] * (1 - k)
    return ema


def _rsi_from_averages(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100 - 100 / (1 + rs)


def calculate_rsi(candles: List[Candle], period: int = 14) -> np.ndarray:
    """Wilder 방식의 상대강도지수(RSI)를 계산합니다."""
    closes = _closes(candles)
    rsi = np.full(len(closes), np.nan)
    if len(closes) < period + 1:
        return rsi

    deltas = np.diff(closes)
    gains = np.where(deltas > 0, deltas, 0.0)
    losses = np.where(deltas < 0, -deltas, 0.0)

    avg_gain = gains[:period].mean()
    avg_loss = losses[:period].mean()
    rsi[period] = _rsi_from_averages(avg_gain, avg_loss)

    for i in range(period + 1, len(closes)):
        avg_gain = (avg_gain * (period - 1) + gains[i - 1]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i - 1]) / period
        rsi[i] = _rsi_from_averages(avg_gain, avg_loss)

    return rsi


def calculate_macd(
    candles: List[Candle],
    fast_period: int = 12,
    slow_period: int = 26,
    signal_period: int = 9,
) -> Dict[str, np.ndarray]:
    """MACD 라인, 시그널 라인, 히스토그램을 계산합니다."""
    closes = _closes(candles)
    macd = calculate_ema(closes, fast_period) - calculate_ema(closes, slow_period)

    # 시그널 라인은 유효한 MACD 값에 대해서만 EMA를 계산한 뒤 원래 위치로 되돌림
    valid_mask = ~np.isnan(macd)
    signal = np.full(len(macd), np.nan)
    signal[valid_mask] = calculate_ema(macd[valid_mask], signal_period)

    return {"macd": macd, "signal": signal, "histogram": macd - signal}


def calculate_bollinger_bands(
    candles: List[Candle], period: int = 20, multiplier: float = 2
) -> Dict[str, np.ndarray]:
    """볼린저 밴드(상단/중심/하단)를 계산합니다. 표준편차는 모표준편차를 사용합니다."""
    closes = pd.Series(_closes(candles))
    middle = closes.rolling(window=period).mean()
    std = closes.rolling(window=period).std(ddof=0)

    return {
        "upper": (middle + multiplier * std).to_numpy(),
        "middle": middle.to_numpy(),
        "lower": (middle - multiplier * std).to_numpy(),
    }


def calculate_moving_averages(candles: List[Candle]) -> Dict[str, np.ndarray]:
    """MA20, MA50, MA200을 계산합니다."""
    closes = _closes(candles)
    return {
        "ma20": calculate_sma(closes, 20),
        "ma50": calculate_sma(closes, 50),
        "ma200": calculate_sma(closes, 200),
    }


def _last_or(series: np.ndarray, default: float) -> float:
    if len(series) == 0 or np.isnan(series[-1]):
        return float(default)
    return float(series[-1])


def calculate_all_indicators(candles: List[Candle]) -> IndicatorValues:
    """최신 캔들 기준 지표 스냅샷을 계산합니다. 데이터가 부족한 지표는 중립값을 사용합니다."""
    if not candles:
        raise ValueError("캔들 데이터가 비어 있습니다.")

    closes = _closes(candles)
    last_close = float(closes[-1])
    macd = calculate_macd(candles)
    bands = calculate_bollinger_bands(candles)
    ma99_period = max(1, min(99, len(candles) - 1))

    return IndicatorValues(
        rsi=_last_or(calculate_rsi(candles), 50.0),
        macd=MACDValues(
            macd=_last_or(macd["macd"], 0.0),
            signal=_last_or(macd["signal"], 0.0),
            histogram=_last_or(macd["histogram"], 0.0),
        ),
        bollinger_bands=BollingerValues(
            upper=_last_or(bands["upper"], last_close * 1.1),
            middle=_last_or(bands["middle"], last_close),
            lower=_last_or(bands["lower"], last_close * 0.9),
        ),
        moving_averages=MovingAverageValues(
            ma7=_last_or(calculate_sma(closes, 7), last_close),
            ma25=_last_or(calculate_sma(closes, 25), last_close),
            ma99=_last_or(calculate_sma(closes, ma99_period), last_close),
        ),
    )

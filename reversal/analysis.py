#reversal/analysis

import datetime
import logging
from typing import Dict, List, Sequence, Tuple

import aiohttp
import numpy as np

import config
from reversal.binance_client import fetch_candles_for_symbols, fetch_multi_timeframe_candles
from reversal.indicators import (
    calculate_all_indicators,
    calculate_bollinger_bands,
    calculate_macd,
    calculate_moving_averages,
    calculate_rsi,
)
from reversal.models import AnalysisResult, Candle, Signal, TimeframeReport
from reversal.state_manager import save_timeframe_reports

logger = logging.getLogger(config.APP_LOGGER_NAME)


def analyze_symbol(
    symbol: str, candles: List[Candle], timeframe: str = config.DEFAULT_INTERVAL
) -> AnalysisResult:
    """마지막 캔들 기준으로 6가지 반전 신호를 검사하여 반전 확률을 계산합니다."""
    if not candles:
        raise ValueError(f"{symbol}: 캔들 데이터가 비어 있습니다.")

    last = len(candles) - 1
    last_candle = candles[last]
    result = AnalysisResult(
        symbol=symbol,
        price=last_candle.close,
        timeframe=timeframe,
        timestamp=datetime.datetime.now(datetime.timezone.utc),
    )
    if last < 1:
        return result

    prev_candle = candles[last - 1]
    rsi = calculate_rsi(candles)
    bands = calculate_bollinger_bands(candles)
    macd = calculate_macd(candles)
    mas = calculate_moving_averages(candles)

    signals: List[Signal] = []

    # --- 1. RSI 과매수 ---
    if rsi[last] > config.RSI_OVERBOUGHT:
        signals.append(
            Signal(
                name="RSI 과매수",
                description=f"RSI(14) = {rsi[last]:.2f}, 과매수 구간({config.RSI_OVERBOUGHT}) 초과",
                strength=min(100.0, (rsi[last] - config.RSI_OVERBOUGHT) * 3.33),
            )
        )

    # --- 2. 볼린저 밴드 상단 근접 ---
    band_half_width = bands["upper"][last] - bands["middle"][last]
    if band_half_width > 0:
        ratio = (last_candle.close - bands["middle"][last]) / band_half_width
        if ratio > config.BB_UPPER_RATIO_THRESHOLD:
            signals.append(
                Signal(
                    name="볼린저 밴드 상단 근접",
                    description=f"가격이 밴드 상단 방향 {ratio * 100:.2f}% 위치",
                    strength=min(100.0, ratio * 100),
                )
            )

    # --- 3. MACD 데드크로스 ---
    if (
        macd["macd"][last] < macd["signal"][last]
        and macd["macd"][last - 1] > macd["signal"][last - 1]
    ):
        signals.append(
            Signal(
                name="MACD 데드크로스",
                description="MACD 라인이 시그널 라인을 하향 돌파, 모멘텀 약화",
                strength=90,
            )
        )

    # --- 4. 이동평균 데드크로스 ---
    if mas["ma20"][last] < mas["ma50"][last] and mas["ma20"][last - 1] > mas["ma50"][last - 1]:
        signals.append(
            Signal(
                name="이동평균 데드크로스",
                description="MA20이 MA50을 하향 돌파",
                strength=85,
            )
        )

    # --- 5. 장기 지지선(MA200) 이탈 ---
    if last_candle.close < mas["ma200"][last] and prev_candle.close > mas["ma200"][last - 1]:
        signals.append(
            Signal(
                name="장기 지지선 이탈",
                description="가격이 MA200 지지선을 하향 이탈",
                strength=80,
            )
        )

    # --- 6. 거래량 급증 대비 가격 정체 ---
    if (
        last_candle.volume > prev_candle.volume * config.VOLUME_SPIKE_RATIO
        and last_candle.close <= prev_candle.close * config.VOLUME_SPIKE_MAX_PRICE_GAIN
    ):
        signals.append(
            Signal(
                name="거래량 급증 후 가격 정체",
                description="거래량 50% 이상 증가, 가격 상승폭 1% 미만",
                strength=75,
            )
        )

    if signals:
        result.probability = calculate_probability(signals)
        result.signals = signals
        logger.info(
            f"{symbol}: 반전 신호 {len(signals)}개 감지, 반전 확률 {result.probability:.2f}%"
        )

    return result


def calculate_probability(signals: List[Signal]) -> float:
    """신호 강도의 평균을 반전 확률로 사용하고, 복수 신호 발생 시 가중치를 적용합니다."""
    if not signals:
        return 0.0

    total_strength = sum(s.strength for s in signals)
    probability = min(100.0, total_strength / (len(signals) * 100) * 100)
    if len(signals) >= 2:
        probability = min(100.0, probability * config.MULTI_SIGNAL_BOOST)
    return probability


async def analyze_symbols(
    session: aiohttp.ClientSession,
    symbols: Sequence[Tuple[str, float]],
    interval: str = config.DEFAULT_INTERVAL,
    gcs_client=None,
) -> List[AnalysisResult]:
    """(심볼, 최신 가격) 목록에 대해 캔들을 수집하고 반전 확률을 분석합니다."""
    if not symbols:
        return []

    candles_data = await fetch_candles_for_symbols(
        session,
        [symbol for symbol, _ in symbols],
        interval=interval,
        limit=config.ANALYSIS_CANDLE_LIMIT,
        gcs_client=gcs_client,
    )

    results = []
    for symbol, last_price in symbols:
        candles = candles_data.get(symbol, [])
        if len(candles) < config.MIN_CANDLES_FOR_ANALYSIS:
            logger.warning(f"{symbol} 캔들 데이터 부족({len(candles)}개), 분석을 건너뜁니다.")
            continue

        try:
            result = analyze_symbol(symbol, candles, interval)
            result.price = last_price
            results.append(result)
        except Exception as e:
            logger.warning(f"{symbol} 분석 중 오류 발생: {e}")
            continue

    return results


def has_bullish_macd_divergence(
    candles: List[Candle], histogram: np.ndarray, lookback: int = 30
) -> bool:
    """가격은 저점을 낮췄으나 MACD 히스토그램은 저점을 높인 상승 다이버전스를 확인합니다."""
    if len(candles) < lookback or len(histogram) < lookback:
        return False

    recent = candles[-lookback:]
    recent_histogram = histogram[-lookback:]

    price_min_index = 0
    histogram_min_index = 0
    for i in range(1, lookback):
        if recent[i].low < recent[price_min_index].low:
            price_min_index = i
        if recent_histogram[i] < recent_histogram[histogram_min_index]:
            histogram_min_index = i

    return bool(
        price_min_index > histogram_min_index
        and recent[price_min_index].low < recent[histogram_min_index].low
        and recent_histogram[price_min_index] > recent_histogram[histogram_min_index]
    )


def build_timeframe_report(timeframe: str, candles: List[Candle]) -> TimeframeReport:
    """단일 시간 프레임의 과매도 및 다이버전스 리포트를 생성합니다."""
    rsi = calculate_rsi(candles)
    macd = calculate_macd(candles)

    def _last(series: np.ndarray):
        return None if np.isnan(series[-1]) else float(series[-1])

    last_rsi = _last(rsi)
    return TimeframeReport(
        timeframe=timeframe,
        last_close=candles[-1].close,
        rsi=last_rsi,
        macd=_last(macd["macd"]),
        signal=_last(macd["signal"]),
        histogram=_last(macd["histogram"]),
        is_oversold=last_rsi is not None and last_rsi < 30,
        has_divergence=has_bullish_macd_divergence(candles, macd["histogram"]),
        indicators=calculate_all_indicators(candles),
    )


def is_strong_reversal(reports: Dict[str, TimeframeReport]) -> bool:
    """과매도와 상승 다이버전스가 동시에 나타난 시간 프레임이 있는지 확인합니다."""
    return any(r.is_oversold and r.has_divergence for r in reports.values())


async def run_timeframe_analysis(
    session: aiohttp.ClientSession, symbol: str, gcs_client=None
) -> Dict[str, TimeframeReport]:
    """여러 시간 프레임에서 과매도와 MACD 다이버전스를 분석하고 결과를 저장합니다."""
    logger.info(f"{symbol} 시간 프레임별 분석 시작: {', '.join(config.TIMEFRAMES)}")
    candles_by_tf = await fetch_multi_timeframe_candles(session, symbol, gcs_client=gcs_client)

    reports: Dict[str, TimeframeReport] = {}
    for timeframe, candles in candles_by_tf.items():
        if len(candles) < config.MIN_CANDLES_FOR_ANALYSIS:
            logger.warning(f"{symbol} {timeframe} 데이터 부족, 분석을 건너뜁니다.")
            continue

        report = build_timeframe_report(timeframe, candles)
        reports[timeframe] = report
        rsi_str = f"{report.rsi:.2f}" if report.rsi is not None else "N/A"
        logger.info(
            f"{symbol} {timeframe}: RSI={rsi_str}, 과매도={report.is_oversold}, "
            f"다이버전스={report.has_divergence}"
        )

    await save_timeframe_reports(symbol, reports, gcs_client=gcs_client)

    if is_strong_reversal(reports):
        logger.info(f"{symbol}: 강한 반전 신호가 감지되었습니다!")
    else:
        logger.info(f"{symbol}: 뚜렷한 반전 신호가 없습니다.")

    return reports

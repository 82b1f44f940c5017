# reversal/backtest/main

import asyncio
import datetime
import logging
import random
from typing import Dict, List, Optional, Tuple

import aiohttp

import config
from reversal.analysis import analyze_symbols
from reversal.backtest.engine import BacktestTracker
from reversal.binance_client import (
    BinanceAPIError,
    fetch_candles,
    fetch_daily_candles_from,
    fetch_historical_gainers,
)
from reversal.helpers import percent_change
from reversal.models import (
    AnalysisResult,
    BacktestDayReport,
    GainerInfo,
    SignalEvaluation,
    VerificationDetail,
    VerificationResult,
)
from reversal.state_manager import load_backtest_result, save_backtest_result

logger = logging.getLogger(config.APP_LOGGER_NAME)

DAILY_ANALYSIS_STRATEGY = "daily_analysis"
VERIFICATION_STRATEGY = "verification"
EVALUATION_STRATEGY = "signal_evaluation"


def _parse_date(value: str) -> datetime.date:
    return datetime.datetime.strptime(value, "%Y-%m-%d").date()


def _day_start(day: datetime.date) -> datetime.datetime:
    return datetime.datetime.combine(day, datetime.time.min, tzinfo=datetime.timezone.utc)


def resolve_date_range(
    start_date: Optional[str],
    end_date: Optional[str],
    today: Optional[datetime.date] = None,
) -> Tuple[datetime.date, datetime.date]:
    """기본값을 적용한 백테스트 기간을 계산합니다.

    시작일이 없으면 오늘로부터 30일 전, 종료일이 없으면 시작일로부터 7일 후입니다.
    """
    today = today or datetime.datetime.now(datetime.timezone.utc).date()
    start = (
        _parse_date(start_date)
        if start_date
        else today - datetime.timedelta(days=config.BACKTEST_DEFAULT_LOOKBACK_DAYS)
    )
    end = (
        _parse_date(end_date)
        if end_date
        else start + datetime.timedelta(days=config.BACKTEST_DEFAULT_SPAN_DAYS)
    )
    return start, end


async def run_backtest(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    interval: str = config.DEFAULT_INTERVAL,
    gcs_client=None,
) -> List[BacktestDayReport]:
    """지정한 기간의 각 날짜에 대해 모니터링 파이프라인을 재현합니다."""
    start, end = resolve_date_range(start_date, end_date)
    if end < start:
        logger.error(f"종료일({end})이 시작일({start})보다 빠릅니다.")
        return []

    logger.info(f"백테스트 시작: {start} ~ {end}, 시간 간격: {interval}")
    started_at = datetime.datetime.now()
    tracker = BacktestTracker()
    reports: List[BacktestDayReport] = []

    try:
        async with aiohttp.ClientSession() as session:
            current = start
            while current <= end:
                day = current.isoformat()

                try:
                    gainers = await fetch_historical_gainers(
                        session, day, config.BACKTEST_GAINERS_LIMIT
                    )
                except BinanceAPIError as e:
                    logger.error(f"{day} 등락률 상위 목록 조회 실패: {e}")
                    gainers = []

                if not gainers:
                    logger.warning(f"{day} 과거 등락률 데이터가 없어 모의 데이터를 사용합니다.")
                    gainers = await generate_mock_gainers(session)
                else:
                    logger.info(f"{day} 등락률 상위 {len(gainers)}개 심볼 확보")

                report, results = await process_day(
                    session, tracker, day, gainers, interval, gcs_client
                )
                reports.append(report)

                if current > start:
                    await verify_backtest_results(session, day, gcs_client)
                await evaluate_signals(session, day, results, gcs_client)

                current += datetime.timedelta(days=1)
                await asyncio.sleep(config.BACKTEST_DAY_DELAY_SECONDS)

        logger.info(f"백테스트 완료: {start} ~ {end}")

    except Exception as e:
        logger.error(f"백테스트 진행 중 오류 발생: {e}", exc_info=True)

    _print_summary(reports, started_at)
    return reports


async def process_day(
    session: aiohttp.ClientSession,
    tracker: BacktestTracker,
    day: str,
    gainers: List[GainerInfo],
    interval: str,
    gcs_client=None,
) -> Tuple[BacktestDayReport, List[AnalysisResult]]:
    """하루치 데이터를 분석하고 추적 상태를 갱신한 뒤 일별 리포트를 저장합니다."""
    logger.info(f"{day} 데이터 처리 중...")

    results = await analyze_symbols(
        session, [(g.symbol, g.last_price) for g in gainers], interval, gcs_client
    )
    results_by_symbol = {r.symbol: r for r in results}

    tracker.observe_day(gainers, results_by_symbol, _day_start(_parse_date(day)))
    uptrend_failures, downtrend_confirmed = tracker.collect_signals(results_by_symbol)

    report = BacktestDayReport(
        date=day,
        interval=interval,
        all_symbols=tracker.to_records(),
        uptrend_failure_signals=uptrend_failures,
        downtrend_confirmed_signals=downtrend_confirmed,
        total_tracked=len(tracker),
        total_uptrend_failure=len(uptrend_failures),
        total_downtrend_confirmed=len(downtrend_confirmed),
    )
    await save_backtest_result(
        f"{day}_analysis", report.model_dump(mode="json"), DAILY_ANALYSIS_STRATEGY, gcs_client
    )

    logger.info(f"{day} 분석 완료, 현재 추적 중인 심볼 {len(tracker)}개")
    for r in uptrend_failures:
        logger.info(
            f"- [상승 피로] {r.symbol}: 반전 확률 {r.probability:.2f}%, 현재가 {r.price}, 최고가 {r.highest_price}"
        )
    for r in downtrend_confirmed:
        logger.info(
            f"- [하락 확정] {r.symbol}: 고점 대비 {r.drop_percent or 0:.2f}% 하락, 현재가 {r.price}, 최고가 {r.highest_price}"
        )

    return report, results


async def verify_backtest_results(
    session: aiohttp.ClientSession, day: str, gcs_client=None
) -> Optional[VerificationResult]:
    """전일 보고된 신호를 다음 날 실제 종가 변동과 비교하여 정확도를 검증합니다."""
    prev_day = (_parse_date(day) - datetime.timedelta(days=1)).isoformat()
    data = await load_backtest_result(f"{prev_day}_analysis", DAILY_ANALYSIS_STRATEGY, gcs_client)
    if not data:
        logger.info(f"{prev_day} 백테스트 신호가 없어 검증을 건너뜁니다.")
        return None

    report = BacktestDayReport.model_validate(data)
    signals: Dict[str, AnalysisResult] = {}
    for r in report.uptrend_failure_signals + report.downtrend_confirmed_signals:
        signals.setdefault(r.symbol, r)

    if not signals:
        logger.info(f"{prev_day} 검증할 신호가 없습니다.")
        return None

    verification = VerificationResult(date=day, total_signals=len(signals))
    for symbol, signal in signals.items():
        try:
            candles = await fetch_daily_candles_from(session, symbol, prev_day, 2)
        except BinanceAPIError as e:
            logger.warning(f"{symbol} 검증용 가격 조회 실패: {e}")
            continue

        if len(candles) < 2:
            logger.warning(f"{symbol} 가격 데이터 부족으로 검증할 수 없습니다.")
            continue

        actual_change = percent_change(candles[1].close, candles[0].close)
        is_correct = (signal.probability > 50 and actual_change < 0) or (
            signal.probability <= 50 and actual_change >= 0
        )
        if is_correct:
            verification.correct_predictions += 1
        else:
            verification.incorrect_predictions += 1

        verification.details.append(
            VerificationDetail(
                symbol=symbol,
                predicted_probability=signal.probability,
                actual_change=actual_change,
                is_correct=is_correct,
            )
        )
        logger.info(
            f"{symbol}: 예측 반전 확률 {signal.probability:.2f}%, 실제 {actual_change:+.2f}% - "
            f"{'✅ 적중' if is_correct else '❌ 실패'}"
        )

    verified = verification.correct_predictions + verification.incorrect_predictions
    if verified:
        verification.accuracy_rate = verification.correct_predictions / verified * 100

    logger.info(
        f"{day} 검증 완료 - 정확도 {verification.accuracy_rate:.2f}% "
        f"({verification.correct_predictions}/{verified})"
    )
    await save_backtest_result(
        f"{day}_verification", verification.model_dump(mode="json"), VERIFICATION_STRATEGY, gcs_client
    )
    return verification


async def _evaluate_result(
    session: aiohttp.ClientSession, result: AnalysisResult, day: str
) -> SignalEvaluation:
    """신호 발생일 이후 1/3/7일 종가 변동률로 신호를 평가합니다."""
    evaluation = SignalEvaluation(
        symbol=result.symbol,
        signal_date=day,
        signal_price=result.price,
        probability=result.probability,
    )
    try:
        candles = await fetch_daily_candles_from(session, result.symbol, day, 8)
    except BinanceAPIError as e:
        logger.warning(f"{result.symbol} 이후 가격 조회 실패: {e}")
        return evaluation

    if not candles:
        return evaluation

    base = candles[0].close
    for days_after, field in ((1, "price_change_1d"), (3, "price_change_3d"), (7, "price_change_7d")):
        if len(candles) > days_after:
            setattr(evaluation, field, percent_change(candles[days_after].close, base))

    max_drop = min(evaluation.price_change_1d, evaluation.price_change_3d, evaluation.price_change_7d)
    evaluation.successful = max_drop <= config.EVALUATION_SUCCESS_THRESHOLD_PCT
    return evaluation


async def evaluate_signals(
    session: aiohttp.ClientSession,
    day: str,
    results: List[AnalysisResult],
    gcs_client=None,
) -> List[SignalEvaluation]:
    """반전 확률이 기준 이상인 신호의 이후 성과를 평가하고 저장합니다."""
    candidates = [r for r in results if r.probability >= config.EVALUATION_MIN_PROBABILITY]
    if not candidates:
        logger.info(f"{day} 고확률 반전 신호가 없습니다.")
        return []

    evaluations = await asyncio.gather(*[_evaluate_result(session, r, day) for r in candidates])
    success_count = sum(1 for e in evaluations if e.successful)
    success_rate = success_count / len(evaluations) * 100

    logger.info(
        f"{day} 신호 평가: {len(evaluations)}개 중 {success_count}개 성공 ({success_rate:.2f}%)"
    )
    await save_backtest_result(
        f"{day}_evaluation",
        {
            "date": day,
            "total_signals": len(evaluations),
            "success_count": success_count,
            "success_rate": success_rate,
            "results": [e.model_dump(mode="json") for e in evaluations],
        },
        EVALUATION_STRATEGY,
        gcs_client,
    )
    return list(evaluations)


async def generate_mock_gainers(session: aiohttp.ClientSession) -> List[GainerInfo]:
    """과거 데이터가 없을 때 사용할 모의 등락률 상위 목록을 생성합니다."""
    mock_gainers: List[GainerInfo] = []

    for symbol in config.MOCK_GAINER_SYMBOLS:
        try:
            candles = await fetch_candles(session, symbol, "1d", 5, save_to_file=False)
        except BinanceAPIError as e:
            logger.warning(f"{symbol} 모의 데이터용 캔들 조회 실패: {e}")
            continue
        if not candles:
            continue

        first, last = candles[0], candles[-1]
        mock_gainers.append(
            GainerInfo(
                symbol=symbol,
                last_price=last.close,
                price_change=last.close - first.close,
                price_change_percent=percent_change(last.close, first.close),
                volume=last.volume,
                quote_volume=last.volume * last.close,
            )
        )

    # 실제 데이터가 부족하면 무작위 값으로 채움
    existing = {g.symbol for g in mock_gainers}
    missing = [s for s in config.MOCK_GAINER_SYMBOLS if s not in existing]
    random.shuffle(missing)
    for symbol in missing[: max(0, config.MOCK_GAINERS_MIN_COUNT - len(mock_gainers))]:
        mock_gainers.append(
            GainerInfo(
                symbol=symbol,
                last_price=1000 + random.random() * 1000,
                price_change=50 + random.random() * 100,
                price_change_percent=5 + random.random() * 10,
                volume=1_000_000 + random.random() * 5_000_000,
                quote_volume=10_000_000 + random.random() * 50_000_000,
            )
        )

    mock_gainers.sort(key=lambda g: g.price_change_percent, reverse=True)
    return mock_gainers


def _print_summary(reports: List[BacktestDayReport], started_at: datetime.datetime):
    """백테스트 완료 후 최종 요약 정보를 출력합니다."""
    elapsed = (datetime.datetime.now() - started_at).total_seconds()
    if not reports:
        logger.warning("처리된 날짜가 없어 요약을 생략합니다.")
        return

    total_uptrend = sum(r.total_uptrend_failure for r in reports)
    total_confirmed = sum(r.total_downtrend_confirmed for r in reports)

    summary = f"""
============================================================
     백테스트 완료 - 최종 요약
============================================================
  - 기간: {reports[0].date} ~ {reports[-1].date} ({len(reports)}일)
  - 최종 추적 심볼: {reports[-1].total_tracked}개
  - 🚨 상승 피로 신호: {total_uptrend}건
  - 📉 하락 확정 신호: {total_confirmed}건
  - ⏱️ 총 소요 시간: {elapsed:.2f}초 ({elapsed/60:.2f}분)
============================================================
"""
    print(summary)

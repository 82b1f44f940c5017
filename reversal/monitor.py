#reversal/monitor

import asyncio
import datetime
import logging
from typing import List, Optional, Tuple

import aiohttp

import config
from reversal.analysis import analyze_symbols
from reversal.binance_client import fetch_gainers_list
from reversal.models import NotificationMessage
from reversal.notification.main import notify_all
from reversal.state_manager import (
    append_gainers_snapshot,
    cleanup_old_candles,
    load_tracked_symbols,
    save_tracked_symbols,
)
from reversal.tracker import UPTREND_EXHAUSTION, SymbolTracker

logger = logging.getLogger(config.APP_LOGGER_NAME)


async def run_monitor_cycle(
    session: aiohttp.ClientSession,
    limit: int = config.DEFAULT_GAINERS_LIMIT,
    interval: str = config.DEFAULT_INTERVAL,
    gcs_client=None,
    now: Optional[datetime.datetime] = None,
) -> Tuple[List[NotificationMessage], List[NotificationMessage]]:
    """등락률 상위 심볼 수집, 분석, 상태 갱신, 알림 전송의 1회 파이프라인을 실행합니다.

    Returns:
        (상승 피로 알림 목록, 하락 확정 알림 목록)
    """
    now = now or datetime.datetime.now(datetime.timezone.utc)

    # 1. 이전 추적 상태 복원
    tracker = SymbolTracker.from_records(await load_tracked_symbols(now, gcs_client))
    if len(tracker):
        logger.info(f"이전 상태에서 {len(tracker)}개 추적 심볼을 복원했습니다.")

    # 2. 등락률 상위 목록 수집 및 가격 반영
    gainers = await fetch_gainers_list(session, limit)
    logger.info(f"등락률 상위 {len(gainers)}개 심볼을 가져왔습니다.")
    await append_gainers_snapshot(gainers, now, gcs_client)

    for gainer in gainers:
        tracker.observe(gainer.symbol, gainer.last_price, now)

    # 3. 추적 중인 모든 심볼 분석
    results = await analyze_symbols(
        session,
        [(t.symbol, t.last_price) for t in tracker],
        interval=interval,
        gcs_client=gcs_client,
    )
    results_by_symbol = {r.symbol: r for r in results}

    # 4. 상태 머신 평가
    exhaustion_events: List[NotificationMessage] = []
    confirmed_events: List[NotificationMessage] = []
    for tracked in list(tracker):
        for event in tracker.evaluate(tracked.symbol, results_by_symbol.get(tracked.symbol)):
            if event.kind == UPTREND_EXHAUSTION:
                exhaustion_events.append(event)
            else:
                confirmed_events.append(event)

    # 5. 알림 전송
    if exhaustion_events:
        exhaustion_events.sort(key=lambda e: e.probability, reverse=True)
        logger.info(f"상승 피로 심볼 {len(exhaustion_events)}개 감지")
        await notify_all(exhaustion_events, session)
    else:
        logger.info("상승 피로 심볼이 없습니다.")

    if confirmed_events:
        confirmed_events.sort(key=lambda e: e.drop_percent or 0.0, reverse=True)
        logger.info(f"하락 확정 심볼 {len(confirmed_events)}개 감지")
        await notify_all(confirmed_events, session)

    # 6. 오래된 심볼 정리 후 상태 저장
    tracker.prune(now)
    await save_tracked_symbols(tracker.to_records(), now, gcs_client)
    await cleanup_old_candles(now=now, gcs_client=gcs_client)

    return exhaustion_events, confirmed_events


async def run_monitor_loop(
    limit: int = config.DEFAULT_GAINERS_LIMIT,
    interval: str = config.DEFAULT_INTERVAL,
    once: bool = False,
    gcs_client=None,
):
    """모니터링 파이프라인을 주기적으로 실행합니다. 실패 시 짧은 대기 후 재시도합니다."""
    while True:
        try:
            async with aiohttp.ClientSession() as session:
                await run_monitor_cycle(session, limit, interval, gcs_client)
            delay = config.MONITOR_INTERVAL_SECONDS
        except Exception as e:
            logger.error(f"모니터링 중 오류 발생: {e}", exc_info=True)
            if once:
                raise
            delay = config.MONITOR_RETRY_SECONDS

        if once:
            return

        logger.info(f"{delay // 60}분 후 다시 확인합니다.")
        await asyncio.sleep(delay)

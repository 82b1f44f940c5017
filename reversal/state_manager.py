#reversal/state_manager
import datetime
import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

import config
from reversal.models import Candle, GainerInfo, TimeframeReport, TrackedSymbol
from reversal.storage_client import delete_file, list_files, load_json, save_json

logger = logging.getLogger(config.APP_LOGGER_NAME)


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def date_string(value: Optional[datetime.datetime] = None) -> str:
    """YYYY-MM-DD 형식의 날짜 문자열을 반환합니다."""
    return (value or _utcnow()).strftime("%Y-%m-%d")


def analysis_filename(day: str) -> str:
    return f"{config.ANALYSIS_DIR_NAME}/{day}.json"


def history_filename(day: str) -> str:
    return f"{config.HISTORY_DIR_NAME}/{day}.json"


def candles_filename(symbol: str, interval: str, day: str) -> str:
    return f"{config.CANDLES_DIR_NAME}/{symbol}/{interval}_{day}.json"


def backtest_filename(name: str, strategy: str) -> str:
    return f"{config.BACKTEST_DIR_NAME}/{strategy}/{name}.json"


# --- 추적 상태 관리 ---


async def load_tracked_symbols(
    now: Optional[datetime.datetime] = None, gcs_client=None
) -> List[TrackedSymbol]:
    """보관 기간 내 가장 최근의 추적 상태 파일을 찾아 로드합니다."""
    now = now or _utcnow()

    for days_back in range(config.TRACKING_RETENTION_DAYS + 1):
        day = date_string(now - datetime.timedelta(days=days_back))
        data = await load_json(analysis_filename(day), gcs_client)
        if data is None:
            continue

        # 과거 호환성을 위해 단일 객체로 저장된 경우 리스트로 변환
        if isinstance(data, dict):
            data = [data]

        symbols = []
        for record in data:
            try:
                symbols.append(TrackedSymbol.model_validate(record))
            except ValidationError as e:
                logger.warning(f"추적 상태 레코드 형식 오류로 건너뜁니다: {e.error_count()}개 오류")
        logger.info(f"추적 상태 로드 완료: {analysis_filename(day)} ({len(symbols)}개 심볼)")
        return symbols

    logger.info("추적 상태 파일이 없어 초기 상태로 시작합니다.")
    return []


async def save_tracked_symbols(
    symbols: List[TrackedSymbol],
    now: Optional[datetime.datetime] = None,
    gcs_client=None,
):
    """현재 추적 상태를 오늘 날짜의 분석 파일에 저장합니다."""
    filename = analysis_filename(date_string(now))
    data_to_save = [s.model_dump(mode="json") for s in symbols]
    await save_json(filename, data_to_save, gcs_client)
    logger.info(f"추적 상태 저장 완료: {filename}")


# --- 등락률 상위 목록 히스토리 ---


async def append_gainers_snapshot(
    gainers: List[GainerInfo],
    now: Optional[datetime.datetime] = None,
    gcs_client=None,
):
    """등락률 상위 목록을 오늘 날짜의 히스토리 파일에 추가(append)합니다."""
    if not gainers:
        return

    now = now or _utcnow()
    filename = history_filename(date_string(now))
    new_entry = {
        "timestamp": now.isoformat(),
        "gainers": [g.model_dump(mode="json") for g in gainers],
    }

    try:
        snapshots = await load_json(filename, gcs_client)
        if not isinstance(snapshots, list):
            snapshots = []

        snapshots.append(new_entry)
        await save_json(filename, snapshots, gcs_client)
        logger.info(f"등락률 상위 목록 저장 완료: {filename}")

    except Exception as e:
        logger.error(f"'{filename}' 히스토리 파일 저장 실패: {e}", exc_info=True)


# --- 캔들 캐시 ---


async def save_candles(
    symbol: str,
    interval: str,
    candles: List[Candle],
    now: Optional[datetime.datetime] = None,
    gcs_client=None,
):
    """심볼/시간 프레임/날짜별로 캔들 데이터를 덮어써 저장합니다."""
    if not candles:
        return

    now = now or _utcnow()
    payload = {
        "symbol": symbol,
        "timeframe": interval,
        "timestamp": now.isoformat(),
        "candles": [c.model_dump(mode="json") for c in candles],
    }
    await save_json(candles_filename(symbol, interval, date_string(now)), payload, gcs_client)


async def cleanup_old_candles(
    days_to_keep: int = config.CANDLE_CACHE_RETENTION_DAYS,
    now: Optional[datetime.datetime] = None,
    gcs_client=None,
) -> int:
    """설정된 기간보다 오래된 캔들 캐시 파일을 삭제합니다."""
    cutoff_date = (now or _utcnow()) - datetime.timedelta(days=days_to_keep)
    removed = 0

    try:
        for filename in await list_files(config.CANDLES_DIR_NAME, gcs_client):
            if not filename.endswith(".json"):
                continue
            date_str = filename.rsplit("_", 1)[-1].replace(".json", "")
            try:
                file_date = datetime.datetime.strptime(date_str, "%Y-%m-%d").replace(
                    tzinfo=datetime.timezone.utc
                )
            except ValueError:
                continue  # 날짜 형식이 아닌 파일은 건너뜀

            if file_date < cutoff_date:
                await delete_file(filename, gcs_client)
                removed += 1

        if removed:
            logger.info(f"오래된 캔들 캐시 {removed}개 삭제 완료.")

    except Exception as e:
        logger.error(f"오래된 캔들 캐시 정리 실패: {e}", exc_info=True)

    return removed


# --- 백테스트 결과 ---


async def save_backtest_result(
    name: str, data: Dict[str, Any], strategy: str, gcs_client=None
):
    """백테스트 결과를 전략별 디렉터리에 저장합니다."""
    filename = backtest_filename(name, strategy)
    try:
        await save_json(filename, data, gcs_client)
        logger.info(f"백테스트 결과 저장 완료: {filename}")
    except Exception as e:
        logger.error(f"백테스트 결과 저장 실패 ({filename}): {e}")


async def load_backtest_result(
    name: str, strategy: str, gcs_client=None
) -> Optional[Dict[str, Any]]:
    """저장된 백테스트 결과를 로드합니다."""
    filename = backtest_filename(name, strategy)
    data = await load_json(filename, gcs_client)
    if data is None:
        logger.warning(f"백테스트 결과 파일이 없습니다: {filename}")
        return None
    if not isinstance(data, dict):
        logger.warning(f"백테스트 결과 파일 형식이 올바르지 않습니다 (Dict가 아님): {filename}")
        return None
    return data


# --- 시간 프레임 분석 리포트 ---


async def save_timeframe_reports(
    symbol: str,
    reports: Dict[str, TimeframeReport],
    now: Optional[datetime.datetime] = None,
    gcs_client=None,
):
    """심볼의 시간 프레임별 분석 리포트를 저장합니다."""
    filename = f"{config.ANALYSIS_DIR_NAME}/timeframes/{symbol}_{date_string(now)}.json"
    data_to_save = {tf: r.model_dump(mode="json") for tf, r in reports.items()}
    try:
        await save_json(filename, data_to_save, gcs_client)
        logger.info(f"{symbol} 시간 프레임 분석 저장 완료: {filename}")
    except Exception as e:
        logger.error(f"{symbol} 시간 프레임 분석 저장 실패: {e}")

#reversal/binance_client

import asyncio
import datetime
import logging
from typing import Any, Dict, List, Optional

import aiohttp
from aiolimiter import AsyncLimiter
from tqdm import tqdm

import config
from reversal.helpers import percent_change, with_retry
from reversal.models import Candle, GainerInfo
from reversal.state_manager import save_candles

logger = logging.getLogger(config.APP_LOGGER_NAME)

# --- 상수 및 사용자 정의 예외 ---
REQUEST_TIMEOUT = aiohttp.ClientTimeout(total=10)
ONE_DAY_MS = 24 * 60 * 60 * 1000


class BinanceAPIError(Exception):
    """Binance API 호출 실패 시 발생하는 사용자 정의 예외입니다."""

    pass


# --- 공통 요청 헬퍼 ---
async def _get_json(
    session: aiohttp.ClientSession, path: str, params: Optional[Dict[str, Any]] = None
) -> Any:
    """단일 GET 요청을 수행하고 JSON 응답을 반환합니다."""
    url = f"{config.BINANCE_API_BASE_URL}{path}"
    async with session.get(url, params=params, timeout=REQUEST_TIMEOUT) as response:
        if response.status == 429:
            retry_after = int(response.headers.get("Retry-After", 1))
            logger.warning(f"{path}: 429 Rate Limit. {retry_after}초 대기")
            await asyncio.sleep(retry_after)
            raise BinanceAPIError(f"Rate limit 초과: {path}")
        if response.status >= 400:
            raise BinanceAPIError(f"API 요청 실패: {response.status} {path}")
        return await response.json()


async def request_json(
    session: aiohttp.ClientSession,
    path: str,
    params: Optional[Dict[str, Any]] = None,
    limiter: Optional[AsyncLimiter] = None,
) -> Any:
    """속도 제한과 재시도를 적용하여 Binance API를 호출합니다."""

    async def _attempt():
        if limiter is None:
            return await _get_json(session, path, params)
        async with limiter:
            return await _get_json(session, path, params)

    try:
        return await with_retry(_attempt, description=f"GET {path}")
    except BinanceAPIError:
        raise
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise BinanceAPIError(f"네트워크/클라이언트 오류: {e}") from e
    except Exception as e:
        raise BinanceAPIError(f"알 수 없는 오류: {e}") from e


def _parse_candles(raw_candles: List[List[Any]]) -> List[Candle]:
    return [
        Candle(
            open=float(r[1]),
            high=float(r[2]),
            low=float(r[3]),
            close=float(r[4]),
            volume=float(r[5]),
            close_time=int(r[6]),
        )
        for r in raw_candles
    ]


def _date_to_ms(date: str) -> int:
    day = datetime.datetime.strptime(date, "%Y-%m-%d").replace(tzinfo=datetime.timezone.utc)
    return int(day.timestamp() * 1000)


# --- API 호출 함수 ---
async def fetch_gainers_list(
    session: aiohttp.ClientSession, limit: int = config.DEFAULT_GAINERS_LIMIT
) -> List[GainerInfo]:
    """선물 시장 24시간 등락률 상위 심볼 목록을 가져옵니다."""
    data = await request_json(session, "/fapi/v1/ticker/24hr")
    if not isinstance(data, list) or not data:
        raise BinanceAPIError("24시간 티커 정보를 가져오지 못했습니다.")

    gainers = [
        GainerInfo(
            symbol=item["symbol"],
            price_change=float(item["priceChange"]),
            price_change_percent=float(item["priceChangePercent"]),
            last_price=float(item["lastPrice"]),
            volume=float(item["volume"]),
            quote_volume=float(item["quoteVolume"]),
        )
        for item in data
    ]
    gainers.sort(key=lambda g: g.price_change_percent, reverse=True)
    return gainers[:limit]


async def fetch_candles(
    session: aiohttp.ClientSession,
    symbol: str,
    interval: str = config.DEFAULT_INTERVAL,
    limit: int = 100,
    save_to_file: bool = True,
    gcs_client=None,
    limiter: Optional[AsyncLimiter] = None,
) -> List[Candle]:
    """단일 심볼의 캔들 데이터를 가져오고, 필요 시 로컬 캐시에 저장합니다."""
    params = {"symbol": symbol, "interval": interval, "limit": limit}
    raw_candles = await request_json(session, "/fapi/v1/klines", params, limiter)
    candles = _parse_candles(raw_candles or [])

    if save_to_file and candles:
        try:
            await save_candles(symbol, interval, candles, gcs_client=gcs_client)
        except Exception as e:
            # 저장 실패와 무관하게 데이터는 반환
            logger.warning(f"{symbol} {interval} 캔들 저장 실패: {e}")

    return candles


async def fetch_candles_for_symbols(
    session: aiohttp.ClientSession,
    symbols: List[str],
    interval: str = config.DEFAULT_INTERVAL,
    limit: int = config.ANALYSIS_CANDLE_LIMIT,
    save_to_file: bool = True,
    gcs_client=None,
) -> Dict[str, List[Candle]]:
    """여러 심볼의 캔들 데이터를 병렬로 가져옵니다."""
    if not symbols:
        return {}

    limiter = AsyncLimiter(config.API_CALLS_PER_SECOND, 1)
    tasks = [
        fetch_candles(session, s, interval, limit, save_to_file, gcs_client, limiter)
        for s in symbols
    ]
    results = await asyncio.gather(*tasks, return_exceptions=True)

    candles_dict = {}
    failed_symbols = []
    for symbol, res in zip(symbols, results):
        if isinstance(res, Exception):
            logger.warning(f"{symbol} 캔들 데이터 수집 실패: {res}")
            failed_symbols.append(symbol)
        elif res:
            candles_dict[symbol] = res
        else:
            failed_symbols.append(symbol)

    logger.info(f"캔들 수집 완료: {len(candles_dict)}/{len(symbols)}개 심볼 성공.")

    if failed_symbols:
        failed_list_str = ", ".join(failed_symbols[:10])
        if len(failed_symbols) > 10:
            failed_list_str += "..."
        logger.warning(f"실패한 심볼 ({len(failed_symbols)}개): {failed_list_str}")

    return candles_dict


async def fetch_multi_timeframe_candles(
    session: aiohttp.ClientSession,
    symbol: str,
    save_to_file: bool = True,
    gcs_client=None,
) -> Dict[str, List[Candle]]:
    """여러 시간 프레임의 캔들 데이터를 병렬로 가져옵니다."""
    tasks = [
        fetch_candles(session, symbol, tf, 100, save_to_file, gcs_client)
        for tf in config.TIMEFRAMES
    ]
    results = await asyncio.gather(*tasks, return_exceptions=True)

    candles_by_tf: Dict[str, List[Candle]] = {}
    for tf, res in zip(config.TIMEFRAMES, results):
        if isinstance(res, Exception):
            logger.warning(f"{symbol} {tf} 캔들 수집 실패: {res}")
            candles_by_tf[tf] = []
        else:
            candles_by_tf[tf] = res
    return candles_by_tf


async def fetch_trading_symbols(session: aiohttp.ClientSession) -> List[str]:
    """현재 거래 중인 모든 선물 심볼 목록을 가져옵니다."""
    exchange_info = await request_json(session, "/fapi/v1/exchangeInfo")
    return [
        s["symbol"]
        for s in exchange_info.get("symbols", [])
        if s.get("status") == "TRADING"
    ]


async def _fetch_symbol_day_change(
    session: aiohttp.ClientSession,
    symbol: str,
    start_ms: int,
    limiter: AsyncLimiter,
) -> Optional[GainerInfo]:
    """특정 일자의 일봉과 전일 종가로 등락률을 계산합니다."""
    try:
        day_params = {
            "symbol": symbol,
            "interval": "1d",
            "startTime": start_ms,
            "endTime": start_ms + ONE_DAY_MS,
            "limit": 1,
        }
        day_data = await request_json(session, "/fapi/v1/klines", day_params, limiter)
        if not day_data:
            return None

        prev_params = {"symbol": symbol, "interval": "1d", "endTime": start_ms, "limit": 1}
        prev_data = await request_json(session, "/fapi/v1/klines", prev_params, limiter)
        if not prev_data:
            return None

        current_close = float(day_data[0][4])
        prev_close = float(prev_data[0][4])
        return GainerInfo(
            symbol=symbol,
            last_price=current_close,
            price_change=current_close - prev_close,
            price_change_percent=percent_change(current_close, prev_close),
            volume=float(day_data[0][5]),
            quote_volume=float(day_data[0][7]),
        )
    except Exception as e:
        logger.warning(f"{symbol} 과거 데이터 조회 실패: {e}")
        return None


async def fetch_historical_gainers(
    session: aiohttp.ClientSession,
    date: str,
    limit: int = config.BACKTEST_GAINERS_LIMIT,
) -> List[GainerInfo]:
    """지정한 날짜(YYYY-MM-DD)의 등락률 상위 목록을 일봉 데이터로 재구성합니다."""
    try:
        logger.info(f"{date} 과거 등락률 상위 목록 조회 시작...")
        start_ms = _date_to_ms(date)
        symbols = await fetch_trading_symbols(session)
        logger.info(f"{len(symbols)}개 심볼 확인, {date} 등락률 계산 중...")

        limiter = AsyncLimiter(config.API_CALLS_PER_SECOND, 1)
        batch_size = config.HISTORICAL_BATCH_SIZE
        gainers: List[GainerInfo] = []

        for i in tqdm(range(0, len(symbols), batch_size), desc=f"{date} 등락률 계산"):
            batch = symbols[i : i + batch_size]
            results = await asyncio.gather(
                *[_fetch_symbol_day_change(session, s, start_ms, limiter) for s in batch]
            )
            gainers.extend(r for r in results if r is not None)

            # API 요청 제한 회피를 위한 고정 대기
            await asyncio.sleep(config.HISTORICAL_BATCH_DELAY_SECONDS)

        gainers.sort(key=lambda g: g.price_change_percent, reverse=True)
        logger.info(f"{date} 등락률 상위 목록 조회 완료: {min(len(gainers), limit)}개")
        return gainers[:limit]

    except Exception as e:
        logger.error(f"과거 등락률 상위 목록 조회 실패: {e}")
        logger.warning("현재 등락률 상위 목록으로 대체합니다.")
        return await fetch_gainers_list(session, limit)


async def fetch_daily_candles_from(
    session: aiohttp.ClientSession, symbol: str, start_date: str, days: int
) -> List[Candle]:
    """start_date부터 days개의 일봉을 가져옵니다."""
    params = {
        "symbol": symbol,
        "interval": "1d",
        "startTime": _date_to_ms(start_date),
        "limit": days,
    }
    raw_candles = await request_json(session, "/fapi/v1/klines", params)
    return _parse_candles(raw_candles or [])

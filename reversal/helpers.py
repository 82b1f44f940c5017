#reversal/helpers

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

import config

logger = logging.getLogger(config.APP_LOGGER_NAME)

T = TypeVar("T")


async def with_retry(
    func: Callable[[], Awaitable[T]],
    retries: int = config.API_MAX_RETRIES,
    delay: float = config.API_RETRY_DELAY_SECONDS,
    description: str = "작업",
) -> T:
    """비동기 함수를 실패 시 일정 간격으로 재시도합니다. 마지막 예외는 그대로 전파됩니다."""
    last_error: Exception = RuntimeError(f"{description}: 재시도 횟수가 0입니다.")

    for attempt in range(retries):
        try:
            return await func()
        except Exception as e:
            last_error = e
            logger.warning(f"{description} 실패 (시도 {attempt + 1}/{retries}): {e}")
            if attempt < retries - 1:
                await asyncio.sleep(delay)

    raise last_error


def percent_change(current: float, previous: float) -> float:
    """previous 대비 current의 변동률(%)을 계산합니다."""
    if previous == 0:
        return 0.0
    return (current - previous) / previous * 100


def drop_from_high(highest: float, price: float) -> float:
    """고점 대비 하락률(%)을 계산합니다. 경계값 비교를 위해 소수 8자리로 반올림합니다."""
    if highest <= 0:
        return 0.0
    return round((highest - price) / highest * 100, 8)


def format_price(price: float, digits: int = 4) -> str:
    return f"{price:,.{digits}f}"

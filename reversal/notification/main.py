# reversal/notification/main

import logging
from typing import Any, Dict, List, Optional

import aiohttp

import config
from reversal.models import NotificationMessage
from reversal.notification.formatter import NotificationFormatter

logger = logging.getLogger(config.APP_LOGGER_NAME)

TELEGRAM_API_URL = "https://api.telegram.org/bot{token}/sendMessage"

formatter = NotificationFormatter()


def telegram_enabled() -> bool:
    return bool(config.ENABLE_TELEGRAM and config.TELEGRAM_BOT_TOKEN and config.TELEGRAM_CHAT_ID)


async def notify(
    message: NotificationMessage, session: Optional[aiohttp.ClientSession] = None
) -> None:
    """콘솔 로그와 설정된 알림 채널로 알림을 전달합니다."""
    logger.info(formatter.format_console(message))

    if telegram_enabled():
        await send_telegram_notification(formatter.format_telegram(message), session)


async def notify_all(
    messages: List[NotificationMessage], session: Optional[aiohttp.ClientSession] = None
) -> None:
    for message in messages:
        await notify(message, session)


async def send_telegram_notification(
    text: str, session: Optional[aiohttp.ClientSession] = None
) -> bool:
    """텔레그램 봇으로 메시지를 보냅니다. 실패해도 예외를 전파하지 않습니다."""
    if not telegram_enabled():
        logger.warning("텔레그램 설정이 없어 알림을 보내지 않습니다.")
        return False

    url = TELEGRAM_API_URL.format(token=config.TELEGRAM_BOT_TOKEN)
    payload: Dict[str, Any] = {
        "chat_id": config.TELEGRAM_CHAT_ID,
        "text": text,
        "parse_mode": "HTML",
    }

    try:
        if session is None:
            async with aiohttp.ClientSession() as own_session:
                return await _post_message(own_session, url, payload)
        return await _post_message(session, url, payload)
    except Exception as e:
        logger.error(f"텔레그램 전송 중 예외 발생: {e}", exc_info=True)
        return False


async def _post_message(
    session: aiohttp.ClientSession, url: str, payload: Dict[str, Any]
) -> bool:
    async with session.post(
        url, json=payload, timeout=aiohttp.ClientTimeout(total=10)
    ) as response:
        if response.ok:
            logger.info("텔레그램 알림 전송 성공.")
            return True
        logger.error(f"텔레그램 전송 실패 ({response.status}): {await response.text()}")
        return False

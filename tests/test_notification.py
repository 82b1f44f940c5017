import asyncio

import config
from conftest import FakeSession
from reversal.models import NotificationMessage, Signal
from reversal.notification import main as notification
from reversal.notification.formatter import NotificationFormatter
from reversal.tracker import DOWNTREND_CONFIRMED, UPTREND_EXHAUSTION


def _exhaustion():
    return NotificationMessage(
        kind=UPTREND_EXHAUSTION,
        symbol="AUSDT",
        probability=82.5,
        price=1.2345,
        highest_price=1.5,
        drop_percent=17.7,
        signals=[Signal(name="RSI 과매수", description="RSI(14) > 70 <강함>", strength=90)],
    )


def test_console_line_lists_signal_names():
    line = NotificationFormatter().format_console(_exhaustion())
    assert "AUSDT" in line
    assert "82.50%" in line
    assert "RSI 과매수" in line


def test_telegram_exhaustion_message_escapes_html():
    text = NotificationFormatter().format_telegram(_exhaustion())
    assert "상승 피로 경보" in text
    assert "<b>82.50%</b>" in text
    assert "&lt;강함&gt;" in text


def test_telegram_confirmation_message_shows_drop():
    message = NotificationMessage(
        kind=DOWNTREND_CONFIRMED,
        symbol="AUSDT",
        probability=100,
        price=94,
        highest_price=100,
        drop_percent=6,
    )
    text = NotificationFormatter().format_telegram(message)
    assert "하락 확정 경보" in text
    assert "<b>6.00%</b>" in text


def test_telegram_disabled_sends_nothing(monkeypatch):
    monkeypatch.setattr(config, "ENABLE_TELEGRAM", False)
    session = FakeSession()

    asyncio.run(notification.notify(_exhaustion(), session))
    assert asyncio.run(notification.send_telegram_notification("hi", session)) is False
    assert session.posts == []


def test_telegram_enabled_posts_html(monkeypatch):
    monkeypatch.setattr(config, "ENABLE_TELEGRAM", True)
    monkeypatch.setattr(config, "TELEGRAM_BOT_TOKEN", "token")
    monkeypatch.setattr(config, "TELEGRAM_CHAT_ID", "42")
    session = FakeSession()

    asyncio.run(notification.notify_all([_exhaustion(), _exhaustion()], session))

    assert len(session.posts) == 2
    url, payload = session.posts[0]
    assert url.endswith("/bottoken/sendMessage")
    assert payload["chat_id"] == "42"
    assert payload["parse_mode"] == "HTML"


def test_telegram_failure_does_not_raise(monkeypatch):
    monkeypatch.setattr(config, "ENABLE_TELEGRAM", True)
    monkeypatch.setattr(config, "TELEGRAM_BOT_TOKEN", "token")
    monkeypatch.setattr(config, "TELEGRAM_CHAT_ID", "42")

    assert asyncio.run(
        notification.send_telegram_notification("hi", FakeSession(post_status=500))
    ) is False

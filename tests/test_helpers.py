import asyncio

import pytest

from reversal.helpers import drop_from_high, format_price, percent_change, with_retry


def test_with_retry_returns_after_transient_failures():
    calls = []

    async def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise ConnectionError("일시적 오류")
        return "ok"

    assert asyncio.run(with_retry(flaky, retries=3, delay=0)) == "ok"
    assert len(calls) == 3


def test_with_retry_raises_last_error():
    async def always_fails():
        raise ValueError("실패")

    with pytest.raises(ValueError):
        asyncio.run(with_retry(always_fails, retries=2, delay=0))


def test_percent_change_and_drop_guard_zero():
    assert percent_change(110, 100) == pytest.approx(10.0)
    assert percent_change(5, 0) == 0.0
    assert drop_from_high(100, 95) == pytest.approx(5.0)
    assert drop_from_high(0, 95) == 0.0


def test_format_price():
    assert format_price(1234.5) == "1,234.5000"


def test_drop_from_high_is_stable_at_the_boundary():
    assert drop_from_high(0.06, 0.057) == 5.0
    assert drop_from_high(0.03, 0.0285) == 5.0
    assert drop_from_high(100, 95.0001) < 5.0

import asyncio
import functools

import pytest

from conftest import FakeResponse, FakeSession
from reversal import binance_client
from reversal.binance_client import BinanceAPIError
from reversal.helpers import with_retry


def _ticker(symbol, pct, price):
    return {
        "symbol": symbol,
        "priceChange": "1.0",
        "priceChangePercent": str(pct),
        "lastPrice": str(price),
        "volume": "100",
        "quoteVolume": "1000",
    }


def _kline(close, close_time=0, volume="10"):
    return [0, "1", "2", "0.5", str(close), volume, close_time, "500"]


@pytest.fixture(autouse=True)
def no_retry_delay(monkeypatch):
    monkeypatch.setattr(binance_client, "with_retry", functools.partial(with_retry, delay=0))


def test_gainers_are_sorted_and_limited():
    session = FakeSession(
        {
            "/fapi/v1/ticker/24hr": [
                _ticker("AUSDT", 5, 1),
                _ticker("BUSDT", 20, 2),
                _ticker("CUSDT", 12, 3),
            ]
        }
    )
    gainers = asyncio.run(binance_client.fetch_gainers_list(session, 2))
    assert [g.symbol for g in gainers] == ["BUSDT", "CUSDT"]
    assert gainers[0].last_price == 2.0


def test_empty_ticker_response_is_an_error():
    session = FakeSession({"/fapi/v1/ticker/24hr": []})
    with pytest.raises(BinanceAPIError):
        asyncio.run(binance_client.fetch_gainers_list(session))


def test_http_errors_are_retried_then_raised():
    session = FakeSession({"/fapi/v1/ticker/24hr": FakeResponse({}, status=500)})
    with pytest.raises(BinanceAPIError):
        asyncio.run(binance_client.fetch_gainers_list(session))
    assert len(session.requests) == 3


def test_candles_are_parsed_and_cached(data_dir):
    session = FakeSession({"/fapi/v1/klines": [_kline(10, 1), _kline(11, 2)]})
    candles = asyncio.run(binance_client.fetch_candles(session, "AUSDT", "1h", 2))

    assert [c.close for c in candles] == [10.0, 11.0]
    assert candles[1].close_time == 2
    assert list((data_dir / "candles" / "AUSDT").iterdir())


def test_candles_for_symbols_drops_failures(data_dir):
    def klines(params):
        if params["symbol"] == "BADUSDT":
            return FakeResponse({}, status=400)
        return [_kline(1)]

    session = FakeSession({"/fapi/v1/klines": klines})
    result = asyncio.run(
        binance_client.fetch_candles_for_symbols(
            session, ["AUSDT", "BADUSDT"], "1h", 1, save_to_file=False
        )
    )
    assert list(result) == ["AUSDT"]


def test_historical_gainers_from_daily_candles(monkeypatch):
    monkeypatch.setattr(binance_client.config, "HISTORICAL_BATCH_DELAY_SECONDS", 0)
    closes = {"AUSDT": (100, 110), "BUSDT": (100, 130)}

    def klines(params):
        prev_close, day_close = closes[params["symbol"]]
        return [_kline(day_close if "startTime" in params else prev_close)]

    session = FakeSession(
        {
            "/fapi/v1/exchangeInfo": {
                "symbols": [
                    {"symbol": "AUSDT", "status": "TRADING"},
                    {"symbol": "BUSDT", "status": "TRADING"},
                    {"symbol": "CUSDT", "status": "BREAK"},
                ]
            },
            "/fapi/v1/klines": klines,
        }
    )
    gainers = asyncio.run(binance_client.fetch_historical_gainers(session, "2024-03-01", 5))

    assert [g.symbol for g in gainers] == ["BUSDT", "AUSDT"]
    assert gainers[0].price_change_percent == pytest.approx(30.0)
    assert gainers[0].quote_volume == 500.0


def test_historical_gainers_fall_back_to_live_list():
    session = FakeSession(
        {
            "/fapi/v1/exchangeInfo": FakeResponse({}, status=500),
            "/fapi/v1/ticker/24hr": [_ticker("AUSDT", 5, 1)],
        }
    )
    gainers = asyncio.run(binance_client.fetch_historical_gainers(session, "2024-03-01", 5))
    assert [g.symbol for g in gainers] == ["AUSDT"]

import datetime
from typing import List, Optional

import pytest

import config
from reversal.models import Candle


@pytest.fixture
def data_dir(tmp_path, monkeypatch):
    """모든 상태 파일을 임시 디렉터리에 저장하도록 설정합니다."""
    monkeypatch.setattr(config, "LOCAL_DATA_DIR", str(tmp_path))
    monkeypatch.setattr(config, "STATE_STORAGE_METHOD", "LOCAL")
    return tmp_path


@pytest.fixture
def now():
    return datetime.datetime(2024, 3, 10, 12, 0, tzinfo=datetime.timezone.utc)


def make_candles(closes: List[float], volumes: Optional[List[float]] = None) -> List[Candle]:
    volumes = volumes or [1000.0] * len(closes)
    start_ms = 1_700_000_000_000
    return [
        Candle(
            open=close,
            high=close * 1.01,
            low=close * 0.99,
            close=close,
            volume=volume,
            close_time=start_ms + i * 3_600_000,
        )
        for i, (close, volume) in enumerate(zip(closes, volumes))
    ]


class FakeResponse:
    def __init__(self, payload=None, status=200, headers=None):
        self.payload = payload
        self.status = status
        self.headers = headers or {}
        self.ok = status < 400

    async def json(self):
        return self.payload

    async def text(self):
        return str(self.payload)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    """경로별로 미리 정한 응답을 돌려주는 aiohttp 세션 대용 객체입니다."""

    def __init__(self, routes=None, post_status=200):
        self.routes = routes or {}
        self.post_status = post_status
        self.requests = []
        self.posts = []

    def get(self, url, params=None, timeout=None):
        self.requests.append((url, params))
        for path, handler in self.routes.items():
            if url.endswith(path):
                result = handler(params) if callable(handler) else handler
                if isinstance(result, FakeResponse):
                    return result
                return FakeResponse(result)
        return FakeResponse({"msg": "not found"}, status=404)

    def post(self, url, json=None, timeout=None):
        self.posts.append((url, json))
        return FakeResponse({"ok": self.post_status < 400}, status=self.post_status)

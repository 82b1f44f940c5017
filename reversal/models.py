#reversal/models

import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from reversal.helpers import drop_from_high


class GainerInfo(BaseModel):
    """24시간 등락률 상위 선물 심볼 정보입니다."""

    symbol: str
    price_change: float
    price_change_percent: float
    last_price: float
    volume: float
    quote_volume: float


class Candle(BaseModel):
    """단일 캔들(OHLCV) 데이터를 나타냅니다."""

    open: float
    high: float
    low: float
    close: float
    volume: float
    close_time: int  # epoch ms


class Signal(BaseModel):
    """반전 판단에 사용된 개별 기술적 신호입니다."""

    name: str
    description: str = ""
    strength: float = 0.0  # 0-100


class AnalysisResult(BaseModel):
    """단일 심볼의 반전 확률 분석 결과입니다."""

    symbol: str
    price: float
    probability: float = 0.0  # 0-100
    signals: List[Signal] = []
    timeframe: Optional[str] = None
    timestamp: Optional[datetime.datetime] = None
    highest_price: Optional[float] = None
    drop_percent: Optional[float] = None


class MACDValues(BaseModel):
    macd: float
    signal: float
    histogram: float


class BollingerValues(BaseModel):
    upper: float
    middle: float
    lower: float


class MovingAverageValues(BaseModel):
    ma7: float
    ma25: float
    ma99: float


class IndicatorValues(BaseModel):
    """최신 캔들 기준 기술적 지표 스냅샷입니다."""

    rsi: float
    macd: MACDValues
    bollinger_bands: BollingerValues
    moving_averages: MovingAverageValues


class TimeframeReport(BaseModel):
    """단일 시간 프레임의 과매도/다이버전스 분석 결과입니다."""

    timeframe: str
    last_close: float
    rsi: Optional[float] = None
    macd: Optional[float] = None
    signal: Optional[float] = None
    histogram: Optional[float] = None
    is_oversold: bool = False
    has_divergence: bool = False
    indicators: Optional[IndicatorValues] = None


class TrackedSymbol(BaseModel):
    """고점 및 하락 추세 상태를 추적하는 심볼 상태 모델입니다."""

    symbol: str
    last_price: float
    highest_price: float
    last_update_time: datetime.datetime
    signals: List[Signal] = Field(default_factory=list)
    downtrend: bool = False
    downtrend_confirmed: bool = False
    downtrend_notified: bool = False

    @property
    def drop_percent(self) -> float:
        return drop_from_high(self.highest_price, self.last_price)


class NotificationMessage(BaseModel):
    """콘솔/텔레그램으로 전달되는 알림 객체입니다."""

    kind: str  # "UPTREND_EXHAUSTION" | "DOWNTREND_CONFIRMED"
    symbol: str
    probability: float
    signals: List[Signal] = []
    price: float
    message: Optional[str] = None
    highest_price: Optional[float] = None
    drop_percent: Optional[float] = None
    timestamp: datetime.datetime = Field(
        default_factory=lambda: datetime.datetime.now(datetime.timezone.utc)
    )


class BacktestDayReport(BaseModel):
    """백테스트 일별 처리 결과입니다."""

    date: str
    interval: str
    all_symbols: List[TrackedSymbol]
    uptrend_failure_signals: List[AnalysisResult]
    downtrend_confirmed_signals: List[AnalysisResult]
    total_tracked: int
    total_uptrend_failure: int
    total_downtrend_confirmed: int


class VerificationDetail(BaseModel):
    symbol: str
    predicted_probability: float
    actual_change: float
    is_correct: bool


class VerificationResult(BaseModel):
    """전일 신호와 다음 날 실제 가격 변동을 비교한 검증 결과입니다."""

    date: str
    total_signals: int
    correct_predictions: int = 0
    incorrect_predictions: int = 0
    accuracy_rate: float = 0.0
    details: List[VerificationDetail] = []


class SignalEvaluation(BaseModel):
    """고확률 신호의 이후 1/3/7일 가격 변동 평가 결과입니다."""

    symbol: str
    signal_date: str
    signal_price: float
    probability: float
    price_change_1d: float = 0.0
    price_change_3d: float = 0.0
    price_change_7d: float = 0.0
    successful: bool = False

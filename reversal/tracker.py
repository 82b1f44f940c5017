#reversal/tracker

import datetime
import logging
from typing import Dict, Iterator, List, Optional

import config
from reversal.models import AnalysisResult, NotificationMessage, Signal, TrackedSymbol

logger = logging.getLogger(config.APP_LOGGER_NAME)

UPTREND_EXHAUSTION = "UPTREND_EXHAUSTION"
DOWNTREND_CONFIRMED = "DOWNTREND_CONFIRMED"


class SymbolTracker:
    """심볼별 최고가와 하락 추세 플래그를 관리하는 상태 머신입니다.

    상태 전이: 정상 → 하락 의심(downtrend) → 하락 확정(downtrend_confirmed)
    → 알림 완료(downtrend_notified). 신고가가 나오면 모든 플래그가 초기화됩니다.
    """

    def __init__(self, symbols: Optional[Dict[str, TrackedSymbol]] = None):
        self.symbols: Dict[str, TrackedSymbol] = dict(symbols or {})

    @classmethod
    def from_records(cls, records: List[TrackedSymbol]) -> "SymbolTracker":
        return cls({r.symbol: r for r in records})

    def to_records(self) -> List[TrackedSymbol]:
        return list(self.symbols.values())

    def __len__(self) -> int:
        return len(self.symbols)

    def __contains__(self, symbol: str) -> bool:
        return symbol in self.symbols

    def __iter__(self) -> Iterator[TrackedSymbol]:
        return iter(self.symbols.values())

    def get(self, symbol: str) -> Optional[TrackedSymbol]:
        return self.symbols.get(symbol)

    def observe(self, symbol: str, price: float, now: datetime.datetime) -> TrackedSymbol:
        """최신 가격을 반영합니다. 처음 본 심볼은 현재가를 최고가로 추적을 시작합니다."""
        tracked = self.symbols.get(symbol)
        if tracked is None:
            tracked = TrackedSymbol(
                symbol=symbol,
                last_price=price,
                highest_price=price,
                last_update_time=now,
            )
            self.symbols[symbol] = tracked
            logger.info(f"신규 추적 심볼 추가: {symbol}, 현재가: {price}")
            return tracked

        if price > tracked.highest_price:
            self._reset_on_new_high(tracked, price)

        tracked.last_price = price
        tracked.last_update_time = now
        return tracked

    def _reset_on_new_high(self, tracked: TrackedSymbol, price: float):
        tracked.highest_price = price
        tracked.downtrend = False
        tracked.downtrend_confirmed = False
        tracked.downtrend_notified = False
        logger.info(f"{tracked.symbol} 신고가 갱신: {price}")

    def evaluate(
        self, symbol: str, result: Optional[AnalysisResult] = None
    ) -> List[NotificationMessage]:
        """분석 결과와 고점 대비 하락률로 상승 피로/하락 확정 이벤트를 판정합니다.

        각 이벤트는 신고가로 플래그가 초기화되기 전까지 한 번만 발생합니다.
        """
        tracked = self.symbols.get(symbol)
        if tracked is None:
            return []

        if result is not None:
            tracked.signals = list(result.signals)

        events: List[NotificationMessage] = []
        drop_percent = tracked.drop_percent

        if (
            result is not None
            and result.probability > config.EXHAUSTION_PROBABILITY_THRESHOLD
            and tracked.last_price < tracked.highest_price
            and not tracked.downtrend
        ):
            tracked.downtrend = True
            events.append(
                NotificationMessage(
                    kind=UPTREND_EXHAUSTION,
                    symbol=symbol,
                    probability=result.probability,
                    signals=result.signals,
                    price=tracked.last_price,
                    message=f"상승 피로 신호: 고점 {tracked.highest_price} 대비 {drop_percent:.2f}% 하락",
                    highest_price=tracked.highest_price,
                    drop_percent=drop_percent,
                )
            )

        if drop_percent >= config.DOWNTREND_CONFIRM_DROP_PCT and not tracked.downtrend_confirmed:
            tracked.downtrend_confirmed = True
            if not tracked.downtrend_notified:
                tracked.downtrend_notified = True
                events.append(
                    NotificationMessage(
                        kind=DOWNTREND_CONFIRMED,
                        symbol=symbol,
                        probability=100.0,
                        signals=[
                            Signal(
                                name=f"고점 대비 {config.DOWNTREND_CONFIRM_DROP_PCT:g}% 이상 하락",
                                strength=100,
                            )
                        ],
                        price=tracked.last_price,
                        message=f"하락 확정! 고점 {tracked.highest_price} 대비 {drop_percent:.2f}% 하락",
                        highest_price=tracked.highest_price,
                        drop_percent=drop_percent,
                    )
                )

        return events

    def prune(
        self,
        now: datetime.datetime,
        max_age: datetime.timedelta = datetime.timedelta(days=config.TRACKING_RETENTION_DAYS),
    ) -> int:
        """max_age 이상 업데이트되지 않은 심볼을 추적 목록에서 제거합니다."""
        stale = [
            symbol
            for symbol, tracked in self.symbols.items()
            if now - tracked.last_update_time > max_age
        ]
        for symbol in stale:
            del self.symbols[symbol]

        if stale:
            logger.info(f"장기간 업데이트되지 않은 심볼 {len(stale)}개 정리")
        return len(stale)

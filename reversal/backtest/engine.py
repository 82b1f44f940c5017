# reversal/backtest/engine.py

import datetime
import logging
from typing import Dict, List, Tuple

import config
from reversal.helpers import drop_from_high
from reversal.models import AnalysisResult, GainerInfo
from reversal.tracker import SymbolTracker

logger = logging.getLogger(config.APP_LOGGER_NAME)


class BacktestTracker(SymbolTracker):
    """일 단위 백테스트용 추적기입니다.

    모니터링과 달리 전일 대비 하락만으로 하락 의심 상태에 진입하고,
    하락 확정은 하락 의심 상태에서만 판정합니다.
    """

    def observe_day(
        self,
        gainers: List[GainerInfo],
        results_by_symbol: Dict[str, AnalysisResult],
        now: datetime.datetime,
    ):
        """하루치 등락률 상위 목록으로 추적 상태를 갱신합니다."""
        for gainer in gainers:
            symbol = gainer.symbol
            price = gainer.last_price
            tracked = self.get(symbol)

            if tracked is None:
                self.observe(symbol, price, now)
                continue

            if price > tracked.highest_price:
                self._reset_on_new_high(tracked, price)

            if price < tracked.last_price and not tracked.downtrend:
                tracked.downtrend = True
                if result := results_by_symbol.get(symbol):
                    tracked.signals = list(result.signals)
                logger.info(f"{symbol}: {tracked.last_price} → {price} 하락, 하락 추세 시작 가능성")

            drop_percent = drop_from_high(tracked.highest_price, price)
            if (
                tracked.downtrend
                and drop_percent >= config.DOWNTREND_CONFIRM_DROP_PCT
                and not tracked.downtrend_confirmed
            ):
                tracked.downtrend_confirmed = True
                logger.info(
                    f"{symbol}: 고점 {tracked.highest_price} 대비 {drop_percent:.2f}% 하락, 하락 추세 확정"
                )

            tracked.last_price = price
            tracked.last_update_time = now

    def collect_signals(
        self, results_by_symbol: Dict[str, AnalysisResult]
    ) -> Tuple[List[AnalysisResult], List[AnalysisResult]]:
        """아직 알리지 않은 상승 피로/하락 확정 신호를 수집하고, 하락 확정은 알림 완료로 표시합니다."""
        uptrend_failures: List[AnalysisResult] = []
        downtrend_confirmed: List[AnalysisResult] = []

        for tracked in self:
            result = results_by_symbol.get(tracked.symbol)

            if tracked.downtrend and not tracked.downtrend_notified:
                if result:
                    uptrend_failures.append(
                        result.model_copy(update={"highest_price": tracked.highest_price})
                    )
                else:
                    uptrend_failures.append(
                        AnalysisResult(
                            symbol=tracked.symbol,
                            price=tracked.last_price,
                            probability=config.BACKTEST_FALLBACK_EXHAUSTION_PROBABILITY,
                            signals=tracked.signals,
                            highest_price=tracked.highest_price,
                        )
                    )

            if tracked.downtrend_confirmed and not tracked.downtrend_notified:
                drop_percent = tracked.drop_percent
                if result:
                    downtrend_confirmed.append(
                        result.model_copy(
                            update={
                                "highest_price": tracked.highest_price,
                                "drop_percent": drop_percent,
                            }
                        )
                    )
                else:
                    downtrend_confirmed.append(
                        AnalysisResult(
                            symbol=tracked.symbol,
                            price=tracked.last_price,
                            probability=config.BACKTEST_FALLBACK_CONFIRMED_PROBABILITY,
                            signals=tracked.signals,
                            highest_price=tracked.highest_price,
                            drop_percent=drop_percent,
                        )
                    )
                tracked.downtrend_notified = True

        uptrend_failures.sort(key=lambda r: r.probability, reverse=True)
        downtrend_confirmed.sort(key=lambda r: r.probability, reverse=True)
        return uptrend_failures, downtrend_confirmed

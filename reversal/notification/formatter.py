# reversal/notification/formatter.py
"""알림 객체를 콘솔 및 텔레그램용 메시지로 변환합니다."""

import datetime
import html
from typing import List

from reversal.helpers import format_price
from reversal.models import NotificationMessage, Signal
from reversal.tracker import DOWNTREND_CONFIRMED


class NotificationFormatter:
    """알림 종류에 따라 사용자에게 보여질 메시지를 생성하는 클래스입니다."""

    def format_console(self, message: NotificationMessage) -> str:
        """콘솔 로그용 한 줄 메시지를 생성합니다."""
        if message.message:
            line = f"📢 {message.symbol} @ {message.price}: {message.message}"
        else:
            line = (
                f"📢 신호 알림: {message.symbol} 반전 가능성 감지, "
                f"확률 {message.probability:.2f}%, 현재가: {message.price}"
            )

        if signal_names := ", ".join(s.name for s in message.signals):
            line += f"\n   신호: {signal_names}"
        return line

    def format_telegram(self, message: NotificationMessage) -> str:
        """텔레그램 HTML 메시지를 생성합니다."""
        symbol = html.escape(message.symbol)

        if message.kind == DOWNTREND_CONFIRMED:
            parts = ["📉 <b>하락 확정 경보</b> 📉\n", f"<b>{symbol}</b> 하락 추세가 확정되었습니다!"]
            if message.highest_price:
                parts.append(f"최고가: {format_price(message.highest_price)}")
            parts.append(f"현재가: {format_price(message.price)}")
            if message.drop_percent:
                parts.append(f"하락률: <b>{message.drop_percent:.2f}%</b>")
        else:
            parts = [
                "🚨 <b>상승 피로 경보</b> 🚨\n",
                f"<b>{symbol}</b> 반전 가능성이 감지되었습니다!",
                f"반전 확률: <b>{message.probability:.2f}%</b>",
                f"현재가: {format_price(message.price)}",
            ]
            if message.highest_price:
                parts.append(f"최고가: {format_price(message.highest_price)}")
            if message.drop_percent:
                parts.append(f"고점 대비: {message.drop_percent:.2f}%")

        if signal_lines := self._format_signal_lines(message.signals):
            parts.append(f"\n신호:\n{signal_lines}")

        parts.append(f"\n<i>시간: {self._format_timestamp(message.timestamp)}</i>")
        return "\n".join(parts)

    def _format_signal_lines(self, signals: List[Signal]) -> str:
        lines = []
        for s in signals:
            text = f"{s.name}: {s.description}" if s.description else s.name
            lines.append(f"- {html.escape(text)}")
        return "\n".join(lines)

    def _format_timestamp(self, timestamp: datetime.datetime) -> str:
        return timestamp.astimezone(datetime.timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")

import datetime

import pytest

from reversal.models import AnalysisResult, Signal
from reversal.tracker import DOWNTREND_CONFIRMED, UPTREND_EXHAUSTION, SymbolTracker


def _result(symbol, probability):
    return AnalysisResult(
        symbol=symbol,
        price=0,
        probability=probability,
        signals=[Signal(name="RSI 과매수", strength=probability)],
    )


def test_new_symbol_starts_at_its_own_high(now):
    tracker = SymbolTracker()
    tracked = tracker.observe("AUSDT", 100, now)

    assert "AUSDT" in tracker
    assert tracked.highest_price == 100
    assert tracker.evaluate("AUSDT", _result("AUSDT", 95)) == []


def test_exhaustion_fires_once_below_high(now):
    tracker = SymbolTracker()
    tracker.observe("AUSDT", 100, now)
    tracker.observe("AUSDT", 98, now)

    events = tracker.evaluate("AUSDT", _result("AUSDT", 80))
    assert [e.kind for e in events] == [UPTREND_EXHAUSTION]
    assert events[0].highest_price == 100
    assert tracker.get("AUSDT").downtrend

    assert tracker.evaluate("AUSDT", _result("AUSDT", 85)) == []


def test_exhaustion_threshold_is_strict(now):
    tracker = SymbolTracker()
    tracker.observe("AUSDT", 100, now)
    tracker.observe("AUSDT", 99, now)

    assert tracker.evaluate("AUSDT", _result("AUSDT", 70)) == []


def test_confirmation_fires_once_without_analysis(now):
    tracker = SymbolTracker()
    tracker.observe("AUSDT", 100, now)
    tracker.observe("AUSDT", 94, now)

    events = tracker.evaluate("AUSDT")
    assert [e.kind for e in events] == [DOWNTREND_CONFIRMED]
    assert events[0].probability == 100.0
    assert events[0].drop_percent == pytest.approx(6.0)

    tracker.observe("AUSDT", 90, now)
    assert tracker.evaluate("AUSDT") == []


def test_new_high_resets_flags_and_rearms_alerts(now):
    tracker = SymbolTracker()
    tracker.observe("AUSDT", 100, now)
    tracker.observe("AUSDT", 94, now)
    tracker.evaluate("AUSDT", _result("AUSDT", 90))

    tracked = tracker.observe("AUSDT", 101, now)
    assert tracked.highest_price == 101
    assert not (tracked.downtrend or tracked.downtrend_confirmed or tracked.downtrend_notified)

    tracker.observe("AUSDT", 95.9, now)
    kinds = [e.kind for e in tracker.evaluate("AUSDT", _result("AUSDT", 75))]
    assert kinds == [UPTREND_EXHAUSTION, DOWNTREND_CONFIRMED]


def test_prune_removes_stale_symbols(now):
    tracker = SymbolTracker()
    tracker.observe("OLDUSDT", 1, now - datetime.timedelta(days=8))
    tracker.observe("NEWUSDT", 1, now - datetime.timedelta(days=1))

    assert tracker.prune(now) == 1
    assert [t.symbol for t in tracker] == ["NEWUSDT"]


def test_records_round_trip(now):
    tracker = SymbolTracker()
    tracker.observe("AUSDT", 1, now)
    restored = SymbolTracker.from_records(tracker.to_records())
    assert len(restored) == 1
    assert restored.get("AUSDT").last_price == 1


@pytest.mark.parametrize("high, low", [(0.03, 0.0285), (0.06, 0.057), (0.09, 0.0855), (100, 95)])
def test_exact_five_percent_drop_confirms_for_any_price_scale(now, high, low):
    tracker = SymbolTracker()
    tracker.observe("PEPEUSDT", high, now)
    tracker.observe("PEPEUSDT", low, now)

    events = tracker.evaluate("PEPEUSDT")
    assert [e.kind for e in events] == [DOWNTREND_CONFIRMED]
    assert events[0].drop_percent == 5.0


def test_drop_just_under_five_percent_is_not_confirmed(now):
    tracker = SymbolTracker()
    tracker.observe("AUSDT", 100, now)
    tracker.observe("AUSDT", 95.0001, now)

    assert tracker.evaluate("AUSDT") == []

from datetime import datetime, timedelta, timezone

from refurbops.models import RepairJobStatus
from refurbops.services.tat_calculator import compute_due_date, days_overdue, hours_remaining
from refurbops.services.tat_scanner import Classification, classify

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
ALLOWANCES = {"UNDER_REPAIR": 5, "READY_FOR_REPAIR": 3}
WINDOW = timedelta(hours=24)


def test_due_date_adds_stage_allowance():
    assert compute_due_date(RepairJobStatus.UNDER_REPAIR, T0, ALLOWANCES) == T0 + timedelta(days=5)
    assert compute_due_date("READY_FOR_REPAIR", T0, ALLOWANCES) == T0 + timedelta(days=3)


def test_stage_without_allowance_has_no_due_date():
    assert compute_due_date(RepairJobStatus.CLOSED, T0, ALLOWANCES) is None


def test_naive_entry_time_is_treated_as_utc():
    naive = T0.replace(tzinfo=None)
    assert compute_due_date("UNDER_REPAIR", naive, ALLOWANCES) == T0 + timedelta(days=5)


def test_hours_remaining_rounds_up():
    due = T0 + timedelta(hours=5, minutes=1)
    assert hours_remaining(due, T0) == 6
    assert hours_remaining(T0, T0) == 0
    assert hours_remaining(T0 - timedelta(hours=1), T0) == 0


def test_days_overdue_rounds_up():
    assert days_overdue(T0, T0 + timedelta(hours=1)) == 1
    assert days_overdue(T0, T0 + timedelta(days=2)) == 2
    assert days_overdue(T0 + timedelta(days=1), T0) == 0


def test_classify_boundaries():
    due = T0 + timedelta(days=3)
    assert classify(due, T0, WINDOW) == Classification.ON_TRACK
    assert classify(due, due - timedelta(hours=24, seconds=1), WINDOW) == Classification.ON_TRACK
    # Window is inclusive
    assert classify(due, due - WINDOW, WINDOW) == Classification.APPROACHING
    assert classify(due, due - timedelta(seconds=1), WINDOW) == Classification.APPROACHING
    # Breached from the due instant onwards
    assert classify(due, due, WINDOW) == Classification.BREACHED
    assert classify(due, due + timedelta(days=1), WINDOW) == Classification.BREACHED


def test_classify_three_day_allowance():
    due = compute_due_date("READY_FOR_REPAIR", T0, ALLOWANCES)
    assert classify(due, T0 + timedelta(days=2), WINDOW) == Classification.APPROACHING
    assert classify(due, T0 + timedelta(days=4), WINDOW) == Classification.BREACHED

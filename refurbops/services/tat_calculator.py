"""
Turnaround-time (TAT) calculator.

Pure functions only: no database access, no clock reads. Callers pass the
stage entry time and "now" explicitly.
"""
import math
from datetime import datetime, timedelta
from typing import Mapping, Optional

from refurbops.core.clock import as_utc


def compute_due_date(
    stage: str,
    entered_at: datetime,
    allowances: Mapping[str, int],
) -> Optional[datetime]:
    """
    Return the deadline for a stage, or None when the stage carries no allowance.

    Args:
        stage: Repair job status the job just entered
        entered_at: When the job entered the stage
        allowances: Stage -> allowed days
    """
    key = stage.value if hasattr(stage, "value") else str(stage)
    days = allowances.get(key)
    if days is None or entered_at is None:
        return None
    return as_utc(entered_at) + timedelta(days=int(days))


def hours_remaining(due_at: datetime, now: datetime) -> int:
    """Whole hours until the deadline, rounded up (0 once due)."""
    seconds = (as_utc(due_at) - as_utc(now)).total_seconds()
    if seconds <= 0:
        return 0
    return math.ceil(seconds / 3600)


def days_overdue(due_at: datetime, now: datetime) -> int:
    """Whole days past the deadline, rounded up (0 if not yet due)."""
    seconds = (as_utc(now) - as_utc(due_at)).total_seconds()
    if seconds <= 0:
        return 0
    return math.ceil(seconds / 86400)

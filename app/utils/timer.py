"""Attempt clock arithmetic.

The clock is stored as banked seconds (``consumed_seconds``) plus the moment it
last started (``running_since``). Pausing or ending an attempt folds the running
span into the bank and clears ``running_since``, so a stopped clock is frozen.
"""
from datetime import datetime
from typing import Optional

from app.core.constants import AttemptStatusEnum, RUNNING_ATTEMPT_STATUSES
from app.models.attempt import Attempt
from app.utils.time import utcnow


def _running_span(attempt: Attempt, now: datetime) -> int:
    if attempt.status not in RUNNING_ATTEMPT_STATUSES or attempt.running_since is None:
        return 0
    return max(0, int((now - attempt.running_since).total_seconds()))


def elapsed_active_seconds(attempt: Attempt, now: Optional[datetime] = None) -> int:
    now = now or utcnow()
    return (attempt.consumed_seconds or 0) + _running_span(attempt, now)


def remaining_seconds(attempt: Attempt, now: Optional[datetime] = None, exam_end_at: Optional[datetime] = None) -> int:
    now = now or utcnow()
    if attempt.status == AttemptStatusEnum.EXPIRED:
        return 0
    remaining = attempt.total_allowed_seconds - elapsed_active_seconds(attempt, now)
    if exam_end_at is not None and attempt.is_live:
        remaining = min(remaining, int((exam_end_at - now).total_seconds()))
    return max(0, remaining)


def bank_running_time(attempt: Attempt, now: datetime) -> None:
    """Fold the running span into consumed_seconds and stop the clock."""
    attempt.consumed_seconds = elapsed_active_seconds(attempt, now)
    attempt.running_since = None


def start_clock(attempt: Attempt, now: datetime) -> None:
    attempt.running_since = now

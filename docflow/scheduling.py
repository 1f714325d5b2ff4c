"""
Due-Date Scheduling

Default workflow due dates and an even split of the workflow's remaining days
across its stages. Day counts use whole-day integer arithmetic: the span is
rounded up to whole days, then divided down per stage, so the last stage can
fall short of the workflow due date.
"""

import math
from datetime import datetime, timezone, timedelta
from typing import List, Optional


DEFAULT_DAYS_PER_STAGE = 5

SECONDS_PER_DAY = 24 * 60 * 60


def _now(now: Optional[datetime]) -> datetime:
    return now or datetime.now(timezone.utc)


def default_due_date(stage_count: int, now: Optional[datetime] = None,
                     days_per_stage: int = DEFAULT_DAYS_PER_STAGE) -> datetime:
    """Due date used when the caller gives none: days_per_stage days per stage"""
    return _now(now) + timedelta(days=days_per_stage * stage_count)


def days_per_stage(workflow_due_date: datetime, total_stages: int,
                   now: Optional[datetime] = None) -> int:
    """Whole days each stage gets out of the time left until the due date"""
    if total_stages < 1:
        raise ValueError("total_stages must be at least 1")
    remaining = (workflow_due_date - _now(now)).total_seconds()
    total_days = math.ceil(remaining / SECONDS_PER_DAY)
    return math.floor(total_days / total_stages)


def stage_due_date(workflow_due_date: datetime, stage_index: int, total_stages: int,
                   now: Optional[datetime] = None) -> datetime:
    """
    Due date of the stage at stage_index (0-based).

    Args:
        workflow_due_date: Due date of the whole workflow
        stage_index: 0-based position of the stage
        total_stages: Number of stages in the workflow
        now: Reference time, defaults to the current UTC time

    Returns:
        now + days_per_stage * (stage_index + 1) days
    """
    now = _now(now)
    per_stage = days_per_stage(workflow_due_date, total_stages, now)
    return now + timedelta(days=per_stage * (stage_index + 1))


def stage_due_dates(workflow_due_date: datetime, total_stages: int,
                    now: Optional[datetime] = None) -> List[datetime]:
    """Due dates for every stage, in stage order"""
    now = _now(now)
    return [
        stage_due_date(workflow_due_date, index, total_stages, now)
        for index in range(total_stages)
    ]


def is_overdue(due_date: Optional[datetime], now: Optional[datetime] = None) -> bool:
    return due_date is not None and due_date < _now(now)


def duration_minutes(started: Optional[datetime], finished: datetime) -> Optional[int]:
    """Elapsed whole minutes between start and finish, None if never started"""
    if started is None:
        return None
    return int((finished - started).total_seconds() // 60)

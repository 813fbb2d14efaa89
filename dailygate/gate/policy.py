"""Policy evaluation over an organization's assessment config.

All functions are pure; ``now`` is always an aware timestamp.
"""

from __future__ import annotations

import datetime
import decimal
import typing as t

from dailygate.model import Framework, OrganizationAssessmentConfig, RetryPolicy, Schedule


def _offset(schedule: Schedule) -> datetime.timedelta:
    ws = schedule.window_start
    return datetime.timedelta(hours=ws.hour, minutes=ws.minute, seconds=ws.second)


def current_cycle(schedule: Schedule, now: datetime.datetime) -> datetime.date:
    """The cycle ``now`` falls in: cycles roll over at ``window_start`` local time."""
    local = now.astimezone(schedule.tzinfo)
    return (local - _offset(schedule)).date()


def cycle_bounds(schedule: Schedule, cycle: datetime.date) -> tuple[datetime.datetime, datetime.datetime]:
    tz = schedule.tzinfo
    start = datetime.datetime.combine(cycle, schedule.window_start, tzinfo=tz)
    end = datetime.datetime.combine(cycle + datetime.timedelta(days=1), schedule.window_start, tzinfo=tz)
    return start.astimezone(datetime.UTC), end.astimezone(datetime.UTC)


def assessment_required(config: OrganizationAssessmentConfig, role: str | None, cycle: datetime.date) -> bool:
    if config.schedule.skip_weekends and cycle.weekday() >= 5:
        return False
    override = config.role_overrides.get(role) if role is not None else None
    if override is not None and override.exempt:
        return False
    return True


def in_grace_period(schedule: Schedule, now: datetime.datetime) -> bool:
    if not schedule.grace_period:
        return False
    start, _ = cycle_bounds(schedule, current_cycle(schedule, now))
    return now < start + schedule.grace_period


def window_closed(schedule: Schedule, now: datetime.datetime) -> bool:
    if schedule.window_end is None:
        return False
    cycle = current_cycle(schedule, now)
    end = datetime.datetime.combine(cycle, schedule.window_end, tzinfo=schedule.tzinfo)
    return now >= end


def framework_for(config: OrganizationAssessmentConfig, role: str | None) -> Framework:
    override = config.role_overrides.get(role) if role is not None else None
    if override is not None and override.framework_id is not None:
        return config.frameworks[override.framework_id]
    return config.frameworks[config.default_framework]


def max_attempts_for(config: OrganizationAssessmentConfig, role: str | None) -> int:
    override = config.role_overrides.get(role) if role is not None else None
    if override is not None and override.max_attempts is not None:
        return override.max_attempts
    return config.retry.max_attempts


def cooldown_elapsed(retry: RetryPolicy, last_failure_at: datetime.datetime | None, now: datetime.datetime) -> bool:
    if last_failure_at is None or not retry.cooldown:
        return True
    return now >= last_failure_at + retry.cooldown


def meets_thresholds(
    thresholds: t.Mapping[str, decimal.Decimal], scores: t.Mapping[str, decimal.Decimal]
) -> tuple[bool, tuple[str, ...]]:
    """Check every configured dimension; a dimension missing from ``scores`` is unmet.

    Returns whether all thresholds are met, and the unmet dimensions in sorted order.
    """
    unmet = tuple(sorted(d for d, minimum in thresholds.items() if d not in scores or scores[d] < minimum))
    return not unmet, unmet


def month_bounds(now: datetime.datetime) -> tuple[datetime.datetime, datetime.datetime]:
    """The UTC calendar month containing ``now``, as a half-open interval."""
    now = now.astimezone(datetime.UTC)
    start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return start, end

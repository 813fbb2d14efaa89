from __future__ import annotations

import datetime
import decimal
import typing as t
import zoneinfo

import annotated_types as ant
import pydantic as p

from .base import BaseModel
from .id import OrganizationID, UserID


class Schedule(BaseModel):
    """When a cycle begins and how it is enforced.

    A cycle starts every day at ``window_start`` in ``timezone``. When
    ``window_end`` is set, new sessions may not be started after it in the same
    cycle. During ``grace_period`` after the cycle starts, users who still owe
    an assessment are let through in limited mode.
    """

    timezone: str = "UTC"
    window_start: datetime.time = datetime.time(0, 0)
    window_end: datetime.time | None = None
    grace_period: datetime.timedelta = datetime.timedelta(0)
    skip_weekends: bool = False

    @p.field_validator("timezone")
    @classmethod
    def check_timezone(cls, v: str) -> str:
        try:
            zoneinfo.ZoneInfo(v)
        except (zoneinfo.ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"unknown timezone: {v}") from e
        return v

    @p.model_validator(mode="after")
    def check_window(self) -> Schedule:
        if self.window_end is not None and self.window_end <= self.window_start:
            raise ValueError("window_end must be later than window_start")
        return self

    @property
    def tzinfo(self) -> zoneinfo.ZoneInfo:
        return zoneinfo.ZoneInfo(self.timezone)


class Framework(BaseModel):
    """A named rubric: dimensions with the minimum score each must reach."""

    framework_id: str
    name: str | None = None
    thresholds: dict[str, decimal.Decimal]
    question_count: t.Annotated[int, ant.Gt(0)] | None = None
    max_duration: datetime.timedelta = datetime.timedelta(minutes=30)


class RoleOverride(BaseModel):
    exempt: bool = False
    framework_id: str | None = None
    max_attempts: t.Annotated[int, ant.Ge(1)] | None = None


class RetryPolicy(BaseModel):
    max_attempts: t.Annotated[int, ant.Ge(1)] = 2
    cooldown: datetime.timedelta = datetime.timedelta(0)


class BypassPolicy(BaseModel):
    approver_roles: frozenset[str] = frozenset({"manager"})
    max_per_month: t.Annotated[int, ant.Ge(0)] = 5


class OrganizationAssessmentConfig(BaseModel):
    organization_id: OrganizationID
    schedule: Schedule = Schedule()
    frameworks: dict[str, Framework]
    default_framework: str
    role_overrides: dict[str, RoleOverride] = {}
    retry: RetryPolicy = RetryPolicy()
    bypass: BypassPolicy = BypassPolicy()
    limited_mode_task_types: frozenset[str] = frozenset()
    members: dict[UserID, str] = {}

    @p.model_validator(mode="before")
    @classmethod
    def fill_framework_ids(cls, data: t.Any) -> t.Any:
        # frameworks are keyed by id in the config document; allow the id to be
        # omitted from the body
        if isinstance(data, dict) and isinstance(data.get("frameworks"), dict):
            frameworks: dict[str, t.Any] = {}
            for fid, body in t.cast(dict[str, t.Any], data["frameworks"]).items():
                if isinstance(body, dict) and "framework_id" not in body:
                    body = {**t.cast(dict[str, t.Any], body), "framework_id": fid}
                frameworks[fid] = body
            data = {**t.cast(dict[str, t.Any], data), "frameworks": frameworks}
        return data

    @p.model_validator(mode="after")
    def check_frameworks(self) -> OrganizationAssessmentConfig:
        referenced = {self.default_framework}
        referenced |= {o.framework_id for o in self.role_overrides.values() if o.framework_id is not None}
        if missing := referenced - set(self.frameworks):
            raise ValueError(f"undefined frameworks referenced: {sorted(missing)}")
        return self

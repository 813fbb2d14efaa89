import datetime
import decimal

import pydantic as p

from .base import BaseModel
from .enum import GateState
from .id import OrganizationID, SessionID, UserID


class CurrentSession(BaseModel):
    """The assessment episode a user is in while ``IN_PROGRESS``.

    ``thresholds`` and ``max_duration`` are copied from the organization's
    framework when the session starts; they govern this session even if the
    organization's policy changes before it finishes.
    """

    session_id: SessionID
    framework_id: str
    started_at: datetime.datetime
    max_duration: datetime.timedelta
    thresholds: dict[str, decimal.Decimal] = {}
    answered: int = 0
    total: int | None = None

    @property
    def expires_at(self) -> datetime.datetime:
        return self.started_at + self.max_duration


class LastResult(BaseModel):
    run_id: str
    framework_id: str
    completed_at: datetime.datetime
    scores: dict[str, decimal.Decimal]
    passed: bool
    classification: str | None = None
    verify_url: str | None = None


class TodayStatus(BaseModel):
    """Per-cycle counters, reset whenever a new cycle begins."""

    assessment_required: bool = False
    attempts_used: int = 0
    bypassed: bool = False
    bypass_approver: UserID | None = None
    bypass_reason: str | None = None
    last_failure_at: datetime.datetime | None = None


class AssessmentStats(BaseModel):
    total_assessments: int = 0
    total_passed: int = 0
    current_streak: int = 0
    longest_streak: int = 0

    @p.computed_field
    @property
    def pass_rate(self) -> float:
        if self.total_assessments == 0:
            return 0.0
        return self.total_passed / self.total_assessments

    def record(self, passed: bool) -> "AssessmentStats":
        current = self.current_streak + 1 if passed else 0
        return AssessmentStats(
            total_assessments=self.total_assessments + 1,
            total_passed=self.total_passed + (1 if passed else 0),
            current_streak=current,
            longest_streak=max(self.longest_streak, current),
        )


class UserAssessmentState(BaseModel):
    user_id: UserID
    organization_id: OrganizationID
    cycle: datetime.date
    state: GateState = GateState.Idle
    state_changed_at: datetime.datetime

    current_session: CurrentSession | None = None
    last_result: LastResult | None = None
    today: TodayStatus = TodayStatus()
    stats: AssessmentStats = AssessmentStats()

    @p.model_validator(mode="after")
    def check_session_presence(self) -> "UserAssessmentState":
        in_progress = self.state is GateState.InProgress
        if in_progress != (self.current_session is not None):
            raise ValueError(f"current_session must be present if and only if state is {GateState.InProgress.value}")
        return self

import datetime
import decimal
import typing as t

from .base import BaseModel, FrozenModel
from .id import OrganizationID, SessionID, UserID


class Question(FrozenModel):
    question_id: str
    prompt: str
    choices: tuple[str, ...] = ()
    index: int | None = None
    total: int | None = None


class Progress(FrozenModel):
    session_id: SessionID
    answered: int
    total: int | None = None


class AssessmentResult(FrozenModel):
    run_id: str
    framework_id: str
    scores: dict[str, decimal.Decimal]
    passed: bool
    classification: str | None = None
    verify_url: str | None = None
    completed_at: datetime.datetime | None = None


class AnsweredQuestion(FrozenModel):
    question_id: str
    answer: str


class AssessmentSession(BaseModel):
    session_id: SessionID
    user_id: UserID
    organization_id: OrganizationID
    framework_id: str
    engine_session_id: str | None = None
    answers: list[AnsweredQuestion] = []
    expected_questions: int | None = None
    started_at: datetime.datetime
    deadline: datetime.datetime


AskUser = t.Callable[[Question], str]
OnProgress = t.Callable[[Progress], None]

"""Pytest fixtures for dailygate tests.

Gate tests run against a file-backed SQLite database created fresh for each
test, a clock the test moves by hand, and a scripted assessment engine in
place of the HTTP service.

Usage:
    def test_first_check(gate: AssessmentGate, org_id: OrganizationID, user_id: UserID):
        decision = gate.can_proceed(user_id, org_id)
        assert decision.state is GateState.Pending
"""

from __future__ import annotations

import datetime
import typing as t
from pathlib import Path

import pytest
import sqlalchemy
from sqlalchemy.orm import Session, sessionmaker

import dailygate.lib.json as json
import dailygate.lib.util as util
from dailygate.audit import AuditLogger
from dailygate.engine import AssessmentClient
from dailygate.gate.config import MappingConfigProvider
from dailygate.gate.errors import InvalidAnswer
from dailygate.gate.gate import AssessmentGate
from dailygate.gate.machine import NotificationIntent
from dailygate.model import AssessmentResult, OrganizationAssessmentConfig, OrganizationID, Question, \
    SessionHandle, UserID
from dailygate.storage.lock import KeyedLockTable
from dailygate.storage.table import metadata

# a Wednesday
Epoch = datetime.datetime(2026, 10, 21, 12, 0, tzinfo=datetime.UTC)

PassingScores: dict[str, str] = {"comprehension": "0.85", "verification": "0.75"}
FailingScores: dict[str, str] = {"comprehension": "0.40", "verification": "0.75"}


class Clock(object):
    """A timestamp provider that only moves when told to."""

    def __init__(self, now: datetime.datetime = Epoch):
        self.now = now

    def __call__(self) -> datetime.datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime.datetime:
        self.now += datetime.timedelta(**kwargs)
        return self.now

    def set(self, now: datetime.datetime) -> datetime.datetime:
        self.now = now
        return self.now


class ScriptedEngine(object):
    """In-memory assessment engine.

    Every session asks ``questions`` in order and scores with ``scores``.
    Exceptions queued in ``failures`` are raised one per call, before the call
    does anything; answers listed in ``rejections`` are refused.
    """

    def __init__(self, questions: t.Sequence[Question], scores: t.Mapping[str, str]):
        self.questions = list(questions)
        self.scores = dict(scores)
        self.failures: list[Exception] = []
        self.rejections: set[str] = set()
        self.sessions: dict[str, str] = {}
        self.answers: dict[str, dict[str, str]] = {}
        self.calls: list[str] = []

    def start(self, framework_id: str) -> str:
        self._call("start")
        engine_session_id = f"engine-{len(self.sessions) + 1}"
        self.sessions[engine_session_id] = framework_id
        self.answers[engine_session_id] = {}
        return engine_session_id

    def next_question(self, engine_session_id: str) -> Question | None:
        self._call("next_question")
        answered = self.answers[engine_session_id]
        for question in self.questions:
            if question.question_id not in answered:
                return question
        return None

    def submit_answer(self, engine_session_id: str, question_id: str, answer: str) -> None:
        self._call("submit_answer")
        if answer in self.rejections:
            raise InvalidAnswer("please answer the question that was asked")
        self.answers[engine_session_id][question_id] = answer

    def get_result(self, engine_session_id: str) -> AssessmentResult:
        self._call("get_result")
        return AssessmentResult.model_validate({
            "run_id": f"run-{engine_session_id}",
            "framework_id": self.sessions[engine_session_id],
            "scores": self.scores,
            "passed": True,
        })

    def _call(self, name: str) -> None:
        self.calls.append(name)
        if self.failures:
            raise self.failures.pop(0)


class RecordingNotifier(object):
    def __init__(self) -> None:
        self.sent: list[tuple[NotificationIntent, UserID, OrganizationID]] = []

    def notify(
        self,
        intent: NotificationIntent,
        *,
        user_id: UserID,
        organization_id: OrganizationID,
        detail: t.Mapping[str, t.Any],
    ) -> None:
        self.sent.append((intent, user_id, organization_id))

    def kinds(self, recipient: str | None = None) -> list[str]:
        return [i.kind for i, _, _ in self.sent if recipient is None or i.recipient == recipient]


def make_config(
    organization_id: OrganizationID, members: t.Mapping[UserID, str], **overrides: t.Any
) -> OrganizationAssessmentConfig:
    """An organization config with sensible test defaults; ``overrides`` are deep-merged."""
    doc: dict[str, t.Any] = {
        "organization_id": organization_id,
        "schedule": {"timezone": "UTC"},
        "frameworks": {
            "daily-core": {
                "thresholds": {"comprehension": "0.70", "verification": "0.60"},
                "question_count": 2,
                "max_duration": 1800,
            },
        },
        "default_framework": "daily-core",
        "retry": {"max_attempts": 2},
        "bypass": {"approver_roles": ["manager"], "max_per_month": 2},
        "limited_mode_task_types": ["search"],
        "members": dict(members),
    }
    return OrganizationAssessmentConfig.model_validate(util.deep_update(doc, overrides))


def answer_yes(question: Question) -> str:
    return "yes"


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def db_engine(tmp_path: Path) -> t.Generator[sqlalchemy.Engine]:
    """A fresh SQLite database with the full schema."""
    engine = sqlalchemy.create_engine(
        f"sqlite+pysqlite:///{tmp_path / 'dailygate.sqlite3'}",
        connect_args={"check_same_thread": False, "timeout": 30},
        json_serializer=json.dumps,
        json_deserializer=json.loads,
    )
    metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine: sqlalchemy.Engine) -> sessionmaker[Session]:
    # autobegin=False matches production: every use opens its own transaction
    return sessionmaker(bind=db_engine, autobegin=False, expire_on_commit=False)


@pytest.fixture
def locks() -> KeyedLockTable:
    return KeyedLockTable(timeout=datetime.timedelta(seconds=10))


@pytest.fixture
def org_id() -> OrganizationID:
    return OrganizationID()


@pytest.fixture
def user_id() -> UserID:
    return UserID()


@pytest.fixture
def manager_id() -> UserID:
    return UserID()


@pytest.fixture
def peer_id() -> UserID:
    return UserID()


@pytest.fixture
def members(user_id: UserID, manager_id: UserID, peer_id: UserID) -> dict[UserID, str]:
    return {user_id: "engineer", manager_id: "manager", peer_id: "engineer"}


@pytest.fixture
def org_config(org_id: OrganizationID, members: dict[UserID, str]) -> OrganizationAssessmentConfig:
    return make_config(org_id, members)


@pytest.fixture
def configs(org_config: OrganizationAssessmentConfig) -> MappingConfigProvider:
    return MappingConfigProvider([org_config])


@pytest.fixture
def questions() -> list[Question]:
    return [
        Question(question_id="q1", prompt="When should you verify generated code?", index=1, total=2),
        Question(question_id="q2", prompt="What do you do with a hallucinated API?", index=2, total=2),
    ]


@pytest.fixture
def assessment_engine(questions: list[Question]) -> ScriptedEngine:
    return ScriptedEngine(questions, PassingScores)


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def assessment_client(
    assessment_engine: ScriptedEngine,
    session_factory: sessionmaker[Session],
    clock: Clock,
    sleeps: list[float],
) -> AssessmentClient:
    return AssessmentClient(
        assessment_engine,
        session_factory,
        clock=clock,
        max_retries=3,
        backoff_base=datetime.timedelta(seconds=1),
        max_reprompts=2,
        sleep=sleeps.append,
    )


@pytest.fixture
def audit_logger(locks: KeyedLockTable, session_factory: sessionmaker[Session], clock: Clock) -> AuditLogger:
    return AuditLogger(locks, session_factory, clock=clock)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def gate(
    session_factory: sessionmaker[Session],
    locks: KeyedLockTable,
    configs: MappingConfigProvider,
    assessment_client: AssessmentClient,
    audit_logger: AuditLogger,
    notifier: RecordingNotifier,
    clock: Clock,
) -> AssessmentGate:
    return AssessmentGate(
        session_factory,
        locks,
        configs,
        assessment_client,
        audit_logger,
        notifier=notifier,
        clock=clock,
    )


@pytest.fixture
def make_handle(clock: Clock, org_id: OrganizationID, user_id: UserID) -> t.Callable[..., SessionHandle]:
    """Build a session handle for tests that drive the client directly."""
    from dailygate.model import SessionID

    def create_handle(
        framework_id: str = "daily-core",
        max_duration: datetime.timedelta = datetime.timedelta(minutes=30),
    ) -> SessionHandle:
        now = clock()
        return SessionHandle(
            session_id=SessionID(),
            user_id=user_id,
            organization_id=org_id,
            framework_id=framework_id,
            started_at=now,
            expires_at=now + max_duration,
        )

    return create_handle

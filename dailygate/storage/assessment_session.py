from __future__ import annotations

import typing as t

import sqlalchemy as sqla

from dailygate.core import di
from dailygate.model import AnsweredQuestion, AssessmentSession, SessionID

from . import Session
from .table import assessment_sessions


def get(key: SessionID, *, session: Session = di.Provide["storage.persistent.session"]) -> AssessmentSession | None:
    stmt = sqla.select(assessment_sessions.__table__).where(assessment_sessions.session_id == key)
    row = session.execute(stmt).mappings().one_or_none()
    return AssessmentSession(**row) if row else None


def create(
    value: AssessmentSession, *, session: Session = di.Provide["storage.persistent.session"]
) -> AssessmentSession:
    row = assessment_sessions(
        session_id=value.session_id,
        user_id=value.user_id,
        organization_id=value.organization_id,
        framework_id=value.framework_id,
        started_at=value.started_at,
        deadline=value.deadline,
        answers=[a.model_dump(mode="json") for a in value.answers],
        engine_session_id=value.engine_session_id,
        expected_questions=value.expected_questions,
    )
    session.add(row)
    session.flush()
    return get(value.session_id, session=session)  # type: ignore


def update(
    key: SessionID,
    params: AssessmentSessionUpdateParams,
    *,
    session: Session = di.Provide["storage.persistent.session"],
) -> AssessmentSession | None:
    row = session.get(assessment_sessions, key)
    if row is None:
        return None
    if "engine_session_id" in params:
        row.engine_session_id = params["engine_session_id"]
    if "expected_questions" in params:
        row.expected_questions = params["expected_questions"]
    session.flush()
    return get(key, session=session)


def append_answer(
    key: SessionID,
    answer: AnsweredQuestion,
    *,
    session: Session = di.Provide["storage.persistent.session"],
) -> AssessmentSession | None:
    """Record an accepted answer. Re-answering a question replaces the earlier answer."""
    row = session.get(assessment_sessions, key)
    if row is None:
        return None
    answers = [a for a in row.answers if a.get("question_id") != answer.question_id]
    answers.append(answer.model_dump(mode="json"))
    # reassign so the JSON column is marked dirty
    row.answers = answers
    session.flush()
    return get(key, session=session)


def delete(key: SessionID, *, session: Session = di.Provide["storage.persistent.session"]) -> bool:
    """Drop a finished session, answers included. Returns whether a row was removed."""
    row = session.get(assessment_sessions, key)
    if row is None:
        return False
    session.delete(row)
    session.flush()
    return True


class AssessmentSessionUpdateParams(t.TypedDict, total=False):
    engine_session_id: str | None
    expected_questions: int | None

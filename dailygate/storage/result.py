from __future__ import annotations

import datetime

import sqlalchemy as sqla

from dailygate.core import di
from dailygate.model import AssessmentResult, OrganizationID, SessionID, UserID

from . import Session
from .table import assessment_results


class StoredResult(AssessmentResult):
    """An assessment result as recorded against the session that produced it."""

    session_id: SessionID
    user_id: UserID
    organization_id: OrganizationID
    cycle: datetime.date
    completed_at: datetime.datetime


def get(key: SessionID, *, session: Session = di.Provide["storage.persistent.session"]) -> StoredResult | None:
    stmt = sqla.select(assessment_results.__table__).where(assessment_results.session_id == key)
    row = session.execute(stmt).mappings().one_or_none()
    return StoredResult(**row) if row else None


def find(
    *,
    user_id: UserID | None = None,
    organization_id: OrganizationID | None = None,
    cycle: datetime.date | None = None,
    limit: int | None = None,
    session: Session = di.Provide["storage.persistent.session"],
) -> tuple[StoredResult, ...]:
    stmt = sqla.select(assessment_results.__table__).order_by(assessment_results.completed_at.desc())
    if user_id is not None:
        stmt = stmt.where(assessment_results.user_id == user_id)
    if organization_id is not None:
        stmt = stmt.where(assessment_results.organization_id == organization_id)
    if cycle is not None:
        stmt = stmt.where(assessment_results.cycle == cycle)
    if limit is not None:
        stmt = stmt.limit(limit)
    rows = session.execute(stmt).mappings().all()
    return tuple(StoredResult(**row) for row in rows)


def create(value: StoredResult, *, session: Session = di.Provide["storage.persistent.session"]) -> StoredResult:
    row = assessment_results(
        session_id=value.session_id,
        user_id=value.user_id,
        organization_id=value.organization_id,
        cycle=value.cycle,
        run_id=value.run_id,
        framework_id=value.framework_id,
        scores={k: str(v) for k, v in value.scores.items()},
        passed=value.passed,
        completed_at=value.completed_at,
        classification=value.classification,
        verify_url=value.verify_url,
    )
    session.add(row)
    session.flush()
    return get(value.session_id, session=session)  # type: ignore

from __future__ import annotations

import sqlalchemy as sqla

from dailygate.core import di
from dailygate.model import GateState, OrganizationID, UserAssessmentState, UserID

from . import Session
from .table import user_assessment_states


def get(
    user_id: UserID,
    organization_id: OrganizationID,
    *,
    session: Session = di.Provide["storage.persistent.session"],
) -> UserAssessmentState | None:
    stmt = sqla.select(user_assessment_states.__table__).where(
        user_assessment_states.user_id == user_id,
        user_assessment_states.organization_id == organization_id,
    )
    row = session.execute(stmt).mappings().one_or_none()
    return UserAssessmentState(**row) if row else None


def find(
    *,
    state: GateState | None = None,
    organization_id: OrganizationID | None = None,
    session: Session = di.Provide["storage.persistent.session"],
) -> tuple[UserAssessmentState, ...]:
    stmt = sqla.select(user_assessment_states.__table__).order_by(
        user_assessment_states.organization_id, user_assessment_states.user_id
    )
    if state is not None:
        stmt = stmt.where(user_assessment_states.state == state)
    if organization_id is not None:
        stmt = stmt.where(user_assessment_states.organization_id == organization_id)
    rows = session.execute(stmt).mappings().all()
    return tuple(UserAssessmentState(**row) for row in rows)


def put(
    value: UserAssessmentState,
    *,
    session: Session = di.Provide["storage.persistent.session"],
) -> UserAssessmentState:
    """Insert or replace the stored state for ``(value.user_id, value.organization_id)``."""
    fields = _to_row(value)
    row = session.get(user_assessment_states, (value.user_id, value.organization_id))
    if row is None:
        session.add(user_assessment_states(**fields))
    else:
        for field, v in fields.items():
            setattr(row, field, v)
    session.flush()
    return value


def _to_row(value: UserAssessmentState) -> dict[str, object]:
    js = value.model_dump(mode="json", include={"today", "stats", "current_session", "last_result"})
    return {
        "user_id": value.user_id,
        "organization_id": value.organization_id,
        "cycle": value.cycle,
        "state": value.state,
        "state_changed_at": value.state_changed_at,
        "today": js["today"],
        "stats": js["stats"],
        "current_session": js["current_session"],
        "last_result": js["last_result"],
    }

from __future__ import annotations

import datetime

import sqlalchemy as sqla

from dailygate.core import di
from dailygate.model import AuditEventType, AuditFilters, AuditLogEntry, OrganizationID, UserID

from . import Session
from .table import audit_log_entries


def last(
    user_id: UserID,
    organization_id: OrganizationID,
    *,
    session: Session = di.Provide["storage.persistent.session"],
) -> AuditLogEntry | None:
    """The head of a user's chain, or ``None`` if the chain is empty."""
    stmt = (
        sqla.select(audit_log_entries.__table__)
        .where(
            audit_log_entries.user_id == user_id,
            audit_log_entries.organization_id == organization_id,
        )
        .order_by(audit_log_entries.sequence.desc())
        .limit(1)
    )
    row = session.execute(stmt).mappings().one_or_none()
    return AuditLogEntry(**row) if row else None


def chain(
    user_id: UserID,
    organization_id: OrganizationID,
    *,
    session: Session = di.Provide["storage.persistent.session"],
) -> tuple[AuditLogEntry, ...]:
    stmt = (
        sqla.select(audit_log_entries.__table__)
        .where(
            audit_log_entries.user_id == user_id,
            audit_log_entries.organization_id == organization_id,
        )
        .order_by(audit_log_entries.sequence)
    )
    rows = session.execute(stmt).mappings().all()
    return tuple(AuditLogEntry(**row) for row in rows)


def find(filters: AuditFilters, *, session: Session = di.Provide["storage.persistent.session"]) -> tuple[AuditLogEntry, ...]:
    stmt = sqla.select(audit_log_entries.__table__).order_by(
        audit_log_entries.timestamp, audit_log_entries.sequence
    )
    if filters.user_id is not None:
        stmt = stmt.where(audit_log_entries.user_id == filters.user_id)
    if filters.organization_id is not None:
        stmt = stmt.where(audit_log_entries.organization_id == filters.organization_id)
    if filters.event_type is not None:
        stmt = stmt.where(audit_log_entries.event_type == filters.event_type)
    if filters.since is not None:
        stmt = stmt.where(audit_log_entries.timestamp >= filters.since)
    if filters.until is not None:
        stmt = stmt.where(audit_log_entries.timestamp < filters.until)
    if filters.limit is not None:
        stmt = stmt.limit(filters.limit)
    rows = session.execute(stmt).mappings().all()
    return tuple(AuditLogEntry(**row) for row in rows)


def count(
    organization_id: OrganizationID,
    event_type: AuditEventType,
    *,
    since: datetime.datetime,
    until: datetime.datetime,
    session: Session = di.Provide["storage.persistent.session"],
) -> int:
    stmt = sqla.select(sqla.func.count()).where(
        audit_log_entries.organization_id == organization_id,
        audit_log_entries.event_type == event_type,
        audit_log_entries.timestamp >= since,
        audit_log_entries.timestamp < until,
    )
    return session.execute(stmt).scalar_one()


def create(entry: AuditLogEntry, *, session: Session = di.Provide["storage.persistent.session"]) -> AuditLogEntry:
    row = audit_log_entries(
        entry_id=entry.entry_id,
        user_id=entry.user_id,
        organization_id=entry.organization_id,
        sequence=entry.sequence,
        timestamp=entry.timestamp,
        event_type=entry.event_type,
        detail=entry.model_dump(mode="json", include={"detail"})["detail"],
        previous_hash=entry.previous_hash,
        hash=entry.hash,
        from_state=entry.from_state,
        to_state=entry.to_state,
        acting_principal=entry.acting_principal,
    )
    session.add(row)
    session.flush()
    return entry

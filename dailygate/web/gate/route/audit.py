"""Audit log query routes."""

import datetime

from fastapi import APIRouter, Depends, Query

from dailygate.audit import AuditLogger
from dailygate.core import di
from dailygate.model import AuditEventType, AuditFilters, ChainVerification, OrganizationID, UserID

from ..view import AuditEntriesResponse

router = APIRouter(prefix="/api/audit", tags=["audit"])


@router.get("", operation_id="query_audit_log")
@di.inject
def query(
    user_id: UserID | None = None,
    organization_id: OrganizationID | None = None,
    event_type: AuditEventType | None = None,
    since: datetime.datetime | None = None,
    until: datetime.datetime | None = None,
    limit: int | None = Query(default=None, ge=1, le=1000),
    audit: AuditLogger = Depends(di.Provide["gate.audit"]),
) -> AuditEntriesResponse:
    """List audit entries, oldest first. Entries never contain assessment answers."""
    entries = audit.query(
        AuditFilters(
            user_id=user_id,
            organization_id=organization_id,
            event_type=event_type,
            since=since,
            until=until,
            limit=limit,
        )
    )
    return AuditEntriesResponse(entries=list(entries), count=len(entries))


@router.get("/{organization_id}/{user_id}/verify", operation_id="verify_audit_chain")
@di.inject
def verify(
    organization_id: OrganizationID,
    user_id: UserID,
    audit: AuditLogger = Depends(di.Provide["gate.audit"]),
) -> ChainVerification:
    return audit.verify_chain(user_id, organization_id)

import datetime
import typing as t

from .base import FrozenModel
from .enum import AuditEventType, GateState
from .id import AuditEntryID, OrganizationID, UserID

GENESIS_HASH: t.Final[str] = "0" * 64


class AuditLogEntry(FrozenModel):
    entry_id: AuditEntryID
    user_id: UserID
    organization_id: OrganizationID
    sequence: int
    timestamp: datetime.datetime
    event_type: AuditEventType
    from_state: GateState | None = None
    to_state: GateState | None = None
    acting_principal: UserID | None = None
    detail: dict[str, t.Any] = {}
    previous_hash: str = GENESIS_HASH
    hash: str


class AuditDraft(FrozenModel):
    """An entry as the caller describes it, before it is placed on the chain."""

    user_id: UserID
    organization_id: OrganizationID
    event_type: AuditEventType
    from_state: GateState | None = None
    to_state: GateState | None = None
    acting_principal: UserID | None = None
    detail: dict[str, t.Any] = {}


class AuditFilters(FrozenModel):
    user_id: UserID | None = None
    organization_id: OrganizationID | None = None
    event_type: AuditEventType | None = None
    since: datetime.datetime | None = None
    until: datetime.datetime | None = None
    limit: int | None = None


class ChainVerification(FrozenModel):
    user_id: UserID
    organization_id: OrganizationID
    valid: bool
    checked: int
    first_invalid: AuditEntryID | None = None
    invalid_entries: tuple[AuditEntryID, ...] = ()

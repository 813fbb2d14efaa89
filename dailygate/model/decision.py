import datetime

from .base import FrozenModel
from .enum import GateState, RequiredAction
from .id import OrganizationID, SessionID, UserID


class GateDecision(FrozenModel):
    allowed: bool
    state: GateState
    reason: str | None = None
    required_action: RequiredAction | None = None
    limited_mode: bool = False


class SessionHandle(FrozenModel):
    session_id: SessionID
    user_id: UserID
    organization_id: OrganizationID
    framework_id: str
    started_at: datetime.datetime
    expires_at: datetime.datetime

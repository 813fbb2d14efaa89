"""Gate decision routes."""

from fastapi import APIRouter, Depends, status

from dailygate.core import di
from dailygate.gate.errors import InvalidState
from dailygate.gate.gate import AssessmentGate
from dailygate.model import AssessmentResult, GateDecision, OrganizationID, SessionHandle, SessionID, \
    UserAssessmentState, UserID

from ..view import BypassRequest, CheckRequest

router = APIRouter(prefix="/api/gate/{organization_id}/{user_id}", tags=["gate"])


@router.post("/check", operation_id="check_gate")
@di.inject
def check(
    organization_id: OrganizationID,
    user_id: UserID,
    request: CheckRequest | None = None,
    gate: AssessmentGate = Depends(di.Provide["gate.gate"]),
) -> GateDecision:
    """Decide whether the user may use AI-assisted capabilities now."""
    return gate.can_proceed(user_id, organization_id, request.task_type if request else None)


@router.get("/state", operation_id="get_gate_state")
@di.inject
def get_state(
    organization_id: OrganizationID,
    user_id: UserID,
    gate: AssessmentGate = Depends(di.Provide["gate.gate"]),
) -> UserAssessmentState:
    return gate.get_state(user_id, organization_id)


@router.post("/assessments", operation_id="start_assessment", status_code=status.HTTP_201_CREATED)
@di.inject
def start_assessment(
    organization_id: OrganizationID,
    user_id: UserID,
    gate: AssessmentGate = Depends(di.Provide["gate.gate"]),
) -> SessionHandle:
    """Start an assessment session.

    If the assessment engine cannot be reached the session is still started
    (and will be resumed), but the request fails with 503.
    """
    return gate.start_assessment(user_id, organization_id)


@router.post("/assessments/{session_id}/result", operation_id="record_assessment_result")
@di.inject
def record_result(
    organization_id: OrganizationID,
    user_id: UserID,
    session_id: SessionID,
    result: AssessmentResult,
    gate: AssessmentGate = Depends(di.Provide["gate.gate"]),
) -> UserAssessmentState:
    """Record the engine's result for the user's current session."""
    state = gate.get_state(user_id, organization_id)
    current = state.current_session
    if current is None or current.session_id != session_id:
        raise InvalidState(
            "no such assessment session in progress",
            user_id=user_id,
            organization_id=organization_id,
            event="RecordResult",
        )
    handle = SessionHandle(
        session_id=current.session_id,
        user_id=user_id,
        organization_id=organization_id,
        framework_id=current.framework_id,
        started_at=current.started_at,
        expires_at=current.expires_at,
    )
    return gate.record_result(handle, result)


@router.post("/retry", operation_id="request_retry")
@di.inject
def request_retry(
    organization_id: OrganizationID,
    user_id: UserID,
    gate: AssessmentGate = Depends(di.Provide["gate.gate"]),
) -> GateDecision:
    return gate.request_retry(user_id, organization_id)


@router.post("/bypass", operation_id="request_bypass")
@di.inject
def request_bypass(
    organization_id: OrganizationID,
    user_id: UserID,
    request: BypassRequest,
    gate: AssessmentGate = Depends(di.Provide["gate.gate"]),
) -> GateDecision:
    """Let a manager waive today's assessment for a user who failed it."""
    return gate.request_bypass(user_id, organization_id, request.approver_id, request.reason)

"""The gate state machine.

``transition`` is a pure function: given the current state, an event and a
snapshot of the policy facts its guards need, it returns the ``Transition``
to apply or raises. It performs no I/O; the gate persists the result and
writes the audit entry it describes.
"""

from __future__ import annotations

import dataclasses
import datetime
import decimal
import typing as t

from dailygate.model import AuditEventType, GateState, SessionID, UserID

from .errors import InvalidState, QuotaExceeded, Unauthorized

# events


@dataclasses.dataclass(frozen=True)
class CycleStart(object):
    cycle: datetime.date


@dataclasses.dataclass(frozen=True)
class StartAssessment(object):
    session_id: SessionID
    framework_id: str


@dataclasses.dataclass(frozen=True)
class AssessmentPassed(object):
    run_id: str
    scores: t.Mapping[str, decimal.Decimal]


@dataclasses.dataclass(frozen=True)
class AssessmentFailed(object):
    run_id: str
    scores: t.Mapping[str, decimal.Decimal]
    unmet: tuple[str, ...] = ()


@dataclasses.dataclass(frozen=True)
class SessionExpired(object):
    session_id: SessionID


@dataclasses.dataclass(frozen=True)
class RetryRequested(object):
    pass


@dataclasses.dataclass(frozen=True)
class ManagerBypass(object):
    approver_id: UserID
    reason: str


@dataclasses.dataclass(frozen=True)
class CycleEnd(object):
    cycle: datetime.date


Event = (
    CycleStart
    | StartAssessment
    | AssessmentPassed
    | AssessmentFailed
    | SessionExpired
    | RetryRequested
    | ManagerBypass
    | CycleEnd
)


def event_name(event: Event) -> str:
    return type(event).__name__


@dataclasses.dataclass(frozen=True)
class TransitionPolicy(object):
    """Facts the guards depend on, evaluated by the caller beforehand.

    ``thresholds_met`` is ``None`` when no result is being applied.
    """

    assessment_required: bool = True
    attempts_used: int = 0
    max_attempts: int = 1
    cooldown_elapsed: bool = True
    thresholds_met: bool | None = None
    session_overdue: bool = False
    approver_authorized: bool = False
    bypass_quota_available: bool = False

    @property
    def retries_exhausted(self) -> bool:
        return self.attempts_used >= self.max_attempts


# effects


@dataclasses.dataclass(frozen=True)
class AuditIntent(object):
    event_type: AuditEventType
    detail: t.Mapping[str, t.Any] = dataclasses.field(default_factory=dict)


NotificationRecipient = t.Literal["user", "approvers"]


@dataclasses.dataclass(frozen=True)
class NotificationIntent(object):
    recipient: NotificationRecipient
    kind: str


@dataclasses.dataclass(frozen=True)
class Transition(object):
    from_state: GateState
    to_state: GateState
    event: Event
    audit: AuditIntent
    attempts_delta: int = 0
    notification: NotificationIntent | None = None

    @property
    def changed(self) -> bool:
        return self.from_state is not self.to_state or self.attempts_delta != 0


def _move(
    state: GateState,
    to: GateState,
    event: Event,
    *,
    attempts_delta: int = 0,
    notify: NotificationIntent | None = None,
    event_type: AuditEventType = AuditEventType.Transition,
    **detail: t.Any,
) -> Transition:
    return Transition(
        from_state=state,
        to_state=to,
        event=event,
        audit=AuditIntent(event_type, {"event": event_name(event), **detail}),
        attempts_delta=attempts_delta,
        notification=notify,
    )


def _stay(state: GateState, event: Event, reason: str) -> Transition:
    return _move(state, state, event, event_type=AuditEventType.Decision, outcome="no_op", reason=reason)


def transition(state: GateState, event: Event, policy: TransitionPolicy) -> Transition:
    """Compute the transition for ``event`` in ``state``.

    Raises ``InvalidState`` for any (state, event) pair outside the table and
    for guards that reject the event; ``Unauthorized`` and ``QuotaExceeded``
    for rejected bypasses.
    """
    name = event_name(event)
    match (state, event):
        case (GateState.Idle, CycleStart(cycle=cycle)):
            if not policy.assessment_required:
                return _stay(state, event, "assessment_not_required")
            return _move(
                state,
                GateState.Pending,
                event,
                notify=NotificationIntent("user", "assessment_required"),
                cycle=cycle.isoformat(),
            )

        case (GateState.Pending, StartAssessment(session_id=session_id, framework_id=framework_id)):
            return _move(state, GateState.InProgress, event, session_id=session_id, framework_id=framework_id)

        case (GateState.Retrying, StartAssessment(session_id=session_id, framework_id=framework_id)):
            if not policy.cooldown_elapsed:
                raise InvalidState("retry cooldown has not elapsed", event=name)
            return _move(state, GateState.InProgress, event, session_id=session_id, framework_id=framework_id)

        case (GateState.InProgress, AssessmentPassed(run_id=run_id, scores=scores)):
            if policy.thresholds_met is False:
                raise InvalidState("passing result does not meet thresholds", event=name)
            return _move(
                state,
                GateState.Passed,
                event,
                notify=NotificationIntent("user", "assessment_passed"),
                run_id=run_id,
                scores=dict(scores),
            )

        case (GateState.InProgress, AssessmentFailed(run_id=run_id, scores=scores, unmet=unmet)):
            if policy.thresholds_met is True:
                raise InvalidState("failing result meets every threshold", event=name)
            exhausted = policy.attempts_used + 1 >= policy.max_attempts
            return _move(
                state,
                GateState.Failed,
                event,
                attempts_delta=1,
                notify=NotificationIntent("approvers" if exhausted else "user", "assessment_failed"),
                run_id=run_id,
                scores=dict(scores),
                unmet=list(unmet),
            )

        case (GateState.InProgress, SessionExpired(session_id=session_id)):
            if not policy.session_overdue:
                raise InvalidState("session has not exceeded its maximum duration", event=name)
            exhausted = policy.attempts_used + 1 >= policy.max_attempts
            return _move(
                state,
                GateState.Failed,
                event,
                attempts_delta=1,
                notify=NotificationIntent("approvers" if exhausted else "user", "session_expired"),
                session_id=session_id,
            )

        case (GateState.Failed, RetryRequested()):
            if policy.retries_exhausted:
                return _stay(state, event, "retries_exhausted")
            return _move(state, GateState.Retrying, event, attempts_used=policy.attempts_used)

        case (GateState.Failed | GateState.Retrying, ManagerBypass(approver_id=approver_id, reason=reason)):
            if not policy.approver_authorized:
                raise Unauthorized("approver may not bypass the assessment", event=name)
            if not policy.bypass_quota_available:
                raise QuotaExceeded("monthly bypass quota exhausted", event=name)
            return _move(
                state,
                GateState.Bypassed,
                event,
                event_type=AuditEventType.Bypass,
                notify=NotificationIntent("user", "bypass_granted"),
                approver_id=approver_id,
                reason=reason,
            )

        case (GateState.Passed | GateState.Failed | GateState.Bypassed, CycleEnd(cycle=cycle)):
            return _move(state, GateState.Idle, event, cycle=cycle.isoformat())

        case _:
            raise InvalidState(f"{name} is not permitted in state {state.value}", event=name)

from __future__ import annotations

import contextlib
import dataclasses
import datetime
import logging
import typing as t

from dailygate import storage
from dailygate.audit import AuditLogger
from dailygate.core.provider import TimestampProvider, utcnow
from dailygate.engine import AssessmentClient
from dailygate.model import AskUser, AssessmentResult, AuditDraft, AuditEventType, CurrentSession, Framework, \
    GateDecision, GateState, LastResult, OnProgress, OrganizationAssessmentConfig, OrganizationID, Progress, \
    RequiredAction, SessionHandle, SessionID, TodayStatus, UserAssessmentState, UserID
from dailygate.storage import Session
from dailygate.storage.lock import KeyedLockTable
from dailygate.storage.result import StoredResult

from . import errors, machine, policy
from .config import ConfigProvider
from .notify import LoggingNotifier, NotificationIntent, Notifier


@dataclasses.dataclass
class _Unit(object):
    """One locked read-modify-write of a user's state."""

    session: Session
    config: OrganizationAssessmentConfig
    role: str
    now: datetime.datetime
    state: UserAssessmentState
    mutated: bool = False
    notifications: list[tuple[NotificationIntent, dict[str, t.Any]]] = dataclasses.field(default_factory=list)

    @property
    def max_attempts(self) -> int:
        return policy.max_attempts_for(self.config, self.role)

    @property
    def retries_exhausted(self) -> bool:
        return self.state.today.attempts_used >= self.max_attempts


class AssessmentGate(object):
    """Decides whether a user may use AI-assisted capabilities right now.

    Every operation on a (user, organization) runs under that key's lock and
    inside a single database transaction: the state change and its audit
    entries commit together or not at all. Calls to the assessment engine are
    made outside the lock.
    """

    def __init__(
        self,
        session_factory: t.Callable[[], Session],
        locks: KeyedLockTable,
        config: ConfigProvider,
        client: AssessmentClient,
        audit: AuditLogger,
        notifier: Notifier | None = None,
        clock: TimestampProvider = utcnow,
        logger: logging.Logger | None = None,
    ):
        self.session_factory = session_factory
        self.locks = locks
        self.config = config
        self.client = client
        self.audit = audit
        self.notifier = notifier or LoggingNotifier()
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)

    # operations

    def can_proceed(
        self, user_id: UserID, organization_id: OrganizationID, task_type: str | None = None
    ) -> GateDecision:
        with self._unit(user_id, organization_id, "CanProceed") as unit:
            decision = self._decide(unit, task_type)
            if unit.mutated:
                self._log_decision(unit, decision, "can_proceed", task_type=task_type)
            return decision

    def start_assessment(self, user_id: UserID, organization_id: OrganizationID) -> SessionHandle:
        event = "StartAssessment"
        with self._unit(user_id, organization_id, event) as unit:
            state = unit.state
            if state.state not in (GateState.Pending, GateState.Retrying):
                raise errors.InvalidState(f"cannot start an assessment in state {state.state.value}")
            if policy.window_closed(unit.config.schedule, unit.now):
                raise errors.InvalidState("the assessment window has closed for this cycle")

            framework = policy.framework_for(unit.config, unit.role)
            current = CurrentSession(
                session_id=SessionID(),
                framework_id=framework.framework_id,
                started_at=unit.now,
                max_duration=framework.max_duration,
                thresholds=framework.thresholds,
                total=framework.question_count,
            )
            self._apply(
                unit,
                machine.StartAssessment(current.session_id, framework.framework_id),
                self._guards(
                    unit,
                    cooldown_elapsed=policy.cooldown_elapsed(
                        unit.config.retry, state.today.last_failure_at, unit.now
                    ),
                ),
                actor=user_id,
                current_session=current,
            )
            handle = SessionHandle(
                session_id=current.session_id,
                user_id=user_id,
                organization_id=organization_id,
                framework_id=framework.framework_id,
                started_at=current.started_at,
                expires_at=current.expires_at,
            )

        try:
            self.client.open_session(handle, expected_questions=framework.question_count)
        except errors.UpstreamUnavailable as e:
            # state stays IN_PROGRESS; the session is opened on resume
            e.user_id, e.organization_id, e.event = user_id, organization_id, event
            self.logger.warning(
                "assessment engine unavailable; session left resumable",
                extra={"user_id": user_id, "organization_id": organization_id, "session_id": handle.session_id},
            )
            raise
        return handle

    def request_retry(self, user_id: UserID, organization_id: OrganizationID) -> GateDecision:
        with self._unit(user_id, organization_id, "RetryRequested") as unit:
            tr = self._apply(unit, machine.RetryRequested(), self._guards(unit), actor=user_id)
            decision = self._decide(unit, None)
            self._log_decision(unit, decision, "request_retry", outcome="applied" if tr.changed else "no_op")
            return decision

    def record_result(self, handle: SessionHandle, outcome: AssessmentResult) -> UserAssessmentState:
        with self._unit(handle.user_id, handle.organization_id, "RecordResult") as unit:
            state = unit.state
            current = state.current_session
            if state.state is not GateState.InProgress or current is None or current.session_id != handle.session_id:
                raise errors.InvalidState("result does not belong to the current assessment session")
            if unit.now >= current.expires_at:
                # too late to count; the session fails as if the sweep had reached it first
                self.logger.info(
                    "assessment result arrived after the session deadline",
                    extra={"user_id": handle.user_id, "session_id": current.session_id, "run_id": outcome.run_id},
                )
                self._expire(unit, current)
                return unit.state

            # judge against what was in force when the session started
            snapshot = Framework(
                framework_id=current.framework_id,
                thresholds=current.thresholds,
                max_duration=current.max_duration,
            )
            if not self.client.is_result_valid(outcome, snapshot):
                raise errors.InvalidResult("assessment result is malformed or scored against another framework")

            met, unmet = policy.meets_thresholds(current.thresholds, outcome.scores)
            completed_at = outcome.completed_at or unit.now
            event: machine.Event
            if met:
                event = machine.AssessmentPassed(outcome.run_id, outcome.scores)
                today = state.today
            else:
                event = machine.AssessmentFailed(outcome.run_id, outcome.scores, unmet)
                today = state.today.model_copy(update={"last_failure_at": unit.now})

            self._apply(
                unit,
                event,
                self._guards(unit, thresholds_met=met),
                actor=handle.user_id,
                today=today,
                stats=state.stats.record(met),
                last_result=LastResult(
                    run_id=outcome.run_id,
                    framework_id=current.framework_id,
                    completed_at=completed_at,
                    scores=outcome.scores,
                    passed=met,
                    classification=outcome.classification,
                    verify_url=outcome.verify_url,
                ),
            )
            storage.result.create(
                StoredResult(
                    session_id=current.session_id,
                    user_id=handle.user_id,
                    organization_id=handle.organization_id,
                    cycle=state.cycle,
                    run_id=outcome.run_id,
                    framework_id=current.framework_id,
                    scores=outcome.scores,
                    passed=met,
                    classification=outcome.classification,
                    verify_url=outcome.verify_url,
                    completed_at=completed_at,
                ),
                session=unit.session,
            )
            storage.assessment_session.delete(current.session_id, session=unit.session)
            return unit.state

    def request_bypass(
        self, user_id: UserID, organization_id: OrganizationID, approver_id: UserID, reason: str
    ) -> GateDecision:
        with self._unit(user_id, organization_id, "ManagerBypass", org_wide=True) as unit:
            approver_role = unit.config.members.get(approver_id)
            authorized = (
                approver_id != user_id
                and approver_role is not None
                and approver_role in unit.config.bypass.approver_roles
            )
            start, end = policy.month_bounds(unit.now)
            used = storage.audit.count(
                organization_id, AuditEventType.Bypass, since=start, until=end, session=unit.session
            )
            self._apply(
                unit,
                machine.ManagerBypass(approver_id, reason),
                self._guards(
                    unit,
                    approver_authorized=authorized,
                    bypass_quota_available=used < unit.config.bypass.max_per_month,
                ),
                actor=approver_id,
                today=unit.state.today.model_copy(
                    update={"bypassed": True, "bypass_approver": approver_id, "bypass_reason": reason}
                ),
            )
            return self._decide(unit, None)

    def conduct_assessment(
        self,
        handle: SessionHandle,
        ask_user: AskUser,
        on_progress: OnProgress | None = None,
    ) -> UserAssessmentState:
        """Put the questions to the user, then record the outcome.

        An assessment that runs past its deadline is recorded as expired.
        """

        def progress(p: Progress) -> None:
            self._record_progress(handle, p)
            if on_progress is not None:
                on_progress(p)

        try:
            result = self.client.run_assessment(handle, ask_user, progress)
        except errors.SessionExpired:
            self.logger.info(
                "assessment session expired",
                extra={"user_id": handle.user_id, "organization_id": handle.organization_id},
            )
            self.expire_session(handle.user_id, handle.organization_id, engine_reported=True)
            return self.get_state(handle.user_id, handle.organization_id)
        return self.record_result(handle, result)

    def expire_session(
        self, user_id: UserID, organization_id: OrganizationID, *, engine_reported: bool = False
    ) -> bool:
        """Fail the current session if it is overdue; returns whether it was expired."""
        with self._unit(user_id, organization_id, "SessionExpired") as unit:
            state = unit.state
            current = state.current_session
            if state.state is not GateState.InProgress or current is None:
                return False
            if not engine_reported and unit.now < current.expires_at:
                return False

            self._expire(unit, current)
            return True

    def get_state(self, user_id: UserID, organization_id: OrganizationID) -> UserAssessmentState:
        """The stored state, without evaluating the cycle or writing anything."""
        config = self.config.get_config(organization_id)
        self._role(config, user_id, organization_id, "GetState")
        with self.locks.hold(organization_id, user_id), self.session_factory() as session, session.begin():
            state = storage.state.get(user_id, organization_id, session=session)
        if state is None:
            now = self.clock()
            state = self._fresh(user_id, organization_id, policy.current_cycle(config.schedule, now), now)
        return state

    # internals

    def _expire(self, unit: _Unit, current: CurrentSession) -> None:
        self._apply(
            unit,
            machine.SessionExpired(current.session_id),
            self._guards(unit, session_overdue=True),
            actor=None,
            today=unit.state.today.model_copy(update={"last_failure_at": unit.now}),
            stats=unit.state.stats.record(False),
        )
        storage.assessment_session.delete(current.session_id, session=unit.session)

    @contextlib.contextmanager
    def _unit(
        self, user_id: UserID, organization_id: OrganizationID, event: str, org_wide: bool = False
    ) -> t.Iterator[_Unit]:
        try:
            config = self.config.get_config(organization_id)
            role = self._role(config, user_id, organization_id, event)
            with contextlib.ExitStack() as stack:
                stack.enter_context(self.locks.hold(organization_id, user_id))
                if org_wide:
                    stack.enter_context(self.locks.hold(organization_id))
                session = stack.enter_context(self.session_factory())
                stack.enter_context(session.begin())

                now = self.clock()
                stored = storage.state.get(user_id, organization_id, session=session)
                if stored is None:
                    stored = self._fresh(user_id, organization_id, policy.current_cycle(config.schedule, now), now)
                    unit = _Unit(session, config, role, now, stored, mutated=True)
                else:
                    unit = _Unit(session, config, role, now, stored)
                self._evaluate_cycle(unit)
                yield unit
                if unit.mutated:
                    storage.state.put(unit.state, session=session)
        except errors.GateError as e:
            e.user_id = e.user_id or user_id
            e.organization_id = e.organization_id or organization_id
            e.event = e.event or event
            self.logger.info(
                f"{event} rejected: {e.message}",
                extra={"user_id": user_id, "organization_id": organization_id, "error": type(e).__name__},
            )
            raise

        for intent, detail in unit.notifications:
            try:
                self.notifier.notify(intent, user_id=user_id, organization_id=organization_id, detail=detail)
            except Exception:
                # the transition is committed; delivery is best effort
                self.logger.exception(
                    f"failed to deliver {intent.kind} notification to {intent.recipient}",
                    extra={"user_id": user_id, "organization_id": organization_id, "event": event},
                )

    def _role(
        self, config: OrganizationAssessmentConfig, user_id: UserID, organization_id: OrganizationID, event: str
    ) -> str:
        role = config.members.get(user_id)
        if role is None:
            raise errors.NotFound(
                "user is not a member of the organization",
                user_id=user_id,
                organization_id=organization_id,
                event=event,
            )
        return role

    def _fresh(
        self, user_id: UserID, organization_id: OrganizationID, cycle: datetime.date, now: datetime.datetime
    ) -> UserAssessmentState:
        return UserAssessmentState(
            user_id=user_id,
            organization_id=organization_id,
            cycle=cycle,
            state=GateState.Idle,
            state_changed_at=now,
        )

    def _evaluate_cycle(self, unit: _Unit) -> None:
        """Roll a stale state into the current cycle and start it if an assessment is owed."""
        cycle = policy.current_cycle(unit.config.schedule, unit.now)
        if unit.state.cycle != cycle:
            previous = unit.state.cycle
            if unit.state.state.is_terminal:
                self._apply(unit, machine.CycleEnd(previous), self._guards(unit), actor=None)
            owed = unit.state.state in (GateState.Pending, GateState.Retrying, GateState.InProgress)
            unit.state = self._replace(unit.state, cycle=cycle, today=TodayStatus(assessment_required=owed))
            unit.mutated = True
            self.logger.debug(
                f"cycle rolled over {previous} -> {cycle}",
                extra={"user_id": unit.state.user_id, "organization_id": unit.state.organization_id},
            )

        if unit.state.state is GateState.Idle and not unit.state.today.assessment_required:
            required = policy.assessment_required(unit.config, unit.role, cycle)
            if required:
                self._apply(
                    unit,
                    machine.CycleStart(cycle),
                    self._guards(unit, assessment_required=True),
                    actor=None,
                    today=unit.state.today.model_copy(update={"assessment_required": True}),
                )

    def _guards(self, unit: _Unit, **kwargs: t.Any) -> machine.TransitionPolicy:
        return machine.TransitionPolicy(
            attempts_used=unit.state.today.attempts_used, max_attempts=unit.max_attempts, **kwargs
        )

    def _apply(
        self,
        unit: _Unit,
        event: machine.Event,
        guards: machine.TransitionPolicy,
        *,
        actor: UserID | None,
        **changes: t.Any,
    ) -> machine.Transition:
        """Apply ``event`` to the unit's state; ``changes`` are written alongside the new state."""
        tr = machine.transition(unit.state.state, event, guards)
        if not tr.changed:
            return tr

        before = unit.state
        today: TodayStatus = changes.pop("today", before.today)
        if tr.attempts_delta:
            today = today.model_copy(update={"attempts_used": today.attempts_used + tr.attempts_delta})
        update: dict[str, t.Any] = {"state": tr.to_state, "today": today, **changes}
        if tr.to_state is not tr.from_state:
            update["state_changed_at"] = unit.now
        if tr.to_state is not GateState.InProgress:
            update["current_session"] = None
        unit.state = self._replace(before, **update)
        unit.mutated = True

        self.audit.append(
            AuditDraft(
                user_id=before.user_id,
                organization_id=before.organization_id,
                event_type=tr.audit.event_type,
                from_state=tr.from_state,
                to_state=tr.to_state,
                acting_principal=actor,
                detail=dict(tr.audit.detail),
            ),
            unit.session,
        )
        self.logger.info(
            f"{tr.from_state.value} -> {tr.to_state.value} on {machine.event_name(event)}",
            extra={
                "user_id": before.user_id,
                "organization_id": before.organization_id,
                "attempts_used": today.attempts_used,
            },
        )
        if tr.notification is not None:
            unit.notifications.append((tr.notification, dict(tr.audit.detail)))
        return tr

    def _replace(self, current: UserAssessmentState, /, **update: t.Any) -> UserAssessmentState:
        # validate, so the session-presence invariant is checked on every change
        return UserAssessmentState.model_validate({**dict(current), **update})

    def _decide(self, unit: _Unit, task_type: str | None) -> GateDecision:
        state = unit.state
        match state.state:
            case GateState.Passed:
                decision = GateDecision(allowed=True, state=state.state, reason="assessment_passed")
            case GateState.Bypassed:
                decision = GateDecision(allowed=True, state=state.state, reason="bypassed")
            case GateState.Idle:
                decision = GateDecision(allowed=True, state=state.state, reason="assessment_not_required")
            case GateState.Pending if policy.in_grace_period(unit.config.schedule, unit.now):
                decision = GateDecision(
                    allowed=True,
                    state=state.state,
                    reason="grace_period",
                    required_action=RequiredAction.CompleteAssessment,
                    limited_mode=True,
                )
            case GateState.Pending:
                decision = GateDecision(
                    allowed=False,
                    state=state.state,
                    reason="assessment_required",
                    required_action=RequiredAction.CompleteAssessment,
                )
            case GateState.InProgress:
                decision = GateDecision(
                    allowed=False,
                    state=state.state,
                    reason="assessment_in_progress",
                    required_action=RequiredAction.CompleteAssessment,
                )
            case GateState.Failed if unit.retries_exhausted:
                decision = GateDecision(
                    allowed=False,
                    state=state.state,
                    reason="retries_exhausted",
                    required_action=RequiredAction.ContactManager,
                )
            case GateState.Failed:
                decision = GateDecision(
                    allowed=False,
                    state=state.state,
                    reason="assessment_failed",
                    required_action=RequiredAction.RetryAssessment,
                )
            case GateState.Retrying if not policy.cooldown_elapsed(
                unit.config.retry, state.today.last_failure_at, unit.now
            ):
                decision = GateDecision(
                    allowed=False,
                    state=state.state,
                    reason="cooldown",
                    required_action=RequiredAction.WaitForCooldown,
                )
            case GateState.Retrying:
                decision = GateDecision(
                    allowed=False,
                    state=state.state,
                    reason="retry_available",
                    required_action=RequiredAction.RetryAssessment,
                )

        if (
            not decision.allowed
            and task_type is not None
            and task_type in unit.config.limited_mode_task_types
            and not unit.retries_exhausted
        ):
            decision = decision.model_copy(update={"allowed": True, "limited_mode": True})
        return decision

    def _log_decision(self, unit: _Unit, decision: GateDecision, operation: str, **detail: t.Any) -> None:
        self.audit.append(
            AuditDraft(
                user_id=unit.state.user_id,
                organization_id=unit.state.organization_id,
                event_type=AuditEventType.Decision,
                to_state=unit.state.state,
                acting_principal=unit.state.user_id,
                detail={
                    "operation": operation,
                    **decision.model_dump(mode="json", exclude={"state"}),
                    **{k: v for k, v in detail.items() if v is not None},
                },
            ),
            unit.session,
        )

    def _record_progress(self, handle: SessionHandle, progress: Progress) -> None:
        with self._unit(handle.user_id, handle.organization_id, "Progress") as unit:
            current = unit.state.current_session
            if current is None or current.session_id != handle.session_id:
                return
            update = {"answered": progress.answered, "total": progress.total or current.total}
            unit.state = self._replace(unit.state, current_session=current.model_copy(update=update))
            unit.mutated = True

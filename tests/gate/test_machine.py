"""Tests for dailygate.gate.machine."""

from __future__ import annotations

import datetime
import decimal

import pytest

from dailygate.gate import machine
from dailygate.gate.errors import InvalidState, QuotaExceeded, Unauthorized
from dailygate.model import AuditEventType, GateState, SessionID, UserID

Today = datetime.date(2026, 10, 21)
Scores = {"comprehension": decimal.Decimal("0.9")}


class TestCycleEvents(object):
    def test_cycle_start_when_required(self) -> None:
        tr = machine.transition(GateState.Idle, machine.CycleStart(Today), machine.TransitionPolicy())

        assert tr.to_state is GateState.Pending
        assert tr.changed
        assert tr.audit.event_type is AuditEventType.Transition
        assert tr.audit.detail == {"event": "CycleStart", "cycle": "2026-10-21"}
        assert tr.notification == machine.NotificationIntent("user", "assessment_required")

    def test_cycle_start_when_not_required(self) -> None:
        """Nothing owed: the state stays put and the outcome is recorded as a decision."""
        policy = machine.TransitionPolicy(assessment_required=False)
        tr = machine.transition(GateState.Idle, machine.CycleStart(Today), policy)

        assert tr.to_state is GateState.Idle
        assert not tr.changed
        assert tr.audit.event_type is AuditEventType.Decision
        assert tr.audit.detail["outcome"] == "no_op"

    @pytest.mark.parametrize("state", [GateState.Passed, GateState.Failed, GateState.Bypassed])
    def test_cycle_end_from_terminal_state(self, state: GateState) -> None:
        tr = machine.transition(state, machine.CycleEnd(Today), machine.TransitionPolicy())

        assert tr.to_state is GateState.Idle

    @pytest.mark.parametrize("state", [GateState.Pending, GateState.InProgress, GateState.Retrying])
    def test_cycle_end_from_open_state(self, state: GateState) -> None:
        with pytest.raises(InvalidState):
            machine.transition(state, machine.CycleEnd(Today), machine.TransitionPolicy())


class TestAssessmentEvents(object):
    def test_start_from_pending(self) -> None:
        sid = SessionID()
        tr = machine.transition(
            GateState.Pending, machine.StartAssessment(sid, "daily-core"), machine.TransitionPolicy()
        )

        assert tr.to_state is GateState.InProgress
        assert tr.audit.detail["session_id"] == sid

    def test_start_from_retrying_during_cooldown(self) -> None:
        policy = machine.TransitionPolicy(cooldown_elapsed=False)

        with pytest.raises(InvalidState) as exc:
            machine.transition(GateState.Retrying, machine.StartAssessment(SessionID(), "daily-core"), policy)
        assert exc.value.event == "StartAssessment"

    def test_passed(self) -> None:
        policy = machine.TransitionPolicy(thresholds_met=True)
        tr = machine.transition(GateState.InProgress, machine.AssessmentPassed("run-1", Scores), policy)

        assert tr.to_state is GateState.Passed
        assert tr.attempts_delta == 0
        assert tr.audit.detail["run_id"] == "run-1"

    def test_passed_below_thresholds(self) -> None:
        policy = machine.TransitionPolicy(thresholds_met=False)

        with pytest.raises(InvalidState):
            machine.transition(GateState.InProgress, machine.AssessmentPassed("run-1", Scores), policy)

    def test_failed_uses_an_attempt(self) -> None:
        policy = machine.TransitionPolicy(attempts_used=0, max_attempts=2, thresholds_met=False)
        tr = machine.transition(
            GateState.InProgress, machine.AssessmentFailed("run-1", Scores, ("verification",)), policy
        )

        assert tr.to_state is GateState.Failed
        assert tr.attempts_delta == 1
        assert tr.audit.detail["unmet"] == ["verification"]
        assert tr.notification == machine.NotificationIntent("user", "assessment_failed")

    def test_last_failure_notifies_approvers(self) -> None:
        policy = machine.TransitionPolicy(attempts_used=1, max_attempts=2, thresholds_met=False)
        tr = machine.transition(GateState.InProgress, machine.AssessmentFailed("run-1", Scores), policy)

        assert tr.notification == machine.NotificationIntent("approvers", "assessment_failed")

    def test_expired_session(self) -> None:
        policy = machine.TransitionPolicy(session_overdue=True, max_attempts=3)
        tr = machine.transition(GateState.InProgress, machine.SessionExpired(SessionID()), policy)

        assert tr.to_state is GateState.Failed
        assert tr.attempts_delta == 1

    def test_expiry_before_deadline(self) -> None:
        with pytest.raises(InvalidState):
            machine.transition(GateState.InProgress, machine.SessionExpired(SessionID()), machine.TransitionPolicy())


class TestRetry(object):
    def test_retry_available(self) -> None:
        policy = machine.TransitionPolicy(attempts_used=1, max_attempts=2)
        tr = machine.transition(GateState.Failed, machine.RetryRequested(), policy)

        assert tr.to_state is GateState.Retrying
        assert tr.attempts_delta == 0

    def test_retry_exhausted_is_noop(self) -> None:
        policy = machine.TransitionPolicy(attempts_used=2, max_attempts=2)
        tr = machine.transition(GateState.Failed, machine.RetryRequested(), policy)

        assert tr.to_state is GateState.Failed
        assert not tr.changed
        assert tr.audit.detail["reason"] == "retries_exhausted"


class TestBypass(object):
    event = machine.ManagerBypass(UserID(), "incident response")

    @pytest.mark.parametrize("state", [GateState.Failed, GateState.Retrying])
    def test_bypass(self, state: GateState) -> None:
        policy = machine.TransitionPolicy(approver_authorized=True, bypass_quota_available=True)
        tr = machine.transition(state, self.event, policy)

        assert tr.to_state is GateState.Bypassed
        assert tr.audit.event_type is AuditEventType.Bypass
        assert tr.audit.detail["reason"] == "incident response"

    def test_unauthorized_approver(self) -> None:
        policy = machine.TransitionPolicy(approver_authorized=False, bypass_quota_available=True)

        with pytest.raises(Unauthorized):
            machine.transition(GateState.Failed, self.event, policy)

    def test_quota_checked_after_authorization(self) -> None:
        with pytest.raises(Unauthorized):
            machine.transition(GateState.Failed, self.event, machine.TransitionPolicy())

        policy = machine.TransitionPolicy(approver_authorized=True, bypass_quota_available=False)
        with pytest.raises(QuotaExceeded):
            machine.transition(GateState.Failed, self.event, policy)

    def test_bypass_while_pending(self) -> None:
        policy = machine.TransitionPolicy(approver_authorized=True, bypass_quota_available=True)

        with pytest.raises(InvalidState):
            machine.transition(GateState.Pending, self.event, policy)


@pytest.mark.parametrize(
    ("state", "event"),
    [
        (GateState.Idle, machine.StartAssessment(SessionID(), "daily-core")),
        (GateState.Pending, machine.AssessmentPassed("run-1", Scores)),
        (GateState.Passed, machine.RetryRequested()),
        (GateState.InProgress, machine.CycleStart(Today)),
        (GateState.Bypassed, machine.StartAssessment(SessionID(), "daily-core")),
        (GateState.Retrying, machine.RetryRequested()),
    ],
)
def test_events_outside_the_table_are_rejected(state: GateState, event: machine.Event) -> None:
    with pytest.raises(InvalidState) as exc:
        machine.transition(state, event, machine.TransitionPolicy())
    assert exc.value.event == machine.event_name(event)

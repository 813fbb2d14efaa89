"""Tests for dailygate.gate.sweeper."""

from __future__ import annotations

import datetime
import time

import pytest
from sqlalchemy.exc import OperationalError

from conftest import Clock
from dailygate.gate.errors import NotFound
from dailygate.gate.gate import AssessmentGate
from dailygate.gate.sweeper import SessionSweeper, sweep_expired_sessions
from dailygate.model import GateState, OrganizationID, UserID


class TestSweepExpiredSessions(object):
    def test_overdue_session_is_failed(
        self, gate: AssessmentGate, clock: Clock, org_id: OrganizationID, user_id: UserID
    ) -> None:
        gate.start_assessment(user_id, org_id)
        clock.advance(minutes=31)

        assert sweep_expired_sessions(gate) == [(org_id, user_id)]

        state = gate.get_state(user_id, org_id)
        assert state.state is GateState.Failed
        assert state.today.attempts_used == 1
        assert state.stats.total_assessments == 1

    def test_session_within_deadline_is_left_alone(
        self, gate: AssessmentGate, clock: Clock, org_id: OrganizationID, user_id: UserID
    ) -> None:
        gate.start_assessment(user_id, org_id)
        clock.advance(minutes=29)

        assert sweep_expired_sessions(gate) == []
        assert gate.get_state(user_id, org_id).state is GateState.InProgress

    def test_one_failing_key_does_not_stop_the_sweep(
        self,
        gate: AssessmentGate,
        clock: Clock,
        monkeypatch: pytest.MonkeyPatch,
        org_id: OrganizationID,
        user_id: UserID,
        peer_id: UserID,
        manager_id: UserID,
    ) -> None:
        gate.start_assessment(user_id, org_id)
        gate.start_assessment(peer_id, org_id)
        gate.start_assessment(manager_id, org_id)
        clock.advance(hours=1)
        expire = gate.expire_session

        def flaky(uid: UserID, oid: OrganizationID, **kwargs: bool) -> bool:
            if uid == user_id:
                raise NotFound("organization has no assessment config", organization_id=oid)
            if uid == manager_id:
                raise OperationalError("UPDATE user_assessment_states", {}, Exception("database is locked"))
            return expire(uid, oid, **kwargs)

        monkeypatch.setattr(gate, "expire_session", flaky)

        assert sweep_expired_sessions(gate) == [(org_id, peer_id)]
        assert gate.get_state(user_id, org_id).state is GateState.InProgress
        assert gate.get_state(manager_id, org_id).state is GateState.InProgress


class TestSessionSweeper(object):
    def test_runs_until_stopped(
        self, gate: AssessmentGate, clock: Clock, org_id: OrganizationID, user_id: UserID
    ) -> None:
        gate.start_assessment(user_id, org_id)
        clock.advance(hours=1)
        sweeper = SessionSweeper(gate, interval=datetime.timedelta(milliseconds=10))

        sweeper.start()
        try:
            deadline = time.monotonic() + 5
            while gate.get_state(user_id, org_id).state is GateState.InProgress and time.monotonic() < deadline:
                time.sleep(0.01)
            assert sweeper.running
        finally:
            sweeper.stop(timeout=datetime.timedelta(seconds=5))

        assert not sweeper.running
        assert gate.get_state(user_id, org_id).state is GateState.Failed

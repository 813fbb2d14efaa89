"""Tests for the ``dailygate audit`` commands."""

from __future__ import annotations

import typing as t

import pytest
import sqlalchemy as sqla
from click.testing import CliRunner
from dependency_injector import providers
from sqlalchemy.orm import Session, sessionmaker

from dailygate.audit import AuditLogger
from dailygate.core import DailyGateContainer
from dailygate.gate.gate import AssessmentGate
from dailygate.model import AuditEventType, AuditFilters, OrganizationID, UserID
from dailygate.storage.table import audit_log_entries


@pytest.fixture
def audit_cli(audit_logger: AuditLogger) -> t.Generator[t.Any]:
    """The ``audit`` command group, wired to the test's audit logger."""
    from dailygate.cli.audit import audit

    ct = DailyGateContainer()
    ct.gate.audit.override(providers.Object(audit_logger))
    ct.wire(modules=["dailygate.cli.audit"])

    yield audit

    ct.unwire()


class TestAuditVerify(object):
    def test_intact_chain(
        self, audit_cli: t.Any, gate: AssessmentGate, org_id: OrganizationID, user_id: UserID
    ) -> None:
        gate.can_proceed(user_id, org_id)

        result = CliRunner().invoke(audit_cli, ["verify", str(org_id), str(user_id)])

        assert result.exit_code == 0
        assert "OK: 2 entries verified" in result.output

    def test_tampered_chain_exits_nonzero(
        self,
        audit_cli: t.Any,
        gate: AssessmentGate,
        audit_logger: AuditLogger,
        session_factory: sessionmaker[Session],
        org_id: OrganizationID,
        user_id: UserID,
    ) -> None:
        gate.can_proceed(user_id, org_id)
        (decision,) = audit_logger.query(AuditFilters(user_id=user_id, event_type=AuditEventType.Decision))
        with session_factory() as session, session.begin():
            session.execute(
                sqla.update(audit_log_entries)
                .where(audit_log_entries.entry_id == decision.entry_id)
                .values(detail={"operation": "can_proceed", "allowed": True})
            )

        result = CliRunner().invoke(audit_cli, ["verify", str(org_id), str(user_id)])

        assert result.exit_code == 1
        assert "TAMPERED" in result.output
        assert str(decision.entry_id) in result.output

    def test_malformed_user_id(self, audit_cli: t.Any, org_id: OrganizationID) -> None:
        result = CliRunner().invoke(audit_cli, ["verify", str(org_id), "nobody"])

        assert result.exit_code == 2


class TestAuditQuery(object):
    def test_prints_one_entry_per_line(
        self, audit_cli: t.Any, gate: AssessmentGate, org_id: OrganizationID, user_id: UserID
    ) -> None:
        gate.can_proceed(user_id, org_id)

        result = CliRunner().invoke(audit_cli, ["query", "-u", str(user_id), "-e", "transition"])

        assert result.exit_code == 0
        lines = result.output.splitlines()
        assert len(lines) == 1
        assert '"to_state":"pending"' in lines[0]

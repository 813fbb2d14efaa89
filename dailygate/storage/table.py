import datetime
import enum
import typing as t

from sqlalchemy import func, Index, MetaData, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, MappedAsDataclass
from sqlalchemy.types import String

from dailygate.model import AuditEntryID, AuditEventType, GateState, OrganizationID, SessionID, UserID

from .type import JSONType, ShortUUIDKeyType, UTCDateTime, ValueEnumMapper

metadata = MetaData()


class base(MappedAsDataclass, DeclarativeBase):
    metadata = metadata
    type_annotation_map = {
        OrganizationID: ShortUUIDKeyType(OrganizationID),
        UserID: ShortUUIDKeyType(UserID),
        SessionID: ShortUUIDKeyType(SessionID),
        AuditEntryID: ShortUUIDKeyType(AuditEntryID),
        datetime.datetime: UTCDateTime(),
        enum.Enum: ValueEnumMapper,
    }


# Gate state


class user_assessment_states(base):
    __tablename__ = "user_assessment_states"
    __table_args__ = (Index("ix_user_assessment_states_state", "state"),)

    user_id: Mapped[UserID] = mapped_column(primary_key=True)
    organization_id: Mapped[OrganizationID] = mapped_column(primary_key=True)
    cycle: Mapped[datetime.date]
    state: Mapped[GateState]
    state_changed_at: Mapped[datetime.datetime]
    today: Mapped[dict[str, t.Any]] = mapped_column(JSONType)
    stats: Mapped[dict[str, t.Any]] = mapped_column(JSONType)
    current_session: Mapped[dict[str, t.Any] | None] = mapped_column(JSONType, default=None)
    last_result: Mapped[dict[str, t.Any] | None] = mapped_column(JSONType, default=None)
    create_time: Mapped[datetime.datetime] = mapped_column(default=None, server_default=func.now())
    update_time: Mapped[datetime.datetime] = mapped_column(default=None, server_default=func.now(), onupdate=func.now())


# Assessment sessions & results


class assessment_sessions(base):
    __tablename__ = "assessment_sessions"

    session_id: Mapped[SessionID] = mapped_column(primary_key=True)
    user_id: Mapped[UserID]
    organization_id: Mapped[OrganizationID]
    framework_id: Mapped[str]
    started_at: Mapped[datetime.datetime]
    deadline: Mapped[datetime.datetime]
    answers: Mapped[list[dict[str, t.Any]]] = mapped_column(JSONType)
    engine_session_id: Mapped[str | None] = mapped_column(default=None)
    expected_questions: Mapped[int | None] = mapped_column(default=None)
    create_time: Mapped[datetime.datetime] = mapped_column(default=None, server_default=func.now())
    update_time: Mapped[datetime.datetime] = mapped_column(default=None, server_default=func.now(), onupdate=func.now())


class assessment_results(base):
    __tablename__ = "assessment_results"
    __table_args__ = (Index("ix_assessment_results_user", "user_id", "organization_id", "completed_at"),)

    session_id: Mapped[SessionID] = mapped_column(primary_key=True)
    user_id: Mapped[UserID]
    organization_id: Mapped[OrganizationID]
    cycle: Mapped[datetime.date]
    run_id: Mapped[str]
    framework_id: Mapped[str]
    scores: Mapped[dict[str, t.Any]] = mapped_column(JSONType)
    passed: Mapped[bool]
    completed_at: Mapped[datetime.datetime]
    classification: Mapped[str | None] = mapped_column(default=None)
    verify_url: Mapped[str | None] = mapped_column(default=None)
    create_time: Mapped[datetime.datetime] = mapped_column(default=None, server_default=func.now())


# Audit


class audit_log_entries(base):
    __tablename__ = "audit_log_entries"
    __table_args__ = (
        UniqueConstraint("user_id", "organization_id", "sequence"),
        Index("ix_audit_log_entries_org_event", "organization_id", "event_type", "timestamp"),
    )

    entry_id: Mapped[AuditEntryID] = mapped_column(primary_key=True)
    user_id: Mapped[UserID]
    organization_id: Mapped[OrganizationID]
    sequence: Mapped[int]
    timestamp: Mapped[datetime.datetime]
    event_type: Mapped[AuditEventType]
    detail: Mapped[dict[str, t.Any]] = mapped_column(JSONType)
    previous_hash: Mapped[str] = mapped_column(String(64))
    hash: Mapped[str] = mapped_column(String(64))
    from_state: Mapped[GateState | None] = mapped_column(default=None)
    to_state: Mapped[GateState | None] = mapped_column(default=None)
    acting_principal: Mapped[UserID | None] = mapped_column(default=None)

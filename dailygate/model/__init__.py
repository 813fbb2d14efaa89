__all__ = [
    # Base
    "BaseModel",
    "FrozenModel",
    # Enums
    "AuditEventType",
    "DeploymentEnvironment",
    "GateState",
    "RequiredAction",
    # ID Types
    "AuditEntryID",
    "OrganizationID",
    "SessionID",
    "UserID",
    # State
    "AssessmentStats",
    "CurrentSession",
    "LastResult",
    "TodayStatus",
    "UserAssessmentState",
    # Policy
    "BypassPolicy",
    "Framework",
    "OrganizationAssessmentConfig",
    "RetryPolicy",
    "RoleOverride",
    "Schedule",
    # Assessment
    "AnsweredQuestion",
    "AskUser",
    "AssessmentResult",
    "AssessmentSession",
    "OnProgress",
    "Progress",
    "Question",
    # Decision
    "GateDecision",
    "SessionHandle",
    # Audit
    "AuditDraft",
    "AuditFilters",
    "AuditLogEntry",
    "ChainVerification",
    "GENESIS_HASH",
]

from .assessment import AnsweredQuestion, AskUser, AssessmentResult, AssessmentSession, OnProgress, Progress, \
    Question
from .audit import AuditDraft, AuditFilters, AuditLogEntry, ChainVerification, GENESIS_HASH
from .base import BaseModel, FrozenModel
from .decision import GateDecision, SessionHandle
from .enum import AuditEventType, DeploymentEnvironment, GateState, RequiredAction
from .id import AuditEntryID, OrganizationID, SessionID, UserID
from .policy import BypassPolicy, Framework, OrganizationAssessmentConfig, RetryPolicy, RoleOverride, Schedule
from .state import AssessmentStats, CurrentSession, LastResult, TodayStatus, UserAssessmentState

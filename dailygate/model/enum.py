import enum


class DeploymentEnvironment(enum.Enum):
    Production = "production"
    Development = "development"
    Staging = "staging"
    Test = "test"
    Local = "local"


class GateState(enum.Enum):
    Idle = "idle"
    Pending = "pending"
    InProgress = "in_progress"
    Passed = "passed"
    Failed = "failed"
    Retrying = "retrying"
    Bypassed = "bypassed"

    @property
    def is_terminal(self) -> bool:
        return self in (GateState.Passed, GateState.Failed, GateState.Bypassed)


class AuditEventType(enum.Enum):
    Transition = "transition"
    Decision = "decision"
    Bypass = "bypass"


class RequiredAction(enum.Enum):
    CompleteAssessment = "complete_assessment"
    RetryAssessment = "retry_assessment"
    WaitForCooldown = "wait_for_cooldown"
    ContactManager = "contact_manager"

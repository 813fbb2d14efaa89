"""Exceptions raised by gate operations."""

from __future__ import annotations

import typing as t


class GateError(Exception):
    """Error during a gate operation.

    Carries the user, organization and attempted event (where known) so the
    failure can be diagnosed from a log line alone.
    """

    def __init__(
        self,
        message: str,
        *,
        user_id: str | None = None,
        organization_id: str | None = None,
        event: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.user_id = user_id
        self.organization_id = organization_id
        self.event = event

    @property
    def context(self) -> dict[str, t.Any]:
        return {
            k: v
            for k, v in (("user_id", self.user_id), ("organization_id", self.organization_id), ("event", self.event))
            if v is not None
        }

    def __str__(self) -> str:
        if not self.context:
            return self.message
        ctx = ", ".join(f"{k}={v}" for k, v in self.context.items())
        return f"{self.message} ({ctx})"


class NotFound(GateError):
    """Unknown user, organization or session."""


class InvalidState(GateError):
    """The requested operation is not permitted from the current state."""


class InvalidResult(InvalidState):
    """An assessment result that is malformed or does not belong to the session."""


class Unauthorized(GateError):
    pass


class QuotaExceeded(GateError):
    pass


class UpstreamUnavailable(GateError):
    """The assessment engine could not be reached or failed after retries."""


class UpstreamError(GateError):
    """The assessment engine refused a request it should have accepted."""


class SessionExpired(GateError):
    pass


class InvalidAnswer(GateError):
    pass


class AuditWriteFailure(GateError):
    """The audit entry could not be persisted; the state change was rolled back."""


class LockTimeout(GateError):
    pass

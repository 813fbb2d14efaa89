"""View models for gate endpoints."""

from __future__ import annotations

import typing as t

import annotated_types as ant

from dailygate.model import BaseModel, UserID


class CheckRequest(BaseModel):
    """Request body for a gate check."""

    task_type: str | None = None


class BypassRequest(BaseModel):
    """Request body for a manager bypass."""

    approver_id: UserID
    reason: t.Annotated[str, ant.MinLen(1)]

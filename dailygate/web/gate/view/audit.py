"""View models for audit endpoints."""

from __future__ import annotations

from dailygate.model import AuditLogEntry, BaseModel


class AuditEntriesResponse(BaseModel):
    entries: list[AuditLogEntry]
    count: int

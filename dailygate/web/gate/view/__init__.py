"""View models for the gate web application."""

__all__ = [
    # Gate views
    "BypassRequest",
    "CheckRequest",
    # Audit views
    "AuditEntriesResponse",
]

from .audit import AuditEntriesResponse
from .gate import BypassRequest, CheckRequest

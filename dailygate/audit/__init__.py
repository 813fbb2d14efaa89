__all__ = [
    "AuditLogger",
    "RedactedKeys",
    "compute_hash",
    "entry_hash",
    "verify",
]

from .chain import compute_hash, entry_hash, verify
from .logger import AuditLogger, RedactedKeys

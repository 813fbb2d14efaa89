import importlib
import sys
import types
import typing as t

from .errors import AuditWriteFailure, GateError, InvalidAnswer, InvalidResult, InvalidState, LockTimeout, NotFound, \
    QuotaExceeded, SessionExpired, Unauthorized, UpstreamUnavailable

__all__ = [
    # Errors
    "AuditWriteFailure",
    "GateError",
    "InvalidAnswer",
    "InvalidResult",
    "InvalidState",
    "LockTimeout",
    "NotFound",
    "QuotaExceeded",
    "SessionExpired",
    "Unauthorized",
    "UpstreamUnavailable",
    # Modules
    "config",
    "gate",
    "machine",
    "notify",
    "policy",
    "sweeper",
]

if t.TYPE_CHECKING:
    from . import config, gate, machine, notify, policy, sweeper


def __getattr__(name: str) -> types.ModuleType:
    if name in __all__:
        module = importlib.import_module(f"{__name__}.{name}")
        setattr(sys.modules[__name__], name, module)
        return module
    raise AttributeError(f"module {__name__} has no attribute {name}")

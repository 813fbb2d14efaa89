import importlib
import typing as t

from . import di
from .config import Settings
from .provider import LoggingProvider, TimestampProvider

__all__ = [
    "BootConfiguration",
    "di",
    "DailyGateContainer",
    "LoggingProvider",
    "Settings",
    "TimestampProvider",
]

if t.TYPE_CHECKING:
    from .container import BootConfiguration, DailyGateContainer


def __getattr__(name: str) -> t.Any:
    # containers import the whole application; load them only when asked for
    if name in ("BootConfiguration", "DailyGateContainer"):
        return getattr(importlib.import_module(f"{__name__}.container"), name)
    raise AttributeError(f"module {__name__} has no attribute {name}")

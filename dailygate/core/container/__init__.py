__all__ = [
    "BootConfiguration",
    "DailyGateContainer",
    "GateContainer",
    "StorageContainer",
]

from .dailygate import BootConfiguration, DailyGateContainer
from .gate import GateContainer
from .storage import StorageContainer

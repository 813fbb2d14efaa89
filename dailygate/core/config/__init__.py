__all__ = [
    "EngineSettings",
    "GateSettings",
    "GateWebSettings",
    "LoggingSettings",
    "PersistentSettings",
    "Settings",
    "StorageSettings",
    "WebSettings",
]


from .gate import EngineSettings, GateSettings
from .logging import LoggingSettings
from .settings import Settings
from .storage import PersistentSettings, StorageSettings
from .web import GateWebSettings, WebSettings

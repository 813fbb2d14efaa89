__all__ = [
    "ExtraFormatter",
    "ExtraStreamHandler",
]

from .extra import ExtraFormatter, ExtraStreamHandler

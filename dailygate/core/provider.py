import datetime
import inspect
import logging.config
import typing as t

TimestampProvider = t.Callable[..., datetime.datetime]


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


class LoggingProvider(object):
    """Configures logging from the ``logging`` settings and hands out loggers."""

    Function: t.Final[t.Literal["fn"]] = "fn"
    Class: t.Final[t.Literal["cls"]] = "cls"
    Module: t.Final[t.Literal["mod"]] = "mod"

    def __init__(self, config: dict[str, t.Any], debug: bool):
        logging.config.dictConfig(config)
        if debug:
            self.capture_warnings(True)

    @classmethod
    def get_logger(
        cls, scope: t.Literal["mod", "cls", "fn"] = "mod", name: str | None = None, n_frames: int = 1
    ) -> logging.Logger:
        """A logger named for the caller's module, class or function."""
        if name:
            return logging.getLogger(name)

        frame = inspect.stack()[n_frames]
        mod = frame.frame.f_globals["__name__"]
        match scope:
            case cls.Module:
                name = mod

            case cls.Function:
                owner = frame.frame.f_locals.get("self")
                if owner is not None:
                    name = f"{mod}.{owner.__class__.__name__}.{frame.function}"
                else:
                    name = f"{mod}.{frame.function}"

            case cls.Class:
                local = frame.frame.f_locals
                if "self" in local:
                    klass = local["self"].__class__
                elif "cls" in local and isinstance(local["cls"], type):
                    klass = local["cls"]
                else:
                    raise RuntimeError("could not determine class")
                name = f"{klass.__module__}.{klass.__name__}"

        return logging.getLogger(name)

    @staticmethod
    def capture_warnings(capture: bool):
        logging.captureWarnings(capture)

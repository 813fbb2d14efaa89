import json
import logging
import logging.config
import string
import textwrap
import typing as t

import colorlog
import pygments
from pygments.formatters import Terminal256Formatter
from pygments.lexers.data import JsonLexer  # pyright: ignore [reportMissingTypeStubs]
from pygments.style import Style

from dailygate.lib.json import JSONEncoder, JSONValue

from .style import LogStyle

ReservedKeys = {
    "exception",
    "args",
    "asctime",
    "created",
    "exc_info",
    "exc_text",
    "filename",
    "funcName",
    "id",
    "levelname",
    "levelno",
    "lineno",
    "module",
    "msecs",
    "message",
    "msg",
    "name",
    "pathname",
    "process",
    "processName",
    "relativeCreated",
    "stack_info",
    "taskName",
    "thread",
    "threadName",
}


class ExtraFormatter(logging.Formatter):
    """Append a record's ``extra=`` fields to the message as JSON.

    On a TTY the JSON is syntax highlighted; multi-line messages are indented
    to line up under the first line.
    """

    def __init__(
        self,
        base: type[logging.Formatter] | str = logging.Formatter,
        format: str | None = None,
        datefmt: str | None = None,
        indent: bool = True,
        pyg_style: t.Type[Style] = LogStyle,
        style: t.Literal["%", "{", "$"] = "%",
        validate: bool = True,
        **kwargs: t.Any,
    ):
        if isinstance(base, str):
            base = t.cast(type[logging.Formatter], logging.config._resolve(base))  # type: ignore[attr-defined]
        self.base = base(format, datefmt=datefmt, style=style, validate=validate, **kwargs)
        self.pyg_style = pyg_style
        self.indent = indent
        self.isatty: t.Callable[[], bool] = lambda: False

    def format(self, record: logging.LogRecord) -> str:
        msg = record.getMessage()
        if "\n" in msg:
            formatted = self.base.format(record)
            idx = formatted.find(msg)
            indent = " " * len([c for c in formatted[:idx] if c in string.printable])
            line, *lines = msg.splitlines()
            body = textwrap.indent("\n".join(lines), prefix=indent)
            record.msg = record.message = f"{line}\n{body}"
            record.args = None
        message = self.base.format(record)

        d = record.__dict__
        extra = {k: d[k] for k in set(d.keys()) - ReservedKeys}

        if not extra:
            return message

        encoder = JSONEncoder()

        def encode(obj: t.Any) -> JSONValue:
            try:
                return encoder.default(obj)
            except (TypeError, ValueError):
                return repr(obj)

        js = json.dumps(extra, sort_keys=True, indent=(4 if self.indent else None), default=encode)
        if self.isatty() and not getattr(self.base, "no_color", False):
            hl = pygments.highlight  # pyright: ignore [reportUnknownMemberType, reportUnknownVariableType]
            ps = hl(js, JsonLexer(), Terminal256Formatter[str](style=self.pyg_style), None)
        else:
            ps = js
        return message + " " + ps.strip()

    def __getattr__(self, name: str) -> t.Any:
        return getattr(self.base, name)


class ExtraStreamHandler(colorlog.StreamHandler):  # type: ignore[type-arg]
    """StreamHandler that tells an ``ExtraFormatter`` whether it writes to a TTY."""

    def setFormatter(self, fmt: logging.Formatter | None) -> None:
        super().setFormatter(fmt)
        if isinstance(fmt, ExtraFormatter):
            stream = self.stream
            fmt.isatty = lambda: bool(getattr(stream, "isatty", None) and stream.isatty())

from __future__ import annotations

import enum
import pathlib
import typing as t

import click
import pydantic as p
from click import *  # noqa: F401, F403 # pyright: ignore [reportWildcardImportFromLibrary]

# Thin wrapper around Click: commands import this module as `click` and get
# the extra parameter types below alongside everything Click exports.


class EnumType(click.ParamType):
    """specify click params to be members of an enum"""

    def __init__(self, enum: t.Type[enum.Enum]):
        self.enum = enum
        self.name = self.enum_name

    @property
    def values(self) -> list[str]:
        return [e.value for e in self.enum]

    @property
    def enum_name(self) -> str:
        return self.enum.__name__

    def convert(
        self, value: str | enum.Enum | None, param: click.Parameter | None, ctx: click.Context | None
    ) -> enum.Enum | None:
        if value is None:
            return None
        if isinstance(value, self.enum):
            return value

        try:
            return self.enum(value)
        except ValueError:
            self.fail(f"valid {self.enum_name} values {self.values}", param, ctx)

    def __repr__(self) -> str:
        return self.enum_name


class KeyParamType(click.ParamType):
    """Accept a prefixed shortuuid key (e.g. a UserID) as a parameter"""

    def __init__(self, key_type: type[t.Any]):
        self.key_type = key_type
        self.name = key_type.__name__

    def convert(self, value: t.Any, param: click.Parameter | None, ctx: click.Context | None) -> t.Any:
        if isinstance(value, self.key_type):
            return value
        try:
            return self.key_type(str(value).strip())
        except ValueError as e:
            self.fail(str(e), param, ctx)


class URIParamType(click.ParamType):
    """
    Accept URIs as parameters, with optional existence enforcement on
    file:// URIs

    Arguments:

        - `file_ok`: (default `True`) param will accept a filesystem path as
          an argument and convert to a `file://` URI
        - `dir_ok`: (default `False`) if parsing results in `file://` URI,
          enforce path is not a directory
        - `file_exists`: (default `True`) if parsing results in `file://` URI,
          enforce that the path referenced exists
    """

    file_ok: bool
    dir_ok: bool
    file_exists: bool
    name: str

    def __init__(self, file_ok: bool = True, dir_ok: bool = False, file_exists: bool = True):
        self.file_ok = file_ok
        self.dir_ok = dir_ok
        self.file_exists = file_exists
        self.name = "URI OR PATH" if file_ok else "URI"

    def convert(
        self, value: str | pathlib.Path | None, param: click.Parameter | None, ctx: click.Context | None
    ) -> p.FileUrl | p.AnyUrl | None:
        if value is None:
            return None

        if isinstance(value, pathlib.Path) or "://" not in str(value):
            u: p.AnyUrl = p.FileUrl(f"file://{pathlib.Path(value).absolute()}")
        else:
            u = p.AnyUrl(str(value))
        if u.scheme == "file":
            if not self.file_ok:
                self.fail("file URL not allowed", param, ctx)
            if u.path is None:
                self.fail("file path not specified", param, ctx)
            path = pathlib.Path(u.path)
            if self.file_exists:
                if not path.exists():
                    self.fail(f"{value}: no such file or directory", param, ctx)
                if path.is_dir() and not self.dir_ok:
                    self.fail("directory path not accepted", param, ctx)
            return p.FileUrl(f"file://{path.absolute()}")
        return u

from __future__ import annotations

import typing as t
from pathlib import Path

import pydantic as p

from .base import BaseSettings


class StorageSettings(BaseSettings):
    persistent: PersistentSettings


class PersistentSettings(BaseSettings):
    postgresql: PostgresqlSettings | None = None
    sqlite: SqliteSettings | None = None

    @p.model_validator(mode="after")
    def check_backend(self) -> PersistentSettings:
        if (self.postgresql is None) == (self.sqlite is None):
            raise ValueError("exactly one of postgresql or sqlite must be configured")
        return self


class PostgresqlSettings(BaseSettings):
    host: p.IPvAnyAddress | str | None = None
    port: int = 5432
    database: str
    username: str | None = None
    password: p.Secret[str] | None = None
    driver: t.Literal["postgresql+psycopg"] = "postgresql+psycopg"


class SqliteSettings(BaseSettings):
    """SQLite database, for local development and tests. ``path=None`` is in-memory."""

    path: Path | None = None
    driver: t.Literal["sqlite+pysqlite"] = "sqlite+pysqlite"

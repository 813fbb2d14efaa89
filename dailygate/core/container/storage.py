from __future__ import annotations

import typing as t
from pathlib import Path

import alembic.config
import sqlalchemy
import sqlalchemy.event
import sqlalchemy.orm
import sqlalchemy.pool
from dependency_injector.containers import DeclarativeContainer
from dependency_injector.providers import Configuration, Container, Factory, Object, Provider, Resource, Singleton
from sqlalchemy.engine.url import URL as DSN

import dailygate.lib.json as json

from ..config.storage import PersistentSettings, StorageSettings
from ..di import NotReady
from ..provider import LoggingProvider


def create_dsn(config: PersistentSettings) -> DSN:
    if config.postgresql is not None:
        pg = config.postgresql
        return DSN.create(
            pg.driver,
            port=pg.port,
            host=str(pg.host) if pg.host else None,
            username=pg.username,
            password=pg.password.get_secret_value() if pg.password else None,
            database=pg.database,
        )
    assert config.sqlite is not None
    return DSN.create(config.sqlite.driver, database=str(config.sqlite.path) if config.sqlite.path else None)


def provide_alembic_conf(
    migration_path: Path, config: PersistentSettings, root: Path | NotReady
) -> alembic.config.Config:
    if isinstance(root, NotReady):
        raise RuntimeError("root path is unavailable")

    escaped_str = create_dsn(config).render_as_string(hide_password=False).replace("%", "%%")

    ac = alembic.config.Config()
    ac.set_main_option("script_location", str(root / migration_path))
    ac.set_section_option("alembic", "sqlalchemy.url", escaped_str)
    ac.set_section_option("alembic", "file_template", "%%(year)d-%%(month).2d-%%(day).2d-%%(slug)s-%%(rev)s")
    return ac


def provide_engine(config: PersistentSettings, logging: LoggingProvider) -> sqlalchemy.Engine:
    logger = logging.get_logger()
    dsn = create_dsn(config)

    kwargs: dict[str, t.Any] = {}
    if config.sqlite is not None:
        # connections are shared across the gate's worker threads
        kwargs["connect_args"] = {"check_same_thread": False}
        if config.sqlite.path is None:
            kwargs["poolclass"] = sqlalchemy.pool.StaticPool

    engine = sqlalchemy.create_engine(dsn, json_serializer=json.dumps, json_deserializer=json.loads, **kwargs)
    if config.postgresql is not None:
        sqlalchemy.event.listen(engine, "connect", register_timezone)

    logger.info(
        "initialized SQLAlchemy engine",
        extra={
            "driver": dsn.drivername,
            "database": dsn.database,
            "host": dsn.host,
            "port": dsn.port,
        },
    )
    return engine


def provide_session(engine: sqlalchemy.Engine) -> sqlalchemy.orm.Session:
    """Create a new session. Caller is responsible for closing it (via di.Manage)."""
    maker = sqlalchemy.orm.sessionmaker(engine, expire_on_commit=False, autoflush=False)
    return maker(autobegin=False)


class PersistentContainer(DeclarativeContainer):
    config = Configuration()
    logging: Provider[LoggingProvider] = Resource()
    root: Provider[Path | NotReady] = Object()

    alembic_config: Provider[alembic.config.Config] = Singleton(
        provide_alembic_conf,
        migration_path=Path("migrations/"),
        config=config.as_(PersistentSettings),
        root=root,
    )
    engine: Provider[sqlalchemy.Engine] = Singleton(
        provide_engine,
        config=config.as_(PersistentSettings),
        logging=logging,
    )
    session: Provider[sqlalchemy.orm.Session] = Factory(provide_session, engine=engine)


class StorageContainer(DeclarativeContainer):
    config: Provider[StorageSettings] = Configuration(strict=True)
    logging: Provider[LoggingProvider] = Resource()
    root: Provider[Path | NotReady] = Object()

    persistent: Provider[PersistentContainer] = Container(
        PersistentContainer, config=config.persistent, logging=logging, root=root
    )


def register_timezone(dbapi_conn: t.Any, _: t.Any) -> None:
    """Set connection timezone to UTC for consistent datetime handling.

    PostgreSQL TIMESTAMP WITH TIME ZONE stores timestamps in UTC but returns
    them converted to the connection's timezone.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("SET TIMEZONE TO 'UTC'")
    cursor.close()

from __future__ import annotations

import typing as t
from pathlib import Path

from dependency_injector.containers import DeclarativeContainer
from dependency_injector.providers import Configuration, Factory, Object, Provider, Resource, Singleton
from sqlalchemy.orm import Session

from dailygate.audit import AuditLogger
from dailygate.engine import AssessmentClient, HTTPAssessmentEngine
from dailygate.gate.config import CachedConfigProvider, ConfigProvider, YAMLConfigProvider
from dailygate.gate.gate import AssessmentGate
from dailygate.gate.notify import LoggingNotifier
from dailygate.gate.sweeper import SessionSweeper
from dailygate.storage.lock import KeyedLockTable

from ..config.gate import EngineSettings, PolicySourceSettings
from ..di import NotReady
from ..provider import TimestampProvider


def provide_config_provider(
    config: PolicySourceSettings, root: Path | NotReady, clock: TimestampProvider
) -> ConfigProvider:
    path = config.path
    if not path.is_absolute():
        if isinstance(root, NotReady):
            raise RuntimeError("root path is unavailable")
        path = root / path
    return CachedConfigProvider(YAMLConfigProvider(path), ttl=config.ttl, clock=clock)


def provide_assessment_engine(config: EngineSettings) -> t.Generator[HTTPAssessmentEngine]:
    engine = HTTPAssessmentEngine(str(config.base_url), timeout=config.timeout)
    yield engine
    engine.close()


def provide_assessment_client(
    config: EngineSettings,
    engine: HTTPAssessmentEngine,
    session_factory: t.Callable[[], Session],
    clock: TimestampProvider,
) -> AssessmentClient:
    return AssessmentClient(
        engine,
        session_factory,
        clock=clock,
        max_retries=config.max_retries,
        backoff_base=config.backoff_base,
        max_reprompts=config.max_reprompts,
    )


class GateContainer(DeclarativeContainer):
    config = Configuration()
    root: Provider[Path | NotReady] = Object()
    utcnow: Provider[TimestampProvider] = Object()
    session: Provider[t.Callable[[], Session]] = Provider()

    locks: Provider[KeyedLockTable] = Singleton(KeyedLockTable, timeout=config.lock_timeout)
    policy: Provider[ConfigProvider] = Singleton(
        provide_config_provider,
        config=config.policy.as_(PolicySourceSettings),
        root=root,
        clock=utcnow,
    )
    engine: Provider[HTTPAssessmentEngine] = Resource(
        provide_assessment_engine, config=config.engine.as_(EngineSettings)
    )
    client: Provider[AssessmentClient] = Singleton(
        provide_assessment_client,
        config=config.engine.as_(EngineSettings),
        engine=engine,
        session_factory=session,
        clock=utcnow,
    )
    audit: Provider[AuditLogger] = Singleton(AuditLogger, locks=locks, session_factory=session, clock=utcnow)
    notifier: Provider[LoggingNotifier] = Singleton(LoggingNotifier)
    gate: Provider[AssessmentGate] = Singleton(
        AssessmentGate,
        session_factory=session,
        locks=locks,
        config=policy,
        client=client,
        audit=audit,
        notifier=notifier,
        clock=utcnow,
    )
    sweeper: Provider[SessionSweeper] = Factory(
        SessionSweeper, gate=gate, interval=config.sweep.interval
    )

from __future__ import annotations

import datetime
import typing as t
from pathlib import Path

import annotated_types as ant
import pydantic as p

from .base import BaseSettings


class PolicySourceSettings(BaseSettings):
    """Where organization assessment configs are read from."""

    path: Path
    ttl: t.Annotated[datetime.timedelta, ant.Le(datetime.timedelta(seconds=60))] = datetime.timedelta(seconds=60)


class EngineSettings(BaseSettings):
    """The external assessment engine."""

    base_url: p.HttpUrl
    timeout: datetime.timedelta = datetime.timedelta(seconds=10)
    max_retries: t.Annotated[int, ant.Ge(0)] = 3
    backoff_base: datetime.timedelta = datetime.timedelta(seconds=1)
    max_reprompts: t.Annotated[int, ant.Ge(0)] = 3


class SweepSettings(BaseSettings):
    interval: datetime.timedelta = datetime.timedelta(minutes=1)


class GateSettings(BaseSettings):
    policy: PolicySourceSettings
    engine: EngineSettings
    sweep: SweepSettings = SweepSettings()
    lock_timeout: datetime.timedelta = datetime.timedelta(seconds=10)

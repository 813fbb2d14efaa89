from __future__ import annotations

import typing as t

import annotated_types as ant
import pydantic as p

from .base import BaseSettings


class ServeSettings(BaseSettings):
    host: p.IPvAnyAddress
    port: t.Annotated[int, ant.Gt(0), ant.Le(65535)]


class GateWebSettings(BaseSettings):
    """Settings for the gate decision and audit query API."""

    backend: ServeSettings
    title: str = "dailygate"


class WebSettings(BaseSettings):
    gate: GateWebSettings

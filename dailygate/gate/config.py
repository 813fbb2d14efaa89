"""Sources of organization assessment config.

The gate reads config through a ``ConfigProvider`` on every decision, so a
policy change takes effect no later than the cache TTL.
"""

from __future__ import annotations

import datetime
import logging
import pathlib
import threading
import typing as t

import pydantic as p
import yaml

from dailygate.core.provider import TimestampProvider, utcnow
from dailygate.model import OrganizationAssessmentConfig, OrganizationID

from .errors import NotFound

logger = logging.getLogger(__name__)

MaxCacheTTL: t.Final[datetime.timedelta] = datetime.timedelta(seconds=60)


class ConfigProvider(t.Protocol):
    def get_config(self, organization_id: OrganizationID) -> OrganizationAssessmentConfig:
        """Return the organization's config; raises ``NotFound`` if it has none."""
        ...


class MappingConfigProvider(object):
    """Configs held in memory, keyed by organization."""

    def __init__(self, configs: t.Iterable[OrganizationAssessmentConfig] = ()):
        self._configs = {c.organization_id: c for c in configs}
        self._lock = threading.Lock()

    def get_config(self, organization_id: OrganizationID) -> OrganizationAssessmentConfig:
        with self._lock:
            config = self._configs.get(organization_id)
        if config is None:
            raise NotFound("organization has no assessment config", organization_id=organization_id)
        return config

    def put(self, config: OrganizationAssessmentConfig) -> None:
        with self._lock:
            self._configs[config.organization_id] = config


class YAMLConfigProvider(object):
    """One ``<organization_id>.yaml`` document per organization in ``path``."""

    def __init__(self, path: pathlib.Path):
        self.path = path

    def get_config(self, organization_id: OrganizationID) -> OrganizationAssessmentConfig:
        filename = self.path / f"{organization_id}.yaml"
        if not filename.is_file():
            raise NotFound("organization has no assessment config", organization_id=organization_id)

        with filename.open() as f:
            doc = yaml.safe_load(f) or {}
        doc.setdefault("organization_id", organization_id)
        try:
            config = OrganizationAssessmentConfig.model_validate(doc)
        except p.ValidationError:
            logger.error("invalid assessment config", extra={"path": str(filename)})
            raise
        if config.organization_id != organization_id:
            raise ValueError(f"{filename}: organization_id does not match file name")
        return config


class CachedConfigProvider(object):
    """Wrap another provider, remembering each config for at most ``ttl``."""

    def __init__(
        self,
        provider: ConfigProvider,
        ttl: datetime.timedelta = MaxCacheTTL,
        clock: TimestampProvider = utcnow,
    ):
        if ttl > MaxCacheTTL:
            raise ValueError(f"config cache ttl may not exceed {MaxCacheTTL.total_seconds():g}s")
        self.provider = provider
        self.ttl = ttl
        self.clock = clock
        self._cache: dict[OrganizationID, tuple[datetime.datetime, OrganizationAssessmentConfig]] = {}
        self._lock = threading.Lock()

    def get_config(self, organization_id: OrganizationID) -> OrganizationAssessmentConfig:
        now = self.clock()
        with self._lock:
            cached = self._cache.get(organization_id)
        if cached is not None and now < cached[0] + self.ttl:
            return cached[1]

        config = self.provider.get_config(organization_id)
        with self._lock:
            self._cache[organization_id] = (now, config)
        return config

    def invalidate(self, organization_id: OrganizationID | None = None) -> None:
        with self._lock:
            if organization_id is None:
                self._cache.clear()
            else:
                self._cache.pop(organization_id, None)

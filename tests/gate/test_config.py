"""Tests for dailygate.gate.config."""

from __future__ import annotations

import datetime
from pathlib import Path

import pydantic as p
import pytest
import yaml

from conftest import Clock, make_config
from dailygate.gate.config import CachedConfigProvider, MappingConfigProvider, YAMLConfigProvider
from dailygate.gate.errors import NotFound
from dailygate.model import OrganizationID, UserID

Document = """
schedule:
  timezone: Europe/Berlin
  window_start: "07:30:00"
  grace_period: 900
default_framework: daily-core
frameworks:
  daily-core:
    thresholds:
      comprehension: "0.70"
retry:
  max_attempts: 3
  cooldown: 600
members:
  {user_id}: engineer
"""


class TestYAMLConfigProvider(object):
    def test_reads_organization_document(self, tmp_path: Path) -> None:
        org_id, user_id = OrganizationID(), UserID()
        (tmp_path / f"{org_id}.yaml").write_text(Document.format(user_id=user_id))

        config = YAMLConfigProvider(tmp_path).get_config(org_id)

        assert config.organization_id == org_id
        assert config.schedule.window_start == datetime.time(7, 30)
        assert config.schedule.grace_period == datetime.timedelta(minutes=15)
        assert config.frameworks["daily-core"].framework_id == "daily-core"
        assert config.retry.max_attempts == 3
        assert config.members[user_id] == "engineer"

    def test_missing_document(self, tmp_path: Path) -> None:
        with pytest.raises(NotFound):
            YAMLConfigProvider(tmp_path).get_config(OrganizationID())

    def test_mismatched_organization(self, tmp_path: Path) -> None:
        org_id = OrganizationID()
        doc = yaml.safe_load(Document.format(user_id=UserID()))
        doc["organization_id"] = str(OrganizationID())
        (tmp_path / f"{org_id}.yaml").write_text(yaml.safe_dump(doc))

        with pytest.raises(ValueError):
            YAMLConfigProvider(tmp_path).get_config(org_id)

    def test_undefined_framework_is_invalid(self, tmp_path: Path) -> None:
        org_id = OrganizationID()
        doc = yaml.safe_load(Document.format(user_id=UserID()))
        doc["default_framework"] = "daily-missing"
        (tmp_path / f"{org_id}.yaml").write_text(yaml.safe_dump(doc))

        with pytest.raises(p.ValidationError):
            YAMLConfigProvider(tmp_path).get_config(org_id)


class TestCachedConfigProvider(object):
    def test_cached_until_ttl(self, clock: Clock) -> None:
        org_id = OrganizationID()
        source = MappingConfigProvider([make_config(org_id, {})])
        cached = CachedConfigProvider(source, ttl=datetime.timedelta(seconds=30), clock=clock)
        cached.get_config(org_id)

        source.put(make_config(org_id, {}, retry={"max_attempts": 5}))
        assert cached.get_config(org_id).retry.max_attempts == 2

        clock.advance(seconds=30)
        assert cached.get_config(org_id).retry.max_attempts == 5

    def test_invalidate(self, clock: Clock) -> None:
        org_id = OrganizationID()
        source = MappingConfigProvider([make_config(org_id, {})])
        cached = CachedConfigProvider(source, clock=clock)
        cached.get_config(org_id)
        source.put(make_config(org_id, {}, retry={"max_attempts": 4}))

        cached.invalidate(org_id)

        assert cached.get_config(org_id).retry.max_attempts == 4

    def test_ttl_may_not_exceed_a_minute(self) -> None:
        with pytest.raises(ValueError):
            CachedConfigProvider(MappingConfigProvider(), ttl=datetime.timedelta(seconds=61))

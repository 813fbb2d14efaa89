import datetime
import enum
import typing as t

from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.engine import Dialect
from sqlalchemy.sql.type_api import TypeDecorator
from sqlalchemy.types import JSON, DateTime, Enum, String

from dailygate.model.id import ShortUUIDKey

JSONType = JSON().with_variant(JSONB(), "postgresql")


class ShortUUIDKeyType(TypeDecorator[ShortUUIDKey]):
    impl = String
    cache_ok = True

    def __init__(self, key_type: type[ShortUUIDKey]):
        self.key_type = key_type
        super().__init__(22)  # length of shortuuid

    def process_bind_param(self, value: ShortUUIDKey | None, dialect: Dialect) -> str | None:
        if value is not None:
            return self.key_type(value).key
        return value

    def process_result_value(self, value: str | None, dialect: Dialect) -> ShortUUIDKey | None:
        if value is not None:
            value = self.key_type(key=value)
        return value


class UTCDateTime(TypeDecorator[datetime.datetime]):
    """Timezone-aware timestamps, always returned in UTC.

    PostgreSQL stores these as ``timestamptz``; SQLite has no timezone support,
    so values are stored as naive UTC and tagged on the way back out.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime.datetime | None, dialect: Dialect) -> datetime.datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=datetime.UTC)
        value = value.astimezone(datetime.UTC)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value: t.Any, dialect: Dialect) -> datetime.datetime | None:
        if value is None:
            return None
        if isinstance(value, str):
            value = datetime.datetime.fromisoformat(value)
        if value.tzinfo is None:
            return value.replace(tzinfo=datetime.UTC)
        return value.astimezone(datetime.UTC)


class ValueEnumMapper(object):
    """Store enums by value as a length-bounded string with a CHECK constraint."""

    @staticmethod
    def values_callable(en: type[enum.Enum]) -> tuple[t.Any]:
        return tuple(e.value for e in en)

    def _resolve_for_python_type(
        self, python_type: type[t.Any], matched_on: t.Any, matched_on_flattened: t.Any
    ) -> Enum | None:
        return Enum(python_type, values_callable=self.values_callable, native_enum=False, length=32)

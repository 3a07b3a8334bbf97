# labguard/core/types.py

"""
여러 도메인 모델에서 공통으로 사용하는 SQLAlchemy 컬럼 타입입니다.

- UTCDateTime: 항상 UTC 기준의 timezone-aware datetime을 반환합니다.
  (SQLite는 tzinfo를 보존하지 않고, PostgreSQL은 세션 타임존으로 반환하므로 읽을 때 정규화합니다)
- JSONVariant: PostgreSQL에서는 JSONB, 그 외 방언에서는 일반 JSON으로 매핑됩니다.
"""

from datetime import datetime, UTC

from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.types import JSON, TIMESTAMP, TypeDecorator


class UTCDateTime(TypeDecorator):
    impl = TIMESTAMP(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, str):
            value = datetime.fromisoformat(value)
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


JSONVariant = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """naive datetime은 UTC로 간주하고, aware datetime은 UTC로 변환합니다."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)

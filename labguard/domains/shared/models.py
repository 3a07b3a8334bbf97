# labguard/domains/shared/models.py

"""
'shared' 도메인 (PostgreSQL 'shared' 스키마)의 데이터베이스 ORM 모델을 정의하는 모듈입니다.

여러 도메인이 함께 사용하는 알림(notifications) 테이블을 포함합니다.
"""

from typing import Optional, Dict, Any
from datetime import datetime
from enum import Enum

from sqlalchemy import ForeignKey, Integer
from sqlalchemy.sql import func
from sqlmodel import Field, SQLModel, Column

from labguard.core.types import JSONVariant, UTCDateTime, utcnow


class NotificationType(str, Enum):
    CALIBRATION_DUE = "CALIBRATION_DUE"
    SYSTEM_ALERT = "SYSTEM_ALERT"
    SECURITY_ALERT = "SECURITY_ALERT"
    COMPLIANCE_ALERT = "COMPLIANCE_ALERT"


# =============================================================================
# 1. shared.notifications 테이블 모델
# =============================================================================
class NotificationBase(SQLModel):
    laboratory_id: Optional[int] = Field(
        default=None,
        sa_column=Column(Integer, ForeignKey("usr.laboratories.id", ondelete="CASCADE"), nullable=True),
        description="대상 실험실 (시스템 전역 알림은 None)"
    )
    user_id: Optional[int] = Field(
        default=None,
        sa_column=Column(Integer, ForeignKey("usr.users.id", ondelete="CASCADE"), nullable=True),
        description="수신 사용자 (실험실 전체 알림은 None)"
    )
    type: NotificationType = Field(description="알림 유형")
    title: str = Field(max_length=255)
    message: str = Field(description="알림 본문")
    # 'metadata'는 SQLAlchemy 선언 기반 클래스의 예약어이므로 'meta'로 저장합니다.
    meta: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column("metadata", JSONVariant))
    is_read: bool = Field(default=False)


class Notification(NotificationBase, table=True):
    __tablename__ = "notifications"
    __table_args__ = {'schema': 'shared'}

    id: Optional[int] = Field(default=None, primary_key=True)
    created_at: Optional[datetime] = Field(
        default_factory=utcnow,
        sa_column=Column(UTCDateTime(), server_default=func.now()),
        description="레코드 생성 일시"
    )

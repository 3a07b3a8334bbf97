# labguard/domains/prv/models.py

"""
'prv' 도메인 (PostgreSQL 'prv' 스키마)의 데이터베이스 ORM 모델을 정의하는 모듈입니다.

GDPR 대응을 위한 개인정보 처리 동의(consents)와 삭제 이력(deletion records)을 관리합니다.
"""

from typing import Optional, List
from datetime import datetime
from enum import Enum

from sqlalchemy import ForeignKey, Integer, UniqueConstraint
from sqlmodel import Field, SQLModel, Column

from labguard.core.types import JSONVariant, UTCDateTime, utcnow


class ConsentStatus(str, Enum):
    GRANTED = "GRANTED"
    WITHDRAWN = "WITHDRAWN"


# =============================================================================
# 1. prv.data_processing_consents 테이블 모델
# =============================================================================
class DataProcessingConsent(SQLModel, table=True):
    __tablename__ = "data_processing_consents"
    __table_args__ = (
        UniqueConstraint("user_id", "purpose", name="uq_consent_user_purpose"),
        {'schema': 'prv'},
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(
        sa_column=Column(Integer, ForeignKey("usr.users.id", ondelete="CASCADE"), nullable=False)
    )
    purpose: str = Field(max_length=100)
    status: ConsentStatus
    granted_at: Optional[datetime] = Field(default=None, sa_column=Column(UTCDateTime(), nullable=True))
    withdrawn_at: Optional[datetime] = Field(default=None, sa_column=Column(UTCDateTime(), nullable=True))
    last_updated: datetime = Field(default_factory=utcnow, sa_column=Column(UTCDateTime(), nullable=False))
    ip_address: Optional[str] = Field(default=None, max_length=64)
    user_agent: Optional[str] = Field(default=None, max_length=500)


# =============================================================================
# 2. prv.data_deletion_records 테이블 모델
# =============================================================================
class DataDeletionRecord(SQLModel, table=True):
    __tablename__ = "data_deletion_records"
    __table_args__ = {'schema': 'prv'}

    id: Optional[int] = Field(default=None, primary_key=True)
    # 사용자 행은 익명화되어 남으므로 FK가 아닌 원본 ID 값만 보관합니다.
    original_user_id: int = Field(index=True)
    deletion_reason: str
    deleted_records: int = Field(default=0)
    anonymized_records: int = Field(default=0)
    retained_data: List[str] = Field(default_factory=list, sa_column=Column(JSONVariant))
    deleted_at: datetime = Field(default_factory=utcnow, sa_column=Column(UTCDateTime(), nullable=False))
    deleted_by: str = Field(default="privacy_service", max_length=100)

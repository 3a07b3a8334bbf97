# labguard/domains/sec/models.py

"""
'sec' 도메인 (PostgreSQL 'sec' 스키마)의 데이터베이스 ORM 모델을 정의하는 모듈입니다.

- audit_logs: 무결성 해시(SHA-256)가 포함된 변조 감지용 감사 로그
- hipaa_audit_logs / data_access_logs: PHI 및 민감 데이터 접근 기록
- encryption_keys: 마스터 키로 암호화되어 저장되는 데이터 암호화 키(DEK)
- encrypted_documents: 암호화되어 디스크에 보관되는 문서의 메타데이터
"""

from typing import Optional, List, Dict, Any
from datetime import datetime
from enum import Enum

from sqlalchemy import ForeignKey, Integer, Text
from sqlalchemy.sql import func
from sqlmodel import Field, SQLModel, Column

from labguard.core.types import JSONVariant, UTCDateTime, utcnow


class HIPAAAction(str, Enum):
    ACCESS = "ACCESS"
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    EXPORT = "EXPORT"


class DataType(str, Enum):
    PATIENT_DATA = "PATIENT_DATA"
    TEST_RESULTS = "TEST_RESULTS"
    CALIBRATION_DATA = "CALIBRATION_DATA"
    AUDIT_LOGS = "AUDIT_LOGS"


class ComplianceFramework(str, Enum):
    HIPAA = "HIPAA"
    SOC2 = "SOC2"
    ISO27001 = "ISO27001"
    GDPR = "GDPR"


# =============================================================================
# 1. sec.audit_logs 테이블 모델
# =============================================================================
class AuditLog(SQLModel, table=True):
    __tablename__ = "audit_logs"
    __table_args__ = {'schema': 'sec'}

    id: Optional[int] = Field(default=None, primary_key=True)
    laboratory_id: Optional[int] = Field(
        default=None,
        sa_column=Column(Integer, ForeignKey("usr.laboratories.id", ondelete="SET NULL"), nullable=True, index=True),
        description="실험실 ID (시스템 이벤트는 None)"
    )
    user_id: Optional[int] = Field(
        default=None,
        sa_column=Column(Integer, ForeignKey("usr.users.id", ondelete="SET NULL"), nullable=True, index=True)
    )
    action: str = Field(max_length=100, index=True)
    resource: Optional[str] = Field(default=None, max_length=100, description="원본 리소스 이름")
    entity: str = Field(default="SYSTEM", max_length=100, description="대문자 리소스 이름")
    entity_id: Optional[str] = Field(default=None, max_length=100)
    ip_address: Optional[str] = Field(default=None, max_length=64)
    user_agent: Optional[str] = Field(default=None, max_length=500)
    session_id: Optional[str] = Field(default=None, max_length=100)
    success: bool = Field(default=True)
    error_message: Optional[str] = Field(default=None)
    old_values: Optional[Any] = Field(default=None, sa_column=Column(JSONVariant))
    new_values: Optional[Any] = Field(default=None, sa_column=Column(JSONVariant))
    meta: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column("metadata", JSONVariant))
    details: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSONVariant))
    integrity_hash: str = Field(max_length=64, description="정규화된 필드에 대한 SHA-256 해시")
    # GDPR 삭제 요청으로 사용자 식별 정보가 제거된 시각 (해시 검증 대상에서 제외)
    anonymized_at: Optional[datetime] = Field(default=None, sa_column=Column(UTCDateTime(), nullable=True))
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(UTCDateTime(), nullable=False, index=True),
        description="이벤트 발생 일시 (무결성 해시에 포함)"
    )


# =============================================================================
# 2. sec.hipaa_audit_logs 테이블 모델
# =============================================================================
class HIPAAAuditLog(SQLModel, table=True):
    __tablename__ = "hipaa_audit_logs"
    __table_args__ = {'schema': 'sec'}

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: Optional[int] = Field(
        default=None,
        sa_column=Column(Integer, ForeignKey("usr.users.id", ondelete="SET NULL"), nullable=True)
    )
    patient_id: Optional[str] = Field(default=None, max_length=100)
    action: HIPAAAction
    phi_accessed: List[str] = Field(default_factory=list, sa_column=Column(JSONVariant))
    justification: str
    ip_address: Optional[str] = Field(default=None, max_length=64)
    workstation: Optional[str] = Field(default=None, max_length=100)
    timestamp: datetime = Field(default_factory=utcnow, sa_column=Column(UTCDateTime(), nullable=False))


# =============================================================================
# 3. sec.data_access_logs 테이블 모델
# =============================================================================
class DataAccessLog(SQLModel, table=True):
    __tablename__ = "data_access_logs"
    __table_args__ = {'schema': 'sec'}

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: Optional[int] = Field(
        default=None,
        sa_column=Column(Integer, ForeignKey("usr.users.id", ondelete="SET NULL"), nullable=True)
    )
    data_type: DataType
    record_ids: List[str] = Field(default_factory=list, sa_column=Column(JSONVariant))
    access_reason: str
    query_performed: Optional[str] = Field(default=None)
    accessed_at: datetime = Field(default_factory=utcnow, sa_column=Column(UTCDateTime(), nullable=False))


# =============================================================================
# 4. sec.encryption_keys 테이블 모델
# =============================================================================
class EncryptionKey(SQLModel, table=True):
    __tablename__ = "encryption_keys"
    __table_args__ = {'schema': 'sec'}

    id: Optional[int] = Field(default=None, primary_key=True)
    key_version: int = Field(unique=True, description="전역적으로 단조 증가하는 키 버전")
    # 마스터 키로 암호화된 키 ("iv:salt:authTag:ciphertext")
    key_data: str = Field(sa_column=Column(Text, nullable=False))
    algorithm: str = Field(default="AES-256-GCM", max_length=50)
    purpose: str = Field(default="general", max_length=50, index=True)
    is_active: bool = Field(default=True, index=True)
    expires_at: datetime = Field(sa_column=Column(UTCDateTime(), nullable=False))
    rotated_at: Optional[datetime] = Field(default=None, sa_column=Column(UTCDateTime(), nullable=True))
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(UTCDateTime(), nullable=False, server_default=func.now()),
    )


# =============================================================================
# 5. sec.encrypted_documents 테이블 모델
# =============================================================================
class EncryptedDocument(SQLModel, table=True):
    __tablename__ = "encrypted_documents"
    __table_args__ = {'schema': 'sec'}

    id: Optional[int] = Field(default=None, primary_key=True)
    laboratory_id: Optional[int] = Field(default=None, foreign_key="usr.laboratories.id")
    original_name: str = Field(max_length=255)
    path: str = Field(max_length=500, description="UPLOAD_DIR 기준 상대 경로")
    content_type: Optional[str] = Field(default=None, max_length=100)
    size_bytes: int
    encryption_metadata: str = Field(max_length=255, description="iv:salt:authTag")
    key_id: int = Field(foreign_key="sec.encryption_keys.id")
    uploaded_by: Optional[int] = Field(default=None, foreign_key="usr.users.id")
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(UTCDateTime(), nullable=False, server_default=func.now()),
    )

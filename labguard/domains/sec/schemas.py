# labguard/domains/sec/schemas.py

"""
'sec' 도메인 (감사 로그, 컴플라이언스, 키 관리)의 API 데이터 전송 객체(DTO)를 정의하는 모듈입니다.

`metadata`는 SQLModel 클래스 속성과 충돌하므로, 해당 필드를 가진 요청 스키마는 pydantic BaseModel을 사용합니다.
"""

from typing import Optional, List, Dict, Any
from datetime import datetime

from sqlmodel import SQLModel, Field
from pydantic import BaseModel, model_validator

from labguard.core.types import as_utc

from .models import ComplianceFramework, DataType, HIPAAAction


# =============================================================================
# 1. 감사 로그 (AuditLog) 스키마
# =============================================================================
class AuditEvent(BaseModel):
    """감사 이벤트 기록 요청. 무결성 해시는 이 필드들과 timestamp로 계산됩니다."""
    user_id: Optional[int] = None
    laboratory_id: Optional[int] = None
    action: str = Field(..., max_length=100)
    resource: Optional[str] = Field(None, max_length=100)
    resource_id: Optional[str] = Field(None, max_length=100)
    old_values: Optional[Any] = None
    new_values: Optional[Any] = None
    ip_address: Optional[str] = Field(None, max_length=64)
    user_agent: Optional[str] = Field(None, max_length=500)
    success: bool = True
    error_message: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    session_id: Optional[str] = Field(None, max_length=100)
    timestamp: Optional[datetime] = Field(None, description="이벤트 발생 시각 (없으면 서버 시각)")


class AuditLogRead(SQLModel):
    id: int
    laboratory_id: Optional[int] = None
    user_id: Optional[int] = None
    action: str
    resource: Optional[str] = None
    entity: str
    entity_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    session_id: Optional[str] = None
    success: bool
    error_message: Optional[str] = None
    old_values: Optional[Any] = None
    new_values: Optional[Any] = None
    details: Optional[Dict[str, Any]] = None
    integrity_hash: str
    anonymized_at: Optional[datetime] = None
    created_at: datetime


class AuditLogVerification(SQLModel):
    id: int
    status: str = Field(..., description="valid | tampered | anonymized")
    is_valid: bool
    anonymized: bool
    stored_hash: str
    computed_hash: str


# =============================================================================
# 2. HIPAA 감사 / 데이터 접근 스키마
# =============================================================================
class HIPAAEvent(SQLModel):
    user_id: int
    patient_id: Optional[str] = Field(None, max_length=100)
    action: HIPAAAction
    phi_accessed: List[str] = Field(default_factory=list, description="접근한 PHI 항목")
    justification: str = Field(..., min_length=1)
    ip_address: Optional[str] = Field(None, max_length=64)
    workstation: Optional[str] = Field(None, max_length=100)


class HIPAAAuditLogRead(HIPAAEvent):
    id: int
    timestamp: datetime


class DataAccessEvent(SQLModel):
    user_id: int
    data_type: DataType
    record_ids: List[str] = Field(default_factory=list)
    access_reason: str = Field(..., min_length=1)
    query_performed: Optional[str] = None


class DataAccessLogRead(DataAccessEvent):
    id: int
    accessed_at: datetime


# =============================================================================
# 3. 컴플라이언스 보고서 / 점검 스키마
# =============================================================================
class ComplianceReportRequest(SQLModel):
    start_date: datetime
    end_date: datetime
    framework: ComplianceFramework = ComplianceFramework.HIPAA
    include_patient_data: bool = False

    @model_validator(mode="after")
    def check_period(self):
        if as_utc(self.end_date) < as_utc(self.start_date):
            raise ValueError("end_date must not be before start_date")
        return self


class ComplianceReport(SQLModel):
    framework: ComplianceFramework
    period: Dict[str, datetime]
    summary: Dict[str, Any]
    violations: List[Dict[str, Any]]
    recommendations: List[str]
    generated_at: datetime


class ComplianceCheckResult(SQLModel):
    check: str
    compliant: bool
    details: Dict[str, Any] = Field(default_factory=dict)


# =============================================================================
# 4. 암호화 키 / 암호화 문서 스키마
# =============================================================================
class EncryptionKeyCreate(SQLModel):
    purpose: str = Field("general", min_length=1, max_length=50)


class EncryptionKeyRead(SQLModel):
    """키 메타데이터. 키 자료(key_data)는 절대 응답에 포함하지 않습니다."""
    id: int
    key_version: int
    algorithm: str
    purpose: str
    is_active: bool
    expires_at: datetime
    rotated_at: Optional[datetime] = None
    created_at: datetime


class KeyRotationResult(SQLModel):
    purpose: str
    retired_key_ids: List[int]
    retired_versions: List[int]
    new_key_id: int
    new_version: int


class KeyIntegrity(SQLModel):
    key_id: int
    valid: bool


class EncryptedDocumentRead(SQLModel):
    id: int
    laboratory_id: Optional[int] = None
    original_name: str
    content_type: Optional[str] = None
    size_bytes: int
    key_id: int
    uploaded_by: Optional[int] = None
    created_at: datetime

# labguard/domains/prv/schemas.py

"""
'prv' 도메인 (개인정보 보호)의 API 요청/응답 스키마를 정의하는 모듈입니다.
"""

from typing import Optional, List, Dict, Any
from datetime import datetime

from sqlmodel import SQLModel, Field

from .models import ConsentStatus


# =============================================================================
# 1. 처리 동의 (Consent) 스키마
# =============================================================================
class ConsentUpdate(SQLModel):
    purpose: str = Field(..., min_length=1, max_length=100, description="처리 목적 (예: analytics, marketing)")
    granted: bool
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class ConsentRead(SQLModel):
    id: int
    user_id: int
    purpose: str
    status: ConsentStatus
    granted_at: Optional[datetime] = None
    withdrawn_at: Optional[datetime] = None
    last_updated: datetime
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class ConsentCheck(SQLModel):
    user_id: int
    purpose: str
    has_consent: bool


# =============================================================================
# 2. 데이터 열람(내보내기) / 삭제 스키마
# =============================================================================
class UserDataExport(SQLModel):
    personal_info: Dict[str, Any]
    activity_summary: Dict[str, Any]
    consents: List[ConsentRead]
    activity_logs: List[Dict[str, Any]]
    export_date: datetime


class ErasureRequest(SQLModel):
    reason: str = Field("user_request", min_length=1, description="삭제 사유")


class ErasureResult(SQLModel):
    user_id: int
    deletion_record_id: int
    deleted_records: int
    anonymized_records: int
    retained_data: List[str]
    deleted_at: datetime


# =============================================================================
# 3. 보존 기간 정책 스키마
# =============================================================================
class RetentionResult(SQLModel):
    audit_logs: int
    calibration_records: int
    login_history: int
    notifications: int

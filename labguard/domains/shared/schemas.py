# labguard/domains/shared/schemas.py

"""
'shared' 도메인 (공용 데이터)의 API 데이터 전송 객체(DTO)를 정의하는 모듈입니다.
"""

from typing import Optional, Dict, Any
from datetime import datetime

from sqlmodel import SQLModel, Field

from .models import NotificationType


# =============================================================================
# 1. 알림 (Notification) 스키마
# =============================================================================
class NotificationBase(SQLModel):
    laboratory_id: Optional[int] = Field(None, description="대상 실험실 ID")
    user_id: Optional[int] = Field(None, description="수신 사용자 ID")
    type: NotificationType
    title: str = Field(..., max_length=255)
    message: str
    meta: Optional[Dict[str, Any]] = Field(None, description="부가 정보 (장비 ID, 교정 ID 등)")


class NotificationCreate(NotificationBase):
    pass


class NotificationUpdate(SQLModel):
    is_read: Optional[bool] = None


class NotificationRead(NotificationBase):
    id: int
    is_read: bool
    created_at: datetime = Field(..., description="레코드 생성 일시")

# labguard/domains/usr/schemas.py

"""
'usr' 도메인 (실험실 및 사용자 관리)의 API 데이터 전송 객체(DTO)를 정의하는 모듈입니다.
"""

from typing import Optional
from datetime import datetime
from sqlmodel import SQLModel, Field
from pydantic import EmailStr

from . import models as usr_models


# =============================================================================
# 1. 실험실 (Laboratory) 스키마
# =============================================================================
class LaboratoryBase(SQLModel):
    code: str = Field(..., max_length=20)
    name: str = Field(..., max_length=200)
    clia_number: Optional[str] = Field(None, max_length=20, description="CLIA 인증 번호")
    notes: Optional[str] = None


class LaboratoryCreate(LaboratoryBase):
    pass


class LaboratoryUpdate(SQLModel):
    code: Optional[str] = Field(None, max_length=20)
    name: Optional[str] = Field(None, max_length=200)
    clia_number: Optional[str] = Field(None, max_length=20)
    notes: Optional[str] = None


class LaboratoryRead(LaboratoryBase):
    id: int
    deleted_at: Optional[datetime] = None
    created_at: datetime = Field(..., description="레코드 생성 일시")
    updated_at: datetime = Field(..., description="레코드 마지막 업데이트 일시")


# =============================================================================
# 2. 사용자 (User) 스키마
# =============================================================================
class UserBase(SQLModel):
    """사용자 정보의 기본 필드를 정의하는 스키마"""
    username: str = Field(..., max_length=50)
    email: Optional[EmailStr] = Field(None, max_length=100)
    name: Optional[str] = Field(None, max_length=100)
    laboratory_id: Optional[int] = None
    role: usr_models.UserRole = Field(default=usr_models.UserRole.GENERAL_USER, description="사용자 역할")
    is_active: bool = True


class UserCreate(UserBase):
    """사용자 생성을 위한 스키마"""
    pass


class UserUpdate(SQLModel):
    """사용자 정보 수정을 위한 스키마"""
    email: Optional[EmailStr] = None
    name: Optional[str] = None
    laboratory_id: Optional[int] = None
    role: Optional[usr_models.UserRole] = None
    is_active: Optional[bool] = None


class UserRead(SQLModel):
    """
    사용자 정보 조회를 위한 기본 스키마.
    익명화된 사용자의 이메일(`deleted-{id}@anonymized.local`)도 표현할 수 있도록 일반 문자열로 반환합니다.
    """
    id: int
    username: str
    email: Optional[str] = None
    name: Optional[str] = None
    laboratory_id: Optional[int] = None
    role: usr_models.UserRole
    is_active: bool
    password_changed_at: Optional[datetime] = None
    last_login_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None
    created_at: datetime = Field(..., description="레코드 생성 일시")
    updated_at: datetime = Field(..., description="레코드 마지막 업데이트 일시")

# labguard/domains/usr/models.py

"""
'usr' 도메인 (PostgreSQL 'usr' 스키마)의 데이터베이스 ORM 모델을 정의하는 모듈입니다.

이 모듈은 'usr' 스키마에 속하는 테이블 (laboratories, users)에 대한 SQLModel 클래스를 포함합니다.
"""

from typing import Optional
from datetime import datetime
from enum import IntEnum

from sqlalchemy import ForeignKey, Integer
from sqlalchemy.sql import func
from sqlmodel import Field, SQLModel, Column

from labguard.core.types import UTCDateTime, utcnow


class UserRole(IntEnum):
    """
    사용자 역할을 정의하는 정수형 Enum 클래스입니다.
    DB에는 정수 값으로 저장되지만, 코드에서는 명시적인 역할 이름으로 사용할 수 있습니다.
    """
    SUPERUSER = 1           # 최고 관리자
    ADMIN = 10              # 시스템 관리자
    COMPLIANCE_OFFICER = 30  # 컴플라이언스 담당자
    LAB_MANAGER = 70        # 실험실 관리자
    TECHNICIAN = 80         # 실험 기사
    GENERAL_USER = 100      # 일반 사용자


# =============================================================================
# 1. usr.laboratories 테이블 모델
# =============================================================================
class LaboratoryBase(SQLModel):
    code: str = Field(max_length=20, sa_column_kwargs={"unique": True}, description="실험실 코드")
    name: str = Field(max_length=200, description="실험실 명칭")
    clia_number: Optional[str] = Field(default=None, max_length=20, description="CLIA 인증 번호")
    notes: Optional[str] = Field(default=None, description="비고")


class Laboratory(LaboratoryBase, table=True):
    __tablename__ = "laboratories"
    __table_args__ = {'schema': 'usr'}

    id: Optional[int] = Field(default=None, primary_key=True, description="실험실 고유 ID")
    deleted_at: Optional[datetime] = Field(default=None, sa_column=Column(UTCDateTime(), nullable=True))
    created_at: Optional[datetime] = Field(
        default_factory=utcnow,
        sa_column=Column(UTCDateTime(), server_default=func.now()),
        description="레코드 생성 일시"
    )
    updated_at: Optional[datetime] = Field(
        default_factory=utcnow,
        sa_column=Column(UTCDateTime(), server_default=func.now(), onupdate=func.now()),
        description="레코드 마지막 업데이트 일시"
    )


# =============================================================================
# 2. usr.users 테이블 모델
# =============================================================================
class UserBase(SQLModel):
    laboratory_id: Optional[int] = Field(
        default=None,
        sa_column=Column(Integer, ForeignKey("usr.laboratories.id", ondelete="SET NULL"), nullable=True),
    )
    username: str = Field(max_length=50, sa_column_kwargs={"unique": True}, description="로그인 사용자명")
    email: Optional[str] = Field(default=None, max_length=100, sa_column_kwargs={"unique": True}, description="사용자 이메일")
    name: Optional[str] = Field(default=None, max_length=100, description="사용자 이름")
    role: UserRole = Field(default=UserRole.GENERAL_USER, description="사용자 역할")
    is_active: bool = Field(default=True, description="계정 활성화 여부")


class User(UserBase, table=True):
    __tablename__ = "users"
    __table_args__ = {'schema': 'usr'}

    id: Optional[int] = Field(default=None, primary_key=True, description="사용자 고유 ID")
    # 비밀번호 정책 점검 (AuditService.run_compliance_checks)에 사용됩니다.
    password_changed_at: Optional[datetime] = Field(default=None, sa_column=Column(UTCDateTime(), nullable=True))
    last_login_at: Optional[datetime] = Field(default=None, sa_column=Column(UTCDateTime(), nullable=True))
    deleted_at: Optional[datetime] = Field(default=None, sa_column=Column(UTCDateTime(), nullable=True))
    created_at: Optional[datetime] = Field(
        default_factory=utcnow,
        sa_column=Column(UTCDateTime(), server_default=func.now()),
        description="레코드 생성 일시"
    )
    updated_at: Optional[datetime] = Field(
        default_factory=utcnow,
        sa_column=Column(UTCDateTime(), server_default=func.now(), onupdate=func.now()),
        description="레코드 마지막 업데이트 일시"
    )

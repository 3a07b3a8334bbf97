# labguard/domains/fms/schemas.py

"""
'fms' 도메인 (PostgreSQL 'fms' 스키마)의 Pydantic 스키마를 정의하는 모듈입니다.

실험실 장비에 대한 API 요청(생성, 업데이트) 및 응답(조회)에 사용되는
데이터 유효성 검사 및 직렬화를 위한 모델을 포함합니다.
교정 일자(last/next)와 측정 성능(accuracy/precision)은 교정 서비스가 갱신하므로 요청 스키마에서 제외합니다.
"""

from typing import Optional
from datetime import datetime

from sqlmodel import SQLModel
from pydantic import Field

from .models import EquipmentStatus, EquipmentType


# =============================================================================
# 1. fms.equipments 테이블 스키마
# =============================================================================
class EquipmentBase(SQLModel):
    """
    장비의 기본 속성을 정의하는 Pydantic/SQLModel Base 스키마입니다.
    `fms.equipments` 테이블과 매핑됩니다.
    """
    laboratory_id: int = Field(..., description="소속 실험실 ID (FK)")
    name: str = Field(..., max_length=100, description="장비 명칭 (예: 'PCR Thermal Cycler #1')")
    equipment_type: EquipmentType = Field(EquipmentType.OTHER, description="장비 유형")
    model_number: Optional[str] = Field(None, max_length=100)
    serial_number: Optional[str] = Field(None, max_length=100, description="일련번호 (고유)")
    manufacturer: Optional[str] = Field(None, max_length=100)
    status: EquipmentStatus = Field(EquipmentStatus.ACTIVE, description="장비 상태")
    calibration_interval_days: Optional[int] = Field(None, gt=0, description="교정 주기 (일)")
    notes: Optional[str] = None


class EquipmentCreate(EquipmentBase):
    """
    새로운 장비를 생성하기 위한 Pydantic 모델입니다.
    `laboratory_id`, `name`은 필수 필드입니다.
    """
    next_calibration_at: Optional[datetime] = Field(None, description="다음 교정 예정일 (없으면 즉시 예약 대상)")


class EquipmentUpdate(SQLModel):
    """
    기존 장비 정보를 업데이트하기 위한 Pydantic 모델입니다.
    모든 필드는 선택 사항입니다 (부분 업데이트 가능).
    """
    name: Optional[str] = Field(None, max_length=100)
    equipment_type: Optional[EquipmentType] = None
    model_number: Optional[str] = Field(None, max_length=100)
    serial_number: Optional[str] = Field(None, max_length=100)
    manufacturer: Optional[str] = Field(None, max_length=100)
    status: Optional[EquipmentStatus] = None
    calibration_interval_days: Optional[int] = Field(None, gt=0)
    next_calibration_at: Optional[datetime] = None
    notes: Optional[str] = None


class EquipmentResponse(EquipmentBase):
    """
    장비 정보를 클라이언트에 응답하기 위한 Pydantic 모델입니다.
    """
    id: int = Field(..., description="장비 고유 ID")
    last_calibrated_at: Optional[datetime] = None
    next_calibration_at: Optional[datetime] = None
    accuracy: Optional[float] = None
    precision: Optional[float] = None
    deleted_at: Optional[datetime] = None
    created_at: datetime = Field(..., description="레코드 생성 일시")
    updated_at: datetime = Field(..., description="레코드 마지막 업데이트 일시")

    class Config:
        from_attributes = True  # ORM 모드 활성화

# labguard/domains/fms/models.py

"""
'fms' 도메인 (PostgreSQL 'fms' 스키마)의 데이터베이스 ORM 모델을 정의하는 모듈입니다.

실험실 장비(equipments)와 장비의 교정 주기/상태 정보를 관리합니다.
"""

from typing import Optional, List, TYPE_CHECKING
from datetime import datetime
from enum import Enum

from sqlalchemy import ForeignKey, Integer
from sqlalchemy.sql import func
from sqlmodel import Field, Relationship, SQLModel, Column

from labguard.core.types import UTCDateTime, utcnow

#  다른 도메인의 모델을 참조해야 할 경우 (순환 임포트 방지)
if TYPE_CHECKING:
    from labguard.domains.lims.models import CalibrationRecord


class EquipmentType(str, Enum):
    ANALYZER = "ANALYZER"
    BALANCE = "BALANCE"
    CENTRIFUGE = "CENTRIFUGE"
    INCUBATOR = "INCUBATOR"
    PIPETTE = "PIPETTE"
    THERMOMETER = "THERMOMETER"
    OTHER = "OTHER"


class EquipmentStatus(str, Enum):
    ACTIVE = "ACTIVE"
    MAINTENANCE = "MAINTENANCE"
    INACTIVE = "INACTIVE"
    RETIRED = "RETIRED"


# =============================================================================
# 1. fms.equipments 테이블 모델
# =============================================================================
class EquipmentBase(SQLModel):
    laboratory_id: int = Field(
        sa_column=Column(Integer, ForeignKey("usr.laboratories.id", ondelete="RESTRICT"), nullable=False)
    )
    name: str = Field(max_length=100)
    equipment_type: EquipmentType = Field(default=EquipmentType.OTHER)
    model_number: Optional[str] = Field(default=None, max_length=100)
    serial_number: Optional[str] = Field(default=None, max_length=100, unique=True)
    manufacturer: Optional[str] = Field(default=None, max_length=100)
    status: EquipmentStatus = Field(default=EquipmentStatus.ACTIVE)
    calibration_interval_days: Optional[int] = Field(default=None, description="교정 주기 (일). 없으면 365일")
    notes: Optional[str] = Field(default=None)


class Equipment(EquipmentBase, table=True):
    __tablename__ = "equipments"
    __table_args__ = {'schema': 'fms'}

    id: Optional[int] = Field(default=None, primary_key=True)
    last_calibrated_at: Optional[datetime] = Field(default=None, sa_column=Column(UTCDateTime(), nullable=True))
    next_calibration_at: Optional[datetime] = Field(default=None, sa_column=Column(UTCDateTime(), nullable=True))
    # 최근 피펫 교정 결과 (정확도 %, CV %)
    accuracy: Optional[float] = Field(default=None)
    precision: Optional[float] = Field(default=None)
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

    # --- 관계 정의 ---
    calibration_records: List["CalibrationRecord"] = Relationship(back_populates="equipment")

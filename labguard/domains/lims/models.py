# labguard/domains/lims/models.py

"""
'lims' 도메인 (PostgreSQL 'lims' 스키마)의 데이터베이스 ORM 모델을 정의하는 모듈입니다.

장비 교정 기록(calibration_records)을 포함합니다.
교정 기록은 예약(PENDING) 상태로 생성되어 교정 수행 후 COMPLETED로 전이합니다.
"""

from typing import Optional, List, Dict, Any, TYPE_CHECKING
from datetime import datetime
from enum import Enum

from sqlalchemy import ForeignKey, Integer
from sqlalchemy.sql import func
from sqlmodel import Field, Relationship, SQLModel, Column

from labguard.core.types import JSONVariant, UTCDateTime, utcnow

if TYPE_CHECKING:
    from labguard.domains.fms.models import Equipment


class CalibrationType(str, Enum):
    THERMAL = "THERMAL"
    PIPETTE = "PIPETTE"
    BALANCE = "BALANCE"
    FULL_SERVICE = "FULL_SERVICE"


class CalibrationPriority(str, Enum):
    ROUTINE = "ROUTINE"
    URGENT = "URGENT"
    CRITICAL = "CRITICAL"


class CalibrationStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class CalibrationResult(str, Enum):
    PASS = "PASS"
    FAIL = "FAIL"


# =============================================================================
# 1. lims.calibration_records 테이블 모델
# =============================================================================
class CalibrationRecord(SQLModel, table=True):
    __tablename__ = "calibration_records"
    __table_args__ = {'schema': 'lims'}

    id: Optional[int] = Field(default=None, primary_key=True)
    equipment_id: int = Field(foreign_key="fms.equipments.id")
    laboratory_id: int = Field(foreign_key="usr.laboratories.id")
    # 시스템이 자동 예약한 경우 None (개인정보 삭제 시에도 None으로 익명화)
    user_id: Optional[int] = Field(
        default=None,
        sa_column=Column(Integer, ForeignKey("usr.users.id", ondelete="SET NULL"), nullable=True)
    )
    calibration_type: CalibrationType = Field(default=CalibrationType.FULL_SERVICE)
    priority: CalibrationPriority = Field(default=CalibrationPriority.ROUTINE)
    status: CalibrationStatus = Field(default=CalibrationStatus.PENDING)
    result: Optional[CalibrationResult] = Field(default=None)
    method: Optional[str] = Field(default=None, description="교정 방법")

    calibration_date: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(UTCDateTime(), server_default=func.now()),
        description="교정 등록 일시"
    )
    scheduled_date: Optional[datetime] = Field(default=None, sa_column=Column(UTCDateTime(), nullable=True))
    due_date: Optional[datetime] = Field(default=None, sa_column=Column(UTCDateTime(), nullable=True))
    performed_date: Optional[datetime] = Field(default=None, sa_column=Column(UTCDateTime(), nullable=True))

    # 환경 조건
    temperature: Optional[float] = Field(default=None)
    humidity: Optional[float] = Field(default=None)
    pressure: Optional[float] = Field(default=None)

    # 교정 결과 지표
    accuracy: Optional[float] = Field(default=None)
    precision: Optional[float] = Field(default=None)
    linearity: Optional[float] = Field(default=None)
    repeatability: Optional[float] = Field(default=None)
    is_compliant: Optional[bool] = Field(default=None)
    compliance_score: Optional[float] = Field(default=None)
    deviations: Optional[List[Dict[str, Any]]] = Field(default=None, sa_column=Column(JSONVariant))
    corrective_actions: Optional[List[str]] = Field(default=None, sa_column=Column(JSONVariant))
    report_generated: bool = Field(default=False)
    notes: Optional[str] = Field(default=None)

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

    equipment: "Equipment" = Relationship(back_populates="calibration_records")

# labguard/domains/lims/schemas.py

"""
'lims' 도메인 (교정 관리)의 API 요청/응답 스키마를 정의하는 모듈입니다.

측정값과 판정 기준 타입은 calibration 모듈의 모델을 그대로 사용합니다.
"""

from typing import Optional, List, Dict, Any
from datetime import datetime

from sqlmodel import SQLModel, Field

from .calibration import (
    PipetteAcceptanceLimits,
    PipetteMeasurement,
    PipetteValidationResult,
    ThermalAcceptanceCriteria,
    ThermalMeasurement,
    ThermalValidationResult,
)
from .models import CalibrationPriority, CalibrationResult, CalibrationStatus, CalibrationType


# =============================================================================
# 1. 교정 기록 (CalibrationRecord) 스키마
# =============================================================================
class CalibrationRecordRead(SQLModel):
    id: int
    equipment_id: int
    laboratory_id: int
    user_id: Optional[int] = None
    calibration_type: CalibrationType
    priority: CalibrationPriority
    status: CalibrationStatus
    result: Optional[CalibrationResult] = None
    method: Optional[str] = None
    calibration_date: datetime
    scheduled_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    performed_date: Optional[datetime] = None
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    pressure: Optional[float] = None
    accuracy: Optional[float] = None
    precision: Optional[float] = None
    linearity: Optional[float] = None
    repeatability: Optional[float] = None
    is_compliant: Optional[bool] = None
    compliance_score: Optional[float] = None
    deviations: Optional[List[Dict[str, Any]]] = None
    corrective_actions: Optional[List[str]] = None
    report_generated: bool
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class CalibrationCancel(SQLModel):
    user_id: Optional[int] = Field(None, description="취소 요청자")
    reason: Optional[str] = None


# =============================================================================
# 2. 교정 예약 스키마
# =============================================================================
class ScheduleRequest(SQLModel):
    laboratory_id: int


class ScheduledCalibration(SQLModel):
    calibration_id: int
    equipment_id: int
    equipment_name: str
    calibration_type: CalibrationType
    priority: CalibrationPriority
    scheduled_date: datetime
    due_date: datetime


class ScheduleResult(SQLModel):
    scheduled_count: int
    calibrations: List[ScheduledCalibration]


# =============================================================================
# 3. 열 블록 / 피펫 교정 수행 스키마
# =============================================================================
class RampRates(SQLModel):
    heating: float = Field(..., description="승온 속도 (°C/s)")
    cooling: float = Field(..., description="냉각 속도 (°C/s)")


class ThermalCalibrationRequest(SQLModel):
    """
    PCR 열 블록 교정 요청.
    `measurements`가 없으면 `test_temperatures`로 96웰 측정값을 시뮬레이션합니다. (`seed`로 재현 가능)
    승온/냉각 속도와 균일성/재현성 시험 여부는 판정에 쓰이지 않으며 감사 로그 메타데이터로만 남습니다.
    """
    equipment_id: int
    laboratory_id: int
    user_id: Optional[int] = None
    test_temperatures: List[float] = Field(default_factory=list, description="예: [50, 60, 72, 95]")
    dwell_time: float = Field(30, ge=0, description="유지 시간 (분)")
    ramp_rates: Optional[RampRates] = Field(None, description="판정에 사용하지 않고 감사 로그에만 기록")
    uniformity_test: bool = Field(True, description="판정에 사용하지 않고 감사 로그에만 기록")
    reproducibility_test: bool = Field(True, description="판정에 사용하지 않고 감사 로그에만 기록")
    acceptance_criteria: ThermalAcceptanceCriteria = Field(default_factory=ThermalAcceptanceCriteria)
    measurements: Optional[List[ThermalMeasurement]] = None
    seed: Optional[int] = None


class EnvironmentalConditions(SQLModel):
    temperature: float
    humidity: float
    barometric_pressure: float


class WaterQuality(SQLModel):
    resistivity: float = Field(..., description="MΩ·cm")
    temperature: float
    evaporation_correction: bool = False


class PipetteCalibrationRequest(SQLModel):
    """
    피펫 중량법 교정 요청.
    `measurements`가 없으면 `test_volumes` x `replicates`로 측정값을 시뮬레이션합니다.
    환경 조건은 교정 기록에, 정제수 품질은 감사 로그 메타데이터에 기록만 됩니다.
    """
    equipment_id: int
    laboratory_id: int
    user_id: Optional[int] = None
    test_volumes: List[float] = Field(default_factory=list, description="예: [10, 50, 100, 200, 1000] (μL)")
    replicates: int = 10
    environmental_conditions: EnvironmentalConditions
    water_quality: Optional[WaterQuality] = Field(None, description="판정에 사용하지 않고 감사 로그에만 기록")
    acceptance_limits: PipetteAcceptanceLimits = Field(default_factory=PipetteAcceptanceLimits)
    measurements: Optional[List[PipetteMeasurement]] = None
    seed: Optional[int] = None


class ThermalCalibrationResponse(SQLModel):
    calibration_id: int
    result: CalibrationResult
    compliance_score: float
    measurements: List[ThermalMeasurement]
    analysis: ThermalValidationResult
    next_calibration_due: datetime


class PipetteCalibrationResponse(SQLModel):
    calibration_id: int
    result: CalibrationResult
    accuracy: float
    precision: float
    compliance_score: float
    measurements: List[PipetteMeasurement]
    analysis: PipetteValidationResult
    next_calibration_due: datetime


# =============================================================================
# 4. 결과 판정 (DB 미사용) 스키마
# =============================================================================
class ThermalValidationRequest(SQLModel):
    measurements: List[ThermalMeasurement]
    criteria: ThermalAcceptanceCriteria = Field(default_factory=ThermalAcceptanceCriteria)


class PipetteValidationRequest(SQLModel):
    measurements: List[PipetteMeasurement]
    limits: PipetteAcceptanceLimits = Field(default_factory=PipetteAcceptanceLimits)


# =============================================================================
# 5. 대시보드 / CLIA 보고서 스키마
# =============================================================================
class UpcomingCalibration(SQLModel):
    id: int
    equipment_id: int
    equipment_name: str
    equipment_type: str
    due_date: datetime
    scheduled_date: Optional[datetime] = None
    method: Optional[str] = None
    days_until_due: int


class CalibrationDashboard(SQLModel):
    summary: Dict[str, Any]
    upcoming_calibrations: List[UpcomingCalibration]
    compliance: Dict[str, Any]


class CLIAComplianceReport(SQLModel):
    report_period: Dict[str, datetime]
    equipment_summary: Dict[str, int]
    calibration_summary: Dict[str, int]
    clia_compliance: Dict[str, Any]
    recommendations: List[str]
    generated_at: datetime

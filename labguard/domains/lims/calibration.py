# labguard/domains/lims/calibration.py

"""
장비 교정 결과를 판정하는 순수 함수 모듈입니다. (DB 접근 없음)

- 열 블록(PCR) 교정: 목표 온도별 96웰 측정값의 정확도/균일도를 검사합니다.
- 피펫 교정: 중량법(gravimetric)으로 계산된 부피의 정확도(% bias)/정밀도(% CV)를 검사합니다.
- 측정값 시뮬레이션, 교정 방법 텍스트, 장비 분류, 컴플라이언스 지표 계산을 포함합니다.

잘못된 측정 세트(빈 목록, 0 이하의 목표 부피, NaN/inf 값 등)는 ValueError를 발생시킵니다.
"""

import math
import random
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from pydantic import BaseModel, Field

from labguard.core.types import utcnow
from .models import CalibrationPriority, CalibrationResult, CalibrationStatus, CalibrationType

# 실온(약 20~25°C)에서 물의 밀도 (g/mL)
WATER_DENSITY = 0.998
WELL_ROWS = "ABCDEFGH"
WELL_COLUMNS = 12

CALIBRATION_METHODS = {
    CalibrationType.THERMAL: "NIST-traceable thermometer verification with uniformity and reproducibility testing",
    CalibrationType.PIPETTE: "Gravimetric testing with NIST-traceable weights and environmental monitoring",
    CalibrationType.BALANCE: "Linearity, repeatability, and eccentricity testing with certified weights",
    CalibrationType.FULL_SERVICE: "Comprehensive manufacturer service protocol with performance verification",
}


# =============================================================================
# 1. 판정 기준 및 측정값 타입
# =============================================================================
class ThermalAcceptanceCriteria(BaseModel):
    temperature_tolerance: float = Field(0.5, gt=0, description="허용 온도 편차 (±°C)")
    uniformity_limit: float = Field(1.0, gt=0, description="웰 간 최대 온도 차이 (°C)")
    reproducibility_limit: float = Field(0.2, gt=0, description="반복 측정 간 허용 편차 (°C). 판정에 사용하지 않고 기록만 함")
    ramp_rate_accuracy: float = Field(5.0, gt=0, description="승온/냉각 속도 허용 오차 (%). 판정에 사용하지 않고 기록만 함")


class PipetteAcceptanceLimits(BaseModel):
    accuracy: float = Field(2.0, gt=0, description="허용 정확도 (% bias)")
    precision: float = Field(1.0, gt=0, description="허용 정밀도 (% CV)")


class WellReading(BaseModel):
    well: str
    temperature: float


class ThermalMeasurement(BaseModel):
    target_temperature: float
    readings: List[WellReading]
    dwell_time: float = 0


class PipetteReplicate(BaseModel):
    replicate: int
    actual_weight: float
    calculated_volume: float


class PipetteMeasurement(BaseModel):
    target_volume: float
    replicates: List[PipetteReplicate]


class ThermalValidationResult(BaseModel):
    passed: bool = True
    accuracy: float = 0.0
    precision: float = 0.0
    linearity: float = 0.0
    repeatability: float = 0.0
    compliance_score: float = 100.0
    failed_criteria: List[str] = Field(default_factory=list)
    deviations: List[Dict[str, Any]] = Field(default_factory=list)
    corrective_actions: List[str] = Field(default_factory=list)


class PipetteValidationResult(BaseModel):
    passed: bool = True
    accuracy: float = 0.0
    precision: float = 0.0
    compliance_score: float = 100.0
    deviations: List[Dict[str, Any]] = Field(default_factory=list)
    corrective_actions: List[str] = Field(default_factory=list)


# =============================================================================
# 2. 통계 함수
# =============================================================================
def _check_finite(values: Sequence[float], label: str) -> None:
    for value in values:
        if not math.isfinite(value):
            raise ValueError(f"{label} contains a non-finite value: {value}")


def mean(values: Sequence[float]) -> float:
    if not values:
        raise ValueError("Cannot compute the mean of an empty sequence")
    return sum(values) / len(values)


def population_std(values: Sequence[float]) -> float:
    """모표준편차 (n으로 나눔)."""
    avg = mean(values)
    return math.sqrt(sum((v - avg) ** 2 for v in values) / len(values))


def _format_number(value: float) -> str:
    # 72.0 -> "72", 72.125 -> "72.125" (유효숫자를 자르지 않음)
    text = repr(float(value))
    return text[:-2] if text.endswith(".0") else text


# =============================================================================
# 3. 교정 결과 판정
# =============================================================================
def validate_thermal_results(
    measurements: Sequence[ThermalMeasurement],
    criteria: Optional[ThermalAcceptanceCriteria] = None,
) -> ThermalValidationResult:
    """
    목표 온도별로 웰 측정값의 평균 편차(정확도)와 최대-최소 차이(균일도)를 검사합니다.
    결과의 accuracy/precision은 모든 목표 온도 중 최댓값입니다.
    """
    criteria = criteria or ThermalAcceptanceCriteria()
    if not measurements:
        raise ValueError("At least one thermal measurement is required")

    result = ThermalValidationResult()
    for measurement in measurements:
        temps = [reading.temperature for reading in measurement.readings]
        if not temps:
            raise ValueError(f"No well readings for target {_format_number(measurement.target_temperature)}°C")
        _check_finite(temps + [measurement.target_temperature], "Thermal readings")

        target = measurement.target_temperature
        label = _format_number(target)
        avg = mean(temps)
        std_dev = population_std(temps)

        accuracy = abs(avg - target)
        if accuracy > criteria.temperature_tolerance:
            result.passed = False
            result.failed_criteria.append(f"Temperature tolerance exceeded at {label}°C")
            result.corrective_actions.append("Recalibrate thermal block")
            result.deviations.append({
                "target_temperature": target,
                "criterion": "temperature_tolerance",
                "measured": round(accuracy, 4),
                "limit": criteria.temperature_tolerance,
            })

        uniformity = max(temps) - min(temps)
        if uniformity > criteria.uniformity_limit:
            result.passed = False
            result.failed_criteria.append(f"Uniformity limit exceeded at {label}°C")
            result.corrective_actions.append("Check thermal block condition")
            result.deviations.append({
                "target_temperature": target,
                "criterion": "uniformity",
                "measured": round(uniformity, 4),
                "limit": criteria.uniformity_limit,
            })

        result.accuracy = max(result.accuracy, accuracy)
        result.precision = max(result.precision, std_dev)

    result.compliance_score = 100.0 if result.passed else max(0.0, 100.0 - 20 * len(result.failed_criteria))
    return result


def validate_pipette_results(
    measurements: Sequence[PipetteMeasurement],
    limits: Optional[PipetteAcceptanceLimits] = None,
) -> PipetteValidationResult:
    """
    목표 부피별로 계산 부피의 평균 편차율(정확도, %)과 변동계수(정밀도, % CV)를 검사합니다.
    """
    limits = limits or PipetteAcceptanceLimits()
    if not measurements:
        raise ValueError("At least one pipette measurement is required")

    result = PipetteValidationResult()
    for measurement in measurements:
        target = measurement.target_volume
        if not math.isfinite(target) or target <= 0:
            raise ValueError(f"Target volume must be positive, got {target}")
        volumes = [replicate.calculated_volume for replicate in measurement.replicates]
        if not volumes:
            raise ValueError(f"No replicates for target volume {_format_number(target)}μL")
        _check_finite(volumes, "Pipette volumes")

        label = _format_number(target)
        avg = mean(volumes)
        if avg <= 0:
            raise ValueError(f"Mean delivered volume must be positive at {label}μL")
        cv = population_std(volumes) / avg * 100
        accuracy = abs(avg - target) / target * 100

        if accuracy > limits.accuracy:
            result.passed = False
            result.corrective_actions.append(f"Adjust pipette calibration for {label}μL")
            result.deviations.append({
                "target_volume": target,
                "criterion": "accuracy",
                "measured": round(accuracy, 4),
                "limit": limits.accuracy,
            })

        if cv > limits.precision:
            result.passed = False
            result.corrective_actions.append(f"Service pipette for improved precision at {label}μL")
            result.deviations.append({
                "target_volume": target,
                "criterion": "precision",
                "measured": round(cv, 4),
                "limit": limits.precision,
            })

        result.accuracy = max(result.accuracy, accuracy)
        result.precision = max(result.precision, cv)

    result.compliance_score = 100.0 if result.passed else max(0.0, 100.0 - 15 * len(result.corrective_actions))
    return result


# =============================================================================
# 4. 측정값 시뮬레이션 (측정 장비 연동 전 대체용)
# =============================================================================
def well_names() -> List[str]:
    """96웰 플레이트의 웰 이름 (A1 ... H12)."""
    return [f"{row}{col}" for row in WELL_ROWS for col in range(1, WELL_COLUMNS + 1)]


def simulate_thermal_measurements(
    temperatures: Sequence[float],
    dwell_time: float = 0,
    rng: Optional[random.Random] = None,
) -> List[ThermalMeasurement]:
    """목표 온도마다 96웰의 측정값을 ±0.4°C 범위에서 생성합니다."""
    if not temperatures:
        raise ValueError("At least one test temperature is required")
    rng = rng or random.Random()
    measurements = []
    for target in temperatures:
        readings = [
            WellReading(well=well, temperature=round(target + (rng.random() - 0.5) * 0.8, 2))
            for well in well_names()
        ]
        measurements.append(ThermalMeasurement(target_temperature=target, readings=readings, dwell_time=dwell_time))
    return measurements


def simulate_pipette_measurements(
    volumes: Sequence[float],
    replicates: int,
    rng: Optional[random.Random] = None,
) -> List[PipetteMeasurement]:
    """목표 부피마다 물 무게를 측정한 것처럼 반복 측정값을 생성합니다."""
    if not volumes:
        raise ValueError("At least one test volume is required")
    if replicates <= 0:
        raise ValueError(f"Replicate count must be positive, got {replicates}")
    rng = rng or random.Random()
    measurements = []
    for volume in volumes:
        if volume <= 0:
            raise ValueError(f"Target volume must be positive, got {volume}")
        rows = []
        for i in range(replicates):
            weight = volume * WATER_DENSITY + (rng.random() - 0.5) * 0.02
            rows.append(PipetteReplicate(
                replicate=i + 1,
                actual_weight=round(weight, 4),
                calculated_volume=round(weight / WATER_DENSITY, 2),
            ))
        measurements.append(PipetteMeasurement(target_volume=volume, replicates=rows))
    return measurements


# =============================================================================
# 5. 교정 계획 보조 함수
# =============================================================================
def calibration_method(calibration_type: Any) -> str:
    try:
        return CALIBRATION_METHODS[CalibrationType(calibration_type)]
    except ValueError:
        return CALIBRATION_METHODS[CalibrationType.FULL_SERVICE]


def classify_equipment(equipment_type: Any, name: str) -> Tuple[CalibrationType, CalibrationPriority]:
    """장비 유형과 이름으로 교정 유형과 우선순위를 결정합니다."""
    lowered = (name or "").lower()
    equipment_type = getattr(equipment_type, "value", equipment_type)
    if equipment_type == "ANALYZER" and ("pcr" in lowered or "cycler" in lowered):
        return CalibrationType.THERMAL, CalibrationPriority.CRITICAL
    if "pipette" in lowered:
        return CalibrationType.PIPETTE, CalibrationPriority.CRITICAL
    if equipment_type == "BALANCE":
        return CalibrationType.BALANCE, CalibrationPriority.URGENT
    return CalibrationType.FULL_SERVICE, CalibrationPriority.ROUTINE


def compliance_metrics(overdue: int, completed_recently: int, equipment_count: int) -> Dict[str, Any]:
    overall = max(0, 100 - overdue * 10)
    if equipment_count > 0:
        compliance_rate = (equipment_count - overdue) / equipment_count * 100
    else:
        compliance_rate = 100.0
    return {
        "overall_score": overall,
        "overdue_count": overdue,
        "completed_recently": completed_recently,
        "equipment_count": equipment_count,
        "compliance_rate": compliance_rate,
    }


def method_compliance(calibrations: Iterable[Any], keyword: str) -> Dict[str, Any]:
    """교정 방법 텍스트에 keyword가 포함된 기록의 합격률을 계산합니다."""
    matched = [c for c in calibrations if c.method and keyword in c.method]
    passed = sum(1 for c in matched if c.result == CalibrationResult.PASS)
    return {
        "total": len(matched),
        "passed": passed,
        "compliance_rate": (passed / len(matched) * 100) if matched else 0.0,
    }


def generate_compliance_recommendations(calibrations: Iterable[Any], now: Optional[datetime] = None) -> List[str]:
    now = now or utcnow()
    calibrations = list(calibrations)
    recommendations = []
    if any(c.result == CalibrationResult.FAIL for c in calibrations):
        recommendations.append("Address failed calibrations immediately to maintain CLIA compliance")
    if any(c.due_date is not None and c.due_date < now and c.status != CalibrationStatus.COMPLETED for c in calibrations):
        recommendations.append("Complete overdue calibrations to avoid compliance violations")
    recommendations.append("Implement preventive maintenance schedule for critical PCR equipment")
    recommendations.append("Maintain environmental monitoring records for all calibrations")
    return recommendations

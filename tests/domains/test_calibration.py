# tests/domains/test_calibration.py

"""
교정 판정 순수 함수 (labguard.domains.lims.calibration)에 대한 단위 테스트 모듈입니다.
데이터베이스를 사용하지 않습니다.
"""

import math
import random
from datetime import timedelta
from types import SimpleNamespace

import pytest

from labguard.core.types import utcnow
from labguard.domains.lims import calibration
from labguard.domains.lims.calibration import (
    PipetteMeasurement,
    PipetteReplicate,
    ThermalMeasurement,
    WellReading,
)
from labguard.domains.lims.models import (
    CalibrationPriority,
    CalibrationResult,
    CalibrationStatus,
    CalibrationType,
)


def thermal(target, temperatures):
    readings = [WellReading(well=f"W{i}", temperature=t) for i, t in enumerate(temperatures)]
    return ThermalMeasurement(target_temperature=target, readings=readings)


def pipette(target, volumes):
    replicates = [
        PipetteReplicate(replicate=i + 1, actual_weight=v * calibration.WATER_DENSITY, calculated_volume=v)
        for i, v in enumerate(volumes)
    ]
    return PipetteMeasurement(target_volume=target, replicates=replicates)


# =============================================================================
# 1. 통계 함수
# =============================================================================
def test_mean_and_population_std():
    values = [2, 4, 4, 4, 5, 5, 7, 9]
    assert calibration.mean(values) == 5
    assert calibration.population_std(values) == pytest.approx(2.0)


def test_mean_of_empty_sequence_raises():
    with pytest.raises(ValueError):
        calibration.mean([])


# =============================================================================
# 2. 열 블록 판정
# =============================================================================
def test_thermal_all_criteria_met():
    result = calibration.validate_thermal_results([thermal(72, [72.0] * 96), thermal(95, [95.1, 94.9] * 48)])
    assert result.passed is True
    assert result.compliance_score == 100
    assert result.failed_criteria == []
    assert result.accuracy == pytest.approx(0.0, abs=1e-9)
    assert result.precision == pytest.approx(0.1)


def test_thermal_tolerance_failure():
    result = calibration.validate_thermal_results([thermal(72, [73.0] * 96)])
    assert result.passed is False
    assert result.failed_criteria == ["Temperature tolerance exceeded at 72°C"]
    assert result.corrective_actions == ["Recalibrate thermal block"]
    assert result.compliance_score == 80
    assert result.accuracy == pytest.approx(1.0)
    deviation = result.deviations[0]
    assert deviation["criterion"] == "temperature_tolerance"
    assert deviation["limit"] == 0.5


def test_thermal_uniformity_failure():
    result = calibration.validate_thermal_results([thermal(72.5, [71.9, 73.1] * 48)])
    assert result.passed is False
    assert result.failed_criteria == ["Uniformity limit exceeded at 72.5°C"]
    assert result.corrective_actions == ["Check thermal block condition"]
    assert result.deviations[0]["measured"] == pytest.approx(1.2)


def test_failure_labels_keep_full_precision():
    # 유효숫자 6자리를 넘는 목표값도 잘리거나 지수 표기로 바뀌지 않아야 합니다.
    result = calibration.validate_thermal_results([thermal(72.1234567, [73.5] * 96)])
    assert result.failed_criteria == ["Temperature tolerance exceeded at 72.1234567°C"]

    result = calibration.validate_pipette_results([pipette(1234567, [1234567 * 1.03] * 10)])
    assert result.corrective_actions == ["Adjust pipette calibration for 1234567μL"]


def test_thermal_score_floor_at_zero():
    bad = [thermal(t, [t + 2.0, t + 3.5] * 48) for t in (50, 60, 72)]
    result = calibration.validate_thermal_results(bad)
    assert len(result.failed_criteria) == 6
    assert result.compliance_score == 0


def test_thermal_custom_criteria():
    criteria = calibration.ThermalAcceptanceCriteria(temperature_tolerance=2.0)
    result = calibration.validate_thermal_results([thermal(72, [73.0] * 96)], criteria)
    assert result.passed is True


@pytest.mark.parametrize("measurements", [[], [thermal(72, [])], [thermal(72, [72.0, math.nan])]])
def test_thermal_invalid_measurements_raise(measurements):
    with pytest.raises(ValueError):
        calibration.validate_thermal_results(measurements)


# =============================================================================
# 3. 피펫 판정
# =============================================================================
def test_pipette_within_limits():
    result = calibration.validate_pipette_results([pipette(100, [100.0] * 10), pipette(10, [10.05, 9.95] * 5)])
    assert result.passed is True
    assert result.compliance_score == 100
    assert result.corrective_actions == []
    assert result.precision == pytest.approx(0.5)


def test_pipette_accuracy_failure():
    result = calibration.validate_pipette_results([pipette(100, [103.0] * 10)])
    assert result.passed is False
    assert result.accuracy == pytest.approx(3.0)
    assert result.corrective_actions == ["Adjust pipette calibration for 100μL"]
    assert result.compliance_score == 85


def test_pipette_precision_failure():
    result = calibration.validate_pipette_results([pipette(100, [98.0, 102.0] * 5)])
    assert result.passed is False
    assert result.precision == pytest.approx(2.0)
    assert result.corrective_actions == ["Service pipette for improved precision at 100μL"]
    assert result.deviations[0]["criterion"] == "precision"


@pytest.mark.parametrize(
    "measurements",
    [[], [pipette(0, [1.0])], [pipette(-5, [1.0])], [pipette(100, [])], [pipette(100, [math.inf])]],
)
def test_pipette_invalid_measurements_raise(measurements):
    with pytest.raises(ValueError):
        calibration.validate_pipette_results(measurements)


# =============================================================================
# 4. 측정값 시뮬레이션
# =============================================================================
def test_simulated_thermal_measurements_cover_96_wells_and_pass():
    measurements = calibration.simulate_thermal_measurements([50, 60, 72, 95], 30, random.Random(7))
    assert len(measurements) == 4
    for measurement in measurements:
        assert [r.well for r in measurement.readings] == calibration.well_names()
        assert all(abs(r.temperature - measurement.target_temperature) <= 0.41 for r in measurement.readings)
    assert calibration.well_names()[0] == "A1" and calibration.well_names()[-1] == "H12"
    assert calibration.validate_thermal_results(measurements).passed is True


def test_simulation_is_reproducible_with_seed():
    first = calibration.simulate_pipette_measurements([10, 100], 5, random.Random(42))
    second = calibration.simulate_pipette_measurements([10, 100], 5, random.Random(42))
    assert first == second
    assert [len(m.replicates) for m in first] == [5, 5]
    assert calibration.validate_pipette_results(first).passed is True


@pytest.mark.parametrize("volumes, replicates", [([], 10), ([100], 0), ([0], 3)])
def test_simulated_pipette_invalid_inputs(volumes, replicates):
    with pytest.raises(ValueError):
        calibration.simulate_pipette_measurements(volumes, replicates)


# =============================================================================
# 5. 교정 계획 보조 함수
# =============================================================================
@pytest.mark.parametrize(
    "equipment_type, name, expected",
    [
        ("ANALYZER", "PCR Thermal Cycler", (CalibrationType.THERMAL, CalibrationPriority.CRITICAL)),
        ("ANALYZER", "Real-time cycler", (CalibrationType.THERMAL, CalibrationPriority.CRITICAL)),
        ("PIPETTE", "Eppendorf Pipette 100", (CalibrationType.PIPETTE, CalibrationPriority.CRITICAL)),
        ("BALANCE", "Analytical Balance", (CalibrationType.BALANCE, CalibrationPriority.URGENT)),
        ("CENTRIFUGE", "Microcentrifuge", (CalibrationType.FULL_SERVICE, CalibrationPriority.ROUTINE)),
    ],
)
def test_classify_equipment(equipment_type, name, expected):
    assert calibration.classify_equipment(equipment_type, name) == expected


def test_calibration_method_falls_back_to_full_service():
    assert "thermometer" in calibration.calibration_method(CalibrationType.THERMAL)
    assert "Gravimetric" in calibration.calibration_method("PIPETTE")
    assert calibration.calibration_method("UNKNOWN") == calibration.CALIBRATION_METHODS[CalibrationType.FULL_SERVICE]


def test_compliance_metrics():
    metrics = calibration.compliance_metrics(overdue=2, completed_recently=3, equipment_count=10)
    assert metrics["overall_score"] == 80
    assert metrics["compliance_rate"] == pytest.approx(80.0)
    assert calibration.compliance_metrics(0, 0, 0)["compliance_rate"] == 100.0
    assert calibration.compliance_metrics(12, 0, 20)["overall_score"] == 0


def test_method_compliance_and_recommendations():
    now = utcnow()
    records = [
        SimpleNamespace(method=calibration.calibration_method("THERMAL"), result=CalibrationResult.PASS,
                        due_date=now + timedelta(days=10), status=CalibrationStatus.COMPLETED),
        SimpleNamespace(method=calibration.calibration_method("THERMAL"), result=CalibrationResult.FAIL,
                        due_date=now - timedelta(days=1), status=CalibrationStatus.PENDING),
        SimpleNamespace(method=calibration.calibration_method("PIPETTE"), result=CalibrationResult.PASS,
                        due_date=None, status=CalibrationStatus.COMPLETED),
    ]
    thermal_rate = calibration.method_compliance(records, "thermometer")
    assert thermal_rate == {"total": 2, "passed": 1, "compliance_rate": 50.0}
    assert calibration.method_compliance([], "Gravimetric")["compliance_rate"] == 0.0

    recommendations = calibration.generate_compliance_recommendations(records, now)
    assert recommendations[0] == "Address failed calibrations immediately to maintain CLIA compliance"
    assert "Complete overdue calibrations to avoid compliance violations" in recommendations
    assert len(calibration.generate_compliance_recommendations(records[:1], now)) == 2

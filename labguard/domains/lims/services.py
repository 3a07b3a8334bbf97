# labguard/domains/lims/services.py

"""
'lims' 도메인의 교정 업무 로직을 담당하는 모듈입니다.

- 교정 예약: 교정 주기가 도래한 장비마다 PENDING 교정 기록을 생성합니다.
- 교정 수행: 열 블록(PCR) / 피펫 측정값을 판정하고 기록, 장비 상태, 알림, 감사 로그를 갱신합니다.
- 대시보드와 CLIA 컴플라이언스 보고서를 생성합니다.

판정 로직 자체는 calibration 모듈의 순수 함수가 담당합니다.
"""

import logging
import math
import random
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status
from sqlmodel.ext.asyncio.session import AsyncSession

from labguard.core.types import as_utc, utcnow
from labguard.domains.fms import crud as fms_crud
from labguard.domains.fms import models as fms_models
from labguard.domains.sec import services as sec_services
from labguard.domains.sec.schemas import AuditEvent
from labguard.domains.shared import crud as shared_crud
from labguard.domains.shared.models import NotificationType
from labguard.domains.usr import crud as usr_crud
from . import calibration
from . import crud as lims_crud
from . import models as lims_models
from . import schemas as lims_schemas

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_DAYS = 365
SCHEDULE_LEAD_DAYS = 7
THERMAL_RECALIBRATION_DAYS = 365
PIPETTE_RECALIBRATION_DAYS = 90
UPCOMING_WINDOW_DAYS = 30
CLIA_REPORT_DEFAULT_DAYS = 90


# =============================================================================
# 1. 교정 예약
# =============================================================================
async def schedule_calibrations(
    db: AsyncSession, laboratory_id: int, *, now: Optional[datetime] = None
) -> Dict[str, Any]:
    """
    교정이 필요한 장비(다음 교정일 미정 또는 30일 이내)마다 PENDING 교정 기록을 생성합니다.
    이미 PENDING 기록이 있는 장비는 건너뜁니다.
    """
    if await usr_crud.laboratory.get(db, laboratory_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Laboratory not found")

    now = now or utcnow()
    candidates = await fms_crud.equipment.get_due_for_calibration(db, laboratory_id=laboratory_id, now=now)
    already_pending = set(
        await lims_crud.calibration_record.get_pending_equipment_ids(db, equipment_ids=[e.id for e in candidates])
    )

    scheduled = []
    for item in candidates:
        if item.id in already_pending:
            continue
        calibration_type, priority = calibration.classify_equipment(item.equipment_type, item.name)
        due_date = now + timedelta(days=item.calibration_interval_days or DEFAULT_INTERVAL_DAYS)
        scheduled_date = due_date - timedelta(days=SCHEDULE_LEAD_DAYS)

        record = lims_models.CalibrationRecord(
            equipment_id=item.id,
            laboratory_id=laboratory_id,
            calibration_type=calibration_type,
            priority=priority,
            status=lims_models.CalibrationStatus.PENDING,
            method=calibration.calibration_method(calibration_type),
            calibration_date=now,
            scheduled_date=scheduled_date,
            due_date=due_date,
            notes=f"Automatically scheduled {calibration_type.value.lower()} calibration for laboratory compliance",
        )
        db.add(record)
        await db.flush()

        item.next_calibration_at = due_date
        db.add(item)

        await shared_crud.notification.add(
            db,
            type=NotificationType.CALIBRATION_DUE,
            title=f"Calibration Scheduled: {item.name}",
            message=f"{calibration_type.value} calibration scheduled for {scheduled_date.date().isoformat()}",
            laboratory_id=laboratory_id,
            meta={
                "equipment_id": item.id,
                "calibration_id": record.id,
                "calibration_type": calibration_type.value,
                "priority": priority.value,
                "due_date": due_date.isoformat(),
            },
        )
        scheduled.append({
            "calibration_id": record.id,
            "equipment_id": item.id,
            "equipment_name": item.name,
            "calibration_type": calibration_type,
            "priority": priority,
            "scheduled_date": scheduled_date,
            "due_date": due_date,
        })

    await db.commit()
    logger.info("Scheduled %d calibrations for laboratory %s", len(scheduled), laboratory_id)
    return {"scheduled_count": len(scheduled), "calibrations": scheduled}


# =============================================================================
# 2. 교정 수행 (열 블록 / 피펫)
# =============================================================================
async def _get_pending_record(
    db: AsyncSession, *, equipment_id: int, laboratory_id: int
) -> lims_models.CalibrationRecord:
    record = await lims_crud.calibration_record.get_latest_pending(
        db, equipment_id=equipment_id, laboratory_id=laboratory_id
    )
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No pending calibration record found for this equipment",
        )
    return record


async def _get_calibratable_equipment(db: AsyncSession, equipment_id: int) -> fms_models.Equipment:
    """삭제되었거나 폐기(RETIRED)된 장비는 교정할 수 없습니다."""
    equipment = await fms_crud.equipment.get(db, equipment_id)
    if equipment is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Equipment not found")
    if equipment.deleted_at is not None or equipment.status == fms_models.EquipmentStatus.RETIRED:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Equipment is retired or deleted and cannot be calibrated",
        )
    return equipment


def _apply_result(
    record: lims_models.CalibrationRecord,
    equipment: fms_models.Equipment,
    results: Any,
    *,
    user_id: Optional[int],
    now: datetime,
    next_due: datetime,
    notes: str,
) -> lims_models.CalibrationResult:
    """판정 결과를 교정 기록과 장비에 반영합니다."""
    outcome = lims_models.CalibrationResult.PASS if results.passed else lims_models.CalibrationResult.FAIL
    record.status = lims_models.CalibrationStatus.COMPLETED
    record.result = outcome
    record.performed_date = now
    record.user_id = user_id
    record.accuracy = results.accuracy
    record.precision = results.precision
    record.is_compliant = results.passed
    record.compliance_score = results.compliance_score
    record.deviations = results.deviations
    record.corrective_actions = None if results.passed else results.corrective_actions
    record.report_generated = True
    record.notes = notes

    equipment.last_calibrated_at = now
    equipment.next_calibration_at = next_due
    equipment.status = fms_models.EquipmentStatus.ACTIVE if results.passed else fms_models.EquipmentStatus.MAINTENANCE
    return outcome


async def perform_thermal_calibration(
    db: AsyncSession,
    data: lims_schemas.ThermalCalibrationRequest,
    *,
    rng: Optional[random.Random] = None,
) -> Dict[str, Any]:
    """
    PCR 열 블록 교정을 수행합니다.
    측정값이 주어지지 않으면 시뮬레이션하며, 다음 교정일은 365일 후입니다.
    """
    await sec_services.ensure_references(db, user_id=data.user_id, laboratory_id=data.laboratory_id)
    equipment = await _get_calibratable_equipment(db, data.equipment_id)
    record = await _get_pending_record(db, equipment_id=data.equipment_id, laboratory_id=data.laboratory_id)

    try:
        if data.measurements is not None:
            measurements = data.measurements
        else:
            measurements = calibration.simulate_thermal_measurements(
                data.test_temperatures, data.dwell_time, rng or random.Random(data.seed)
            )
        results = calibration.validate_thermal_results(measurements, data.acceptance_criteria)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    now = utcnow()
    next_due = now + timedelta(days=THERMAL_RECALIBRATION_DAYS)
    if results.passed:
        notes = "Thermal calibration completed. All criteria met"
    else:
        notes = f"Failed criteria: {', '.join(results.failed_criteria)}"

    outcome = _apply_result(
        record, equipment, results, user_id=data.user_id, now=now, next_due=next_due, notes=notes
    )
    record.temperature = measurements[0].target_temperature
    record.linearity = results.linearity
    record.repeatability = results.repeatability
    db.add(record)
    db.add(equipment)

    if not results.passed:
        await shared_crud.notification.add(
            db,
            type=NotificationType.SYSTEM_ALERT,
            title="CRITICAL: Calibration Failure",
            message=f"Thermal calibration failed for {equipment.name}. Immediate corrective action required.",
            laboratory_id=data.laboratory_id,
            user_id=data.user_id,
            meta={
                "equipment_id": equipment.id,
                "calibration_id": record.id,
                "failed_criteria": results.failed_criteria,
                "urgency": "CRITICAL",
            },
        )

    await sec_services.log_audit_event(db, AuditEvent(
        user_id=data.user_id,
        laboratory_id=data.laboratory_id,
        action="THERMAL_CALIBRATION_COMPLETED",
        resource="CalibrationRecord",
        resource_id=str(record.id),
        new_values={"status": record.status, "result": outcome},
        metadata={
            "equipment_id": equipment.id,
            "result": outcome,
            "compliance_score": results.compliance_score,
            "test_temperatures": [m.target_temperature for m in measurements],
            "ramp_rates": data.ramp_rates.model_dump() if data.ramp_rates else None,
            "uniformity_test": data.uniformity_test,
            "reproducibility_test": data.reproducibility_test,
            "acceptance_criteria": data.acceptance_criteria.model_dump(),
        },
    ), commit=False)

    await db.commit()
    logger.info("Thermal calibration %s for equipment %s: %s", record.id, equipment.id, outcome.value)
    return {
        "calibration_id": record.id,
        "result": outcome,
        "compliance_score": results.compliance_score,
        "measurements": measurements,
        "analysis": results,
        "next_calibration_due": next_due,
    }


async def perform_pipette_calibration(
    db: AsyncSession,
    data: lims_schemas.PipetteCalibrationRequest,
    *,
    rng: Optional[random.Random] = None,
) -> Dict[str, Any]:
    """
    피펫 중량법 교정을 수행합니다. 다음 교정일은 90일 후입니다.
    """
    await sec_services.ensure_references(db, user_id=data.user_id, laboratory_id=data.laboratory_id)
    equipment = await _get_calibratable_equipment(db, data.equipment_id)
    record = await _get_pending_record(db, equipment_id=data.equipment_id, laboratory_id=data.laboratory_id)

    try:
        if data.measurements is not None:
            measurements = data.measurements
        else:
            measurements = calibration.simulate_pipette_measurements(
                data.test_volumes, data.replicates, rng or random.Random(data.seed)
            )
        results = calibration.validate_pipette_results(measurements, data.acceptance_limits)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    now = utcnow()
    next_due = now + timedelta(days=PIPETTE_RECALIBRATION_DAYS)
    if results.passed:
        notes = "Pipette calibration completed. Accuracy and precision within limits"
    else:
        notes = f"Corrective actions required: {', '.join(results.corrective_actions)}"

    outcome = _apply_result(
        record, equipment, results, user_id=data.user_id, now=now, next_due=next_due, notes=notes
    )
    conditions = data.environmental_conditions
    record.temperature = conditions.temperature
    record.humidity = conditions.humidity
    record.pressure = conditions.barometric_pressure
    # 장비에는 최근 피펫 교정 성능을 보관합니다.
    equipment.accuracy = results.accuracy
    equipment.precision = results.precision
    db.add(record)
    db.add(equipment)

    if not results.passed:
        await shared_crud.notification.add(
            db,
            type=NotificationType.SYSTEM_ALERT,
            title="CRITICAL: Calibration Failure",
            message=f"Pipette calibration failed for {equipment.name}. Service or adjustment required before use.",
            laboratory_id=data.laboratory_id,
            user_id=data.user_id,
            meta={
                "equipment_id": equipment.id,
                "calibration_id": record.id,
                "corrective_actions": results.corrective_actions,
                "urgency": "CRITICAL",
            },
        )

    await sec_services.log_audit_event(db, AuditEvent(
        user_id=data.user_id,
        laboratory_id=data.laboratory_id,
        action="PIPETTE_CALIBRATION_COMPLETED",
        resource="CalibrationRecord",
        resource_id=str(record.id),
        new_values={"status": record.status, "result": outcome},
        metadata={
            "equipment_id": equipment.id,
            "result": outcome,
            "accuracy": results.accuracy,
            "precision": results.precision,
            "test_volumes": [m.target_volume for m in measurements],
            "water_quality": data.water_quality.model_dump() if data.water_quality else None,
        },
    ), commit=False)

    await db.commit()
    logger.info("Pipette calibration %s for equipment %s: %s", record.id, equipment.id, outcome.value)
    return {
        "calibration_id": record.id,
        "result": outcome,
        "accuracy": results.accuracy,
        "precision": results.precision,
        "compliance_score": results.compliance_score,
        "measurements": measurements,
        "analysis": results,
        "next_calibration_due": next_due,
    }


async def cancel_calibration(
    db: AsyncSession, calibration_id: int, *, user_id: Optional[int] = None, reason: Optional[str] = None
) -> lims_models.CalibrationRecord:
    """PENDING 상태의 교정만 취소할 수 있습니다."""
    record = await lims_crud.calibration_record.get(db, calibration_id)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Calibration record not found")
    if record.status != lims_models.CalibrationStatus.PENDING:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Only pending calibrations can be cancelled")

    record.status = lims_models.CalibrationStatus.CANCELLED
    if reason:
        record.notes = f"{record.notes}\nCancelled: {reason}" if record.notes else f"Cancelled: {reason}"
    db.add(record)
    await sec_services.log_audit_event(db, AuditEvent(
        user_id=user_id,
        laboratory_id=record.laboratory_id,
        action="CALIBRATION_CANCELLED",
        resource="CalibrationRecord",
        resource_id=str(record.id),
        old_values={"status": lims_models.CalibrationStatus.PENDING},
        new_values={"status": lims_models.CalibrationStatus.CANCELLED},
        metadata={"reason": reason} if reason else None,
    ), commit=False)
    await db.commit()
    await db.refresh(record)
    return record


# =============================================================================
# 3. 대시보드 / CLIA 보고서
# =============================================================================
def days_until(due_date: datetime, now: datetime) -> int:
    """남은 일수 (올림)."""
    return math.ceil((due_date - now).total_seconds() / 86400)


async def get_calibration_dashboard(
    db: AsyncSession, laboratory_id: int, *, now: Optional[datetime] = None
) -> Dict[str, Any]:
    now = now or utcnow()
    CalibrationRecord = lims_models.CalibrationRecord
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)

    pending = await lims_crud.calibration_record.count(
        db,
        CalibrationRecord.laboratory_id == laboratory_id,
        CalibrationRecord.status == lims_models.CalibrationStatus.PENDING,
    )
    overdue = await lims_crud.calibration_record.count_overdue(db, laboratory_id=laboratory_id, now=now)
    completed_this_month = await lims_crud.calibration_record.count_completed_since(
        db, laboratory_id=laboratory_id, since=month_start
    )
    completed_recently = await lims_crud.calibration_record.count_completed_since(
        db, laboratory_id=laboratory_id, since=now - timedelta(days=30)
    )
    equipment_count = await fms_crud.equipment.count(
        db,
        fms_models.Equipment.laboratory_id == laboratory_id,
        fms_models.Equipment.deleted_at.is_(None),
    )

    upcoming_rows = await lims_crud.calibration_record.get_upcoming(
        db, laboratory_id=laboratory_id, start=now, end=now + timedelta(days=UPCOMING_WINDOW_DAYS)
    )
    upcoming = [
        {
            "id": record.id,
            "equipment_id": item.id,
            "equipment_name": item.name,
            "equipment_type": item.equipment_type.value,
            "due_date": record.due_date,
            "scheduled_date": record.scheduled_date,
            "method": record.method,
            "days_until_due": days_until(record.due_date, now),
        }
        for record, item in upcoming_rows
    ]

    return {
        "summary": {
            "total_pending": pending,
            "overdue": overdue,
            "completed_this_month": completed_this_month,
            "upcoming_count": len(upcoming),
        },
        "upcoming_calibrations": upcoming,
        "compliance": calibration.compliance_metrics(overdue, completed_recently, equipment_count),
    }


async def generate_clia_compliance_report(
    db: AsyncSession,
    laboratory_id: int,
    *,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    기간 내 수행된 교정을 기준으로 CLIA 보고서를 생성합니다. (기본: 최근 90일)
    """
    now = utcnow()
    end_date = as_utc(end_date) if end_date else now
    start_date = as_utc(start_date) if start_date else end_date - timedelta(days=CLIA_REPORT_DEFAULT_DAYS)
    if end_date < start_date:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="end_date must not be before start_date")

    calibrations = await lims_crud.calibration_record.get_performed_between(
        db, laboratory_id=laboratory_id, start=start_date, end=end_date
    )
    equipment_list = await fms_crud.equipment.get_by_laboratory(db, laboratory_id=laboratory_id, limit=10000)
    overdue = await lims_crud.calibration_record.count_overdue(db, laboratory_id=laboratory_id, now=now)

    passed = sum(1 for c in calibrations if c.result == lims_models.CalibrationResult.PASS)
    failed = sum(1 for c in calibrations if c.result == lims_models.CalibrationResult.FAIL)
    metrics = calibration.compliance_metrics(overdue, len(calibrations), len(equipment_list))

    return {
        "report_period": {"start_date": start_date, "end_date": end_date},
        "equipment_summary": {
            "total_equipment": len(equipment_list),
            "pcr_machines": sum(1 for e in equipment_list if "pcr" in e.name.lower()),
            "pipettes": sum(1 for e in equipment_list if "pipette" in e.name.lower()),
            "balances": sum(1 for e in equipment_list if e.equipment_type == fms_models.EquipmentType.BALANCE),
        },
        "calibration_summary": {
            "total_calibrations": len(calibrations),
            "passed": passed,
            "failed": failed,
            "overdue": overdue,
        },
        "clia_compliance": {
            "overall_score": metrics["overall_score"],
            "thermal_compliance": calibration.method_compliance(calibrations, "thermometer"),
            "pipette_compliance": calibration.method_compliance(calibrations, "Gravimetric"),
        },
        "recommendations": calibration.generate_compliance_recommendations(calibrations, now),
        "generated_at": now,
    }


async def list_calibration_records(
    db: AsyncSession,
    *,
    laboratory_id: Optional[int] = None,
    equipment_id: Optional[int] = None,
    status_filter: Optional[lims_models.CalibrationStatus] = None,
    skip: int = 0,
    limit: int = 100,
) -> List[lims_models.CalibrationRecord]:
    filters = {"laboratory_id": laboratory_id, "equipment_id": equipment_id, "status": status_filter}
    return await lims_crud.calibration_record.get_multi(
        db, skip=skip, limit=limit, **{key: value for key, value in filters.items() if value is not None}
    )

# labguard/domains/lims/routers.py

"""
'lims' 도메인 (장비 교정 관리)의 API 엔드포인트를 정의하는 모듈입니다.
"""

from typing import List, Optional
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel.ext.asyncio.session import AsyncSession

from labguard.core.database import get_session
from . import calibration
from . import crud as lims_crud
from . import models as lims_models
from . import schemas as lims_schemas
from . import services as lims_services

router = APIRouter(
    tags=["Calibration Management (장비 교정 관리)"],
    responses={404: {"description": "Not found"}},
)


# =============================================================================
# 1. 교정 예약 / 수행 엔드포인트
# =============================================================================
@router.post("/calibrations/schedule", response_model=lims_schemas.ScheduleResult, summary="교정 자동 예약")
async def schedule_calibrations(request: lims_schemas.ScheduleRequest, db: AsyncSession = Depends(get_session)):
    """
    실험실 장비 중 교정 주기가 도래한 장비에 대해 PENDING 교정 기록과 예약 알림을 생성합니다.
    """
    return await lims_services.schedule_calibrations(db, request.laboratory_id)


@router.post("/calibrations/thermal", response_model=lims_schemas.ThermalCalibrationResponse, summary="PCR 열 블록 교정 수행")
async def perform_thermal_calibration(
    request: lims_schemas.ThermalCalibrationRequest,
    db: AsyncSession = Depends(get_session),
):
    return await lims_services.perform_thermal_calibration(db, request)


@router.post("/calibrations/pipette", response_model=lims_schemas.PipetteCalibrationResponse, summary="피펫 중량법 교정 수행")
async def perform_pipette_calibration(
    request: lims_schemas.PipetteCalibrationRequest,
    db: AsyncSession = Depends(get_session),
):
    return await lims_services.perform_pipette_calibration(db, request)


# =============================================================================
# 2. 측정값 판정 (저장 없음)
# =============================================================================
@router.post("/calibrations/validate/thermal", response_model=calibration.ThermalValidationResult, summary="열 블록 측정값 판정")
async def validate_thermal(request: lims_schemas.ThermalValidationRequest):
    try:
        return calibration.validate_thermal_results(request.measurements, request.criteria)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.post("/calibrations/validate/pipette", response_model=calibration.PipetteValidationResult, summary="피펫 측정값 판정")
async def validate_pipette(request: lims_schemas.PipetteValidationRequest):
    try:
        return calibration.validate_pipette_results(request.measurements, request.limits)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


# =============================================================================
# 3. 대시보드 / 보고서
# =============================================================================
@router.get("/calibrations/dashboard", response_model=lims_schemas.CalibrationDashboard, summary="교정 대시보드")
async def read_dashboard(laboratory_id: int, db: AsyncSession = Depends(get_session)):
    return await lims_services.get_calibration_dashboard(db, laboratory_id)


@router.get("/calibrations/clia-report", response_model=lims_schemas.CLIAComplianceReport, summary="CLIA 컴플라이언스 보고서")
async def read_clia_report(
    laboratory_id: int,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    db: AsyncSession = Depends(get_session),
):
    return await lims_services.generate_clia_compliance_report(
        db, laboratory_id, start_date=start_date, end_date=end_date
    )


# =============================================================================
# 4. 교정 기록 조회 / 취소
# =============================================================================
@router.get("/calibration_records", response_model=List[lims_schemas.CalibrationRecordRead], summary="교정 기록 목록 조회")
async def read_calibration_records(
    laboratory_id: Optional[int] = None,
    equipment_id: Optional[int] = None,
    status_filter: Optional[lims_models.CalibrationStatus] = None,
    skip: int = 0,
    limit: int = 100,
    db: AsyncSession = Depends(get_session),
):
    return await lims_services.list_calibration_records(
        db,
        laboratory_id=laboratory_id,
        equipment_id=equipment_id,
        status_filter=status_filter,
        skip=skip,
        limit=limit,
    )


@router.get("/calibration_records/{record_id}", response_model=lims_schemas.CalibrationRecordRead, summary="교정 기록 조회")
async def read_calibration_record(record_id: int, db: AsyncSession = Depends(get_session)):
    db_record = await lims_crud.calibration_record.get(db, record_id)
    if db_record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Calibration record not found")
    return db_record


@router.post("/calibration_records/{record_id}/cancel", response_model=lims_schemas.CalibrationRecordRead, summary="예약된 교정 취소")
async def cancel_calibration_record(
    record_id: int,
    request: Optional[lims_schemas.CalibrationCancel] = None,
    db: AsyncSession = Depends(get_session),
):
    request = request or lims_schemas.CalibrationCancel()
    return await lims_services.cancel_calibration(db, record_id, user_id=request.user_id, reason=request.reason)

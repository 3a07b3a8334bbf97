# labguard/domains/fms/routers.py

"""
'fms' 도메인 (PostgreSQL 'fms' 스키마)의 API 엔드포인트를 정의하는 모듈입니다.

이 라우터는 실험실 장비 정보에 대한 CRUD 작업을 위한 HTTP 엔드포인트를 제공합니다.
장비 삭제는 교정 이력 보존을 위해 soft delete (deleted_at 기록)로 처리합니다.
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel.ext.asyncio.session import AsyncSession

from labguard.core.database import get_session

#  'fms' 도메인의 CRUD, 스키마
from labguard.domains.fms import crud as fms_crud
from labguard.domains.fms import schemas as fms_schemas


router = APIRouter(
    tags=["Facility Management (장비 관리)"],
    responses={404: {"description": "Not found"}},
)


async def _get_equipment_or_404(db: AsyncSession, equipment_id: int):
    db_equipment = await fms_crud.equipment.get(db, equipment_id)
    if db_equipment is None or db_equipment.deleted_at is not None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Equipment not found")
    return db_equipment


#  =============================================================================
#  1. fms.equipments 엔드포인트 (장비 관리)
#  =============================================================================
@router.post("/equipments", response_model=fms_schemas.EquipmentResponse, status_code=status.HTTP_201_CREATED, summary="새 장비 등록")
async def create_equipment(
    equipment_create: fms_schemas.EquipmentCreate,
    db: AsyncSession = Depends(get_session),
):
    """
    새로운 장비를 등록합니다.
    - `laboratory_id`: 소속 실험실 ID (필수)
    - `serial_number`: 일련번호 (고유)
    """
    return await fms_crud.equipment.create(db=db, obj_in=equipment_create)


@router.get("/equipments", response_model=List[fms_schemas.EquipmentResponse], summary="장비 목록 조회")
async def read_equipments(
    laboratory_id: Optional[int] = None,
    skip: int = 0,
    limit: int = 100,
    db: AsyncSession = Depends(get_session),
):
    """
    장비 목록을 조회합니다. `laboratory_id`를 지정하면 해당 실험실의 삭제되지 않은 장비만 반환합니다.
    """
    if laboratory_id is not None:
        return await fms_crud.equipment.get_by_laboratory(db, laboratory_id=laboratory_id, skip=skip, limit=limit)
    return await fms_crud.equipment.get_multi(db, skip=skip, limit=limit, deleted_at=None)


@router.get("/equipments/{equipment_id}", response_model=fms_schemas.EquipmentResponse, summary="특정 장비 정보 조회")
async def read_equipment(equipment_id: int, db: AsyncSession = Depends(get_session)):
    return await _get_equipment_or_404(db, equipment_id)


@router.put("/equipments/{equipment_id}", response_model=fms_schemas.EquipmentResponse, summary="장비 정보 업데이트")
async def update_equipment(
    equipment_id: int,
    equipment_update: fms_schemas.EquipmentUpdate,
    db: AsyncSession = Depends(get_session),
):
    db_equipment = await _get_equipment_or_404(db, equipment_id)
    return await fms_crud.equipment.update(db=db, db_obj=db_equipment, obj_in=equipment_update)


@router.delete("/equipments/{equipment_id}", status_code=status.HTTP_204_NO_CONTENT, summary="장비 삭제")
async def delete_equipment(equipment_id: int, db: AsyncSession = Depends(get_session)):
    """
    특정 ID의 장비를 삭제 처리합니다. (교정 이력은 보존됩니다)
    """
    db_equipment = await _get_equipment_or_404(db, equipment_id)
    await fms_crud.equipment.soft_delete(db, db_obj=db_equipment)

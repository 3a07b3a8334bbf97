# labguard/domains/fms/crud.py

"""
'fms' 도메인 (장비 관리)과 관련된 CRUD 로직을 담당하는 모듈입니다.
"""

from typing import List, Optional
from datetime import datetime, timedelta

from sqlalchemy import or_
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from fastapi import HTTPException, status

#  공통 CRUDBase 및 FMS 도메인의 모델, 스키마 임포트
from labguard.core.crud_base import CRUDBase
from labguard.core.types import utcnow
from labguard.domains.lims import models as lims_models
from labguard.domains.usr import crud as usr_crud
from . import models as fms_models
from . import schemas as fms_schemas


# =============================================================================
# 1. 장비 (Equipment) CRUD
# =============================================================================
class CRUDEquipment(CRUDBase[fms_models.Equipment, fms_schemas.EquipmentCreate, fms_schemas.EquipmentUpdate]):
    def __init__(self):
        super().__init__(model=fms_models.Equipment)

    async def get_by_serial_number(self, db: AsyncSession, *, serial_number: str) -> Optional[fms_models.Equipment]:
        """일련번호로 장비를 조회합니다."""
        return await self.get_by_attribute(db, attribute="serial_number", value=serial_number)

    async def get_by_laboratory(
        self, db: AsyncSession, *, laboratory_id: int, skip: int = 0, limit: int = 100
    ) -> List[fms_models.Equipment]:
        """실험실의 삭제되지 않은 장비 목록을 조회합니다."""
        statement = (
            select(self.model)
            .where(self.model.laboratory_id == laboratory_id, self.model.deleted_at.is_(None))
            .order_by(self.model.id)
            .offset(skip)
            .limit(limit)
        )
        result = await db.execute(statement)
        return result.scalars().all()

    async def get_due_for_calibration(
        self, db: AsyncSession, *, laboratory_id: int, within_days: int = 30, now: Optional[datetime] = None
    ) -> List[fms_models.Equipment]:
        """
        교정 예약 대상 장비를 조회합니다.
        ACTIVE 상태이며, 다음 교정일이 없거나 within_days 이내인 장비가 대상입니다.
        """
        horizon = (now or utcnow()) + timedelta(days=within_days)
        statement = (
            select(self.model)
            .where(
                self.model.laboratory_id == laboratory_id,
                self.model.status == fms_models.EquipmentStatus.ACTIVE,
                self.model.deleted_at.is_(None),
                or_(self.model.next_calibration_at.is_(None), self.model.next_calibration_at <= horizon),
            )
            .order_by(self.model.id)
        )
        result = await db.execute(statement)
        return result.scalars().all()

    async def create(self, db: AsyncSession, *, obj_in: fms_schemas.EquipmentCreate) -> fms_models.Equipment:
        """실험실 존재 여부와 일련번호 중복을 확인하고 생성합니다."""
        if not await usr_crud.laboratory.get(db, obj_in.laboratory_id):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Laboratory not found")
        if obj_in.serial_number and await self.get_by_serial_number(db, serial_number=obj_in.serial_number):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Equipment with this serial number already exists.")
        return await super().create(db, obj_in=obj_in)

    async def update(
        self, db: AsyncSession, *, db_obj: fms_models.Equipment, obj_in: fms_schemas.EquipmentUpdate
    ) -> fms_models.Equipment:
        if obj_in.serial_number and obj_in.serial_number != db_obj.serial_number:
            existing = await self.get_by_serial_number(db, serial_number=obj_in.serial_number)
            if existing and existing.id != db_obj.id:
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Equipment with this serial number already exists.")
        return await super().update(db, db_obj=db_obj, obj_in=obj_in)

    async def soft_delete(self, db: AsyncSession, *, db_obj: fms_models.Equipment) -> fms_models.Equipment:
        """장비를 삭제 처리합니다. 교정 이력 보존을 위해 행은 남기고, 대기 중인 교정은 취소합니다."""
        db_obj.deleted_at = utcnow()
        db_obj.status = fms_models.EquipmentStatus.RETIRED
        db.add(db_obj)

        pending = await db.execute(
            select(lims_models.CalibrationRecord).where(
                lims_models.CalibrationRecord.equipment_id == db_obj.id,
                lims_models.CalibrationRecord.status == lims_models.CalibrationStatus.PENDING,
            )
        )
        for record in pending.scalars().all():
            record.status = lims_models.CalibrationStatus.CANCELLED
            record.notes = f"{record.notes}\nCancelled: Equipment deleted" if record.notes else "Cancelled: Equipment deleted"
            db.add(record)

        await db.commit()
        await db.refresh(db_obj)
        return db_obj


equipment = CRUDEquipment()

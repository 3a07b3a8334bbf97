# labguard/domains/lims/crud.py

"""
'lims' 도메인 (교정 기록)과 관련된 CRUD 로직을 담당하는 모듈입니다.
"""

from typing import List, Optional, Sequence, Tuple
from datetime import datetime

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from labguard.core.crud_base import CRUDBase
from labguard.domains.fms import models as fms_models
from . import models as lims_models


# =============================================================================
# 1. 교정 기록 (CalibrationRecord) CRUD
# =============================================================================
class CRUDCalibrationRecord(
    CRUDBase[lims_models.CalibrationRecord, lims_models.CalibrationRecord, lims_models.CalibrationRecord]
):
    def __init__(self):
        super().__init__(model=lims_models.CalibrationRecord)

    async def get_latest_pending(
        self, db: AsyncSession, *, equipment_id: int, laboratory_id: int
    ) -> Optional[lims_models.CalibrationRecord]:
        """장비의 가장 최근 PENDING 교정 기록을 조회합니다."""
        statement = (
            select(self.model)
            .where(
                self.model.equipment_id == equipment_id,
                self.model.laboratory_id == laboratory_id,
                self.model.status == lims_models.CalibrationStatus.PENDING,
            )
            .order_by(self.model.created_at.desc(), self.model.id.desc())
        )
        result = await db.execute(statement)
        return result.scalars().first()

    async def get_pending_equipment_ids(self, db: AsyncSession, *, equipment_ids: Sequence[int]) -> List[int]:
        """이미 PENDING 교정 기록이 있는 장비 ID 목록."""
        if not equipment_ids:
            return []
        statement = (
            select(self.model.equipment_id)
            .where(
                self.model.equipment_id.in_(equipment_ids),
                self.model.status == lims_models.CalibrationStatus.PENDING,
            )
            .distinct()
        )
        result = await db.execute(statement)
        return result.scalars().all()

    async def count_overdue(self, db: AsyncSession, *, laboratory_id: int, now: datetime) -> int:
        """마감일이 지났지만 완료(또는 취소)되지 않은 교정 수."""
        return await self.count(
            db,
            self.model.laboratory_id == laboratory_id,
            self.model.due_date < now,
            self.model.status.not_in([lims_models.CalibrationStatus.COMPLETED, lims_models.CalibrationStatus.CANCELLED]),
        )

    async def count_completed_since(self, db: AsyncSession, *, laboratory_id: int, since: datetime) -> int:
        return await self.count(
            db,
            self.model.laboratory_id == laboratory_id,
            self.model.status == lims_models.CalibrationStatus.COMPLETED,
            self.model.performed_date >= since,
        )

    async def get_upcoming(
        self, db: AsyncSession, *, laboratory_id: int, start: datetime, end: datetime
    ) -> List[Tuple[lims_models.CalibrationRecord, fms_models.Equipment]]:
        """기간 내 마감되는 PENDING 교정과 해당 장비를 마감일 순으로 조회합니다."""
        statement = (
            select(self.model, fms_models.Equipment)
            .join(fms_models.Equipment, self.model.equipment_id == fms_models.Equipment.id)
            .where(
                self.model.laboratory_id == laboratory_id,
                self.model.status == lims_models.CalibrationStatus.PENDING,
                self.model.due_date >= start,
                self.model.due_date <= end,
            )
            .order_by(self.model.due_date)
        )
        result = await db.execute(statement)
        return result.all()

    async def get_performed_between(
        self, db: AsyncSession, *, laboratory_id: int, start: datetime, end: datetime
    ) -> List[lims_models.CalibrationRecord]:
        statement = (
            select(self.model)
            .where(
                self.model.laboratory_id == laboratory_id,
                self.model.performed_date >= start,
                self.model.performed_date <= end,
            )
            .order_by(self.model.performed_date.desc())
        )
        result = await db.execute(statement)
        return result.scalars().all()


calibration_record = CRUDCalibrationRecord()

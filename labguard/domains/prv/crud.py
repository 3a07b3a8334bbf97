# labguard/domains/prv/crud.py

"""
'prv' 도메인 (처리 동의, 삭제 이력)과 관련된 CRUD 로직을 담당하는 모듈입니다.
"""

from typing import List, Optional

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from labguard.core.crud_base import CRUDBase
from . import models as prv_models


# =============================================================================
# 1. 처리 동의 (DataProcessingConsent) CRUD
# =============================================================================
class CRUDConsent(
    CRUDBase[prv_models.DataProcessingConsent, prv_models.DataProcessingConsent, prv_models.DataProcessingConsent]
):
    def __init__(self):
        super().__init__(model=prv_models.DataProcessingConsent)

    async def get_by_user_and_purpose(
        self, db: AsyncSession, *, user_id: int, purpose: str
    ) -> Optional[prv_models.DataProcessingConsent]:
        statement = select(self.model).where(self.model.user_id == user_id, self.model.purpose == purpose)
        result = await db.execute(statement)
        return result.scalars().first()

    async def get_by_user(self, db: AsyncSession, *, user_id: int) -> List[prv_models.DataProcessingConsent]:
        statement = select(self.model).where(self.model.user_id == user_id).order_by(self.model.purpose)
        result = await db.execute(statement)
        return result.scalars().all()


consent = CRUDConsent()


# =============================================================================
# 2. 삭제 이력 (DataDeletionRecord) CRUD
# =============================================================================
class CRUDDeletionRecord(
    CRUDBase[prv_models.DataDeletionRecord, prv_models.DataDeletionRecord, prv_models.DataDeletionRecord]
):
    def __init__(self):
        super().__init__(model=prv_models.DataDeletionRecord)

    async def get_by_original_user(self, db: AsyncSession, *, user_id: int) -> List[prv_models.DataDeletionRecord]:
        return await self.get_multi(db, original_user_id=user_id)


deletion_record = CRUDDeletionRecord()

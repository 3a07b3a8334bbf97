# labguard/domains/shared/crud.py

"""
'shared' 도메인 (공용 데이터)과 관련된 CRUD 로직을 담당하는 모듈입니다.
"""

from typing import List, Optional, Dict, Any

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from labguard.core.crud_base import CRUDBase
from . import models as shared_models
from . import schemas as shared_schemas


# =============================================================================
# 1. 알림 (Notification) CRUD
# =============================================================================
class CRUDNotification(
    CRUDBase[
        shared_models.Notification,
        shared_schemas.NotificationCreate,
        shared_schemas.NotificationUpdate,
    ]
):
    def __init__(self):
        super().__init__(model=shared_models.Notification)

    async def add(
        self,
        db: AsyncSession,
        *,
        type: shared_models.NotificationType,
        title: str,
        message: str,
        laboratory_id: Optional[int] = None,
        user_id: Optional[int] = None,
        meta: Optional[Dict[str, Any]] = None,
    ) -> shared_models.Notification:
        """
        서비스 계층의 트랜잭션 안에서 알림을 추가합니다. (commit은 호출자가 담당)
        """
        db_obj = shared_models.Notification(
            type=type, title=title, message=message,
            laboratory_id=laboratory_id, user_id=user_id, meta=meta,
        )
        db.add(db_obj)
        await db.flush()
        return db_obj

    async def get_for_recipient(
        self,
        db: AsyncSession,
        *,
        laboratory_id: Optional[int] = None,
        user_id: Optional[int] = None,
        unread_only: bool = False,
        skip: int = 0,
        limit: int = 100,
    ) -> List[shared_models.Notification]:
        statement = select(self.model)
        if laboratory_id is not None:
            statement = statement.where(self.model.laboratory_id == laboratory_id)
        if user_id is not None:
            statement = statement.where(self.model.user_id == user_id)
        if unread_only:
            statement = statement.where(self.model.is_read.is_(False))
        statement = statement.order_by(self.model.id.desc()).offset(skip).limit(limit)
        result = await db.execute(statement)
        return result.scalars().all()


notification = CRUDNotification()

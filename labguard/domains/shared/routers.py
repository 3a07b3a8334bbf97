# labguard/domains/shared/routers.py

"""
'shared' 도메인 (공용 데이터)의 API 엔드포인트를 정의하는 모듈입니다.

교정 예약, 교정 실패, 보안/컴플라이언스 경고 알림의 조회와 읽음 처리를 제공합니다.
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel.ext.asyncio.session import AsyncSession

from labguard.core.database import get_session
from . import crud as shared_crud
from . import schemas as shared_schemas

router = APIRouter(
    tags=["Shared (시스템 공용정보 관리)"],
    responses={404: {"description": "Not found"}},
)


@router.post("/notifications", response_model=shared_schemas.NotificationRead, status_code=status.HTTP_201_CREATED, summary="알림 생성")
async def create_notification(
    notification_in: shared_schemas.NotificationCreate,
    db: AsyncSession = Depends(get_session),
):
    return await shared_crud.notification.create(db=db, obj_in=notification_in)


@router.get("/notifications", response_model=List[shared_schemas.NotificationRead], summary="알림 목록 조회")
async def read_notifications(
    laboratory_id: Optional[int] = None,
    user_id: Optional[int] = None,
    unread_only: bool = False,
    skip: int = 0,
    limit: int = 100,
    db: AsyncSession = Depends(get_session),
):
    """
    실험실 또는 사용자 기준으로 알림을 최신순으로 조회합니다.
    """
    return await shared_crud.notification.get_for_recipient(
        db, laboratory_id=laboratory_id, user_id=user_id,
        unread_only=unread_only, skip=skip, limit=limit,
    )


@router.put("/notifications/{notification_id}", response_model=shared_schemas.NotificationRead, summary="알림 읽음 처리")
async def update_notification(
    notification_id: int,
    notification_in: shared_schemas.NotificationUpdate,
    db: AsyncSession = Depends(get_session),
):
    db_notification = await shared_crud.notification.get(db, notification_id)
    if db_notification is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    return await shared_crud.notification.update(db, db_obj=db_notification, obj_in=notification_in)


@router.delete("/notifications/{notification_id}", status_code=status.HTTP_204_NO_CONTENT, summary="알림 삭제")
async def delete_notification(notification_id: int, db: AsyncSession = Depends(get_session)):
    db_notification = await shared_crud.notification.delete(db, id=notification_id)
    if db_notification is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")

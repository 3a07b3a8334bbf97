# labguard/domains/prv/routers.py

"""
'prv' 도메인 (개인정보 보호)의 API 엔드포인트를 정의하는 모듈입니다.
"""

from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlmodel.ext.asyncio.session import AsyncSession

from labguard.core.database import get_session
from . import schemas as prv_schemas
from . import services as prv_services

router = APIRouter(
    tags=["Privacy (개인정보 보호)"],
    responses={404: {"description": "Not found"}},
)


# =============================================================================
# 1. 정보주체 권리 (열람/삭제) 엔드포인트
# =============================================================================
@router.get("/users/{user_id}/export", response_model=prv_schemas.UserDataExport, summary="개인 데이터 내보내기")
async def export_user_data(user_id: int, db: AsyncSession = Depends(get_session)):
    return await prv_services.export_user_data(db, user_id)


@router.post("/users/{user_id}/erasure", response_model=prv_schemas.ErasureResult, summary="개인 데이터 삭제 및 익명화")
async def erase_user_data(
    user_id: int,
    request: Optional[prv_schemas.ErasureRequest] = None,
    db: AsyncSession = Depends(get_session),
):
    """
    알림은 삭제하고, 감사 로그와 교정 기록은 익명화하여 보존합니다.
    이미 삭제된 사용자는 409를 반환합니다.
    """
    request = request or prv_schemas.ErasureRequest()
    return await prv_services.delete_user_data(db, user_id, request.reason)


# =============================================================================
# 2. 처리 동의 엔드포인트
# =============================================================================
@router.put("/users/{user_id}/consents", response_model=prv_schemas.ConsentRead, summary="처리 동의 부여/철회")
async def update_consent(
    user_id: int,
    consent_in: prv_schemas.ConsentUpdate,
    db: AsyncSession = Depends(get_session),
):
    return await prv_services.manage_consent(
        db,
        user_id,
        consent_in.purpose,
        consent_in.granted,
        ip_address=consent_in.ip_address,
        user_agent=consent_in.user_agent,
    )


@router.get("/users/{user_id}/consents/{purpose}", response_model=prv_schemas.ConsentCheck, summary="처리 동의 여부 확인")
async def check_consent(user_id: int, purpose: str, db: AsyncSession = Depends(get_session)):
    return {
        "user_id": user_id,
        "purpose": purpose,
        "has_consent": await prv_services.has_consent(db, user_id, purpose),
    }


# =============================================================================
# 3. 보존 기간 정책 엔드포인트
# =============================================================================
@router.post("/retention/enforce", response_model=prv_schemas.RetentionResult, status_code=status.HTTP_200_OK, summary="보존 기간 정책 적용")
async def enforce_data_retention(db: AsyncSession = Depends(get_session)):
    return await prv_services.enforce_data_retention(db)

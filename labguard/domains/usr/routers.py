# labguard/domains/usr/routers.py

"""
'usr' 도메인 (실험실 및 사용자 관리)의 API 엔드포인트를 정의하는 모듈입니다.
"""

from typing import List
from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel.ext.asyncio.session import AsyncSession

from labguard.core.database import get_session
from . import crud as usr_crud
from . import schemas as usr_schemas

router = APIRouter(
    tags=["User & Laboratory Management (사용자 및 실험실 관리)"],
    responses={404: {"description": "Not found"}},
)


# =============================================================================
# 1. 실험실 (Laboratory) 관리 엔드포인트
# =============================================================================
@router.post("/laboratories", response_model=usr_schemas.LaboratoryRead, status_code=status.HTTP_201_CREATED, summary="새 실험실 생성")
async def create_laboratory(
    laboratory_in: usr_schemas.LaboratoryCreate,
    db: AsyncSession = Depends(get_session),
):
    return await usr_crud.laboratory.create(db=db, obj_in=laboratory_in)


@router.get("/laboratories", response_model=List[usr_schemas.LaboratoryRead], summary="실험실 목록 조회")
async def read_laboratories(skip: int = 0, limit: int = 100, db: AsyncSession = Depends(get_session)):
    return await usr_crud.laboratory.get_multi(db, skip=skip, limit=limit)


@router.get("/laboratories/{laboratory_id}", response_model=usr_schemas.LaboratoryRead, summary="특정 실험실 조회")
async def read_laboratory(laboratory_id: int, db: AsyncSession = Depends(get_session)):
    db_laboratory = await usr_crud.laboratory.get(db, laboratory_id)
    if db_laboratory is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Laboratory not found")
    return db_laboratory


@router.put("/laboratories/{laboratory_id}", response_model=usr_schemas.LaboratoryRead, summary="실험실 정보 수정")
async def update_laboratory(
    laboratory_id: int,
    laboratory_in: usr_schemas.LaboratoryUpdate,
    db: AsyncSession = Depends(get_session),
):
    db_laboratory = await usr_crud.laboratory.get(db, laboratory_id)
    if db_laboratory is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Laboratory not found")
    return await usr_crud.laboratory.update(db, db_obj=db_laboratory, obj_in=laboratory_in)


@router.delete("/laboratories/{laboratory_id}", response_model=usr_schemas.LaboratoryRead, summary="실험실 삭제 (soft delete)")
async def delete_laboratory(laboratory_id: int, db: AsyncSession = Depends(get_session)):
    db_laboratory = await usr_crud.laboratory.get(db, laboratory_id)
    if db_laboratory is None or db_laboratory.deleted_at is not None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Laboratory not found")
    return await usr_crud.laboratory.soft_delete(db, db_obj=db_laboratory)


# =============================================================================
# 2. 사용자 (User) 관리 엔드포인트
# =============================================================================
@router.post("/users", response_model=usr_schemas.UserRead, status_code=status.HTTP_201_CREATED, summary="새 사용자 생성")
async def create_user(user_in: usr_schemas.UserCreate, db: AsyncSession = Depends(get_session)):
    return await usr_crud.user.create(db=db, obj_in=user_in)


@router.get("/users", response_model=List[usr_schemas.UserRead], summary="사용자 목록 조회")
async def read_users(skip: int = 0, limit: int = 100, db: AsyncSession = Depends(get_session)):
    return await usr_crud.user.get_multi(db, skip=skip, limit=limit)


@router.get("/users/{user_id}", response_model=usr_schemas.UserRead, summary="특정 사용자 조회")
async def read_user(user_id: int, db: AsyncSession = Depends(get_session)):
    db_user = await usr_crud.user.get(db, user_id)
    if db_user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return db_user


@router.put("/users/{user_id}", response_model=usr_schemas.UserRead, summary="사용자 정보 수정")
async def update_user(user_id: int, user_in: usr_schemas.UserUpdate, db: AsyncSession = Depends(get_session)):
    db_user = await usr_crud.user.get(db, user_id)
    if db_user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return await usr_crud.user.update(db, db_obj=db_user, obj_in=user_in)

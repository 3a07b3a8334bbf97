# labguard/domains/usr/crud.py

"""
'usr' 도메인의 CRUD 작업을 담당하는 모듈입니다.
비동기 문법을 올바르게 사용하여 데이터베이스 쿼리를 실행합니다.
"""

from typing import Optional, List
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession
from fastapi import HTTPException, status

# 공통 CRUDBase 및 usr 도메인의 구성요소 임포트
from labguard.core.crud_base import CRUDBase
from labguard.core.types import utcnow
from . import models as usr_models
from . import schemas as usr_schemas


# =============================================================================
# 1. usr.laboratories 테이블 CRUD
# =============================================================================
class CRUDLaboratory(CRUDBase[usr_models.Laboratory, usr_schemas.LaboratoryCreate, usr_schemas.LaboratoryUpdate]):
    def __init__(self):
        super().__init__(model=usr_models.Laboratory)

    async def get_by_code(self, db: AsyncSession, *, code: str) -> Optional[usr_models.Laboratory]:
        return await self.get_by_attribute(db, attribute="code", value=code)

    async def get_active(self, db: AsyncSession) -> List[usr_models.Laboratory]:
        """삭제되지 않은 모든 실험실을 조회합니다. (스케줄링 태스크용)"""
        statement = select(self.model).where(self.model.deleted_at.is_(None)).order_by(self.model.id)
        result = await db.execute(statement)
        return result.scalars().all()

    async def create(self, db: AsyncSession, *, obj_in: usr_schemas.LaboratoryCreate) -> usr_models.Laboratory:
        if await self.get_by_code(db, code=obj_in.code):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Laboratory with this code already exists")
        return await super().create(db, obj_in=obj_in)

    async def soft_delete(self, db: AsyncSession, *, db_obj: usr_models.Laboratory) -> usr_models.Laboratory:
        db_obj.deleted_at = utcnow()
        db.add(db_obj)
        await db.commit()
        await db.refresh(db_obj)
        return db_obj


laboratory = CRUDLaboratory()


# =============================================================================
# 2. usr.users 테이블 CRUD
# =============================================================================
class CRUDUser(CRUDBase[usr_models.User, usr_schemas.UserCreate, usr_schemas.UserUpdate]):
    def __init__(self):
        super().__init__(model=usr_models.User)

    async def get_by_username(self, db: AsyncSession, *, username: str) -> Optional[usr_models.User]:
        """사용자명으로 사용자를 조회합니다."""
        return await self.get_by_attribute(db, attribute="username", value=username)

    async def get_by_email(self, db: AsyncSession, *, email: str) -> Optional[usr_models.User]:
        """이메일로 사용자를 조회합니다."""
        return await self.get_by_attribute(db, attribute="email", value=email)

    async def create(self, db: AsyncSession, *, obj_in: usr_schemas.UserCreate) -> usr_models.User:
        """중복을 검사하고 새로운 사용자를 생성합니다."""
        if await self.get_by_username(db, username=obj_in.username):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Username already registered")
        if obj_in.email and await self.get_by_email(db, email=obj_in.email):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already registered")
        if obj_in.laboratory_id is not None and not await laboratory.get(db, obj_in.laboratory_id):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Laboratory not found")

        db_user = usr_models.User(**obj_in.model_dump(), password_changed_at=utcnow())
        db.add(db_user)
        await db.commit()
        await db.refresh(db_user)
        return db_user


user = CRUDUser()

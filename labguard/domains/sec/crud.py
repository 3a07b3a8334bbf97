# labguard/domains/sec/crud.py

"""
'sec' 도메인 (보안/감사)과 관련된 CRUD 로직을 담당하는 모듈입니다.

감사 로그는 변경/삭제 API를 제공하지 않습니다. (보존 정책과 익명화는 prv 서비스가 처리)
"""

from typing import List, Optional
from datetime import datetime

from sqlalchemy import func
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from labguard.core.crud_base import CRUDBase
from . import models as sec_models


# =============================================================================
# 1. 감사 로그 (AuditLog) CRUD
# =============================================================================
class CRUDAuditLog(CRUDBase[sec_models.AuditLog, sec_models.AuditLog, sec_models.AuditLog]):
    def __init__(self):
        super().__init__(model=sec_models.AuditLog)

    async def count_failed_logins(
        self, db: AsyncSession, *, since: datetime, user_id: Optional[int] = None, ip_address: Optional[str] = None
    ) -> int:
        """since 이후 동일 사용자 또는 동일 IP의 실패한 LOGIN 이벤트 수."""
        conditions = [
            self.model.action == "LOGIN",
            self.model.success.is_(False),
            self.model.created_at >= since,
        ]
        if user_id is not None:
            conditions.append(self.model.user_id == user_id)
        elif ip_address is not None:
            conditions.append(self.model.ip_address == ip_address)
        else:
            return 0
        return await self.count(db, *conditions)

    async def get_in_period(self, db: AsyncSession, *, start: datetime, end: datetime) -> List[sec_models.AuditLog]:
        statement = (
            select(self.model)
            .where(self.model.created_at >= start, self.model.created_at <= end)
            .order_by(self.model.id)
        )
        result = await db.execute(statement)
        return result.scalars().all()

    async def get_batch_after(self, db: AsyncSession, *, last_id: int, limit: int = 500) -> List[sec_models.AuditLog]:
        """id 순서로 페이지 단위 조회 (전체 무결성 점검용)."""
        statement = select(self.model).where(self.model.id > last_id).order_by(self.model.id).limit(limit)
        result = await db.execute(statement)
        return result.scalars().all()


audit_log = CRUDAuditLog()


# =============================================================================
# 2. HIPAA 감사 로그 / 데이터 접근 로그 CRUD
# =============================================================================
class CRUDHIPAAAuditLog(CRUDBase[sec_models.HIPAAAuditLog, sec_models.HIPAAAuditLog, sec_models.HIPAAAuditLog]):
    def __init__(self):
        super().__init__(model=sec_models.HIPAAAuditLog)


hipaa_audit_log = CRUDHIPAAAuditLog()


class CRUDDataAccessLog(CRUDBase[sec_models.DataAccessLog, sec_models.DataAccessLog, sec_models.DataAccessLog]):
    def __init__(self):
        super().__init__(model=sec_models.DataAccessLog)

    async def get_recent(
        self, db: AsyncSession, *, user_id: int, data_type: sec_models.DataType, since: datetime
    ) -> List[sec_models.DataAccessLog]:
        statement = select(self.model).where(
            self.model.user_id == user_id,
            self.model.data_type == data_type,
            self.model.accessed_at >= since,
        )
        result = await db.execute(statement)
        return result.scalars().all()


data_access_log = CRUDDataAccessLog()


# =============================================================================
# 3. 암호화 키 (EncryptionKey) CRUD
# =============================================================================
class CRUDEncryptionKey(CRUDBase[sec_models.EncryptionKey, sec_models.EncryptionKey, sec_models.EncryptionKey]):
    def __init__(self):
        super().__init__(model=sec_models.EncryptionKey)

    async def get_latest_version(self, db: AsyncSession) -> int:
        result = await db.execute(select(func.max(self.model.key_version)))
        return result.scalar_one_or_none() or 0

    async def get_active_for_purpose(self, db: AsyncSession, *, purpose: str) -> Optional[sec_models.EncryptionKey]:
        statement = (
            select(self.model)
            .where(self.model.is_active.is_(True), self.model.purpose == purpose)
            .order_by(self.model.key_version.desc())
        )
        result = await db.execute(statement)
        return result.scalars().first()

    async def get_active(self, db: AsyncSession) -> List[sec_models.EncryptionKey]:
        statement = select(self.model).where(self.model.is_active.is_(True)).order_by(self.model.key_version)
        result = await db.execute(statement)
        return result.scalars().all()

    async def get_expiring(self, db: AsyncSession, *, before: datetime) -> List[sec_models.EncryptionKey]:
        statement = (
            select(self.model)
            .where(self.model.is_active.is_(True), self.model.expires_at < before)
            .order_by(self.model.key_version)
        )
        result = await db.execute(statement)
        return result.scalars().all()


encryption_key = CRUDEncryptionKey()


# =============================================================================
# 4. 암호화 문서 (EncryptedDocument) CRUD
# =============================================================================
class CRUDEncryptedDocument(
    CRUDBase[sec_models.EncryptedDocument, sec_models.EncryptedDocument, sec_models.EncryptedDocument]
):
    def __init__(self):
        super().__init__(model=sec_models.EncryptedDocument)


encrypted_document = CRUDEncryptedDocument()

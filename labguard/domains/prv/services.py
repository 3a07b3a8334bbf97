# labguard/domains/prv/services.py

"""
'prv' 도메인의 개인정보 보호(GDPR) 업무 로직을 담당하는 모듈입니다.

- 열람권: 사용자 개인정보, 활동 요약, 동의 내역, 활동 로그를 내보냅니다.
- 삭제권: 알림은 삭제하고, 규제상 보존해야 하는 감사 로그/교정 기록은 익명화합니다.
- 처리 동의 관리와 데이터 보존 기간 정책 적용을 포함합니다.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from fastapi import HTTPException, status
from sqlalchemy import delete, func, update
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from labguard.core.config import settings
from labguard.core.types import utcnow
from labguard.domains.lims import models as lims_models
from labguard.domains.sec import crud as sec_crud
from labguard.domains.sec import models as sec_models
from labguard.domains.sec import services as sec_services
from labguard.domains.sec.schemas import AuditEvent
from labguard.domains.shared.models import Notification
from labguard.domains.usr import crud as usr_crud
from labguard.domains.usr import models as usr_models
from . import crud as prv_crud
from . import models as prv_models

logger = logging.getLogger(__name__)

EXPORT_ACTIVITY_LOG_LIMIT = 1000
RETAINED_DATA = [
    "audit_logs (anonymized, regulatory retention)",
    "calibration_records (anonymized, CLIA record retention)",
    "data_deletion_record",
]


async def _get_user_or_404(db: AsyncSession, user_id: int) -> usr_models.User:
    db_user = await usr_crud.user.get(db, user_id)
    if db_user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return db_user


# =============================================================================
# 1. 열람권 (데이터 내보내기)
# =============================================================================
async def export_user_data(db: AsyncSession, user_id: int) -> Dict[str, Any]:
    """사용자에 대해 보관 중인 모든 개인 데이터를 하나의 문서로 내보냅니다."""
    db_user = await _get_user_or_404(db, user_id)
    AuditLog, CalibrationRecord = sec_models.AuditLog, lims_models.CalibrationRecord

    total_logins = await sec_crud.audit_log.count(
        db, AuditLog.user_id == user_id, AuditLog.action == "LOGIN"
    )
    equipment_rows = await db.execute(
        select(CalibrationRecord.equipment_id).where(CalibrationRecord.user_id == user_id).distinct()
    )
    equipment_accessed = sorted(equipment_rows.scalars().all())
    calibrations_performed = (await db.execute(
        select(func.count()).select_from(CalibrationRecord).where(
            CalibrationRecord.user_id == user_id,
            CalibrationRecord.status == lims_models.CalibrationStatus.COMPLETED,
        )
    )).scalar_one()

    logs = (await db.execute(
        select(AuditLog)
        .where(AuditLog.user_id == user_id)
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .limit(EXPORT_ACTIVITY_LOG_LIMIT)
    )).scalars().all()
    activity_logs = [
        {
            "action": log.action,
            "resource": log.resource,
            "resource_id": log.entity_id,
            "success": log.success,
            "ip_address": log.ip_address,
            "timestamp": log.created_at,
        }
        for log in logs
    ]
    consents = await prv_crud.consent.get_by_user(db, user_id=user_id)

    export = {
        "personal_info": {
            "id": db_user.id,
            "username": db_user.username,
            "email": db_user.email,
            "name": db_user.name,
            "role": db_user.role.name,
            "laboratory_id": db_user.laboratory_id,
            "is_active": db_user.is_active,
            "created_at": db_user.created_at,
            "last_login_at": db_user.last_login_at,
        },
        "activity_summary": {
            "total_logins": total_logins,
            "equipment_accessed": equipment_accessed,
            "calibrations_performed": calibrations_performed,
        },
        "consents": consents,
        "activity_logs": activity_logs,
        "export_date": utcnow(),
    }

    await sec_services.log_audit_event(db, AuditEvent(
        user_id=user_id,
        laboratory_id=db_user.laboratory_id,
        action="DATA_EXPORT",
        resource="User",
        resource_id=str(user_id),
        metadata={"record_count": len(activity_logs), "export_type": "gdpr_access_request"},
    ), commit=False)
    await db.commit()
    logger.info("Exported personal data for user %s", user_id)
    return export


# =============================================================================
# 2. 삭제권 (삭제 및 익명화)
# =============================================================================
async def delete_user_data(db: AsyncSession, user_id: int, reason: str = "user_request") -> Dict[str, Any]:
    """
    사용자 데이터를 삭제/익명화합니다.

    - 사용자에게 전달된 알림은 삭제합니다.
    - 감사 로그, HIPAA/데이터 접근 로그, 교정 기록은 보존하되 사용자 참조를 제거합니다.
    - 동의는 철회 상태로 바꾸고, 사용자 행은 익명화된 형태로 남깁니다.
    """
    db_user = await _get_user_or_404(db, user_id)
    if db_user.deleted_at is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User data has already been deleted")

    now = utcnow()
    deleted = await db.execute(delete(Notification).where(Notification.user_id == user_id))
    deleted_records = deleted.rowcount or 0

    anonymized_records = 0
    AuditLog = sec_models.AuditLog
    result = await db.execute(
        update(AuditLog)
        .where(AuditLog.user_id == user_id)
        .values(user_id=None, ip_address=None, user_agent=None, anonymized_at=now)
    )
    anonymized_records += result.rowcount or 0
    for model in (sec_models.HIPAAAuditLog, sec_models.DataAccessLog, lims_models.CalibrationRecord):
        result = await db.execute(update(model).where(model.user_id == user_id).values(user_id=None))
        anonymized_records += result.rowcount or 0

    Consent = prv_models.DataProcessingConsent
    await db.execute(
        update(Consent)
        .where(Consent.user_id == user_id, Consent.status == prv_models.ConsentStatus.GRANTED)
        .values(status=prv_models.ConsentStatus.WITHDRAWN, withdrawn_at=now, last_updated=now)
    )

    deletion = prv_models.DataDeletionRecord(
        original_user_id=user_id,
        deletion_reason=reason,
        deleted_records=deleted_records,
        anonymized_records=anonymized_records,
        retained_data=RETAINED_DATA,
        deleted_at=now,
    )
    db.add(deletion)

    laboratory_id = db_user.laboratory_id
    db_user.username = f"deleted-{user_id}"
    db_user.email = f"deleted-{user_id}@anonymized.local"
    db_user.name = "Deleted User"
    db_user.is_active = False
    db_user.deleted_at = now
    db.add(db_user)
    await db.flush()

    # 삭제된 사용자를 다시 참조하지 않도록 user_id 없이 기록합니다.
    await sec_services.log_audit_event(db, AuditEvent(
        laboratory_id=laboratory_id,
        action="DATA_DELETION",
        resource="User",
        resource_id=str(user_id),
        metadata={
            "reason": reason,
            "deleted_records": deleted_records,
            "anonymized_records": anonymized_records,
        },
    ), commit=False)
    await db.commit()

    logger.info(
        "Deleted personal data for user %s (deleted=%d, anonymized=%d)", user_id, deleted_records, anonymized_records
    )
    return {
        "user_id": user_id,
        "deletion_record_id": deletion.id,
        "deleted_records": deleted_records,
        "anonymized_records": anonymized_records,
        "retained_data": RETAINED_DATA,
        "deleted_at": now,
    }


# =============================================================================
# 3. 처리 동의 관리
# =============================================================================
async def manage_consent(
    db: AsyncSession,
    user_id: int,
    purpose: str,
    granted: bool,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> prv_models.DataProcessingConsent:
    """목적별 동의를 생성하거나 갱신하고 CONSENT_GRANTED / CONSENT_WITHDRAWN 감사 로그를 남깁니다."""
    db_user = await _get_user_or_404(db, user_id)
    if db_user.deleted_at is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User data has already been deleted")

    now = utcnow()
    consent = await prv_crud.consent.get_by_user_and_purpose(db, user_id=user_id, purpose=purpose)
    if consent is None:
        consent = prv_models.DataProcessingConsent(user_id=user_id, purpose=purpose, status=prv_models.ConsentStatus.GRANTED)

    if granted:
        consent.status = prv_models.ConsentStatus.GRANTED
        consent.granted_at = now
        consent.withdrawn_at = None
    else:
        consent.status = prv_models.ConsentStatus.WITHDRAWN
        consent.withdrawn_at = now
    consent.last_updated = now
    consent.ip_address = ip_address
    consent.user_agent = user_agent
    db.add(consent)
    await db.flush()

    await sec_services.log_audit_event(db, AuditEvent(
        user_id=user_id,
        laboratory_id=db_user.laboratory_id,
        action="CONSENT_GRANTED" if granted else "CONSENT_WITHDRAWN",
        resource="DataProcessingConsent",
        resource_id=str(consent.id),
        ip_address=ip_address,
        user_agent=user_agent,
        metadata={"purpose": purpose},
    ), commit=False)
    await db.commit()
    await db.refresh(consent)
    return consent


async def has_consent(db: AsyncSession, user_id: int, purpose: str) -> bool:
    consent = await prv_crud.consent.get_by_user_and_purpose(db, user_id=user_id, purpose=purpose)
    return consent is not None and consent.status == prv_models.ConsentStatus.GRANTED


# =============================================================================
# 4. 데이터 보존 기간 정책
# =============================================================================
async def enforce_data_retention(db: AsyncSession, *, now: Optional[datetime] = None) -> Dict[str, int]:
    """
    보존 기간이 지난 데이터를 삭제하고 정책별 삭제 건수를 반환합니다.

    - login_history: LOGIN 감사 로그 (LOGIN_HISTORY_RETENTION_DAYS)
    - audit_logs: 그 외 감사 로그 (AUDIT_LOG_RETENTION_DAYS)
    - calibration_records (CALIBRATION_RETENTION_DAYS)
    - notifications (NOTIFICATION_RETENTION_DAYS)
    """
    now = now or utcnow()
    AuditLog, CalibrationRecord = sec_models.AuditLog, lims_models.CalibrationRecord

    def cutoff(days: int) -> datetime:
        return now - timedelta(days=days)

    login_history = await db.execute(
        delete(AuditLog).where(
            AuditLog.action == "LOGIN",
            AuditLog.created_at < cutoff(settings.LOGIN_HISTORY_RETENTION_DAYS),
        )
    )
    audit_logs = await db.execute(
        delete(AuditLog).where(AuditLog.created_at < cutoff(settings.AUDIT_LOG_RETENTION_DAYS))
    )
    calibration_records = await db.execute(
        delete(CalibrationRecord).where(CalibrationRecord.created_at < cutoff(settings.CALIBRATION_RETENTION_DAYS))
    )
    notifications = await db.execute(
        delete(Notification).where(Notification.created_at < cutoff(settings.NOTIFICATION_RETENTION_DAYS))
    )
    counts = {
        "audit_logs": audit_logs.rowcount or 0,
        "calibration_records": calibration_records.rowcount or 0,
        "login_history": login_history.rowcount or 0,
        "notifications": notifications.rowcount or 0,
    }

    await sec_services.log_audit_event(db, AuditEvent(
        action="DATA_RETENTION_ENFORCED",
        resource="System",
        metadata=counts,
    ), commit=False)
    await db.commit()
    logger.info("Data retention enforced: %s", counts)
    return counts

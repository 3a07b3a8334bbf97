# labguard/domains/sec/services.py

"""
'sec' 도메인의 비즈니스 로직 (감사, 컴플라이언스, 키 관리, 문서 암호화)을 담당하는 모듈입니다.

- 감사 로그: 정규화된 JSON의 SHA-256 해시를 함께 저장하여 변조를 감지합니다.
- 의심 활동 탐지: 로그인 실패 반복, 대량 내보내기, 심야 접근, 대량 PHI/데이터 접근
- 키 관리: 데이터 암호화 키(DEK)를 마스터 키로 암호화하여 보관하고 주기적으로 교체합니다.
- 문서 암호화: 업로드 파일을 'documents' 용도의 현재 키로 암호화하여 UPLOAD_DIR에 저장합니다.

내부 호출용 함수는 `commit=False`로 호출자의 트랜잭션에 참여합니다.
"""

import json
import logging
import uuid
from collections import Counter
from datetime import datetime, timedelta
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import aiofiles
from fastapi import HTTPException, UploadFile, status
from fastapi.encoders import jsonable_encoder
from sqlalchemy import func
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from labguard.core import encryption
from labguard.core.config import settings
from labguard.core.encryption import DecryptionError
from labguard.core.types import as_utc, utcnow
from labguard.domains.shared import crud as shared_crud
from labguard.domains.shared.models import Notification, NotificationType
from labguard.domains.usr import crud as usr_crud
from labguard.domains.usr import models as usr_models
from . import crud as sec_crud
from . import models as sec_models
from . import schemas as sec_schemas

logger = logging.getLogger(__name__)

FAILED_LOGIN_THRESHOLD = 5
FAILED_LOGIN_WINDOW = timedelta(minutes=15)
BULK_EXPORT_THRESHOLD = 1000
UNUSUAL_HOURS = range(0, 5)  # 00:00 ~ 04:59 UTC
BULK_PHI_THRESHOLD = 50
UNUSUAL_DATA_ACCESS_THRESHOLD = 500
UNUSUAL_DATA_ACCESS_WINDOW = timedelta(hours=1)
ADMIN_RATIO_LIMIT = 0.2
ADMIN_RATIO_MIN_USERS = 5
HIGH_FAILURE_RATE = 0.1
DOCUMENT_KEY_PURPOSE = "documents"

ALERT_MESSAGES = {
    "MULTIPLE_FAILED_LOGINS": "Repeated failed login attempts detected",
    "BULK_DATA_EXPORT": "Bulk data export exceeding the allowed record count",
    "UNUSUAL_TIME_ACCESS": "Access recorded outside normal working hours",
    "BULK_PHI_ACCESS": "Bulk access to protected health information",
    "UNUSUAL_DATA_ACCESS": "Unusually high volume of data access",
}

VIOLATION_RECOMMENDATIONS = {
    "AUDIT_LOG_TAMPERING": "Investigate audit log entries that failed integrity verification and restrict write access to the audit store",
    "MULTIPLE_FAILED_LOGINS": "Enforce account lockout after repeated failed login attempts",
    "BULK_PHI_ACCESS": "Review justification for bulk PHI access and apply minimum-necessary access controls",
    "UNANONYMIZED_PERSONAL_DATA": "Complete anonymization of audit records belonging to erased users",
    "EXPIRED_ENCRYPTION_KEYS": "Rotate expired encryption keys",
    "HIGH_FAILURE_RATE": "Review failing operations for misconfiguration or abuse",
}

FRAMEWORK_RECOMMENDATIONS = {
    sec_models.ComplianceFramework.HIPAA: "Review PHI access logs at least monthly",
    sec_models.ComplianceFramework.SOC2: "Review access rights and audit log coverage quarterly",
    sec_models.ComplianceFramework.ISO27001: "Schedule the annual information security management review",
    sec_models.ComplianceFramework.GDPR: "Keep records of processing activities and consents up to date",
}


async def ensure_references(
    db: AsyncSession, *, user_id: Optional[int] = None, laboratory_id: Optional[int] = None
) -> None:
    """참조하는 사용자/실험실이 없으면 외래키 오류 대신 404를 반환합니다."""
    if user_id is not None and await usr_crud.user.get(db, user_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    if laboratory_id is not None and await usr_crud.laboratory.get(db, laboratory_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Laboratory not found")


def _normalize(value: Any) -> Any:
    """JSON 컬럼에 저장된 뒤 읽었을 때와 같은 형태로 변환합니다. (enum, datetime, int 키 등)"""
    if value is None:
        return None
    return json.loads(json.dumps(jsonable_encoder(value)))


# =============================================================================
# 1. 감사 로그 무결성
# =============================================================================
def canonical_json(payload: Dict[str, Any]) -> str:
    """모든 단계에서 키를 정렬하고 공백 없는 구분자를 사용하는 정규 JSON 문자열."""
    return json.dumps(jsonable_encoder(payload), sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def compute_integrity_hash(payload: Dict[str, Any]) -> str:
    return encryption.hash_data(canonical_json(payload))


def integrity_payload(log: sec_models.AuditLog) -> Dict[str, Any]:
    """해시 계산에 사용되는 필드 집합."""
    return {
        "user_id": log.user_id,
        "laboratory_id": log.laboratory_id,
        "action": log.action,
        "resource": log.resource,
        "resource_id": log.entity_id,
        "old_values": log.old_values,
        "new_values": log.new_values,
        "ip_address": log.ip_address,
        "user_agent": log.user_agent,
        "success": log.success,
        "error_message": log.error_message,
        "metadata": log.meta,
        "session_id": log.session_id,
        "timestamp": as_utc(log.created_at).isoformat(),
    }


def verify_audit_log(log: sec_models.AuditLog) -> sec_schemas.AuditLogVerification:
    """
    저장된 해시와 재계산한 해시를 비교합니다.
    개인정보 삭제로 익명화된 행은 변조가 아닌 'anonymized'로 보고합니다.
    """
    computed = compute_integrity_hash(integrity_payload(log))
    is_valid = computed == log.integrity_hash
    anonymized = log.anonymized_at is not None
    if anonymized:
        verdict = "anonymized"
    else:
        verdict = "valid" if is_valid else "tampered"
    return sec_schemas.AuditLogVerification(
        id=log.id,
        status=verdict,
        is_valid=is_valid,
        anonymized=anonymized,
        stored_hash=log.integrity_hash,
        computed_hash=computed,
    )


# =============================================================================
# 2. 감사 이벤트 기록 및 의심 활동 탐지
# =============================================================================
async def log_audit_event(
    db: AsyncSession, event: sec_schemas.AuditEvent, *, commit: bool = True
) -> sec_models.AuditLog:
    """감사 이벤트를 무결성 해시와 함께 기록하고, 의심 활동 여부를 검사합니다."""
    await ensure_references(db, user_id=event.user_id, laboratory_id=event.laboratory_id)
    metadata = _normalize(event.metadata)
    old_values = _normalize(event.old_values)
    new_values = _normalize(event.new_values)

    db_log = sec_models.AuditLog(
        laboratory_id=event.laboratory_id,
        user_id=event.user_id,
        action=event.action,
        resource=event.resource,
        entity=event.resource.upper() if event.resource else "SYSTEM",
        entity_id=event.resource_id,
        ip_address=event.ip_address,
        user_agent=event.user_agent,
        session_id=event.session_id,
        success=event.success,
        error_message=event.error_message,
        old_values=old_values,
        new_values=new_values,
        meta=metadata,
        integrity_hash="",
        created_at=as_utc(event.timestamp or utcnow()),
    )
    db_log.integrity_hash = compute_integrity_hash(integrity_payload(db_log))
    db_log.details = {
        **(metadata or {}),
        "resource": event.resource,
        "session_id": event.session_id,
        "old_values": old_values,
        "new_values": new_values,
        "success": event.success,
        "error_message": event.error_message,
        "integrity_hash": db_log.integrity_hash,
    }
    db.add(db_log)
    await db.flush()

    await check_for_suspicious_activity(db, db_log)

    if commit:
        await db.commit()
        await db.refresh(db_log)
    return db_log


def _record_count(metadata: Optional[Dict[str, Any]]) -> int:
    try:
        return int((metadata or {}).get("record_count", 0))
    except (TypeError, ValueError):
        return 0


async def check_for_suspicious_activity(db: AsyncSession, log: sec_models.AuditLog) -> List[str]:
    """
    방금 기록된 감사 로그를 기준으로 의심 패턴을 검사하고, 발생한 경고 유형 목록을 반환합니다.
    """
    alerts = []
    timestamp = as_utc(log.created_at)

    if log.action.upper() == "LOGIN" and not log.success:
        since = timestamp - FAILED_LOGIN_WINDOW
        failures = 0
        if log.user_id is not None:
            failures = await sec_crud.audit_log.count_failed_logins(db, since=since, user_id=log.user_id)
        if log.ip_address:
            failures = max(failures, await sec_crud.audit_log.count_failed_logins(db, since=since, ip_address=log.ip_address))
        if failures >= FAILED_LOGIN_THRESHOLD:
            await trigger_security_alert(
                db, "MULTIPLE_FAILED_LOGINS",
                {"user_id": log.user_id, "ip_address": log.ip_address, "failed_attempts": failures},
                laboratory_id=log.laboratory_id,
            )
            alerts.append("MULTIPLE_FAILED_LOGINS")

    record_count = _record_count(log.meta)
    if "EXPORT" in log.action.upper() and record_count > BULK_EXPORT_THRESHOLD:
        await trigger_security_alert(
            db, "BULK_DATA_EXPORT",
            {"user_id": log.user_id, "resource": log.resource, "record_count": record_count},
            laboratory_id=log.laboratory_id,
        )
        alerts.append("BULK_DATA_EXPORT")

    if log.success and log.user_id is not None and timestamp.hour in UNUSUAL_HOURS:
        await trigger_security_alert(
            db, "UNUSUAL_TIME_ACCESS",
            {"user_id": log.user_id, "action": log.action, "timestamp": timestamp},
            laboratory_id=log.laboratory_id,
        )
        alerts.append("UNUSUAL_TIME_ACCESS")

    return alerts


async def trigger_security_alert(
    db: AsyncSession, alert_type: str, metadata: Dict[str, Any], *, laboratory_id: Optional[int] = None
) -> Notification:
    """보안 경고를 WARNING으로 로깅하고 SECURITY_ALERT 알림을 생성합니다."""
    logger.warning("SECURITY ALERT: %s %s", alert_type, metadata)
    return await shared_crud.notification.add(
        db,
        type=NotificationType.SECURITY_ALERT,
        title=f"Security Alert: {alert_type}",
        message=ALERT_MESSAGES.get(alert_type, alert_type),
        laboratory_id=laboratory_id,
        meta=_normalize({"alert_type": alert_type, **metadata}),
    )


async def _laboratory_of(db: AsyncSession, user_id: Optional[int]) -> Optional[int]:
    if user_id is None:
        return None
    db_user = await db.get(usr_models.User, user_id)
    return db_user.laboratory_id if db_user else None


async def log_hipaa_event(
    db: AsyncSession, event: sec_schemas.HIPAAEvent, *, commit: bool = True
) -> sec_models.HIPAAAuditLog:
    """PHI 접근을 기록합니다. 50건을 초과하는 PHI 항목 접근은 BULK_PHI_ACCESS 경고를 발생시킵니다."""
    await ensure_references(db, user_id=event.user_id)
    db_obj = sec_models.HIPAAAuditLog(**event.model_dump(), timestamp=utcnow())
    db.add(db_obj)
    await db.flush()

    if len(event.phi_accessed) > BULK_PHI_THRESHOLD:
        await trigger_security_alert(
            db, "BULK_PHI_ACCESS",
            {"user_id": event.user_id, "patient_id": event.patient_id, "record_count": len(event.phi_accessed)},
            laboratory_id=await _laboratory_of(db, event.user_id),
        )

    if commit:
        await db.commit()
        await db.refresh(db_obj)
    return db_obj


async def log_data_access(
    db: AsyncSession, access: sec_schemas.DataAccessEvent, *, commit: bool = True
) -> sec_models.DataAccessLog:
    """
    민감 데이터 접근을 기록합니다.
    최근 1시간 동안 동일 사용자가 같은 유형의 레코드를 500건 넘게 조회하면 UNUSUAL_DATA_ACCESS 경고를 발생시킵니다.
    """
    await ensure_references(db, user_id=access.user_id)
    now = utcnow()
    db_obj = sec_models.DataAccessLog(**access.model_dump(), accessed_at=now)
    db.add(db_obj)
    await db.flush()

    recent = await sec_crud.data_access_log.get_recent(
        db, user_id=access.user_id, data_type=access.data_type, since=now - UNUSUAL_DATA_ACCESS_WINDOW
    )
    total_records = sum(len(row.record_ids or []) for row in recent)
    if total_records > UNUSUAL_DATA_ACCESS_THRESHOLD:
        await trigger_security_alert(
            db, "UNUSUAL_DATA_ACCESS",
            {"user_id": access.user_id, "data_type": access.data_type, "record_count": total_records, "window_minutes": 60},
            laboratory_id=await _laboratory_of(db, access.user_id),
        )

    if commit:
        await db.commit()
        await db.refresh(db_obj)
    return db_obj


# =============================================================================
# 3. 컴플라이언스 보고서
# =============================================================================
async def _expired_active_keys(db: AsyncSession, now: datetime) -> List[sec_models.EncryptionKey]:
    return await sec_crud.encryption_key.get_expiring(db, before=now)


async def generate_compliance_report(
    db: AsyncSession, request: sec_schemas.ComplianceReportRequest
) -> Dict[str, Any]:
    """
    기간 내 감사 로그를 분석하여 프레임워크(HIPAA, SOC2, ISO27001, GDPR)별 보고서를 생성합니다.
    compliance_score = max(0, 100 - 10 * 위반 건수)
    """
    now = utcnow()
    start, end = as_utc(request.start_date), as_utc(request.end_date)
    framework = request.framework
    logs = await sec_crud.audit_log.get_in_period(db, start=start, end=end)

    verifications = [verify_audit_log(log) for log in logs]
    tampered_ids = [v.id for v in verifications if v.status == "tampered"]
    anonymized_count = sum(1 for v in verifications if v.anonymized)
    failed_events = [log for log in logs if not log.success]
    actions = Counter(log.action for log in logs)

    summary: Dict[str, Any] = {
        "total_logs": len(logs),
        "failed_events": len(failed_events),
        "unique_users": len({log.user_id for log in logs if log.user_id is not None}),
        "actions": dict(actions),
        "integrity_failures": len(tampered_ids),
        "anonymized_entries": anonymized_count,
    }
    violations: List[Dict[str, Any]] = []

    if tampered_ids:
        violations.append({
            "type": "AUDIT_LOG_TAMPERING",
            "severity": "CRITICAL",
            "description": "Audit log entries failed integrity verification",
            "log_ids": tampered_ids,
        })

    failed_logins = Counter(
        log.user_id if log.user_id is not None else log.ip_address
        for log in failed_events
        if log.action.upper() == "LOGIN"
    )
    for subject, count in sorted(failed_logins.items(), key=lambda item: str(item[0])):
        if subject is not None and count >= FAILED_LOGIN_THRESHOLD:
            violations.append({
                "type": "MULTIPLE_FAILED_LOGINS",
                "severity": "HIGH",
                "description": f"{count} failed login attempts for {subject}",
                "subject": subject,
                "count": count,
            })

    if framework == sec_models.ComplianceFramework.HIPAA:
        statement = select(sec_models.HIPAAAuditLog).where(
            sec_models.HIPAAAuditLog.timestamp >= start, sec_models.HIPAAAuditLog.timestamp <= end
        )
        hipaa_logs = (await db.execute(statement)).scalars().all()
        summary["phi_access_events"] = len(hipaa_logs)
        bulk = [h for h in hipaa_logs if len(h.phi_accessed or []) > BULK_PHI_THRESHOLD]
        if bulk:
            violation = {
                "type": "BULK_PHI_ACCESS",
                "severity": "HIGH",
                "description": f"{len(bulk)} bulk PHI access events",
                "count": len(bulk),
            }
            if request.include_patient_data:
                violation["patient_ids"] = sorted({h.patient_id for h in bulk if h.patient_id})
            violations.append(violation)

    elif framework == sec_models.ComplianceFramework.GDPR:
        summary["data_subject_requests"] = actions.get("DATA_EXPORT", 0) + actions.get("DATA_DELETION", 0)
        statement = (
            select(func.count())
            .select_from(sec_models.AuditLog)
            .join(usr_models.User, sec_models.AuditLog.user_id == usr_models.User.id)
            .where(usr_models.User.deleted_at.is_not(None), sec_models.AuditLog.anonymized_at.is_(None))
        )
        remaining = (await db.execute(statement)).scalar_one()
        if remaining:
            violations.append({
                "type": "UNANONYMIZED_PERSONAL_DATA",
                "severity": "HIGH",
                "description": f"{remaining} audit entries still reference erased users",
                "count": remaining,
            })

    else:  # SOC2, ISO27001
        expired = await _expired_active_keys(db, now)
        if expired:
            violations.append({
                "type": "EXPIRED_ENCRYPTION_KEYS",
                "severity": "MEDIUM",
                "description": f"{len(expired)} active encryption keys are past expiry",
                "key_ids": [key.id for key in expired],
            })
        if logs and len(failed_events) / len(logs) > HIGH_FAILURE_RATE:
            violations.append({
                "type": "HIGH_FAILURE_RATE",
                "severity": "MEDIUM",
                "description": f"{len(failed_events)} of {len(logs)} audited operations failed",
                "count": len(failed_events),
            })

    summary["violation_count"] = len(violations)
    summary["compliance_score"] = max(0, 100 - 10 * len(violations))

    recommendations = []
    for violation in violations:
        text = VIOLATION_RECOMMENDATIONS[violation["type"]]
        if text not in recommendations:
            recommendations.append(text)
    recommendations.append(FRAMEWORK_RECOMMENDATIONS[framework])

    return {
        "framework": framework,
        "period": {"start_date": start, "end_date": end},
        "summary": summary,
        "violations": violations,
        "recommendations": recommendations,
        "generated_at": now,
    }


# =============================================================================
# 4. 자동 컴플라이언스 점검
# =============================================================================
async def _check_password_policy(db: AsyncSession, now: datetime) -> Dict[str, Any]:
    cutoff = now - timedelta(days=settings.PASSWORD_MAX_AGE_DAYS)
    User = usr_models.User
    stale = await usr_crud.user.count(
        db,
        User.is_active.is_(True),
        User.deleted_at.is_(None),
        (User.password_changed_at.is_(None)) | (User.password_changed_at < cutoff),
    )
    return {
        "check": "password_policy",
        "compliant": stale == 0,
        "details": {"users_with_expired_passwords": stale, "max_age_days": settings.PASSWORD_MAX_AGE_DAYS},
    }


async def _check_data_retention(db: AsyncSession, now: datetime) -> Dict[str, Any]:
    cutoff = now - timedelta(days=settings.AUDIT_LOG_RETENTION_DAYS)
    overdue = await sec_crud.audit_log.count(db, sec_models.AuditLog.created_at < cutoff)
    return {
        "check": "data_retention",
        "compliant": overdue == 0,
        "details": {"audit_logs_past_retention": overdue, "retention_days": settings.AUDIT_LOG_RETENTION_DAYS},
    }


async def _check_access_control(db: AsyncSession) -> Dict[str, Any]:
    User, Laboratory = usr_models.User, usr_models.Laboratory
    active = [User.is_active.is_(True), User.deleted_at.is_(None)]
    statement = (
        select(func.count())
        .select_from(User)
        .join(Laboratory, User.laboratory_id == Laboratory.id)
        .where(Laboratory.deleted_at.is_not(None), *active)
    )
    orphaned = (await db.execute(statement)).scalar_one()
    active_users = await usr_crud.user.count(db, *active)
    admins = await usr_crud.user.count(db, User.role <= usr_models.UserRole.ADMIN, *active)
    admin_ratio = admins / active_users if active_users else 0.0
    excessive_admins = active_users >= ADMIN_RATIO_MIN_USERS and admin_ratio > ADMIN_RATIO_LIMIT
    return {
        "check": "access_control",
        "compliant": orphaned == 0 and not excessive_admins,
        "details": {
            "users_in_deleted_laboratories": orphaned,
            "active_users": active_users,
            "admin_users": admins,
            "admin_ratio": round(admin_ratio, 4),
        },
    }


async def _check_encryption(db: AsyncSession, now: datetime) -> Dict[str, Any]:
    active_keys = await sec_crud.encryption_key.get_active(db)
    expired = [key.id for key in active_keys if as_utc(key.expires_at) < now]
    return {
        "check": "encryption",
        "compliant": bool(active_keys) and not expired,
        "details": {"active_keys": len(active_keys), "expired_active_key_ids": expired},
    }


async def _check_audit_log_integrity(db: AsyncSession) -> Dict[str, Any]:
    checked, tampered, last_id = 0, [], 0
    while True:
        batch = await sec_crud.audit_log.get_batch_after(db, last_id=last_id)
        if not batch:
            break
        for log in batch:
            checked += 1
            if verify_audit_log(log).status == "tampered":
                tampered.append(log.id)
        last_id = batch[-1].id
    return {
        "check": "audit_log_integrity",
        "compliant": not tampered,
        "details": {"checked": checked, "tampered_log_ids": tampered[:100], "tampered_count": len(tampered)},
    }


async def trigger_compliance_alert(db: AsyncSession, result: Dict[str, Any]) -> Notification:
    logger.warning("COMPLIANCE ALERT: %s %s", result["check"], result["details"])
    return await shared_crud.notification.add(
        db,
        type=NotificationType.COMPLIANCE_ALERT,
        title=f"Compliance check failed: {result['check']}",
        message=f"Automated compliance check '{result['check']}' is not compliant",
        meta=_normalize(result),
    )


async def run_compliance_checks(db: AsyncSession) -> List[Dict[str, Any]]:
    """비밀번호, 보존 기간, 접근 통제, 암호화, 감사 로그 무결성을 점검하고 위반 시 경고를 생성합니다."""
    now = utcnow()
    results = [
        await _check_password_policy(db, now),
        await _check_data_retention(db, now),
        await _check_access_control(db),
        await _check_encryption(db, now),
        await _check_audit_log_integrity(db),
    ]
    for result in results:
        if not result["compliant"]:
            await trigger_compliance_alert(db, result)
    await db.commit()
    logger.info("Compliance checks finished: %d/%d compliant", sum(r["compliant"] for r in results), len(results))
    return results


# =============================================================================
# 5. 키 관리 (KeyManagement)
# =============================================================================
@lru_cache(maxsize=1)
def get_master_key() -> str:
    """
    설정의 MASTER_ENCRYPTION_KEY를 반환합니다.
    설정되지 않은 경우 프로세스 수명 동안만 유효한 임시 키를 생성합니다.
    """
    if settings.MASTER_ENCRYPTION_KEY is not None:
        return settings.MASTER_ENCRYPTION_KEY.get_secret_value()
    logger.warning(
        "MASTER_ENCRYPTION_KEY is not configured; using an ephemeral master key. "
        "Stored data-encryption keys will be unreadable after a restart."
    )
    return encryption.generate_encryption_key()


async def _create_data_key(db: AsyncSession, purpose: str) -> Tuple[sec_models.EncryptionKey, str]:
    key = encryption.generate_encryption_key()
    now = utcnow()
    record = sec_models.EncryptionKey(
        key_version=await sec_crud.encryption_key.get_latest_version(db) + 1,
        key_data=encryption.encrypt_sensitive_field(key, get_master_key()),
        algorithm=encryption.ALGORITHM,
        purpose=purpose,
        is_active=True,
        expires_at=now + timedelta(days=settings.KEY_EXPIRY_DAYS),
        created_at=now,
    )
    db.add(record)
    await db.flush()
    logger.info("Generated data-encryption key v%d for purpose '%s'", record.key_version, purpose)
    return record, key


async def create_data_encryption_key(db: AsyncSession, purpose: str = "general") -> sec_models.EncryptionKey:
    """새 키를 생성하고 메타데이터 레코드를 반환합니다. (API 응답용)"""
    record, _ = await _create_data_key(db, purpose)
    await db.commit()
    await db.refresh(record)
    return record


async def generate_data_encryption_key(db: AsyncSession, purpose: str = "general") -> str:
    """새 키를 생성하고 평문 키를 반환합니다."""
    _, key = await _create_data_key(db, purpose)
    await db.commit()
    return key


def _unwrap(record: sec_models.EncryptionKey) -> str:
    return encryption.decrypt_sensitive_field(record.key_data, get_master_key())


async def get_current_key(db: AsyncSession, purpose: str = "general") -> Tuple[sec_models.EncryptionKey, str]:
    """용도별 최신 활성 키 레코드와 평문 키. 없으면 새로 생성합니다."""
    record = await sec_crud.encryption_key.get_active_for_purpose(db, purpose=purpose)
    if record is None:
        record, key = await _create_data_key(db, purpose)
        await db.commit()
        return record, key
    return record, _unwrap(record)


async def get_current_encryption_key(db: AsyncSession, purpose: str = "general") -> str:
    _, key = await get_current_key(db, purpose)
    return key


async def get_encryption_key(db: AsyncSession, key_id: int) -> str:
    """특정 키(비활성 키 포함)의 평문을 반환합니다. 교체 이전에 암호화된 데이터 복호화에 사용됩니다."""
    record = await sec_crud.encryption_key.get(db, key_id)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Encryption key not found")
    return _unwrap(record)


async def rotate_encryption_keys(db: AsyncSession) -> List[Dict[str, Any]]:
    """
    KEY_ROTATION_WINDOW_DAYS 이내에 만료되는 활성 키를 교체합니다.
    용도별로 새 키 하나를 만들고 기존 키는 비활성화합니다. (기존 데이터는 재암호화하지 않습니다)
    """
    now = utcnow()
    expiring = await sec_crud.encryption_key.get_expiring(
        db, before=now + timedelta(days=settings.KEY_ROTATION_WINDOW_DAYS)
    )
    by_purpose: Dict[str, List[sec_models.EncryptionKey]] = {}
    for key in expiring:
        by_purpose.setdefault(key.purpose, []).append(key)

    rotated = []
    for purpose, old_keys in by_purpose.items():
        new_record, _ = await _create_data_key(db, purpose)
        for old in old_keys:
            old.is_active = False
            old.rotated_at = now
            db.add(old)
        rotated.append({
            "purpose": purpose,
            "retired_key_ids": [old.id for old in old_keys],
            "retired_versions": [old.key_version for old in old_keys],
            "new_key_id": new_record.id,
            "new_version": new_record.key_version,
        })

    await db.commit()
    if rotated:
        logger.info("Rotated encryption keys for purposes: %s", ", ".join(r["purpose"] for r in rotated))
    return rotated


async def validate_key_integrity(db: AsyncSession, key_id: int) -> bool:
    record = await sec_crud.encryption_key.get(db, key_id)
    if record is None:
        return False
    try:
        _unwrap(record)
    except DecryptionError:
        logger.warning("Encryption key %s failed integrity validation", key_id)
        return False
    return True


async def get_active_keys(db: AsyncSession) -> List[sec_models.EncryptionKey]:
    return await sec_crud.encryption_key.get_active(db)


# =============================================================================
# 6. 문서 암호화 저장
# =============================================================================
async def encrypt_document(
    db: AsyncSession,
    *,
    upload_file: UploadFile,
    laboratory_id: Optional[int] = None,
    uploaded_by: Optional[int] = None,
) -> sec_models.EncryptedDocument:
    """업로드 파일을 현재 'documents' 키로 암호화하여 디스크에 저장하고 메타데이터를 기록합니다."""
    content = await upload_file.read()
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Uploaded file is empty.")
    await ensure_references(db, user_id=uploaded_by, laboratory_id=laboratory_id)

    key_record, key = await get_current_key(db, DOCUMENT_KEY_PURPOSE)
    ciphertext, metadata = encryption.encrypt_file(content, key)

    # 테스트에서 monkeypatch한 UPLOAD_DIR을 반영하도록 호출 시점에 경로를 계산합니다.
    upload_directory = Path(settings.UPLOAD_DIR)
    relative_path = f"encrypted/{uuid.uuid4()}.enc"
    full_path = upload_directory / relative_path
    full_path.parent.mkdir(parents=True, exist_ok=True)
    async with aiofiles.open(full_path, "wb") as f:
        await f.write(ciphertext)

    document = sec_models.EncryptedDocument(
        laboratory_id=laboratory_id,
        original_name=upload_file.filename or "document",
        path=relative_path,
        content_type=upload_file.content_type,
        size_bytes=len(content),
        encryption_metadata=metadata,
        key_id=key_record.id,
        uploaded_by=uploaded_by,
    )
    try:
        db.add(document)
        await db.flush()
        await log_audit_event(db, sec_schemas.AuditEvent(
            user_id=uploaded_by,
            laboratory_id=laboratory_id,
            action="DOCUMENT_ENCRYPTED",
            resource="EncryptedDocument",
            resource_id=str(document.id),
            metadata={"key_version": key_record.key_version, "size_bytes": len(content)},
        ), commit=False)
        await db.commit()
    except Exception:
        # 메타데이터가 저장되지 않은 암호문 파일은 남기지 않습니다.
        await db.rollback()
        full_path.unlink(missing_ok=True)
        logger.error("Failed to store encrypted document %s; removed %s", upload_file.filename, relative_path)
        raise
    await db.refresh(document)
    return document


async def decrypt_document(db: AsyncSession, document_id: int) -> Tuple[sec_models.EncryptedDocument, bytes]:
    """문서를 암호화할 때 사용한 키(교체되었더라도)로 복호화하여 원본 바이트를 반환합니다."""
    document = await sec_crud.encrypted_document.get(db, document_id)
    if document is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found.")

    full_path = Path(settings.UPLOAD_DIR) / document.path
    if not full_path.exists():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Encrypted file not found on disk.")

    async with aiofiles.open(full_path, "rb") as f:
        ciphertext = await f.read()
    key = await get_encryption_key(db, document.key_id)
    return document, encryption.decrypt_file(ciphertext, document.encryption_metadata, key)

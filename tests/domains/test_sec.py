# tests/domains/test_sec.py

"""
'sec' 도메인 (감사, 컴플라이언스, 키 관리, 문서 암호화)에 대한 통합 테스트 모듈입니다.

- 감사 로그 무결성 해시 검증 및 변조 감지.
- 의심 활동 탐지 (로그인 실패 반복, 대량 내보내기, 심야 접근, 대량 PHI/데이터 접근).
- 프레임워크별 컴플라이언스 보고서와 자동 점검.
- 데이터 암호화 키 생성/교체/무결성 검증, 문서 암호화 업로드/다운로드.
"""

import io
from datetime import datetime, timedelta, UTC
from pathlib import Path

import pytest
from fastapi import UploadFile
from httpx import AsyncClient
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from labguard.core import encryption
from labguard.core.config import settings
from labguard.domains.sec import models as sec_models
from labguard.domains.sec import schemas as sec_schemas
from labguard.domains.sec import services as sec_services
from labguard.domains.sec import tasks as sec_tasks
from labguard.domains.sec.schemas import AuditEvent
from labguard.domains.shared import models as shared_models
from labguard.domains.usr import models as usr_models


async def _alerts(db: AsyncSession, notification_type=shared_models.NotificationType.SECURITY_ALERT):
    statement = (
        select(shared_models.Notification)
        .where(shared_models.Notification.type == notification_type)
        .order_by(shared_models.Notification.id)
    )
    return (await db.execute(statement)).scalars().all()


def _period(hours: int = 1) -> dict:
    now = datetime.now(UTC)
    return {"start_date": now - timedelta(hours=hours), "end_date": now + timedelta(hours=hours)}


#  =============================================================================
#  1. 감사 로그 기록 / 무결성 검증
#  =============================================================================
@pytest.mark.asyncio
class TestAuditLog:
    """감사 로그 테스트 그룹"""

    async def test_create_and_verify_audit_event(
        self, client: AsyncClient, db_session: AsyncSession,
        test_laboratory: usr_models.Laboratory, test_technician: usr_models.User,
    ):
        """(성공) 감사 이벤트 기록 후 무결성 검증 결과 valid"""
        payload = {
            "user_id": test_technician.id,
            "laboratory_id": test_laboratory.id,
            "action": "UPDATE",
            "resource": "Equipment",
            "resource_id": "42",
            "old_values": {"status": "ACTIVE"},
            "new_values": {"status": "MAINTENANCE"},
            "ip_address": "10.0.0.5",
            "metadata": {"reason": "scheduled service"},
            "timestamp": "2026-10-20T14:30:00Z",
        }
        response = await client.post("/api/v1/sec/audit/events", json=payload)
        assert response.status_code == 201
        body = response.json()
        assert body["entity"] == "EQUIPMENT"
        assert body["entity_id"] == "42"
        assert len(body["integrity_hash"]) == 64
        assert body["details"]["reason"] == "scheduled service"
        assert body["details"]["integrity_hash"] == body["integrity_hash"]

        response = await client.get(f"/api/v1/sec/audit/logs/{body['id']}/verify")
        assert response.status_code == 200
        assert response.json()["status"] == "valid"
        assert response.json()["is_valid"] is True

    async def test_tampered_audit_log_is_detected(self, client: AsyncClient, db_session: AsyncSession):
        """(실패 감지) 저장 후 필드가 변경된 로그는 tampered"""
        db_log = await sec_services.log_audit_event(db_session, AuditEvent(action="VIEW_REPORT", resource_id="7"))
        db_log.entity_id = "8"
        db_session.add(db_log)
        await db_session.commit()

        response = await client.get(f"/api/v1/sec/audit/logs/{db_log.id}/verify")
        body = response.json()
        assert body["status"] == "tampered"
        assert body["is_valid"] is False
        assert body["stored_hash"] != body["computed_hash"]

    async def test_anonymized_log_is_not_reported_as_tampered(self, db_session: AsyncSession, test_technician: usr_models.User):
        """(성공) 익명화된 로그는 anonymized로 보고"""
        db_log = await sec_services.log_audit_event(db_session, AuditEvent(user_id=test_technician.id, action="LOGIN"))
        db_log.user_id = None
        db_log.anonymized_at = datetime.now(UTC)
        verification = sec_services.verify_audit_log(db_log)
        assert verification.status == "anonymized"
        assert verification.is_valid is False

    async def test_canonical_json_is_key_order_independent(self):
        """(성공) 키 순서와 무관하게 같은 해시"""
        first = sec_services.compute_integrity_hash({"b": 1, "a": {"y": 2, "x": [1, 2]}})
        second = sec_services.compute_integrity_hash({"a": {"x": [1, 2], "y": 2}, "b": 1})
        assert first == second
        assert sec_services.canonical_json({"b": 1, "a": None}) == '{"a":null,"b":1}'

    async def test_audit_event_verify_not_found(self, client: AsyncClient):
        """(실패) 존재하지 않는 로그 검증 404"""
        response = await client.get("/api/v1/sec/audit/logs/99999/verify")
        assert response.status_code == 404

    async def test_read_audit_logs_with_filter(self, client: AsyncClient, db_session: AsyncSession):
        """(성공) action 필터"""
        await sec_services.log_audit_event(db_session, AuditEvent(action="LOGIN", ip_address="10.0.0.1"))
        await sec_services.log_audit_event(db_session, AuditEvent(action="LOGOUT", ip_address="10.0.0.1"))
        response = await client.get("/api/v1/sec/audit/logs", params={"action": "LOGIN"})
        assert [log["action"] for log in response.json()] == ["LOGIN"]

    async def test_audit_event_with_unknown_references(self, client: AsyncClient, db_session: AsyncSession):
        """(실패) 존재하지 않는 사용자/실험실을 참조하면 500이 아닌 404, 로그는 남지 않음"""
        response = await client.post("/api/v1/sec/audit/events", json={"user_id": 99999, "action": "LOGIN"})
        assert response.status_code == 404
        assert response.json()["detail"] == "User not found"

        response = await client.post("/api/v1/sec/audit/events", json={"laboratory_id": 99999, "action": "LOGIN"})
        assert response.status_code == 404
        assert response.json()["detail"] == "Laboratory not found"

        count = len((await db_session.execute(select(sec_models.AuditLog.id))).scalars().all())
        assert count == 0

    async def test_audit_event_rejects_oversized_fields(self, client: AsyncClient):
        """(실패) 컬럼 길이를 넘는 ip_address / user_agent / session_id 는 422"""
        for field, length in (("ip_address", 65), ("user_agent", 501), ("session_id", 101)):
            response = await client.post("/api/v1/sec/audit/events", json={"action": "LOGIN", field: "x" * length})
            assert response.status_code == 422, field

        response = await client.post("/api/v1/sec/audit/events", json={"action": "LOGIN", "ip_address": "1" * 64})
        assert response.status_code == 201

    async def test_hipaa_event_with_unknown_user(self, client: AsyncClient):
        """(실패) 존재하지 않는 사용자의 PHI 접근 기록은 404, 긴 workstation 은 422"""
        payload = {"user_id": 99999, "action": "ACCESS", "justification": "Treatment"}
        response = await client.post("/api/v1/sec/audit/hipaa-events", json=payload)
        assert response.status_code == 404

        response = await client.post(
            "/api/v1/sec/audit/hipaa-events", json={**payload, "workstation": "w" * 101}
        )
        assert response.status_code == 422

    async def test_data_access_with_unknown_user(self, client: AsyncClient):
        """(실패) 존재하지 않는 사용자의 데이터 접근 기록은 404"""
        response = await client.post("/api/v1/sec/audit/data-access", json={
            "user_id": 99999, "data_type": "PATIENT_DATA", "access_reason": "Audit",
        })
        assert response.status_code == 404


#  =============================================================================
#  2. 의심 활동 탐지
#  =============================================================================
@pytest.mark.asyncio
class TestSuspiciousActivity:
    """보안 경고 테스트 그룹"""

    async def test_repeated_failed_logins_trigger_alert(
        self, db_session: AsyncSession, test_laboratory: usr_models.Laboratory, test_technician: usr_models.User,
    ):
        """(경고) 15분 내 5회 로그인 실패 시 MULTIPLE_FAILED_LOGINS"""
        for attempt in range(4):
            await sec_services.log_audit_event(db_session, AuditEvent(
                user_id=test_technician.id, laboratory_id=test_laboratory.id,
                action="LOGIN", success=False, error_message="bad password",
            ))
        assert await _alerts(db_session) == []

        await sec_services.log_audit_event(db_session, AuditEvent(
            user_id=test_technician.id, laboratory_id=test_laboratory.id, action="LOGIN", success=False,
        ))
        alerts = await _alerts(db_session)
        assert [a.title for a in alerts] == ["Security Alert: MULTIPLE_FAILED_LOGINS"]
        assert alerts[0].meta["failed_attempts"] == 5
        assert alerts[0].laboratory_id == test_laboratory.id

    async def test_failed_logins_counted_by_ip_address(self, db_session: AsyncSession):
        """(경고) 사용자 없이 같은 IP에서 반복 실패"""
        for attempt in range(5):
            await sec_services.log_audit_event(db_session, AuditEvent(
                action="LOGIN", success=False, ip_address="203.0.113.9",
            ))
        alerts = await _alerts(db_session)
        assert len(alerts) == 1
        assert alerts[0].meta["ip_address"] == "203.0.113.9"

    async def test_bulk_export_triggers_alert(self, db_session: AsyncSession, test_technician: usr_models.User):
        """(경고) 1000건 초과 내보내기 시 BULK_DATA_EXPORT, 1000건은 정상"""
        await sec_services.log_audit_event(db_session, AuditEvent(
            user_id=test_technician.id, action="DATA_EXPORT", metadata={"record_count": 1000},
        ))
        assert await _alerts(db_session) == []
        await sec_services.log_audit_event(db_session, AuditEvent(
            user_id=test_technician.id, action="DATA_EXPORT", resource="CalibrationRecord",
            metadata={"record_count": 1500},
        ))
        alerts = await _alerts(db_session)
        assert [a.meta["alert_type"] for a in alerts] == ["BULK_DATA_EXPORT"]
        assert alerts[0].meta["record_count"] == 1500

    async def test_unusual_time_access_triggers_alert(
        self, monkeypatch, db_session: AsyncSession, test_technician: usr_models.User,
    ):
        """(경고) 00~05시 UTC 성공 이벤트는 UNUSUAL_TIME_ACCESS, 실패 이벤트와 주간 이벤트는 제외"""
        monkeypatch.setattr(sec_services, "UNUSUAL_HOURS", range(0, 5))
        night = datetime(2026, 10, 20, 2, 30, tzinfo=UTC)
        day = datetime(2026, 10, 20, 14, 0, tzinfo=UTC)

        await sec_services.log_audit_event(db_session, AuditEvent(user_id=test_technician.id, action="VIEW", timestamp=day))
        await sec_services.log_audit_event(db_session, AuditEvent(
            user_id=test_technician.id, action="VIEW", success=False, timestamp=night,
        ))
        assert await _alerts(db_session) == []

        await sec_services.log_audit_event(db_session, AuditEvent(user_id=test_technician.id, action="VIEW", timestamp=night))
        alerts = await _alerts(db_session)
        assert [a.meta["alert_type"] for a in alerts] == ["UNUSUAL_TIME_ACCESS"]

    async def test_bulk_phi_access_triggers_alert(
        self, client: AsyncClient, db_session: AsyncSession,
        test_laboratory: usr_models.Laboratory, test_technician: usr_models.User,
    ):
        """(경고) 50개 초과 PHI 항목 접근 시 BULK_PHI_ACCESS"""
        base = {"user_id": test_technician.id, "patient_id": "P-001", "action": "ACCESS", "justification": "QC review"}
        response = await client.post("/api/v1/sec/audit/hipaa-events", json={**base, "phi_accessed": ["name"] * 50})
        assert response.status_code == 201
        assert await _alerts(db_session) == []

        response = await client.post("/api/v1/sec/audit/hipaa-events", json={**base, "phi_accessed": ["name"] * 51})
        assert response.status_code == 201
        alerts = await _alerts(db_session)
        assert [a.meta["alert_type"] for a in alerts] == ["BULK_PHI_ACCESS"]
        assert alerts[0].laboratory_id == test_laboratory.id

    async def test_unusual_data_access_triggers_alert(
        self, client: AsyncClient, db_session: AsyncSession, test_technician: usr_models.User,
    ):
        """(경고) 1시간 내 같은 유형 500건 초과 조회 시 UNUSUAL_DATA_ACCESS"""
        base = {"user_id": test_technician.id, "data_type": "TEST_RESULTS", "access_reason": "trend analysis"}
        response = await client.post("/api/v1/sec/audit/data-access", json={**base, "record_ids": [str(i) for i in range(300)]})
        assert response.status_code == 201
        assert await _alerts(db_session) == []

        await client.post("/api/v1/sec/audit/data-access", json={**base, "record_ids": [str(i) for i in range(201)]})
        alerts = await _alerts(db_session)
        assert [a.meta["alert_type"] for a in alerts] == ["UNUSUAL_DATA_ACCESS"]
        assert alerts[0].meta["record_count"] == 501


#  =============================================================================
#  3. 컴플라이언스 보고서 / 자동 점검
#  =============================================================================
@pytest.mark.asyncio
class TestCompliance:
    """컴플라이언스 테스트 그룹"""

    async def test_hipaa_report_collects_violations(self, db_session: AsyncSession, test_technician: usr_models.User):
        """(성공) 변조, 로그인 실패 반복, 대량 PHI 접근을 위반으로 집계"""
        tampered = await sec_services.log_audit_event(db_session, AuditEvent(action="VIEW_REPORT", resource_id="1"))
        tampered.entity_id = "2"
        db_session.add(tampered)
        await db_session.commit()
        for attempt in range(5):
            await sec_services.log_audit_event(db_session, AuditEvent(
                user_id=test_technician.id, action="LOGIN", success=False,
            ))
        await sec_services.log_hipaa_event(db_session, sec_schemas.HIPAAEvent(
            user_id=test_technician.id, patient_id="P-9", action="EXPORT",
            phi_accessed=["dob"] * 60, justification="registry submission",
        ))

        request = sec_schemas.ComplianceReportRequest(**_period(), framework="HIPAA", include_patient_data=True)
        report = await sec_services.generate_compliance_report(db_session, request)

        assert [v["type"] for v in report["violations"]] == [
            "AUDIT_LOG_TAMPERING", "MULTIPLE_FAILED_LOGINS", "BULK_PHI_ACCESS",
        ]
        assert report["violations"][0]["log_ids"] == [tampered.id]
        assert report["violations"][2]["patient_ids"] == ["P-9"]
        assert report["summary"]["total_logs"] == 6
        assert report["summary"]["failed_events"] == 5
        assert report["summary"]["phi_access_events"] == 1
        assert report["summary"]["compliance_score"] == 70
        assert report["recommendations"][-1] == "Review PHI access logs at least monthly"

    async def test_gdpr_report_flags_unanonymized_erased_users(
        self, db_session: AsyncSession, test_technician: usr_models.User,
    ):
        """(위반) 삭제된 사용자를 참조하는 감사 로그가 남아 있으면 UNANONYMIZED_PERSONAL_DATA"""
        await sec_services.log_audit_event(db_session, AuditEvent(user_id=test_technician.id, action="DATA_EXPORT"))
        await db_session.refresh(test_technician)
        test_technician.deleted_at = datetime.now(UTC)
        db_session.add(test_technician)
        await db_session.commit()

        request = sec_schemas.ComplianceReportRequest(**_period(), framework="GDPR")
        report = await sec_services.generate_compliance_report(db_session, request)
        assert report["summary"]["data_subject_requests"] == 1
        assert [v["type"] for v in report["violations"]] == ["UNANONYMIZED_PERSONAL_DATA"]
        assert report["summary"]["compliance_score"] == 90

    async def test_soc2_report_flags_expired_keys(self, db_session: AsyncSession):
        """(위반) 만료된 활성 키는 EXPIRED_ENCRYPTION_KEYS"""
        key = await sec_services.create_data_encryption_key(db_session, "general")
        key.expires_at = datetime.now(UTC) - timedelta(days=1)
        db_session.add(key)
        await db_session.commit()

        request = sec_schemas.ComplianceReportRequest(**_period(), framework="SOC2")
        report = await sec_services.generate_compliance_report(db_session, request)
        assert report["violations"][0]["type"] == "EXPIRED_ENCRYPTION_KEYS"
        assert report["violations"][0]["key_ids"] == [key.id]

    async def test_report_rejects_inverted_period(self, client: AsyncClient):
        """(실패) end_date < start_date 는 422"""
        response = await client.post("/api/v1/sec/compliance/reports", json={
            "start_date": "2026-10-20T00:00:00Z", "end_date": "2026-10-01T00:00:00Z", "framework": "ISO27001",
        })
        assert response.status_code == 422

    async def test_report_accepts_naive_and_aware_dates(self, client: AsyncClient):
        """(성공) 시간대 없는 start_date와 UTC end_date를 섞어도 UTC로 간주해 비교"""
        response = await client.post("/api/v1/sec/compliance/reports", json={
            "start_date": "2024-01-01T00:00:00", "end_date": "2024-02-01T00:00:00Z", "framework": "HIPAA",
        })
        assert response.status_code == 200
        period = response.json()["period"]
        assert datetime.fromisoformat(period["start_date"]) == datetime(2024, 1, 1, tzinfo=UTC)

        response = await client.post("/api/v1/sec/compliance/reports", json={
            "start_date": "2024-02-01T00:00:00Z", "end_date": "2024-01-01T00:00:00", "framework": "HIPAA",
        })
        assert response.status_code == 422

    async def test_report_endpoint_without_logs(self, client: AsyncClient):
        """(성공) 감사 로그가 없는 기간의 보고서 점수 100"""
        response = await client.post("/api/v1/sec/compliance/reports", json={
            "start_date": "2020-01-01T00:00:00Z", "end_date": "2020-02-01T00:00:00Z", "framework": "ISO27001",
        })
        assert response.status_code == 200
        body = response.json()
        assert body["summary"]["compliance_score"] == 100
        assert body["violations"] == []
        assert body["recommendations"] == ["Schedule the annual information security management review"]

    async def test_run_compliance_checks(
        self, client: AsyncClient, db_session: AsyncSession, test_laboratory: usr_models.Laboratory, user_factory,
    ):
        """(성공) 비밀번호 미변경 사용자, 과다한 관리자 비율, 활성 키 부재를 위반으로 보고하고 알림 생성"""
        recent = datetime.now(UTC)
        await user_factory("admin1", usr_models.UserRole.ADMIN, test_laboratory.id, password_changed_at=recent)
        await user_factory("admin2", usr_models.UserRole.ADMIN, test_laboratory.id, password_changed_at=recent)
        for name in ("tech1", "tech2", "tech3"):
            await user_factory(name, usr_models.UserRole.TECHNICIAN, test_laboratory.id, password_changed_at=recent)
        await user_factory("stale", usr_models.UserRole.TECHNICIAN, test_laboratory.id,
                           password_changed_at=recent - timedelta(days=settings.PASSWORD_MAX_AGE_DAYS + 1))

        response = await client.post("/api/v1/sec/compliance/checks")
        assert response.status_code == 200
        results = {r["check"]: r for r in response.json()}

        assert results["password_policy"]["compliant"] is False
        assert results["password_policy"]["details"]["users_with_expired_passwords"] == 1
        assert results["data_retention"]["compliant"] is True
        assert results["access_control"]["compliant"] is False
        assert results["access_control"]["details"]["admin_users"] == 2
        assert results["encryption"]["compliant"] is False
        assert results["audit_log_integrity"]["compliant"] is True

        titles = [n.title for n in await _alerts(db_session, shared_models.NotificationType.COMPLIANCE_ALERT)]
        assert titles == [
            "Compliance check failed: password_policy",
            "Compliance check failed: access_control",
            "Compliance check failed: encryption",
        ]

    async def test_compliance_checks_task(self, monkeypatch, session_context, db_session: AsyncSession):
        """(성공) 일일 점검 태스크는 위반 항목 이름을 반환"""
        monkeypatch.setattr(sec_tasks, "get_async_session_context", session_context)
        result = await sec_tasks.run_compliance_checks_task({})
        assert result == {"status": "success", "non_compliant": ["encryption"]}


#  =============================================================================
#  4. 데이터 암호화 키 관리
#  =============================================================================
@pytest.mark.asyncio
class TestKeyManagement:
    """키 관리 테스트 그룹"""

    async def test_create_key_hides_key_material(self, client: AsyncClient):
        """(성공) 키 생성 응답에는 키 자료가 없고 버전이 증가"""
        first = await client.post("/api/v1/sec/encryption/keys", json={"purpose": "patient_data"})
        second = await client.post("/api/v1/sec/encryption/keys", json={})
        assert first.status_code == 201
        assert "key_data" not in first.json()
        assert first.json()["algorithm"] == "AES-256-GCM"
        assert [first.json()["key_version"], second.json()["key_version"]] == [1, 2]
        assert second.json()["purpose"] == "general"

        response = await client.get("/api/v1/sec/encryption/keys")
        assert [k["purpose"] for k in response.json()] == ["patient_data", "general"]

    async def test_current_key_round_trip(self, db_session: AsyncSession):
        """(성공) 새로 생성한 키가 해당 용도의 현재 키이며, 저장된 키 자료는 마스터 키로 암호화됨"""
        key = await sec_services.generate_data_encryption_key(db_session, "patient_data")
        assert len(key) == 64
        assert await sec_services.get_current_encryption_key(db_session, "patient_data") == key

        record = (await sec_services.get_active_keys(db_session))[0]
        assert key not in record.key_data
        assert await sec_services.get_encryption_key(db_session, record.id) == key

    async def test_current_key_is_created_on_demand(self, db_session: AsyncSession):
        """(성공) 활성 키가 없는 용도는 요청 시 생성"""
        key = await sec_services.get_current_encryption_key(db_session, "reports")
        assert [k.purpose for k in await sec_services.get_active_keys(db_session)] == ["reports"]
        assert await sec_services.get_current_encryption_key(db_session, "reports") == key

    async def test_rotate_expiring_keys(self, client: AsyncClient, db_session: AsyncSession):
        """(성공) 30일 내 만료 키만 교체, 기존 키는 비활성화되지만 복호화에 계속 사용 가능"""
        old_key = await sec_services.generate_data_encryption_key(db_session, "general")
        old_record = (await sec_services.get_active_keys(db_session))[0]
        old_record.expires_at = datetime.now(UTC) + timedelta(days=5)
        db_session.add(old_record)
        await db_session.commit()
        await sec_services.create_data_encryption_key(db_session, "long_lived")
        token = encryption.encrypt_sensitive_field("lot 42", old_key)

        response = await client.post("/api/v1/sec/encryption/keys/rotate")
        assert response.status_code == 200
        rotated = response.json()
        assert len(rotated) == 1
        assert rotated[0]["purpose"] == "general"
        assert rotated[0]["retired_key_ids"] == [old_record.id]
        assert rotated[0]["new_version"] == 3

        await db_session.refresh(old_record)
        assert old_record.is_active is False
        assert old_record.rotated_at is not None
        assert await sec_services.get_current_encryption_key(db_session, "general") != old_key
        old_plain = await sec_services.get_encryption_key(db_session, old_record.id)
        assert encryption.decrypt_sensitive_field(token, old_plain) == "lot 42"

    async def test_key_integrity(self, client: AsyncClient, db_session: AsyncSession):
        """(성공/실패) 마스터 키로 풀 수 없는 키 자료는 무결성 실패"""
        record = await sec_services.create_data_encryption_key(db_session)
        response = await client.get(f"/api/v1/sec/encryption/keys/{record.id}/integrity")
        assert response.json() == {"key_id": record.id, "valid": True}

        record.key_data = encryption.encrypt_sensitive_field("f" * 64, "not-the-master-key")
        db_session.add(record)
        await db_session.commit()
        response = await client.get(f"/api/v1/sec/encryption/keys/{record.id}/integrity")
        assert response.json()["valid"] is False

        response = await client.get("/api/v1/sec/encryption/keys/99999/integrity")
        assert response.status_code == 404

    async def test_rotation_task(self, monkeypatch, session_context):
        """(성공) 교체 대상이 없으면 빈 목록"""
        monkeypatch.setattr(sec_tasks, "get_async_session_context", session_context)
        assert await sec_tasks.rotate_encryption_keys_task({}) == {"status": "success", "rotated": []}


#  =============================================================================
#  5. 문서 암호화 저장
#  =============================================================================
@pytest.mark.asyncio
class TestEncryptedDocuments:
    """암호화 문서 테스트 그룹"""

    async def test_upload_and_download_document(
        self, client: AsyncClient, db_session: AsyncSession,
        test_laboratory: usr_models.Laboratory, test_technician: usr_models.User,
    ):
        """(성공) 업로드 파일은 암호화되어 저장되고, 다운로드 시 원본으로 복호화"""
        content = b"Certificate of calibration - PCR-001" * 50
        response = await client.post(
            "/api/v1/sec/documents",
            files={"file": ("certificate.pdf", content, "application/pdf")},
            data={"laboratory_id": str(test_laboratory.id), "uploaded_by": str(test_technician.id)},
        )
        assert response.status_code == 201
        body = response.json()
        assert body["size_bytes"] == len(content)
        assert body["original_name"] == "certificate.pdf"

        document = await db_session.get(sec_models.EncryptedDocument, body["id"])
        stored = (Path(settings.UPLOAD_DIR) / document.path).read_bytes()
        assert document.path.startswith("encrypted/")
        assert stored != content
        assert len(stored) == len(content)

        response = await client.get(f"/api/v1/sec/documents/{body['id']}")
        assert response.status_code == 200
        assert response.content == content
        assert response.headers["content-type"] == "application/pdf"
        assert "certificate.pdf" in response.headers["content-disposition"]

        actions = (await db_session.execute(select(sec_models.AuditLog.action))).scalars().all()
        assert "DOCUMENT_ENCRYPTED" in actions

    async def test_document_survives_key_rotation(self, client: AsyncClient, db_session: AsyncSession):
        """(성공) 키 교체 후에도 기존 문서는 당시 키로 복호화"""
        response = await client.post("/api/v1/sec/documents", files={"file": ("sop.txt", b"SOP v1", "text/plain")})
        document_id = response.json()["id"]

        key = (await sec_services.get_active_keys(db_session))[0]
        key.expires_at = datetime.now(UTC) + timedelta(days=1)
        db_session.add(key)
        await db_session.commit()
        await sec_services.rotate_encryption_keys(db_session)

        response = await client.get(f"/api/v1/sec/documents/{document_id}")
        assert response.content == b"SOP v1"

    async def test_upload_empty_file_fails(self, client: AsyncClient):
        """(실패) 빈 파일 400"""
        response = await client.post("/api/v1/sec/documents", files={"file": ("empty.txt", b"", "text/plain")})
        assert response.status_code == 400

    async def test_download_unknown_document(self, client: AsyncClient):
        """(실패) 존재하지 않는 문서 404"""
        response = await client.get("/api/v1/sec/documents/99999")
        assert response.status_code == 404

    async def test_tampered_document_download_fails(self, client: AsyncClient, db_session: AsyncSession):
        """(실패) 디스크의 암호문이 변조되면 인증 태그 검증 실패로 422"""
        response = await client.post("/api/v1/sec/documents", files={"file": ("sop.txt", b"SOP v2", "text/plain")})
        document = await db_session.get(sec_models.EncryptedDocument, response.json()["id"])
        stored_path = Path(settings.UPLOAD_DIR) / document.path
        stored = bytearray(stored_path.read_bytes())
        stored[0] ^= 0xFF
        stored_path.write_bytes(bytes(stored))

        response = await client.get(f"/api/v1/sec/documents/{document.id}")
        assert response.status_code == 422
        assert "tampered" in response.json()["detail"]

    async def test_upload_with_unknown_uploader(self, client: AsyncClient, test_laboratory: usr_models.Laboratory):
        """(실패) 존재하지 않는 업로더/실험실은 404, 파일도 남지 않음"""
        encrypted_dir = Path(settings.UPLOAD_DIR) / "encrypted"
        before = set(encrypted_dir.glob("*.enc")) if encrypted_dir.exists() else set()

        response = await client.post(
            "/api/v1/sec/documents",
            files={"file": ("sop.txt", b"SOP v3", "text/plain")},
            data={"laboratory_id": str(test_laboratory.id), "uploaded_by": "99999"},
        )
        assert response.status_code == 404
        response = await client.post(
            "/api/v1/sec/documents",
            files={"file": ("sop.txt", b"SOP v3", "text/plain")},
            data={"laboratory_id": "99999"},
        )
        assert response.status_code == 404

        after = set(encrypted_dir.glob("*.enc")) if encrypted_dir.exists() else set()
        assert after == before

    async def test_failed_metadata_write_removes_ciphertext(
        self, monkeypatch, db_session: AsyncSession, test_technician: usr_models.User,
    ):
        """(실패) 문서 메타데이터/감사 로그 저장이 실패하면 암호문 파일을 지우고 예외를 전파"""
        encrypted_dir = Path(settings.UPLOAD_DIR) / "encrypted"
        before = set(encrypted_dir.glob("*.enc")) if encrypted_dir.exists() else set()

        async def failing_audit(*args, **kwargs):
            raise RuntimeError("audit store unavailable")

        monkeypatch.setattr(sec_services, "log_audit_event", failing_audit)
        upload = UploadFile(file=io.BytesIO(b"Certificate"), filename="certificate.pdf")
        with pytest.raises(RuntimeError):
            await sec_services.encrypt_document(db_session, upload_file=upload, uploaded_by=test_technician.id)

        after = set(encrypted_dir.glob("*.enc")) if encrypted_dir.exists() else set()
        assert after == before
        documents = (await db_session.execute(select(sec_models.EncryptedDocument))).scalars().all()
        assert documents == []

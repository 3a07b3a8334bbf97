# labguard/domains/sec/routers.py

"""
'sec' 도메인 (감사, 컴플라이언스, 키 관리, 문서 암호화)의 API 엔드포인트를 정의하는 모듈입니다.

암호화 키 엔드포인트는 메타데이터만 반환하며, 키 자료는 응답에 포함하지 않습니다.
"""

from typing import List, Optional
from datetime import datetime
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, HTTPException, Response, UploadFile, status
from sqlmodel.ext.asyncio.session import AsyncSession

from labguard.core.database import get_session
from . import crud as sec_crud
from . import schemas as sec_schemas
from . import services as sec_services

router = APIRouter(
    tags=["Security & Compliance (보안 및 컴플라이언스)"],
    responses={404: {"description": "Not found"}},
)


# =============================================================================
# 1. 감사 로그 엔드포인트
# =============================================================================
@router.post("/audit/events", response_model=sec_schemas.AuditLogRead, status_code=status.HTTP_201_CREATED, summary="감사 이벤트 기록")
async def create_audit_event(event: sec_schemas.AuditEvent, db: AsyncSession = Depends(get_session)):
    """
    감사 이벤트를 무결성 해시와 함께 기록합니다.
    로그인 실패 반복, 대량 내보내기, 심야 접근은 보안 경고 알림을 생성합니다.
    """
    return await sec_services.log_audit_event(db, event)


@router.get("/audit/logs", response_model=List[sec_schemas.AuditLogRead], summary="감사 로그 조회")
async def read_audit_logs(
    laboratory_id: Optional[int] = None,
    user_id: Optional[int] = None,
    action: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    skip: int = 0,
    limit: int = 100,
    db: AsyncSession = Depends(get_session),
):
    filters = {"laboratory_id": laboratory_id, "user_id": user_id, "action": action}
    return await sec_crud.audit_log.get_filtered(
        db,
        filters={key: value for key, value in filters.items() if value is not None},
        date_range_field="created_at",
        start_date=start_date,
        end_date=end_date,
        skip=skip,
        limit=limit,
    )


@router.get("/audit/logs/{log_id}/verify", response_model=sec_schemas.AuditLogVerification, summary="감사 로그 무결성 검증")
async def verify_audit_log(log_id: int, db: AsyncSession = Depends(get_session)):
    db_log = await sec_crud.audit_log.get(db, log_id)
    if db_log is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Audit log not found")
    return sec_services.verify_audit_log(db_log)


@router.post("/audit/hipaa-events", response_model=sec_schemas.HIPAAAuditLogRead, status_code=status.HTTP_201_CREATED, summary="HIPAA PHI 접근 기록")
async def create_hipaa_event(event: sec_schemas.HIPAAEvent, db: AsyncSession = Depends(get_session)):
    return await sec_services.log_hipaa_event(db, event)


@router.post("/audit/data-access", response_model=sec_schemas.DataAccessLogRead, status_code=status.HTTP_201_CREATED, summary="민감 데이터 접근 기록")
async def create_data_access(access: sec_schemas.DataAccessEvent, db: AsyncSession = Depends(get_session)):
    return await sec_services.log_data_access(db, access)


# =============================================================================
# 2. 컴플라이언스 엔드포인트
# =============================================================================
@router.post("/compliance/reports", response_model=sec_schemas.ComplianceReport, summary="컴플라이언스 보고서 생성")
async def create_compliance_report(
    request: sec_schemas.ComplianceReportRequest,
    db: AsyncSession = Depends(get_session),
):
    return await sec_services.generate_compliance_report(db, request)


@router.post("/compliance/checks", response_model=List[sec_schemas.ComplianceCheckResult], summary="자동 컴플라이언스 점검 실행")
async def run_compliance_checks(db: AsyncSession = Depends(get_session)):
    return await sec_services.run_compliance_checks(db)


# =============================================================================
# 3. 암호화 키 관리 엔드포인트
# =============================================================================
@router.post("/encryption/keys", response_model=sec_schemas.EncryptionKeyRead, status_code=status.HTTP_201_CREATED, summary="데이터 암호화 키 생성")
async def create_encryption_key(key_in: sec_schemas.EncryptionKeyCreate, db: AsyncSession = Depends(get_session)):
    return await sec_services.create_data_encryption_key(db, key_in.purpose)


@router.get("/encryption/keys", response_model=List[sec_schemas.EncryptionKeyRead], summary="활성 키 목록 조회")
async def read_active_keys(db: AsyncSession = Depends(get_session)):
    return await sec_services.get_active_keys(db)


@router.post("/encryption/keys/rotate", response_model=List[sec_schemas.KeyRotationResult], summary="만료 임박 키 교체")
async def rotate_encryption_keys(db: AsyncSession = Depends(get_session)):
    return await sec_services.rotate_encryption_keys(db)


@router.get("/encryption/keys/{key_id}/integrity", response_model=sec_schemas.KeyIntegrity, summary="키 무결성 검증")
async def check_key_integrity(key_id: int, db: AsyncSession = Depends(get_session)):
    if await sec_crud.encryption_key.get(db, key_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Encryption key not found")
    return {"key_id": key_id, "valid": await sec_services.validate_key_integrity(db, key_id)}


# =============================================================================
# 4. 암호화 문서 엔드포인트
# =============================================================================
@router.post("/documents", response_model=sec_schemas.EncryptedDocumentRead, status_code=status.HTTP_201_CREATED, summary="문서 암호화 업로드")
async def upload_document(
    file: UploadFile = File(...),
    laboratory_id: Optional[int] = Form(None),
    uploaded_by: Optional[int] = Form(None),
    db: AsyncSession = Depends(get_session),
):
    return await sec_services.encrypt_document(
        db, upload_file=file, laboratory_id=laboratory_id, uploaded_by=uploaded_by
    )


@router.get("/documents/{document_id}", summary="문서 복호화 다운로드")
async def download_document(document_id: int, db: AsyncSession = Depends(get_session)):
    document, content = await sec_services.decrypt_document(db, document_id)
    return Response(
        content=content,
        media_type=document.content_type or "application/octet-stream",
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(document.original_name)}"},
    )

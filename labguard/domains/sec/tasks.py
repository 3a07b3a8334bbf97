# labguard/domains/sec/tasks.py

import logging

from labguard.core.database import get_async_session_context
from . import services as sec_services

logger = logging.getLogger(__name__)


async def rotate_encryption_keys_task(ctx):
    """만료가 임박한 데이터 암호화 키를 교체하는 일일 태스크."""
    async with get_async_session_context() as db:
        rotated = await sec_services.rotate_encryption_keys(db)
    logger.info("키 교체 태스크 완료: %d개 용도", len(rotated))
    return {"status": "success", "rotated": rotated}


async def run_compliance_checks_task(ctx):
    """자동 컴플라이언스 점검을 실행하는 일일 태스크. 위반 항목은 알림으로 남습니다."""
    async with get_async_session_context() as db:
        results = await sec_services.run_compliance_checks(db)
    failed = [r["check"] for r in results if not r["compliant"]]
    if failed:
        logger.warning("컴플라이언스 점검 위반: %s", ", ".join(failed))
    return {"status": "success", "non_compliant": failed}

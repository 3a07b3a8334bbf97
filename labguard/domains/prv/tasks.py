# labguard/domains/prv/tasks.py

import logging

from labguard.core.database import get_async_session_context
from . import services as prv_services

logger = logging.getLogger(__name__)


async def enforce_data_retention_task(ctx):
    """보존 기간이 지난 감사 로그, 교정 기록, 로그인 이력, 알림을 삭제하는 일일 태스크."""
    async with get_async_session_context() as db:
        counts = await prv_services.enforce_data_retention(db)
    logger.info("데이터 보존 정책 적용 태스크 완료: %s", counts)
    return {"status": "success", "deleted": counts}

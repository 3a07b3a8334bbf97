# labguard/domains/lims/tasks.py

import logging

from labguard.core.database import get_async_session_context
from labguard.domains.usr import crud as usr_crud
from . import services as lims_services

logger = logging.getLogger(__name__)


async def schedule_calibrations_task(ctx):
    """
    모든 활성 실험실에 대해 교정 자동 예약을 실행하는 일일 태스크.
    한 실험실의 실패가 다른 실험실의 예약을 막지 않도록 실험실마다 별도 세션을 사용합니다.
    """
    async with get_async_session_context() as db:
        laboratory_ids = [lab.id for lab in await usr_crud.laboratory.get_active(db)]

    total, failed = 0, []
    for laboratory_id in laboratory_ids:
        try:
            async with get_async_session_context() as db:
                result = await lims_services.schedule_calibrations(db, laboratory_id)
            total += result["scheduled_count"]
        except Exception:
            logger.exception("교정 자동 예약 실패: laboratory_id=%s", laboratory_id)
            failed.append(laboratory_id)

    logger.info("교정 자동 예약 완료: %d개 실험실, %d건 예약", len(laboratory_ids), total)
    return {"status": "success" if not failed else "partial", "scheduled_count": total, "failed_laboratories": failed}

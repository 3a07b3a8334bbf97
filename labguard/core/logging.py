# labguard/core/logging.py

"""
애플리케이션 전역 로깅 설정 모듈입니다.
각 모듈은 `logging.getLogger(__name__)`으로 로거를 얻고, 핸들러/레벨은 여기서 한 번만 구성합니다.
"""

import logging

from labguard.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"


def configure_logging(level: str = None) -> None:
    """루트 로거를 설정합니다. (중복 호출 시 기존 핸들러를 유지합니다)"""
    level_name = (level or settings.LOG_LEVEL).upper()
    logging.basicConfig(level=level_name, format=LOG_FORMAT)
    logging.getLogger().setLevel(level_name)
    # SQL 쿼리 로그는 DEBUG_MODE일 때만 출력
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if settings.DEBUG_MODE else logging.WARNING)

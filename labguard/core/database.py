# labguard/core/database.py

"""
애플리케이션의 데이터베이스 연결 및 세션 관리를 담당하는 모듈입니다.

- SQLModel의 비동기 엔진을 설정합니다.
- 비동기 세션 생성을 위한 유틸리티 함수를 제공합니다.
- 애플리케이션 시작 시 데이터베이스 스키마/테이블을 생성하는 함수를 포함합니다 (개발용).
"""

import logging
from typing import AsyncGenerator, Dict, Optional
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine
from sqlalchemy.orm import sessionmaker

from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from labguard.core.config import settings

# =============================================================================
# 모든 도메인 모델 임포트
# =============================================================================
# SQLModel.metadata가 모든 테이블과 관계를 인식하도록 런타임에 명시적으로 임포트합니다.
from labguard.domains.models import *  # noqa: F401, F403

logger = logging.getLogger(__name__)

# 도메인별 PostgreSQL 스키마 목록
SCHEMA = ["usr", "fms", "lims", "sec", "prv", "shared"]


def schema_translate_map_for(url: str) -> Optional[Dict[str, Optional[str]]]:
    """
    스키마를 지원하지 않는 방언(SQLite)에서는 모든 도메인 스키마를 기본 스키마로 매핑합니다.
    """
    if url.startswith("sqlite"):
        return {schema_name: None for schema_name in SCHEMA}
    return None


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """URL 방언에 맞는 옵션으로 비동기 엔진을 생성합니다."""
    engine_kwargs = {"echo": echo, "future": True}
    translate_map = schema_translate_map_for(url)
    if translate_map is not None:
        engine_kwargs["execution_options"] = {"schema_translate_map": translate_map}
    else:
        engine_kwargs.update(
            pool_recycle=3600,  # 1시간마다 연결 재활용
            pool_size=10,       # 최소 10개의 연결 유지
            max_overflow=20,    # 최대 20개의 추가 연결 허용 (총 30개)
        )
    return create_async_engine(url, **engine_kwargs)


engine: AsyncEngine = build_engine(settings.DATABASE_URL.get_secret_value(), echo=settings.DEBUG_MODE)

# 비동기 세션을 생성하는 '세션 공장'을 정의합니다.
AsyncSessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

metadata = SQLModel.metadata


# =============================================================================
# 데이터베이스 초기화 및 테이블 생성 함수
# =============================================================================
async def create_db_and_tables(target: AsyncEngine = None) -> None:
    """
    데이터베이스 스키마 및 테이블을 생성합니다.
    개발 환경에서만 사용해야 하며, 기존 테이블을 삭제하지는 않습니다.
    """
    target = target or engine
    async with target.begin() as conn:
        if target.dialect.name == "postgresql":
            for schema_name in SCHEMA:
                await conn.execute(text(f"CREATE SCHEMA IF NOT EXISTS {schema_name}"))
        await conn.run_sync(SQLModel.metadata.create_all)
    logger.info("데이터베이스 테이블 생성 완료 (또는 이미 존재).")


# =============================================================================
# 비동기 데이터베이스 세션 의존성 주입
# =============================================================================
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI 의존성 주입을 위한 비동기 데이터베이스 세션 제너레이터입니다.
    요청마다 새로운 세션을 생성하고, 요청 처리 후 세션을 자동으로 닫습니다.
    """
    async with AsyncSessionLocal() as session:
        yield session


@asynccontextmanager
async def get_async_session_context() -> AsyncGenerator[AsyncSession, None]:
    """
    ARQ Task 등 비동기 컨텍스트에서 사용할 수 있는
    독립적인 비동기 DB 세션을 제공하는 컨텍스트 관리자입니다.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

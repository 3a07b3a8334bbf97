# labguard/main.py

import logging
from typing import AsyncGenerator
from contextlib import asynccontextmanager

from arq import cron
from arq.connections import create_pool, RedisSettings
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession
from fastapi import Depends, FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware

# 핵심 설정 및 데이터베이스 모듈 임포트
from labguard import API_PREFIX
from labguard.core.config import settings
from labguard.core.database import create_db_and_tables, engine, get_session
from labguard.core.exception_handlers import setup_exception_handlers
from labguard.core.logging import configure_logging

# 태스크 모듈 임포트
from labguard.core import tasks as core_tasks
from labguard.domains.lims import tasks as lims_tasks
from labguard.domains.sec import tasks as sec_tasks
from labguard.domains.prv import tasks as prv_tasks

# 각 도메인의 라우터 임포트
from labguard.domains.usr.routers import router as usr_router
from labguard.domains.fms.routers import router as fms_router
from labguard.domains.lims.routers import router as lims_router
from labguard.domains.shared.routers import router as shared_router
from labguard.domains.sec.routers import router as sec_router
from labguard.domains.prv.routers import router as prv_router

logger = logging.getLogger(__name__)

# ARQ 워커가 실행할 태스크 함수 목록
worker_functions = [
    core_tasks.health_check_database_task,
    lims_tasks.schedule_calibrations_task,
    sec_tasks.rotate_encryption_keys_task,
    sec_tasks.run_compliance_checks_task,
    prv_tasks.enforce_data_retention_task,
]


# ARQ 워커 설정 클래스 (실행: arq labguard.main.WorkerSettings)
class WorkerSettings:
    redis_settings = RedisSettings(host=settings.REDIS_HOST, port=settings.REDIS_PORT)
    functions = worker_functions
    cron_jobs = [
        cron(core_tasks.health_check_database_task, hour=0, minute=0, timeout=300, keep_result=600),
        cron(sec_tasks.rotate_encryption_keys_task, hour=1, minute=0, timeout=600),
        cron(lims_tasks.schedule_calibrations_task, hour=2, minute=0, timeout=1800, keep_result=3600),
        cron(sec_tasks.run_compliance_checks_task, hour=3, minute=0, timeout=1800, keep_result=3600),
        cron(prv_tasks.enforce_data_retention_task, hour=4, minute=0, timeout=1800, keep_result=3600),
    ]

    @staticmethod
    async def on_startup(ctx):
        configure_logging()


# -- 애플리케이션 수명 주기 이벤트 핸들러 --
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    FastAPI 애플리케이션의 수명 주기 이벤트(로깅, 데이터베이스, ARQ Redis)를 함께 처리합니다.
    """
    configure_logging()
    logger.info("FastAPI 애플리케이션 시작 중...")

    if settings.APP_ENV == "development":
        await create_db_and_tables()

    # Redis가 없어도 API 자체는 동작합니다. (주기 작업은 별도 ARQ 워커가 실행)
    try:
        app.state.redis = await create_pool(WorkerSettings.redis_settings)
        logger.info("ARQ Redis 커넥션 풀 생성 완료.")
    except Exception as e:
        app.state.redis = None
        logger.warning("ARQ Redis 커넥션 풀 생성 실패: %s", e)

    yield  # 애플리케이션 실행

    logger.info("FastAPI 애플리케이션 종료 중...")
    if app.state.redis is not None:
        await app.state.redis.close()
        logger.info("ARQ Redis 연결 풀 종료 완료.")
    await engine.dispose()
    logger.info("데이터베이스 연결 풀 종료 완료.")


# -- FastAPI 애플리케이션 인스턴스 생성 --
app = FastAPI(
    title=settings.APP_NAME,
    description="LabGuard-Pro API: equipment calibration tracking, compliance auditing, key management and GDPR privacy operations.",
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# -- CORS (Cross-Origin Resource Sharing) 미들웨어 설정 --
origins = [
    "http://localhost",
    "http://localhost:3000",
    "http://localhost:5173",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

setup_exception_handlers(app)

# -- 각 도메인별 API 라우터 포함 --
app.include_router(usr_router, prefix=f"{API_PREFIX}/usr")
app.include_router(fms_router, prefix=f"{API_PREFIX}/fms")
app.include_router(lims_router, prefix=f"{API_PREFIX}/lims")
app.include_router(shared_router, prefix=f"{API_PREFIX}/shared")
app.include_router(sec_router, prefix=f"{API_PREFIX}/sec")
app.include_router(prv_router, prefix=f"{API_PREFIX}/prv")


# -- 루트 엔드포인트 --
@app.get("/", summary="API Root", response_description="Welcome message and documentation link.")
async def read_root():
    """
    LabGuard-Pro API의 루트 엔드포인트입니다.
    API의 시작점을 알리고 문서 링크를 제공합니다.
    """
    return {"message": f"Welcome to {settings.APP_NAME}. Visit /docs for interactive API documentation."}


# -- 헬스 체크 엔드포인트 --
@app.get("/health-check", summary="Health Check", response_description="Status of the application and database connection.")
async def health_check(session: AsyncSession = Depends(get_session)):
    """
    데이터베이스 연결을 테스트하여 서비스의 정상 작동 여부를 확인합니다.
    """
    try:
        result = await session.execute(select(1))
        if result.scalar_one_or_none() == 1:
            return {"status": "ok", "database_connection": "successful"}
    except Exception as e:
        logger.error("Health check failed: %s", e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Database connection error during health check: {e}"
        )
    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Database health check failed: No result from test query"
    )

# tests/conftest.py

import os
import tempfile
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Awaitable, Callable

# --- 테스트 환경 변수 ---
# labguard 모듈을 임포트하기 전에 설정해야 Settings에 반영됩니다.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["APP_ENV"] = "testing"
os.environ["KEY_DERIVATION_ITERATIONS"] = "1000"
os.environ["MASTER_ENCRYPTION_KEY"] = "6c6162677561726420746573742d6f6e6c79206d6173746572206b6579212121"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="labguard-test-uploads-")

import pytest_asyncio  # noqa: E402
from httpx import AsyncClient, ASGITransport  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel.ext.asyncio.session import AsyncSession  # noqa: E402

import pytest  # noqa: E402
from labguard.main import app as main_app  # noqa: E402
from labguard.core.database import create_db_and_tables, get_session, schema_translate_map_for  # noqa: E402
from labguard.domains.sec import services as sec_services  # noqa: E402

# --- 모든 모델 임포트 ---
# SQLModel.metadata.create_all()이 모든 테이블을 인식하도록 합니다.
from labguard.domains.models import *  # noqa: F401, F403, E402
from labguard.domains.usr import models as usr_models  # noqa: E402
from labguard.domains.fms import models as fms_models  # noqa: E402


# --- 테스트용 데이터베이스 설정 ---
# 테스트마다 새로운 인메모리 SQLite 데이터베이스를 사용합니다.
# PostgreSQL 스키마(usr, fms, ...)는 schema_translate_map으로 기본 스키마에 매핑됩니다.
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(autouse=True)
def daytime_only_alerts(monkeypatch):
    """
    테스트 실행 시각(00~05시 UTC)에 따라 심야 접근 경고가 추가로 생성되지 않도록 합니다.
    심야 접근 탐지 테스트는 이 값을 다시 설정합니다.
    """
    monkeypatch.setattr(sec_services, "UNUSUAL_HOURS", range(0))


@pytest_asyncio.fixture(scope="function")
async def test_engine() -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,  # 인메모리 DB를 하나의 연결로 공유
        connect_args={"check_same_thread": False},
        execution_options={"schema_translate_map": schema_translate_map_for(TEST_DATABASE_URL)},
    )
    await create_db_and_tables(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(test_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """각 테스트 함수마다 독립된 데이터베이스의 비동기 세션을 제공합니다."""
    TestingSessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with TestingSessionLocal() as session:
        yield session


@pytest.fixture(scope="function")
def session_context(test_engine: AsyncEngine):
    """
    ARQ 태스크가 사용하는 get_async_session_context()를 테스트 엔진으로 대체할 때 사용합니다.
    """
    TestingSessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    @asynccontextmanager
    async def _session_context() -> AsyncGenerator[AsyncSession, None]:
        async with TestingSessionLocal() as session:
            yield session
    return _session_context


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """get_session 의존성을 테스트 세션으로 대체한 AsyncClient를 반환합니다."""
    async def override_get_session():
        yield db_session

    original_overrides = main_app.dependency_overrides.copy()
    main_app.dependency_overrides[get_session] = override_get_session
    try:
        transport = ASGITransport(app=main_app)
        async with AsyncClient(transport=transport, base_url="http://test") as test_client:
            yield test_client
    finally:
        main_app.dependency_overrides.clear()
        main_app.dependency_overrides.update(original_overrides)


# --- 실험실 / 사용자 픽스처 ---
@pytest_asyncio.fixture(scope="function")
async def test_laboratory(db_session: AsyncSession) -> usr_models.Laboratory:
    """테스트용 실험실을 생성하고 반환합니다."""
    laboratory = usr_models.Laboratory(code="LAB-A", name="Clinical Molecular Lab A", clia_number="05D1234567")
    db_session.add(laboratory)
    await db_session.commit()
    await db_session.refresh(laboratory)
    return laboratory


@pytest_asyncio.fixture(scope="function")
def user_factory(db_session: AsyncSession) -> Callable[..., Awaitable[usr_models.User]]:
    """역할과 속성을 지정하여 테스트 사용자를 생성하는 팩토리 함수를 반환합니다."""
    async def _create_user(username: str, role: usr_models.UserRole, laboratory_id: int, **kwargs) -> usr_models.User:
        user_data = {
            "username": username,
            "email": f"{username}@labguard.org",
            "name": username.title(),
            "role": role,
            "laboratory_id": laboratory_id,
            **kwargs,
        }
        user = usr_models.User(**user_data)
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user
    return _create_user


@pytest_asyncio.fixture(scope="function")
async def test_technician(user_factory: Callable, test_laboratory: usr_models.Laboratory) -> usr_models.User:
    """실험 기사(TECHNICIAN)를 생성합니다."""
    return await user_factory("tech", usr_models.UserRole.TECHNICIAN, test_laboratory.id)


# --- 장비 픽스처 ---
@pytest_asyncio.fixture(scope="function")
def equipment_factory(db_session: AsyncSession) -> Callable[..., Awaitable[fms_models.Equipment]]:
    async def _create_equipment(
        laboratory_id: int, name: str, equipment_type: fms_models.EquipmentType, **kwargs
    ) -> fms_models.Equipment:
        equipment = fms_models.Equipment(laboratory_id=laboratory_id, name=name, equipment_type=equipment_type, **kwargs)
        db_session.add(equipment)
        await db_session.commit()
        await db_session.refresh(equipment)
        return equipment
    return _create_equipment


@pytest_asyncio.fixture(scope="function")
async def pcr_machine(equipment_factory: Callable, test_laboratory: usr_models.Laboratory) -> fms_models.Equipment:
    return await equipment_factory(
        test_laboratory.id, "PCR Thermal Cycler A", fms_models.EquipmentType.ANALYZER, serial_number="PCR-001"
    )


@pytest_asyncio.fixture(scope="function")
async def pipette(equipment_factory: Callable, test_laboratory: usr_models.Laboratory) -> fms_models.Equipment:
    return await equipment_factory(
        test_laboratory.id, "Eppendorf Pipette 100", fms_models.EquipmentType.PIPETTE,
        serial_number="PIP-001", calibration_interval_days=90,
    )

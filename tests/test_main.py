# tests/test_main.py

"""
FastAPI 애플리케이션의 메인 엔드포인트와 ARQ 워커 설정에 대한 테스트 모듈입니다.

- 애플리케이션의 루트 경로 (`/`) 응답을 테스트합니다.
- 데이터베이스 연결 헬스 체크 엔드포인트 (`/health-check`)를 테스트합니다.
- 전역 예외 처리기 (ValueError -> 400, DecryptionError -> 422, 그 외 -> 500) 동작을 확인합니다.
"""

from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from labguard import API_PREFIX
from labguard.core.config import settings
from labguard.core.encryption import DecryptionError
from labguard.core.exception_handlers import setup_exception_handlers
from labguard.main import WorkerSettings, worker_functions


async def test_read_root(client: AsyncClient):
    response = await client.get("/")
    assert response.status_code == 200
    assert response.json()["message"] == f"Welcome to {settings.APP_NAME}. Visit /docs for interactive API documentation."


async def test_health_check(client: AsyncClient):
    """헬스 체크 엔드포인트가 데이터베이스 연결 상태를 올바르게 반환하는지 테스트합니다."""
    response = await client.get("/health-check")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "database_connection": "successful"}


async def test_validation_endpoint_reports_empty_measurements(client: AsyncClient):
    """검증 엔드포인트는 측정값이 비어 있으면 400과 detail 메시지를 반환합니다."""
    response = await client.post(f"{API_PREFIX}/lims/calibrations/validate/thermal", json={"measurements": []})
    assert response.status_code == 400
    assert "At least one thermal measurement" in response.json()["detail"]


def _app_with_failing_routes() -> FastAPI:
    failing_app = FastAPI()
    setup_exception_handlers(failing_app)

    @failing_app.get("/value-error")
    async def raise_value_error():
        raise ValueError("Replicate count must be positive")

    @failing_app.get("/decryption-error")
    async def raise_decryption_error():
        raise DecryptionError("Authentication failed: wrong key or tampered ciphertext")

    @failing_app.get("/runtime-error")
    async def raise_runtime_error():
        raise RuntimeError("database driver crashed")

    return failing_app


async def test_uncaught_value_error_maps_to_400():
    """라우터에서 처리하지 않은 ValueError는 전역 처리기에서 400이 됩니다."""
    transport = ASGITransport(app=_app_with_failing_routes(), raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        response = await ac.get("/value-error")
    assert response.status_code == 400
    assert response.json() == {"detail": "Replicate count must be positive"}


async def test_decryption_error_maps_to_422():
    """DecryptionError는 ValueError 하위 클래스지만 422로 응답합니다."""
    transport = ASGITransport(app=_app_with_failing_routes(), raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        response = await ac.get("/decryption-error")
    assert response.status_code == 422
    assert "tampered" in response.json()["detail"]


async def test_unhandled_exception_returns_500_with_error_id():
    """처리되지 않은 예외는 error_id와 error_type을 담은 500 JSON으로 응답합니다."""
    transport = ASGITransport(app=_app_with_failing_routes(), raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        response = await ac.get("/runtime-error")
    assert response.status_code == 500
    body = response.json()
    assert body["detail"] == "Internal server error"
    assert body["error_type"] == "RuntimeError"
    assert isinstance(body["error_id"], int)
    # 내부 예외 메시지는 응답에 노출되지 않습니다.
    assert "database driver crashed" not in response.text


def test_worker_settings_register_every_cron_task():
    cron_names = {job.coroutine.__name__ for job in WorkerSettings.cron_jobs}
    assert cron_names == {func.__name__ for func in worker_functions}
    assert WorkerSettings.redis_settings.port == settings.REDIS_PORT

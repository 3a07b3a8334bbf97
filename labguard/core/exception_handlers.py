# labguard/core/exception_handlers.py

"""
FastAPI 전역 예외 처리기 모듈입니다.

- ValueError: 측정값 검증 등 순수 함수 계층의 입력 오류 -> 400
- DecryptionError: 위조되었거나 잘못된 키로 복호화 시도 -> 422
- 그 외 처리되지 않은 예외: error_id와 함께 로그를 남기고 500 JSON 응답
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from labguard.core.encryption import DecryptionError

logger = logging.getLogger(__name__)


async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})


async def decryption_error_handler(request: Request, exc: DecryptionError) -> JSONResponse:
    logger.warning("Decryption failed for %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content={"detail": str(exc)})


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """처리되지 않은 예외를 로깅하고, 클라이언트가 참조할 수 있는 error_id를 반환합니다."""
    error_id = id(exc)
    logger.error(
        "Unhandled exception [%s] in %s %s: %s",
        error_id, request.method, request.url.path, exc,
        exc_info=True,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "Internal server error",
            "error_id": error_id,
            "error_type": type(exc).__name__,
        },
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """애플리케이션 초기화 시 예외 처리기를 등록합니다. (DecryptionError가 ValueError보다 먼저)"""
    app.add_exception_handler(DecryptionError, decryption_error_handler)
    app.add_exception_handler(ValueError, value_error_handler)
    app.add_exception_handler(Exception, global_exception_handler)

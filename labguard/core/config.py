# labguard/core/config.py

from typing import Any, Optional
from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict
import os

# 프로젝트의 루트 디렉토리 경로를 계산합니다.
BASE_DIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


class Settings(BaseSettings):
    """
    애플리케이션의 모든 설정을 정의하는 Pydantic BaseSettings 모델입니다.
    환경 변수 및 .env 파일에서 값을 자동으로 로드합니다.
    """

    # --- Pydantic Settings 설정 ---
    model_config = SettingsConfigDict(
        env_file=os.path.join(BASE_DIR, '.env'),  # 프로젝트 루트의 .env 파일을 명시적으로 지정
        env_file_encoding='utf-8',
        extra='ignore',                      # .env 파일에 정의되었지만 모델에 없는 변수는 무시
        case_sensitive=True
    )

    # --- 애플리케이션 기본 설정 ---
    APP_NAME: str = "LabGuard-Pro API"
    APP_VERSION: str = "0.1.0"
    APP_DESCRIPTION: str = "Laboratory calibration and compliance engine"
    APP_ENV: str = Field("development", description="Application environment (e.g., development, production, testing)")
    DEBUG_MODE: bool = Field(False, description="Enable debug mode for detailed logging and error messages")
    LOG_LEVEL: str = Field("INFO", description="Root logging level")

    # --- 데이터베이스 설정 ---
    DATABASE_URL: SecretStr = Field(..., description="PostgreSQL database connection URL")

    # --- ARQ (Redis) 설정 ---
    REDIS_HOST: str = Field("localhost", description="Redis host for the ARQ worker")
    REDIS_PORT: int = Field(6379, description="Redis port for the ARQ worker")

    # --- 파일 업로드 설정 ---
    UPLOAD_DIR: str = Field("/app/data/uploads", description="Directory for encrypted documents.")

    # --- 암호화 / 키 관리 설정 ---
    # 마스터 키가 없으면 프로세스 수명 동안만 유효한 임시 키가 생성됩니다. (KeyManagementService 참조)
    MASTER_ENCRYPTION_KEY: Optional[SecretStr] = Field(None, description="Master key protecting data-encryption keys at rest")
    KEY_DERIVATION_ITERATIONS: int = Field(100_000, description="PBKDF2 iteration count")
    KEY_EXPIRY_DAYS: int = Field(90, description="Lifetime of a data-encryption key")
    KEY_ROTATION_WINDOW_DAYS: int = Field(30, description="Rotate keys expiring within this many days")

    # --- 컴플라이언스 / 데이터 보존 정책 (일) ---
    PASSWORD_MAX_AGE_DAYS: int = Field(90, description="Passwords older than this violate the password policy")
    AUDIT_LOG_RETENTION_DAYS: int = Field(2555, description="Audit log retention (7 years)")
    CALIBRATION_RETENTION_DAYS: int = Field(2555, description="Calibration record retention (7 years)")
    LOGIN_HISTORY_RETENTION_DAYS: int = Field(365, description="LOGIN audit entry retention")
    NOTIFICATION_RETENTION_DAYS: int = Field(30, description="Notification retention")


    def model_post_init(self, __context: Any) -> None:  # noqa: ANN001
        # APP_ENV가 development이고, UPLOAD_DIR이 기본값인 경우 로컬 경로로 변경
        if self.APP_ENV == "development" and self.UPLOAD_DIR == "/app/data/uploads":
            self.UPLOAD_DIR = os.path.join(BASE_DIR, "data", "uploads")


settings = Settings()

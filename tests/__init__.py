# tests/__init__.py

"""
LabGuard API 테스트 스위트 패키지입니다.

- `conftest.py`: 인메모리 SQLite 엔진, 세션, AsyncClient, 실험실/사용자/장비 픽스처
- `test_main.py`, `test_encryption.py`: 애플리케이션 진입점과 암호화 유틸리티 테스트
- `domains/`: 도메인(usr, fms, lims, shared, sec, prv)별 통합 테스트
"""

__title__ = "LabGuard API Tests"
__version__ = "0.1.0"
__all__ = []

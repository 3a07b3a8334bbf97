# tests/domains/__init__.py

"""
LabGuard 도메인별 테스트 패키지입니다.

- `test_usr.py`: 실험실 및 사용자 관리
- `test_fms.py`: 장비 관리
- `test_calibration.py`, `test_lims.py`: 교정 계산, 예약, 수행, 대시보드 및 CLIA 보고서
- `test_shared.py`: 알림
- `test_sec.py`: 감사 로그, 컴플라이언스, 키 관리, 문서 암호화
- `test_prv.py`: 개인정보 열람/삭제, 처리 동의, 보존 기간 정책
"""

__all__ = []

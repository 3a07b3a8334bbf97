# labguard/domains/models/__init__.py

"""
모든 도메인의 SQLModel 모델들을 한 곳에서 중앙 관리하여,
다른 모듈에서 쉽게 임포트할 수 있도록 하는 역할을 합니다.
SQLModel.metadata가 모든 테이블을 인식하도록 보장합니다.
"""

# usr (Laboratory, User)
from labguard.domains.usr.models import Laboratory, User, UserRole

# fms (Equipment)
from labguard.domains.fms.models import Equipment, EquipmentStatus, EquipmentType

# lims (CalibrationRecord)
from labguard.domains.lims.models import CalibrationRecord

# shared (Notification)
from labguard.domains.shared.models import Notification, NotificationType

# sec (감사 로그, 키 관리, 암호화 문서)
from labguard.domains.sec.models import (
    AuditLog, HIPAAAuditLog, DataAccessLog, EncryptionKey, EncryptedDocument
)

# prv (개인정보 동의, 삭제 이력)
from labguard.domains.prv.models import DataProcessingConsent, DataDeletionRecord

__all__ = [
    "Laboratory", "User", "UserRole",
    "Equipment", "EquipmentStatus", "EquipmentType",
    "CalibrationRecord",
    "Notification", "NotificationType",
    "AuditLog", "HIPAAAuditLog", "DataAccessLog", "EncryptionKey", "EncryptedDocument",
    "DataProcessingConsent", "DataDeletionRecord",
]

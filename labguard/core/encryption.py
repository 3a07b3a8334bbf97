# labguard/core/encryption.py

"""
필드/파일 단위 대칭 암호화 유틸리티 모듈입니다.

- 알고리즘: AES-256-GCM (인증 암호화)
- 키 유도: PBKDF2-HMAC-SHA256, 32바이트 키, 호출마다 새로운 salt
- 필드 암호문 형식: "iv:salt:authTag:ciphertext" (모두 hex)
- 파일 암호문은 바이트 그대로 반환하고, "iv:salt:authTag" 메타데이터를 별도로 보관합니다.

암호문 위조, 잘못된 키, 형식 오류는 모두 DecryptionError로 보고됩니다.
"""

import hashlib
import secrets
from typing import Optional, Tuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from labguard.core.config import settings

ALGORITHM = "AES-256-GCM"
KEY_LENGTH = 32
IV_LENGTH = 16
SALT_LENGTH = 32
TAG_LENGTH = 16


class DecryptionError(ValueError):
    """암호문을 복호화할 수 없을 때 발생합니다. (위조, 잘못된 키, 손상된 형식)"""


def _iterations(iterations: Optional[int]) -> int:
    return iterations or settings.KEY_DERIVATION_ITERATIONS


def derive_key(secret: str, salt: bytes, iterations: Optional[int] = None) -> bytes:
    """비밀 문자열과 salt로부터 AES-256 키를 유도합니다."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=_iterations(iterations),
    )
    return kdf.derive(secret.encode("utf-8"))


def _seal(plaintext: bytes, secret: str, iterations: Optional[int]) -> Tuple[bytes, bytes, bytes, bytes]:
    iv = secrets.token_bytes(IV_LENGTH)
    salt = secrets.token_bytes(SALT_LENGTH)
    key = derive_key(secret, salt, iterations)
    # AESGCM.encrypt()는 ciphertext 뒤에 16바이트 태그를 붙여 반환합니다.
    sealed = AESGCM(key).encrypt(iv, plaintext, None)
    return iv, salt, sealed[-TAG_LENGTH:], sealed[:-TAG_LENGTH]


def _open(iv: bytes, salt: bytes, tag: bytes, ciphertext: bytes, secret: str, iterations: Optional[int]) -> bytes:
    if len(iv) != IV_LENGTH or len(salt) != SALT_LENGTH or len(tag) != TAG_LENGTH:
        raise DecryptionError("Malformed encryption envelope")
    key = derive_key(secret, salt, iterations)
    try:
        return AESGCM(key).decrypt(iv, ciphertext + tag, None)
    except InvalidTag as e:
        raise DecryptionError("Authentication failed: wrong key or tampered ciphertext") from e


def _split_hex(value: str, expected_parts: int) -> list:
    parts = value.split(":")
    if len(parts) != expected_parts:
        raise DecryptionError(f"Expected {expected_parts} ':'-separated parts, got {len(parts)}")
    try:
        return [bytes.fromhex(part) for part in parts]
    except ValueError as e:
        raise DecryptionError("Encrypted payload is not valid hex") from e


# =============================================================================
# 1. 필드 단위 암호화 (민감 정보 컬럼)
# =============================================================================
def encrypt_sensitive_field(data: str, encryption_key: str, iterations: Optional[int] = None) -> str:
    """문자열을 암호화하여 "iv:salt:authTag:ciphertext" 형식으로 반환합니다."""
    iv, salt, tag, ciphertext = _seal(data.encode("utf-8"), encryption_key, iterations)
    return ":".join(part.hex() for part in (iv, salt, tag, ciphertext))


def decrypt_sensitive_field(encrypted_data: str, encryption_key: str, iterations: Optional[int] = None) -> str:
    """encrypt_sensitive_field()로 만든 값을 복호화합니다."""
    iv, salt, tag, ciphertext = _split_hex(encrypted_data, 4)
    plaintext = _open(iv, salt, tag, ciphertext, encryption_key, iterations)
    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecryptionError("Decrypted field is not valid UTF-8") from e


# =============================================================================
# 2. 파일 단위 암호화 (문서 보관)
# =============================================================================
def encrypt_file(file_bytes: bytes, encryption_key: str, iterations: Optional[int] = None) -> Tuple[bytes, str]:
    """파일 내용을 암호화하고 (암호문, "iv:salt:authTag" 메타데이터)를 반환합니다."""
    iv, salt, tag, ciphertext = _seal(file_bytes, encryption_key, iterations)
    metadata = ":".join(part.hex() for part in (iv, salt, tag))
    return ciphertext, metadata


def decrypt_file(encrypted_data: bytes, metadata: str, encryption_key: str, iterations: Optional[int] = None) -> bytes:
    """encrypt_file()로 만든 암호문을 메타데이터와 키로 복호화합니다."""
    iv, salt, tag = _split_hex(metadata, 3)
    return _open(iv, salt, tag, encrypted_data, encryption_key, iterations)


# =============================================================================
# 3. 키 생성 / 무결성 해시
# =============================================================================
def generate_encryption_key() -> str:
    """32바이트 난수 키를 hex 문자열(64자)로 반환합니다."""
    return secrets.token_hex(KEY_LENGTH)


def hash_data(data: str) -> str:
    """SHA-256 hex 다이제스트."""
    return hashlib.sha256(data.encode("utf-8")).hexdigest()

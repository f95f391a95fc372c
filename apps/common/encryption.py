"""
AES-256-GCM encryption for secrets stored in the database.

Used for e-invoicing provider credentials (account password and cached
access tokens). Ciphertext layout: VERSION (1 byte) + NONCE (12 bytes) +
CIPHERTEXT with 16 byte tag, base64 url-safe encoded.

Key resolution:
1. ``EINVOICING_ENCRYPTION_KEY`` setting/env (base64 url-safe, 32 bytes)
2. PBKDF2-HMAC-SHA256 derivation from ``SECRET_KEY``
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import logging
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

logger = logging.getLogger(__name__)

AES_KEY_SIZE = 32  # 256 bits
NONCE_SIZE = 12  # 96 bits (recommended for GCM)
SALT_SIZE = 16
PBKDF2_ITERATIONS = 310_000  # OWASP 2023 recommendation for PBKDF2-HMAC-SHA256

VERSION_AES256_GCM = b"\x01"


class EncryptionError(Exception):
    """Base exception for encryption operations"""


class DecryptionError(EncryptionError):
    """Decryption failed - invalid key, corrupted data, or tampered ciphertext"""


class AES256Cipher:
    """
    AES-256-GCM authenticated encryption cipher.

    Usage:
        cipher = AES256Cipher()
        encrypted = cipher.encrypt("sensitive data")
        decrypted = cipher.decrypt(encrypted)
    """

    def __init__(self, key: bytes | None = None) -> None:
        self._key = key or self._get_or_derive_key()
        if len(self._key) != AES_KEY_SIZE:
            raise EncryptionError(f"AES-256 requires exactly {AES_KEY_SIZE} bytes, got {len(self._key)}")
        self._aesgcm = AESGCM(self._key)

    def _get_or_derive_key(self) -> bytes:
        raw_key = os.environ.get("EINVOICING_ENCRYPTION_KEY") or getattr(settings, "EINVOICING_ENCRYPTION_KEY", None)
        if raw_key:
            try:
                key_bytes = base64.urlsafe_b64decode(raw_key)
                if len(key_bytes) == AES_KEY_SIZE:
                    return key_bytes
            except (binascii.Error, TypeError, ValueError):
                logger.debug("Invalid EINVOICING_ENCRYPTION_KEY value; falling back to derived key")

        master_key = getattr(settings, "SECRET_KEY", None)
        if not master_key:
            raise ImproperlyConfigured("Credential encryption requires EINVOICING_ENCRYPTION_KEY or SECRET_KEY")

        master_bytes = master_key.encode() if isinstance(master_key, str) else master_key
        # Deterministic salt so the derived key survives restarts without storing it
        salt = hashlib.sha256(b"FLOWP_EINVOICING_SALT_V1" + master_bytes).digest()[:SALT_SIZE]
        kdf = PBKDF2HMAC(algorithm=hashes.SHA256(), length=AES_KEY_SIZE, salt=salt, iterations=PBKDF2_ITERATIONS)
        return kdf.derive(master_bytes)

    def encrypt(self, plaintext: str) -> str:
        if not plaintext:
            return ""
        nonce = os.urandom(NONCE_SIZE)  # never reused with the same key
        ciphertext = self._aesgcm.encrypt(nonce, plaintext.encode("utf-8"), None)
        return base64.urlsafe_b64encode(VERSION_AES256_GCM + nonce + ciphertext).decode("utf-8")

    def decrypt(self, ciphertext: str) -> str:
        if not ciphertext:
            return ""
        try:
            encrypted = base64.urlsafe_b64decode(ciphertext.encode("utf-8"))
        except (binascii.Error, ValueError) as e:
            raise DecryptionError(f"Ciphertext is not valid base64: {e}") from e

        if encrypted[:1] != VERSION_AES256_GCM:
            raise DecryptionError("Unknown ciphertext version")

        nonce = encrypted[1 : 1 + NONCE_SIZE]
        try:
            return self._aesgcm.decrypt(nonce, encrypted[1 + NONCE_SIZE :], None).decode("utf-8")
        except InvalidTag as e:
            logger.error("🔥 [Encryption] Decryption failed: authentication tag mismatch")
            raise DecryptionError("Decryption failed: data tampered or wrong key") from e


_cipher_instance: AES256Cipher | None = None


def get_cipher() -> AES256Cipher:
    """Get global cipher instance with lazy initialization."""
    global _cipher_instance  # noqa: PLW0603
    if _cipher_instance is None:
        _cipher_instance = AES256Cipher()
    return _cipher_instance


def encrypt_value(plaintext: str) -> str:
    return get_cipher().encrypt(plaintext)


def decrypt_value(ciphertext: str) -> str:
    return get_cipher().decrypt(ciphertext)

"""AES-256-GCM encryption of tenant role passwords at rest.

Blobs are ``base64(nonce || ciphertext || tag)`` with a fresh 12 byte
nonce per encryption.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import os
import socket

import structlog
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from infrastructure.settings import Settings, TenancySettings
from tenancy.domain.exceptions import IntegrityError
from tenancy.ports.connections import ISecretCipher

KEY_LENGTH = 32
NONCE_LENGTH = 12
# 16 byte GCM tag on top of the nonce; an empty plaintext is still valid.
MIN_BLOB_LENGTH = NONCE_LENGTH + 16

logger = structlog.get_logger(__name__)


class AesGcmSecretCipher(ISecretCipher):
    """Authenticated symmetric encryption for tenant secrets."""

    def __init__(self, key: bytes) -> None:
        if len(key) != KEY_LENGTH:
            raise ValueError(f"Secret key must be {KEY_LENGTH} bytes, got {len(key)}")
        self._aesgcm = AESGCM(key)

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a secret into a base64 blob."""
        nonce = os.urandom(NONCE_LENGTH)
        ciphertext = self._aesgcm.encrypt(nonce, plaintext.encode("utf-8"), None)
        return base64.b64encode(nonce + ciphertext).decode("ascii")

    def decrypt(self, blob: str) -> str:
        """Decrypt a blob produced by encrypt.

        Raises:
            IntegrityError: If the blob is malformed, truncated, tampered
                with or was encrypted under another key
        """
        try:
            payload = base64.b64decode(blob.encode("ascii"), validate=True)
        except (binascii.Error, UnicodeEncodeError, ValueError) as e:
            raise IntegrityError("Encrypted secret is not valid base64") from e

        if len(payload) < MIN_BLOB_LENGTH:
            raise IntegrityError("Encrypted secret is truncated")

        nonce, ciphertext = payload[:NONCE_LENGTH], payload[NONCE_LENGTH:]
        try:
            plaintext = self._aesgcm.decrypt(nonce, ciphertext, None)
        except InvalidTag as e:
            raise IntegrityError("Encrypted secret failed authentication") from e

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise IntegrityError("Decrypted secret is not valid UTF-8") from e

    @classmethod
    def from_settings(
        cls, tenancy_settings: TenancySettings, settings: Settings
    ) -> AesGcmSecretCipher:
        """Build the cipher from configuration.

        Raises:
            ValueError: If no usable key is configured
        """
        if tenancy_settings.secret_key is not None:
            encoded = tenancy_settings.secret_key.get_secret_value()
            try:
                key = base64.b64decode(encoded.encode("ascii"), validate=True)
            except (binascii.Error, UnicodeEncodeError, ValueError) as e:
                raise ValueError("TENANTVAULT_TENANCY_SECRET_KEY is not valid base64") from e
            return cls(key)

        if settings.environment == "development" and tenancy_settings.allow_insecure_dev_key:
            logger.warning(
                "insecure_dev_secret_key",
                message="Deriving the tenant secret key from the host name",
            )
            seed = f"{settings.app_name}-{socket.gethostname()}".encode("utf-8")
            return cls(hashlib.sha256(seed).digest())

        raise ValueError(
            "TENANTVAULT_TENANCY_SECRET_KEY must be set to a base64 encoded "
            f"{KEY_LENGTH} byte key"
        )

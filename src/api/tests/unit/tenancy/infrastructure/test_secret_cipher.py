"""Unit tests for AES-GCM secret encryption."""

import base64
import os

import pytest
from pydantic import SecretStr

from infrastructure.settings import Settings, TenancySettings
from tenancy.domain.exceptions import IntegrityError
from tenancy.infrastructure.secret_cipher import (
    KEY_LENGTH,
    NONCE_LENGTH,
    AesGcmSecretCipher,
)


@pytest.fixture
def key():
    return os.urandom(KEY_LENGTH)


@pytest.fixture
def aes_cipher(key):
    return AesGcmSecretCipher(key)


class TestAesGcmSecretCipher:
    """Tests for encrypt and decrypt."""

    def test_round_trip(self, aes_cipher):
        assert aes_cipher.decrypt(aes_cipher.encrypt("p@ss:w0rd%!")) == "p@ss:w0rd%!"

    def test_empty_plaintext_round_trips(self, aes_cipher):
        assert aes_cipher.decrypt(aes_cipher.encrypt("")) == ""

    def test_fresh_nonce_per_encryption(self, aes_cipher):
        first = aes_cipher.encrypt("same")
        second = aes_cipher.encrypt("same")

        assert first != second
        assert base64.b64decode(first)[:NONCE_LENGTH] != base64.b64decode(second)[
            :NONCE_LENGTH
        ]

    def test_blob_does_not_contain_plaintext(self, aes_cipher):
        blob = aes_cipher.encrypt("visible-password")

        assert b"visible-password" not in base64.b64decode(blob)

    def test_rejects_wrong_key_length(self):
        with pytest.raises(ValueError):
            AesGcmSecretCipher(b"short")

    def test_tampered_ciphertext_raises(self, aes_cipher):
        payload = bytearray(base64.b64decode(aes_cipher.encrypt("secret")))
        payload[-1] ^= 0x01

        with pytest.raises(IntegrityError):
            aes_cipher.decrypt(base64.b64encode(bytes(payload)).decode())

    def test_other_key_raises(self, aes_cipher):
        blob = AesGcmSecretCipher(os.urandom(KEY_LENGTH)).encrypt("secret")

        with pytest.raises(IntegrityError):
            aes_cipher.decrypt(blob)

    def test_truncated_blob_raises(self, aes_cipher):
        with pytest.raises(IntegrityError, match="truncated"):
            aes_cipher.decrypt(base64.b64encode(b"x" * 10).decode())

    @pytest.mark.parametrize("blob", ["not base64!", "é", ""])
    def test_malformed_blob_raises(self, aes_cipher, blob):
        with pytest.raises(IntegrityError):
            aes_cipher.decrypt(blob)


class TestFromSettings:
    """Tests for AesGcmSecretCipher.from_settings."""

    def test_uses_configured_key(self, key):
        tenancy_settings = TenancySettings(
            secret_key=SecretStr(base64.b64encode(key).decode())
        )

        cipher = AesGcmSecretCipher.from_settings(tenancy_settings, Settings())

        assert AesGcmSecretCipher(key).decrypt(cipher.encrypt("x")) == "x"

    def test_rejects_invalid_base64(self):
        tenancy_settings = TenancySettings(secret_key=SecretStr("%%%"))

        with pytest.raises(ValueError):
            AesGcmSecretCipher.from_settings(tenancy_settings, Settings())

    def test_rejects_missing_key_without_dev_flag(self):
        with pytest.raises(ValueError):
            AesGcmSecretCipher.from_settings(
                TenancySettings(secret_key=None), Settings(environment="development")
            )

    def test_dev_key_requires_development(self):
        tenancy_settings = TenancySettings(secret_key=None, allow_insecure_dev_key=True)

        with pytest.raises(ValueError):
            AesGcmSecretCipher.from_settings(
                tenancy_settings, Settings(environment="production")
            )

    def test_dev_key_is_stable(self):
        tenancy_settings = TenancySettings(secret_key=None, allow_insecure_dev_key=True)
        settings = Settings(environment="development")

        first = AesGcmSecretCipher.from_settings(tenancy_settings, settings)
        second = AesGcmSecretCipher.from_settings(tenancy_settings, settings)

        assert second.decrypt(first.encrypt("x")) == "x"

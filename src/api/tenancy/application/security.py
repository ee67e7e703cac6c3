"""Credential generation and hashing for tenant users and roles.

Uses cryptographically secure random generation and bcrypt for hashing.
If the operating system cannot supply secure randomness, generation
fails with CredentialGenerationError; there is no fallback generator.
"""

from __future__ import annotations

import secrets
import string
from collections.abc import Callable
from typing import TypeVar

import bcrypt

from tenancy.domain.exceptions import CredentialGenerationError, ValidationError

# Unambiguous characters only: no 0/O, 1/l/I.
API_KEY_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz23456789"

# No quotes or backslashes, so role passwords are safe inside a DDL literal.
SYMBOLS = "!@#$%^&*()_+-=[]{}|;:,.<>?"
WIDE_ALPHABET = string.ascii_letters + string.digits + SYMBOLS

# bcrypt only reads the first 72 bytes of its input.
MAX_SECRET_BYTES = 72

_REQUIRED_CLASSES = (
    string.ascii_uppercase,
    string.ascii_lowercase,
    string.digits,
    SYMBOLS,
)

T = TypeVar("T")


def _entropy(fn: Callable[[], T]) -> T:
    try:
        return fn()
    except (OSError, NotImplementedError) as e:
        raise CredentialGenerationError(
            "Secure random source is unavailable"
        ) from e


class CredentialIssuer:
    """Generates api keys, api secrets and role passwords, and hashes secrets.

    Api keys are lookup identifiers, api secrets are shown to the caller
    exactly once, and role passwords are never shown to anyone; they are
    encrypted and stored on the tenant record.
    """

    def __init__(
        self,
        bcrypt_rounds: int = 12,
        api_key_length: int = 16,
        api_secret_length: int = 32,
        role_password_length: int = 32,
    ):
        if api_secret_length < len(_REQUIRED_CLASSES):
            raise ValueError("api_secret_length is too short")
        self._bcrypt_rounds = bcrypt_rounds
        self._api_key_length = api_key_length
        self._api_secret_length = api_secret_length
        self._role_password_length = role_password_length

    def generate_api_key(self) -> str:
        """Generate a fixed-length key from an unambiguous alphabet."""
        return _entropy(
            lambda: "".join(
                secrets.choice(API_KEY_ALPHABET) for _ in range(self._api_key_length)
            )
        )

    def generate_api_secret(self) -> str:
        """Generate a secret with at least one upper, lower, digit and symbol.

        One character from each class is placed first, the rest are drawn
        from the full alphabet, and the result is shuffled.
        """

        def build() -> str:
            chars = [secrets.choice(group) for group in _REQUIRED_CLASSES]
            chars.extend(
                secrets.choice(WIDE_ALPHABET)
                for _ in range(self._api_secret_length - len(chars))
            )
            secrets.SystemRandom().shuffle(chars)
            return "".join(chars)

        return _entropy(build)

    def generate_role_password(self) -> str:
        """Generate a database role password from the wide alphabet."""
        return _entropy(
            lambda: "".join(
                secrets.choice(WIDE_ALPHABET)
                for _ in range(self._role_password_length)
            )
        )

    def hash_secret(self, secret: str) -> str:
        """Hash a secret using bcrypt with the configured cost factor.

        Args:
            secret: The plaintext secret to hash

        Returns:
            The bcrypt hash as a string

        Raises:
            ValidationError: If the secret is longer than MAX_SECRET_BYTES
                when UTF-8 encoded
        """
        encoded = secret.encode()
        if len(encoded) > MAX_SECRET_BYTES:
            raise ValidationError(f"Secret must not exceed {MAX_SECRET_BYTES} bytes")
        salt = _entropy(lambda: bcrypt.gensalt(rounds=self._bcrypt_rounds))
        return bcrypt.hashpw(encoded, salt).decode()

    def verify_secret(self, secret: str, secret_hash: str) -> bool:
        """Verify a secret against its hash using constant-time comparison.

        Args:
            secret: The plaintext secret to verify
            secret_hash: The bcrypt hash to verify against

        Returns:
            True if the secret matches the hash, False otherwise
        """
        encoded = secret.encode()
        if len(encoded) > MAX_SECRET_BYTES:
            return False
        try:
            return bcrypt.checkpw(encoded, secret_hash.encode())
        except ValueError:
            # Malformed hash
            return False


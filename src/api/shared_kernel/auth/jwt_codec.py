"""Signed token issuing and validation.

Issues and validates HMAC-signed JWTs. Every token carries a
``token_type`` claim so callers can tell token kinds apart.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

from jose import JWTError, jwt
from jose.exceptions import ExpiredSignatureError, JWTClaimsError
from ulid import ULID

from shared_kernel.auth.observability import DefaultJWTCodecProbe

if TYPE_CHECKING:
    from shared_kernel.auth.observability import JWTCodecProbe

TOKEN_TYPE_CLAIM = "token_type"

_RESERVED_CLAIMS = frozenset({"sub", "iss", "aud", "exp", "iat", "nbf", "jti"})


class InvalidTokenError(Exception):
    """Raised when token validation fails."""

    pass


class JWTCodec:
    """Encodes and decodes signed tokens.

    Validates signature, expiry, issuer and audience with no clock
    leeway. Required claims are checked by the caller after decoding.
    """

    def __init__(
        self,
        secret: str,
        issuer: str,
        audience: str,
        algorithm: str = "HS256",
        ttl: timedelta = timedelta(minutes=60),
        probe: JWTCodecProbe | None = None,
    ):
        """Initialize the codec.

        Args:
            secret: HMAC signing secret
            issuer: Value of the iss claim
            audience: Value of the aud claim
            algorithm: HMAC algorithm (default: HS256)
            ttl: Token lifetime
            probe: Optional domain probe for observability
        """
        if not secret:
            raise ValueError("A signing secret is required")
        self._secret = secret
        self._issuer = issuer
        self._audience = audience
        self._algorithm = algorithm
        self._ttl = ttl
        self._probe = probe or DefaultJWTCodecProbe()

    def encode(
        self,
        subject: str,
        token_type: str,
        claims: dict[str, Any] | None = None,
        now: datetime | None = None,
    ) -> tuple[str, datetime]:
        """Issue a signed token.

        Args:
            subject: Value of the sub claim
            token_type: Value of the token_type claim
            claims: Additional private claims
            now: Issue time (defaults to the current time)

        Returns:
            The encoded token and its expiry
        """
        extra = dict(claims or {})
        clashing = (_RESERVED_CLAIMS | {TOKEN_TYPE_CLAIM}) & extra.keys()
        if clashing:
            raise ValueError(f"Reserved claims cannot be overridden: {sorted(clashing)}")

        issued_at = now or datetime.now(UTC)
        expires_at = issued_at + self._ttl
        payload: dict[str, Any] = {
            **extra,
            "sub": subject,
            TOKEN_TYPE_CLAIM: token_type,
            "iss": self._issuer,
            "aud": self._audience,
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
            "jti": str(ULID()),
        }
        token = jwt.encode(payload, self._secret, algorithm=self._algorithm)
        self._probe.token_issued(subject=subject, token_type=token_type)
        return token, expires_at

    def decode(self, token: str) -> dict[str, Any]:
        """Validate a token and return its claims.

        Raises:
            InvalidTokenError: If the token is malformed, expired, signed with
                another key, or issued for another issuer or audience
        """
        try:
            claims = jwt.decode(
                token=token,
                key=self._secret,
                algorithms=[self._algorithm],
                audience=self._audience,
                issuer=self._issuer,
                options={
                    "verify_signature": True,
                    "verify_aud": True,
                    "verify_iss": True,
                    "verify_exp": True,
                    "verify_iat": True,
                    "require_exp": True,
                    "require_sub": True,
                    "leeway": 0,
                },
            )
        except ExpiredSignatureError as e:
            self._probe.token_validation_failed(reason="Token expired")
            raise InvalidTokenError("Token has expired") from e
        except JWTClaimsError as e:
            self._probe.token_validation_failed(reason=f"Claims error: {e}")
            raise InvalidTokenError(f"Invalid token claims: {e}") from e
        except JWTError as e:
            self._probe.token_validation_failed(reason=f"JWT error: {e}")
            raise InvalidTokenError(f"Invalid token: {e}") from e

        token_type = claims.get(TOKEN_TYPE_CLAIM)
        if not isinstance(token_type, str):
            self._probe.token_validation_failed(reason="Missing token_type claim")
            raise InvalidTokenError(f"Missing required claim: {TOKEN_TYPE_CLAIM}")

        self._probe.token_validated(subject=str(claims["sub"]), token_type=token_type)
        return claims

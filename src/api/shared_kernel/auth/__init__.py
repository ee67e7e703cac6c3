"""Authentication shared kernel module."""

from shared_kernel.auth.jwt_codec import (
    TOKEN_TYPE_CLAIM,
    InvalidTokenError,
    JWTCodec,
)
from shared_kernel.auth.observability import (
    DefaultJWTCodecProbe,
    JWTCodecProbe,
)

__all__ = [
    "TOKEN_TYPE_CLAIM",
    "DefaultJWTCodecProbe",
    "InvalidTokenError",
    "JWTCodec",
    "JWTCodecProbe",
]

"""Allow-list validation for engine identifiers.

Schema and role names are interpolated into DDL, where bind parameters
are not available. Every such name must pass through this module first;
callers never check identifiers inline.
"""

from __future__ import annotations

import re

from tenancy.domain.exceptions import InvalidIdentifierError

# PostgreSQL truncates identifiers longer than NAMEDATALEN - 1 bytes.
MAX_IDENTIFIER_LENGTH = 63

# Prefixes leave room for "_" plus a 26 character ULID.
MAX_PREFIX_LENGTH = MAX_IDENTIFIER_LENGTH - 27

IDENTIFIER_PATTERN = re.compile(r"^[a-z][a-z0-9_]*$")
PREFIX_PATTERN = re.compile(r"^[a-z][a-z0-9]*(?:_[a-z0-9]+)*$")
SANITIZED_ID_PATTERN = re.compile(r"^[0-9a-z]{26}$")


def validate_identifier(name: str, prefix: str | None = None) -> str:
    """Validate an identifier before it is interpolated into DDL.

    Args:
        name: Candidate schema or role name
        prefix: When given, the name must be ``<prefix>_<sanitized id>``

    Returns:
        The name, unchanged

    Raises:
        InvalidIdentifierError: If the name is outside the allow-list
    """
    if not isinstance(name, str) or not name:
        raise InvalidIdentifierError("Identifier must be a non-empty string")
    if len(name) > MAX_IDENTIFIER_LENGTH:
        raise InvalidIdentifierError(
            f"Identifier exceeds {MAX_IDENTIFIER_LENGTH} characters"
        )
    if not IDENTIFIER_PATTERN.fullmatch(name):
        raise InvalidIdentifierError(f"Identifier {name!r} has invalid characters")
    if prefix is not None:
        head = f"{validate_prefix(prefix)}_"
        if not name.startswith(head) or not SANITIZED_ID_PATTERN.fullmatch(
            name[len(head) :]
        ):
            raise InvalidIdentifierError(
                f"Identifier {name!r} does not match the {prefix!r} naming scheme"
            )
    return name


def validate_prefix(prefix: str) -> str:
    """Validate a configured schema or role prefix."""
    if not isinstance(prefix, str) or not PREFIX_PATTERN.fullmatch(prefix):
        raise InvalidIdentifierError(f"Prefix {prefix!r} has invalid characters")
    if len(prefix) > MAX_PREFIX_LENGTH:
        raise InvalidIdentifierError(
            f"Prefix exceeds {MAX_PREFIX_LENGTH} characters"
        )
    return prefix


def sanitize_id(tenant_id: str) -> str:
    """Lowercase a ULID so it can be embedded in an identifier."""
    sanitized = tenant_id.lower()
    if not SANITIZED_ID_PATTERN.fullmatch(sanitized):
        raise InvalidIdentifierError(f"Tenant id {tenant_id!r} cannot be sanitized")
    return sanitized


def derive_name(tenant_id: str, prefix: str) -> str:
    """Derive ``<prefix>_<sanitized id>`` and validate the result."""
    return validate_identifier(f"{prefix}_{sanitize_id(tenant_id)}", prefix=prefix)


def quote_identifier(name: str) -> str:
    """Double-quote an already validated identifier for use in DDL."""
    return f'"{validate_identifier(name)}"'

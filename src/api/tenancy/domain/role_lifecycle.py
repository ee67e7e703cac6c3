"""Lifecycle of a tenant's database role during provisioning.

A role is created without login, gains login only after its schema
grants succeed, and becomes active once the tenant record is persisted.
A role found in CREATED state cannot log in and is safe to drop.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

from tenancy.domain.exceptions import InvalidRoleTransitionError


class RoleState(StrEnum):
    """States of a tenant role."""

    PENDING = "pending"
    CREATED = "created"
    GRANTED = "granted"
    ACTIVE = "active"


_TRANSITIONS: dict[RoleState, RoleState] = {
    RoleState.PENDING: RoleState.CREATED,
    RoleState.CREATED: RoleState.GRANTED,
    RoleState.GRANTED: RoleState.ACTIVE,
}


@dataclass
class RoleLifecycle:
    """Tracks which provisioning steps a tenant role has completed."""

    role_name: str
    state: RoleState = RoleState.PENDING
    schema_created: bool = field(default=False)

    def _advance(self, target: RoleState) -> None:
        if _TRANSITIONS.get(self.state) != target:
            raise InvalidRoleTransitionError(
                f"Role {self.role_name} cannot move from {self.state} to {target}",
                role_name=self.role_name,
            )
        self.state = target

    def mark_created(self) -> None:
        """Role exists with login disabled."""
        self._advance(RoleState.CREATED)

    def mark_schema_created(self) -> None:
        """The tenant schema exists and is owned by the role."""
        if self.state is not RoleState.CREATED:
            raise InvalidRoleTransitionError(
                f"Role {self.role_name} must exist before its schema",
                role_name=self.role_name,
            )
        self.schema_created = True

    def mark_granted(self) -> None:
        """Schema grants succeeded and login is enabled."""
        if not self.schema_created:
            raise InvalidRoleTransitionError(
                f"Role {self.role_name} cannot log in before its schema exists",
                role_name=self.role_name,
            )
        self._advance(RoleState.GRANTED)

    def mark_active(self) -> None:
        """Tenant record persisted; the role is in service."""
        self._advance(RoleState.ACTIVE)

    @property
    def role_exists(self) -> bool:
        """Whether the engine role was created and may need rollback."""
        return self.state is not RoleState.PENDING

"""Authenticated actor schemas."""

from enum import Enum

from pydantic import BaseModel

from clinic_booking.core.state_machine import ActorKind


class Role(str, Enum):
    """Roles understood by the booking core."""

    PATIENT = "patient"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


class Actor(BaseModel):
    """Identity handed to the core by the auth provider."""

    id: str
    role: Role
    line_user_id: str | None = None

    @property
    def is_admin(self) -> bool:
        """Admins and super admins."""
        return self.role in (Role.ADMIN, Role.SUPER_ADMIN)

    @property
    def is_super_admin(self) -> bool:
        """Only super admins."""
        return self.role == Role.SUPER_ADMIN

    @property
    def kind(self) -> ActorKind:
        """Actor kind used for lifecycle checks."""
        return ActorKind.ADMIN if self.is_admin else ActorKind.PATIENT


SYSTEM_ACTOR_ID = "system"

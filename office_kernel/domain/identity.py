"""
Identity -- the authenticated principal as seen by the core.

The Identity Provider (session/token transport lives outside the core)
supplies one of these per request.  Effective Entity scope is derived
from ``role`` and ``home_entity_id`` alone; ``active_entity_id`` is the
session-selected Entity and is advisory only.  It is re-validated against
the resolved scope on every request.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from uuid import UUID

from office_kernel.domain.roles import Role


@dataclass(frozen=True)
class Identity:
    """Immutable authenticated principal."""

    identity_id: UUID
    role: Role
    home_entity_id: UUID | None
    active_entity_id: UUID | None = None
    is_active: bool = True
    email: str | None = None

    def __post_init__(self) -> None:
        # Accept role strings from token payloads
        if not isinstance(self.role, Role):
            object.__setattr__(self, "role", Role.parse(self.role))

    def with_active_entity(self, entity_id: UUID | None) -> Identity:
        """Copy of this identity with a different session-selected Entity."""
        return replace(self, active_entity_id=entity_id)

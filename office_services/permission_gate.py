"""
office_services.permission_gate -- role and module authorization.

Responsibility:
    Answers allow/deny for (identity, resource, action) and for
    (identity, module), and turns deny into AccessDeniedError on every
    mutating path through ``require`` / ``require_module``.

Architecture position:
    Services layer.  Consults the static capability tables in
    office_kernel.domain.roles and the per-Entity module flags held by
    the settings store.

Invariants:
    - Admin roles are allowed every (resource, action); whether the target
      record is in their Entity scope is the Access Resolver's question.
    - ENTITY_USER is allowed exactly the pairs in ENTITY_USER_CAPABILITIES.
    - Module checks need BOTH the role-level grant and the target Entity's
      module flag.  Unknown resources, actions and modules are denied.
    - Deny is a value here, never an exception, except through require*.
"""

from __future__ import annotations

from typing import NoReturn
from uuid import UUID

from sqlalchemy.orm import Session

from office_kernel.domain.identity import Identity
from office_kernel.domain.roles import (
    ENTITY_USER_CAPABILITIES,
    ENTITY_USER_MODULES,
    Action,
    ModuleKey,
    Resource,
    Role,
)
from office_kernel.exceptions import AccessDeniedError
from office_kernel.logging_config import get_logger
from office_kernel.services.access_resolver import AccessResolver
from office_services.settings_store import EntitySettingsStore

logger = get_logger("services.permission_gate")

WILDCARD_PERMISSION = "*:*"


def check_capability(identity: Identity, resource: str, action: str) -> tuple[bool, str]:
    """Check the role-level capability table only.

    Returns:
        (allowed, reason). reason is empty when allowed.
    """
    if not identity.is_active:
        return (False, "identity is inactive")

    parsed_resource = Resource.parse(resource)
    parsed_action = Action.parse(action)
    if parsed_resource is None:
        return (False, f"unknown resource '{resource}'")
    if parsed_action is None:
        return (False, f"unknown action '{action}'")

    if identity.role.is_admin:
        return (True, "")
    if (parsed_resource, parsed_action) in ENTITY_USER_CAPABILITIES:
        return (True, "")
    return (
        False,
        f"role {identity.role.value} lacks {parsed_resource.value}:{parsed_action.value}",
    )


def check_module_role(identity: Identity, module_key: str) -> tuple[bool, str]:
    """Check the role-level half of a module check."""
    if not identity.is_active:
        return (False, "identity is inactive")
    module = ModuleKey.parse(module_key)
    if module is None:
        return (False, f"unknown module '{module_key}'")
    if identity.role.is_admin or module in ENTITY_USER_MODULES:
        return (True, "")
    return (False, f"role {identity.role.value} has no access to module {module.value}")


class PermissionGate:
    """
    Authorization decisions for one request.

    Contract:
        ``authorize*`` return booleans for rendering decisions;
        ``require*`` raise AccessDeniedError for action paths.
    """

    def __init__(
        self,
        session: Session,
        settings: EntitySettingsStore | None = None,
        resolver: AccessResolver | None = None,
    ):
        self._resolver = resolver or AccessResolver(session)
        self._settings = settings or EntitySettingsStore(session, resolver=self._resolver)

    # ------------------------------------------------------------------
    # Resource / action
    # ------------------------------------------------------------------

    def check(self, identity: Identity, resource: str, action: str) -> tuple[bool, str]:
        return check_capability(identity, resource, action)

    def authorize(self, identity: Identity, resource: str, action: str) -> bool:
        allowed, _ = self.check(identity, resource, action)
        return allowed

    def require(self, identity: Identity, resource: str, action: str) -> None:
        """
        Raises:
            AccessDeniedError: the role does not hold (resource, action).
        """
        allowed, reason = self.check(identity, resource, action)
        if not allowed:
            self._deny(identity, str(resource), str(action), reason)

    # ------------------------------------------------------------------
    # Modules
    # ------------------------------------------------------------------

    def check_module(
        self,
        identity: Identity,
        module_key: str,
        entity_id: UUID | None = None,
    ) -> tuple[bool, str]:
        """
        Both the role-level grant and the Entity-level flag must allow.

        The target Entity is ``entity_id`` or, failing that, the identity's
        session-selected or home Entity.  A target outside the resolved
        scope is denied.
        """
        allowed, reason = check_module_role(identity, module_key)
        if not allowed:
            return (allowed, reason)

        target = entity_id or identity.active_entity_id or identity.home_entity_id
        if target is None:
            return (False, "no target entity")
        if not self._resolver.can_access_entity(identity, target):
            return (False, f"entity {target} is outside the identity's scope")

        module = ModuleKey.parse(module_key)
        if not self._settings.is_module_enabled(target, module):
            return (False, f"module {module.value} is not enabled for entity {target}")
        return (True, "")

    def authorize_module(
        self,
        identity: Identity,
        module_key: str,
        entity_id: UUID | None = None,
    ) -> bool:
        allowed, _ = self.check_module(identity, module_key, entity_id)
        return allowed

    def require_module(
        self,
        identity: Identity,
        module_key: str,
        entity_id: UUID | None = None,
    ) -> None:
        allowed, reason = self.check_module(identity, module_key, entity_id)
        if not allowed:
            self._deny(identity, f"module:{module_key}", "access", reason)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def effective_permissions(self, identity: Identity) -> list[str]:
        """
        Permission strings for UI rendering: ``["*:*"]`` for administrators,
        otherwise ``resource:action`` and ``module:key`` entries.
        """
        if not identity.is_active:
            return []
        if identity.role.is_admin:
            return [WILDCARD_PERMISSION]
        capabilities = sorted(f"{r.value}:{a.value}" for r, a in ENTITY_USER_CAPABILITIES)
        modules = sorted(f"module:{m.value}" for m in ENTITY_USER_MODULES)
        return capabilities + modules

    def _deny(self, identity: Identity, resource: str, action: str, reason: str) -> NoReturn:
        logger.warning(
            "access_denied",
            extra={
                "identity_id": str(identity.identity_id),
                "role": identity.role.value,
                "resource": resource,
                "action": action,
                "reason": reason,
            },
        )
        raise AccessDeniedError(str(identity.identity_id), resource, action, reason)


__all__ = [
    "PermissionGate",
    "Role",
    "WILDCARD_PERMISSION",
    "check_capability",
    "check_module_role",
]

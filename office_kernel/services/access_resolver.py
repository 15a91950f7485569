"""
AccessResolver -- computes the set of Entities an identity may touch.

Responsibility:
    Turns (Role, home Entity) into the set of Entity identifiers an
    identity may read or write, and enforces that every record returned
    to a caller belongs to that set.

Architecture position:
    Kernel > Services -- read-only against the tenancy tables.
    Consumed by the Permission Gate (module checks), every orchestration
    service in office_services, and the external facade.

Invariants enforced:
    - Scope is derived from role + home Entity only.  Nothing is stored on
      the user and nothing is taken from the session: the session's
      active Entity is advisory and re-validated against a fresh
      resolution on every call.
    - Inactive Entities (or Entities of an inactive Account) drop out of
      every scope except PLATFORM_ADMIN's.
    - Fail closed: an empty resolved set filters every query to nothing.

Failure modes:
    - resolve_accessible_entities never raises; an identity with no home
      Entity, an unknown home Entity, or an inactive identity resolves to
      the empty set.
    - require_in_scope / effective_entity raise ScopeViolationError, logged
      at WARNING as ``scope_violation`` (distinct from ``access_denied``).
"""

from typing import NoReturn
from uuid import UUID

from sqlalchemy import Select, false
from sqlalchemy.orm import Session

from office_kernel.domain.dtos import EntityInfo
from office_kernel.domain.identity import Identity
from office_kernel.domain.roles import Role
from office_kernel.exceptions import InactiveEntityError, ScopeViolationError
from office_kernel.logging_config import get_logger
from office_kernel.selectors.tenancy_selector import TenancySelector

logger = get_logger("services.access")


class AccessResolver:
    """
    Entity-scope resolution for an authenticated identity.

    Contract:
        ``resolve_accessible_entities`` is a total function of the identity
        and the tenancy tables at call time.

    Non-goals:
        - Does NOT decide whether a Role may perform an action; that is
          the Permission Gate's job.
        - Does NOT cache: deactivating an Entity takes effect on the next call.
    """

    def __init__(self, session: Session):
        self._session = session
        self._tenancy = TenancySelector(session)

    def resolve_accessible_entities(self, identity: Identity) -> frozenset[UUID]:
        """
        Compute the Entity identifiers this identity may read or write.

        Postconditions:
            - PLATFORM_ADMIN: every Entity that exists, active or not.
            - ACCOUNT_ADMIN: active Entities of the home Entity's Account.
            - ENTITY_ADMIN / ENTITY_USER: ``{home_entity_id}`` when that
              Entity exists and is active, else empty.
            - Inactive identity: empty.
        """
        if not identity.is_active:
            resolved: frozenset[UUID] = frozenset()
        elif identity.role == Role.PLATFORM_ADMIN:
            resolved = self._tenancy.all_entity_ids()
        else:
            resolved = self._resolve_from_home(identity)

        logger.debug(
            "entities_resolved",
            extra={
                "identity_id": str(identity.identity_id),
                "role": identity.role.value,
                "entity_count": len(resolved),
            },
        )
        return resolved

    def _resolve_from_home(self, identity: Identity) -> frozenset[UUID]:
        if identity.home_entity_id is None:
            return frozenset()
        home = self._tenancy.get_entity(identity.home_entity_id)
        if home is None:
            return frozenset()

        if identity.role == Role.ACCOUNT_ADMIN:
            return self._tenancy.active_entity_ids_in_account(home.account_id)

        if not home.is_active:
            return frozenset()
        account = self._tenancy.get_account(home.account_id)
        if account is None or not account.is_active:
            return frozenset()
        return frozenset({home.id})

    def can_access_entity(self, identity: Identity, entity_id: UUID) -> bool:
        return entity_id in self.resolve_accessible_entities(identity)

    def require_in_scope(
        self,
        identity: Identity,
        entity_id: UUID,
        *,
        resource: str | None = None,
        record_id: UUID | None = None,
    ) -> None:
        """
        Reject a record whose owning Entity is outside the resolved scope.

        Must be called with the record's stored owning Entity before the
        record is returned, and never with an Entity id taken on trust
        from the caller.

        Raises:
            ScopeViolationError: ``entity_id`` is not in the resolved set.
        """
        if self.can_access_entity(identity, entity_id):
            return
        self._violation(identity, entity_id, resource, record_id)

    def effective_entity(self, identity: Identity) -> UUID:
        """
        The Entity a request acts in when it does not name one.

        The session-selected Entity wins when it is still in scope; a
        session pointing at an Entity that has since left the scope is
        rejected rather than silently falling back.  Otherwise the home
        Entity is used.

        Raises:
            ScopeViolationError: the candidate Entity is out of scope, or
                the identity has none.
        """
        candidate = identity.active_entity_id or identity.home_entity_id
        if candidate is None:
            self._violation(identity, None, None, None)
        self.require_in_scope(identity, candidate)
        return candidate

    def select_active_entity(self, identity: Identity, entity_id: UUID) -> Identity:
        """
        Roam into another Entity: return a copy of ``identity`` whose
        session-selected Entity is ``entity_id``.

        Raises:
            ScopeViolationError: the Entity is outside the resolved scope.
            InactiveEntityError: the Entity is soft-disabled (reachable only
                by PLATFORM_ADMIN, who may administer but not select it).
        """
        self.require_in_scope(identity, entity_id)
        entity = self._tenancy.get_entity(entity_id)
        if entity is None or not entity.is_active:
            raise InactiveEntityError(str(entity_id))
        logger.info(
            "active_entity_selected",
            extra={"identity_id": str(identity.identity_id), "entity_id": str(entity_id)},
        )
        return identity.with_active_entity(entity_id)

    def list_accessible_entities(self, identity: Identity) -> list[EntityInfo]:
        """Entities in scope, ordered by name, for an Entity picker."""
        return self._tenancy.list_entities(self.resolve_accessible_entities(identity))

    def scope_filter(self, stmt: Select, entity_column, identity: Identity) -> Select:
        """
        Restrict ``stmt`` to rows whose ``entity_column`` is in scope.

        An empty resolved set yields a statement that matches nothing.
        """
        entity_ids = self.resolve_accessible_entities(identity)
        if not entity_ids:
            return stmt.where(false())
        return stmt.where(entity_column.in_(entity_ids))

    def _violation(
        self,
        identity: Identity,
        entity_id: UUID | None,
        resource: str | None,
        record_id: UUID | None,
    ) -> NoReturn:
        logger.warning(
            "scope_violation",
            extra={
                "identity_id": str(identity.identity_id),
                "role": identity.role.value,
                "target_entity_id": str(entity_id) if entity_id else None,
                "resource": resource,
                "record_id": str(record_id) if record_id else None,
            },
        )
        raise ScopeViolationError(
            str(identity.identity_id),
            str(entity_id) if entity_id else "none",
            resource=resource,
            record_id=str(record_id) if record_id else None,
        )

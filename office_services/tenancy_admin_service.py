"""
TenancyAdminService -- lifecycle of Accounts, Entities and Users.

Responsibility:
    Creates Accounts and Entities, soft-disables and re-enables Entities,
    registers Users, and acts as the database-backed Identity Provider
    (``load_identity``).

Architecture position:
    Services layer.  Writes through the caller's session (flush, never
    commit); authority rules are evaluated against the Access Resolver.

Invariants enforced:
    - Only PLATFORM_ADMIN creates Accounts.
    - Entities are created, disabled and re-enabled by PLATFORM_ADMIN, or by
      ACCOUNT_ADMIN inside their own Account.
    - A User's home Entity must be inside the creator's scope and the
      granted Role may not outrank the creator's Role.  ENTITY_USER cannot
      create Users.
    - Entities are never deleted.

Failure modes:
    - DuplicateSlugError / DuplicateUserError from a pre-check, or from the
      IntegrityError of a concurrent insert (savepoint rolled back).
"""

from __future__ import annotations

from typing import Any, Mapping, NoReturn
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from office_kernel.domain.dtos import AccountInfo, EntityInfo, UserInfo
from office_kernel.domain.identity import Identity
from office_kernel.domain.roles import Role
from office_kernel.exceptions import (
    AccessDeniedError,
    AccountNotFoundError,
    DuplicateSlugError,
    DuplicateUserError,
    EntityNotFoundError,
    IdentityNotFoundError,
    InvalidRoleError,
)
from office_kernel.logging_config import get_logger
from office_kernel.models.tenancy import Entity, TenantAccount, User
from office_kernel.selectors.tenancy_selector import (
    TenancySelector,
    entity_to_dto,
    user_to_dto,
)
from office_kernel.services.access_resolver import AccessResolver
from office_kernel.services.base import BaseService

logger = get_logger("services.tenancy_admin")


class TenancyAdminService(BaseService[Entity]):
    """Administration of the tenancy hierarchy."""

    def __init__(self, session: Session, resolver: AccessResolver | None = None):
        super().__init__(session)
        self._resolver = resolver or AccessResolver(session)
        self._tenancy = TenancySelector(session)

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def create_account(self, identity: Identity, name: str, slug: str) -> AccountInfo:
        """
        Raises:
            AccessDeniedError: identity is not PLATFORM_ADMIN.
            DuplicateSlugError: an Account with ``slug`` exists.
        """
        if not identity.is_active or identity.role != Role.PLATFORM_ADMIN:
            self._deny(identity, "accounts", "create", "platform administrators only")

        exists = self.session.execute(
            select(TenantAccount.id).where(TenantAccount.slug == slug)
        ).first()
        if exists is not None:
            raise DuplicateSlugError("-", slug)

        account = TenantAccount(name=name, slug=slug, created_by_id=identity.identity_id)
        self._insert(account, DuplicateSlugError("-", slug))

        logger.info(
            "account_created",
            extra={"account_id": str(account.id), "slug": slug},
        )
        return AccountInfo(
            id=account.id, name=account.name, slug=account.slug, is_active=account.is_active
        )

    # ------------------------------------------------------------------
    # Entities
    # ------------------------------------------------------------------

    def create_entity(
        self,
        identity: Identity,
        account_id: UUID,
        name: str,
        slug: str,
        settings: Mapping[str, Any] | None = None,
    ) -> EntityInfo:
        """
        Create an Entity under ``account_id``.

        Raises:
            AccessDeniedError: not PLATFORM_ADMIN, nor ACCOUNT_ADMIN of
                ``account_id``.
            AccountNotFoundError: no such Account.
            DuplicateSlugError: ``slug`` already used in the Account.
        """
        self._require_account_authority(identity, account_id, "create")
        if self._tenancy.get_account(account_id) is None:
            raise AccountNotFoundError(str(account_id))

        exists = self.session.execute(
            select(Entity.id)
            .where(Entity.account_id == account_id)
            .where(Entity.slug == slug)
        ).first()
        if exists is not None:
            raise DuplicateSlugError(str(account_id), slug)

        entity = Entity(
            account_id=account_id,
            name=name,
            slug=slug,
            settings=dict(settings or {}),
            created_by_id=identity.identity_id,
        )
        self._insert(entity, DuplicateSlugError(str(account_id), slug))

        logger.info(
            "entity_created",
            extra={"entity_id": str(entity.id), "account_id": str(account_id), "slug": slug},
        )
        return entity_to_dto(entity)

    def deactivate_entity(self, identity: Identity, entity_id: UUID) -> EntityInfo:
        """Soft-disable an Entity.  Its records stay; it drops out of scopes."""
        return self._set_entity_active(identity, entity_id, False)

    def reactivate_entity(self, identity: Identity, entity_id: UUID) -> EntityInfo:
        return self._set_entity_active(identity, entity_id, True)

    def _set_entity_active(self, identity: Identity, entity_id: UUID, active: bool) -> EntityInfo:
        entity = self.session.get(Entity, entity_id, populate_existing=True)
        if entity is None:
            raise EntityNotFoundError(str(entity_id))
        action = "reactivate" if active else "deactivate"
        self._require_account_authority(identity, entity.account_id, action)

        entity.is_active = active
        self.session.flush()

        logger.info(
            "entity_reactivated" if active else "entity_deactivated",
            extra={"entity_id": str(entity_id), "identity_id": str(identity.identity_id)},
        )
        return entity_to_dto(entity)

    def _require_account_authority(
        self, identity: Identity, account_id: UUID, action: str
    ) -> None:
        if identity.is_active and identity.role == Role.PLATFORM_ADMIN:
            return
        if identity.is_active and identity.role == Role.ACCOUNT_ADMIN:
            home = (
                self._tenancy.get_entity(identity.home_entity_id)
                if identity.home_entity_id
                else None
            )
            if home is not None and home.account_id == account_id:
                return
        self._deny(identity, "entities", action, "account authority required")

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def create_user(
        self,
        identity: Identity,
        email: str,
        role: Role | str,
        home_entity_id: UUID | None,
        name: str | None = None,
    ) -> UserInfo:
        """
        Register a User.

        Raises:
            AccessDeniedError: creator is not an administrator.
            InvalidRoleError: unknown role, a role above the creator's, or a
                non-platform role without a home Entity.
            ScopeViolationError: home Entity outside the creator's scope.
            DuplicateUserError: ``email`` already registered.
        """
        if not identity.is_active or not identity.role.is_admin:
            self._deny(identity, "users", "create", "administrators only")

        granted = Role.parse(role)
        if granted.outranks(identity.role):
            raise InvalidRoleError(granted.value, f"cannot be granted by {identity.role.value}")
        if home_entity_id is None:
            if granted != Role.PLATFORM_ADMIN:
                raise InvalidRoleError(granted.value, "requires a home entity")
        else:
            self._resolver.require_in_scope(identity, home_entity_id, resource="users")

        normalized_email = email.strip().lower()
        if self._tenancy.get_user_by_email(normalized_email) is not None:
            raise DuplicateUserError(normalized_email)

        user = User(
            email=normalized_email,
            name=name,
            role=granted.value,
            home_entity_id=home_entity_id,
            created_by_id=identity.identity_id,
        )
        self._insert(user, DuplicateUserError(normalized_email))

        logger.info(
            "user_created",
            extra={
                "user_id": str(user.id),
                "role": granted.value,
                "home_entity_id": str(home_entity_id) if home_entity_id else None,
            },
        )
        return user_to_dto(user)

    def deactivate_user(self, identity: Identity, user_id: UUID) -> UserInfo:
        """Disable a User; their identity then resolves to an empty scope."""
        if not identity.is_active or not identity.role.is_admin:
            self._deny(identity, "users", "deactivate", "administrators only")
        user = self.session.get(User, user_id, populate_existing=True)
        if user is None:
            raise IdentityNotFoundError(str(user_id))
        if Role.parse(user.role).outranks(identity.role):
            self._deny(identity, "users", "deactivate", "target outranks the caller")
        if user.home_entity_id is not None:
            self._resolver.require_in_scope(
                identity, user.home_entity_id, resource="users", record_id=user.id
            )

        user.is_active = False
        self.session.flush()
        logger.info("user_deactivated", extra={"user_id": str(user_id)})
        return user_to_dto(user)

    def load_identity(self, user_id: UUID, active_entity_id: UUID | None = None) -> Identity:
        """
        Build the Identity of a stored User.

        Role and home Entity are read fresh on every call so a role change
        or deactivation takes effect on the next request.

        Raises:
            IdentityNotFoundError: no such User.
        """
        user = self._tenancy.get_user(user_id)
        if user is None:
            raise IdentityNotFoundError(str(user_id))
        return Identity(
            identity_id=user.id,
            role=user.role,
            home_entity_id=user.home_entity_id,
            active_entity_id=active_entity_id,
            is_active=user.is_active,
            email=user.email,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _insert(self, row: Any, duplicate_error: Exception) -> None:
        savepoint = self.session.begin_nested()
        try:
            self.session.add(row)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            logger.warning(
                "concurrent_insert_conflict",
                extra={"table": row.__tablename__},
            )
            raise duplicate_error

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

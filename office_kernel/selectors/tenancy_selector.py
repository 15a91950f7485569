"""
TenancySelector -- read-only queries over Accounts, Entities and Users.

Every query reads storage directly; nothing is cached here, so the Access
Resolver always sees the tenancy state as it is at call time.
"""

from uuid import UUID

from sqlalchemy import select

from office_kernel.domain.dtos import AccountInfo, EntityInfo, UserInfo
from office_kernel.domain.roles import Role
from office_kernel.models.tenancy import Entity, TenantAccount, User
from office_kernel.selectors.base import BaseSelector


class TenancySelector(BaseSelector[Entity]):
    """Reads of the tenancy hierarchy."""

    def get_entity(self, entity_id: UUID) -> EntityInfo | None:
        entity = self.session.get(Entity, entity_id, populate_existing=True)
        return entity_to_dto(entity) if entity is not None else None

    def get_account(self, account_id: UUID) -> AccountInfo | None:
        account = self.session.get(TenantAccount, account_id, populate_existing=True)
        if account is None:
            return None
        return AccountInfo(
            id=account.id,
            name=account.name,
            slug=account.slug,
            is_active=account.is_active,
        )

    def get_user(self, user_id: UUID) -> UserInfo | None:
        user = self.session.get(User, user_id, populate_existing=True)
        return user_to_dto(user) if user is not None else None

    def get_user_by_email(self, email: str) -> UserInfo | None:
        user = self.session.execute(
            select(User).where(User.email == email)
        ).scalar_one_or_none()
        return user_to_dto(user) if user is not None else None

    def all_entity_ids(self) -> frozenset[UUID]:
        """Every Entity that exists, active or not."""
        return frozenset(self.session.execute(select(Entity.id)).scalars())

    def active_entity_ids_in_account(self, account_id: UUID) -> frozenset[UUID]:
        """Active Entities of an Account; empty when the Account itself is inactive."""
        rows = self.session.execute(
            select(Entity.id)
            .join(TenantAccount, TenantAccount.id == Entity.account_id)
            .where(Entity.account_id == account_id)
            .where(Entity.is_active.is_(True))
            .where(TenantAccount.is_active.is_(True))
        ).scalars()
        return frozenset(rows)

    def list_entities(self, entity_ids: frozenset[UUID]) -> list[EntityInfo]:
        """Entities with the given ids, ordered by name."""
        if not entity_ids:
            return []
        entities = self.session.execute(
            select(Entity).where(Entity.id.in_(entity_ids)).order_by(Entity.name, Entity.slug)
        ).scalars()
        return [entity_to_dto(e) for e in entities]


def entity_to_dto(entity: Entity) -> EntityInfo:
    return EntityInfo(
        id=entity.id,
        account_id=entity.account_id,
        name=entity.name,
        slug=entity.slug,
        is_active=entity.is_active,
        settings=dict(entity.settings or {}),
    )


def user_to_dto(user: User) -> UserInfo:
    return UserInfo(
        id=user.id,
        email=user.email,
        name=user.name,
        role=Role.parse(user.role),
        home_entity_id=user.home_entity_id,
        is_active=user.is_active,
    )

"""
Module: office_kernel.models.tenancy
Responsibility: ORM persistence for the three-level tenancy hierarchy:
    TenantAccount (billing/ownership grouping) -> Entity (business unit
    owning all operational records) -> User (authenticated principal with
    a Role and a home Entity).
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ enums only.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Entity slug is unique within its owning Account (uq_entity_account_slug).
    - Account slug and User email are globally unique.
    - Entities are soft-disabled (is_active=False), never deleted.  There is
      no per-user allow-list: scope is fully determined by role + home Entity.

Failure modes:
    - IntegrityError on duplicate slug / email (services translate these
      into DuplicateSlugError / DuplicateUserError).
"""

from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Boolean, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from office_kernel.db.base import TrackedBase, UUIDString
from office_kernel.domain.roles import Role


class TenantAccount(TrackedBase):
    """
    Top-level tenant grouping.  Owns zero or more Entities.

    Created by platform operators and rarely mutated.
    """

    __tablename__ = "tenant_accounts"

    __table_args__ = (
        UniqueConstraint("slug", name="uq_tenant_account_slug"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    slug: Mapped[str] = mapped_column(String(100), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<TenantAccount {self.slug}>"


class Entity(TrackedBase):
    """
    Business unit owning clients, jobs, invoices, timesheets and payroll.

    ``settings`` is a free-form map holding per-Entity configuration such
    as ``enabled_modules``, VAT rates and withholding-rate overrides.  It
    is replaced wholesale on write, never mutated in place.
    """

    __tablename__ = "entities"

    __table_args__ = (
        UniqueConstraint("account_id", "slug", name="uq_entity_account_slug"),
        Index("idx_entity_account", "account_id"),
        Index("idx_entity_active", "is_active"),
    )

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("tenant_accounts.id"),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    slug: Mapped[str] = mapped_column(String(100), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    settings: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    def __repr__(self) -> str:
        return f"<Entity {self.slug} (account {self.account_id})>"


class User(TrackedBase):
    """
    Authenticated principal.

    ``home_entity_id`` is nullable at the schema level so that an orphaned
    principal (home Entity never assigned) is representable; such a user
    resolves to an empty scope.
    """

    __tablename__ = "users"

    __table_args__ = (
        UniqueConstraint("email", name="uq_user_email"),
        Index("idx_user_home_entity", "home_entity_id"),
    )

    email: Mapped[str] = mapped_column(String(255), nullable=False)

    name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    role: Mapped[Role] = mapped_column(String(20), nullable=False)

    home_entity_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("entities.id"),
        nullable=True,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<User {self.email} ({self.role})>"

"""
DTOs -- immutable records returned across the service boundary.

Responsibility:
    Services and selectors never hand ORM instances to callers; they
    convert them into these frozen dataclasses at the boundary.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  The conversion from ORM rows
    happens in services/ and selectors/, never here.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any
from uuid import UUID

from office_kernel.domain.roles import Role


@dataclass(frozen=True)
class AccountInfo:
    id: UUID
    name: str
    slug: str
    is_active: bool


@dataclass(frozen=True)
class EntityInfo:
    id: UUID
    account_id: UUID
    name: str
    slug: str
    is_active: bool
    settings: dict[str, Any] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class UserInfo:
    id: UUID
    email: str
    name: str | None
    role: Role
    home_entity_id: UUID | None
    is_active: bool


@dataclass(frozen=True)
class CounterpartyInfo:
    id: UUID
    entity_id: UUID
    kind: str
    name: str
    company_name: str | None
    reference_code: str
    tax_status: str | None


@dataclass(frozen=True)
class DocumentInfo:
    """A monetary document with its derivation inputs and stored outputs."""

    id: UUID
    entity_id: UUID
    kind: str
    series_key: str
    code: str
    sequence_value: int | None
    counterparty_id: UUID | None
    line_items: tuple[Decimal, ...]
    tax_status: str | None
    withholding_rate: Decimal | None
    tax_rate: Decimal
    reverse_charge: bool
    discount_kind: str | None
    discount_value: Decimal | None
    subtotal: Decimal
    discount: Decimal
    taxable_base: Decimal
    tax: Decimal
    withholding: Decimal
    total: Decimal

"""
Module: office_kernel.models.counterparty
Responsibility: ORM persistence for the records that carry short alphabetic
    reference codes: clients, subcontractors and suppliers.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - reference_code is unique within the owning Entity
      (uq_counterparty_entity_code) and immutable once issued.
    - tax_status is NULL for counterparties outside the withholding scheme.

Failure modes:
    - IntegrityError on a concurrent insert of the same reference code;
      the counterparty service re-runs allocation.
"""

from enum import Enum
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from office_kernel.db.base import TrackedBase, UUIDString


class CounterpartyKind(str, Enum):
    CLIENT = "client"
    SUBCONTRACTOR = "subcontractor"
    SUPPLIER = "supplier"


class Counterparty(TrackedBase):
    """A client, subcontractor or supplier owned by one Entity."""

    __tablename__ = "counterparties"

    __table_args__ = (
        UniqueConstraint("entity_id", "reference_code", name="uq_counterparty_entity_code"),
        Index("idx_counterparty_entity_kind", "entity_id", "kind"),
    )

    entity_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("entities.id"),
        nullable=False,
    )

    kind: Mapped[CounterpartyKind] = mapped_column(String(20), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    company_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    reference_code: Mapped[str] = mapped_column(String(3), nullable=False)

    # Withholding (CIS) verification status, NULL when not applicable
    tax_status: Mapped[str | None] = mapped_column(String(20), nullable=True)

    def __repr__(self) -> str:
        return f"<Counterparty {self.reference_code}: {self.name}>"

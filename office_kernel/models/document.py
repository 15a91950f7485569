"""
Module: office_kernel.models.document
Responsibility: ORM persistence for monetary documents (invoices, jobs,
    timesheets): the issued code, the derivation inputs, and the stored
    derivation outputs.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - code is unique per (entity_id, series_key) (uq_document_entity_series_code)
      and never changes once issued.
    - Stored outputs (subtotal .. total) are re-derivable from the stored
      inputs (line_items, tax_status, tax_rate, reverse_charge, discount_*).
      Updates rewrite every output together.
    - Line amounts are stored as decimal strings, never floats.
"""

from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, Boolean, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from office_kernel.db.base import TrackedBase, UUIDString


class DocumentKind(str, Enum):
    INVOICE = "invoice"
    JOB = "job"
    TIMESHEET = "timesheet"


class MonetaryDocument(TrackedBase):
    """A document carrying a sequential code and derived monetary totals."""

    __tablename__ = "monetary_documents"

    __table_args__ = (
        UniqueConstraint(
            "entity_id", "series_key", "code", name="uq_document_entity_series_code"
        ),
        Index("idx_document_entity_kind", "entity_id", "kind"),
    )

    entity_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("entities.id"),
        nullable=False,
    )

    kind: Mapped[DocumentKind] = mapped_column(String(20), nullable=False)

    series_key: Mapped[str] = mapped_column(String(100), nullable=False)

    code: Mapped[str] = mapped_column(String(50), nullable=False)

    # NULL when the code was supplied by the caller
    sequence_value: Mapped[int | None] = mapped_column(nullable=True)

    counterparty_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("counterparties.id"),
        nullable=True,
    )

    # Derivation inputs
    line_items: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    tax_status: Mapped[str | None] = mapped_column(String(20), nullable=True)

    # Withholding percentage in force when the outputs were derived
    withholding_rate: Mapped[Decimal | None] = mapped_column(nullable=True)

    tax_rate: Mapped[Decimal] = mapped_column(nullable=False)

    reverse_charge: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    discount_kind: Mapped[str | None] = mapped_column(String(20), nullable=True)

    discount_value: Mapped[Decimal | None] = mapped_column(nullable=True)

    # Derivation outputs
    subtotal: Mapped[Decimal] = mapped_column(nullable=False)

    discount: Mapped[Decimal] = mapped_column(nullable=False)

    taxable_base: Mapped[Decimal] = mapped_column(nullable=False)

    tax: Mapped[Decimal] = mapped_column(nullable=False)

    withholding: Mapped[Decimal] = mapped_column(nullable=False)

    total: Mapped[Decimal] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<MonetaryDocument {self.code} ({self.kind}) total={self.total}>"

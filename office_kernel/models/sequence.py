"""
Module: office_kernel.models.sequence
Responsibility: Per-(Entity, series) counter rows backing every numeric
    identifier (job, invoice, timesheet numbers).
Architecture position: Kernel > Models.  Written only by
    services/sequence_service.py.

Invariants enforced:
    - One row per (entity_id, series_key) (uq_sequence_entity_series).
    - last_issued only ever increases; rows are never deleted.
    - No foreign key to entities: the counter is incremented in its own
      short transaction, which must not wait on an uncommitted Entity row
      held by the caller's transaction.
"""

from uuid import UUID

from sqlalchemy import BigInteger, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from office_kernel.db.base import Base, UUIDString


class SequenceCounter(Base):
    """Counter row: the last value issued for one (Entity, series) pair."""

    __tablename__ = "sequence_counters"

    __table_args__ = (
        UniqueConstraint("entity_id", "series_key", name="uq_sequence_entity_series"),
    )

    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    # "job", "invoice", "timesheet" or a prefixed key such as "invoice:ABC"
    series_key: Mapped[str] = mapped_column(String(100), nullable=False)

    last_issued: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<SequenceCounter {self.entity_id}/{self.series_key}={self.last_issued}>"

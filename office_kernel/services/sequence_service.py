"""
SequenceAllocator -- collision-safe identifiers for one (Entity, series) pair.

Responsibility:
    Issues the next number of a numeric series (job, invoice, timesheet
    numbers) from a per-(Entity, series) counter row, and allocates the
    three-letter reference codes carried by counterparties, walking a
    bounded list of alternatives when the preferred code is taken.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by the document and counterparty services in office_services
    and by the external facade.

Invariants enforced:
    - Within one (Entity, series) pair issued values strictly increase and
      are never reused.  The counter is advanced by a single atomic
      ``UPDATE ... SET last_issued = last_issued + 1 RETURNING`` so two
      concurrent callers can never observe the same pre-increment value.
      The aggregate-max-plus-one pattern is never used.
    - Each increment runs in its own short transaction, committed before
      the value is returned.  A value stays consumed even if the caller's
      document transaction later rolls back: gaps are allowed, duplicates
      are not.
    - The short-code walk is bounded at SHORT_CODE_MAX_ATTEMPTS candidates;
      exhaustion is reported, never looped past, never resolved to a
      colliding code.

Failure modes:
    - IntegrityError: concurrent creation of the same counter row.  Handled
      by rolling back the savepoint and re-running the atomic increment.
    - TransientStorageError: any other storage failure during the increment.
      The autonomous transaction is rolled back whole, so the caller may
      retry.
    - InvalidFormatError: caller-supplied short code is not three letters
      A-Z.  Raised before any storage access.
    - SequenceExhaustedError: every candidate of the walk is taken.
    - DuplicateCodeError: caller-supplied numeric-series code already issued.
"""

from dataclasses import dataclass
from typing import Mapping
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from office_kernel.db.engine import get_session_factory
from office_kernel.domain.reference_code import (
    DEFAULT_SERIES_FORMATS,
    REFERENCE_CODE_SERIES,
    SHORT_CODE_MAX_ATTEMPTS,
    SeriesFormat,
    candidate_walk,
    derive_base_candidate,
    format_series_value,
    validate_short_code,
)
from office_kernel.exceptions import (
    DuplicateCodeError,
    InvalidFormatError,
    SequenceExhaustedError,
    TransientStorageError,
)
from office_kernel.logging_config import LogContext, get_logger
from office_kernel.models.counterparty import Counterparty
from office_kernel.models.document import MonetaryDocument
from office_kernel.models.sequence import SequenceCounter

logger = get_logger("services.sequence")


@dataclass(frozen=True)
class AllocatedCode:
    """An issued code and, for counter-backed series, the raw counter value."""

    code: str
    sequence_value: int | None = None


class SequenceAllocator:
    """
    Allocation of numeric series values and short reference codes.

    Contract:
        ``next_value`` returns a value strictly greater than every value
        previously issued for the same (Entity, series).  Probes for
        caller-supplied and short codes read through the caller's session,
        so records the caller has flushed but not committed are seen.

    Non-goals:
        - Does NOT hand values back on rollback; issued values are consumed.
        - Does NOT cache a "next value" in process memory.
    """

    def __init__(
        self,
        session: Session,
        session_factory: sessionmaker[Session] | None = None,
        series_formats: Mapping[str, SeriesFormat] | None = None,
    ):
        """
        Args:
            session: Caller's session, used only for uniqueness probes.
            session_factory: Source of the short autonomous transactions
                that advance counters.  Defaults to the engine's factory.
            series_formats: Rendering per series base key.
        """
        self._session = session
        self._session_factory = session_factory or get_session_factory()
        self._series_formats = (
            series_formats if series_formats is not None else DEFAULT_SERIES_FORMATS
        )

    # ------------------------------------------------------------------
    # Numeric series
    # ------------------------------------------------------------------

    def next_value(self, entity_id: UUID, series_key: str) -> int:
        """
        Issue the next counter value for (entity_id, series_key).

        The first value issued for a fresh pair is 1.

        Postconditions:
            - The increment is committed before this method returns.

        Raises:
            TransientStorageError: the increment failed and was rolled back.
        """
        with LogContext.bind(entity_id=str(entity_id), series_key=series_key):
            session = self._session_factory()
            try:
                value = self._increment(session, entity_id, series_key)
                session.commit()
            except DBAPIError as exc:
                session.rollback()
                logger.warning("sequence_increment_failed", exc_info=True)
                raise TransientStorageError(
                    "sequence_increment", str(getattr(exc, "orig", None) or exc)
                ) from exc
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()

            logger.debug("sequence_allocated", extra={"value": value})
            return value

    def _increment(self, session: Session, entity_id: UUID, series_key: str) -> int:
        increment = (
            update(SequenceCounter)
            .where(SequenceCounter.entity_id == entity_id)
            .where(SequenceCounter.series_key == series_key)
            .values(last_issued=SequenceCounter.last_issued + 1)
            .returning(SequenceCounter.last_issued)
            .execution_options(synchronize_session=False)
        )

        value = session.execute(increment).scalar_one_or_none()
        if value is not None:
            return value

        # First use of this pair.  A concurrent creator may insert the same
        # row; the savepoint keeps that failure from aborting the transaction.
        savepoint = session.begin_nested()
        try:
            session.add(
                SequenceCounter(entity_id=entity_id, series_key=series_key, last_issued=1)
            )
            session.flush()
            savepoint.commit()
            return 1
        except IntegrityError:
            logger.debug("sequence_counter_race_retry")
            savepoint.rollback()
            session.expunge_all()
            return session.execute(increment).scalar_one()

    def current_value(self, entity_id: UUID, series_key: str) -> int | None:
        """Last value issued for the pair, or None if nothing was ever issued."""
        return self._session.execute(
            select(SequenceCounter.last_issued)
            .where(SequenceCounter.entity_id == entity_id)
            .where(SequenceCounter.series_key == series_key)
        ).scalar_one_or_none()

    def allocate(
        self,
        entity_id: UUID,
        series_key: str,
        caller_value: str | None = None,
        *,
        primary_name: str | None = None,
        secondary_name: str | None = None,
    ) -> AllocatedCode:
        """
        Allocate a code in any series.

        - ``reference_code`` series: see allocate_short_code.
        - Numeric series with ``caller_value``: the value is accepted if no
          document in the series already carries it; the counter is not
          touched.
        - Numeric series without ``caller_value``: next counter value,
          rendered with the series format (``JOB-0001``, ``ABC7``).

        Raises:
            InvalidFormatError, SequenceExhaustedError, DuplicateCodeError,
            TransientStorageError.
        """
        if series_key == REFERENCE_CODE_SERIES:
            code = self.allocate_short_code(
                entity_id,
                primary_name=primary_name,
                secondary_name=secondary_name,
                requested_code=caller_value,
            )
            return AllocatedCode(code)

        if caller_value is not None:
            return AllocatedCode(self._accept_caller_code(entity_id, series_key, caller_value))

        value = self.next_value(entity_id, series_key)
        return AllocatedCode(
            format_series_value(series_key, value, self._series_formats),
            sequence_value=value,
        )

    def _accept_caller_code(self, entity_id: UUID, series_key: str, caller_value: str) -> str:
        code = caller_value.strip() if isinstance(caller_value, str) else ""
        if not code:
            raise InvalidFormatError(str(caller_value), "a non-empty code")

        existing = self._session.execute(
            select(MonetaryDocument.id)
            .where(MonetaryDocument.entity_id == entity_id)
            .where(MonetaryDocument.series_key == series_key)
            .where(MonetaryDocument.code == code)
        ).first()
        if existing is not None:
            raise DuplicateCodeError(str(entity_id), series_key, code)
        return code

    # ------------------------------------------------------------------
    # Short reference codes
    # ------------------------------------------------------------------

    def allocate_short_code(
        self,
        entity_id: UUID,
        primary_name: str | None = None,
        secondary_name: str | None = None,
        requested_code: str | None = None,
    ) -> str:
        """
        Find a free three-letter reference code for a counterparty.

        The requested code (validated first) or the base derived from the
        names is tried, then the candidate walk.  The first candidate not
        already used by a counterparty of the Entity is returned.

        Raises:
            InvalidFormatError: ``requested_code`` is malformed.
            SequenceExhaustedError: all SHORT_CODE_MAX_ATTEMPTS candidates
                are taken.
        """
        if requested_code is not None:
            base = validate_short_code(requested_code)
        else:
            base = derive_base_candidate(primary_name, secondary_name)

        candidates = list(candidate_walk(base))
        taken = set(
            self._session.execute(
                select(Counterparty.reference_code)
                .where(Counterparty.entity_id == entity_id)
                .where(Counterparty.reference_code.in_(candidates))
            ).scalars()
        )

        for attempt, candidate in enumerate(candidates, start=1):
            if candidate not in taken:
                if attempt > 1:
                    logger.info(
                        "short_code_collision_resolved",
                        extra={
                            "entity_id": str(entity_id),
                            "base_code": base,
                            "code": candidate,
                            "attempts": attempt,
                        },
                    )
                return candidate

        logger.warning(
            "short_code_exhausted",
            extra={"entity_id": str(entity_id), "base_code": base},
        )
        raise SequenceExhaustedError(str(entity_id), base, SHORT_CODE_MAX_ATTEMPTS)

"""
DocumentService -- invoices, jobs and timesheets with derived totals.

Responsibility:
    Creates monetary documents with a sequential human-facing code and
    stores both the derivation inputs and the derived outputs, so every
    stored total can be re-derived and verified later.

Architecture position:
    Services layer.  Orchestrates PermissionGate -> AccessResolver ->
    EntitySettingsStore (tax defaults) -> Derivation Engine ->
    SequenceAllocator -> ORM insert.

Invariants enforced:
    - Financials are derived BEFORE a code is allocated, so invalid input
      never consumes a sequence number.
    - A document's counterparty belongs to the document's Entity.
    - The code never changes after issue; input updates rewrite every
      monetary output together.
    - Stored outputs equal the derivation of the stored inputs, using the
      withholding rate recorded at derivation time.

Failure modes:
    - DuplicateCodeError: caller-supplied code already used in the series,
      found by the pre-check or by the unique constraint on insert.
    - TransientStorageError: the counter increment failed; nothing was
      written and the call may be retried.
    - DerivationDriftError: verify_document_totals found a mismatch.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from office_engines.derivation import (
    CENT,
    DiscountSpec,
    FinancialBreakdown,
    TaxStatus,
    WithholdingRates,
    derive_financials,
)
from office_kernel.domain.dtos import DocumentInfo
from office_kernel.domain.identity import Identity
from office_kernel.domain.reference_code import prefixed_series_key
from office_kernel.domain.roles import Action, ModuleKey, Resource
from office_kernel.exceptions import (
    CounterpartyEntityMismatchError,
    CounterpartyNotFoundError,
    DerivationDriftError,
    DocumentNotFoundError,
    DuplicateCodeError,
)
from office_kernel.logging_config import LogContext, get_logger
from office_kernel.models.counterparty import Counterparty
from office_kernel.models.document import DocumentKind, MonetaryDocument
from office_kernel.services.access_resolver import AccessResolver
from office_kernel.services.base import BaseService
from office_kernel.services.sequence_service import SequenceAllocator
from office_services.permission_gate import PermissionGate
from office_services.settings_store import EntitySettingsStore

logger = get_logger("services.document")

# kind -> (resource, module, series)
_KIND_ROUTING: dict[DocumentKind, tuple[Resource, ModuleKey, str]] = {
    DocumentKind.INVOICE: (Resource.INVOICES, ModuleKey.INVOICES, "invoice"),
    DocumentKind.JOB: (Resource.JOBS, ModuleKey.JOBS, "job"),
    DocumentKind.TIMESHEET: (Resource.TIMESHEETS, ModuleKey.TIMESHEETS, "timesheet"),
}

_OUTPUT_FIELDS = ("subtotal", "discount", "taxable_base", "tax", "withholding", "total")


class _Unchanged:
    def __repr__(self) -> str:
        return "UNCHANGED"


UNCHANGED: Any = _Unchanged()


def _money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT)


def document_to_dto(row: MonetaryDocument) -> DocumentInfo:
    return DocumentInfo(
        id=row.id,
        entity_id=row.entity_id,
        kind=DocumentKind(row.kind).value,
        series_key=row.series_key,
        code=row.code,
        sequence_value=row.sequence_value,
        counterparty_id=row.counterparty_id,
        line_items=tuple(Decimal(v) for v in row.line_items),
        tax_status=row.tax_status,
        withholding_rate=row.withholding_rate,
        tax_rate=row.tax_rate,
        reverse_charge=row.reverse_charge,
        discount_kind=row.discount_kind,
        discount_value=row.discount_value,
        subtotal=_money(row.subtotal),
        discount=_money(row.discount),
        taxable_base=_money(row.taxable_base),
        tax=_money(row.tax),
        withholding=_money(row.withholding),
        total=_money(row.total),
    )


class DocumentService(BaseService[MonetaryDocument]):
    """Creation, update, scoped reads and verification of monetary documents."""

    def __init__(
        self,
        session: Session,
        gate: PermissionGate,
        allocator: SequenceAllocator,
        settings: EntitySettingsStore,
        resolver: AccessResolver | None = None,
    ):
        super().__init__(session)
        self._gate = gate
        self._allocator = allocator
        self._settings = settings
        self._resolver = resolver or AccessResolver(session)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create_document(
        self,
        identity: Identity,
        kind: DocumentKind | str,
        line_items: Iterable[Decimal | int],
        counterparty_id: UUID | None = None,
        entity_id: UUID | None = None,
        code: str | None = None,
        tax_rate: Decimal | int | None = None,
        reverse_charge: bool = False,
        discount: DiscountSpec | None = None,
        tax_status: TaxStatus | str | None = None,
    ) -> DocumentInfo:
        """
        Create a document in ``entity_id`` (default: the identity's
        effective Entity).

        ``tax_rate`` defaults to the Entity's standard VAT rate and
        ``tax_status`` to the counterparty's.  An invoice for a counterparty
        is numbered in that counterparty's own series (``ABC1``, ``ABC2``).

        Raises:
            AccessDeniedError, ScopeViolationError, CounterpartyNotFoundError,
            CounterpartyEntityMismatchError, UnknownTaxStatusError,
            InvalidDiscountError, DuplicateCodeError, InvalidFormatError,
            TransientStorageError.
        """
        kind = DocumentKind(kind)
        resource, _, _ = _KIND_ROUTING[kind]
        self._gate.require(identity, resource.value, Action.CREATE.value)

        if entity_id is None:
            target = self._resolver.effective_entity(identity)
        else:
            self._resolver.require_in_scope(identity, entity_id, resource=resource.value)
            target = entity_id

        with LogContext.bind(identity_id=str(identity.identity_id), entity_id=str(target)):
            return self._create_in_entity(
                identity,
                kind,
                target,
                line_items,
                counterparty_id=counterparty_id,
                code=code,
                tax_rate=tax_rate,
                reverse_charge=reverse_charge,
                discount=discount,
                tax_status=tax_status,
            )

    def _create_in_entity(
        self,
        identity: Identity,
        kind: DocumentKind,
        target: UUID,
        line_items: Iterable[Decimal | int],
        counterparty_id: UUID | None,
        code: str | None,
        tax_rate: Decimal | int | None,
        reverse_charge: bool,
        discount: DiscountSpec | None,
        tax_status: TaxStatus | str | None,
    ) -> DocumentInfo:
        resource, module, series = _KIND_ROUTING[kind]
        self._gate.require_module(identity, module.value, target)

        counterparty = self._load_counterparty(counterparty_id, target)
        if tax_status is None and counterparty is not None:
            tax_status = counterparty.tax_status
        status = TaxStatus.parse(tax_status) if tax_status is not None else None

        amounts = list(line_items)
        rate = self._settings.default_tax_rate(target) if tax_rate is None else tax_rate
        withholding_rates = self._settings.withholding_rates(target)
        breakdown = derive_financials(
            amounts,
            tax_status=status,
            tax_rate=rate,
            reverse_charge=reverse_charge,
            discount_spec=discount,
            withholding_rates=withholding_rates,
        )

        series_key = series
        if kind == DocumentKind.INVOICE and counterparty is not None:
            series_key = prefixed_series_key(series, counterparty.reference_code)
        allocated = self._allocator.allocate(target, series_key, caller_value=code)

        row = MonetaryDocument(
            entity_id=target,
            kind=kind.value,
            series_key=series_key,
            code=allocated.code,
            sequence_value=allocated.sequence_value,
            counterparty_id=counterparty.id if counterparty is not None else None,
            line_items=[str(a) for a in amounts],
            tax_status=status.value if status else None,
            withholding_rate=withholding_rates.rate_for(status) if status else None,
            tax_rate=Decimal(rate),
            reverse_charge=reverse_charge,
            discount_kind=discount.kind.value if discount else None,
            discount_value=discount.value if discount else None,
            created_by_id=identity.identity_id,
        )
        _apply_breakdown(row, breakdown)

        savepoint = self.session.begin_nested()
        try:
            self.session.add(row)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            logger.warning(
                "document_code_conflict",
                extra={"entity_id": str(target), "series_key": series_key, "code": allocated.code},
            )
            raise DuplicateCodeError(str(target), series_key, allocated.code)

        self._resolver.require_in_scope(
            identity, row.entity_id, resource=resource.value, record_id=row.id
        )
        logger.info(
            "document_created",
            extra={
                "entity_id": str(target),
                "document_id": str(row.id),
                "kind": kind.value,
                "code": row.code,
                "total": breakdown.total,
            },
        )
        return document_to_dto(row)

    def _load_counterparty(
        self, counterparty_id: UUID | None, entity_id: UUID
    ) -> Counterparty | None:
        if counterparty_id is None:
            return None
        counterparty = self.session.get(Counterparty, counterparty_id)
        if counterparty is None:
            raise CounterpartyNotFoundError(str(counterparty_id))
        if counterparty.entity_id != entity_id:
            raise CounterpartyEntityMismatchError(str(counterparty_id), str(entity_id))
        return counterparty

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    def update_document_inputs(
        self,
        identity: Identity,
        document_id: UUID,
        *,
        line_items: Iterable[Decimal | int] = UNCHANGED,
        tax_rate: Decimal | int = UNCHANGED,
        reverse_charge: bool = UNCHANGED,
        discount: DiscountSpec | None = UNCHANGED,
        tax_status: TaxStatus | str | None = UNCHANGED,
    ) -> DocumentInfo:
        """
        Change derivation inputs and re-derive every monetary output.

        Arguments left at UNCHANGED keep their stored value; ``discount=None``
        and ``tax_status=None`` clear them.  The code is never touched.

        Raises:
            DocumentNotFoundError, ScopeViolationError, AccessDeniedError,
            UnknownTaxStatusError, InvalidDiscountError.
        """
        row = self._load_document(document_id)
        resource, _, _ = _KIND_ROUTING[DocumentKind(row.kind)]
        self._resolver.require_in_scope(
            identity, row.entity_id, resource=resource.value, record_id=row.id
        )
        self._gate.require(identity, resource.value, Action.UPDATE.value)

        amounts = (
            [Decimal(v) for v in row.line_items] if line_items is UNCHANGED else list(line_items)
        )
        rate = row.tax_rate if tax_rate is UNCHANGED else tax_rate
        reverse = row.reverse_charge if reverse_charge is UNCHANGED else reverse_charge
        spec = _stored_discount(row) if discount is UNCHANGED else discount
        if tax_status is UNCHANGED:
            status = TaxStatus.parse(row.tax_status) if row.tax_status else None
        else:
            status = TaxStatus.parse(tax_status) if tax_status is not None else None

        withholding_rates = self._settings.withholding_rates(row.entity_id)
        breakdown = derive_financials(
            amounts,
            tax_status=status,
            tax_rate=rate,
            reverse_charge=reverse,
            discount_spec=spec,
            withholding_rates=withholding_rates,
        )

        row.line_items = [str(a) for a in amounts]
        row.tax_rate = Decimal(rate)
        row.reverse_charge = reverse
        row.discount_kind = spec.kind.value if spec else None
        row.discount_value = spec.value if spec else None
        row.tax_status = status.value if status else None
        row.withholding_rate = withholding_rates.rate_for(status) if status else None
        _apply_breakdown(row, breakdown)
        self.session.flush()

        logger.info(
            "document_inputs_updated",
            extra={
                "document_id": str(row.id),
                "code": row.code,
                "total": breakdown.total,
            },
        )
        return document_to_dto(row)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_document(self, identity: Identity, document_id: UUID) -> DocumentInfo:
        """
        Raises:
            DocumentNotFoundError: no such document.
            ScopeViolationError: owned by an Entity outside the scope.
            AccessDeniedError: role may not read this kind.
        """
        row = self._load_document(document_id)
        resource, _, _ = _KIND_ROUTING[DocumentKind(row.kind)]
        self._resolver.require_in_scope(
            identity, row.entity_id, resource=resource.value, record_id=row.id
        )
        self._gate.require(identity, resource.value, Action.READ.value)
        return document_to_dto(row)

    def list_documents(
        self,
        identity: Identity,
        kind: DocumentKind | str | None = None,
        entity_id: UUID | None = None,
    ) -> list[DocumentInfo]:
        """Documents in scope, ordered by creation time then code."""
        stmt = select(MonetaryDocument)
        if kind is not None:
            kind = DocumentKind(kind)
            resource, _, _ = _KIND_ROUTING[kind]
            self._gate.require(identity, resource.value, Action.READ.value)
            stmt = stmt.where(MonetaryDocument.kind == kind.value)
        else:
            readable = [
                k.value
                for k, (resource, _, _) in _KIND_ROUTING.items()
                if self._gate.authorize(identity, resource.value, Action.READ.value)
            ]
            stmt = stmt.where(MonetaryDocument.kind.in_(readable))
        if entity_id is not None:
            self._resolver.require_in_scope(identity, entity_id, resource="documents")
            stmt = stmt.where(MonetaryDocument.entity_id == entity_id)
        stmt = self._resolver.scope_filter(stmt, MonetaryDocument.entity_id, identity)
        rows = self.session.execute(
            stmt.order_by(MonetaryDocument.created_at, MonetaryDocument.code)
        ).scalars()
        return [document_to_dto(r) for r in rows]

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def verify_document_totals(self, document_id: UUID) -> DocumentInfo:
        """
        Re-derive a document's outputs from its stored inputs.

        Raises:
            DocumentNotFoundError: no such document.
            DerivationDriftError: a stored output differs from the
                re-derived one (first differing field reported).
        """
        row = self._load_document(document_id)
        status = TaxStatus.parse(row.tax_status) if row.tax_status else None
        rates = (
            WithholdingRates.pinned(status, row.withholding_rate)
            if status is not None and row.withholding_rate is not None
            else None
        )
        derived = derive_financials(
            [Decimal(v) for v in row.line_items],
            tax_status=status,
            tax_rate=row.tax_rate,
            reverse_charge=row.reverse_charge,
            discount_spec=_stored_discount(row),
            withholding_rates=rates,
        )

        for field in _OUTPUT_FIELDS:
            stored = _money(getattr(row, field))
            expected = getattr(derived, field)
            if stored != expected:
                logger.error(
                    "derivation_drift_detected",
                    extra={
                        "document_id": str(row.id),
                        "field": field,
                        "stored": stored,
                        "derived": expected,
                    },
                )
                raise DerivationDriftError(str(row.id), field, str(stored), str(expected))

        logger.debug("document_totals_verified", extra={"document_id": str(row.id)})
        return document_to_dto(row)

    def _load_document(self, document_id: UUID) -> MonetaryDocument:
        row = self.session.get(MonetaryDocument, document_id, populate_existing=True)
        if row is None:
            raise DocumentNotFoundError(str(document_id))
        return row


def _apply_breakdown(row: MonetaryDocument, breakdown: FinancialBreakdown) -> None:
    for field in _OUTPUT_FIELDS:
        setattr(row, field, getattr(breakdown, field))


def _stored_discount(row: MonetaryDocument) -> DiscountSpec | None:
    if row.discount_kind is None:
        return None
    return DiscountSpec(row.discount_kind, Decimal(row.discount_value))

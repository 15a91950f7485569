"""
OfficeCore -- the external interface of the office administration core.

Request handlers build one OfficeCore per request around the request's
session and call it with the Identity supplied by the identity provider.
It wires the Access Resolver, Permission Gate, Sequence Allocator and
Derivation Engine together and exposes the orchestration services.

Usage:
    with session_scope() as session:
        core = OfficeCore(session)
        if not core.authorize(identity, "invoices", "create"):
            return forbidden()
        result = core.allocate_sequence(entity_id, "job")
        if not result.is_success:
            return conflict(result.error, result.message)

Allocation failures the caller is expected to handle (malformed code,
exhausted short-code walk, duplicate code, transient storage failure
after retries) come back as AllocationResult.error, never as exceptions.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from office_config import get_active_config
from office_config.bridges import build_series_formats
from office_config.schema import OfficeConfig
from office_engines import derivation
from office_engines.derivation import (
    DiscountSpec,
    FinancialBreakdown,
    TaxStatus,
    TimesheetPay,
    WithholdingRates,
)
from office_kernel.domain.clock import Clock, SystemClock
from office_kernel.domain.identity import Identity
from office_kernel.exceptions import (
    DuplicateCodeError,
    InvalidFormatError,
    SequenceExhaustedError,
    TransientStorageError,
)
from office_kernel.logging_config import get_logger
from office_kernel.services.access_resolver import AccessResolver
from office_kernel.services.sequence_service import SequenceAllocator
from office_services.counterparty_service import CounterpartyService
from office_services.document_service import DocumentService
from office_services.permission_gate import PermissionGate
from office_services.retry import with_transient_retry
from office_services.settings_store import EntitySettingsStore, SettingsCache
from office_services.tenancy_admin_service import TenancyAdminService

logger = get_logger("services.core")

_EXPECTED_ALLOCATION_ERRORS = (
    InvalidFormatError,
    SequenceExhaustedError,
    DuplicateCodeError,
    TransientStorageError,
)


@dataclass(frozen=True)
class AllocationResult:
    """Outcome of ``allocate_sequence``: a value, or an error code."""

    value: str | None = None
    sequence_value: int | None = None
    error: str | None = None
    message: str | None = None

    @property
    def is_success(self) -> bool:
        return self.error is None


class OfficeCore:
    """Per-request facade over the office services."""

    def __init__(
        self,
        session: Session,
        session_factory: sessionmaker[Session] | None = None,
        config: OfficeConfig | None = None,
        settings_cache: SettingsCache | None = None,
        clock: Clock | None = None,
    ):
        """
        Args:
            session: The request's session; the caller commits it.
            session_factory: Source of the allocator's autonomous
                transactions.  Defaults to the engine's factory.
            config: Defaults to ``get_active_config()``.
            settings_cache: Share one cache across requests so settings
                reads are served from it within the TTL.
        """
        self._session = session
        self._config = config or get_active_config()
        self._clock = clock or SystemClock()

        self.resolver = AccessResolver(session)
        self.settings = EntitySettingsStore(
            session,
            cache=settings_cache
            or SettingsCache(self._config.settings_cache_ttl_seconds, clock=self._clock),
            config=self._config,
            resolver=self.resolver,
        )
        self.gate = PermissionGate(session, settings=self.settings, resolver=self.resolver)
        self.allocator = SequenceAllocator(
            session,
            session_factory=session_factory,
            series_formats=build_series_formats(self._config),
        )
        self.tenancy = TenancyAdminService(session, resolver=self.resolver)
        self.counterparties = CounterpartyService(
            session, self.gate, self.allocator, resolver=self.resolver
        )
        self.documents = DocumentService(
            session, self.gate, self.allocator, self.settings, resolver=self.resolver
        )

    def resolve_accessible_entities(self, identity: Identity) -> list[UUID]:
        """Entity ids in scope, sorted for stable output."""
        return sorted(self.resolver.resolve_accessible_entities(identity), key=str)

    def authorize(self, identity: Identity, resource: str, action: str) -> bool:
        return self.gate.authorize(identity, resource, action)

    def authorize_module(
        self, identity: Identity, module_key: str, entity_id: UUID | None = None
    ) -> bool:
        return self.gate.authorize_module(identity, module_key, entity_id)

    def allocate_sequence(
        self,
        entity_id: UUID,
        series_key: str,
        caller_value: str | None = None,
        *,
        primary_name: str | None = None,
        secondary_name: str | None = None,
    ) -> AllocationResult:
        """
        Allocate a value in ``series_key`` for ``entity_id``.

        Transient storage failures are retried up to
        ``transient_retry_attempts`` times before being reported.
        """
        try:
            allocated = with_transient_retry(
                lambda: self.allocator.allocate(
                    entity_id,
                    series_key,
                    caller_value,
                    primary_name=primary_name,
                    secondary_name=secondary_name,
                ),
                attempts=self._config.transient_retry_attempts,
            )
        except _EXPECTED_ALLOCATION_ERRORS as exc:
            logger.info(
                "allocation_rejected",
                extra={
                    "entity_id": str(entity_id),
                    "series_key": series_key,
                    "error_code": exc.code,
                },
            )
            return AllocationResult(error=exc.code, message=str(exc))
        return AllocationResult(value=allocated.code, sequence_value=allocated.sequence_value)

    def derive_financials(
        self,
        line_items: Iterable[Decimal | int],
        tax_status: TaxStatus | str | None = None,
        tax_rate: Decimal | int | None = None,
        reverse_charge: bool = False,
        discount_spec: DiscountSpec | None = None,
        withholding_rates: WithholdingRates | None = None,
    ) -> FinancialBreakdown:
        return derivation.derive_financials(
            line_items,
            tax_status=tax_status,
            tax_rate=tax_rate,
            reverse_charge=reverse_charge,
            discount_spec=discount_spec,
            withholding_rates=withholding_rates,
        )

    def derive_timesheet_pay(
        self,
        regular_amount: Decimal | int,
        additional_amount: Decimal | int,
        expenses: Decimal | int,
        tax_status: TaxStatus | str,
        entity_id: UUID | None = None,
    ) -> TimesheetPay:
        """Subcontractor pay, using ``entity_id``'s withholding overrides if given."""
        rates = self.settings.withholding_rates(entity_id) if entity_id else None
        return derivation.derive_timesheet_pay(
            regular_amount, additional_amount, expenses, tax_status, rates
        )

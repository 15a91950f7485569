"""
CounterpartyService -- clients, subcontractors and suppliers.

Responsibility:
    Creates counterparties with a collision-free three-letter reference
    code and returns them only to identities whose scope covers the
    owning Entity.

Architecture position:
    Services layer.  Orchestrates PermissionGate -> AccessResolver ->
    SequenceAllocator (short codes) -> ORM insert.

Invariants enforced:
    - reference_code is unique per Entity.  The allocator's probe and the
      unique constraint together guarantee it: a concurrent insert of the
      same code fails on the constraint and allocation is re-run, at most
      MAX_INSERT_ATTEMPTS times.
    - Every record returned has passed a scope check on its stored Entity.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from office_engines.derivation import TaxStatus
from office_kernel.domain.dtos import CounterpartyInfo
from office_kernel.domain.identity import Identity
from office_kernel.domain.roles import Action, ModuleKey, Resource
from office_kernel.exceptions import CounterpartyNotFoundError, SequenceExhaustedError
from office_kernel.logging_config import LogContext, get_logger
from office_kernel.models.counterparty import Counterparty, CounterpartyKind
from office_kernel.services.access_resolver import AccessResolver
from office_kernel.services.base import BaseService
from office_kernel.services.sequence_service import SequenceAllocator
from office_services.permission_gate import PermissionGate

logger = get_logger("services.counterparty")

MAX_INSERT_ATTEMPTS = 3

_KIND_RESOURCE: dict[CounterpartyKind, tuple[Resource, ModuleKey]] = {
    CounterpartyKind.CLIENT: (Resource.CLIENTS, ModuleKey.CLIENTS),
    CounterpartyKind.SUBCONTRACTOR: (Resource.SUBCONTRACTORS, ModuleKey.SUBCONTRACTORS),
    CounterpartyKind.SUPPLIER: (Resource.SUPPLIERS, ModuleKey.SUPPLIERS),
}


def counterparty_to_dto(row: Counterparty) -> CounterpartyInfo:
    return CounterpartyInfo(
        id=row.id,
        entity_id=row.entity_id,
        kind=CounterpartyKind(row.kind).value,
        name=row.name,
        company_name=row.company_name,
        reference_code=row.reference_code,
        tax_status=row.tax_status,
    )


class CounterpartyService(BaseService[Counterparty]):
    """Creation and scoped reads of counterparties."""

    def __init__(
        self,
        session: Session,
        gate: PermissionGate,
        allocator: SequenceAllocator,
        resolver: AccessResolver | None = None,
    ):
        super().__init__(session)
        self._gate = gate
        self._allocator = allocator
        self._resolver = resolver or AccessResolver(session)

    def create_counterparty(
        self,
        identity: Identity,
        kind: CounterpartyKind | str,
        name: str,
        company_name: str | None = None,
        reference_code: str | None = None,
        tax_status: TaxStatus | str | None = None,
        entity_id: UUID | None = None,
    ) -> CounterpartyInfo:
        """
        Create a counterparty in ``entity_id`` (default: the identity's
        effective Entity).

        A requested reference code that is already taken is not an error:
        the next free code of its candidate walk is issued instead.

        Raises:
            AccessDeniedError: role lacks create on the kind's resource, or
                the kind's module is disabled for the Entity.
            ScopeViolationError: target Entity out of scope.
            InvalidFormatError: malformed ``reference_code``.
            SequenceExhaustedError: no free code in the walk.
            UnknownTaxStatusError: ``tax_status`` outside the closed set.
            ValueError: blank ``name``.
        """
        kind = CounterpartyKind(kind)
        resource, _ = _KIND_RESOURCE[kind]
        self._gate.require(identity, resource.value, Action.CREATE.value)

        if entity_id is None:
            target = self._resolver.effective_entity(identity)
        else:
            self._resolver.require_in_scope(identity, entity_id, resource=resource.value)
            target = entity_id

        with LogContext.bind(identity_id=str(identity.identity_id), entity_id=str(target)):
            return self._create_in_entity(
                identity, kind, target, name, company_name, reference_code, tax_status
            )

    def _create_in_entity(
        self,
        identity: Identity,
        kind: CounterpartyKind,
        target: UUID,
        name: str,
        company_name: str | None,
        reference_code: str | None,
        tax_status: TaxStatus | str | None,
    ) -> CounterpartyInfo:
        _, module = _KIND_RESOURCE[kind]
        self._gate.require_module(identity, module.value, target)

        status = TaxStatus.parse(tax_status) if tax_status is not None else None
        if not name or not name.strip():
            raise ValueError("Counterparty name must not be blank")

        for attempt in range(1, MAX_INSERT_ATTEMPTS + 1):
            code = self._allocator.allocate_short_code(
                target,
                primary_name=name,
                secondary_name=company_name,
                requested_code=reference_code,
            )
            row = Counterparty(
                entity_id=target,
                kind=kind.value,
                name=name.strip(),
                company_name=company_name.strip() if company_name else None,
                reference_code=code,
                tax_status=status.value if status else None,
                created_by_id=identity.identity_id,
            )
            savepoint = self.session.begin_nested()
            try:
                self.session.add(row)
                self.session.flush()
                savepoint.commit()
                break
            except IntegrityError:
                savepoint.rollback()
                logger.info(
                    "reference_code_race_retry",
                    extra={"entity_id": str(target), "code": code, "attempt": attempt},
                )
        else:
            raise SequenceExhaustedError(str(target), code, MAX_INSERT_ATTEMPTS)

        logger.info(
            "counterparty_created",
            extra={
                "entity_id": str(target),
                "counterparty_id": str(row.id),
                "kind": kind.value,
                "reference_code": code,
            },
        )
        return counterparty_to_dto(row)

    def get_counterparty(self, identity: Identity, counterparty_id: UUID) -> CounterpartyInfo:
        """
        Raises:
            CounterpartyNotFoundError: no such counterparty.
            ScopeViolationError: owned by an Entity outside the scope.
            AccessDeniedError: role may not read the kind's resource.
        """
        row = self.session.get(Counterparty, counterparty_id)
        if row is None:
            raise CounterpartyNotFoundError(str(counterparty_id))
        resource, _ = _KIND_RESOURCE[CounterpartyKind(row.kind)]
        self._resolver.require_in_scope(
            identity, row.entity_id, resource=resource.value, record_id=row.id
        )
        self._gate.require(identity, resource.value, Action.READ.value)
        return counterparty_to_dto(row)

    def list_counterparties(
        self,
        identity: Identity,
        kind: CounterpartyKind | str | None = None,
        entity_id: UUID | None = None,
    ) -> list[CounterpartyInfo]:
        """Counterparties in scope, ordered by reference code."""
        stmt = select(Counterparty)
        if kind is not None:
            kind = CounterpartyKind(kind)
            resource, _ = _KIND_RESOURCE[kind]
            self._gate.require(identity, resource.value, Action.READ.value)
            stmt = stmt.where(Counterparty.kind == kind.value)
        else:
            readable = [
                k.value
                for k, (resource, _) in _KIND_RESOURCE.items()
                if self._gate.authorize(identity, resource.value, Action.READ.value)
            ]
            stmt = stmt.where(Counterparty.kind.in_(readable))
        if entity_id is not None:
            self._resolver.require_in_scope(identity, entity_id, resource="counterparties")
            stmt = stmt.where(Counterparty.entity_id == entity_id)
        stmt = self._resolver.scope_filter(stmt, Counterparty.entity_id, identity)
        rows = self.session.execute(
            stmt.order_by(Counterparty.entity_id, Counterparty.reference_code)
        ).scalars()
        return [counterparty_to_dto(r) for r in rows]

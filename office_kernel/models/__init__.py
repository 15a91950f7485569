"""Domain models for the office kernel."""

from office_kernel.models.counterparty import Counterparty, CounterpartyKind
from office_kernel.models.document import DocumentKind, MonetaryDocument
from office_kernel.models.sequence import SequenceCounter
from office_kernel.models.tenancy import Entity, TenantAccount, User

__all__ = [
    "TenantAccount",
    "Entity",
    "User",
    "SequenceCounter",
    "Counterparty",
    "CounterpartyKind",
    "MonetaryDocument",
    "DocumentKind",
]

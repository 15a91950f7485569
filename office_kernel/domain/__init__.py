"""
Pure domain layer.

Roles and capability tables, identities, reference-code derivation and
the DTOs returned by services.  NO dependencies on the ORM, the database
or I/O.  All domain objects are immutable and deterministic.
"""

from office_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from office_kernel.domain.dtos import (
    AccountInfo,
    CounterpartyInfo,
    DocumentInfo,
    EntityInfo,
    UserInfo,
)
from office_kernel.domain.identity import Identity
from office_kernel.domain.reference_code import (
    SHORT_CODE_MAX_ATTEMPTS,
    SeriesFormat,
    candidate_walk,
    derive_base_candidate,
    format_series_value,
    validate_short_code,
)
from office_kernel.domain.roles import (
    ADMIN_ROLES,
    ENTITY_USER_CAPABILITIES,
    ENTITY_USER_MODULES,
    Action,
    ModuleKey,
    Resource,
    Role,
)

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "AccountInfo",
    "CounterpartyInfo",
    "DocumentInfo",
    "EntityInfo",
    "UserInfo",
    "Identity",
    "SHORT_CODE_MAX_ATTEMPTS",
    "SeriesFormat",
    "candidate_walk",
    "derive_base_candidate",
    "format_series_value",
    "validate_short_code",
    "ADMIN_ROLES",
    "ENTITY_USER_CAPABILITIES",
    "ENTITY_USER_MODULES",
    "Action",
    "ModuleKey",
    "Resource",
    "Role",
]

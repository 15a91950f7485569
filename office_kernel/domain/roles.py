"""
Roles and capability tables -- the static data behind every authorization check.

Responsibility:
    Defines the closed Role set with its privilege ordering, the resource,
    action and module vocabularies, and the capability tables that the
    Permission Gate consults.  Tables are frozensets so they can be
    enumerated and tested exhaustively.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Roles are a closed, totally ordered set, not a bitmask.
    - ENTITY_USER never holds delete, approve or export on any resource.
    - Unknown vocabulary parses to None; callers treat None as deny.
"""

from __future__ import annotations

from enum import Enum

from office_kernel.exceptions import InvalidRoleError


def _camel(value: str) -> str:
    head, *rest = value.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _pascal(value: str) -> str:
    return "".join(part.capitalize() for part in value.split("_"))


class Role(str, Enum):
    """
    Authorization tier of an identity.

    Ordering by ``rank``: PLATFORM_ADMIN > ACCOUNT_ADMIN > ENTITY_ADMIN
    > ENTITY_USER.
    """

    PLATFORM_ADMIN = "platform_admin"
    ACCOUNT_ADMIN = "account_admin"
    ENTITY_ADMIN = "entity_admin"
    ENTITY_USER = "entity_user"

    @property
    def rank(self) -> int:
        return _ROLE_RANK[self]

    @property
    def is_admin(self) -> bool:
        return self in ADMIN_ROLES

    def outranks(self, other: Role) -> bool:
        return self.rank > other.rank

    @classmethod
    def parse(cls, value: str | Role) -> Role:
        """
        Parse a role from its value, name or CamelCase form.

        ``"entity_admin"``, ``"ENTITY_ADMIN"`` and ``"EntityAdmin"`` all
        yield ``Role.ENTITY_ADMIN``.

        Raises:
            InvalidRoleError: for anything outside the closed set.
        """
        if isinstance(value, Role):
            return value
        for role in cls:
            if value in (role.value, role.name, _pascal(role.value)):
                return role
        raise InvalidRoleError(str(value))


_ROLE_RANK: dict[Role, int] = {
    Role.PLATFORM_ADMIN: 4,
    Role.ACCOUNT_ADMIN: 3,
    Role.ENTITY_ADMIN: 2,
    Role.ENTITY_USER: 1,
}

ADMIN_ROLES: frozenset[Role] = frozenset(
    {Role.PLATFORM_ADMIN, Role.ACCOUNT_ADMIN, Role.ENTITY_ADMIN}
)


class _Vocabulary(str, Enum):
    """Closed string vocabulary; ``parse`` returns None for unknown input."""

    @classmethod
    def parse(cls, value):
        if isinstance(value, cls):
            return value
        for member in cls:
            if value in (member.value, _camel(member.value)):
                return member
        return None


class Resource(_Vocabulary):
    CLIENTS = "clients"
    INVOICES = "invoices"
    TIMESHEETS = "timesheets"
    SUBCONTRACTORS = "subcontractors"
    SUPPLIERS = "suppliers"
    BANK_TRANSACTIONS = "bank_transactions"
    ASSETS = "assets"
    JOBS = "jobs"
    EMPLOYEES = "employees"
    VAT_RETURNS = "vat_returns"
    CIS_RETURNS = "cis_returns"
    QUICK_LINKS = "quick_links"


class Action(_Vocabulary):
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    APPROVE = "approve"
    EXPORT = "export"


class ModuleKey(_Vocabulary):
    DASHBOARD = "dashboard"
    SETTINGS = "settings"
    CLIENTS = "clients"
    SUBCONTRACTORS = "subcontractors"
    EMPLOYEES = "employees"
    SUPPLIERS = "suppliers"
    JOBS = "jobs"
    JOB_PRICES = "job_prices"
    INVOICES = "invoices"
    TIMESHEETS = "timesheets"
    PAYROLL = "payroll"
    BANKING = "banking"
    REPORTS = "reports"
    ASSETS = "assets"
    QUICK_LINKS = "quick_links"


# Modules that are never disabled per Entity.
CORE_MODULES: frozenset[ModuleKey] = frozenset({ModuleKey.DASHBOARD, ModuleKey.SETTINGS})

ALL_MODULES: frozenset[ModuleKey] = frozenset(ModuleKey)


# ---------------------------------------------------------------------------
# Capability tables
# ---------------------------------------------------------------------------

ENTITY_USER_CAPABILITIES: frozenset[tuple[Resource, Action]] = frozenset(
    {
        (Resource.CLIENTS, Action.READ),
        (Resource.CLIENTS, Action.CREATE),
        (Resource.CLIENTS, Action.UPDATE),
        (Resource.INVOICES, Action.READ),
        (Resource.INVOICES, Action.CREATE),
        (Resource.TIMESHEETS, Action.READ),
        (Resource.TIMESHEETS, Action.CREATE),
        (Resource.JOBS, Action.READ),
        (Resource.JOBS, Action.CREATE),
        (Resource.JOBS, Action.UPDATE),
        (Resource.SUBCONTRACTORS, Action.READ),
        (Resource.SUBCONTRACTORS, Action.CREATE),
        (Resource.EMPLOYEES, Action.READ),
        (Resource.EMPLOYEES, Action.CREATE),
        (Resource.ASSETS, Action.READ),
        (Resource.BANK_TRANSACTIONS, Action.READ),
    }
)

ENTITY_USER_MODULES: frozenset[ModuleKey] = frozenset(
    {
        ModuleKey.DASHBOARD,
        ModuleKey.CLIENTS,
        ModuleKey.INVOICES,
        ModuleKey.TIMESHEETS,
        ModuleKey.JOBS,
    }
)

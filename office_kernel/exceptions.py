"""
Typed Exception Hierarchy for the Office Kernel.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from OfficeKernelError:

    OfficeKernelError (base)
    |
    +-- AuthorizationError
    |   +-- AccessDeniedError
    |   +-- ScopeViolationError
    |
    +-- TenancyError
    |   +-- AccountNotFoundError
    |   +-- EntityNotFoundError
    |   +-- IdentityNotFoundError
    |   +-- InactiveEntityError
    |   +-- DuplicateSlugError
    |   +-- DuplicateUserError
    |   +-- InvalidRoleError
    |   +-- InvalidModuleKeyError
    |
    +-- SequenceError
    |   +-- SequenceExhaustedError
    |   +-- InvalidFormatError
    |   +-- DuplicateCodeError
    |
    +-- ConcurrencyError
    |   +-- TransientStorageError
    |
    +-- DerivationError
    |   +-- UnknownTaxStatusError
    |   +-- InvalidDiscountError
    |   +-- DerivationDriftError
    |
    +-- DocumentError
        +-- CounterpartyNotFoundError
        +-- DocumentNotFoundError
        +-- CounterpartyEntityMismatchError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Authorization   | ACCESS_DENIED               | Role/capability or module check failed
                | SCOPE_VIOLATION             | Entity outside the resolved scope
----------------|-----------------------------|-----------------------------------------
Tenancy         | ACCOUNT_NOT_FOUND           | Account ID doesn't exist
                | ENTITY_NOT_FOUND            | Entity ID doesn't exist
                | IDENTITY_NOT_FOUND          | User ID doesn't exist
                | INACTIVE_ENTITY             | Selecting a soft-disabled Entity
                | DUPLICATE_SLUG              | Slug already used in the Account
                | DUPLICATE_USER              | Email already registered
                | INVALID_ROLE                | Unknown role string / escalation
                | INVALID_MODULE_KEY          | Unknown module key in settings
----------------|-----------------------------|-----------------------------------------
Sequence        | SEQUENCE_EXHAUSTED          | Short-code walk found no free code
                | INVALID_FORMAT              | Short code not exactly 3 letters A-Z
                | DUPLICATE_CODE              | Caller-supplied code already issued
----------------|-----------------------------|-----------------------------------------
Concurrency     | TRANSIENT_STORAGE_FAILURE   | Counter increment failed, retryable
----------------|-----------------------------|-----------------------------------------
Derivation      | UNKNOWN_TAX_STATUS          | Tax status outside the closed set
                | INVALID_DISCOUNT            | Negative or malformed discount
                | DERIVATION_DRIFT            | Stored totals differ from re-derived
----------------|-----------------------------|-----------------------------------------
Document        | COUNTERPARTY_NOT_FOUND      | Counterparty ID doesn't exist
                | DOCUMENT_NOT_FOUND          | Document ID doesn't exist
                | COUNTERPARTY_ENTITY_MISMATCH| Counterparty owned by another Entity

===============================================================================
HANDLING PATTERNS
===============================================================================

1. SCOPE VIOLATIONS ARE NOT PERMISSION DENIALS:

    try:
        doc = documents.get_document(identity, document_id)
    except ScopeViolationError as e:
        # Cross-tenant probe: alert, never reveal the record exists
        security_log(e.identity_id, e.entity_id)
    except AccessDeniedError as e:
        return {"error": e.code, "resource": e.resource}

2. RETRY ONLY WHAT IS RETRYABLE:

    except TransientStorageError:
        # Counter increment rolled back cleanly, safe to call again
        retry()
    except SequenceExhaustedError:
        # Ask the user to supply a code manually
        prompt_for_code()

3. UNKNOWN TAX STATUS IS FATAL:

    An UnknownTaxStatusError means stored data is outside the closed
    set. Never default it to a rate.

===============================================================================
"""


class OfficeKernelError(Exception):
    """
    Base exception for all office kernel errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "OFFICE_KERNEL_ERROR"


# Authorization exceptions


class AuthorizationError(OfficeKernelError):
    """Base exception for authorization errors."""

    code: str = "AUTHORIZATION_ERROR"


class AccessDeniedError(AuthorizationError):
    """The identity's Role does not grant the requested capability."""

    code: str = "ACCESS_DENIED"

    def __init__(
        self,
        identity_id: str,
        resource: str,
        action: str,
        reason: str = "",
    ):
        self.identity_id = identity_id
        self.resource = resource
        self.action = action
        self.reason = reason
        detail = f": {reason}" if reason else ""
        super().__init__(
            f"Access denied for {identity_id} on {resource}:{action}{detail}"
        )


class ScopeViolationError(AuthorizationError):
    """
    The target Entity is outside the identity's resolved scope.

    Distinct from AccessDeniedError: the role may hold the capability,
    but the record belongs to another tenant.
    """

    code: str = "SCOPE_VIOLATION"

    def __init__(
        self,
        identity_id: str,
        entity_id: str,
        resource: str | None = None,
        record_id: str | None = None,
    ):
        self.identity_id = identity_id
        self.entity_id = entity_id
        self.resource = resource
        self.record_id = record_id
        super().__init__(
            f"Entity {entity_id} is outside the scope of identity {identity_id}"
        )


# Tenancy exceptions


class TenancyError(OfficeKernelError):
    """Base exception for tenancy model errors."""

    code: str = "TENANCY_ERROR"


class AccountNotFoundError(TenancyError):
    """Account with given ID was not found."""

    code: str = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Account not found: {account_id}")


class EntityNotFoundError(TenancyError):
    """Entity with given ID was not found."""

    code: str = "ENTITY_NOT_FOUND"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"Entity not found: {entity_id}")


class IdentityNotFoundError(TenancyError):
    """User with given ID was not found."""

    code: str = "IDENTITY_NOT_FOUND"

    def __init__(self, identity_id: str):
        self.identity_id = identity_id
        super().__init__(f"Identity not found: {identity_id}")


class InactiveEntityError(TenancyError):
    """Entity is soft-disabled and cannot be selected or written to."""

    code: str = "INACTIVE_ENTITY"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"Entity is inactive: {entity_id}")


class DuplicateSlugError(TenancyError):
    """Entity slug already exists within the owning Account."""

    code: str = "DUPLICATE_SLUG"

    def __init__(self, account_id: str, slug: str):
        self.account_id = account_id
        self.slug = slug
        super().__init__(f"Slug '{slug}' already exists in account {account_id}")


class DuplicateUserError(TenancyError):
    """A user with the same email already exists."""

    code: str = "DUPLICATE_USER"

    def __init__(self, email: str):
        self.email = email
        super().__init__(f"User already exists: {email}")


class InvalidRoleError(TenancyError):
    """Role string is not one of the closed set, or the grant would escalate."""

    code: str = "INVALID_ROLE"

    def __init__(self, role: str, reason: str = "unknown role"):
        self.role = role
        self.reason = reason
        super().__init__(f"Invalid role '{role}': {reason}")


class InvalidModuleKeyError(TenancyError):
    """Module key is not in the module catalogue."""

    code: str = "INVALID_MODULE_KEY"

    def __init__(self, module_key: str):
        self.module_key = module_key
        super().__init__(f"Unknown module key: {module_key}")


# Sequence exceptions


class SequenceError(OfficeKernelError):
    """Base exception for sequence and reference-code allocation errors."""

    code: str = "SEQUENCE_ERROR"


class SequenceExhaustedError(SequenceError):
    """
    The bounded candidate walk found no free short code.

    Retryable only with different input (a caller-supplied code).
    """

    code: str = "SEQUENCE_EXHAUSTED"

    def __init__(self, entity_id: str, base_code: str, attempts: int):
        self.entity_id = entity_id
        self.base_code = base_code
        self.attempts = attempts
        super().__init__(
            f"Unable to generate a unique code from '{base_code}' after "
            f"{attempts} attempts; please supply one manually"
        )


class InvalidFormatError(SequenceError):
    """Caller-supplied value does not match the series format."""

    code: str = "INVALID_FORMAT"

    def __init__(self, value: str, expected: str):
        self.value = value
        self.expected = expected
        super().__init__(f"Invalid code '{value}': expected {expected}")


class DuplicateCodeError(SequenceError):
    """Caller-supplied code has already been issued in this series."""

    code: str = "DUPLICATE_CODE"

    def __init__(self, entity_id: str, series_key: str, value: str):
        self.entity_id = entity_id
        self.series_key = series_key
        self.value = value
        super().__init__(
            f"Code '{value}' already exists in series {series_key} "
            f"for entity {entity_id}"
        )


# Concurrency exceptions


class ConcurrencyError(OfficeKernelError):
    """Base exception for concurrency errors."""

    code: str = "CONCURRENCY_ERROR"


class TransientStorageError(ConcurrencyError):
    """
    Storage failed during an atomic step that was fully rolled back.

    Eligible for caller-level retry.
    """

    code: str = "TRANSIENT_STORAGE_FAILURE"

    def __init__(self, operation: str, detail: str = ""):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Transient storage failure during {operation}: {detail}")


# Derivation exceptions


class DerivationError(OfficeKernelError):
    """Base exception for financial derivation errors."""

    code: str = "DERIVATION_ERROR"


class UnknownTaxStatusError(DerivationError):
    """Counterparty tax status is outside the closed set. Fatal."""

    code: str = "UNKNOWN_TAX_STATUS"

    def __init__(self, tax_status: str):
        self.tax_status = tax_status
        super().__init__(f"Unknown tax status: {tax_status!r}")


class InvalidDiscountError(DerivationError):
    """Discount definition is malformed."""

    code: str = "INVALID_DISCOUNT"

    def __init__(self, kind: str, value: str, reason: str):
        self.kind = kind
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {kind} discount {value}: {reason}")


class DerivationDriftError(DerivationError):
    """Stored monetary outputs differ from a fresh derivation of the inputs."""

    code: str = "DERIVATION_DRIFT"

    def __init__(self, document_id: str, field: str, stored: str, derived: str):
        self.document_id = document_id
        self.field = field
        self.stored = stored
        self.derived = derived
        super().__init__(
            f"Document {document_id} {field} drifted: stored {stored}, "
            f"derived {derived}"
        )


# Document exceptions


class DocumentError(OfficeKernelError):
    """Base exception for document and counterparty errors."""

    code: str = "DOCUMENT_ERROR"


class CounterpartyNotFoundError(DocumentError):
    """Counterparty with given ID was not found."""

    code: str = "COUNTERPARTY_NOT_FOUND"

    def __init__(self, counterparty_id: str):
        self.counterparty_id = counterparty_id
        super().__init__(f"Counterparty not found: {counterparty_id}")


class DocumentNotFoundError(DocumentError):
    """Document with given ID was not found."""

    code: str = "DOCUMENT_NOT_FOUND"

    def __init__(self, document_id: str):
        self.document_id = document_id
        super().__init__(f"Document not found: {document_id}")


class CounterpartyEntityMismatchError(DocumentError):
    """Counterparty belongs to a different Entity than the document."""

    code: str = "COUNTERPARTY_ENTITY_MISMATCH"

    def __init__(self, counterparty_id: str, entity_id: str):
        self.counterparty_id = counterparty_id
        self.entity_id = entity_id
        super().__init__(
            f"Counterparty {counterparty_id} does not belong to entity {entity_id}"
        )


# Errors a caller may retry without changing its input.
RETRYABLE_ERRORS: tuple[type[OfficeKernelError], ...] = (
    TransientStorageError,
)

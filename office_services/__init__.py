"""
Module: office_services
Responsibility:
    Stateful orchestration over the kernel: authorization, Entity settings,
    tenancy administration, counterparties and monetary documents, and the
    OfficeCore facade that external callers use.

Architecture position:
    Services -- top layer.  May import office_kernel, office_engines and
    office_config.  Nothing imports office_services.
"""

from office_services.core import AllocationResult, OfficeCore
from office_services.counterparty_service import CounterpartyService
from office_services.document_service import UNCHANGED, DocumentService
from office_services.permission_gate import PermissionGate
from office_services.retry import with_transient_retry
from office_services.settings_store import EntitySettingsStore, SettingsCache
from office_services.tenancy_admin_service import TenancyAdminService

__all__ = [
    "AllocationResult",
    "CounterpartyService",
    "DocumentService",
    "EntitySettingsStore",
    "OfficeCore",
    "PermissionGate",
    "SettingsCache",
    "TenancyAdminService",
    "UNCHANGED",
    "with_transient_retry",
]

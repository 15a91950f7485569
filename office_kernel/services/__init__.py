"""Kernel services: scope resolution and identifier allocation."""

from office_kernel.services.access_resolver import AccessResolver
from office_kernel.services.base import BaseService
from office_kernel.services.sequence_service import AllocatedCode, SequenceAllocator

__all__ = [
    "AccessResolver",
    "AllocatedCode",
    "BaseService",
    "SequenceAllocator",
]

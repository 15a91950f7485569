"""Read-only selectors for the office kernel."""

from office_kernel.selectors.base import BaseSelector
from office_kernel.selectors.tenancy_selector import TenancySelector

__all__ = ["BaseSelector", "TenancySelector"]

"""
OfficeConfig schema.

Frozen dataclasses the YAML loader parses into.  This is the only shape
configuration takes at runtime.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class ModuleDef:
    """An entry of the module catalogue."""

    key: str
    label: str
    core: bool = False  # core modules cannot be disabled per Entity


@dataclass(frozen=True)
class SeriesFormatDef:
    """Rendering of a numeric series: prefix + number zero-padded to width."""

    series: str
    prefix: str
    width: int = 0


@dataclass(frozen=True)
class TaxDefaults:
    """Platform-wide tax defaults; each Entity may override them in settings."""

    vat_standard_rate: Decimal = Decimal("20")
    vat_reduced_rate: Decimal = Decimal("5")
    withholding_unverified_rate: Decimal = Decimal("30")
    withholding_verified_net_rate: Decimal = Decimal("20")
    withholding_verified_gross_rate: Decimal = Decimal("0")

    def as_settings(self) -> dict[str, str]:
        """Defaults in the string form stored in an Entity settings map."""
        return {
            "vat_standard_rate": str(self.vat_standard_rate),
            "vat_reduced_rate": str(self.vat_reduced_rate),
            "withholding_unverified_rate": str(self.withholding_unverified_rate),
            "withholding_verified_net_rate": str(self.withholding_verified_net_rate),
            "withholding_verified_gross_rate": str(self.withholding_verified_gross_rate),
        }


@dataclass(frozen=True)
class OfficeConfig:
    """Complete runtime configuration."""

    version: str
    modules: tuple[ModuleDef, ...]
    series: tuple[SeriesFormatDef, ...]
    tax: TaxDefaults
    settings_cache_ttl_seconds: float = 30.0
    transient_retry_attempts: int = 3
    database_url: str | None = None
    checksum: str = ""

    @property
    def module_keys(self) -> frozenset[str]:
        return frozenset(m.key for m in self.modules)

    @property
    def core_module_keys(self) -> frozenset[str]:
        return frozenset(m.key for m in self.modules if m.core)

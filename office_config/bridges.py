"""
Config -> Kernel / Engine Bridges.

Convert OfficeConfig values into the inputs the kernel and engines take.
These live in office_config (the producer) because the kernel must NEVER
import office_config.

Usage:
    config = get_active_config()
    allocator = SequenceAllocator(session, series_formats=build_series_formats(config))
"""

from __future__ import annotations

from office_config.schema import OfficeConfig
from office_engines.derivation import WithholdingRates
from office_kernel.domain.reference_code import SeriesFormat


def build_series_formats(config: OfficeConfig) -> dict[str, SeriesFormat]:
    return {s.series: SeriesFormat(prefix=s.prefix, width=s.width) for s in config.series}


def build_withholding_rates(config: OfficeConfig) -> WithholdingRates:
    return WithholdingRates(
        unverified=config.tax.withholding_unverified_rate,
        verified_net=config.tax.withholding_verified_net_rate,
        verified_gross=config.tax.withholding_verified_gross_rate,
    )

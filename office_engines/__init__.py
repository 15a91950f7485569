"""
Module: office_engines
Responsibility:
    Package entrypoint re-exporting the pure calculation engines.  The
    canonical import surface for office_services.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import office_kernel exceptions and logging.
    MUST NOT import office_services or office_config.

Invariants enforced:
    - Decimal-only arithmetic; floats raise TypeError.
    - Determinism: identical inputs always produce identical outputs.

Usage:
    from office_engines import DiscountSpec, derive_financials, withholding
"""

from office_engines.derivation import (
    DEFAULT_TAX_RATE,
    WITHHOLDING_RATES,
    DiscountKind,
    DiscountSpec,
    FinancialBreakdown,
    TaxStatus,
    TimesheetPay,
    WithholdingRates,
    derive_financials,
    derive_timesheet_pay,
    discount,
    tax,
    total,
    withholding,
)

__all__ = [
    "DEFAULT_TAX_RATE",
    "WITHHOLDING_RATES",
    "DiscountKind",
    "DiscountSpec",
    "FinancialBreakdown",
    "TaxStatus",
    "TimesheetPay",
    "WithholdingRates",
    "derive_financials",
    "derive_timesheet_pay",
    "discount",
    "tax",
    "total",
    "withholding",
]

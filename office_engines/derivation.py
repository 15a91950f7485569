"""
Financial Derivation Engine - withholding, VAT, discounts and totals.

Pure functions with no I/O.  Rates and statuses arrive as parameters;
Entity-level defaults are resolved by the caller.

Rules:
    withholding  = gross * rate(tax_status)       30% / 20% / 0%
    tax          = base * rate / 100, or 0 when reverse-charged
    discount     = fixed amount, or subtotal * pct / 100
    total        = subtotal - discount + tax - withholding

Discount is applied before tax; tax and withholding are both computed on
the post-discount base.  Every component is rounded to 0.01 (half-up) and
the total is computed from the rounded components, so stored totals can
be re-derived exactly from stored inputs.

Usage:
    from decimal import Decimal
    from office_engines.derivation import DiscountSpec, derive_financials

    breakdown = derive_financials(
        [Decimal("600"), Decimal("400")],
        tax_status=None,
        tax_rate=Decimal("20"),
        discount_spec=DiscountSpec.percentage(Decimal("10")),
    )
    print(breakdown.total)  # 1080.00
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Iterable, Mapping

from office_kernel.exceptions import InvalidDiscountError, UnknownTaxStatusError
from office_kernel.logging_config import get_logger

logger = get_logger("engines.derivation")

CENT = Decimal("0.01")
HUNDRED = Decimal("100")
ZERO = Decimal("0")

DEFAULT_TAX_RATE = Decimal("20")


def _as_decimal(value: Any, name: str) -> Decimal:
    """Accept Decimal or int; floats are rejected outright."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        return Decimal(value)
    raise TypeError(f"{name} must be Decimal or int, got {type(value).__name__}")


def _round(amount: Decimal) -> Decimal:
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


class TaxStatus(str, Enum):
    """Counterparty verification status for withholding (CIS)."""

    UNVERIFIED = "unverified"
    VERIFIED_NET = "verified_net"
    VERIFIED_GROSS = "verified_gross"

    @classmethod
    def parse(cls, value: TaxStatus | str) -> TaxStatus:
        """
        Parse a tax status from any of its stored spellings.

        Raises:
            UnknownTaxStatusError: for anything outside the closed set.
        """
        if isinstance(value, TaxStatus):
            return value
        status = _TAX_STATUS_ALIASES.get(value) if isinstance(value, str) else None
        if status is None:
            raise UnknownTaxStatusError(str(value))
        return status


_TAX_STATUS_ALIASES: dict[str, TaxStatus] = {
    "Unverified": TaxStatus.UNVERIFIED,
    "VerifiedNet": TaxStatus.VERIFIED_NET,
    "VerifiedGross": TaxStatus.VERIFIED_GROSS,
    "NOT_VERIFIED": TaxStatus.UNVERIFIED,
    "UNVERIFIED": TaxStatus.UNVERIFIED,
    "VERIFIED_NET": TaxStatus.VERIFIED_NET,
    "VERIFIED_GROSS": TaxStatus.VERIFIED_GROSS,
    "unverified": TaxStatus.UNVERIFIED,
    "verified_net": TaxStatus.VERIFIED_NET,
    "verified_gross": TaxStatus.VERIFIED_GROSS,
}


@dataclass(frozen=True)
class WithholdingRates:
    """Withholding percentages per tax status."""

    unverified: Decimal = Decimal("30")
    verified_net: Decimal = Decimal("20")
    verified_gross: Decimal = Decimal("0")

    def __post_init__(self) -> None:
        for name in ("unverified", "verified_net", "verified_gross"):
            rate = _as_decimal(getattr(self, name), name)
            if rate < ZERO or rate > HUNDRED:
                raise ValueError(f"Withholding rate {name} must be within 0..100")
            object.__setattr__(self, name, rate)

    def rate_for(self, status: TaxStatus) -> Decimal:
        return {
            TaxStatus.UNVERIFIED: self.unverified,
            TaxStatus.VERIFIED_NET: self.verified_net,
            TaxStatus.VERIFIED_GROSS: self.verified_gross,
        }[status]

    @classmethod
    def from_settings(
        cls, settings: Mapping[str, Any], defaults: WithholdingRates | None = None
    ) -> WithholdingRates:
        """Overlay per-Entity overrides (stored as strings or ints) on ``defaults``."""
        base = defaults or cls()

        def pick(key: str, fallback: Decimal) -> Decimal:
            raw = settings.get(key)
            return fallback if raw is None else Decimal(str(raw))

        return cls(
            unverified=pick("withholding_unverified_rate", base.unverified),
            verified_net=pick("withholding_verified_net_rate", base.verified_net),
            verified_gross=pick("withholding_verified_gross_rate", base.verified_gross),
        )

    @classmethod
    def pinned(cls, status: TaxStatus | str, rate: Decimal | int) -> WithholdingRates:
        """Default rates with the rate for ``status`` replaced by ``rate``."""
        field = TaxStatus.parse(status).value
        return cls(**{field: rate})


WITHHOLDING_RATES = WithholdingRates()


class DiscountKind(str, Enum):
    FIXED = "fixed"
    PERCENTAGE = "percentage"

    @classmethod
    def parse(cls, value: DiscountKind | str) -> DiscountKind:
        if isinstance(value, DiscountKind):
            return value
        if isinstance(value, str):
            for kind in cls:
                if value.lower() == kind.value:
                    return kind
        raise InvalidDiscountError(str(value), "", "unknown discount kind")


@dataclass(frozen=True)
class DiscountSpec:
    """
    A single discount: either a fixed amount or a percentage, never both.

    Negative values are rejected.  Values are not clamped: a discount larger
    than the subtotal yields a negative taxable base.
    """

    kind: DiscountKind
    value: Decimal

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", DiscountKind.parse(self.kind))
        value = _as_decimal(self.value, "discount value")
        if value < ZERO:
            raise InvalidDiscountError(self.kind.value, str(value), "must not be negative")
        object.__setattr__(self, "value", value)

    @classmethod
    def fixed(cls, amount: Decimal | int) -> DiscountSpec:
        return cls(DiscountKind.FIXED, amount)

    @classmethod
    def percentage(cls, percent: Decimal | int) -> DiscountSpec:
        return cls(DiscountKind.PERCENTAGE, percent)


@dataclass(frozen=True)
class FinancialBreakdown:
    """Derived monetary fields of a document, each rounded to 0.01."""

    subtotal: Decimal
    discount: Decimal
    taxable_base: Decimal
    tax: Decimal
    withholding: Decimal
    total: Decimal


@dataclass(frozen=True)
class TimesheetPay:
    """Pay derived for a subcontractor timesheet."""

    gross: Decimal
    withholding: Decimal
    expenses: Decimal
    net: Decimal


# ---------------------------------------------------------------------------
# Component rules
# ---------------------------------------------------------------------------


def withholding(
    gross: Decimal | int,
    tax_status: TaxStatus | str,
    rates: WithholdingRates = WITHHOLDING_RATES,
) -> Decimal:
    """
    Amount withheld from ``gross`` for a counterparty's tax status.

    >>> withholding(Decimal("1000"), "Unverified")
    Decimal('300.00')

    Raises:
        UnknownTaxStatusError: ``tax_status`` is outside the closed set.
        TypeError: ``gross`` is a float.
    """
    amount = _as_decimal(gross, "gross")
    status = TaxStatus.parse(tax_status)
    return _round(amount * rates.rate_for(status) / HUNDRED)


def tax(
    amount: Decimal | int,
    rate: Decimal | int = DEFAULT_TAX_RATE,
    reverse_charge: bool = False,
) -> Decimal:
    """VAT on ``amount`` at ``rate`` percent; zero when reverse-charged."""
    base = _as_decimal(amount, "amount")
    pct = _as_decimal(rate, "rate")
    if pct < ZERO:
        raise ValueError("Tax rate cannot be negative")
    if reverse_charge:
        return _round(ZERO)
    return _round(base * pct / HUNDRED)


def discount(subtotal: Decimal | int, discount_spec: DiscountSpec | None) -> Decimal:
    """Discount amount for ``subtotal``; zero when there is no discount."""
    base = _as_decimal(subtotal, "subtotal")
    if discount_spec is None:
        return _round(ZERO)
    if discount_spec.kind == DiscountKind.FIXED:
        return _round(discount_spec.value)
    return _round(base * discount_spec.value / HUNDRED)


def total(
    subtotal: Decimal | int,
    discount_amount: Decimal | int,
    tax_amount: Decimal | int,
    withholding_amount: Decimal | int,
) -> Decimal:
    """subtotal - discount + tax - withholding."""
    return _round(
        _as_decimal(subtotal, "subtotal")
        - _as_decimal(discount_amount, "discount")
        + _as_decimal(tax_amount, "tax")
        - _as_decimal(withholding_amount, "withholding")
    )


# ---------------------------------------------------------------------------
# Composite derivations
# ---------------------------------------------------------------------------


def derive_financials(
    line_items: Iterable[Decimal | int],
    tax_status: TaxStatus | str | None = None,
    tax_rate: Decimal | int | None = DEFAULT_TAX_RATE,
    reverse_charge: bool = False,
    discount_spec: DiscountSpec | None = None,
    withholding_rates: WithholdingRates | None = None,
) -> FinancialBreakdown:
    """
    Derive every monetary field of a document from its inputs.

    ``tax_status=None`` means the counterparty is outside the withholding
    scheme: withholding is zero.  ``tax_rate=None`` means DEFAULT_TAX_RATE.

    Postconditions:
        - Identical inputs always produce equal, identically represented
          outputs.
        - total == subtotal - discount + tax - withholding exactly.

    Raises:
        UnknownTaxStatusError, InvalidDiscountError, TypeError (floats).
    """
    amounts = [_as_decimal(item, "line item") for item in line_items]
    rates = withholding_rates or WITHHOLDING_RATES

    subtotal = _round(sum(amounts, ZERO))
    discount_amount = discount(subtotal, discount_spec)
    taxable_base = subtotal - discount_amount
    tax_amount = tax(
        taxable_base,
        DEFAULT_TAX_RATE if tax_rate is None else tax_rate,
        reverse_charge,
    )
    withheld = (
        _round(ZERO) if tax_status is None else withholding(taxable_base, tax_status, rates)
    )
    breakdown = FinancialBreakdown(
        subtotal=subtotal,
        discount=discount_amount,
        taxable_base=taxable_base,
        tax=tax_amount,
        withholding=withheld,
        total=total(subtotal, discount_amount, tax_amount, withheld),
    )

    logger.debug(
        "financials_derived",
        extra={
            "line_count": len(amounts),
            "reverse_charge": reverse_charge,
            "tax_status": TaxStatus.parse(tax_status).value if tax_status else None,
            "total": breakdown.total,
        },
    )
    return breakdown


def derive_timesheet_pay(
    regular_amount: Decimal | int,
    additional_amount: Decimal | int,
    expenses: Decimal | int,
    tax_status: TaxStatus | str,
    rates: WithholdingRates | None = None,
) -> TimesheetPay:
    """
    Subcontractor pay: gross = regular + additional, withholding on gross
    only, and expenses reimbursed on top of the net.
    """
    gross = _round(
        _as_decimal(regular_amount, "regular_amount")
        + _as_decimal(additional_amount, "additional_amount")
    )
    expense_amount = _round(_as_decimal(expenses, "expenses"))
    withheld = withholding(gross, tax_status, rates or WITHHOLDING_RATES)
    return TimesheetPay(
        gross=gross,
        withholding=withheld,
        expenses=expense_amount,
        net=gross - withheld + expense_amount,
    )

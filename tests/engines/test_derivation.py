"""
Tests for the Financial Derivation Engine.

Pure functions: no database, no fixtures beyond hypothesis strategies.
"""

from decimal import Decimal

import pytest
from hypothesis import given
from hypothesis import strategies as st

from office_engines.derivation import (
    DiscountKind,
    DiscountSpec,
    TaxStatus,
    WithholdingRates,
    derive_financials,
    derive_timesheet_pay,
    discount,
    tax,
    total,
    withholding,
)
from office_kernel.exceptions import InvalidDiscountError, UnknownTaxStatusError

amounts = st.decimals(
    min_value=Decimal("0"),
    max_value=Decimal("1000000"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)


class TestWithholding:

    @pytest.mark.parametrize(
        "status,expected",
        [
            ("Unverified", Decimal("300.00")),
            ("VerifiedNet", Decimal("200.00")),
            ("VerifiedGross", Decimal("0.00")),
            ("NOT_VERIFIED", Decimal("300.00")),
            ("verified_net", Decimal("200.00")),
            (TaxStatus.VERIFIED_GROSS, Decimal("0.00")),
        ],
    )
    def test_rates(self, status, expected):
        assert withholding(Decimal("1000"), status) == expected

    @pytest.mark.parametrize("status", ["Bogus", "", "verified", None, 3])
    def test_unknown_status_is_fatal(self, status):
        with pytest.raises(UnknownTaxStatusError) as exc_info:
            withholding(Decimal("1000"), status)
        assert exc_info.value.code == "UNKNOWN_TAX_STATUS"

    def test_rounds_half_up(self):
        assert withholding(Decimal("0.05"), "Unverified") == Decimal("0.02")
        assert withholding(Decimal("0.15"), "Unverified") == Decimal("0.05")

    def test_entity_override(self):
        rates = WithholdingRates.from_settings({"withholding_unverified_rate": "25"})
        assert withholding(Decimal("1000"), "Unverified", rates) == Decimal("250.00")
        assert rates.verified_net == Decimal("20")

    def test_pinned_rate(self):
        rates = WithholdingRates.pinned("VerifiedNet", Decimal("18"))
        assert rates.verified_net == Decimal("18")
        assert rates.unverified == Decimal("30")

    def test_rate_out_of_range(self):
        with pytest.raises(ValueError):
            WithholdingRates(unverified=Decimal("101"))

    def test_float_rejected(self):
        with pytest.raises(TypeError):
            withholding(1000.0, "Unverified")


class TestTaxAndDiscount:

    def test_tax(self):
        assert tax(Decimal("900")) == Decimal("180.00")
        assert tax(Decimal("900"), Decimal("5")) == Decimal("45.00")

    def test_reverse_charge_is_zero(self):
        assert tax(Decimal("900"), Decimal("20"), reverse_charge=True) == Decimal("0.00")

    def test_negative_rate(self):
        with pytest.raises(ValueError):
            tax(Decimal("100"), Decimal("-1"))

    def test_fixed_and_percentage_discounts(self):
        assert discount(Decimal("1000"), DiscountSpec.fixed(Decimal("75.5"))) == Decimal("75.50")
        assert discount(Decimal("1000"), DiscountSpec.percentage(10)) == Decimal("100.00")
        assert discount(Decimal("1000"), None) == Decimal("0.00")

    def test_negative_discount_rejected(self):
        with pytest.raises(InvalidDiscountError):
            DiscountSpec.fixed(Decimal("-1"))

    def test_unknown_discount_kind(self):
        with pytest.raises(InvalidDiscountError):
            DiscountSpec("coupon", Decimal("1"))

    def test_discount_kind_parses_strings(self):
        assert DiscountSpec("Percentage", 5).kind is DiscountKind.PERCENTAGE

    def test_total(self):
        assert total(1000, 100, 180, 0) == Decimal("1080.00")


class TestDeriveFinancials:

    def test_discount_before_tax(self):
        result = derive_financials(
            [Decimal("1000")],
            tax_status=None,
            tax_rate=Decimal("20"),
            discount_spec=DiscountSpec.percentage(Decimal("10")),
        )
        assert result.subtotal == Decimal("1000.00")
        assert result.discount == Decimal("100.00")
        assert result.taxable_base == Decimal("900.00")
        assert result.tax == Decimal("180.00")
        assert result.withholding == Decimal("0.00")
        assert result.total == Decimal("1080.00")

    def test_reverse_charged(self):
        result = derive_financials(
            [Decimal("1000")],
            tax_rate=Decimal("20"),
            reverse_charge=True,
            discount_spec=DiscountSpec.percentage(Decimal("10")),
        )
        assert result.tax == Decimal("0.00")
        assert result.total == Decimal("900.00")

    def test_withholding_on_discounted_base(self):
        result = derive_financials(
            [Decimal("600"), Decimal("400")],
            tax_status="Unverified",
            tax_rate=Decimal("20"),
            discount_spec=DiscountSpec.fixed(Decimal("100")),
        )
        assert result.withholding == Decimal("270.00")
        assert result.total == Decimal("1000") - Decimal("100") + Decimal("180") - Decimal("270")

    def test_default_tax_rate(self):
        assert derive_financials([Decimal("100")], tax_rate=None).tax == Decimal("20.00")

    def test_no_line_items(self):
        result = derive_financials([])
        assert result.total == Decimal("0.00")

    def test_float_line_item_rejected(self):
        with pytest.raises(TypeError):
            derive_financials([Decimal("1"), 2.5])

    def test_unknown_status_rejected(self):
        with pytest.raises(UnknownTaxStatusError):
            derive_financials([Decimal("1000")], tax_status="Bogus")

    @given(
        st.lists(amounts, max_size=8),
        st.sampled_from([None, "Unverified", "VerifiedNet", "VerifiedGross"]),
        st.sampled_from([Decimal("0"), Decimal("5"), Decimal("20")]),
        st.booleans(),
        st.one_of(
            st.none(),
            amounts.map(DiscountSpec.fixed),
            st.integers(min_value=0, max_value=100).map(DiscountSpec.percentage),
        ),
    )
    def test_deterministic_and_consistent(self, items, status, rate, reverse, spec):
        first = derive_financials(items, status, rate, reverse, spec)
        second = derive_financials(list(items), status, rate, reverse, spec)

        assert first == second
        assert str(first.total) == str(second.total)
        assert first.total == (
            first.subtotal - first.discount + first.tax - first.withholding
        )
        for value in (first.subtotal, first.discount, first.tax, first.withholding, first.total):
            assert value.as_tuple().exponent == -2


class TestTimesheetPay:

    def test_withholding_on_gross_only(self):
        pay = derive_timesheet_pay(
            Decimal("800"), Decimal("200"), Decimal("45.50"), "Unverified"
        )
        assert pay.gross == Decimal("1000.00")
        assert pay.withholding == Decimal("300.00")
        assert pay.expenses == Decimal("45.50")
        assert pay.net == Decimal("745.50")

    def test_gross_status(self):
        pay = derive_timesheet_pay(Decimal("500"), 0, 0, "VerifiedGross")
        assert pay.net == Decimal("500.00")

from decimal import Decimal

import pytest

from app.core.exceptions import AdditionalTaxError, NegativeAmount
from app.models.billing import AdditionalTaxKind, DiscountMode, SupplyType
from app.schemas.billing import AdditionalTax, Discount, LineItem
from app.services.gst_calculation_service import (
    aggregate_line_items,
    compute_additional_tax,
    compute_discount_amount,
    compute_totals,
    printed_tax_split,
    q2,
    split_tax,
)


UP = "Lucknow, Uttar Pradesh"
KARNATAKA = "Bengaluru, Karnataka"


def _item(quantity="1", rate="1000", tax="18", description="Widget"):
    return LineItem(description=description, quantity=quantity, unit_rate=rate, tax_rate_percent=tax)


# --- Tax split ---

def test_intra_state_split_halves_tax():
    result = split_tax(Decimal("1000"), SupplyType.INTRA_STATE, Decimal("18"))
    assert result.cgst == Decimal("90")
    assert result.sgst == Decimal("90")
    assert result.igst == 0


def test_inter_state_split_is_all_igst():
    result = split_tax(Decimal("1000"), SupplyType.INTER_STATE, Decimal("18"))
    assert result.igst == Decimal("180")
    assert result.cgst == 0
    assert result.sgst == 0


@pytest.mark.parametrize("taxable,rate", [
    ("100.01", "5"),
    ("333.33", "18"),
    ("0.01", "28"),
    ("999999.99", "12"),
])
def test_cgst_plus_sgst_equals_igst(taxable, rate):
    intra = split_tax(Decimal(taxable), SupplyType.INTRA_STATE, Decimal(rate))
    inter = split_tax(Decimal(taxable), SupplyType.INTER_STATE, Decimal(rate))
    assert intra.cgst == intra.sgst
    assert intra.cgst + intra.sgst == inter.igst


def test_negative_taxable_amount_is_treated_as_zero():
    result = split_tax(Decimal("-50"), SupplyType.INTER_STATE, Decimal("18"))
    assert result.gst_total == 0


# --- Line items ---

def test_line_item_rejects_negative_quantity():
    with pytest.raises(NegativeAmount) as exc_info:
        _item(quantity="-1")
    assert exc_info.value.field == "quantity"


def test_line_item_accepts_frontend_aliases():
    item = LineItem.model_validate({"description": "Pen", "quantity": 2, "rate": "12.50", "tax": 5})
    assert item.amount == Decimal("25.00")
    assert item.tax_amount == Decimal("1.25")


def test_aggregate_keeps_order_and_numbers_lines():
    items = [
        _item(quantity="2", rate="100", tax="18", description="A"),
        _item(quantity="1.5", rate="10", tax="5", description="B"),
        _item(quantity="3", rate="0", tax="0", description="C"),
    ]
    summary = aggregate_line_items(items, SupplyType.INTRA_STATE)

    assert [line.description for line in summary.lines] == ["A", "B", "C"]
    assert [line.line_number for line in summary.lines] == [1, 2, 3]
    assert summary.sub_total == Decimal("215")
    assert summary.total_quantity == Decimal("6.5")
    assert summary.total_tax == Decimal("36.75")
    assert summary.lines[0].cgst == Decimal("18")
    assert summary.lines[1].sgst == Decimal("0.375")


def test_aggregate_of_no_items_is_zero():
    summary = aggregate_line_items([])
    assert summary.sub_total == 0
    assert summary.total_quantity == 0
    assert summary.lines == []


# --- Discount ---

def test_percentage_discount():
    discount = Discount(value=Decimal("10"), mode=DiscountMode.PERCENTAGE)
    assert compute_discount_amount(Decimal("1000"), discount) == Decimal("100.00")


def test_fixed_discount_is_clamped_to_subtotal():
    discount = Discount(value=Decimal("1500"), mode=DiscountMode.FIXED_AMOUNT)
    assert compute_discount_amount(Decimal("1000"), discount) == Decimal("1000")


@pytest.mark.parametrize("mode", ["amount", "fixed", "Flat", "fixed_amount"])
def test_fixed_discount_mode_spellings(mode):
    assert Discount(value=1, mode=mode).mode == DiscountMode.FIXED_AMOUNT


def test_negative_discount_is_rejected():
    with pytest.raises(NegativeAmount):
        Discount(value=Decimal("-5"))


# --- TDS / TCS ---

def test_explicit_additional_tax_amount_wins_over_rate():
    tax = AdditionalTax(kind=AdditionalTaxKind.TCS, rate_percent=Decimal("1"), amount=Decimal("25"))
    assert compute_additional_tax(tax, Decimal("1000")) == Decimal("25.00")


def test_additional_tax_from_rate():
    tax = AdditionalTax(kind="tds", rate_percent=Decimal("10"))
    assert compute_additional_tax(tax, Decimal("900")) == Decimal("90.00")


def test_negative_tds_amount_is_read_as_magnitude():
    tax = AdditionalTax(kind=AdditionalTaxKind.TDS, amount=Decimal("-50"))
    assert tax.amount == Decimal("50")


def test_additional_tax_rate_on_zero_base_is_zero():
    tax = AdditionalTax(kind=AdditionalTaxKind.TDS, rate_percent=Decimal("1"))
    assert compute_additional_tax(tax, Decimal("0")) == 0
    assert compute_additional_tax(tax, Decimal("0.40")) == 0


def test_zero_additional_tax_is_rejected():
    with pytest.raises(AdditionalTaxError):
        compute_additional_tax(AdditionalTax(kind=AdditionalTaxKind.TDS), Decimal("1000"))
    with pytest.raises(AdditionalTaxError):
        compute_additional_tax(AdditionalTax(kind=AdditionalTaxKind.TCS, rate_percent=0), Decimal("1000"))


# --- Totals ---

def test_inter_state_invoice_totals():
    result = compute_totals([_item()], place_of_supply=UP, seller_state_code="29")

    assert result.supply_type == SupplyType.INTER_STATE
    assert result.sub_total == Decimal("1000.00")
    assert result.igst == Decimal("180.00")
    assert result.cgst == 0 and result.sgst == 0
    assert result.tax_amount == Decimal("180.00")
    assert result.total == Decimal("1180.00")
    assert result.amount_in_words == "One Thousand One Hundred and Eighty Rupees only"
    assert not result.is_credit_balance
    assert result.discount_applies_at_invoice_level


def test_intra_state_invoice_totals():
    result = compute_totals([_item()], place_of_supply=KARNATAKA, seller_state_code="29")

    assert result.supply_type == SupplyType.INTRA_STATE
    assert result.cgst == Decimal("90.00")
    assert result.sgst == Decimal("90.00")
    assert result.igst == 0
    assert result.total == Decimal("1180.00")


def test_discount_is_applied_before_tax():
    result = compute_totals(
        [_item()],
        discount=Discount(value=Decimal("10"), mode=DiscountMode.PERCENTAGE),
        place_of_supply=UP,
    )
    assert result.discount_amount == Decimal("100.00")
    assert result.taxable_amount == Decimal("900.00")
    assert result.igst == Decimal("162.00")
    assert result.total == Decimal("1062.00")


def test_discount_larger_than_subtotal_leaves_nothing_to_tax():
    result = compute_totals(
        [_item()],
        discount=Discount(value=Decimal("1500"), mode=DiscountMode.FIXED_AMOUNT),
        place_of_supply=UP,
    )
    assert result.discount_amount == Decimal("1000.00")
    assert result.tax_amount == 0
    assert result.total == 0


def test_tds_is_subtracted_and_tcs_is_added():
    discount = Discount(value=Decimal("10"))
    tds = compute_totals(
        [_item()],
        discount=discount,
        additional_tax=AdditionalTax(kind=AdditionalTaxKind.TDS, rate_percent=Decimal("10")),
        place_of_supply=UP,
    )
    assert tds.additional_tax_amount == Decimal("90.00")
    assert tds.signed_additional_tax == Decimal("-90.00")
    assert tds.total == Decimal("972.00")

    tcs = compute_totals(
        [_item()],
        discount=discount,
        additional_tax=AdditionalTax(kind=AdditionalTaxKind.TCS, amount=Decimal("5")),
        place_of_supply=UP,
    )
    assert tcs.additional_tax_kind == AdditionalTaxKind.TCS
    assert tcs.total == Decimal("1067.00")


def test_withholding_rate_on_fully_discounted_invoice():
    result = compute_totals(
        [_item()],
        discount=Discount(value=Decimal("100"), mode=DiscountMode.PERCENTAGE),
        additional_tax=AdditionalTax(kind=AdditionalTaxKind.TDS, rate_percent=Decimal("1")),
        place_of_supply=UP,
    )
    assert result.additional_tax_amount == 0
    assert result.additional_tax_kind == AdditionalTaxKind.TDS
    assert result.total == 0


def test_withholding_rate_on_tiny_invoice_rounds_to_zero():
    result = compute_totals(
        [_item(rate="0.40")],
        additional_tax=AdditionalTax(kind=AdditionalTaxKind.TDS, rate_percent=Decimal("1")),
        place_of_supply=UP,
    )
    assert result.additional_tax_amount == 0
    assert result.tax_amount == Decimal("0.07")
    assert result.total == Decimal("0.47")


def test_mixed_rates_use_weighted_effective_rate():
    items = [_item(tax="18", description="A"), _item(tax="5", description="B")]
    result = compute_totals(items, discount=Discount(value=Decimal("10")), place_of_supply=UP)

    assert result.effective_tax_rate == Decimal("11.50")
    assert result.taxable_amount == Decimal("1800.00")
    assert result.igst == Decimal("207.00")
    assert result.total == Decimal("2007.00")
    # Per-line GST is shown before the invoice-level discount
    assert [line.igst for line in result.line_items] == [Decimal("180.00"), Decimal("50.00")]


def test_fractional_tax_is_rounded_before_it_is_split():
    result = compute_totals([_item(rate="100.01", tax="5")], place_of_supply=KARNATAKA)
    assert result.cgst == result.sgst == Decimal("2.50")
    assert result.cgst + result.sgst == result.tax_amount
    assert result.tax_amount == Decimal("5.00")
    assert result.total == Decimal("105.01")


def test_odd_paisa_gst_matches_tax_amount():
    inter = compute_totals([_item(rate="1000.05")], place_of_supply=UP, seller_state_code="29")
    assert inter.igst == Decimal("180.01")
    assert inter.tax_amount == inter.igst

    intra = compute_totals([_item(rate="1000.05")], place_of_supply=KARNATAKA, seller_state_code="29")
    assert intra.cgst == intra.sgst == Decimal("90.005")
    assert intra.cgst + intra.sgst == intra.tax_amount == Decimal("180.01")

    cgst, sgst, igst = printed_tax_split(intra.cgst, intra.sgst, intra.igst)
    assert (cgst, sgst, igst) == (Decimal("90.01"), Decimal("90.00"), Decimal("0.00"))
    assert q2(cgst) + q2(sgst) == intra.tax_amount


def test_total_always_adds_up_from_rounded_components():
    result = compute_totals(
        [_item(quantity="3", rate="333.333", tax="12"), _item(quantity="1", rate="0.99", tax="28")],
        discount=Discount(value=Decimal("7.5")),
        additional_tax=AdditionalTax(kind=AdditionalTaxKind.TDS, rate_percent=Decimal("2")),
        adjustment=Decimal("-0.37"),
        place_of_supply=UP,
    )
    expected = (
        result.sub_total - result.discount_amount + result.tax_amount
        + result.signed_additional_tax + result.adjustment
    )
    assert result.total == expected
    for value in (result.sub_total, result.discount_amount, result.tax_amount,
                  result.additional_tax_amount, result.adjustment, result.total):
        assert value == value.quantize(Decimal("0.01"))


def test_negative_total_is_flagged_as_credit_balance():
    result = compute_totals([_item()], adjustment=Decimal("-2000"), place_of_supply=UP)
    assert result.total == Decimal("-820.00")
    assert result.is_credit_balance
    assert result.amount_in_words == "Minus Eight Hundred and Twenty Rupees only"


def test_no_items_gives_zero_invoice():
    result = compute_totals([])
    assert result.total == 0
    assert result.effective_tax_rate == 0
    assert result.amount_in_words == "Zero Rupees only"


def test_strict_jurisdiction_is_passed_through():
    from app.core.exceptions import UnresolvableJurisdiction

    with pytest.raises(UnresolvableJurisdiction):
        compute_totals([_item()], place_of_supply="Atlantis", strict=True)

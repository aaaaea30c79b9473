"""GST calculation for invoices.

Order of operations for the financial summary:

1. line items are aggregated into subtotal, quantity and per-line tax
2. the invoice-level discount is taken off the subtotal (clamped to it)
3. GST is computed on the discounted base and split into CGST + SGST
   (intra-state) or IGST (inter-state)
4. TDS is subtracted / TCS is added
5. the free-form adjustment is added

Every component is rounded half-up to paise and the total is built from
the rounded components, so the printed summary always adds up.

Nothing here raises for numeric input that is merely out of range: negative
taxable amounts are treated as zero and discounts are clamped to the
subtotal. Schema validation rejects negative inputs before they get here.
"""
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Sequence, Tuple

from app.core.exceptions import AdditionalTaxError
from app.models.billing import AdditionalTaxKind, DiscountMode, SupplyType
from app.schemas.billing import (
    AdditionalTax,
    Discount,
    InvoiceComputation,
    LineItem,
    LineItemBreakdown,
    LineItemSummary,
    TaxBreakdown,
)
from app.services.amount_in_words import amount_to_words
from app.services.gst_jurisdiction_service import classify_supply


logger = logging.getLogger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")
PAISE = Decimal("0.01")


def q2(value) -> Decimal:
    """Round half-up to 2 decimal places."""
    return Decimal(str(value)).quantize(PAISE, rounding=ROUND_HALF_UP)


def _trim(value: Decimal) -> Decimal:
    # 90.000000 -> 90.00, 0.006500 -> 0.0065
    rounded = value.quantize(PAISE)
    return rounded if rounded == value else value.normalize()


def split_tax(taxable_amount: Decimal, supply_type: SupplyType, rate_percent: Decimal) -> TaxBreakdown:
    """
    Split GST on a taxable amount.

    Intra-state: CGST and SGST each carry half of the tax.
    Inter-state: IGST carries all of it.

    The full GST is rounded to paise before it is halved, so CGST and SGST
    carry at most 3 decimal places and CGST + SGST for a base is exactly
    the IGST for the same base.
    """
    taxable = max(Decimal(str(taxable_amount)), ZERO)
    rate = max(Decimal(str(rate_percent)), ZERO)

    full_tax = q2(taxable * rate / HUNDRED)

    if supply_type == SupplyType.INTER_STATE:
        return TaxBreakdown(cgst=ZERO, sgst=ZERO, igst=full_tax)

    half = _trim(full_tax / 2)
    return TaxBreakdown(cgst=half, sgst=half, igst=ZERO)


def printed_tax_split(cgst: Decimal, sgst: Decimal, igst: Decimal) -> Tuple[Decimal, Decimal, Decimal]:
    """
    CGST, SGST and IGST in whole paise for printing and storage.

    CGST is rounded half-up and SGST takes the remainder, so the printed
    pair still adds up to the GST total (90.005 + 90.005 -> 90.01 + 90.00).
    """
    printed_cgst = q2(cgst)
    return printed_cgst, cgst + sgst - printed_cgst, q2(igst)


def aggregate_line_items(
    items: Sequence[LineItem],
    supply_type: Optional[SupplyType] = None,
) -> LineItemSummary:
    """
    Reduce line items to subtotal, total quantity and total tax.

    Lines keep their input order and are numbered from 1. When a supply
    type is given each line also carries its CGST/SGST/IGST share; the
    invoice-level discount is never pushed into the lines.
    """
    sub_total = ZERO
    total_quantity = ZERO
    total_tax = ZERO
    lines = []

    for line_number, item in enumerate(items, start=1):
        amount = item.amount
        tax_amount = item.tax_amount
        sub_total += amount
        total_quantity += item.quantity
        total_tax += tax_amount

        split = split_tax(amount, supply_type, item.tax_rate_percent) if supply_type else TaxBreakdown()
        lines.append(
            LineItemBreakdown(
                line_number=line_number,
                description=item.description,
                quantity=item.quantity,
                unit_rate=item.unit_rate,
                tax_rate_percent=item.tax_rate_percent,
                amount=amount,
                tax_amount=tax_amount,
                cgst=split.cgst,
                sgst=split.sgst,
                igst=split.igst,
            )
        )

    return LineItemSummary(
        sub_total=sub_total,
        total_quantity=total_quantity,
        total_tax=total_tax,
        lines=lines,
    )


def effective_tax_rate(items: Sequence[LineItem], summary: LineItemSummary) -> Decimal:
    """
    GST rate applied to the discounted base.

    A single rate shared by every line is used as is. Mixed rates use the
    weighted rate total_tax / sub_total, which spreads the discount across
    lines in proportion to their amount.
    """
    rates = {item.tax_rate_percent for item in items}
    if len(rates) == 1:
        return rates.pop()
    if summary.sub_total <= 0:
        return ZERO
    return summary.total_tax * HUNDRED / summary.sub_total


def compute_discount_amount(sub_total: Decimal, discount: Optional[Discount]) -> Decimal:
    """
    Discount amount for a subtotal.

    Percentage discounts take value% of the subtotal, fixed discounts take
    the value itself. The result is clamped to [0, sub_total] so the taxable
    base never goes negative.
    """
    if discount is None or not discount.value:
        return ZERO

    ceiling = max(sub_total, ZERO)
    if discount.mode == DiscountMode.PERCENTAGE:
        raw = sub_total * discount.value / HUNDRED
    else:
        raw = discount.value

    amount = q2(raw)
    if amount > ceiling:
        logger.debug(f"Discount {amount} clamped to subtotal {ceiling}")
        return ceiling
    return max(amount, ZERO)


def compute_additional_tax(additional_tax: Optional[AdditionalTax], base: Decimal) -> Decimal:
    """
    TDS/TCS magnitude, rounded to paise.

    An explicit non-zero amount wins; otherwise rate_percent of ``base``
    (subtotal after discount, before GST), which may come to 0.00 on a
    zero or tiny base. Raises AdditionalTaxError when a kind is set without
    a non-zero amount or rate.
    """
    if additional_tax is None:
        return ZERO

    if additional_tax.amount:
        return q2(additional_tax.amount)

    if additional_tax.rate_percent:
        amount = q2(max(base, ZERO) * additional_tax.rate_percent / HUNDRED)
        if amount == 0:
            logger.debug(
                f"{additional_tax.kind.value} at {additional_tax.rate_percent}% on base {base} rounds to zero"
            )
        return amount

    raise AdditionalTaxError(
        f"{additional_tax.kind.value} selected but its amount is zero",
        details={
            "kind": additional_tax.kind.value,
            "rate_percent": str(additional_tax.rate_percent) if additional_tax.rate_percent is not None else None,
            "amount": str(additional_tax.amount) if additional_tax.amount is not None else None,
        },
    )


def compute_totals(
    line_items: Sequence[LineItem],
    discount: Optional[Discount] = None,
    additional_tax: Optional[AdditionalTax] = None,
    adjustment: Decimal = ZERO,
    seller_state_code: Optional[str] = None,
    place_of_supply: Optional[str] = None,
    buyer_address: Optional[str] = None,
    customer_address: Optional[str] = None,
    strict: Optional[bool] = None,
) -> InvoiceComputation:
    """
    Compute the financial summary of an invoice.

    Returns totals, the GST split and the per-line table. A negative total
    is returned as is and flagged with ``is_credit_balance``.
    """
    classification = classify_supply(
        place_of_supply=place_of_supply,
        buyer_address=buyer_address,
        customer_address=customer_address,
        seller_state_code=seller_state_code,
        strict=strict,
    )
    summary = aggregate_line_items(line_items, classification.supply_type)

    discount_amount = compute_discount_amount(summary.sub_total, discount)
    taxable_base = summary.sub_total - discount_amount

    rate = effective_tax_rate(line_items, summary)
    tax = split_tax(taxable_base, classification.supply_type, rate)

    additional_tax_amount = compute_additional_tax(additional_tax, taxable_base)
    kind = additional_tax.kind if additional_tax else None

    sub_total = q2(summary.sub_total)
    discount_amount = q2(discount_amount)
    tax_amount = q2(tax.gst_total)
    adjustment = q2(adjustment or ZERO)
    signed_additional = -additional_tax_amount if kind == AdditionalTaxKind.TDS else additional_tax_amount

    total = sub_total - discount_amount + tax_amount + signed_additional + adjustment

    if total < 0:
        logger.warning(
            f"Invoice total is negative ({total}): discount {discount_amount}, "
            f"{kind.value if kind else 'no'} withholding {additional_tax_amount}, adjustment {adjustment}"
        )

    return InvoiceComputation(
        sub_total=sub_total,
        discount_amount=discount_amount,
        taxable_amount=sub_total - discount_amount,
        tax_amount=tax_amount,
        cgst=tax.cgst,
        sgst=tax.sgst,
        igst=tax.igst,
        additional_tax_kind=kind,
        additional_tax_amount=additional_tax_amount,
        adjustment=adjustment,
        total=total,
        total_quantity=summary.total_quantity,
        effective_tax_rate=_trim(rate.quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP)),
        supply_type=classification.supply_type,
        seller_state_code=classification.seller_state_code,
        place_of_supply_code=classification.place_of_supply_code,
        discount_applies_at_invoice_level=True,
        is_credit_balance=total < 0,
        amount_in_words=amount_to_words(total),
        line_items=summary.lines,
    )

# backend/services/tax.py
"""GST decomposition of tax-inclusive prices.

Catalog prices already contain GST. For every checkout line the inclusive
gross is split back into the taxable base and the tax, and the tax into its
two equal intra-state halves (CGST and SGST). Line values keep their full
precision; only the order-level totals are rounded to paise.
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Union

from services.errors import InvalidInputError

Number = Union[int, float, str, Decimal]

CENT = Decimal("0.01")
ZERO = Decimal("0")


def to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # str() keeps 0.1 as 0.1 instead of its binary float expansion
    return Decimal(str(value))


def q2(value: Number) -> Decimal:
    """Round half-up to 2 decimal places."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class GstBreakdown:
    unit_price: Decimal
    quantity: int
    gst_percentage: Decimal
    line_gross: Decimal
    taxable_value: Decimal
    gst_amount: Decimal
    cgst: Decimal
    sgst: Decimal


@dataclass(frozen=True)
class OrderTotals:
    sub_total: Decimal
    tax_total: Decimal
    cgst_total: Decimal
    sgst_total: Decimal
    shipping_fee: Decimal
    discount_total: Decimal
    grand_total: Decimal

    @property
    def gross_total(self) -> Decimal:
        """Value of the goods including tax, before shipping and discount."""
        return self.sub_total + self.tax_total


def decompose_gst(unit_price: Number, quantity: int, gst_percentage: Number) -> GstBreakdown:
    """Split an inclusive line price into taxable value and CGST/SGST.

    >>> b = decompose_gst(500, 3, 12)
    >>> b.taxable_value, b.gst_amount, b.cgst
    (Decimal('1339.29'), Decimal('160.71'), Decimal('80.355'))
    """
    price = to_decimal(unit_price)
    gst = to_decimal(gst_percentage)

    if gst < 0:
        raise InvalidInputError(f"GST percentage cannot be negative: {gst_percentage}")
    if price < 0:
        raise InvalidInputError(f"Unit price cannot be negative: {unit_price}")
    if quantity is None or int(quantity) != quantity or quantity < 1:
        raise InvalidInputError(f"Quantity must be a positive integer: {quantity}")

    line_gross = price * int(quantity)
    if gst == 0:
        gst_amount = ZERO
    else:
        # Same as gross - gross / (1 + g/100), without the intermediate division
        gst_amount = q2(line_gross * gst / (100 + gst))
    taxable_value = line_gross - gst_amount
    half = gst_amount / 2

    return GstBreakdown(
        unit_price=price,
        quantity=int(quantity),
        gst_percentage=gst,
        line_gross=line_gross,
        taxable_value=taxable_value,
        gst_amount=gst_amount,
        cgst=half,
        sgst=half,
    )


def summarize(
    lines: Iterable[GstBreakdown],
    shipping_fee: Number = 0,
    discount_total: Number = 0,
) -> OrderTotals:
    """Aggregate line breakdowns into rounded order totals.

    sgst_total is derived as tax_total - cgst_total so the two halves always
    add back up to the rounded tax total.
    """
    lines: List[GstBreakdown] = list(lines)
    fee = to_decimal(shipping_fee)
    discount = to_decimal(discount_total)
    if fee < 0:
        raise InvalidInputError("Shipping fee cannot be negative")
    if discount < 0:
        raise InvalidInputError("Discount cannot be negative")

    sub_total = q2(sum((l.taxable_value for l in lines), ZERO))
    tax_total = q2(sum((l.gst_amount for l in lines), ZERO))
    cgst_total = q2(sum((l.cgst for l in lines), ZERO))
    sgst_total = tax_total - cgst_total
    fee = q2(fee)
    discount = q2(discount)

    return OrderTotals(
        sub_total=sub_total,
        tax_total=tax_total,
        cgst_total=cgst_total,
        sgst_total=sgst_total,
        shipping_fee=fee,
        discount_total=discount,
        grand_total=q2(sub_total + tax_total + fee - discount),
    )

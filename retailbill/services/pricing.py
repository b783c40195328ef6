"""Sale pricing. Pure functions, no database access.

All amounts are Decimal and rounded half-up to paise. Line totals are always
derived from unit price and quantity; a caller cannot supply them.
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Sequence, Tuple

from retailbill.core.exceptions import SaleValidationError

MONEY = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def to_money(value) -> Decimal:
    """Round any number to 2 decimal places, half-up."""
    if value is None:
        return ZERO
    return Decimal(str(value)).quantize(MONEY, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class SaleLine:
    """Priced line: the item snapshot plus the quantity sold."""
    item_id: int
    name: str
    quantity: int
    unit_price: Decimal
    mrp: Decimal
    brand: Optional[str] = None
    sku: Optional[str] = None

    @property
    def total_price(self) -> Decimal:
        return to_money(self.unit_price * self.quantity)

    @property
    def total_mrp(self) -> Decimal:
        return to_money(self.mrp * self.quantity)


@dataclass(frozen=True)
class PricingResult:
    lines: Tuple[SaleLine, ...]
    subtotal: Decimal
    mrp_total: Decimal
    discount: Decimal
    extra_discount: Decimal
    total_discount: Decimal
    final_amount: Decimal  # After discounts, before tax
    gst_rate: Decimal = ZERO
    cgst_rate: Decimal = ZERO
    gst_amount: Decimal = ZERO
    cgst_amount: Decimal = ZERO
    total_tax: Decimal = ZERO
    total_amount: Decimal = ZERO  # Final payable
    savings: Decimal = ZERO


def _check_lines(items: Sequence[SaleLine]) -> None:
    errors = []
    for index, line in enumerate(items):
        if line.quantity < 1:
            errors.append({"field": f"items[{index}].quantity", "message": "Quantity must be at least 1"})
        if line.unit_price < 0:
            errors.append({"field": f"items[{index}].unitPrice", "message": "Unit price cannot be negative"})
        if line.mrp < 0:
            errors.append({"field": f"items[{index}].mrp", "message": "MRP cannot be negative"})
    if errors:
        raise SaleValidationError(errors)


def calculate_pricing(
    items: Sequence[SaleLine],
    discount=ZERO,
    extra_discount=ZERO,
    gst_rate=ZERO,
    cgst_rate=ZERO,
) -> PricingResult:
    """
    Price a sale.

    subtotal = sum(unit_price * quantity)
    final_amount = max(0, subtotal - discount - extra_discount)
    tax = final_amount * (gst_rate + cgst_rate) / 100, each component rounded
    total_amount = final_amount + tax
    savings = max(0, mrp_total - final_amount)

    Raises:
        SaleValidationError: empty item list, bad line values or negative discounts/rates
    """
    if not items:
        raise SaleValidationError.single("items", "At least one item is required")
    _check_lines(items)

    discount = to_money(discount)
    extra_discount = to_money(extra_discount)
    if discount < 0:
        raise SaleValidationError.single("discount", "Discount cannot be negative")
    if extra_discount < 0:
        raise SaleValidationError.single("extraDiscount", "Extra discount cannot be negative")

    gst_rate = Decimal(str(gst_rate or 0))
    cgst_rate = Decimal(str(cgst_rate or 0))
    if gst_rate < 0 or cgst_rate < 0:
        raise SaleValidationError.single("gst" if gst_rate < 0 else "cgst", "Tax rate cannot be negative")

    line_totals = tuple(line.total_price for line in items)
    subtotal = to_money(sum(line_totals, ZERO))
    mrp_total = to_money(sum((line.total_mrp for line in items), ZERO))

    total_discount = discount + extra_discount
    final_amount = max(ZERO, subtotal - total_discount)

    gst_amount = to_money(final_amount * gst_rate / HUNDRED)
    cgst_amount = to_money(final_amount * cgst_rate / HUNDRED)
    total_tax = gst_amount + cgst_amount
    total_amount = final_amount + total_tax

    # Items priced above MRP would give negative savings
    savings = max(ZERO, mrp_total - final_amount)

    return PricingResult(
        lines=tuple(items),
        subtotal=subtotal,
        mrp_total=mrp_total,
        discount=discount,
        extra_discount=extra_discount,
        total_discount=total_discount,
        final_amount=final_amount,
        gst_rate=gst_rate,
        cgst_rate=cgst_rate,
        gst_amount=gst_amount,
        cgst_amount=cgst_amount,
        total_tax=total_tax,
        total_amount=total_amount,
        savings=savings,
    )

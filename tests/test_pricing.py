from decimal import Decimal

import pytest

from retailbill.core.exceptions import SaleValidationError
from retailbill.services.pricing import SaleLine, calculate_pricing, to_money


def line(item_id=1, quantity=1, unit_price="100", mrp="120"):
    return SaleLine(
        item_id=item_id,
        name=f"Item {item_id}",
        quantity=quantity,
        unit_price=Decimal(unit_price),
        mrp=Decimal(mrp),
    )


def test_example_sale_pricing():
    result = calculate_pricing([line(quantity=3)], discount=10)

    assert result.subtotal == Decimal("300.00")
    assert result.mrp_total == Decimal("360.00")
    assert result.total_discount == Decimal("10.00")
    assert result.final_amount == Decimal("290.00")
    assert result.total_amount == Decimal("290.00")
    assert result.savings == Decimal("70.00")
    assert result.total_tax == Decimal("0.00")


def test_subtotal_is_sum_of_recomputed_line_totals():
    lines = [line(1, 2, "19.99", "25"), line(2, 5, "3.10", "3.50"), line(3, 1, "0", "10")]

    result = calculate_pricing(lines)

    assert [l.total_price for l in result.lines] == [Decimal("39.98"), Decimal("15.50"), Decimal("0.00")]
    assert result.subtotal == Decimal("55.48")
    assert result.mrp_total == Decimal("77.50")


def test_discount_and_extra_discount_are_combined():
    result = calculate_pricing([line(quantity=2)], discount=15, extra_discount="5.50")

    assert result.total_discount == Decimal("20.50")
    assert result.final_amount == Decimal("179.50")


def test_discount_larger_than_subtotal_clamps_to_zero():
    result = calculate_pricing([line(quantity=1)], discount=80, extra_discount=50)

    assert result.final_amount == Decimal("0.00")
    assert result.total_amount == Decimal("0.00")
    assert result.savings == Decimal("120.00")


def test_price_above_mrp_gives_zero_savings():
    result = calculate_pricing([line(unit_price="260", mrp="250")])

    assert result.savings == Decimal("0.00")


def test_tax_is_added_on_discounted_amount():
    result = calculate_pricing([line(quantity=3)], discount=10, gst_rate=9, cgst_rate=9)

    assert result.gst_amount == Decimal("26.10")
    assert result.cgst_amount == Decimal("26.10")
    assert result.total_tax == Decimal("52.20")
    assert result.total_amount == Decimal("342.20")
    # Tax is not counted against savings: MRP total 360 against 290 before tax
    assert result.savings == Decimal("70.00")


def test_tax_components_round_half_up():
    result = calculate_pricing([line(unit_price="0.50", mrp="1")], gst_rate=5)

    # 0.50 * 5% = 0.025
    assert result.gst_amount == Decimal("0.03")


def test_to_money_rounds_half_up():
    assert to_money("2.345") == Decimal("2.35")
    assert to_money(1) == Decimal("1.00")
    assert to_money(None) == Decimal("0.00")


def test_empty_items_rejected():
    with pytest.raises(SaleValidationError) as exc:
        calculate_pricing([])

    assert exc.value.errors[0]["field"] == "items"


def test_negative_discount_rejected():
    with pytest.raises(SaleValidationError) as exc:
        calculate_pricing([line()], discount=-1)

    assert exc.value.errors[0]["field"] == "discount"


def test_bad_lines_reported_with_positions():
    with pytest.raises(SaleValidationError) as exc:
        calculate_pricing([line(), line(2, quantity=0), line(3, unit_price="-1")])

    fields = {e["field"] for e in exc.value.errors}
    assert fields == {"items[1].quantity", "items[2].unitPrice"}


def test_pricing_is_deterministic():
    lines = [line(1, 4, "12.35", "15"), line(2, 7, "8.99", "9.99")]

    assert calculate_pricing(lines, discount=3) == calculate_pricing(lines, discount=3)

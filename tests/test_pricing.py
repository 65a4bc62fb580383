from decimal import Decimal

import pytest

from errors import InvalidInput
from pricing import (
    DEFAULT_DISCOUNT_RATE,
    PricingBreakdown,
    compute_cart_breakdown,
    compute_line_breakdown,
    money,
)


def test_single_line_example_with_default_discount():
    b = compute_line_breakdown(Decimal("111000"), 1, Decimal("0.08")).rounded()

    assert b.dpp11 == Decimal("100000.00")
    assert b.discount == Decimal("8000.00")
    assert b.dpp_faktur == Decimal("92000.00")
    assert b.dpp_lain == Decimal("84333.33")
    assert b.ppn11 == Decimal("10120.00")
    assert b.ppn12 == Decimal("10120.00")
    assert b.amount == Decimal("111000.00")


def test_base_mode_uses_eight_percent():
    assert DEFAULT_DISCOUNT_RATE == Decimal("0.08")
    assert compute_line_breakdown("111000", 1) == compute_line_breakdown("111000", 1, "0.08")


def test_cart_aggregate_without_discount():
    total = compute_cart_breakdown([(Decimal("50000"), 2), (Decimal("20000"), 1)], 0)
    r = total.rounded()

    assert r.amount == Decimal("120000.00")
    assert r.dpp11 == Decimal("108108.11")
    assert r.discount == Decimal("0.00")
    assert total.dpp_faktur == total.dpp11


def test_amount_is_quantity_times_price():
    b = compute_line_breakdown("2500.50", 3, "0.08")
    assert b.amount == Decimal("7501.50")


@pytest.mark.parametrize("price", ["1", "999", "12345.67", "111000", "75000"])
def test_ppn12_equals_ppn11(price):
    b = compute_line_breakdown(price, 3, "0.05")
    assert b.ppn12 == b.ppn11


@pytest.mark.parametrize("price,rate", [("111000", "0.08"), ("3333.33", "0.15"), ("7", "1")])
def test_exact_identities(price, rate):
    b = compute_line_breakdown(price, 1, rate)
    assert b.dpp_faktur == b.dpp11 - b.discount
    assert b.dpp_lain == b.dpp_faktur * 11 / 12


def test_two_single_units_match_one_line_of_two():
    single = compute_line_breakdown("19999", 1, "0.08")
    merged = compute_cart_breakdown([("19999", 1), ("19999", 1)], "0.08")
    double = compute_line_breakdown("19999", 2, "0.08")

    assert merged.rounded() == double.rounded()
    assert (single + single).rounded() == double.rounded()
    assert (double.dpp_faktur + double.ppn11) / 2 == pytest.approx(
        single.dpp_faktur + single.ppn11)


def test_same_inputs_same_outputs():
    assert compute_line_breakdown("45000", 4, "0.1") == compute_line_breakdown("45000", 4, "0.1")


def test_full_discount_leaves_no_tax_base():
    b = compute_line_breakdown("111000", 1, 1).rounded()
    assert b.dpp_faktur == Decimal("0.00")
    assert b.ppn11 == Decimal("0.00")


def test_zero_price_is_valid():
    assert compute_line_breakdown(0, 1).rounded() == PricingBreakdown.zero().rounded()


@pytest.mark.parametrize("price,quantity,rate", [
    ("-1", 1, "0.08"),
    ("100", 0, "0.08"),
    ("100", -2, "0.08"),
    ("100", 1.5, "0.08"),
    ("100", True, "0.08"),
    ("100", 1, "1.01"),
    ("100", 1, "-0.1"),
    ("abc", 1, "0.08"),
    ("100", 1, "lots"),
    ("nan", 1, "0.08"),
    ("Infinity", 1, "0.08"),
    (Decimal("NaN"), 1, "0.08"),
    (float("inf"), 1, "0.08"),
    ("100", 1, "nan"),
    ("100", 1, "-inf"),
])
def test_invalid_input(price, quantity, rate):
    with pytest.raises(InvalidInput):
        compute_line_breakdown(price, quantity, rate)


def test_empty_cart_breakdown_is_zero():
    assert compute_cart_breakdown([]) == PricingBreakdown.zero()


def test_breakdown_as_dict_keeps_field_order():
    b = compute_line_breakdown("100", 1)
    assert list(b.as_dict()) == [
        "amount", "dpp11", "discount", "dpp_faktur", "dpp_lain", "ppn11", "ppn12"]


def test_money_rounds_half_up():
    assert money("1.005") == Decimal("1.01")
    assert money(2) == Decimal("2.00")


@pytest.mark.parametrize("value", ["nan", "sNaN", "Infinity", float("nan")])
def test_money_rejects_non_finite(value):
    with pytest.raises(InvalidInput):
        money(value)

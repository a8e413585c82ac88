"""
Quote calculator tests — cent rounding, markup, GST on the marked-up subtotal.

Pure math, no database.
"""

import math

from tradequote.quote_calculator import (
    calculate_quote, update_quote_calculations, update_material_total_price,
    update_all_material_prices, format_currency, round2,
    calculate_effective_hourly_rate, calculate_profit_margin,
)

from conftest import make_material


# --- calculate_quote ---

def test_gst_charged_on_marked_up_subtotal():
    """$100 materials, no labor, 10% markup -> $121.00."""
    result = calculate_quote([make_material(quantity=1, price=100)], 0, 0, 10)
    assert result == {
        "materials_subtotal": 100.0,
        "labor_total": 0.0,
        "subtotal": 100.0,
        "markup_amount": 10.0,
        "gst": 11.0,
        "total": 121.0,
    }


def test_labor_only_quote():
    result = calculate_quote([], 85, 2, 20)
    assert result == {
        "materials_subtotal": 0.0,
        "labor_total": 170.0,
        "subtotal": 170.0,
        "markup_amount": 34.0,
        "gst": 20.4,
        "total": 224.4,
    }


def test_half_cent_rounds_away_from_zero():
    """3 x 10.005 = 30.015 rounds up to 30.02 before anything else uses it."""
    materials = [{"quantity": 3, "price": 10.005}]
    result = calculate_quote(materials, 0, 0, 0)
    assert result["materials_subtotal"] == 30.02
    assert result["subtotal"] == 30.02
    assert result["gst"] == 3.0  # 3.002 -> 3.00
    assert result["total"] == 33.02


def test_stepwise_rounding_of_markup():
    """Markup rounds to cents before GST is taken."""
    result = calculate_quote([make_material(quantity=1, price=10.05)], 0, 0, 15)
    # 10.05 * 15% = 1.5075 -> 1.51; (10.05 + 1.51) * 10% = 1.156 -> 1.16
    assert result["markup_amount"] == 1.51
    assert result["gst"] == 1.16
    assert result["total"] == 12.72


def test_calculation_is_idempotent():
    materials = [
        make_material("Decking", quantity=34, price=7.45),
        make_material("Screws", quantity=2, price=64.0),
    ]
    first = calculate_quote(materials, 85, 12.5, 22.5)
    second = calculate_quote(materials, 85, 12.5, 22.5)
    assert first == second


def test_uses_total_price_when_present():
    """A stored line total is trusted over quantity x price."""
    materials = [make_material(quantity=2, price=10, total_price=25)]
    assert calculate_quote(materials, 0, 0, 0)["materials_subtotal"] == 25.0


def test_missing_total_price_computed():
    materials = [{"quantity": 4, "price": 2.5}]
    assert calculate_quote(materials, 0, 0, 0)["materials_subtotal"] == 10.0


def test_unusable_numbers_count_as_zero():
    materials = [
        {"quantity": None, "price": 5, "total_price": None},
        {"quantity": 2, "price": float("nan"), "total_price": None},
        {"quantity": 1, "price": 3, "total_price": float("inf")},
        {"quantity": "abc", "price": 3, "total_price": None},
    ]
    result = calculate_quote(materials, None, float("nan"), None)
    assert result == {
        "materials_subtotal": 0.0,
        "labor_total": 0.0,
        "subtotal": 0.0,
        "markup_amount": 0.0,
        "gst": 0.0,
        "total": 0.0,
    }


def test_empty_quote_all_zero():
    result = calculate_quote([], 0, 0, 0)
    assert all(value == 0.0 for value in result.values())
    assert len(result) == 6


# --- Helpers ---

def test_update_quote_calculations_returns_new_dict():
    quote = {
        "materials": [make_material(quantity=1, price=100)],
        "labor_rate": 0, "labor_hours": 0, "markup": 10,
        "total": 999.0,
    }
    updated = update_quote_calculations(quote)
    assert updated is not quote
    assert updated["total"] == 121.0
    assert quote["total"] == 999.0
    assert "updated_at" in updated


def test_update_material_total_price():
    material = make_material(quantity=3, price=10.005, total_price=0)
    updated = update_material_total_price(material)
    assert updated["total_price"] == 30.02
    assert material["total_price"] == 0


def test_update_all_material_prices():
    materials = [make_material("A", 2, 1.5, total_price=0), make_material("B", 1, 4, total_price=0)]
    assert [m["total_price"] for m in update_all_material_prices(materials)] == [3.0, 4.0]


def test_round2():
    assert round2(2.675) == 2.68
    assert round2(-2.675) == -2.68
    assert round2(None) == 0.0
    assert round2(math.nan) == 0.0


def test_format_currency():
    assert format_currency(1234.5) == "$1,234.50"
    assert format_currency(0) == "$0.00"
    assert format_currency(-5) == "-$5.00"


def test_effective_hourly_rate():
    assert calculate_effective_hourly_rate(1000, 8) == 125.0
    assert calculate_effective_hourly_rate(1000, 0) == 0.0


def test_profit_margin():
    assert calculate_profit_margin(200, 150) == 25.0
    assert calculate_profit_margin(0, 150) == 0.0

"""
Quote calculation — materials, labor, markup and GST.

Pure math. Every monetary value is rounded to cents at each step
(round-half-away-from-zero), so 3 × $10.005 = $30.015 becomes $30.02.
Arithmetic runs on Decimal built from str(value), which keeps a float
like 10.005 at its written value instead of its binary approximation.

Missing or unusable numbers (None, NaN, infinity, unparsable strings)
count as zero. The calculator never raises.
"""

from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

# Australian GST, fixed
GST_RATE = Decimal("0.10")

_CENT = Decimal("0.01")
_ZERO = Decimal("0")
_HUNDRED = Decimal("100")


def _to_decimal(value) -> Decimal:
    if value is None:
        return _ZERO
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return _ZERO
    if not number.is_finite():
        return _ZERO
    return number


def _cents(value: Decimal) -> Decimal:
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


def round2(value) -> float:
    """Round to 2 decimal places, halves away from zero."""
    return float(_cents(_to_decimal(value)))


def _line_total(material: dict) -> Decimal:
    total_price = material.get("total_price")
    if total_price is None:
        return _cents(_to_decimal(material.get("quantity")) * _to_decimal(material.get("price")))
    return _to_decimal(total_price)


def calculate_quote(materials: list, labor_rate, labor_hours, markup_percent) -> dict:
    """
    Derive the six monetary fields of a quote.

    Order matters: markup is applied to (materials + labor), and GST is
    charged on the marked-up subtotal, not per line.

    Returns:
        {"materials_subtotal", "labor_total", "subtotal",
         "markup_amount", "gst", "total"} as floats
    """
    materials_subtotal = _cents(sum((_line_total(m) for m in materials), _ZERO))
    labor_total = _cents(_to_decimal(labor_rate) * _to_decimal(labor_hours))
    subtotal = _cents(materials_subtotal + labor_total)
    markup_amount = _cents(subtotal * _to_decimal(markup_percent) / _HUNDRED)

    subtotal_with_markup = subtotal + markup_amount
    gst = _cents(subtotal_with_markup * GST_RATE)
    total = _cents(subtotal_with_markup + gst)

    return {
        "materials_subtotal": float(materials_subtotal),
        "labor_total": float(labor_total),
        "subtotal": float(subtotal),
        "markup_amount": float(markup_amount),
        "gst": float(gst),
        "total": float(total),
    }


def update_quote_calculations(quote: dict) -> dict:
    """Return a copy of the quote with its derived fields recomputed."""
    calculation = calculate_quote(
        quote.get("materials", []),
        quote.get("labor_rate"),
        quote.get("labor_hours"),
        quote.get("markup"),
    )
    updated = dict(quote)
    updated.update(calculation)
    updated["updated_at"] = datetime.utcnow()
    return updated


def update_material_total_price(material: dict) -> dict:
    updated = dict(material)
    updated["total_price"] = round2(
        _to_decimal(material.get("quantity")) * _to_decimal(material.get("price"))
    )
    return updated


def update_all_material_prices(materials: list) -> list:
    return [update_material_total_price(m) for m in materials]


def format_currency(amount) -> str:
    """Display format for AUD amounts: $1,234.50 / -$5.00."""
    value = round2(amount)
    if value < 0:
        return f"-${abs(value):,.2f}"
    return f"${value:,.2f}"


def calculate_effective_hourly_rate(total_revenue, labor_hours) -> float:
    """What the tradie actually earns per hour once materials and markup are in."""
    hours = _to_decimal(labor_hours)
    if hours == 0:
        return 0.0
    return float(_cents(_to_decimal(total_revenue) / hours))


def calculate_profit_margin(total, costs) -> float:
    """Profit as a percentage of the quoted total."""
    total_d = _to_decimal(total)
    if total_d == 0:
        return 0.0
    profit = total_d - _to_decimal(costs)
    return float(_cents(profit / total_d * _HUNDRED))

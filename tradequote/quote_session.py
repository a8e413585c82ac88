"""
QuoteDraft — working state for one quote while it moves through the
quoting steps (customer → job/materials → labor & markup → preview).

One QuoteDraft per quote, one writer at a time. Every change to an input
(materials, labor, markup) re-runs the calculator, so the six derived
totals always match the inputs. Price fetching works on a copy of the
materials list and the draft adopts the result afterwards.
"""

import copy
from datetime import datetime
from typing import Optional

from .config import settings
from .job_templates import get_template_by_id
from .materials_estimator import create_job_from_template, generate_id, new_material, update_material_quantities
from .models import MaterialUnit, QuoteStatus
from .price_reconciler import ReconciliationError, reconcile_prices
from .quote_calculator import update_material_total_price, update_quote_calculations

DERIVED_FIELDS = ("materials_subtotal", "labor_total", "subtotal", "markup_amount", "gst", "total")


class QuoteDraftError(ValueError):
    """Invalid change to a draft (unknown material, negative amount, bad status...)."""


class MaterialNotFoundError(QuoteDraftError):
    pass


def _non_negative(value, field: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise QuoteDraftError("%s must be a number" % field)
    if number != number or number < 0:
        raise QuoteDraftError("%s cannot be negative" % field)
    return number


def _shop_default(business_settings: dict, key: str, fallback: float) -> float:
    value = business_settings.get(key)
    return fallback if value is None else value


def _job_params(params: Optional[dict]) -> dict:
    return {key: _non_negative(value, key) for key, value in (params or {}).items()}


def _unit(value) -> str:
    try:
        return MaterialUnit(value).value
    except ValueError:
        raise QuoteDraftError("Unknown unit %r" % (value,))


class QuoteDraft:

    def __init__(self, quote: dict):
        self.quote = quote

    @classmethod
    def new(cls, business_settings: Optional[dict] = None) -> "QuoteDraft":
        """Fresh draft — no materials, zero totals, rates from the shop defaults."""
        business_settings = business_settings or {}
        now = datetime.utcnow()
        quote = {
            "id": generate_id(),
            "created_at": now,
            "updated_at": now,
            "customer_name": "",
            "customer_email": None,
            "customer_phone": None,
            "job_address": None,
            "job": {"id": generate_id(), "name": "", "description": "", "template": "custom"},
            "materials": [],
            "labor_rate": _shop_default(business_settings, "default_labor_rate", settings.LABOR_RATE_DEFAULT),
            "labor_hours": 0.0,
            "markup": _shop_default(business_settings, "default_markup", settings.MARKUP_DEFAULT),
            "status": QuoteStatus.DRAFT.value,
            "notes": None,
        }
        quote.update({field: 0.0 for field in DERIVED_FIELDS})
        return cls(quote)

    # --- Steps ---

    def set_customer(self, name: str, email: Optional[str] = None,
                     phone: Optional[str] = None, address: Optional[str] = None):
        if not str(name or "").strip():
            raise QuoteDraftError("Customer name is required")
        self.quote.update({
            "customer_name": name.strip(),
            "customer_email": email,
            "customer_phone": phone,
            "job_address": address,
        })
        self._touch()

    def set_contact(self, email: Optional[str] = None, phone: Optional[str] = None,
                    address: Optional[str] = None):
        """Contact details on their own; the name can come later."""
        self.quote.update({
            "customer_email": email,
            "customer_phone": phone,
            "job_address": address,
        })
        self._touch()

    def set_job(self, template_id: str = "custom", params: Optional[dict] = None,
                name: str = "", description: Optional[str] = None):
        """
        Apply a job template: replaces the materials list and labor hours with
        the template's estimate for the given parameters.
        """
        template = get_template_by_id(template_id)
        if template is None:
            raise QuoteDraftError("Unknown job template %r" % template_id)
        estimate = create_job_from_template(template, _job_params(params), name)
        job = estimate["job"]
        if description:
            job["description"] = description
        self.quote["job"] = job
        self.quote["materials"] = estimate["materials"]
        self.quote["labor_hours"] = estimate["estimated_hours"]
        self.recalculate()

    def update_job_params(self, params: dict):
        """Re-estimate template material quantities for new job parameters."""
        job = self.quote.get("job") or {}
        template = get_template_by_id(job.get("template") or "custom")
        if template is None:
            raise QuoteDraftError("Job has no template to re-estimate from")
        params = _job_params(params)
        job = dict(job, custom_params=dict(job.get("custom_params") or {}, **params))
        self.quote["job"] = job
        self.quote["materials"] = update_material_quantities(
            self.quote["materials"], template, job["custom_params"],
        )
        self.recalculate()

    def apply_analysis(self, analysis: dict, materials: list, name: str = "", description: str = ""):
        """Adopt an AI job analysis — custom job, suggested materials, estimated hours."""
        self.quote["job"] = {
            "id": generate_id(),
            "name": name or analysis.get("job_summary", "")[:80],
            "description": description or analysis.get("job_summary", ""),
            "template": "custom",
            "estimated_hours": analysis.get("estimated_hours"),
            "custom_params": {},
        }
        self.quote["materials"] = list(materials)
        self.quote["labor_hours"] = analysis.get("estimated_hours") or 0.0
        self.recalculate()

    def add_material(self, name: str, quantity: float = 1.0, unit: str = "each",
                     price: float = 0.0, search_term: Optional[str] = None,
                     catalog_item_number: Optional[str] = None) -> dict:
        if not str(name or "").strip():
            raise QuoteDraftError("Material name is required")
        material = new_material(
            name=name.strip(),
            quantity=_non_negative(quantity, "quantity"),
            unit=_unit(unit),
            price=_non_negative(price, "price"),
            search_term=search_term,
            catalog_item_number=catalog_item_number,
        )
        self.quote["materials"].append(material)
        self.recalculate()
        return material

    def update_material(self, material_id: str, name: Optional[str] = None,
                        quantity: Optional[float] = None, unit: Optional[str] = None,
                        price: Optional[float] = None, search_term: Optional[str] = None) -> dict:
        """Edit a material. Setting a price by hand marks it as a manual override."""
        index = self._material_index(material_id)
        material = dict(self.quote["materials"][index])
        if name is not None:
            if not name.strip():
                raise QuoteDraftError("Material name is required")
            material["name"] = name.strip()
        if quantity is not None:
            material["quantity"] = _non_negative(quantity, "quantity")
        if unit is not None:
            material["unit"] = _unit(unit)
        if search_term is not None:
            material["search_term"] = search_term or None
        if price is not None:
            material["price"] = _non_negative(price, "price")
            material["manual_price_override"] = True
        material = update_material_total_price(material)
        self.quote["materials"][index] = material
        self.recalculate()
        return material

    def remove_material(self, material_id: str):
        del self.quote["materials"][self._material_index(material_id)]
        self.recalculate()

    def set_labor(self, labor_rate: Optional[float] = None, labor_hours: Optional[float] = None):
        if labor_rate is not None:
            self.quote["labor_rate"] = _non_negative(labor_rate, "labor_rate")
        if labor_hours is not None:
            self.quote["labor_hours"] = _non_negative(labor_hours, "labor_hours")
        self.recalculate()

    def set_markup(self, markup: float):
        self.quote["markup"] = _non_negative(markup, "markup")
        self.recalculate()

    def set_status(self, status: str):
        """Any status can move to any other — the tradie decides."""
        try:
            self.quote["status"] = QuoteStatus(status).value
        except ValueError:
            raise QuoteDraftError("Unknown status %r" % (status,))
        self._touch()

    def set_notes(self, notes: Optional[str]):
        self.quote["notes"] = notes
        self._touch()

    # --- Pricing ---

    def fetch_prices(self, lookup, on_progress=None, cancel_event=None,
                     delay_seconds: Optional[float] = None, rename: bool = False):
        """
        Reconcile material prices, then recalculate totals.

        The reconciler runs on a copy of the materials. If the source drops
        out mid-pass the prices already fetched are still adopted before
        the ReconciliationError propagates.
        """
        materials = copy.deepcopy(self.quote["materials"])
        try:
            result = reconcile_prices(
                materials, lookup,
                on_progress=on_progress,
                cancel_event=cancel_event,
                delay_seconds=delay_seconds,
                rename=rename,
            )
        except ReconciliationError as e:
            self.quote["materials"] = e.result.materials
            self.recalculate()
            raise
        self.quote["materials"] = result.materials
        self.recalculate()
        return result

    def recalculate(self):
        self.quote = update_quote_calculations(self.quote)

    # --- Copies ---

    def duplicate(self) -> "QuoteDraft":
        """New draft with the same content — fresh ids, timestamps and draft status."""
        quote = copy.deepcopy(self.quote)
        now = datetime.utcnow()
        quote.update({
            "id": generate_id(),
            "created_at": now,
            "updated_at": now,
            "status": QuoteStatus.DRAFT.value,
        })
        quote.pop("quote_number", None)
        quote["job"] = dict(quote.get("job") or {}, id=generate_id())
        quote["materials"] = [dict(m, id=generate_id()) for m in quote["materials"]]
        return QuoteDraft(quote)

    def snapshot(self) -> dict:
        return copy.deepcopy(self.quote)

    # --- Helpers ---

    def _material_index(self, material_id: str) -> int:
        for index, material in enumerate(self.quote["materials"]):
            if material["id"] == material_id:
                return index
        raise MaterialNotFoundError("Material %s not found" % material_id)

    def _touch(self):
        self.quote["updated_at"] = datetime.utcnow()

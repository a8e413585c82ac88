"""
Materials estimation — turns a job template plus parameters into an
unpriced materials list and a labor-hours estimate.

Prices start at 0; the price reconciler fills them in later.
"""

import uuid
from typing import Optional

from .formula import evaluate_formula
from .job_templates import default_params
from .quote_calculator import update_material_total_price


def generate_id() -> str:
    return str(uuid.uuid4())


def new_material(name: str, quantity: float = 1.0, unit: str = "each", price: float = 0.0,
                 search_term: Optional[str] = None, catalog_item_number: Optional[str] = None,
                 manual_price_override: bool = False) -> dict:
    """Build a material record with its total_price already consistent."""
    return update_material_total_price({
        "id": generate_id(),
        "name": name,
        "quantity": quantity,
        "unit": unit,
        "price": price,
        "total_price": 0.0,
        "manual_price_override": manual_price_override,
        "catalog_item_number": catalog_item_number,
        "search_term": search_term,
    })


def _merged_params(template: dict, custom_params: Optional[dict]) -> dict:
    params = default_params(template)
    params.update(custom_params or {})
    return params


def estimate_materials_from_template(template: dict, custom_params: Optional[dict] = None) -> list:
    params = _merged_params(template, custom_params)
    return [
        new_material(
            name=tm["name"],
            quantity=evaluate_formula(tm["quantity_formula"], params),
            unit=tm["unit"],
            search_term=tm.get("search_term"),
        )
        for tm in template.get("default_materials", [])
    ]


def estimate_labor_hours(template: dict, custom_params: Optional[dict] = None) -> float:
    params = _merged_params(template, custom_params)
    return evaluate_formula(template["estimated_hours_formula"], params)


def create_job_from_template(template: dict, custom_params: Optional[dict] = None,
                             job_name: str = "") -> dict:
    """
    Complete job estimate from a template.

    Returns:
        {"job": Job dict, "materials": [material, ...], "estimated_hours": float}
    """
    params = _merged_params(template, custom_params)
    materials = estimate_materials_from_template(template, params)
    estimated_hours = estimate_labor_hours(template, params)

    job = {
        "id": generate_id(),
        "name": job_name or template["name"],
        "description": template["description"],
        "template": template["id"],
        "estimated_hours": estimated_hours,
        "custom_params": params,
    }
    return {
        "job": job,
        "materials": materials,
        "estimated_hours": estimated_hours,
    }


def update_material_quantities(materials: list, template: dict, new_params: dict) -> list:
    """
    Re-run the template quantity formulas after the job parameters change.

    Materials are matched to template entries by position; anything past the
    end of the template list was added by hand and is kept as-is. Prices
    (including manual overrides) are kept, and total_price follows the new
    quantity.
    """
    params = _merged_params(template, new_params)
    template_materials = template.get("default_materials", [])
    updated = []
    for index, material in enumerate(materials):
        if index >= len(template_materials):
            updated.append(material)
            continue
        quantity = evaluate_formula(template_materials[index]["quantity_formula"], params)
        updated.append(update_material_total_price(dict(material, quantity=quantity)))
    return updated

"""
Job templates — starting material lists for common jobs.

Each template lists materials with a search term for price lookups and a
quantity formula over the template's parameters (see formula.py).
"custom" has no materials: the tradie describes the job and the AI
analyzer suggests materials instead.
"""

from typing import Optional

JOB_TEMPLATES = [
    {
        "id": "custom",
        "name": "Custom Job",
        "description": "Describe your job and AI will suggest materials",
        "icon": "hammer-wrench",
        "required_params": [],
        "default_materials": [],
        "estimated_hours_formula": "8",
    },
    {
        "id": "stairs",
        "name": "Timber Stairs",
        "description": "Straight flight of external timber stairs",
        "icon": "stairs",
        "required_params": [
            {"key": "steps", "label": "Number of steps", "unit": "", "default_value": 5},
            {"key": "width", "label": "Stair width", "unit": "m", "default_value": 1.0},
        ],
        "default_materials": [
            {"name": "Stringer 240x45 H3 treated pine", "search_term": "treated pine H3 240x45 3.6m",
             "quantity_formula": "ceil(steps / 6) * 2", "unit": "each"},
            {"name": "Tread 190x32 merbau", "search_term": "merbau decking 190x32",
             "quantity_formula": "steps * ceil(width / 0.9)", "unit": "each"},
            {"name": "Galvanised stair bracket", "search_term": "galvanised stair bracket",
             "quantity_formula": "steps * 2", "unit": "each"},
            {"name": "Batten screws 14g x 75mm", "search_term": "batten screw 14g 75mm",
             "quantity_formula": "ceil(steps * 8 / 50)", "unit": "box"},
        ],
        "estimated_hours_formula": "2 + steps * 0.75",
    },
    {
        "id": "deck",
        "name": "Timber Deck",
        "description": "Ground-level deck on stumps",
        "icon": "view-grid",
        "required_params": [
            {"key": "length", "label": "Deck length", "unit": "m", "default_value": 4.0},
            {"key": "width", "label": "Deck width", "unit": "m", "default_value": 3.0},
        ],
        "default_materials": [
            {"name": "Decking 90x19 merbau", "search_term": "merbau decking 90x19",
             "quantity_formula": "ceil(length * width / 0.095 * 1.1)", "unit": "m"},
            {"name": "Joist 90x45 H3 treated pine", "search_term": "treated pine H3 90x45 4.8m",
             "quantity_formula": "ceil(length / 0.45) + 1", "unit": "each"},
            {"name": "Bearer 140x45 H4 treated pine", "search_term": "treated pine H4 140x45",
             "quantity_formula": "ceil(width / 1.8) + 1", "unit": "each"},
            {"name": "Adjustable stump", "search_term": "adjustable steel stump",
             "quantity_formula": "(ceil(width / 1.8) + 1) * (ceil(length / 1.8) + 1)", "unit": "each"},
            {"name": "Decking screws 10g x 50mm", "search_term": "decking screw 10g 50mm stainless",
             "quantity_formula": "ceil(length * width / 3)", "unit": "box"},
            {"name": "Decking oil", "search_term": "decking oil 4L",
             "quantity_formula": "ceil(length * width / 15) * 4", "unit": "L"},
        ],
        "estimated_hours_formula": "6 + length * width * 1.2",
    },
    {
        "id": "fence",
        "name": "Paling Fence",
        "description": "Treated pine paling fence with posts and rails",
        "icon": "fence",
        "required_params": [
            {"key": "length", "label": "Fence length", "unit": "m", "default_value": 10.0},
            {"key": "height", "label": "Fence height", "unit": "m", "default_value": 1.8},
        ],
        "default_materials": [
            {"name": "Post 100x100 H4 treated pine", "search_term": "treated pine H4 100x100 2.4m",
             "quantity_formula": "ceil(length / 2.4) + 1", "unit": "each"},
            {"name": "Rail 75x38 H3 treated pine", "search_term": "treated pine H3 75x38 4.8m",
             "quantity_formula": "ceil(length / 4.8) * 3", "unit": "each"},
            {"name": "Paling 100x12 treated pine", "search_term": "treated pine paling 100x12 1.8m",
             "quantity_formula": "ceil(length / 0.09)", "unit": "each"},
            {"name": "Rapid set concrete 20kg", "search_term": "rapid set concrete 20kg",
             "quantity_formula": "(ceil(length / 2.4) + 1) * 2", "unit": "each"},
            {"name": "Galvanised nails 50mm", "search_term": "galvanised flathead nail 50mm",
             "quantity_formula": "ceil(length / 10)", "unit": "kg"},
        ],
        "estimated_hours_formula": "4 + length * 0.8",
    },
    {
        "id": "pergola",
        "name": "Pergola",
        "description": "Freestanding timber pergola",
        "icon": "home-roof",
        "required_params": [
            {"key": "length", "label": "Pergola length", "unit": "m", "default_value": 4.0},
            {"key": "width", "label": "Pergola width", "unit": "m", "default_value": 3.0},
        ],
        "default_materials": [
            {"name": "Post 90x90 H4 treated pine", "search_term": "treated pine H4 90x90 3.0m",
             "quantity_formula": "max(4, (ceil(length / 3) + 1) * 2)", "unit": "each"},
            {"name": "Beam 190x45 H3 treated pine", "search_term": "treated pine H3 190x45 4.8m",
             "quantity_formula": "2 * ceil(length / 4.8)", "unit": "each"},
            {"name": "Rafter 140x45 H3 treated pine", "search_term": "treated pine H3 140x45 3.6m",
             "quantity_formula": "ceil(length / 0.6) + 1", "unit": "each"},
            {"name": "Post anchor stirrup", "search_term": "galvanised post anchor stirrup 90mm",
             "quantity_formula": "max(4, (ceil(length / 3) + 1) * 2)", "unit": "each"},
            {"name": "Coach screws M10 x 100mm", "search_term": "coach screw M10 100mm galvanised",
             "quantity_formula": "1", "unit": "pack"},
        ],
        "estimated_hours_formula": "10 + length * width * 0.8",
    },
]


def get_template_by_id(template_id: str) -> Optional[dict]:
    for template in JOB_TEMPLATES:
        if template["id"] == template_id:
            return template
    return None


def default_params(template: dict) -> dict:
    """Parameter map filled with each required param's default value."""
    return {
        p["key"]: p.get("default_value", 0)
        for p in template.get("required_params", [])
    }

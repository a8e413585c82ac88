"""
AI job analysis — plain-English job description in, suggested materials out.

Gemini reads the description and returns a materials list with hardware
store search terms plus an hours estimate. Suggested materials come back
unpriced; the price reconciler fills in prices afterwards.
"""

import json
import logging
import re
import time
import urllib.error
import urllib.request
from typing import Optional

from .config import settings
from .materials_estimator import new_material
from .models import MaterialUnit

logger = logging.getLogger(__name__)

DEFAULT_ESTIMATED_HOURS = 8.0
MAX_BACKOFF_SECONDS = 5.0


class JobAnalysisError(Exception):
    """Job description could not be analyzed (no API key, or every attempt failed)."""


ANALYSIS_PROMPT = """You are an expert Australian tradie assistant. Analyze the following job
description and generate a detailed materials list with Bunnings search terms.

Job Description: "{description}"

Return ONLY valid JSON with this structure:
{{
  "jobSummary": "A brief summary of the job",
  "estimatedHours": <number of hours>,
  "materials": [
    {{
      "name": "Material name as it should appear in the quote",
      "searchTerm": "Specific Bunnings search term (brands/sizes)",
      "quantity": <number>,
      "unit": "each|m|L|kg|box|pack",
      "reasoning": "Why this material is needed"
    }}
  ]
}}

Guidelines:
- Use specific product terms ("treated pine H3 90x45 2.4m", not "timber")
- Include all materials: timber, fixings, stain/paint, concrete, etc.
- Be realistic with quantities — round up for waste
- Include prep materials where relevant (sandpaper, drop sheets)
- Estimate labor hours for an experienced tradie
"""


def analyze_job_description(description: str, retries: Optional[int] = None,
                            api_key: Optional[str] = None) -> dict:
    """
    Ask Gemini for a materials list and hours estimate.

    Retries with exponential backoff (1s, 2s, 4s... capped at 5s).

    Returns:
        {"job_summary": str, "estimated_hours": float, "materials": [suggestion, ...]}

    Raises:
        JobAnalysisError: no API key configured, or all attempts failed.
    """
    api_key = settings.GEMINI_API_KEY if api_key is None else api_key
    if not api_key:
        raise JobAnalysisError("GEMINI_API_KEY not configured — job analysis unavailable")

    attempts = max(1, retries if retries is not None else settings.JOB_ANALYSIS_RETRIES)
    prompt = ANALYSIS_PROMPT.format(description=description)
    last_error = None

    for attempt in range(attempts):
        try:
            text = _call_gemini(prompt, api_key)
            return _parse_response(text)
        except (JobAnalysisError, urllib.error.URLError, TimeoutError,
                KeyError, IndexError, ValueError) as e:
            last_error = e
            logger.warning("Job analysis attempt %d/%d failed: %s", attempt + 1, attempts, e)
            if attempt < attempts - 1:
                time.sleep(min(2 ** attempt, MAX_BACKOFF_SECONDS))

    raise JobAnalysisError(
        "Failed to analyze job description after %d attempts: %s" % (attempts, last_error)
    )


def _call_gemini(prompt: str, api_key: str) -> str:
    """Call Gemini API. Raises on failure."""
    url = (
        "https://generativelanguage.googleapis.com/v1beta/models/"
        "%s:generateContent?key=%s" % (settings.GEMINI_MODEL, api_key)
    )
    payload = json.dumps({
        "contents": [{"parts": [{"text": prompt}]}],
        "generationConfig": {
            "temperature": 0.2,
            "responseMimeType": "application/json",
        },
    }).encode("utf-8")
    req = urllib.request.Request(
        url,
        data=payload,
        headers={"Content-Type": "application/json"},
        method="POST",
    )
    with urllib.request.urlopen(req, timeout=60) as response:
        result = json.loads(response.read())
        return result["candidates"][0]["content"]["parts"][0]["text"]


def _parse_response(text: str) -> dict:
    body = str(text or "").strip()
    fenced = re.match(r"^```(?:json)?\s*([\s\S]*?)\s*```$", body)
    if fenced:
        body = fenced.group(1)
    try:
        data = json.loads(body)
    except json.JSONDecodeError:
        raise JobAnalysisError("Invalid JSON from job analysis: %.100s" % body)
    if not isinstance(data, dict):
        raise JobAnalysisError("Job analysis response is not an object")

    try:
        hours = float(data.get("estimatedHours") or DEFAULT_ESTIMATED_HOURS)
    except (TypeError, ValueError):
        hours = DEFAULT_ESTIMATED_HOURS

    materials = data.get("materials") or []
    if not isinstance(materials, list):
        materials = []

    return {
        "job_summary": str(data.get("jobSummary") or ""),
        "estimated_hours": hours,
        "materials": [m for m in materials if isinstance(m, dict) and m.get("name")],
    }


_UNIT_ALIASES = {
    "ea": MaterialUnit.EACH, "each": MaterialUnit.EACH, "pc": MaterialUnit.EACH,
    "m": MaterialUnit.METRE, "lm": MaterialUnit.METRE, "metre": MaterialUnit.METRE,
    "l": MaterialUnit.LITRE, "litre": MaterialUnit.LITRE,
    "kg": MaterialUnit.KILOGRAM,
    "box": MaterialUnit.BOX,
    "pack": MaterialUnit.PACK, "pk": MaterialUnit.PACK,
}


def normalize_unit(unit) -> str:
    """Map a free-text unit onto the material unit list — unknown units become 'each'."""
    key = str(unit or "").strip()
    if key in {u.value for u in MaterialUnit}:
        return key
    return _UNIT_ALIASES.get(key.lower(), MaterialUnit.EACH).value


def materials_from_analysis(analysis: dict) -> list:
    """Turn AI suggestions into unpriced material records."""
    materials = []
    for suggestion in analysis.get("materials", []):
        try:
            quantity = max(float(suggestion.get("quantity") or 1), 0.0)
        except (TypeError, ValueError):
            quantity = 1.0
        materials.append(new_material(
            name=str(suggestion["name"]),
            quantity=quantity,
            unit=normalize_unit(suggestion.get("unit")),
            search_term=suggestion.get("searchTerm") or None,
        ))
    return materials

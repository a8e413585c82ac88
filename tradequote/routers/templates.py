import logging
from fastapi import APIRouter, HTTPException
from .. import schemas
from ..job_analyzer import JobAnalysisError, analyze_job_description, materials_from_analysis
from ..job_templates import JOB_TEMPLATES, get_template_by_id
from ..materials_estimator import create_job_from_template

logger = logging.getLogger(__name__)

router = APIRouter(tags=["templates"])


@router.get("/templates")
def list_templates():
    return JOB_TEMPLATES


@router.get("/templates/{template_id}")
def get_template(template_id: str):
    template = get_template_by_id(template_id)
    if template is None:
        raise HTTPException(status_code=404, detail="Template not found")
    return template


@router.post("/templates/{template_id}/estimate")
def estimate_from_template(template_id: str, request: schemas.TemplateEstimateRequest):
    """Materials and hours for a template without touching any quote."""
    template = get_template_by_id(template_id)
    if template is None:
        raise HTTPException(status_code=404, detail="Template not found")
    return create_job_from_template(template, request.params, request.job_name)


@router.post("/jobs/analyze")
def analyze_job(request: schemas.AnalyzeRequest):
    """
    AI materials list for a plain-English job description.

    Materials come back unpriced; add them to a quote and fetch prices.
    """
    try:
        analysis = analyze_job_description(request.description)
    except JobAnalysisError as e:
        logger.error("Job analysis failed: %s", e)
        raise HTTPException(status_code=502, detail=str(e))
    return {
        "job_summary": analysis["job_summary"],
        "estimated_hours": analysis["estimated_hours"],
        "materials": materials_from_analysis(analysis),
    }

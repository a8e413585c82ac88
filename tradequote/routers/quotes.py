import logging
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List
from datetime import datetime
from .. import models, schemas
from ..database import get_db
from ..job_analyzer import JobAnalysisError, analyze_job_description, materials_from_analysis
from ..quote_calculator import calculate_effective_hourly_rate, calculate_profit_margin, format_currency
from ..quote_session import QuoteDraft, QuoteDraftError
from .settings import get_business_settings, settings_to_dict

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/quotes", tags=["quotes"])


def generate_quote_number(db: Session) -> str:
    count = db.query(models.Quote).count()
    year = datetime.utcnow().year
    number = f"Q-{year}-{str(count + 1).zfill(4)}"
    while db.query(models.Quote).filter(models.Quote.quote_number == number).first():
        count += 1
        number = f"Q-{year}-{str(count + 1).zfill(4)}"
    return number


# --- Row <-> draft ---

def _material_to_dict(m: models.QuoteMaterial) -> dict:
    return {
        "id": m.id,
        "name": m.name,
        "quantity": m.quantity or 0.0,
        "unit": m.unit.value if m.unit else models.MaterialUnit.EACH.value,
        "price": m.price or 0.0,
        "total_price": m.total_price if m.total_price is not None else 0.0,
        "manual_price_override": bool(m.manual_price_override),
        "catalog_item_number": m.catalog_item_number,
        "search_term": m.search_term,
    }


def _quote_to_dict(q: models.Quote) -> dict:
    job = dict(q.job_json or {})
    job.setdefault("id", q.id)
    job.setdefault("name", "")
    job.setdefault("description", "")
    job.setdefault("custom_params", {})
    return {
        "id": q.id,
        "quote_number": q.quote_number,
        "status": q.status.value if q.status else models.QuoteStatus.DRAFT.value,
        "customer_name": q.customer_name or "",
        "customer_email": q.customer_email,
        "customer_phone": q.customer_phone,
        "job_address": q.job_address,
        "job": job,
        "materials": [_material_to_dict(m) for m in q.materials],
        "labor_rate": q.labor_rate or 0.0,
        "labor_hours": q.labor_hours or 0.0,
        "markup": q.markup or 0.0,
        "notes": q.notes,
        "materials_subtotal": q.materials_subtotal or 0.0,
        "labor_total": q.labor_total or 0.0,
        "subtotal": q.subtotal or 0.0,
        "markup_amount": q.markup_amount or 0.0,
        "gst": q.gst or 0.0,
        "total": q.total or 0.0,
        "created_at": q.created_at,
        "updated_at": q.updated_at,
    }


def quote_response(quote: dict) -> dict:
    data = dict(quote)
    for field in ("created_at", "updated_at"):
        if isinstance(data.get(field), datetime):
            data[field] = data[field].isoformat()
    return data


def get_quote_row(quote_id: str, db: Session) -> models.Quote:
    quote = db.query(models.Quote).filter(models.Quote.id == quote_id).first()
    if not quote:
        raise HTTPException(status_code=404, detail="Quote not found")
    return quote


def load_draft(quote: models.Quote) -> QuoteDraft:
    return QuoteDraft(_quote_to_dict(quote))


def save_draft(db: Session, draft: QuoteDraft, quote: models.Quote = None) -> models.Quote:
    """Write the draft back to its row. Materials are matched by id; rows not in the draft are deleted."""
    data = draft.quote
    if quote is None:
        quote = models.Quote(
            id=data["id"],
            quote_number=data.get("quote_number") or generate_quote_number(db),
            created_at=data.get("created_at") or datetime.utcnow(),
        )
        db.add(quote)

    quote.status = models.QuoteStatus(data["status"])
    for field in ("customer_name", "customer_email", "customer_phone", "job_address",
                  "labor_rate", "labor_hours", "markup", "notes",
                  "materials_subtotal", "labor_total", "subtotal", "markup_amount", "gst", "total"):
        setattr(quote, field, data.get(field))
    quote.job_json = dict(data.get("job") or {})
    quote.updated_at = data.get("updated_at") or datetime.utcnow()

    existing = {m.id: m for m in quote.materials}
    rows = []
    for position, material in enumerate(data["materials"]):
        row = existing.get(material["id"]) or models.QuoteMaterial(id=material["id"])
        row.position = position
        row.name = material["name"]
        row.quantity = material.get("quantity") or 0.0
        row.unit = models.MaterialUnit(material.get("unit") or models.MaterialUnit.EACH.value)
        row.price = material.get("price") or 0.0
        row.total_price = material.get("total_price") or 0.0
        row.manual_price_override = bool(material.get("manual_price_override"))
        row.catalog_item_number = material.get("catalog_item_number")
        row.search_term = material.get("search_term")
        rows.append(row)
    quote.materials = rows

    db.commit()
    db.refresh(quote)
    return quote


# --- Endpoints ---

@router.post("/")
def create_quote(quote: schemas.QuoteCreate, db: Session = Depends(get_db)):
    business = settings_to_dict(get_business_settings(db))
    draft = QuoteDraft.new(business)
    try:
        if quote.customer_name:
            draft.set_customer(quote.customer_name, quote.customer_email,
                               quote.customer_phone, quote.job_address)
        draft.set_labor(labor_rate=quote.labor_rate)
        if quote.markup is not None:
            draft.set_markup(quote.markup)
    except QuoteDraftError as e:
        raise HTTPException(status_code=400, detail=str(e))
    draft.set_notes(quote.notes)
    row = save_draft(db, draft)
    logger.info("Created quote %s", row.quote_number)
    return quote_response(_quote_to_dict(row))


@router.get("/", response_model=List[schemas.Quote])
def list_quotes(skip: int = 0, limit: int = 50, status: str = None, db: Session = Depends(get_db)):
    query = db.query(models.Quote)
    if status:
        try:
            query = query.filter(models.Quote.status == models.QuoteStatus(status))
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Unknown status '{status}'")
    quotes = query.order_by(models.Quote.created_at.desc()).offset(skip).limit(limit).all()
    return [quote_response(_quote_to_dict(q)) for q in quotes]


@router.get("/{quote_id}", response_model=schemas.Quote)
def get_quote(quote_id: str, db: Session = Depends(get_db)):
    return quote_response(_quote_to_dict(get_quote_row(quote_id, db)))


@router.patch("/{quote_id}")
def update_quote(quote_id: str, update: schemas.QuoteUpdate, db: Session = Depends(get_db)):
    row = get_quote_row(quote_id, db)
    draft = load_draft(row)
    fields = update.model_dump(exclude_unset=True)
    try:
        current = draft.quote
        contact = (
            fields.get("customer_email", current["customer_email"]),
            fields.get("customer_phone", current["customer_phone"]),
            fields.get("job_address", current["job_address"]),
        )
        if "customer_name" in fields:
            draft.set_customer(fields["customer_name"], *contact)
        elif {"customer_email", "customer_phone", "job_address"} & fields.keys():
            draft.set_contact(*contact)
        if "labor_rate" in fields or "labor_hours" in fields:
            draft.set_labor(fields.get("labor_rate"), fields.get("labor_hours"))
        if fields.get("markup") is not None:
            draft.set_markup(fields["markup"])
        if fields.get("status") is not None:
            draft.set_status(fields["status"])
        if "notes" in fields:
            draft.set_notes(fields["notes"])
    except QuoteDraftError as e:
        raise HTTPException(status_code=400, detail=str(e))
    row = save_draft(db, draft, row)
    return quote_response(_quote_to_dict(row))


@router.delete("/{quote_id}")
def delete_quote(quote_id: str, db: Session = Depends(get_db)):
    row = get_quote_row(quote_id, db)
    db.delete(row)
    db.commit()
    return {"message": "Quote deleted"}


@router.post("/{quote_id}/duplicate")
def duplicate_quote(quote_id: str, db: Session = Depends(get_db)):
    copy = load_draft(get_quote_row(quote_id, db)).duplicate()
    row = save_draft(db, copy)
    logger.info("Duplicated quote %s as %s", quote_id, row.quote_number)
    return quote_response(_quote_to_dict(row))


@router.put("/{quote_id}/job")
def set_job(quote_id: str, request: schemas.JobRequest, db: Session = Depends(get_db)):
    """
    Set the job for a quote.

    With analyze=true the description goes to the AI job analyzer and its
    suggested materials replace the list. Otherwise the template estimate does.
    """
    row = get_quote_row(quote_id, db)
    draft = load_draft(row)
    if request.analyze:
        if not request.description:
            raise HTTPException(status_code=400, detail="A job description is required for analysis")
        try:
            analysis = analyze_job_description(request.description)
        except JobAnalysisError as e:
            logger.error("Job analysis failed for quote %s: %s", quote_id, e)
            raise HTTPException(status_code=502, detail=str(e))
        draft.apply_analysis(analysis, materials_from_analysis(analysis),
                             name=request.name, description=request.description)
    else:
        try:
            draft.set_job(request.template, request.params, request.name, request.description)
        except QuoteDraftError as e:
            raise HTTPException(status_code=400, detail=str(e))
    row = save_draft(db, draft, row)
    return quote_response(_quote_to_dict(row))


@router.patch("/{quote_id}/job")
def update_job_params(quote_id: str, request: schemas.JobParamsUpdate, db: Session = Depends(get_db)):
    """Re-estimate template quantities for new job dimensions. Prices are kept."""
    row = get_quote_row(quote_id, db)
    draft = load_draft(row)
    try:
        draft.update_job_params(request.params)
    except QuoteDraftError as e:
        raise HTTPException(status_code=400, detail=str(e))
    row = save_draft(db, draft, row)
    return quote_response(_quote_to_dict(row))


@router.get("/{quote_id}/breakdown")
def quote_breakdown(quote_id: str, db: Session = Depends(get_db)):
    """Internal numbers for the tradie — never shown to the customer."""
    q = _quote_to_dict(get_quote_row(quote_id, db))
    earnings = q["labor_total"] + q["markup_amount"]
    ex_gst = q["subtotal"] + q["markup_amount"]
    costs = q["materials_subtotal"] + q["labor_total"]
    return {
        "quote_number": q["quote_number"],
        "materials_subtotal": q["materials_subtotal"],
        "labor_total": q["labor_total"],
        "markup_amount": q["markup_amount"],
        "gst": q["gst"],
        "total": q["total"],
        "total_display": format_currency(q["total"]),
        "effective_hourly_rate": calculate_effective_hourly_rate(earnings, q["labor_hours"]),
        "profit_margin": calculate_profit_margin(ex_gst, costs),
    }

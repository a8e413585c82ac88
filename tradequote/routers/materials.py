"""
Quote materials — add, edit, remove, and fetch prices for the whole list.
"""

import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from .. import schemas
from ..database import get_db
from ..price_lookup import PriceLookupError, PricingUnavailableError, get_price_lookup, source_label
from ..price_reconciler import (
    BATCH_FAILURE_MESSAGE, BATCH_FAILURE_TITLE, ReconciliationError, outcome_message,
)
from ..quote_session import MaterialNotFoundError, QuoteDraftError
from .quotes import _quote_to_dict, get_quote_row, load_draft, quote_response, save_draft
from .settings import get_business_settings, settings_to_dict

logger = logging.getLogger(__name__)

router = APIRouter(tags=["materials"])


@router.post("/quotes/{quote_id}/materials")
def add_material(quote_id: str, material: schemas.MaterialCreate, db: Session = Depends(get_db)):
    row = get_quote_row(quote_id, db)
    draft = load_draft(row)
    try:
        draft.add_material(
            name=material.name,
            quantity=material.quantity,
            unit=material.unit.value,
            price=material.price,
            search_term=material.search_term,
            catalog_item_number=material.catalog_item_number,
        )
    except QuoteDraftError as e:
        raise HTTPException(status_code=400, detail=str(e))
    row = save_draft(db, draft, row)
    return quote_response(_quote_to_dict(row))


@router.patch("/quotes/{quote_id}/materials/{material_id}")
def update_material(quote_id: str, material_id: str, update: schemas.MaterialUpdate,
                    db: Session = Depends(get_db)):
    row = get_quote_row(quote_id, db)
    draft = load_draft(row)
    fields = update.model_dump(exclude_unset=True)
    if fields.get("unit") is not None:
        fields["unit"] = fields["unit"].value
    try:
        draft.update_material(material_id, **fields)
    except MaterialNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except QuoteDraftError as e:
        raise HTTPException(status_code=400, detail=str(e))
    row = save_draft(db, draft, row)
    return quote_response(_quote_to_dict(row))


@router.delete("/quotes/{quote_id}/materials/{material_id}")
def remove_material(quote_id: str, material_id: str, db: Session = Depends(get_db)):
    row = get_quote_row(quote_id, db)
    draft = load_draft(row)
    try:
        draft.remove_material(material_id)
    except MaterialNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    row = save_draft(db, draft, row)
    return quote_response(_quote_to_dict(row))


@router.post("/quotes/{quote_id}/fetch-prices")
def fetch_prices(quote_id: str, request: Optional[schemas.FetchPricesRequest] = None,
                 db: Session = Depends(get_db)):
    """
    Fill in prices for every material that doesn't have an automatic one yet.

    If the price source drops out part way, the prices fetched so far are
    saved before the 502 goes back.
    """
    request = request or schemas.FetchPricesRequest()
    row = get_quote_row(quote_id, db)
    draft = load_draft(row)
    if not draft.quote["materials"]:
        raise HTTPException(status_code=400, detail="No materials to price. Add materials first.")

    business = settings_to_dict(get_business_settings(db))
    try:
        price_source = get_price_lookup(business)
    except PricingUnavailableError as e:
        logger.error("Price source unavailable: %s", e)
        raise HTTPException(status_code=503, detail=str(e))

    try:
        result = draft.fetch_prices(price_source.lookup, rename=request.rename)
    except ReconciliationError as e:
        save_draft(db, draft, row)
        raise HTTPException(status_code=502, detail={
            "title": BATCH_FAILURE_TITLE,
            "message": BATCH_FAILURE_MESSAGE,
            "error": str(e),
            **e.result.counts(),
        })

    row = save_draft(db, draft, row)
    return {
        **result.counts(),
        "cancelled": result.cancelled,
        **outcome_message(result, source_label(business)),
        "quote": quote_response(_quote_to_dict(row)),
    }


@router.get("/pricing/search")
def search_price(q: str, db: Session = Depends(get_db)):
    """Look up a single material price from the shop's price source."""
    if not q.strip():
        raise HTTPException(status_code=400, detail="Search term is required")
    business = settings_to_dict(get_business_settings(db))
    try:
        found = get_price_lookup(business).lookup(q.strip())
    except PricingUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except PriceLookupError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return {"query": q.strip(), "source": source_label(business), **found}

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from .. import models, schemas
from ..database import get_db
from ..price_lookup import resolve_source, source_label

router = APIRouter(prefix="/settings", tags=["settings"])


def get_business_settings(db: Session) -> models.BusinessSettings:
    """The shop profile row — created with defaults on first use."""
    row = db.query(models.BusinessSettings).filter(models.BusinessSettings.id == 1).first()
    if row is None:
        row = models.BusinessSettings(id=1, business_name="", hardware_stores=[])
        db.add(row)
        db.commit()
        db.refresh(row)
    return row


def settings_to_dict(row: models.BusinessSettings) -> dict:
    return {
        "business_name": row.business_name or "",
        "abn": row.abn,
        "email": row.email,
        "phone": row.phone,
        "address": row.address,
        "logo_uri": row.logo_uri,
        "default_labor_rate": row.default_labor_rate,
        "default_markup": row.default_markup,
        "use_hardware_store_api": bool(row.use_hardware_store_api),
        "hardware_stores": list(row.hardware_stores or []),
        "updated_at": row.updated_at.isoformat() if row.updated_at else None,
    }


def _settings_response(row: models.BusinessSettings) -> dict:
    data = settings_to_dict(row)
    data["pricing_source"] = resolve_source(data)
    data["pricing_source_label"] = source_label(data)
    return data


@router.get("/")
def read_settings(db: Session = Depends(get_db)):
    return _settings_response(get_business_settings(db))


@router.put("/")
def update_settings(update: schemas.BusinessSettingsUpdate, db: Session = Depends(get_db)):
    row = get_business_settings(db)
    for field, value in update.model_dump(exclude_unset=True).items():
        if value is None and field in ("default_labor_rate", "default_markup", "use_hardware_store_api"):
            continue
        setattr(row, field, value)
    db.commit()
    db.refresh(row)
    return _settings_response(row)

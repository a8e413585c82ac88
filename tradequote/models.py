from sqlalchemy import Column, Integer, String, Float, DateTime, Text, ForeignKey, Enum, Boolean, JSON
from sqlalchemy.orm import relationship
from datetime import datetime
from .database import Base
import enum


# --- Enums ---

class QuoteStatus(str, enum.Enum):
    DRAFT = "draft"
    SENT = "sent"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class MaterialUnit(str, enum.Enum):
    EACH = "each"
    METRE = "m"
    LITRE = "L"
    KILOGRAM = "kg"
    BOX = "box"
    PACK = "pack"


JOB_TEMPLATE_IDS = ["custom", "stairs", "deck", "fence", "pergola"]


# --- Tables ---

class BusinessSettings(Base):
    """Single-row shop profile — defaults for new quotes and price source."""
    __tablename__ = "business_settings"

    id = Column(Integer, primary_key=True, index=True)
    business_name = Column(String, default="")
    abn = Column(String, nullable=True)
    email = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    address = Column(Text, nullable=True)
    logo_uri = Column(String, nullable=True)
    default_labor_rate = Column(Float, default=85.00)
    default_markup = Column(Float, default=20.0)
    # False: PRICING_SOURCE (AI estimate by default). True: hardware store API.
    use_hardware_store_api = Column(Boolean, default=False)
    hardware_stores = Column(JSON, default=list)  # up to 3 store URLs
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Quote(Base):
    __tablename__ = "quotes"

    id = Column(String, primary_key=True)  # UUID
    quote_number = Column(String, unique=True, nullable=False)
    status = Column(Enum(QuoteStatus), default=QuoteStatus.DRAFT)

    # Customer
    customer_name = Column(String, default="")
    customer_email = Column(String, nullable=True)
    customer_phone = Column(String, nullable=True)
    job_address = Column(Text, nullable=True)

    # Job: {id, name, description, template, estimated_hours, custom_params}
    job_json = Column(JSON, default=dict)

    # Inputs
    labor_rate = Column(Float, default=85.00)
    labor_hours = Column(Float, default=0.0)
    markup = Column(Float, default=20.0)  # percent
    notes = Column(Text, nullable=True)

    # Derived, written only from calculate_quote()
    materials_subtotal = Column(Float, default=0.0)
    labor_total = Column(Float, default=0.0)
    subtotal = Column(Float, default=0.0)
    markup_amount = Column(Float, default=0.0)
    gst = Column(Float, default=0.0)
    total = Column(Float, default=0.0)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    materials = relationship(
        "QuoteMaterial",
        back_populates="quote",
        cascade="all, delete-orphan",
        order_by="QuoteMaterial.position",
    )


class QuoteMaterial(Base):
    __tablename__ = "quote_materials"

    id = Column(String, primary_key=True)  # UUID
    quote_id = Column(String, ForeignKey("quotes.id"), nullable=False)
    position = Column(Integer, default=0)  # insertion order
    name = Column(String, nullable=False)
    quantity = Column(Float, default=0.0)
    unit = Column(Enum(MaterialUnit), default=MaterialUnit.EACH)
    price = Column(Float, default=0.0)  # per unit, GST inclusive
    total_price = Column(Float, default=0.0)
    manual_price_override = Column(Boolean, default=False)
    catalog_item_number = Column(String, nullable=True)
    search_term = Column(String, nullable=True)

    quote = relationship("Quote", back_populates="materials")

from pydantic import BaseModel, Field
from typing import Annotated, Optional, List, Dict
from .models import QuoteStatus, MaterialUnit

# Template dimensions and counts
JobParam = Annotated[float, Field(ge=0)]


class MaterialCreate(BaseModel):
    name: str = Field(min_length=1)
    quantity: float = Field(default=1.0, ge=0)
    unit: MaterialUnit = MaterialUnit.EACH
    price: float = Field(default=0.0, ge=0)
    search_term: Optional[str] = None
    catalog_item_number: Optional[str] = None


class MaterialUpdate(BaseModel):
    name: Optional[str] = None
    quantity: Optional[float] = Field(default=None, ge=0)
    unit: Optional[MaterialUnit] = None
    price: Optional[float] = Field(default=None, ge=0)  # sets manual_price_override
    search_term: Optional[str] = None


class Material(BaseModel):
    id: str
    name: str
    quantity: float
    unit: MaterialUnit
    price: float
    total_price: float
    manual_price_override: bool = False
    catalog_item_number: Optional[str] = None
    search_term: Optional[str] = None


class Job(BaseModel):
    id: str
    name: str = ""
    description: str = ""
    template: Optional[str] = None
    estimated_hours: Optional[float] = None
    custom_params: Dict[str, float] = {}


class QuoteCreate(BaseModel):
    customer_name: str = ""
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    job_address: Optional[str] = None
    labor_rate: Optional[float] = Field(default=None, ge=0)
    markup: Optional[float] = Field(default=None, ge=0)
    notes: Optional[str] = None


class QuoteUpdate(BaseModel):
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    job_address: Optional[str] = None
    labor_rate: Optional[float] = Field(default=None, ge=0)
    labor_hours: Optional[float] = Field(default=None, ge=0)
    markup: Optional[float] = Field(default=None, ge=0)
    status: Optional[QuoteStatus] = None
    notes: Optional[str] = None


class JobRequest(BaseModel):
    template: str = "custom"
    params: Dict[str, JobParam] = {}
    name: str = ""
    description: Optional[str] = None
    analyze: bool = False  # AI suggests materials from the description


class JobParamsUpdate(BaseModel):
    params: Dict[str, JobParam]


class Quote(BaseModel):
    id: str
    quote_number: Optional[str] = None
    status: QuoteStatus
    customer_name: str
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    job_address: Optional[str] = None
    job: Job
    materials: List[Material] = []
    labor_rate: float
    labor_hours: float
    markup: float
    notes: Optional[str] = None
    materials_subtotal: float
    labor_total: float
    subtotal: float
    markup_amount: float
    gst: float
    total: float
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class FetchPricesRequest(BaseModel):
    rename: bool = False  # adopt the store's product name when one comes back


class BusinessSettingsUpdate(BaseModel):
    business_name: Optional[str] = None
    abn: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    logo_uri: Optional[str] = None
    default_labor_rate: Optional[float] = Field(default=None, ge=0)
    default_markup: Optional[float] = Field(default=None, ge=0)
    use_hardware_store_api: Optional[bool] = None
    hardware_stores: Optional[List[str]] = Field(default=None, max_length=3)


class TemplateEstimateRequest(BaseModel):
    params: Dict[str, JobParam] = {}
    job_name: str = ""


class AnalyzeRequest(BaseModel):
    description: str = Field(min_length=1)

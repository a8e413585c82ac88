from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

from .database import engine, Base
from .routers import quotes, materials, settings, templates

logger = logging.getLogger("tradequote")

# Create tables (new tables only, no column changes on existing ones)
Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="TradeQuote",
    description="Quoting tool for Australian tradies — materials, labor, markup and GST",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# API routes
app.include_router(quotes.router, prefix="/api")
app.include_router(materials.router, prefix="/api")
app.include_router(settings.router, prefix="/api")
app.include_router(templates.router, prefix="/api")


@app.get("/health")
def health():
    return {"status": "ok", "app": "tradequote"}


@app.on_event("startup")
def log_startup():
    from .config import settings as app_settings
    from .price_lookup import resolve_source
    logger.info("TradeQuote starting — default price source: %s", resolve_source())
    if not app_settings.GEMINI_API_KEY:
        logger.warning("GEMINI_API_KEY not set — AI price estimates and job analysis unavailable")

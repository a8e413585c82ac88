"""
Price lookups — where material prices come from.

Every source exposes lookup(search_term) -> dict:
    {"price": 12.5, "name": "...", "item_number": "..."}   found
    {"price": None}                                       not found

"Not found" is a normal answer, not an error. Sources raise
PriceLookupError when a single request fails in transport, and
PricingUnavailableError when the source can't be reached at all
(no credentials, authentication rejected, connection refused).

Sources:
1. CatalogPriceLookup — offline list of common hardware store items
2. AIPriceEstimator — Gemini estimate from typical Australian store prices
3. HardwareStoreAPI — hardware store item + pricing API (OAuth client credentials)
"""

import json
import logging
import re
import urllib.error
import urllib.parse
import urllib.request
from datetime import datetime, timedelta
from typing import Optional

from .config import settings
from .quote_calculator import round2

logger = logging.getLogger(__name__)

NOT_FOUND = {"price": None}


class PriceLookupError(Exception):
    """A single price request failed (timeout, 5xx, malformed response)."""


class PricingUnavailableError(PriceLookupError):
    """The pricing source can't be used at all — no point trying further items."""


def _positive_price(value) -> Optional[float]:
    try:
        price = float(value)
    except (TypeError, ValueError):
        return None
    if price != price or price <= 0:  # NaN or non-positive
        return None
    return round2(price)


# --- Offline catalog ---
# Typical Bunnings shelf prices (AUD, GST inclusive), late 2024.

CATALOG_PRICES = {
    "treated_pine_90x45": {"name": "Treated Pine H3 90x45mm 2.4m", "price": 15.90,
                           "item_number": "0140573", "keywords": ["pine", "90x45"]},
    "treated_pine_140x45": {"name": "Treated Pine H3 140x45mm 3.6m", "price": 32.40,
                            "item_number": "0140611", "keywords": ["pine", "140x45"]},
    "treated_pine_190x45": {"name": "Treated Pine H3 190x45mm 4.8m", "price": 58.75,
                            "item_number": "0140628", "keywords": ["pine", "190x45"]},
    "treated_pine_240x45": {"name": "Treated Pine H3 240x45mm 3.6m", "price": 61.20,
                            "item_number": "0140635", "keywords": ["pine", "240x45"]},
    "treated_pine_75x38": {"name": "Treated Pine H3 75x38mm 4.8m", "price": 17.85,
                           "item_number": "0140597", "keywords": ["pine", "75x38"]},
    "post_100x100": {"name": "Treated Pine H4 Post 100x100mm 2.4m", "price": 29.95,
                     "item_number": "0141228", "keywords": ["100x100"]},
    "post_90x90": {"name": "Treated Pine H4 Post 90x90mm 3.0m", "price": 27.50,
                   "item_number": "0141211", "keywords": ["90x90"]},
    "paling": {"name": "Treated Pine Paling 100x12mm 1.8m", "price": 1.98,
               "item_number": "0152231", "keywords": ["paling"]},
    "merbau_decking": {"name": "Merbau Decking 90x19mm (per m)", "price": 7.45,
                       "item_number": "0153160", "keywords": ["merbau"]},
    "decking_screws": {"name": "Stainless Decking Screws 10g x 50mm (500)", "price": 64.00,
                       "item_number": "0335291", "keywords": ["decking screw"]},
    "batten_screws": {"name": "Batten Screws 14g x 75mm (50)", "price": 22.50,
                      "item_number": "0335321", "keywords": ["batten screw"]},
    "coach_screws": {"name": "Galvanised Coach Screws M10 x 100mm (10)", "price": 14.98,
                     "item_number": "0335352", "keywords": ["coach screw"]},
    "concrete": {"name": "Rapid Set Concrete 20kg", "price": 9.75,
                 "item_number": "2950089", "keywords": ["concrete"]},
    "nails": {"name": "Galvanised Flathead Nails 50mm (per kg)", "price": 11.60,
              "item_number": "0046372", "keywords": ["nail"]},
    "stair_bracket": {"name": "Galvanised Stair Bracket", "price": 6.85,
                      "item_number": "0186712", "keywords": ["stair bracket"]},
    "stump": {"name": "Adjustable Steel Stump 300-450mm", "price": 18.90,
              "item_number": "0186781", "keywords": ["stump"]},
    "stirrup": {"name": "Galvanised Post Anchor Stirrup 90mm", "price": 12.45,
                "item_number": "0186798", "keywords": ["stirrup", "post anchor"]},
    "decking_oil": {"name": "Decking Oil 4L (per L)", "price": 21.50,
                    "item_number": "1380125", "keywords": ["decking oil"]},
    "plasterboard": {"name": "Plasterboard 10mm 2400x1200", "price": 19.80,
                     "item_number": "0660431", "keywords": ["plasterboard"]},
    "interior_paint": {"name": "Interior Low Sheen Paint 10L", "price": 169.00,
                       "item_number": "1490221", "keywords": ["interior paint", "low sheen"]},
}


class CatalogPriceLookup:
    """
    Prices from the offline catalog above — keyword match on the search term.

    Used for development, tests, and shops without an AI key.
    """

    def __init__(self, catalog: Optional[dict] = None):
        self.catalog = CATALOG_PRICES if catalog is None else catalog

    def lookup(self, search_term: str) -> dict:
        key = self._match_catalog_key(search_term)
        if not key:
            return dict(NOT_FOUND)
        entry = self.catalog[key]
        return {"price": entry["price"], "name": entry["name"],
                "item_number": entry.get("item_number")}

    def _match_catalog_key(self, search_term: str) -> str:
        """
        Best catalog entry for a term. Every keyword of an entry must appear in
        the term; the most specific entry wins (most keywords, then longest),
        so "190x45" beats the "90x45" it contains.
        """
        term = str(search_term or "").lower()
        if not term:
            return ""
        best_key, best_score = "", (0, 0)
        for key, entry in self.catalog.items():
            keywords = entry.get("keywords", [])
            if not keywords or not all(k in term for k in keywords):
                continue
            score = (len(keywords), sum(len(k) for k in keywords))
            if score > best_score:
                best_key, best_score = key, score
        return best_key


# --- AI estimate (Gemini) ---

PRICE_PROMPT = """You are a pricing expert for Australian hardware stores like Bunnings.

Material: "{material}"
Store context: {stores}

Based on your knowledge of typical Australian hardware store pricing, estimate a reasonable
GST-inclusive price in AUD for ONE unit of this material.

Return ONLY a JSON object in this exact format (no other text):
{{"price": <number>, "productName": "<material name>", "store": "Bunnings (estimated)", "confidence": "low|medium|high"}}

Rules:
- price is a number only (12.50, not "$12.50")
- If you cannot estimate, return {{"price": null}}
"""


class AIPriceEstimator:
    """
    Estimated prices from Gemini's knowledge of typical store pricing.

    Not real-time — for live prices, shops switch to the hardware store API.
    """

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None,
                 hardware_stores: Optional[list] = None, timeout: int = 30):
        self.api_key = settings.GEMINI_API_KEY if api_key is None else api_key
        self.model = model or settings.GEMINI_MODEL
        self.hardware_stores = list(hardware_stores or [])[:3]
        self.timeout = timeout
        if not self.api_key:
            raise PricingUnavailableError("GEMINI_API_KEY not configured — AI price estimation unavailable")

    def lookup(self, search_term: str) -> dict:
        prompt = self._build_prompt(search_term)
        text = self._call_gemini(prompt)
        result = self._parse_response(text)
        if result["price"] is None:
            logger.info("No price estimate for %r", search_term)
        return result

    def _build_prompt(self, material: str) -> str:
        stores = ", ".join(self.hardware_stores) or "Bunnings Warehouse"
        return PRICE_PROMPT.format(material=material, stores=stores)

    def _call_gemini(self, prompt: str) -> str:
        """Call Gemini API. Raises PriceLookupError / PricingUnavailableError on failure."""
        url = (
            "https://generativelanguage.googleapis.com/v1beta/models/"
            "%s:generateContent?key=%s" % (self.model, self.api_key)
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
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as response:
                result = json.loads(response.read())
                return result["candidates"][0]["content"]["parts"][0]["text"]
        except urllib.error.HTTPError as e:
            if e.code in (401, 403):
                raise PricingUnavailableError("Gemini rejected the API key (HTTP %d)" % e.code)
            raise PriceLookupError("Gemini API error (HTTP %d)" % e.code)
        except urllib.error.URLError as e:
            raise PricingUnavailableError("Gemini unreachable: %s" % e.reason)
        except (KeyError, IndexError, ValueError, TimeoutError) as e:
            raise PriceLookupError("Gemini call failed: %s" % e)

    @staticmethod
    def _parse_response(text: str) -> dict:
        body = str(text or "").strip()
        # Strip markdown code fences if the model added them
        fenced = re.match(r"^```(?:json)?\s*([\s\S]*?)\s*```$", body)
        if fenced:
            body = fenced.group(1)
        try:
            data = json.loads(body)
        except json.JSONDecodeError:
            logger.warning("Could not parse AI price response: %.100s", body)
            return dict(NOT_FOUND)
        if not isinstance(data, dict):
            return dict(NOT_FOUND)
        price = _positive_price(data.get("price"))
        if price is None:
            return dict(NOT_FOUND)
        result = {"price": price}
        if data.get("productName"):
            result["name"] = str(data["productName"])
        return result


# --- Hardware store API ---

class HardwareStoreAPI:
    """
    Hardware store item search + pricing API.

    Authenticates with OAuth client credentials; the token is reused until
    60 seconds before it expires.
    """

    def __init__(self, client_id: Optional[str] = None, client_secret: Optional[str] = None,
                 auth_url: Optional[str] = None, item_url: Optional[str] = None,
                 pricing_url: Optional[str] = None, timeout: Optional[int] = None):
        self.client_id = settings.HARDWARE_STORE_CLIENT_ID if client_id is None else client_id
        self.client_secret = settings.HARDWARE_STORE_CLIENT_SECRET if client_secret is None else client_secret
        self.auth_url = auth_url or settings.HARDWARE_STORE_AUTH_URL
        self.item_url = item_url or settings.HARDWARE_STORE_ITEM_URL
        self.pricing_url = pricing_url or settings.HARDWARE_STORE_PRICING_URL
        self.timeout = timeout or settings.HARDWARE_STORE_TIMEOUT
        self._token = None
        self._token_expiry = None
        if not self.client_id or not self.client_secret:
            raise PricingUnavailableError("Hardware store API credentials not configured")

    def is_authenticated(self) -> bool:
        return bool(self._token) and self._token_expiry is not None and datetime.utcnow() < self._token_expiry

    def authenticate(self):
        body = urllib.parse.urlencode({
            "grant_type": "client_credentials",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        }).encode("utf-8")
        try:
            data = self._request_json(
                "%s/connect/token" % self.auth_url,
                data=body,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                method="POST",
            )
        except PriceLookupError as e:
            raise PricingUnavailableError("Hardware store authentication failed: %s" % e)
        if not data or not data.get("access_token"):
            raise PricingUnavailableError("Hardware store authentication returned no token")
        self._token = data["access_token"]
        expires_in = int(data.get("expires_in", 3600))
        self._token_expiry = datetime.utcnow() + timedelta(seconds=max(expires_in - 60, 0))
        logger.info("Authenticated with hardware store API")

    def _ensure_authenticated(self):
        if not self.is_authenticated():
            self.authenticate()

    def _auth_headers(self) -> dict:
        return {"Authorization": "Bearer %s" % self._token, "Accept": "application/json"}

    def _request_json(self, url: str, data: Optional[bytes] = None,
                      headers: Optional[dict] = None, method: str = "GET"):
        """
        Perform a request and decode the JSON body.

        Returns None for 404. Raises PricingUnavailableError for 401/403 and
        connection failures, PriceLookupError for anything else.
        """
        req = urllib.request.Request(url, data=data, headers=headers or {}, method=method)
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as response:
                raw = response.read()
        except urllib.error.HTTPError as e:
            if e.code == 404:
                return None
            if e.code in (401, 403):
                self._token = None
                raise PricingUnavailableError("Hardware store API rejected credentials (HTTP %d)" % e.code)
            raise PriceLookupError("Hardware store API error (HTTP %d) for %s" % (e.code, url))
        except urllib.error.URLError as e:
            raise PricingUnavailableError("Hardware store API unreachable: %s" % e.reason)
        except TimeoutError as e:
            raise PriceLookupError("Hardware store API timed out: %s" % e)
        if not raw:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            raise PriceLookupError("Hardware store API returned invalid JSON for %s" % url)

    def search_items(self, search_term: str, limit: int = 10) -> list:
        self._ensure_authenticated()
        url = "%s/item?q=%s&limit=%d" % (
            self.item_url, urllib.parse.quote(search_term), limit,
        )
        data = self._request_json(url, headers=self._auth_headers())
        # The item API has answered with a bare list, {"items": [...]} and {"data": [...]}
        if isinstance(data, list):
            return data
        if isinstance(data, dict):
            for key in ("items", "data"):
                if isinstance(data.get(key), list):
                    return data[key]
        return []

    def get_price(self, item_number: str) -> Optional[dict]:
        self._ensure_authenticated()
        url = "%s/pricing/%s" % (self.pricing_url, urllib.parse.quote(str(item_number)))
        data = self._request_json(url, headers=self._auth_headers())
        return data if isinstance(data, dict) else None

    def find_and_price_material(self, search_term: str) -> Optional[dict]:
        """Top search hit plus its price, or None if either step finds nothing."""
        items = self.search_items(search_term, limit=1)
        if not items:
            logger.info("No hardware store item for %r", search_term)
            return None
        item = items[0]
        price = self.get_price(item.get("itemNumber", ""))
        if not price:
            logger.info("No price for hardware store item %s", item.get("itemNumber"))
            return None
        return {"item": item, "price": price}

    def lookup(self, search_term: str) -> dict:
        found = self.find_and_price_material(search_term)
        if not found:
            return dict(NOT_FOUND)
        price = _positive_price(found["price"].get("priceIncGst"))
        if price is None:
            return dict(NOT_FOUND)
        item = found["item"]
        result = {"price": price, "item_number": item.get("itemNumber")}
        name = item.get("productName") or item.get("description")
        if name:
            result["name"] = name
        return result


# --- Source selection ---

PRICING_SOURCES = ("ai", "catalog", "hardware_store")

SOURCE_LABELS = {
    "ai": "AI estimate",
    "catalog": "the price catalog",
    "hardware_store": "Bunnings",
}


def resolve_source(business_settings: Optional[dict] = None) -> str:
    if business_settings and business_settings.get("use_hardware_store_api"):
        return "hardware_store"
    source = (settings.PRICING_SOURCE or "ai").lower()
    if source not in PRICING_SOURCES:
        logger.warning("Unknown PRICING_SOURCE %r — using AI estimate", source)
        return "ai"
    return source


def source_label(business_settings: Optional[dict] = None) -> str:
    return SOURCE_LABELS[resolve_source(business_settings)]


def get_price_lookup(business_settings: Optional[dict] = None):
    """
    Build the price source for a shop.

    Raises PricingUnavailableError if the source can't be constructed
    (missing API key or credentials).
    """
    source = resolve_source(business_settings)
    if source == "hardware_store":
        return HardwareStoreAPI()
    if source == "catalog":
        return CatalogPriceLookup()
    stores = (business_settings or {}).get("hardware_stores") or []
    return AIPriceEstimator(hardware_stores=stores)

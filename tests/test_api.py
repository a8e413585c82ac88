"""
HTTP API tests — quotes, materials, price fetching, settings and templates
through the FastAPI test client. Price source is the offline catalog.
"""

from unittest.mock import patch

from tradequote.price_lookup import CatalogPriceLookup, PricingUnavailableError


def _add(client, quote_id, **material):
    response = client.post(f"/api/quotes/{quote_id}/materials", json=material)
    assert response.status_code == 200, response.text
    return response.json()


# --- Health ---

def test_health(client):
    assert client.get("/health").json() == {"status": "ok", "app": "tradequote"}


# --- Quotes ---

def test_create_quote(client, created_quote):
    assert created_quote["status"] == "draft"
    assert created_quote["customer_name"] == "Jo Citizen"
    assert created_quote["quote_number"].startswith("Q-")
    assert created_quote["quote_number"].endswith("-0001")
    assert created_quote["labor_rate"] == 85.0
    assert created_quote["total"] == 0.0
    assert created_quote["materials"] == []


def test_quote_numbers_increment(client, created_quote):
    second = client.post("/api/quotes/", json={"customer_name": "Sam"}).json()
    assert second["quote_number"].endswith("-0002")


def test_get_and_list_quotes(client, created_quote):
    fetched = client.get(f"/api/quotes/{created_quote['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["id"] == created_quote["id"]
    listing = client.get("/api/quotes/").json()
    assert [q["id"] for q in listing] == [created_quote["id"]]


def test_unknown_quote_404(client):
    assert client.get("/api/quotes/missing").status_code == 404


def test_patch_quote_recalculates(client, created_quote):
    response = client.patch(f"/api/quotes/{created_quote['id']}", json={
        "labor_rate": 85, "labor_hours": 2, "markup": 20, "status": "sent",
    })
    assert response.status_code == 200
    quote = response.json()
    assert quote["labor_total"] == 170.0
    assert quote["markup_amount"] == 34.0
    assert quote["gst"] == 20.4
    assert quote["total"] == 224.4
    assert quote["status"] == "sent"


def test_patch_rejects_negative_hours(client, created_quote):
    response = client.patch(f"/api/quotes/{created_quote['id']}", json={"labor_hours": -1})
    assert response.status_code == 422


def test_patch_contact_without_name(client):
    quote = client.post("/api/quotes/", json={}).json()
    response = client.patch(f"/api/quotes/{quote['id']}", json={"customer_email": "jo@example.com"})
    assert response.status_code == 200
    assert response.json()["customer_email"] == "jo@example.com"
    assert response.json()["customer_name"] == ""

    response = client.patch(f"/api/quotes/{quote['id']}", json={"customer_name": " "})
    assert response.status_code == 400


def test_filter_by_status(client, created_quote):
    client.patch(f"/api/quotes/{created_quote['id']}", json={"status": "accepted"})
    client.post("/api/quotes/", json={"customer_name": "Sam"})
    accepted = client.get("/api/quotes/?status=accepted").json()
    assert [q["id"] for q in accepted] == [created_quote["id"]]
    assert client.get("/api/quotes/?status=archived").status_code == 400


def test_delete_quote(client, created_quote):
    assert client.delete(f"/api/quotes/{created_quote['id']}").status_code == 200
    assert client.get(f"/api/quotes/{created_quote['id']}").status_code == 404


def test_duplicate_quote(client, created_quote):
    _add(client, created_quote["id"], name="Pine", quantity=2, price=15.9)
    copy = client.post(f"/api/quotes/{created_quote['id']}/duplicate").json()
    assert copy["id"] != created_quote["id"]
    assert copy["quote_number"] != created_quote["quote_number"]
    assert copy["status"] == "draft"
    assert copy["materials"][0]["name"] == "Pine"
    assert copy["total"] > 0


# --- Materials ---

def test_add_material_updates_totals(client, created_quote):
    client.patch(f"/api/quotes/{created_quote['id']}", json={"markup": 10})
    quote = _add(client, created_quote["id"], name="Decking", quantity=1, price=100)
    assert quote["materials_subtotal"] == 100.0
    assert quote["gst"] == 11.0
    assert quote["total"] == 121.0


def test_materials_keep_order(client, created_quote):
    for name in ["C", "A", "B"]:
        quote = _add(client, created_quote["id"], name=name)
    assert [m["name"] for m in quote["materials"]] == ["C", "A", "B"]
    reloaded = client.get(f"/api/quotes/{created_quote['id']}").json()
    assert [m["name"] for m in reloaded["materials"]] == ["C", "A", "B"]


def test_update_material_marks_manual_price(client, created_quote):
    quote = _add(client, created_quote["id"], name="Pine", quantity=3)
    material_id = quote["materials"][0]["id"]
    response = client.patch(f"/api/quotes/{created_quote['id']}/materials/{material_id}",
                            json={"price": 10.005})
    material = response.json()["materials"][0]
    assert material["manual_price_override"] is True
    assert material["total_price"] == 30.02


def test_material_validation(client, created_quote):
    bad_unit = client.post(f"/api/quotes/{created_quote['id']}/materials",
                           json={"name": "Pine", "unit": "bucket"})
    assert bad_unit.status_code == 422
    negative = client.post(f"/api/quotes/{created_quote['id']}/materials",
                           json={"name": "Pine", "price": -1})
    assert negative.status_code == 422


def test_remove_material(client, created_quote):
    quote = _add(client, created_quote["id"], name="Pine", price=5)
    material_id = quote["materials"][0]["id"]
    response = client.delete(f"/api/quotes/{created_quote['id']}/materials/{material_id}")
    assert response.json()["materials"] == []
    assert response.json()["materials_subtotal"] == 0.0
    missing = client.delete(f"/api/quotes/{created_quote['id']}/materials/{material_id}")
    assert missing.status_code == 404


# --- Jobs ---

def test_set_job_from_template(client, created_quote):
    response = client.put(f"/api/quotes/{created_quote['id']}/job", json={
        "template": "fence", "params": {"length": 12}, "name": "Side fence",
    })
    assert response.status_code == 200
    quote = response.json()
    assert quote["job"]["template"] == "fence"
    assert quote["job"]["name"] == "Side fence"
    assert len(quote["materials"]) > 0
    assert quote["labor_hours"] > 0
    assert quote["labor_total"] == round(quote["labor_hours"] * 85, 2)


def test_update_job_params(client, created_quote):
    client.put(f"/api/quotes/{created_quote['id']}/job", json={"template": "stairs", "params": {"steps": 4}})
    response = client.patch(f"/api/quotes/{created_quote['id']}/job", json={"params": {"steps": 10}})
    assert response.status_code == 200
    brackets = response.json()["materials"][2]
    assert brackets["quantity"] == 20.0


def test_unknown_template_400(client, created_quote):
    response = client.put(f"/api/quotes/{created_quote['id']}/job", json={"template": "spaceship"})
    assert response.status_code == 400


def test_negative_job_params_422(client, created_quote):
    quote_id = created_quote["id"]
    response = client.put(f"/api/quotes/{quote_id}/job", json={"template": "stairs", "params": {"steps": -5}})
    assert response.status_code == 422

    client.put(f"/api/quotes/{quote_id}/job", json={"template": "stairs", "params": {"steps": 4}})
    response = client.patch(f"/api/quotes/{quote_id}/job", json={"params": {"width": -1}})
    assert response.status_code == 422
    assert client.get(f"/api/quotes/{quote_id}").json()["job"]["custom_params"]["width"] == 1.0


def test_job_analysis_without_key_502(client, created_quote):
    response = client.put(f"/api/quotes/{created_quote['id']}/job", json={
        "analyze": True, "description": "Replace the back fence",
    })
    assert response.status_code == 502


def test_job_analysis_replaces_materials(client, created_quote):
    analysis = {
        "job_summary": "Oil deck",
        "estimated_hours": 4.0,
        "materials": [{"name": "Decking oil", "searchTerm": "decking oil 4L", "quantity": 4, "unit": "L"}],
    }
    with patch("tradequote.routers.quotes.analyze_job_description", return_value=analysis):
        response = client.put(f"/api/quotes/{created_quote['id']}/job", json={
            "analyze": True, "description": "Oil a deck",
        })
    quote = response.json()
    assert quote["labor_hours"] == 4.0
    assert quote["materials"][0]["search_term"] == "decking oil 4L"
    assert quote["materials"][0]["unit"] == "L"


def test_breakdown(client, created_quote):
    client.patch(f"/api/quotes/{created_quote['id']}", json={"labor_hours": 8, "markup": 20})
    _add(client, created_quote["id"], name="Merbau", quantity=10, price=10)
    breakdown = client.get(f"/api/quotes/{created_quote['id']}/breakdown").json()
    # labor 680 + markup 156 over 8 hours
    assert breakdown["effective_hourly_rate"] == 104.5
    assert breakdown["total"] == 1029.6
    assert breakdown["total_display"] == "$1,029.60"
    assert breakdown["profit_margin"] == 16.67


# --- Price fetching ---

def test_fetch_prices(client, created_quote):
    client.patch(f"/api/quotes/{created_quote['id']}", json={"markup": 0})
    _add(client, created_quote["id"], name="Concrete", quantity=4, search_term="rapid set concrete")
    _add(client, created_quote["id"], name="Mystery part")
    _add(client, created_quote["id"], name="Own price", quantity=1, price=5)

    response = client.post(f"/api/quotes/{created_quote['id']}/fetch-prices")
    assert response.status_code == 200
    body = response.json()
    assert (body["fetched"], body["skipped"], body["failed"]) == (1, 1, 1)
    assert body["outcome"] == "partial_success"
    assert body["title"] == "Partial Success"
    assert body["message"] == "Updated 1 price. Could not find 1 item."
    assert body["quote"]["materials"][0]["price"] == 9.75
    assert body["quote"]["materials_subtotal"] == 44.0

    saved = client.get(f"/api/quotes/{created_quote['id']}").json()
    assert saved["materials"][0]["price"] == 9.75
    assert saved["materials"][0]["catalog_item_number"] == "2950089"


def test_fetch_prices_second_pass_skips(client, created_quote):
    _add(client, created_quote["id"], name="Concrete", search_term="concrete")
    client.post(f"/api/quotes/{created_quote['id']}/fetch-prices")
    body = client.post(f"/api/quotes/{created_quote['id']}/fetch-prices").json()
    assert body["outcome"] == "already_priced"
    assert body["message"] == "All materials already have prices."


def test_fetch_prices_needs_materials(client, created_quote):
    response = client.post(f"/api/quotes/{created_quote['id']}/fetch-prices")
    assert response.status_code == 400


def test_fetch_prices_source_unavailable(client, created_quote):
    _add(client, created_quote["id"], name="Concrete")
    client.put("/api/settings/", json={"use_hardware_store_api": True})
    response = client.post(f"/api/quotes/{created_quote['id']}/fetch-prices")
    assert response.status_code == 503


def test_fetch_prices_outage_saves_partial(client, created_quote):
    _add(client, created_quote["id"], name="Concrete", quantity=2, search_term="concrete")
    _add(client, created_quote["id"], name="Nails", search_term="nails")
    original = CatalogPriceLookup.lookup

    def flaky(self, term):
        if term == "nails":
            raise PricingUnavailableError("offline")
        return original(self, term)

    with patch.object(CatalogPriceLookup, "lookup", flaky):
        response = client.post(f"/api/quotes/{created_quote['id']}/fetch-prices")
    assert response.status_code == 502
    detail = response.json()["detail"]
    assert detail["title"] == "Error"
    assert detail["fetched"] == 1

    saved = client.get(f"/api/quotes/{created_quote['id']}").json()
    assert saved["materials"][0]["price"] == 9.75
    assert saved["materials"][1]["price"] == 0.0
    assert saved["materials_subtotal"] == 19.5


def test_fetch_prices_rename(client, created_quote):
    _add(client, created_quote["id"], name="bag of concrete", search_term="concrete")
    body = client.post(f"/api/quotes/{created_quote['id']}/fetch-prices", json={"rename": True}).json()
    assert body["quote"]["materials"][0]["name"] == "Rapid Set Concrete 20kg"


def test_pricing_search(client):
    found = client.get("/api/pricing/search", params={"q": "merbau decking"}).json()
    assert found["price"] == 7.45
    assert found["source"] == "the price catalog"
    missing = client.get("/api/pricing/search", params={"q": "unobtainium"}).json()
    assert missing["price"] is None


# --- Settings ---

def test_settings_defaults_and_update(client):
    settings = client.get("/api/settings/").json()
    assert settings["default_labor_rate"] == 85.0
    assert settings["pricing_source"] == "catalog"

    updated = client.put("/api/settings/", json={
        "business_name": "Jo's Carpentry", "default_labor_rate": 95, "default_markup": 15,
        "hardware_stores": ["Bunnings Alexandria"],
    }).json()
    assert updated["business_name"] == "Jo's Carpentry"
    assert updated["hardware_stores"] == ["Bunnings Alexandria"]

    quote = client.post("/api/quotes/", json={"customer_name": "Sam"}).json()
    assert quote["labor_rate"] == 95.0
    assert quote["markup"] == 15.0


def test_zero_shop_defaults(client):
    client.put("/api/settings/", json={"default_labor_rate": 0, "default_markup": 0})
    quote = client.post("/api/quotes/", json={"customer_name": "Sam"}).json()
    assert quote["labor_rate"] == 0.0
    assert quote["markup"] == 0.0


def test_settings_store_limit(client):
    response = client.put("/api/settings/", json={"hardware_stores": ["a", "b", "c", "d"]})
    assert response.status_code == 422


# --- Templates ---

def test_list_templates(client):
    ids = [t["id"] for t in client.get("/api/templates").json()]
    assert ids == ["custom", "stairs", "deck", "fence", "pergola"]
    assert client.get("/api/templates/deck").json()["name"] == "Timber Deck"
    assert client.get("/api/templates/spaceship").status_code == 404


def test_template_estimate(client):
    response = client.post("/api/templates/stairs/estimate", json={"params": {"steps": 6}})
    body = response.json()
    assert body["estimated_hours"] == 6.5
    assert body["job"]["custom_params"] == {"steps": 6, "width": 1.0}


def test_template_estimate_rejects_negative_params(client):
    response = client.post("/api/templates/stairs/estimate", json={"params": {"steps": -6}})
    assert response.status_code == 422


def test_analyze_job_endpoint(client):
    analysis = {"job_summary": "Fence", "estimated_hours": 6.0,
                "materials": [{"name": "Palings", "quantity": 50}]}
    with patch("tradequote.routers.templates.analyze_job_description", return_value=analysis):
        body = client.post("/api/jobs/analyze", json={"description": "New fence"}).json()
    assert body["estimated_hours"] == 6.0
    assert body["materials"][0]["name"] == "Palings"
    assert body["materials"][0]["price"] == 0.0

"""
Shared test fixtures — SQLite test database, test client, sample materials.
"""

import os
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

# Set env before importing app modules; settings are read at import
os.environ["DATABASE_URL"] = "sqlite:///./test.db"
os.environ["PRICING_SOURCE"] = "catalog"
os.environ["PRICE_FETCH_DELAY_SECONDS"] = "0"
os.environ["GEMINI_API_KEY"] = ""
os.environ["HARDWARE_STORE_CLIENT_ID"] = ""
os.environ["HARDWARE_STORE_CLIENT_SECRET"] = ""

from tradequote.database import Base, get_db
from tradequote.main import app


TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(autouse=True)
def setup_database():
    """Create all tables before each test, drop after."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client():
    """FastAPI test client."""
    return TestClient(app)


@pytest.fixture
def db():
    """Direct database session for test setup/assertions."""
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


def make_material(name="Item", quantity=1.0, price=0.0, manual_price_override=False,
                  search_term=None, total_price=None, material_id=None):
    """Material dict with total_price = quantity x price unless given."""
    return {
        "id": material_id or name,
        "name": name,
        "quantity": quantity,
        "unit": "each",
        "price": price,
        "total_price": round(quantity * price, 2) if total_price is None else total_price,
        "manual_price_override": manual_price_override,
        "catalog_item_number": None,
        "search_term": search_term,
    }


@pytest.fixture
def created_quote(client):
    """A saved draft quote with a customer."""
    response = client.post("/api/quotes/", json={"customer_name": "Jo Citizen"})
    assert response.status_code == 200
    return response.json()

"""Pytest fixtures for the marketplace tests."""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from services.domain import (
    Actor,
    CheckoutItem,
    CheckoutRequest,
    CreateListingRequest,
    DeliveryAddress,
    Role,
    Unit,
    UserProfile,
)
from services.marketplace import Marketplace
from services.storage import InMemoryStore

FIXED_NOW = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)
TODAY = FIXED_NOW.date()

USERS = [
    UserProfile(id=1, name="Ramesh Patil", role=Role.FARMER, phone="+91 98765 43210",
                address="Survey No. 12", city="Khed", state="Maharashtra"),
    UserProfile(id=2, name="Sunita Devi", role=Role.FARMER, phone="+91 91234 00000",
                address="Ward 3", city="Nashik", state="Maharashtra"),
    UserProfile(id=3, name="Anita Sharma", role=Role.BUYER, phone="+91 98123 45678",
                address="Flat 4B, Baner Road", city="Pune", state="Maharashtra"),
    UserProfile(id=4, name="Kiran Rao", role=Role.BUYER, phone="+91 90000 11111",
                address="MG Road", city="Pune", state="Maharashtra"),
    UserProfile(id=5, name="Vikram Singh", role=Role.DELIVERY, phone="+91 99220 11223"),
    UserProfile(id=6, name="Arjun Mehta", role=Role.DELIVERY, phone="+91 99220 44556"),
    UserProfile(id=7, name="Admin", role=Role.ADMIN),
]


def actor_for(user: UserProfile) -> Actor:
    return Actor(id=user.id, role=user.role, name=user.name)


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def store():
    store = InMemoryStore()
    for user in USERS:
        store.add_user(user)
    return store


@pytest.fixture
def market(store, clock):
    return Marketplace(store, clock=clock)


@pytest.fixture
def farmer():
    return actor_for(USERS[0])


@pytest.fixture
def farmer2():
    return actor_for(USERS[1])


@pytest.fixture
def buyer():
    return actor_for(USERS[2])


@pytest.fixture
def buyer2():
    return actor_for(USERS[3])


@pytest.fixture
def courier():
    return actor_for(USERS[4])


@pytest.fixture
def courier2():
    return actor_for(USERS[5])


@pytest.fixture
def admin():
    return actor_for(USERS[6])


@pytest.fixture
def make_listing(market, farmer):
    """Create a listing through the catalog; keyword arguments override defaults."""

    def _make(owner=None, **overrides):
        fields = {
            "crop_name": "Tomato",
            "price": Decimal("30"),
            "quantity": 10,
            "harvest_date": TODAY,
            "shelf_life_days": 5,
            "unit": Unit.KG,
        }
        fields.update(overrides)
        return market.catalog.create_listing(owner or farmer, CreateListingRequest(**fields))

    return _make


@pytest.fixture
def place_order(market, buyer):
    """Check out [(listing, quantity), ...] as a buyer."""

    def _place(items, as_buyer=None, address="Flat 4B, Baner Road"):
        request = CheckoutRequest(
            items=tuple(CheckoutItem(listing_id=l.id, quantity=q) for l, q in items),
            delivery_address=DeliveryAddress(address=address, city="Pune", state="Maharashtra"),
        )
        return market.checkout(as_buyer or buyer, request)

    return _place


# --- Flask app ---


@pytest.fixture
def app():
    from core.config import TestConfig
    from core.extensions import db
    from main import create_app

    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def register(client):
    """Register an account over the API and return (user_json, auth headers)."""

    def _register(name, role, email=None, **location):
        response = client.post(
            "/api/auth/register",
            json={
                "name": name,
                "email": email or f"{name.lower().replace(' ', '.')}@example.com",
                "password": "secret123",
                "role": role,
                "phone": "+91 90000 00000",
                "location": location,
            },
        )
        assert response.status_code == 201, response.get_json()
        data = response.get_json()
        return data["user"], {"Authorization": f"Bearer {data['access_token']}"}

    return _register


@pytest.fixture
def listing_payload():
    def _payload(**overrides):
        payload = {
            "crop_name": "Tomato",
            "variety": "Hybrid",
            "price": 30,
            "quantity": 10,
            "unit": "kg",
            "harvest_date": date.today().isoformat(),
            "shelf_life_days": 5,
        }
        payload.update(overrides)
        return payload

    return _payload

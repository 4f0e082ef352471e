"""The engine running on the SQLAlchemy store."""

from datetime import date, timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy.exc import OperationalError

from conftest import TODAY, USERS
from core.errors import InsufficientStockError, InvalidTransitionError, NotFoundError, StorageError
from core.extensions import db
from models.listingModels import Listings
from models.userModel import Users
from services.domain import (
    CheckoutItem,
    CheckoutRequest,
    CreateListingRequest,
    DeliveryAddress,
    ListingStatus,
    OrderStatus,
    Role,
)
from services.marketplace import Marketplace
from services.sql_store import SqlStore


@pytest.fixture
def sql_market(app, clock):
    for user in USERS:
        db.session.add(Users(
            id=user.id,
            name=user.name,
            email=f"user{user.id}@example.com",
            password="x",
            role=user.role.value,
            phone=user.phone,
            address=user.address,
            city=user.city,
            state=user.state,
        ))
    db.session.commit()
    return Marketplace(SqlStore(db), clock=clock)


@pytest.fixture
def sql_listing(sql_market, farmer):
    def _make(owner=None, **overrides):
        fields = {
            "crop_name": "Tomato",
            "price": Decimal("30"),
            "quantity": 10,
            "harvest_date": TODAY,
            "shelf_life_days": 5,
        }
        fields.update(overrides)
        return sql_market.catalog.create_listing(owner or farmer, CreateListingRequest(**fields))

    return _make


def checkout(market, buyer, items):
    return market.checkout(buyer, CheckoutRequest(
        items=tuple(CheckoutItem(listing_id=l.id, quantity=q) for l, q in items),
        delivery_address=DeliveryAddress(address="Flat 4B, Baner Road", city="Pune"),
    ))


class TestListingRows:

    def test_expiry_column_follows_harvest_and_shelf_life(self, app):
        row = Listings(farmer_id=1, farmer_name="F", crop_name="Tomato", price=10, quantity=1,
                       harvest_date=date(2026, 10, 18), shelf_life_days=5)
        assert row.expiry_date == date(2026, 10, 23)
        row.shelf_life_days = 7
        assert row.expiry_date == date(2026, 10, 25)

    def test_round_trip(self, sql_market, sql_listing):
        listing = sql_listing(variety="Hybrid", price=Decimal("32.50"))
        loaded = sql_market.catalog.get(listing.id)
        assert loaded.price == Decimal("32.50")
        assert loaded.variety == "Hybrid"
        assert loaded.expiry_date == TODAY + timedelta(days=5)
        assert loaded.location.district == "Khed"
        assert loaded.created_at.tzinfo is not None
        stored = db.session.get(Listings, listing.id)
        assert stored.expiry_date == loaded.expiry_date

    def test_listing_order_is_newest_first(self, sql_market, sql_listing):
        first = sql_listing()
        second = sql_listing(crop_name="Onion")
        assert [l.id for l in sql_market.catalog.list_available()] == [second.id, first.id]

    def test_reserve_and_release(self, sql_market, sql_listing):
        listing = sql_listing(quantity=3)
        with pytest.raises(InsufficientStockError):
            sql_market.catalog.reserve_quantity(listing.id, 4)
        assert sql_market.catalog.get(listing.id).quantity == 3

        sold = sql_market.catalog.reserve_quantity(listing.id, 3)
        assert sold.quantity == 0
        assert sold.status == ListingStatus.SOLD

        back = sql_market.catalog.release_quantity(listing.id, 2)
        assert back.quantity == 2
        assert back.status == ListingStatus.AVAILABLE

    def test_update_unknown_listing(self, sql_market, farmer):
        with pytest.raises(NotFoundError):
            sql_market.store.update_listing(999, price=Decimal("1"))
        with pytest.raises(NotFoundError):
            sql_market.store.reserve(999, 1)

    def test_status_compare_and_swap(self, sql_market, sql_listing):
        listing = sql_listing()
        store = sql_market.store
        assert not store.set_listing_status(listing.id, ListingStatus.EXPIRED, expected=ListingStatus.SOLD)
        assert store.set_listing_status(listing.id, ListingStatus.EXPIRED, expected=ListingStatus.AVAILABLE)
        assert sql_market.catalog.get(listing.id).status == ListingStatus.EXPIRED

    def test_expire_stale(self, sql_market, sql_listing):
        stale = sql_listing(harvest_date=TODAY - timedelta(days=20))
        sql_listing()
        assert sql_market.catalog.expire_stale() == [stale.id]


class TestOrders:

    def test_lifecycle(self, sql_market, sql_listing, buyer, farmer, courier):
        listing = sql_listing(quantity=10)
        order = checkout(sql_market, buyer, [(listing, 4)])
        assert order.id is not None
        assert order.total_amount == Decimal("120")
        assert sql_market.catalog.get(listing.id).quantity == 6

        loaded = sql_market.ledger.get(order.id)
        assert loaded.lines == order.lines
        assert loaded.pickup_info.farmer_name == "Ramesh Patil"
        assert loaded.delivery_info.phone == "+91 98123 45678"
        assert loaded.created_at.tzinfo is not None

        for status in (OrderStatus.ACCEPTED, OrderStatus.OUT_FOR_DELIVERY, OrderStatus.DELIVERED):
            order = sql_market.ledger.update_status(order.id, courier.id, Role.DELIVERY, status)
        assert order.status == OrderStatus.DELIVERED
        assert order.delivery_partner_id == courier.id
        assert sql_market.earnings.earnings_for(farmer.id).total_earnings == Decimal("120")

    def test_stale_swap_returns_none(self, sql_market, sql_listing, buyer, courier, courier2):
        order = checkout(sql_market, buyer, [(sql_listing(), 1)])
        store = sql_market.store
        assert store.swap_order_status(order.id, OrderStatus.PENDING, OrderStatus.ACCEPTED, courier.id) is not None
        assert store.swap_order_status(order.id, OrderStatus.PENDING, OrderStatus.ACCEPTED, courier2.id) is None
        assert sql_market.ledger.get(order.id).delivery_partner_id == courier.id
        with pytest.raises(InvalidTransitionError):
            sql_market.ledger.update_status(order.id, courier2.id, Role.DELIVERY, OrderStatus.ACCEPTED)

    def test_swap_unknown_order(self, sql_market):
        with pytest.raises(NotFoundError):
            sql_market.store.swap_order_status(404, OrderStatus.PENDING, OrderStatus.ACCEPTED)

    def test_cancel_restocks(self, sql_market, sql_listing, buyer):
        listing = sql_listing(quantity=2)
        order = checkout(sql_market, buyer, [(listing, 2)])
        assert sql_market.catalog.get(listing.id).status == ListingStatus.SOLD
        sql_market.ledger.update_status(order.id, buyer.id, Role.BUYER, OrderStatus.CANCELLED)
        restocked = sql_market.catalog.get(listing.id)
        assert restocked.quantity == 2
        assert restocked.status == ListingStatus.AVAILABLE

    def test_failed_checkout_leaves_stock_alone(self, sql_market, sql_listing, buyer):
        plenty = sql_listing(quantity=10)
        scarce = sql_listing(crop_name="Onion", quantity=1)
        with pytest.raises(InsufficientStockError):
            checkout(sql_market, buyer, [(plenty, 5), (scarce, 2)])
        assert sql_market.catalog.get(plenty.id).quantity == 10
        assert sql_market.store.list_orders() == []


class BrokenSession:

    def __init__(self):
        self.rolled_back = False

    def execute(self, *args, **kwargs):
        raise OperationalError("UPDATE listings", {}, Exception("database is locked"))

    def rollback(self):
        self.rolled_back = True


class TestStorageFailures:

    def test_database_errors_become_storage_errors(self):
        session = BrokenSession()
        store = SqlStore(SimpleNamespace(session=session))
        with pytest.raises(StorageError) as exc:
            store.reserve(1, 1)
        assert exc.value.operation == "reserve"
        assert exc.value.status_code == 500
        assert isinstance(exc.value.cause, OperationalError)
        assert session.rolled_back

"""SQLAlchemy-backed Store.

Stock and status changes are single conditional UPDATE statements, so the
database serializes concurrent writers on the same row.
"""

import logging
from datetime import timezone
from decimal import Decimal

from core.errors import InsufficientStockError, NotFoundError, StorageError
from core.imports import SQLAlchemyError, update
from models.listingModels import Listings
from models.orderModels import Order as OrderRow, OrderItem
from models.userModel import Users
from services.domain import (
    DeliveryInfo,
    Listing,
    ListingStatus,
    Location,
    Order,
    OrderLine,
    OrderStatus,
    PickupInfo,
    Role,
    Unit,
    UserProfile,
    utc_now,
)
from services.storage import Store

log = logging.getLogger(__name__)


def _aware(value):
    # SQLite hands datetimes back without tzinfo; everything is stored as UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _naive_utc(value):
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def listing_from_row(row: Listings) -> Listing:
    return Listing(
        id=row.id,
        farmer_id=row.farmer_id,
        farmer_name=row.farmer_name,
        crop_name=row.crop_name,
        variety=row.variety or "",
        price=Decimal(str(row.price)),
        quantity=row.quantity,
        unit=Unit(row.unit),
        harvest_date=row.harvest_date,
        shelf_life_days=row.shelf_life_days,
        location=Location(village=row.village, district=row.district, state=row.state),
        status=ListingStatus(row.status),
        created_at=_aware(row.created_at),
    )


def order_from_row(row: OrderRow) -> Order:
    return Order(
        id=row.id,
        buyer_id=row.buyer_id,
        buyer_name=row.buyer_name,
        lines=tuple(
            OrderLine(
                listing_id=item.listing_id,
                farmer_id=item.farmer_id,
                crop_name=item.crop_name,
                quantity=item.quantity,
                price_at_purchase=Decimal(str(item.price)),
                unit=Unit(item.unit),
            )
            for item in row.order_items
        ),
        total_amount=Decimal(str(row.total_amount)),
        status=OrderStatus(row.status),
        pickup_info=PickupInfo(
            farmer_name=row.pickup_farmer_name,
            address=row.pickup_address or "",
            city=row.pickup_city or "",
            state=row.pickup_state or "",
            phone=row.pickup_phone or "",
        ),
        delivery_info=DeliveryInfo(
            buyer_name=row.delivery_buyer_name,
            address=row.delivery_address,
            city=row.delivery_city or "",
            state=row.delivery_state or "",
            zip=row.delivery_zip or "",
            phone=row.delivery_phone or "",
        ),
        distance_km=row.distance_km,
        estimated_minutes=row.estimated_minutes,
        delivery_partner_id=row.delivery_partner_id,
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


class SqlStore(Store):

    def __init__(self, db):
        self.db = db

    @property
    def session(self):
        return self.db.session

    def _fail(self, operation, exc):
        self.session.rollback()
        log.error("storage failure during %s: %s", operation, exc)
        raise StorageError(operation, exc) from exc

    def get_user(self, user_id):
        try:
            row = self.session.get(Users, user_id)
        except SQLAlchemyError as e:
            self._fail("get_user", e)
        if row is None:
            return None
        return UserProfile(
            id=row.id,
            name=row.name,
            role=Role(row.role),
            phone=row.phone or "",
            address=row.address or "",
            city=row.city or "",
            state=row.state or "",
            zip=row.zip or "",
        )

    # --- listings ---

    def add_listing(self, listing):
        row = Listings(
            farmer_id=listing.farmer_id,
            farmer_name=listing.farmer_name,
            crop_name=listing.crop_name,
            variety=listing.variety,
            price=listing.price,
            quantity=listing.quantity,
            unit=listing.unit.value,
            harvest_date=listing.harvest_date,
            shelf_life_days=listing.shelf_life_days,
            village=listing.location.village,
            district=listing.location.district,
            state=listing.location.state,
            status=listing.status.value,
            created_at=_naive_utc(listing.created_at),
        )
        try:
            self.session.add(row)
            self.session.commit()
        except SQLAlchemyError as e:
            self._fail("add_listing", e)
        return listing_from_row(row)

    def get_listing(self, listing_id):
        try:
            row = self.session.get(Listings, listing_id, populate_existing=True)
        except SQLAlchemyError as e:
            self._fail("get_listing", e)
        return listing_from_row(row) if row else None

    def list_listings(self):
        try:
            rows = Listings.query.order_by(Listings.id.desc()).all()
        except SQLAlchemyError as e:
            self._fail("list_listings", e)
        return [listing_from_row(row) for row in rows]

    def _require_listing(self, listing_id) -> Listing:
        listing = self.get_listing(listing_id)
        if listing is None:
            raise NotFoundError("listing", listing_id)
        return listing

    def _sync_stock_status(self, listing_id):
        self.session.execute(
            update(Listings)
            .where(Listings.id == listing_id, Listings.quantity == 0, Listings.status == ListingStatus.AVAILABLE.value)
            .values(status=ListingStatus.SOLD.value)
            .execution_options(synchronize_session=False)
        )
        self.session.execute(
            update(Listings)
            .where(Listings.id == listing_id, Listings.quantity > 0, Listings.status == ListingStatus.SOLD.value)
            .values(status=ListingStatus.AVAILABLE.value)
            .execution_options(synchronize_session=False)
        )

    def update_listing(self, listing_id, price=None, quantity=None):
        values = {}
        if price is not None:
            values["price"] = price
        if quantity is not None:
            values["quantity"] = quantity
        try:
            result = self.session.execute(
                update(Listings)
                .where(Listings.id == listing_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                self.session.rollback()
                raise NotFoundError("listing", listing_id)
            self._sync_stock_status(listing_id)
            self.session.commit()
        except SQLAlchemyError as e:
            self._fail("update_listing", e)
        return self._require_listing(listing_id)

    def set_listing_status(self, listing_id, status, expected=None):
        stmt = update(Listings).where(Listings.id == listing_id)
        if expected is not None:
            stmt = stmt.where(Listings.status == expected.value)
        try:
            result = self.session.execute(
                stmt.values(status=status.value).execution_options(synchronize_session=False)
            )
            self.session.commit()
        except SQLAlchemyError as e:
            self._fail("set_listing_status", e)
        if result.rowcount == 0:
            self._require_listing(listing_id)
            return False
        return True

    def reserve(self, listing_id, amount):
        try:
            result = self.session.execute(
                update(Listings)
                .where(Listings.id == listing_id, Listings.quantity >= amount)
                .values(quantity=Listings.quantity - amount)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                self.session.rollback()
                listing = self._require_listing(listing_id)
                raise InsufficientStockError(listing_id, amount, listing.quantity)
            self._sync_stock_status(listing_id)
            self.session.commit()
        except SQLAlchemyError as e:
            self._fail("reserve", e)
        return self._require_listing(listing_id)

    def release(self, listing_id, amount):
        try:
            result = self.session.execute(
                update(Listings)
                .where(Listings.id == listing_id)
                .values(quantity=Listings.quantity + amount)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                self.session.rollback()
                raise NotFoundError("listing", listing_id)
            self._sync_stock_status(listing_id)
            self.session.commit()
        except SQLAlchemyError as e:
            self._fail("release", e)
        return self._require_listing(listing_id)

    # --- orders ---

    def add_order(self, order):
        row = OrderRow(
            buyer_id=order.buyer_id,
            buyer_name=order.buyer_name,
            total_amount=order.total_amount,
            status=order.status.value,
            pickup_farmer_name=order.pickup_info.farmer_name,
            pickup_address=order.pickup_info.address,
            pickup_city=order.pickup_info.city,
            pickup_state=order.pickup_info.state,
            pickup_phone=order.pickup_info.phone,
            delivery_buyer_name=order.delivery_info.buyer_name,
            delivery_address=order.delivery_info.address,
            delivery_city=order.delivery_info.city,
            delivery_state=order.delivery_info.state,
            delivery_zip=order.delivery_info.zip,
            delivery_phone=order.delivery_info.phone,
            distance_km=order.distance_km,
            estimated_minutes=order.estimated_minutes,
            delivery_partner_id=order.delivery_partner_id,
            created_at=_naive_utc(order.created_at),
            updated_at=_naive_utc(order.updated_at),
        )
        for line in order.lines:
            row.order_items.append(
                OrderItem(
                    listing_id=line.listing_id,
                    farmer_id=line.farmer_id,
                    crop_name=line.crop_name,
                    unit=line.unit.value,
                    quantity=line.quantity,
                    price=line.price_at_purchase,
                )
            )
        try:
            self.session.add(row)
            self.session.commit()
        except SQLAlchemyError as e:
            self._fail("add_order", e)
        return order_from_row(row)

    def get_order(self, order_id):
        try:
            row = self.session.get(OrderRow, order_id, populate_existing=True)
        except SQLAlchemyError as e:
            self._fail("get_order", e)
        return order_from_row(row) if row else None

    def list_orders(self):
        try:
            rows = OrderRow.query.order_by(OrderRow.id.desc()).all()
        except SQLAlchemyError as e:
            self._fail("list_orders", e)
        return [order_from_row(row) for row in rows]

    def swap_order_status(self, order_id, expected, new, delivery_partner_id=None, now=None):
        values = {"status": new.value, "updated_at": _naive_utc(now or utc_now())}
        if delivery_partner_id is not None:
            values["delivery_partner_id"] = delivery_partner_id
        try:
            result = self.session.execute(
                update(OrderRow)
                .where(OrderRow.id == order_id, OrderRow.status == expected.value)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            self.session.commit()
        except SQLAlchemyError as e:
            self._fail("swap_order_status", e)
        if result.rowcount == 0:
            if self.get_order(order_id) is None:
                raise NotFoundError("order", order_id)
            return None
        return self.get_order(order_id)

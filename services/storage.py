"""Storage interface for the marketplace engine and its in-memory backend.

Backends provide atomic per-record operations: stock reservation/release on
a listing and compare-and-swap of an order's status. Everything returned is
an immutable snapshot, so callers never hold a live reference into storage.
"""

import itertools
import threading
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from typing import Optional

from core.errors import InsufficientStockError, NotFoundError
from services.domain import Listing, ListingStatus, Order, OrderStatus, UserProfile, utc_now


class Store(ABC):
    """Persistence seen by the catalog and ledger."""

    # --- users ---

    @abstractmethod
    def get_user(self, user_id: int) -> Optional[UserProfile]:
        ...

    # --- listings ---

    @abstractmethod
    def add_listing(self, listing: Listing) -> Listing:
        """Persist a new listing and return it with its id assigned."""

    @abstractmethod
    def get_listing(self, listing_id: int) -> Optional[Listing]:
        ...

    @abstractmethod
    def list_listings(self) -> list[Listing]:
        """All listings, newest first."""

    @abstractmethod
    def update_listing(
        self, listing_id: int, price: Optional[Decimal] = None, quantity: Optional[int] = None
    ) -> Listing:
        ...

    @abstractmethod
    def set_listing_status(
        self, listing_id: int, status: ListingStatus, expected: Optional[ListingStatus] = None
    ) -> bool:
        """Set the status, only if it currently equals `expected` when given."""

    @abstractmethod
    def reserve(self, listing_id: int, amount: int) -> Listing:
        """Atomically take `amount` units, or raise InsufficientStockError."""

    @abstractmethod
    def release(self, listing_id: int, amount: int) -> Listing:
        """Atomically give back `amount` units."""

    # --- orders ---

    @abstractmethod
    def add_order(self, order: Order) -> Order:
        ...

    @abstractmethod
    def get_order(self, order_id: int) -> Optional[Order]:
        ...

    @abstractmethod
    def list_orders(self) -> list[Order]:
        """All orders, newest first."""

    @abstractmethod
    def swap_order_status(
        self,
        order_id: int,
        expected: OrderStatus,
        new: OrderStatus,
        delivery_partner_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Optional[Order]:
        """Move the order from `expected` to `new`.

        Returns the updated order, or None when the stored status is no longer
        `expected`. A non-None `delivery_partner_id` is recorded on the order.
        """


class InMemoryStore(Store):
    """Dict-backed store with one lock per record."""

    def __init__(self):
        self._users: dict[int, UserProfile] = {}
        self._listings: dict[int, Listing] = {}
        self._orders: dict[int, Order] = {}
        self._listing_ids = itertools.count(1)
        self._order_ids = itertools.count(1)
        self._registry_lock = threading.Lock()
        self._record_locks: dict[tuple[str, int], threading.Lock] = {}

    def _lock(self, kind: str, ident: int) -> threading.Lock:
        with self._registry_lock:
            lock = self._record_locks.get((kind, ident))
            if lock is None:
                lock = self._record_locks[(kind, ident)] = threading.Lock()
            return lock

    def add_user(self, user: UserProfile) -> UserProfile:
        self._users[user.id] = user
        return user

    def get_user(self, user_id):
        return self._users.get(user_id)

    def add_listing(self, listing):
        with self._registry_lock:
            stored = replace(listing, id=next(self._listing_ids))
            self._listings[stored.id] = stored
        return stored

    def get_listing(self, listing_id):
        return self._listings.get(listing_id)

    def list_listings(self):
        return sorted(self._listings.values(), key=lambda l: l.id, reverse=True)

    def _require_listing(self, listing_id) -> Listing:
        listing = self._listings.get(listing_id)
        if listing is None:
            raise NotFoundError("listing", listing_id)
        return listing

    def update_listing(self, listing_id, price=None, quantity=None):
        with self._lock("listing", listing_id):
            listing = self._require_listing(listing_id)
            if price is not None:
                listing = replace(listing, price=price)
            if quantity is not None:
                listing = listing.with_stock(quantity)
            self._listings[listing_id] = listing
        return listing

    def set_listing_status(self, listing_id, status, expected=None):
        with self._lock("listing", listing_id):
            listing = self._require_listing(listing_id)
            if expected is not None and listing.status != expected:
                return False
            self._listings[listing_id] = replace(listing, status=status)
        return True

    def reserve(self, listing_id, amount):
        with self._lock("listing", listing_id):
            listing = self._require_listing(listing_id)
            if amount > listing.quantity:
                raise InsufficientStockError(listing_id, amount, listing.quantity)
            listing = listing.with_stock(listing.quantity - amount)
            self._listings[listing_id] = listing
        return listing

    def release(self, listing_id, amount):
        with self._lock("listing", listing_id):
            listing = self._require_listing(listing_id)
            listing = listing.with_stock(listing.quantity + amount)
            self._listings[listing_id] = listing
        return listing

    def add_order(self, order):
        with self._registry_lock:
            stored = replace(order, id=next(self._order_ids))
            self._orders[stored.id] = stored
        return stored

    def get_order(self, order_id):
        return self._orders.get(order_id)

    def list_orders(self):
        return sorted(self._orders.values(), key=lambda o: o.id, reverse=True)

    def swap_order_status(self, order_id, expected, new, delivery_partner_id=None, now=None):
        with self._lock("order", order_id):
            order = self._orders.get(order_id)
            if order is None:
                raise NotFoundError("order", order_id)
            if order.status != expected:
                return None
            changes = {"status": new, "updated_at": now or utc_now()}
            if delivery_partner_id is not None:
                changes["delivery_partner_id"] = delivery_partner_id
            order = replace(order, **changes)
            self._orders[order_id] = order
        return order

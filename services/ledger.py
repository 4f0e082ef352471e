"""Order lifecycle: checkout, the status state machine and per-role visibility.

    pending -> accepted -> out_for_delivery -> delivered
    pending | accepted -> cancelled

Status changes go through the store's compare-and-swap, so two concurrent
requests for the same order can never both apply; the loser re-reads the
order and is judged against its fresh status.
"""

import hashlib
import itertools
import logging
import threading
from datetime import datetime
from decimal import Decimal
from typing import Callable, Iterable, Optional

from core.errors import (
    AuthorizationError,
    EmptyCartError,
    InvalidTransitionError,
    MixedFarmerError,
    NotFoundError,
    ValidationError,
)
from services.catalog import expiry_status
from services.domain import (
    ACTIVE_STATUSES,
    CartLine,
    DeliveryAddress,
    DeliveryInfo,
    ListingStatus,
    Order,
    OrderLine,
    OrderStatus,
    PickupInfo,
    Role,
    UserProfile,
    parse_enum,
    utc_now,
)
from services.events import OrderEvent
from services.storage import Store

log = logging.getLogger(__name__)

TRANSITIONS = {
    (OrderStatus.PENDING, OrderStatus.ACCEPTED): frozenset({Role.DELIVERY, Role.FARMER}),
    (OrderStatus.ACCEPTED, OrderStatus.OUT_FOR_DELIVERY): frozenset({Role.DELIVERY}),
    (OrderStatus.OUT_FOR_DELIVERY, OrderStatus.DELIVERED): frozenset({Role.DELIVERY}),
    (OrderStatus.PENDING, OrderStatus.CANCELLED): frozenset({Role.BUYER, Role.FARMER}),
    (OrderStatus.ACCEPTED, OrderStatus.CANCELLED): frozenset({Role.BUYER, Role.FARMER}),
}


def allowed_roles(current: OrderStatus, target: OrderStatus) -> frozenset:
    return TRANSITIONS.get((current, target), frozenset())


def estimate_route(pickup: PickupInfo, delivery: DeliveryInfo) -> tuple[float, int]:
    """Rough distance (km) and travel time (minutes) between two addresses.

    There is no geocoder behind this; the figures are derived from the
    addresses so the same pair always gets the same estimate.
    """
    key = "|".join([pickup.address, pickup.city, delivery.address, delivery.city]).lower()
    digest = int(hashlib.sha1(key.encode("utf-8")).hexdigest()[:8], 16)
    distance_km = round(2 + (digest % 280) / 10, 1)
    return distance_km, int(30 + distance_km * 2)


class OrderLedger:

    def __init__(
        self,
        store: Store,
        clock: Callable[[], datetime] = utc_now,
        route_estimator: Callable[[PickupInfo, DeliveryInfo], tuple[float, int]] = estimate_route,
    ):
        self.store = store
        self.clock = clock
        self.route_estimator = route_estimator
        self._subscribers: list[Callable[[OrderEvent], None]] = []
        self._sequence = itertools.count(1)
        # reentrant: a subscriber may itself trigger a status change
        self._emit_lock = threading.RLock()

    # --- subscriptions ---

    def subscribe(self, callback: Callable[[OrderEvent], None]) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _emit(self, kind, order, old_status=None, new_status=None):
        # subscribers run under the lock so every one sees events in sequence order
        with self._emit_lock:
            event = OrderEvent(
                sequence=next(self._sequence),
                kind=kind,
                order=order,
                old_status=old_status,
                new_status=new_status,
                occurred_at=self.clock(),
            )
            for callback in list(self._subscribers):
                try:
                    callback(event)
                except Exception:
                    # the mutation is already stored; a broken listener must not undo it
                    log.exception("order subscriber failed on event %s", event.sequence)
        return event

    # --- checkout ---

    def create_order(
        self, buyer_id: int, cart_lines: Iterable[CartLine], delivery_address: DeliveryAddress
    ) -> Order:
        cart_lines = list(cart_lines)
        if not cart_lines:
            raise EmptyCartError()

        farmer_ids = {line.farmer_id for line in cart_lines}
        if len(farmer_ids) > 1:
            first, other = sorted(farmer_ids)[:2]
            raise MixedFarmerError(first, other)
        farmer_id = farmer_ids.pop()

        buyer = self.store.get_user(buyer_id)
        if buyer is None:
            raise NotFoundError("user", buyer_id)
        if buyer.role != Role.BUYER:
            raise AuthorizationError("Only buyers can place orders")

        now = self.clock()
        live = []
        for line in cart_lines:
            listing = self.store.get_listing(line.listing.id)
            if listing is None:
                raise NotFoundError("listing", line.listing.id)
            if listing.status == ListingStatus.EXPIRED or expiry_status(listing, now).expired:
                raise ValidationError(f"{listing.crop_name} (listing {listing.id}) has expired")
            live.append((listing, line.quantity))

        reserved = []
        try:
            for listing, quantity in live:
                self.store.reserve(listing.id, quantity)
                reserved.append((listing.id, quantity))

            lines = tuple(
                OrderLine(
                    listing_id=listing.id,
                    farmer_id=listing.farmer_id,
                    crop_name=listing.crop_name,
                    quantity=quantity,
                    price_at_purchase=listing.price,
                    unit=listing.unit,
                )
                for listing, quantity in live
            )
            pickup = self._pickup_snapshot(farmer_id, live[0][0])
            delivery = DeliveryInfo(
                buyer_name=buyer.name,
                address=delivery_address.address,
                city=delivery_address.city,
                state=delivery_address.state,
                zip=delivery_address.zip,
                phone=delivery_address.phone or buyer.phone,
            )
            distance_km, minutes = self.route_estimator(pickup, delivery)

            order = self.store.add_order(
                Order(
                    id=None,
                    buyer_id=buyer.id,
                    buyer_name=buyer.name,
                    lines=lines,
                    total_amount=sum((l.line_total for l in lines), Decimal("0")),
                    pickup_info=pickup,
                    delivery_info=delivery,
                    status=OrderStatus.PENDING,
                    distance_km=distance_km,
                    estimated_minutes=minutes,
                    created_at=now,
                    updated_at=now,
                )
            )
        except Exception:
            for listing_id, quantity in reversed(reserved):
                self.store.release(listing_id, quantity)
            raise

        log.info(
            "order_created order_id=%s buyer_id=%s farmer_id=%s total=%s",
            order.id, buyer.id, farmer_id, order.total_amount,
        )
        self._emit("created", order, new_status=order.status)
        return order

    def _pickup_snapshot(self, farmer_id: int, listing) -> PickupInfo:
        farmer: Optional[UserProfile] = self.store.get_user(farmer_id)
        if farmer is None:
            return PickupInfo(
                farmer_name=listing.farmer_name,
                address=listing.location.village,
                city=listing.location.district,
                state=listing.location.state,
            )
        return PickupInfo(
            farmer_name=farmer.name,
            address=farmer.address or listing.location.village,
            city=farmer.city or listing.location.district,
            state=farmer.state or listing.location.state,
            phone=farmer.phone,
        )

    # --- status transitions ---

    def get(self, order_id: int) -> Order:
        order = self.store.get_order(order_id)
        if order is None:
            raise NotFoundError("order", order_id)
        return order

    def _check_transition(self, order: Order, actor_id: int, role: Role, target: OrderStatus) -> Optional[int]:
        """Validate the move and return the delivery partner id to record, if any."""
        if role not in allowed_roles(order.status, target):
            raise InvalidTransitionError(order.status.value, target.value, role.value)

        if role == Role.BUYER and order.buyer_id != actor_id:
            raise AuthorizationError("Only the buyer who placed this order can cancel it")
        if role == Role.FARMER and not order.has_line_for(actor_id):
            raise AuthorizationError("This order has no produce from you")
        if role == Role.DELIVERY:
            if order.delivery_partner_id is not None and order.delivery_partner_id != actor_id:
                raise AuthorizationError("This order is assigned to another delivery partner")
            if order.delivery_partner_id is None:
                return actor_id
        return None

    def update_status(self, order_id: int, actor_id: int, actor_role, new_status) -> Order:
        role = parse_enum(Role, actor_role, "role")
        target = parse_enum(OrderStatus, new_status, "status")

        while True:
            order = self.get(order_id)
            partner_id = self._check_transition(order, actor_id, role, target)
            updated = self.store.swap_order_status(
                order.id, order.status, target, delivery_partner_id=partner_id, now=self.clock()
            )
            if updated is not None:
                break
            # lost the race: someone else moved the order first, judge again
            log.debug("order %s changed concurrently, re-evaluating", order_id)

        restock_error = None
        if target == OrderStatus.CANCELLED:
            restock_error = self._restock(updated)

        log.info(
            "order_status order_id=%s %s->%s actor_id=%s role=%s",
            order_id, order.status.value, target.value, actor_id, role.value,
        )
        self._emit("status_changed", updated, old_status=order.status, new_status=target)
        if restock_error is not None:
            raise restock_error
        return updated

    def _restock(self, order: Order) -> Optional[Exception]:
        """Give back every line of a cancelled order; return the first failure, if any."""
        first_error = None
        for line in order.lines:
            try:
                self.store.release(line.listing_id, line.quantity)
            except Exception as e:
                log.error(
                    "restock failed order_id=%s listing_id=%s quantity=%s: %s",
                    order.id, line.listing_id, line.quantity, e,
                )
                if first_error is None:
                    first_error = e
        return first_error

    # --- visibility ---

    def can_view(self, order: Order, viewer_id: int, viewer_role, include_history: bool = False) -> bool:
        role = parse_enum(Role, viewer_role, "role")
        if role == Role.BUYER:
            return order.buyer_id == viewer_id
        if role == Role.FARMER:
            return order.has_line_for(viewer_id)
        if role == Role.DELIVERY:
            if order.status in ACTIVE_STATUSES:
                return True
            return include_history and order.delivery_partner_id == viewer_id
        return True

    def visible_orders(self, viewer_id: int, viewer_role, include_history: bool = False) -> list[Order]:
        return [
            order
            for order in self.store.list_orders()
            if self.can_view(order, viewer_id, viewer_role, include_history)
        ]

    def get_for_viewer(self, order_id: int, viewer_id: int, viewer_role) -> Order:
        order = self.get(order_id)
        if not self.can_view(order, viewer_id, viewer_role, include_history=True):
            raise NotFoundError("order", order_id)
        return order

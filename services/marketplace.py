"""Wires the engine components around one store."""

from datetime import datetime
from typing import Callable, Optional

from core.errors import AuthorizationError
from services.cart import Cart
from services.catalog import CatalogStore
from services.domain import Actor, CheckoutRequest, Order, Role, utc_now
from services.earnings import EarningsAggregator
from services.events import OrderFeed
from services.ledger import OrderLedger
from services.pricing import PricingOracle
from services.storage import Store


class Marketplace:

    def __init__(
        self,
        store: Store,
        pricing: Optional[PricingOracle] = None,
        perishable_threshold_days: int = 7,
        feed_size: int = 500,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.pricing = pricing or PricingOracle()
        self.catalog = CatalogStore(store, perishable_threshold_days=perishable_threshold_days, clock=clock)
        self.ledger = OrderLedger(store, clock=clock)
        self.earnings = EarningsAggregator(store)
        self.feed = OrderFeed(maxlen=feed_size)
        self.ledger.subscribe(self.feed)

    def checkout(self, actor: Actor, request: CheckoutRequest) -> Order:
        """Build a single-farmer cart from live listings and place the order."""
        if actor.role != Role.BUYER:
            raise AuthorizationError("Only buyers can place orders")

        cart = Cart()
        for item in request.items:
            cart.add(self.catalog.get(item.listing_id), item.quantity)
        return self.ledger.create_order(actor.id, cart.lines, request.delivery_address)

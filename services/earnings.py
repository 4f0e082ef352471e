from decimal import Decimal

from services.domain import Earnings, OrderStatus
from services.storage import Store


class EarningsAggregator:
    """Farmer earnings, derived from the ledger on every call."""

    def __init__(self, store: Store):
        self.store = store

    def earnings_for(self, farmer_id: int) -> Earnings:
        # whole order amount, not the farmer's line share: carts are single-farmer
        delivered = [
            order
            for order in self.store.list_orders()
            if order.status == OrderStatus.DELIVERED and order.has_line_for(farmer_id)
        ]
        return Earnings(
            total_earnings=sum((o.total_amount for o in delivered), Decimal("0")),
            delivered_order_count=len(delivered),
        )

import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from services.domain import Order, OrderStatus, utc_now


@dataclass(frozen=True)
class OrderEvent:
    sequence: int
    kind: str  # "created" | "status_changed"
    order: Order
    old_status: Optional[OrderStatus] = None
    new_status: Optional[OrderStatus] = None
    occurred_at: datetime = field(default_factory=utc_now)

    @property
    def order_id(self) -> int:
        return self.order.id

    def to_dict(self):
        return {
            "sequence": self.sequence,
            "kind": self.kind,
            "order_id": self.order_id,
            "old_status": self.old_status.value if self.old_status else None,
            "new_status": self.new_status.value if self.new_status else None,
            "occurred_at": self.occurred_at.isoformat(),
            "order": self.order.to_dict(),
        }


class OrderFeed:
    """Keeps the most recent order events so HTTP clients can poll for changes."""

    def __init__(self, maxlen: int = 500):
        self._events: deque[OrderEvent] = deque(maxlen=maxlen)
        self._lock = threading.Lock()

    def __call__(self, event: OrderEvent):
        with self._lock:
            self._events.append(event)

    def poll(
        self, after: int = 0, predicate: Optional[Callable[[Order], bool]] = None
    ) -> tuple[list[OrderEvent], int]:
        """Events newer than `after` plus the cursor for the next poll.

        The cursor comes from the same snapshot as the events, so events the
        predicate hides are skipped but later ones are never missed.
        """
        with self._lock:
            snapshot = [e for e in self._events if e.sequence > after]
        cursor = snapshot[-1].sequence if snapshot else max(after, 0)
        if predicate is not None:
            snapshot = [e for e in snapshot if predicate(e.order)]
        return snapshot, cursor

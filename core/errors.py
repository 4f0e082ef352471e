"""Error taxonomy for the marketplace engine.

Every expected business failure is a MarketError subclass carrying a stable
code and an HTTP status; the web layer turns them into JSON responses.
"""


class MarketError(Exception):
    """Base exception for all marketplace errors."""

    code = "market_error"
    status_code = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


class ValidationError(MarketError):
    """Raised when input fields are missing or malformed."""

    code = "validation_error"
    status_code = 400

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class AuthorizationError(MarketError):
    """Raised when the caller's role or identity may not perform an action."""

    code = "not_authorized"
    status_code = 403


class NotFoundError(MarketError):
    """Raised when a listing, order or user id is unknown."""

    code = "not_found"
    status_code = 404

    def __init__(self, kind: str, ident):
        self.kind = kind
        self.ident = ident
        super().__init__(f"{kind.capitalize()} not found: {ident}")


class InsufficientStockError(MarketError):
    """Raised when a reservation exceeds the listing's available quantity."""

    code = "insufficient_stock"
    status_code = 409

    def __init__(self, listing_id, requested: int, available: int):
        self.listing_id = listing_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Only {available} available for listing {listing_id}, requested {requested}"
        )


class MixedFarmerError(MarketError):
    """Raised when a cart would span more than one farmer."""

    code = "mixed_farmer_cart"
    status_code = 409

    def __init__(self, cart_farmer_id=None, other_farmer_id=None):
        self.cart_farmer_id = cart_farmer_id
        self.other_farmer_id = other_farmer_id
        super().__init__("A cart can only contain produce from one farmer")


class EmptyCartError(MarketError):
    """Raised on checkout of a cart without lines."""

    code = "empty_cart"
    status_code = 400

    def __init__(self):
        super().__init__("Cart is empty")


class InvalidTransitionError(MarketError):
    """Raised when a status change is not in the transition table."""

    code = "invalid_transition"
    status_code = 409

    def __init__(self, current: str, target: str, role: str | None = None):
        self.current = current
        self.target = target
        self.role = role
        msg = f"Cannot move order from {current} to {target}"
        if role:
            msg = f"{msg} as {role}"
        super().__init__(msg)


class StorageError(MarketError):
    """Raised when the storage backend fails unexpectedly."""

    code = "storage_error"
    status_code = 500

    def __init__(self, operation: str, cause: Exception | None = None):
        self.operation = operation
        self.cause = cause
        super().__init__(f"Storage failure during {operation}")

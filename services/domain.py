"""Domain types shared by the catalog, ledger and storage backends."""

from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional

from core.errors import ValidationError


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, Enum):
    FARMER = "farmer"
    BUYER = "buyer"
    DELIVERY = "delivery"
    ADMIN = "admin"


class Unit(str, Enum):
    KG = "kg"
    PIECES = "pieces"
    DOZEN = "dozen"
    BUNCH = "bunch"


class ListingStatus(str, Enum):
    AVAILABLE = "available"
    SOLD = "sold"
    EXPIRED = "expired"


class OrderStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.DELIVERED, OrderStatus.CANCELLED)


ACTIVE_STATUSES = frozenset(
    {OrderStatus.PENDING, OrderStatus.ACCEPTED, OrderStatus.OUT_FOR_DELIVERY}
)


def parse_enum(enum_cls, value, field_name: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"{field_name} must be one of: {allowed}", field=field_name)


def parse_decimal(value, field_name: str) -> Decimal:
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a number", field=field_name)
    try:
        result = Decimal(str(value))
    except (InvalidOperation, TypeError):
        raise ValidationError(f"{field_name} must be a number", field=field_name)
    if not result.is_finite():
        raise ValidationError(f"{field_name} must be a number", field=field_name)
    return result


def parse_int(value, field_name: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a whole number", field=field_name)
    if isinstance(value, int):
        return value
    try:
        as_decimal = Decimal(str(value))
    except (InvalidOperation, TypeError):
        raise ValidationError(f"{field_name} must be a whole number", field=field_name)
    if not as_decimal.is_finite() or as_decimal != as_decimal.to_integral_value():
        raise ValidationError(f"{field_name} must be a whole number", field=field_name)
    return int(as_decimal)


def parse_date(value, field_name: str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        try:
            # accepts "YYYY-MM-DD" and full ISO timestamps
            return datetime.fromisoformat(value.strip().replace("Z", "+00:00")).date()
        except ValueError:
            pass
    raise ValidationError(f"{field_name} must be a valid date (YYYY-MM-DD)", field=field_name)


PRICE_STEP = Decimal("0.01")


def parse_price(value, field_name: str = "price") -> Decimal:
    """A positive amount in rupees and paise; anything finer than paise is rejected."""
    price = parse_decimal(value, field_name)
    if price <= 0:
        raise ValidationError(f"{field_name} must be greater than 0", field=field_name)
    try:
        rounded = price.quantize(PRICE_STEP)
    except InvalidOperation:
        raise ValidationError(f"{field_name} is too large", field=field_name)
    if price != rounded:
        raise ValidationError(f"{field_name} can have at most 2 decimal places", field=field_name)
    return price


def compute_expiry(harvest_date: date, shelf_life_days: int) -> date:
    return harvest_date + timedelta(days=shelf_life_days)


@dataclass(frozen=True)
class Location:
    village: str = "Not specified"
    district: str = "Not specified"
    state: str = "Not specified"

    def to_dict(self) -> dict[str, Any]:
        return {"village": self.village, "district": self.district, "state": self.state}

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "Location":
        data = data or {}
        return cls(
            village=data.get("village") or "Not specified",
            district=data.get("district") or data.get("city") or "Not specified",
            state=data.get("state") or "Not specified",
        )


@dataclass(frozen=True)
class UserProfile:
    """What the engine needs to know about a registered user."""

    id: int
    name: str
    role: Role
    phone: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""

    @property
    def location(self) -> Location:
        return Location(
            village=self.address or "Not specified",
            district=self.city or "Not specified",
            state=self.state or "Not specified",
        )


@dataclass(frozen=True)
class Actor:
    """The authenticated caller, as supplied by the auth layer."""

    id: int
    role: Role
    name: str = ""


@dataclass(frozen=True)
class Listing:
    id: Optional[int]
    farmer_id: int
    farmer_name: str
    crop_name: str
    price: Decimal
    quantity: int
    harvest_date: date
    shelf_life_days: int
    variety: str = ""
    unit: Unit = Unit.KG
    location: Location = field(default_factory=Location)
    status: ListingStatus = ListingStatus.AVAILABLE
    created_at: datetime = field(default_factory=utc_now)

    @property
    def expiry_date(self) -> date:
        return compute_expiry(self.harvest_date, self.shelf_life_days)

    def with_stock(self, quantity: int) -> "Listing":
        """Copy with a new quantity, moving between available and sold as stock changes."""
        status = self.status
        if quantity == 0 and status == ListingStatus.AVAILABLE:
            status = ListingStatus.SOLD
        elif quantity > 0 and status == ListingStatus.SOLD:
            status = ListingStatus.AVAILABLE
        return replace(self, quantity=quantity, status=status)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "farmer_id": self.farmer_id,
            "farmer_name": self.farmer_name,
            "crop_name": self.crop_name,
            "variety": self.variety,
            "price": float(self.price),
            "quantity": self.quantity,
            "unit": self.unit.value,
            "harvest_date": self.harvest_date.isoformat(),
            "shelf_life_days": self.shelf_life_days,
            "expiry_date": self.expiry_date.isoformat(),
            "location": self.location.to_dict(),
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class ExpiryStatus:
    days_left: int

    @property
    def expired(self) -> bool:
        return self.days_left < 0

    @property
    def label(self) -> str:
        if self.expired:
            return "Expired"
        return f"{self.days_left} days left"

    def to_dict(self) -> dict[str, Any]:
        return {"days_left": self.days_left, "expired": self.expired, "label": self.label}


@dataclass(frozen=True)
class CartLine:
    listing: Listing
    quantity: int

    @property
    def farmer_id(self) -> int:
        return self.listing.farmer_id

    @property
    def line_total(self) -> Decimal:
        return self.listing.price * self.quantity


@dataclass(frozen=True)
class OrderLine:
    listing_id: int
    farmer_id: int
    crop_name: str
    quantity: int
    price_at_purchase: Decimal
    unit: Unit = Unit.KG

    @property
    def line_total(self) -> Decimal:
        return self.price_at_purchase * self.quantity

    def to_dict(self) -> dict[str, Any]:
        return {
            "listing_id": self.listing_id,
            "farmer_id": self.farmer_id,
            "crop_name": self.crop_name,
            "quantity": self.quantity,
            "unit": self.unit.value,
            "price_at_purchase": float(self.price_at_purchase),
            "line_total": float(self.line_total),
        }


@dataclass(frozen=True)
class PickupInfo:
    farmer_name: str
    address: str = ""
    city: str = ""
    state: str = ""
    phone: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "farmer_name": self.farmer_name,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "phone": self.phone,
        }


@dataclass(frozen=True)
class DeliveryInfo:
    buyer_name: str
    address: str
    city: str = ""
    state: str = ""
    zip: str = ""
    phone: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "buyer_name": self.buyer_name,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "zip": self.zip,
            "phone": self.phone,
        }


@dataclass(frozen=True)
class DeliveryAddress:
    """Buyer-supplied destination for a checkout."""

    address: str
    city: str = ""
    state: str = ""
    zip: str = ""
    phone: str = ""

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "DeliveryAddress":
        if not isinstance(data, dict):
            raise ValidationError("delivery_address is required", field="delivery_address")
        address = (data.get("address") or "").strip()
        if not address:
            raise ValidationError("delivery_address.address is required", field="delivery_address")
        return cls(
            address=address,
            city=(data.get("city") or "").strip(),
            state=(data.get("state") or "").strip(),
            zip=str(data.get("zip") or "").strip(),
            phone=(data.get("phone") or "").strip(),
        )


@dataclass(frozen=True)
class Order:
    id: Optional[int]
    buyer_id: int
    buyer_name: str
    lines: tuple[OrderLine, ...]
    total_amount: Decimal
    pickup_info: PickupInfo
    delivery_info: DeliveryInfo
    status: OrderStatus = OrderStatus.PENDING
    distance_km: Optional[float] = None
    estimated_minutes: Optional[int] = None
    delivery_partner_id: Optional[int] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def farmer_ids(self) -> frozenset[int]:
        return frozenset(line.farmer_id for line in self.lines)

    def has_line_for(self, farmer_id: int) -> bool:
        return any(line.farmer_id == farmer_id for line in self.lines)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "buyer_id": self.buyer_id,
            "buyer_name": self.buyer_name,
            "lines": [line.to_dict() for line in self.lines],
            "total_amount": float(self.total_amount),
            "status": self.status.value,
            "pickup_info": self.pickup_info.to_dict(),
            "delivery_info": self.delivery_info.to_dict(),
            "distance": f"{self.distance_km:.1f} km" if self.distance_km is not None else None,
            "estimated_time": f"{self.estimated_minutes} mins" if self.estimated_minutes is not None else None,
            "delivery_partner_id": self.delivery_partner_id,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass(frozen=True)
class Earnings:
    total_earnings: Decimal
    delivered_order_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_earnings": float(self.total_earnings),
            "delivered_order_count": self.delivered_order_count,
        }


# --- Request structs, validated once at the boundary ---


@dataclass(frozen=True)
class ListingFilters:
    crop_name_contains: Optional[str] = None
    max_price: Optional[Decimal] = None
    shelf_life_class: Optional[str] = None  # "short" | "long"

    @classmethod
    def from_args(cls, args) -> "ListingFilters":
        crop = (args.get("crop") or "").strip() or None
        max_price = args.get("maxPrice") or args.get("max_price")
        shelf_life = (args.get("shelfLife") or args.get("shelf_life") or "").strip().lower() or None
        if shelf_life is not None and shelf_life not in ("short", "long"):
            raise ValidationError("shelfLife must be 'short' or 'long'", field="shelfLife")
        return cls(
            crop_name_contains=crop,
            max_price=parse_decimal(max_price, "maxPrice") if max_price not in (None, "") else None,
            shelf_life_class=shelf_life,
        )


@dataclass(frozen=True)
class CreateListingRequest:
    crop_name: str
    price: Decimal
    quantity: int
    harvest_date: date
    shelf_life_days: int
    variety: str = ""
    unit: Unit = Unit.KG
    location: Optional[Location] = None

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "CreateListingRequest":
        data = data or {}
        crop_name = (data.get("crop_name") or data.get("cropName") or "").strip()
        if not crop_name:
            raise ValidationError("crop_name is required", field="crop_name")

        # the SPA posts camelCase, other clients snake_case
        def pick(snake, camel):
            value = data.get(snake)
            if value is None:
                value = data.get(camel)
            if value is None or value == "":
                raise ValidationError(f"{snake} is required", field=snake)
            return value

        price = parse_price(pick("price", "price"))
        quantity = parse_int(pick("quantity", "quantity"), "quantity")
        shelf_life_days = parse_int(pick("shelf_life_days", "shelfLifeDays"), "shelf_life_days")
        harvest_date = parse_date(pick("harvest_date", "harvestDate"), "harvest_date")

        if quantity < 0:
            raise ValidationError("quantity cannot be negative", field="quantity")
        if shelf_life_days <= 0:
            raise ValidationError("shelf_life_days must be greater than 0", field="shelf_life_days")

        location = data.get("location")
        return cls(
            crop_name=crop_name,
            price=price,
            quantity=quantity,
            harvest_date=harvest_date,
            shelf_life_days=shelf_life_days,
            variety=(data.get("variety") or "").strip(),
            unit=parse_enum(Unit, data.get("unit") or Unit.KG.value, "unit"),
            location=Location.from_dict(location) if isinstance(location, dict) else None,
        )


@dataclass(frozen=True)
class UpdateListingRequest:
    price: Optional[Decimal] = None
    quantity: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "UpdateListingRequest":
        data = data or {}
        price = data.get("price")
        quantity = data.get("quantity")
        if price is None and quantity is None:
            raise ValidationError("Nothing to update: provide price and/or quantity")

        parsed_price = parse_price(price) if price is not None else None
        parsed_quantity = parse_int(quantity, "quantity") if quantity is not None else None
        if parsed_quantity is not None and parsed_quantity < 0:
            raise ValidationError("quantity cannot be negative", field="quantity")
        return cls(price=parsed_price, quantity=parsed_quantity)


@dataclass(frozen=True)
class CheckoutItem:
    listing_id: int
    quantity: int


@dataclass(frozen=True)
class CheckoutRequest:
    items: tuple[CheckoutItem, ...]
    delivery_address: DeliveryAddress

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "CheckoutRequest":
        data = data or {}
        raw_items = data.get("items") or []
        if not isinstance(raw_items, list):
            raise ValidationError("items must be a list", field="items")

        items = []
        for raw in raw_items:
            if not isinstance(raw, dict):
                raise ValidationError("each item needs listing_id and quantity", field="items")
            listing_id = raw.get("listing_id", raw.get("product_id"))
            if listing_id is None:
                raise ValidationError("each item needs a listing_id", field="items")
            quantity = parse_int(raw.get("quantity", 1), "quantity")
            if quantity <= 0:
                raise ValidationError("item quantity must be at least 1", field="quantity")
            items.append(CheckoutItem(listing_id=parse_int(listing_id, "listing_id"), quantity=quantity))

        return cls(
            items=tuple(items),
            delivery_address=DeliveryAddress.from_dict(data.get("delivery_address")),
        )


@dataclass(frozen=True)
class StatusUpdateRequest:
    status: OrderStatus

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "StatusUpdateRequest":
        data = data or {}
        if not data.get("status"):
            raise ValidationError("status is required", field="status")
        return cls(status=parse_enum(OrderStatus, data["status"], "status"))

"""Produce listings: creation, owner edits, stock reservation and expiry."""

import logging
import math
from datetime import datetime, time, timezone
from typing import Callable, Optional

from core.errors import AuthorizationError, NotFoundError, ValidationError
from services.domain import (
    Actor,
    CreateListingRequest,
    ExpiryStatus,
    Listing,
    ListingFilters,
    Location,
    ListingStatus,
    Role,
    UpdateListingRequest,
    utc_now,
)
from services.storage import Store

log = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


def expiry_status(listing: Listing, now: datetime) -> ExpiryStatus:
    expires_at = datetime.combine(listing.expiry_date, time.min, tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    days_left = math.ceil((expires_at - now).total_seconds() / SECONDS_PER_DAY)
    return ExpiryStatus(days_left=days_left)


def is_orderable(listing: Listing, now: datetime) -> bool:
    return (
        listing.status == ListingStatus.AVAILABLE
        and listing.quantity > 0
        and not expiry_status(listing, now).expired
    )


def group_by_farmer(listings: list[Listing]) -> list[dict]:
    """Marketplace view: one entry per farmer, in first-seen order."""
    groups: dict[int, dict] = {}
    for listing in listings:
        group = groups.get(listing.farmer_id)
        if group is None:
            group = groups[listing.farmer_id] = {
                "farmer": {"id": listing.farmer_id, "name": listing.farmer_name},
                "location": listing.location.to_dict(),
                "listings": [],
            }
        group["listings"].append(listing)
    return list(groups.values())


class CatalogStore:

    def __init__(
        self,
        store: Store,
        perishable_threshold_days: int = 7,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.perishable_threshold_days = perishable_threshold_days
        self.clock = clock

    def _shelf_life_class(self, listing: Listing) -> str:
        return "short" if listing.shelf_life_days < self.perishable_threshold_days else "long"

    def _matches(self, listing: Listing, filters: ListingFilters) -> bool:
        if filters.crop_name_contains and filters.crop_name_contains.lower() not in listing.crop_name.lower():
            return False
        if filters.max_price is not None and listing.price > filters.max_price:
            return False
        if filters.shelf_life_class and self._shelf_life_class(listing) != filters.shelf_life_class:
            return False
        return True

    def list_available(self, filters: Optional[ListingFilters] = None) -> list[Listing]:
        filters = filters or ListingFilters()
        now = self.clock()
        return [
            listing
            for listing in self.store.list_listings()
            if is_orderable(listing, now) and self._matches(listing, filters)
        ]

    def list_for_farmer(self, farmer_id: int) -> list[Listing]:
        return [l for l in self.store.list_listings() if l.farmer_id == farmer_id]

    def get(self, listing_id: int) -> Listing:
        listing = self.store.get_listing(listing_id)
        if listing is None:
            raise NotFoundError("listing", listing_id)
        return listing

    def create_listing(self, actor: Actor, request: CreateListingRequest) -> Listing:
        if actor.role != Role.FARMER:
            raise AuthorizationError("Only farmers can create listings")

        location = request.location
        farmer_name = actor.name
        profile = self.store.get_user(actor.id)
        if profile is not None:
            farmer_name = farmer_name or profile.name
            # the registered farm address wins over whatever the form sent
            if profile.address or profile.city or profile.state:
                location = profile.location

        listing = Listing(
            id=None,
            farmer_id=actor.id,
            farmer_name=farmer_name or "Farmer",
            crop_name=request.crop_name,
            variety=request.variety,
            price=request.price,
            quantity=request.quantity,
            unit=request.unit,
            harvest_date=request.harvest_date,
            shelf_life_days=request.shelf_life_days,
            status=ListingStatus.AVAILABLE if request.quantity > 0 else ListingStatus.SOLD,
            location=location or Location(),
            created_at=self.clock(),
        )
        listing = self.store.add_listing(listing)
        log.info("listing_created id=%s farmer_id=%s crop=%s", listing.id, actor.id, listing.crop_name)
        return listing

    def update_listing(self, actor: Actor, listing_id: int, request: UpdateListingRequest) -> Listing:
        listing = self.get(listing_id)
        if actor.role != Role.FARMER or listing.farmer_id != actor.id:
            raise AuthorizationError("Only the farmer who owns this listing can edit it")
        if request.price is None and request.quantity is None:
            raise ValidationError("Nothing to update: provide price and/or quantity")

        listing = self.store.update_listing(listing_id, price=request.price, quantity=request.quantity)
        log.info("listing_updated id=%s farmer_id=%s", listing_id, actor.id)
        return listing

    def reserve_quantity(self, listing_id: int, amount: int) -> Listing:
        if amount <= 0:
            raise ValidationError("amount must be at least 1", field="quantity")
        return self.store.reserve(listing_id, amount)

    def release_quantity(self, listing_id: int, amount: int) -> Listing:
        if amount <= 0:
            raise ValidationError("amount must be at least 1", field="quantity")
        return self.store.release(listing_id, amount)

    def expiry_status(self, listing: Listing, now: Optional[datetime] = None) -> ExpiryStatus:
        return expiry_status(listing, now or self.clock())

    def expire_stale(self, now: Optional[datetime] = None) -> list[int]:
        now = now or self.clock()
        expired = []
        for listing in self.store.list_listings():
            if listing.status != ListingStatus.AVAILABLE or not expiry_status(listing, now).expired:
                continue
            if self.store.set_listing_status(
                listing.id, ListingStatus.EXPIRED, expected=ListingStatus.AVAILABLE
            ):
                expired.append(listing.id)
        if expired:
            log.info("listings_expired count=%d", len(expired))
        return expired

from decimal import Decimal

from core.errors import MixedFarmerError, ValidationError
from services.domain import CartLine, Listing


class Cart:
    """Pre-order basket; every line belongs to the same farmer."""

    def __init__(self, lines=None):
        self._lines: list[CartLine] = []
        for line in lines or []:
            self.add(line.listing, line.quantity)

    @property
    def lines(self) -> list[CartLine]:
        return list(self._lines)

    @property
    def farmer_id(self):
        return self._lines[0].farmer_id if self._lines else None

    @property
    def total(self) -> Decimal:
        return sum((line.line_total for line in self._lines), Decimal("0"))

    def __len__(self):
        return len(self._lines)

    def add(self, listing: Listing, quantity: int = 1) -> CartLine:
        if quantity <= 0:
            raise ValidationError("quantity must be at least 1", field="quantity")
        if self._lines and listing.farmer_id != self.farmer_id:
            raise MixedFarmerError(self.farmer_id, listing.farmer_id)

        for i, line in enumerate(self._lines):
            if line.listing.id == listing.id:
                merged = CartLine(listing=listing, quantity=line.quantity + quantity)
                self._lines[i] = merged
                return merged

        line = CartLine(listing=listing, quantity=quantity)
        self._lines.append(line)
        return line

from core.extensions import db
from core.imports import datetime

class Order(db.Model):
    __tablename__ = "orders"

    id = db.Column(db.Integer, primary_key=True)
    buyer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    buyer_name = db.Column(db.String(100), nullable=False)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False)
    status = db.Column(db.String(50), default="pending")  # pending, accepted, out_for_delivery, delivered, cancelled

    # snapshots taken at checkout, never refreshed from the live user rows
    pickup_farmer_name = db.Column(db.String(100), nullable=False)
    pickup_address = db.Column(db.String(255), default="")
    pickup_city = db.Column(db.String(100), default="")
    pickup_state = db.Column(db.String(100), default="")
    pickup_phone = db.Column(db.String(20), default="")

    delivery_buyer_name = db.Column(db.String(100), nullable=False)
    delivery_address = db.Column(db.String(500), nullable=False)
    delivery_city = db.Column(db.String(100), default="")
    delivery_state = db.Column(db.String(100), default="")
    delivery_zip = db.Column(db.String(20), default="")
    delivery_phone = db.Column(db.String(20), default="")

    distance_km = db.Column(db.Float, nullable=True)
    estimated_minutes = db.Column(db.Integer, nullable=True)
    delivery_partner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow)

    order_items = db.relationship(
        "OrderItem", backref="order", cascade="all, delete-orphan", order_by="OrderItem.id"
    )


class OrderItem(db.Model):
    __tablename__ = "order_items"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False)
    listing_id = db.Column(db.Integer, db.ForeignKey("listings.id"), nullable=False)
    farmer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    crop_name = db.Column(db.String(150), nullable=False)  # snapshot of listing name
    unit = db.Column(db.String(20), nullable=False, default="kg")
    quantity = db.Column(db.Integer, nullable=False)
    price = db.Column(db.Numeric(10, 2), nullable=False)  # price per unit at purchase

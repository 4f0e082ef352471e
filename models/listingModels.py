from core.extensions import db
from core.imports import datetime, timedelta
from sqlalchemy.orm import validates


class Listings(db.Model):
    __tablename__ = "listings"

    id = db.Column(db.Integer, primary_key=True)
    farmer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    farmer_name = db.Column(db.String(100), nullable=False)

    crop_name = db.Column(db.String(150), nullable=False)
    variety = db.Column(db.String(150), default="")
    price = db.Column(db.Numeric(10, 2), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=0)
    unit = db.Column(db.String(20), nullable=False, default="kg")  # kg, pieces, dozen, bunch

    harvest_date = db.Column(db.Date, nullable=False)
    shelf_life_days = db.Column(db.Integer, nullable=False)
    expiry_date = db.Column(db.Date, nullable=False)  # always harvest_date + shelf_life_days

    village = db.Column(db.String(150), default="Not specified")
    district = db.Column(db.String(150), default="Not specified")
    state = db.Column(db.String(150), default="Not specified")

    status = db.Column(db.String(20), default="available")  # available, sold, expired
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    farmer = db.relationship("Users", backref="listings")

    @validates("harvest_date", "shelf_life_days")
    def _recompute_expiry(self, key, value):
        harvest_date = value if key == "harvest_date" else self.harvest_date
        shelf_life_days = value if key == "shelf_life_days" else self.shelf_life_days
        if harvest_date is not None and shelf_life_days is not None:
            self.expiry_date = harvest_date + timedelta(days=shelf_life_days)
        return value

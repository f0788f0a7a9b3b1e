from datetime import datetime

from bookgarden.extensions import db


class Address(db.Model):
    """Shipping address, shared by reference and never edited in place."""

    __tablename__ = "addresses"
    __table_args__ = (
        db.UniqueConstraint("name", "phone", "address", name="uq_addresses_name_phone_address"),
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, default="")
    phone = db.Column(db.String(32), nullable=False, default="")
    address = db.Column(db.String(500), nullable=False, default="")
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "name": self.name or "",
            "phone": self.phone or "",
            "address": self.address or "",
        }

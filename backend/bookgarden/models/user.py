from datetime import datetime

from bookgarden.extensions import db


user_addresses = db.Table(
    "user_addresses",
    db.Column("user_id", db.Integer, db.ForeignKey("users.id"), primary_key=True),
    db.Column("address_id", db.Integer, db.ForeignKey("addresses.id"), primary_key=True),
)


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    full_name = db.Column(db.String(120), nullable=False, default="")
    email = db.Column(db.String(255), unique=True, index=True, nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    avatar = db.Column(db.String(1024), nullable=True)

    # customer | manager | admin
    role = db.Column(db.String(32), nullable=False, default="customer")

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    addresses = db.relationship("Address", secondary=user_addresses, lazy="selectin", order_by="Address.id")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "full_name": self.full_name or "",
            "email": self.email,
            "phone": self.phone or "",
            "avatar": self.avatar or "",
            "role": (self.role or "customer").strip().lower(),
            "address_ids": [int(a.id) for a in (self.addresses or [])],
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

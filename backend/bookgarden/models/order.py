from datetime import datetime

from bookgarden.extensions import db


class Order(db.Model):
    __tablename__ = "orders"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    address_id = db.Column(db.Integer, db.ForeignKey("addresses.id"), nullable=True)

    # PENDING | PROCESSING | DELIVERING | DELIVERED | CONFIRMED | CANCELLED
    status = db.Column(db.String(24), nullable=False, default="PENDING", index=True)
    # ONLINE | COD
    payment_method = db.Column(db.String(16), nullable=False, default="COD", index=True)
    # NOT_PAID | PAID
    payment_status = db.Column(db.String(16), nullable=False, default="NOT_PAID", index=True)

    order_date = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)
    payment_date = db.Column(db.DateTime, nullable=True)

    total_price = db.Column(db.Float, nullable=False, default=0.0)
    note = db.Column(db.String(500), nullable=True)

    version = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    items = db.relationship(
        "OrderItem",
        backref="order",
        order_by="OrderItem.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    shipping_address = db.relationship("Address", lazy="joined")

    __mapper_args__ = {"version_id_col": version}

    def to_dict(self, *, include_items: bool = True) -> dict:
        payload = {
            "id": int(self.id),
            "user_id": int(self.user_id),
            "status": self.status or "PENDING",
            "payment_method": self.payment_method or "COD",
            "payment_status": self.payment_status or "NOT_PAID",
            "order_date": self.order_date.isoformat() if self.order_date else None,
            "payment_date": self.payment_date.isoformat() if self.payment_date else None,
            "total_price": float(self.total_price or 0.0),
            "note": self.note or "",
            "address": self.shipping_address.to_dict() if self.shipping_address else None,
        }
        if include_items:
            payload["order_items"] = [item.to_dict() for item in (self.items or [])]
        return payload


class OrderItem(db.Model):
    """Snapshot of a purchased book and quantity, owned by exactly one order."""

    __tablename__ = "order_items"
    __table_args__ = (
        db.UniqueConstraint("order_id", "position", name="uq_order_items_order_position"),
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    book_id = db.Column(db.Integer, db.ForeignKey("books.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Float, nullable=False, default=0.0)
    position = db.Column(db.Integer, nullable=False, default=0)

    book = db.relationship("Book", lazy="joined")

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "book_id": int(self.book_id),
            "quantity": int(self.quantity or 0),
            "unit_price": float(self.unit_price or 0.0),
            "book": self.book.to_dict() if self.book else None,
        }

from datetime import datetime

from bookgarden.extensions import db


class Book(db.Model):
    __tablename__ = "books"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False, default="")
    price = db.Column(db.Float, nullable=False, default=0.0)

    # stock may go negative on oversell; sold_quantity only grows.
    stock = db.Column(db.Integer, nullable=False, default=0)
    sold_quantity = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "title": self.title or "",
            "price": float(self.price or 0.0),
            "stock": int(self.stock or 0),
            "sold_quantity": int(self.sold_quantity or 0),
        }

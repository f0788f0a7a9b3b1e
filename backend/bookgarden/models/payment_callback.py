from datetime import datetime

from bookgarden.extensions import db


class PaymentCallback(db.Model):
    __tablename__ = "payment_callbacks"

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(db.String(128), nullable=False, unique=True)
    order_id = db.Column(db.Integer, nullable=False, index=True)
    response_code = db.Column(db.String(16), nullable=False, default="")
    # received | processed | failed
    status = db.Column(db.String(32), nullable=False, default="received")
    request_id = db.Column(db.String(80), nullable=True)
    payload_json = db.Column(db.Text, nullable=True)
    error = db.Column(db.Text, nullable=True)

    processed_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self):
        return {
            "id": int(self.id),
            "event_id": self.event_id,
            "order_id": int(self.order_id),
            "response_code": self.response_code or "",
            "status": self.status or "",
            "request_id": self.request_id or "",
            "error": self.error or "",
            "processed_at": self.processed_at.isoformat() if self.processed_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

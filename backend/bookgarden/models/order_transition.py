from datetime import datetime

from bookgarden.extensions import db


class OrderTransition(db.Model):
    __tablename__ = "order_transitions"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    # status | payment_status
    field = db.Column(db.String(24), nullable=False, default="status")
    from_status = db.Column(db.String(24), nullable=False, default="")
    to_status = db.Column(db.String(24), nullable=False)
    actor_type = db.Column(db.String(32), nullable=False, default="system")
    actor_id = db.Column(db.Integer, nullable=True)
    reason = db.Column(db.String(240), nullable=True)
    metadata_json = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)

    def to_dict(self):
        return {
            "id": int(self.id),
            "order_id": int(self.order_id),
            "field": self.field or "status",
            "from_status": self.from_status or "",
            "to_status": self.to_status or "",
            "actor_type": self.actor_type or "",
            "actor_id": int(self.actor_id) if self.actor_id is not None else None,
            "reason": self.reason or "",
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

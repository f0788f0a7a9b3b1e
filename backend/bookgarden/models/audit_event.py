import json
from datetime import datetime

from bookgarden.extensions import db


class AuditEvent(db.Model):
    __tablename__ = "audit_events"

    id = db.Column(db.Integer, primary_key=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)

    event_type = db.Column(db.String(80), nullable=False, index=True)
    actor_user_id = db.Column(db.Integer, nullable=True, index=True)

    # order | book | payment_callback | job
    subject_type = db.Column(db.String(40), nullable=True, index=True)
    subject_id = db.Column(db.String(64), nullable=True, index=True)

    request_id = db.Column(db.String(80), nullable=True)
    idempotency_key = db.Column(db.String(180), nullable=True, unique=True)

    severity = db.Column(db.String(16), nullable=False, default="INFO", index=True)
    metadata_json = db.Column(db.Text, nullable=True)

    def metadata_dict(self) -> dict:
        if not self.metadata_json:
            return {}
        try:
            parsed = json.loads(self.metadata_json)
        except Exception:
            return {"raw": str(self.metadata_json)}
        return parsed if isinstance(parsed, dict) else {"raw": str(self.metadata_json)}

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "event_type": self.event_type or "",
            "actor_user_id": int(self.actor_user_id) if self.actor_user_id is not None else None,
            "subject_type": self.subject_type or "",
            "subject_id": self.subject_id or "",
            "severity": self.severity or "INFO",
            "metadata": self.metadata_dict(),
        }

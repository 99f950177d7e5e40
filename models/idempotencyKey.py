from datetime import datetime
from db.extensions import db


class IdempotencyKey(db.Model):
    __tablename__ = "idempotency_keys"
    id = db.Column(db.Integer, primary_key=True)
    # Client key, already scoped to the submitting actor
    key = db.Column(db.String(255), nullable=False, unique=True)
    request_hash = db.Column(db.String(64), nullable=False)
    # NULL while the first request is still in flight
    response = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<IdempotencyKey key={self.key} done={self.response is not None}>"

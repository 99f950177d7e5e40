from datetime import datetime
from sqlalchemy import event
from db.extensions import db

PAYOUT_LOG_ACTIONS = ('scheduled', 'paid', 'note')


class PayoutLog(db.Model):
    """Audit trail of admin actions against a payout. Rows are insert-only."""
    __tablename__ = "payout_logs"
    id = db.Column(db.Integer, primary_key=True)
    payout_id = db.Column(db.Integer, db.ForeignKey('payouts.id', ondelete='CASCADE'), nullable=False, index=True)
    vendor_id = db.Column(db.Integer, db.ForeignKey('vendors.id', ondelete='CASCADE'), nullable=False, index=True)
    action = db.Column(db.Enum(*PAYOUT_LOG_ACTIONS, name='payout_log_action_enum'), nullable=False)
    admin_user = db.Column(db.String(255), nullable=False)
    note = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    payout = db.relationship("Payout", back_populates="logs")

    def to_dict(self):
        return {
            'id': self.id,
            'payoutId': self.payout_id,
            'vendorId': self.vendor_id,
            'action': self.action,
            'adminUser': self.admin_user,
            'note': self.note,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }


@event.listens_for(PayoutLog, 'before_update')
def _refuse_payout_log_update(mapper, connection, target):
    raise ValueError("PayoutLog entries are append-only")

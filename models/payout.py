from datetime import datetime
from db.extensions import db

PAYOUT_STATUSES = ('pending', 'scheduled', 'paid')

# current -> statuses an admin may move it to
PAYOUT_TRANSITIONS = {
    'pending': ('scheduled', 'paid'),
    'scheduled': ('paid',),
    'paid': (),
}


class Payout(db.Model):
    __tablename__ = "payouts"
    id = db.Column(db.Integer, primary_key=True)
    vendor_id = db.Column(db.Integer, db.ForeignKey('vendors.id'), nullable=False, index=True)
    order_count = db.Column(db.Integer, nullable=False, default=0)
    gross_amount = db.Column(db.Numeric(12, 2), nullable=False)
    commission_rate = db.Column(db.Numeric(5, 4), nullable=False)
    commission_amount = db.Column(db.Numeric(12, 2), nullable=False)
    payout_amount = db.Column(db.Numeric(12, 2), nullable=False)
    status = db.Column(db.Enum(*PAYOUT_STATUSES, name='payout_status_enum'), nullable=False, default='pending')
    scheduled_at = db.Column(db.DateTime, nullable=True)
    paid_on = db.Column(db.DateTime, nullable=True)
    utr_number = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    logs = db.relationship("PayoutLog", back_populates="payout", order_by="PayoutLog.id")

    def to_dict(self):
        return {
            'id': self.id,
            'vendorId': self.vendor_id,
            'orderCount': self.order_count,
            'grossAmount': float(self.gross_amount),
            'commissionRate': float(self.commission_rate),
            'commissionAmount': float(self.commission_amount),
            'payoutAmount': float(self.payout_amount),
            'status': self.status,
            'scheduledAt': self.scheduled_at.isoformat() if self.scheduled_at else None,
            'paidOn': self.paid_on.isoformat() if self.paid_on else None,
            'utrNumber': self.utr_number,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }

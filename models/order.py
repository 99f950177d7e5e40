from datetime import datetime
from db.extensions import db
from models.orderItem import OrderItem
from services.errors import InvalidTransition, AlreadyRated, ValidationError, EmptyOrder
from services.ledger import to_money

ORDER_STATUSES = ('pending', 'accepted', 'rejected', 'ready', 'delivered')
PAYMENT_METHODS = ('cod', 'mock_online', 'online')
PAYMENT_STATUSES = ('unpaid', 'processing', 'paid', 'failed', 'refunded')
REFUND_STATUSES = ('none', 'pending', 'success', 'failed')

# (from, to) pairs; anything else is rejected
STATUS_TRANSITIONS = frozenset([
    ('pending', 'accepted'),
    ('accepted', 'ready'),
    ('ready', 'delivered'),
    ('pending', 'rejected'),
    ('accepted', 'rejected'),
])

# direction -> (allowed current payment statuses, resulting status)
PAYMENT_TRANSITIONS = {
    'start': (('unpaid', 'failed'), 'processing'),
    'succeed': (('processing',), 'paid'),
    'fail': (('processing',), 'failed'),
    'mark_paid': (('unpaid', 'processing', 'failed'), 'paid'),
    'refund': (('paid',), 'refunded'),
}
CUSTOMER_PAYMENT_DIRECTIONS = frozenset(['start', 'succeed', 'fail'])
VENDOR_PAYMENT_DIRECTIONS = frozenset(['mark_paid', 'refund'])

# Payment statuses under which the order may still be edited or removed
UNSETTLED_PAYMENT_STATUSES = ('unpaid', 'failed')


class Order(db.Model):
    """
    One customer order against one vendor.

    The mutating methods below are the only sanctioned way to change status,
    payment state, rating or line items. Each validates against the current
    state first and raises before touching any field, so a rejected request
    leaves the order exactly as it was loaded.
    """
    __tablename__ = "orders"

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, nullable=False, index=True)
    vendor_id = db.Column(db.Integer, db.ForeignKey('vendors.id'), nullable=False, index=True)

    total_amount = db.Column(db.Numeric(10, 2), nullable=False)
    status = db.Column(db.Enum(*ORDER_STATUSES, name='order_status_enum'), nullable=False, default='pending')
    payment_method = db.Column(db.Enum(*PAYMENT_METHODS, name='payment_method_enum'), nullable=False, default='cod')
    payment_status = db.Column(db.Enum(*PAYMENT_STATUSES, name='payment_status_enum'), nullable=False, default='unpaid')
    paid_at = db.Column(db.DateTime, nullable=True)

    note = db.Column(db.Text, nullable=True)
    address = db.Column(db.Text, nullable=True)

    cancelled_at = db.Column(db.DateTime, nullable=True)
    refund_status = db.Column(db.Enum(*REFUND_STATUSES, name='refund_status_enum'), nullable=False, default='none')

    rating = db.Column(db.Float, nullable=True)
    review = db.Column(db.Text, nullable=True)
    rated_at = db.Column(db.DateTime, nullable=True)
    is_rated = db.Column(db.Boolean, nullable=False, default=False)

    # Optimistic concurrency token, bumped by the ORM on every UPDATE
    version = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    items = db.relationship(
        'OrderItem',
        back_populates='order',
        order_by='OrderItem.position',
        cascade='all, delete-orphan',
    )

    __table_args__ = (
        db.CheckConstraint('total_amount >= 0', name='ck_orders_total_non_negative'),
    )
    __mapper_args__ = {'version_id_col': version}

    @staticmethod
    def build_items(lines):
        """lines: iterable of (menu_item_id, quantity, unit_price)."""
        items = []
        for position, (menu_item_id, quantity, unit_price) in enumerate(lines):
            if int(quantity) < 1:
                raise ValidationError("quantity must be at least 1", menuItemId=menu_item_id)
            price = to_money(unit_price)
            if price < 0:
                raise ValidationError("unit price cannot be negative", menuItemId=menu_item_id)
            items.append(OrderItem(
                menu_item_id=menu_item_id,
                position=position,
                quantity=int(quantity),
                unit_price=price,
                subtotal=to_money(price * int(quantity)),
            ))
        return items

    @classmethod
    def place(cls, customer_id, vendor_id, lines, payment_method='mock_online', note=None, address=None):
        if payment_method not in PAYMENT_METHODS:
            raise ValidationError(f"Unknown payment method '{payment_method}'")
        items = cls.build_items(lines)
        return cls(
            customer_id=customer_id,
            vendor_id=vendor_id,
            items=items,
            total_amount=to_money(sum((i.subtotal for i in items), to_money(0))),
            status='pending',
            payment_method=payment_method,
            payment_status='unpaid',
            refund_status='none',
            is_rated=False,
            note=note,
            address=address,
        )

    # ---- fulfillment ----

    def can_transition_to(self, new_status):
        return (self.status, new_status) in STATUS_TRANSITIONS

    def transition_to(self, new_status):
        if not self.can_transition_to(new_status):
            raise InvalidTransition(
                f"Cannot move order from '{self.status}' to '{new_status}'",
                current=self.status, requested=new_status,
            )
        self.status = new_status

    def cancel(self, now=None):
        if self.status != 'pending':
            raise InvalidTransition(
                "Only pending orders can be cancelled",
                current=self.status, requested='rejected',
            )
        self.status = 'rejected'
        self.cancelled_at = now or datetime.utcnow()
        if self.payment_status == 'paid':
            self.refund_status = 'pending'

    # ---- payment ----

    def apply_payment(self, direction, now=None):
        if direction not in PAYMENT_TRANSITIONS:
            raise InvalidTransition(f"Unknown payment action '{direction}'", requested=direction)
        allowed_from, target = PAYMENT_TRANSITIONS[direction]

        if direction == 'mark_paid' and self.payment_method != 'cod':
            raise InvalidTransition(
                "Only cash-on-delivery orders can be marked paid by the vendor",
                paymentMethod=self.payment_method,
            )
        if direction in CUSTOMER_PAYMENT_DIRECTIONS and self.payment_method == 'cod':
            raise InvalidTransition(
                f"Cannot {direction} an online payment for a cash-on-delivery order",
                paymentMethod=self.payment_method,
            )
        if self.payment_status not in allowed_from:
            raise InvalidTransition(
                f"Cannot {direction} payment while it is '{self.payment_status}'",
                current=self.payment_status, requested=target,
            )

        self.payment_status = target
        if target == 'paid':
            self.paid_at = now or datetime.utcnow()
        elif target == 'refunded':
            self.refund_status = 'success'

    # ---- feedback ----

    def rate(self, rating, review=None, now=None):
        try:
            value = float(rating)
        except (TypeError, ValueError):
            raise ValidationError("rating must be a number between 1 and 5")
        if not 1.0 <= value <= 5.0:
            raise ValidationError("rating must be a number between 1 and 5")
        if self.is_rated:
            raise AlreadyRated("Order has already been rated")
        if self.status != 'delivered':
            raise InvalidTransition(
                "Only delivered orders can be rated",
                current=self.status,
            )
        self.rating = value
        self.review = review
        self.rated_at = now or datetime.utcnow()
        self.is_rated = True

    # ---- line items ----

    def revise_items(self, lines):
        if self.status != 'pending' or self.payment_status not in UNSETTLED_PAYMENT_STATUSES:
            raise InvalidTransition(
                "Items can only be changed on pending, unpaid orders",
                current=self.status, paymentStatus=self.payment_status,
            )
        items = self.build_items(lines)
        if not items:
            raise EmptyOrder("At least one item is required")
        self.items = items
        self.total_amount = to_money(sum((i.subtotal for i in items), to_money(0)))
        # Line changes alone would not touch the orders row or its version
        self.updated_at = datetime.utcnow()

    def is_deletable(self):
        return self.payment_status in UNSETTLED_PAYMENT_STATUSES

    # ---- serialization ----

    def to_dict(self):
        return {
            'id': self.id,
            'customerId': self.customer_id,
            'vendorId': self.vendor_id,
            'items': [item.to_dict() for item in self.items],
            'totalAmount': float(self.total_amount),
            'status': self.status,
            'paymentMethod': self.payment_method,
            'paymentStatus': self.payment_status,
            'paidAt': self.paid_at.isoformat() if self.paid_at else None,
            'refundStatus': self.refund_status,
            'cancelledAt': self.cancelled_at.isoformat() if self.cancelled_at else None,
            'note': self.note,
            'address': self.address,
            'rating': self.rating,
            'review': self.review,
            'ratedAt': self.rated_at.isoformat() if self.rated_at else None,
            'isRated': bool(self.is_rated),
            'version': self.version,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }

    def to_tracking_dict(self):
        return {
            'id': self.id,
            'status': self.status,
            'paymentStatus': self.payment_status,
            'paymentMethod': self.payment_method,
            'totalAmount': float(self.total_amount),
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'paidAt': self.paid_at.isoformat() if self.paid_at else None,
            'vendorId': self.vendor_id,
        }

    def __repr__(self):
        return f"<Order id={self.id} status={self.status} payment={self.payment_status} total={self.total_amount}>"

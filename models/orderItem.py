from db.extensions import db


class OrderItem(db.Model):
    __tablename__ = "order_items"
    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False, index=True)
    menu_item_id = db.Column(db.Integer, db.ForeignKey('menu_items.id'), nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    # Price captured when the order was placed; never re-read from the menu
    unit_price = db.Column(db.Numeric(10, 2), nullable=False)
    subtotal = db.Column(db.Numeric(10, 2), nullable=False)
    order = db.relationship("Order", back_populates="items")

    def to_dict(self):
        return {
            'menuItemId': self.menu_item_id,
            'quantity': self.quantity,
            'unitPrice': float(self.unit_price),
            'subtotal': float(self.subtotal),
        }

from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from app import create_app
from app.config import TestingConfig
from db.extensions import db
from models.menuItem import MenuItem
from models.order import Order
from models.vendor import Vendor
from services.authorization import Actor
from services.schemas import CreateOrderInput, LineItemInput


class RecordingNotifier:
    def __init__(self):
        self.events = []

    def notify_customer(self, customer_id, event, payload):
        self.events.append(('user', customer_id, event, payload))

    def notify_vendor(self, vendor_id, event, payload):
        self.events.append(('vendor', vendor_id, event, payload))

    def broadcast(self, event, payload):
        self.events.append(('public', None, event, payload))

    def names(self):
        return [event for _, _, event, _ in self.events]


class FailingNotifier:
    def notify_customer(self, customer_id, event, payload):
        raise RuntimeError("relay down")

    def notify_vendor(self, vendor_id, event, payload):
        raise RuntimeError("relay down")

    def broadcast(self, event, payload):
        raise RuntimeError("relay down")


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def app(notifier):
    app = create_app(TestingConfig, notifier=notifier)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def order_service(app):
    return app.extensions['marketplace']['orders']


@pytest.fixture
def payout_service(app):
    return app.extensions['marketplace']['payouts']


@pytest.fixture
def vendor_service(app):
    return app.extensions['marketplace']['vendors']


def make_vendor(user_id, name="Spice Route", **fields):
    vendor = Vendor(user_id=user_id, name=name, is_open=fields.pop('is_open', True),
                    is_deleted=fields.pop('is_deleted', False), **fields)
    db.session.add(vendor)
    db.session.commit()
    return vendor


def make_menu_item(vendor, price="100.00", name="Paneer Tikka", **fields):
    item = MenuItem(vendor_id=vendor.id, name=name, price=Decimal(price),
                    is_available=fields.pop('is_available', True), **fields)
    db.session.add(item)
    db.session.commit()
    return item


def make_order(vendor, item, customer_id=1, quantity=1, payment_method='cod', status='pending',
               payment_status='unpaid'):
    """Insert an order directly, bypassing the service (for payout/report fixtures)."""
    order = Order.place(
        customer_id=customer_id,
        vendor_id=vendor.id,
        lines=[(item.id, quantity, item.price)],
        payment_method=payment_method,
    )
    order.status = status
    order.payment_status = payment_status
    db.session.add(order)
    db.session.commit()
    return order


def order_input(vendor, item, quantity=1, payment_method='cod'):
    return CreateOrderInput(
        vendor_id=vendor.id,
        items=[LineItemInput(menu_item_id=item.id, quantity=quantity)],
        payment_method=payment_method,
    )


def timed_out(*args, **kwargs):
    """Stand-in for any query that hits the server's statement timeout."""
    raise OperationalError("SELECT", {}, Exception("canceling statement due to statement timeout"))


@pytest.fixture
def vendor(app):
    return make_vendor(user_id=500)


@pytest.fixture
def other_vendor(app):
    return make_vendor(user_id=600, name="Dosa Corner")


@pytest.fixture
def menu_item(vendor):
    return make_menu_item(vendor)


@pytest.fixture
def customer():
    return Actor(id=1, role='user')


@pytest.fixture
def stranger():
    return Actor(id=2, role='user')


@pytest.fixture
def vendor_actor(vendor):
    return Actor(id=vendor.user_id, role='vendor', vendor_id=vendor.id)


@pytest.fixture
def other_vendor_actor(other_vendor):
    return Actor(id=other_vendor.user_id, role='vendor', vendor_id=other_vendor.id)


@pytest.fixture
def admin():
    return Actor(id=900, role='admin')

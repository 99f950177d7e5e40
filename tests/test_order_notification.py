import pytest
import requests

from conftest import make_vendor, make_menu_item
from db.extensions import mail
from services import order_notification
from services.order_notification import NotificationService


class FakeResponse:
    def __init__(self, status_code=200):
        self.status_code = status_code


class FakeSession:
    def __init__(self, status_code=200, error=None):
        self.calls = []
        self.status_code = status_code
        self.error = error

    def post(self, url, json=None, headers=None, timeout=None):
        self.calls.append({'url': url, 'json': json, 'headers': headers, 'timeout': timeout})
        if self.error:
            raise self.error
        return FakeResponse(self.status_code)


class InlineThread:
    def __init__(self, target, args=(), daemon=None):
        self.target = target
        self.args = args

    def start(self):
        self.target(*self.args)


def test_emit_posts_to_room():
    session = FakeSession()
    notifier = NotificationService(relay_url="http://relay/emit", relay_token="s3cret", timeout=1.5, session=session)
    notifier.notify_customer(3, 'order:status', {'id': 11, 'version': 2, 'status': 'accepted'})

    [call] = session.calls
    assert call['url'] == "http://relay/emit"
    assert call['json'] == {'room': 'user:3', 'event': 'order:status',
                            'payload': {'id': 11, 'version': 2, 'status': 'accepted'}}
    assert call['headers']['Authorization'] == "Bearer s3cret"
    assert call['headers']['X-Idempotency-Key'] == "order:status:11:2:user:3"
    assert call['timeout'] == 1.5


def test_broadcast_room():
    session = FakeSession()
    NotificationService(relay_url="http://relay/emit", session=session).broadcast(
        'vendor:status', {'vendorId': 1, 'isOpen': False},
    )
    assert session.calls[0]['json']['room'] == 'public'
    assert 'X-Idempotency-Key' not in session.calls[0]['headers']


def test_no_relay_configured_is_a_no_op():
    session = FakeSession()
    NotificationService(relay_url=None, session=session).notify_customer(1, 'order:status', {'id': 1})
    assert session.calls == []


@pytest.mark.parametrize("session", [
    FakeSession(error=requests.ConnectionError("refused")),
    FakeSession(error=requests.Timeout("slow")),
    FakeSession(status_code=502),
])
def test_relay_failures_are_swallowed(session):
    notifier = NotificationService(relay_url="http://relay/emit", session=session)
    notifier.notify_customer(1, 'order:status', {'id': 1})
    assert len(session.calls) == 1


def test_new_order_mails_vendor(app, monkeypatch):
    monkeypatch.setattr(order_notification, 'Thread', InlineThread)
    vendor = make_vendor(user_id=42, name="Biryani House", email="owner@biryani.example")
    item = make_menu_item(vendor, price="120.00", name="Hyderabadi Biryani")
    order = {
        'id': 5, 'totalAmount': 240.0, 'paymentMethod': 'cod',
        'items': [{'menuItemId': item.id, 'quantity': 2, 'unitPrice': 120.0, 'subtotal': 240.0}],
    }

    with mail.record_messages() as outbox:
        NotificationService(session=FakeSession()).notify_vendor(vendor.id, 'order:new', order)

    assert len(outbox) == 1
    assert outbox[0].recipients == ["owner@biryani.example"]
    assert outbox[0].subject == "New order #5 - Biryani House"
    assert "Hyderabadi Biryani" in outbox[0].body
    assert "240.00" in outbox[0].html


def test_new_order_mail_skipped_without_vendor_email(app):
    vendor = make_vendor(user_id=43, name="No Inbox")
    assert NotificationService().send_new_order_email(vendor.id, {'id': 1, 'items': [], 'totalAmount': 0.0}) is False

import logging
from threading import Thread

import requests
from flask import current_app
from flask_mail import Message

from db.extensions import db, mail
from models.vendor import Vendor
from models.menuItem import MenuItem

logger = logging.getLogger(__name__)


def send_async_email(app, msg):
    """Send email in a background thread so the request returns immediately"""
    with app.app_context():
        try:
            mail.send(msg)
            app.logger.info(f"Email '{msg.subject}' sent")
        except Exception as e:
            app.logger.error(f"Failed to send email '{msg.subject}': {str(e)}")


class NotificationService:
    """
    Best-effort order/payment notifications.

    Realtime events go to the socket relay over HTTP; the relay fans them out to
    the ``user:<id>`` and ``vendor:<id>`` rooms. A new order additionally mails
    the vendor. Nothing here raises: failures are logged and dropped.
    """

    def __init__(self, relay_url=None, relay_token=None, timeout=2.5, session=None):
        self.relay_url = relay_url
        self.relay_token = relay_token
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config):
        return cls(
            relay_url=config.get('REALTIME_RELAY_URL'),
            relay_token=config.get('REALTIME_RELAY_TOKEN'),
            timeout=config.get('NOTIFY_TIMEOUT_SECONDS', 2.5),
        )

    def notify_customer(self, customer_id, event, payload):
        self._emit(f"user:{customer_id}", event, payload)

    def notify_vendor(self, vendor_id, event, payload):
        self._emit(f"vendor:{vendor_id}", event, payload)
        if event == 'order:new':
            self.send_new_order_email(vendor_id, payload)

    def broadcast(self, event, payload):
        """Events every connected client sees, e.g. a vendor opening or closing."""
        self._emit("public", event, payload)

    def _emit(self, room, event, payload):
        if not self.relay_url:
            logger.debug(f"No realtime relay configured, dropping {event} for {room}")
            return
        headers = {"Content-Type": "application/json"}
        if self.relay_token:
            headers["Authorization"] = f"Bearer {self.relay_token}"
        if isinstance(payload, dict) and payload.get('id') is not None:
            headers["X-Idempotency-Key"] = f"{event}:{payload['id']}:{payload.get('version', '')}:{room}"
        body = {
            "room": room,
            "event": event,
            "payload": payload,
        }
        try:
            response = self.session.post(self.relay_url, json=body, headers=headers, timeout=self.timeout)
            if response.status_code >= 400:
                logger.warning(f"Relay rejected {event} for {room}: HTTP {response.status_code}")
        except requests.RequestException as e:
            logger.warning(f"Realtime notify failed for {event} to {room}: {e}")

    def send_new_order_email(self, vendor_id, order):
        """Mail the vendor a summary of a newly placed order."""
        try:
            vendor = db.session.get(Vendor, vendor_id)
            if not vendor or not vendor.email:
                logger.info(f"Vendor {vendor_id} has no email, skipping new-order mail")
                return False

            names = {}
            for item in order.get('items', []):
                menu_item = db.session.get(MenuItem, item['menuItemId'])
                names[item['menuItemId']] = menu_item.name if menu_item else f"Item #{item['menuItemId']}"

            subject = f"New order #{order['id']} - {vendor.name}"

            rows = ""
            for item in order.get('items', []):
                rows += f"""
                <tr>
                    <td style="border:1px solid #ddd; padding:8px;">{names[item['menuItemId']]}</td>
                    <td style="border:1px solid #ddd; padding:8px; text-align:center;">{item['quantity']}</td>
                    <td style="border:1px solid #ddd; padding:8px; text-align:right;">&#8377;{item['unitPrice']:.2f}</td>
                    <td style="border:1px solid #ddd; padding:8px; text-align:right;">&#8377;{item['subtotal']:.2f}</td>
                </tr>"""

            html_body = f"""
<!DOCTYPE html>
<html>
<head><meta charset="UTF-8"><title>New Order</title></head>
<body style="font-family: Arial, sans-serif; color: #222;">
<div style="max-width: 600px; margin: auto; padding: 20px; border: 1px solid #eee;">
    <h1 style="font-size: 20px;">New order #{order['id']}</h1>
    <p>Hello {vendor.name},</p>
    <p>A customer placed an order. Payment method: <b>{order.get('paymentMethod')}</b>.</p>
    <table style="width:100%; border-collapse:collapse; margin-bottom:15px;">
        <tr>
            <th style="border:1px solid #ddd; padding:8px; background:#f3f3f3;">Item</th>
            <th style="border:1px solid #ddd; padding:8px; background:#f3f3f3;">Qty</th>
            <th style="border:1px solid #ddd; padding:8px; background:#f3f3f3;">Unit Price</th>
            <th style="border:1px solid #ddd; padding:8px; background:#f3f3f3;">Subtotal</th>
        </tr>{rows}
    </table>
    <p style="font-weight:bold;">Total: &#8377;{order['totalAmount']:.2f}</p>
    <p>Please accept or reject the order from your dashboard.</p>
</div>
</body>
</html>
"""
            text_body = f"New order #{order['id']}\n\n" + "".join(
                f"- {names[item['menuItemId']]}: Qty {item['quantity']} x {item['unitPrice']:.2f} = {item['subtotal']:.2f}\n"
                for item in order.get('items', [])
            ) + f"\nTotal: {order['totalAmount']:.2f}\nPayment method: {order.get('paymentMethod')}\n"

            msg = Message(
                subject,
                recipients=[vendor.email],
                body=text_body,
                html=html_body,
            )
            Thread(
                target=send_async_email,
                args=(current_app._get_current_object(), msg),
                daemon=True,
            ).start()
            return True
        except Exception as e:
            current_app.logger.error(f"Failed to queue new-order email for vendor {vendor_id}: {e}")
            return False

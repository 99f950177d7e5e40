# services/order_service.py

"""
Order lifecycle: placement, fulfillment and payment transitions, rating,
cancellation, item revision and cleanup.

Every mutation follows the same shape: load the order fresh, check the actor,
apply the change through the Order methods (which validate before touching
anything), then save with the version that was loaded. Losing a race to
another writer is retried once against fresh state. Notifications go out only
after the commit and can never undo it.
"""

import logging
import time

from models.order import Order
from services import authorization as authz
from services.errors import (
    NotFound, Forbidden, VendorClosed, EmptyOrder, MenuItemNotFound, Conflict, InvalidTransition,
)
from services.idempotency import request_fingerprint

logger = logging.getLogger(__name__)

PAYMENT_EVENTS = {
    'start': 'payment:processing',
    'succeed': 'payment:success',
    'fail': 'payment:failed',
    'mark_paid': 'payment:status',
    'refund': 'payment:status',
}


class OrderService:
    MAX_ATTEMPTS = 2

    def __init__(self, orders, vendors, menu, notifier, idempotency,
                 idempotency_wait_seconds=2.0, poll_interval=0.05):
        self.orders = orders
        self.vendors = vendors
        self.menu = menu
        self.notifier = notifier
        self.idempotency = idempotency
        self.idempotency_wait_seconds = idempotency_wait_seconds
        self.poll_interval = poll_interval

    # ---- placement ----

    def create_order(self, actor, data, idempotency_key=None):
        fingerprint = request_fingerprint(
            'create_order',
            vendor_id=data.vendor_id,
            items=[[item.menu_item_id, item.quantity] for item in data.items],
            payment_method=data.payment_method,
            note=data.note,
            address=data.address,
        )
        return self._idempotent(actor, idempotency_key, fingerprint, lambda: self._create_order(actor, data))

    def _create_order(self, actor, data):
        if not data.items:
            raise EmptyOrder("At least one item is required")

        vendor = self.vendors.get_vendor(data.vendor_id)
        if vendor is None or vendor.is_deleted:
            raise NotFound(f"Vendor {data.vendor_id} not found")
        if not vendor.is_open:
            raise VendorClosed(f"{vendor.name} is not accepting orders right now", vendorId=vendor.id)

        order = Order.place(
            customer_id=actor.id,
            vendor_id=vendor.id,
            lines=self._price_lines(vendor.id, data.items),
            payment_method=data.payment_method,
            note=data.note,
            address=data.address,
        )
        self.orders.add_order(order)
        payload = order.to_dict()
        logger.info(f"Order {order.id} placed by {actor.label} at vendor {vendor.id} for {order.total_amount}")
        self._notify(order.customer_id, order.vendor_id, 'order:new', payload)
        return payload

    def _price_lines(self, vendor_id, items):
        """Capture the current menu price of every requested item."""
        lines = []
        for item in items:
            menu_item = self.menu.get_menu_item(item.menu_item_id)
            if menu_item is None or menu_item.vendor_id != vendor_id or not menu_item.is_available:
                raise MenuItemNotFound(
                    f"Menu item {item.menu_item_id} is not available from vendor {vendor_id}",
                    menuItemId=item.menu_item_id, vendorId=vendor_id,
                )
            lines.append((menu_item.id, item.quantity, menu_item.price))
        return lines

    # ---- fulfillment ----

    def update_status(self, actor, order_id, new_status):
        def authorize(order):
            if not authz.can_transition_fulfillment(actor, order):
                raise Forbidden("Not your order")

        payload = self._transition(order_id, authorize, lambda order: order.transition_to(new_status), 'order:status')
        logger.info(f"Order {order_id} moved to '{new_status}' by {actor.label}")
        return payload

    def cancel_order(self, actor, order_id):
        def authorize(order):
            if actor.id != order.customer_id:
                raise Forbidden("You can only cancel your own order")

        payload = self._transition(order_id, authorize, lambda order: order.cancel(), 'order:status')
        logger.info(f"Order {order_id} cancelled by {actor.label}")
        return payload

    # ---- payment ----

    def start_payment(self, actor, order_id, idempotency_key=None):
        return self._payment(actor, order_id, 'start', idempotency_key)

    def succeed_payment(self, actor, order_id, idempotency_key=None):
        return self._payment(actor, order_id, 'succeed', idempotency_key)

    def fail_payment(self, actor, order_id, idempotency_key=None):
        return self._payment(actor, order_id, 'fail', idempotency_key)

    def mark_paid(self, actor, order_id, idempotency_key=None):
        return self._payment(actor, order_id, 'mark_paid', idempotency_key)

    def refund(self, actor, order_id, idempotency_key=None):
        return self._payment(actor, order_id, 'refund', idempotency_key)

    def _payment(self, actor, order_id, direction, idempotency_key):
        def authorize(order):
            if not authz.can_transition_payment(actor, order, direction):
                raise Forbidden("Not your order")

        def run():
            payload = self._transition(
                order_id, authorize, lambda order: order.apply_payment(direction), PAYMENT_EVENTS[direction],
            )
            logger.info(f"Order {order_id} payment '{direction}' by {actor.label} -> {payload['paymentStatus']}")
            return payload

        fingerprint = request_fingerprint(f'payment:{direction}', order_id=order_id)
        return self._idempotent(actor, idempotency_key, fingerprint, run)

    # ---- feedback ----

    def rate_order(self, actor, order_id, rating, review=None):
        def authorize(order):
            if actor.id != order.customer_id:
                raise Forbidden("You can only rate your own order")

        return self._transition(order_id, authorize, lambda order: order.rate(rating, review), 'order:rated')

    # ---- editing / cleanup ----

    def revise_items(self, actor, order_id, items):
        if not items:
            raise EmptyOrder("At least one item is required")

        def authorize(order):
            if not authz.can_manage_order(actor, order):
                raise Forbidden("Not your order")

        def mutate(order):
            order.revise_items(self._price_lines(order.vendor_id, items))

        payload = self._transition(order_id, authorize, mutate, 'order:updated')
        logger.info(f"Order {order_id} items revised by {actor.label}, total now {payload['totalAmount']}")
        return payload

    def delete_order(self, actor, order_id):
        for attempt in range(1, self.MAX_ATTEMPTS + 1):
            order = self.orders.load_order(order_id)
            if not authz.can_manage_order(actor, order):
                raise Forbidden("Not your order")
            if not order.is_deletable():
                raise InvalidTransition(
                    "Orders cannot be deleted once payment has been taken",
                    paymentStatus=order.payment_status,
                )
            customer_id, vendor_id = order.customer_id, order.vendor_id
            try:
                self.orders.delete_order(order, order.version)
            except Conflict:
                if attempt == self.MAX_ATTEMPTS:
                    raise
                logger.warning(f"Order {order_id} changed during delete, retrying")
                continue
            logger.info(f"Order {order_id} deleted by {actor.label}")
            payload = {'id': order_id, 'deleted': True}
            self._notify(customer_id, vendor_id, 'order:deleted', payload)
            return payload

    # ---- reads ----

    def get_order(self, actor, order_id):
        order = self.orders.load_order(order_id)
        if not authz.can_view_order(actor, order):
            raise Forbidden("Not authorized to view this order")
        return order.to_dict()

    def track_order(self, actor, order_id):
        order = self.orders.load_order(order_id)
        if not authz.can_view_order(actor, order):
            raise Forbidden("Not authorized to track this order")
        return order.to_tracking_dict()

    def list_customer_orders(self, actor, page=0, page_size=20):
        return self._serialize(self.orders.find_orders_by_customer(actor.id, page=page, page_size=page_size))

    def list_vendor_orders(self, actor, vendor_id=None, status=None, page=0, page_size=20):
        vendor_id = vendor_id or actor.vendor_id
        if vendor_id is None or not authz.can_view_vendor_finances(actor, vendor_id):
            raise Forbidden("Not your vendor")
        return self._serialize(
            self.orders.find_orders_by_vendor(vendor_id, status_filter=status, page=page, page_size=page_size)
        )

    # ---- internals ----

    def _transition(self, order_id, authorize, mutate, event):
        for attempt in range(1, self.MAX_ATTEMPTS + 1):
            order = self.orders.load_order(order_id)
            authorize(order)
            expected_version = order.version
            mutate(order)
            try:
                self.orders.save_order(order, expected_version)
            except Conflict:
                if attempt == self.MAX_ATTEMPTS:
                    logger.warning(f"Order {order_id} still conflicting after {attempt} attempts")
                    raise
                logger.warning(f"Order {order_id} changed concurrently, retrying against fresh state")
                continue
            payload = order.to_dict()
            self._notify(order.customer_id, order.vendor_id, event, payload)
            return payload

    def _idempotent(self, actor, key, fingerprint, operation):
        if not key:
            return operation()

        scoped_key = f"{actor.label}:{key}"
        claim = self.idempotency.claim(scoped_key, fingerprint)
        if not claim.is_new:
            return self._replay(scoped_key, fingerprint, claim)

        try:
            response = operation()
        except Exception:
            self.idempotency.release(scoped_key)
            raise
        self.idempotency.store(scoped_key, response)
        return response

    def _replay(self, scoped_key, fingerprint, claim):
        deadline = time.monotonic() + self.idempotency_wait_seconds
        while claim is not None and claim.stored_response is None:
            if time.monotonic() >= deadline:
                raise Conflict("A request with this Idempotency-Key is still being processed")
            time.sleep(self.poll_interval)
            claim = self.idempotency.lookup(scoped_key, fingerprint)
        if claim is None:
            raise Conflict("The original request with this Idempotency-Key did not complete, retry it")
        logger.info(f"Replaying stored response for idempotency key {scoped_key}")
        return claim.stored_response

    def _notify(self, customer_id, vendor_id, event, payload):
        try:
            self.notifier.notify_customer(customer_id, event, payload)
        except Exception as e:
            logger.warning(f"Customer notification '{event}' failed: {e}")
        try:
            self.notifier.notify_vendor(vendor_id, event, payload)
        except Exception as e:
            logger.warning(f"Vendor notification '{event}' failed: {e}")

    @staticmethod
    def _serialize(result):
        if isinstance(result, dict):
            return dict(result, items=[order.to_dict() for order in result['items']])
        return [order.to_dict() for order in result]

# services/authorization.py

"""
Who may do what to an order.

Every check is a plain predicate over an ``Actor`` and the loaded resource: no
queries, no side effects. Callers turn ``False`` into ``Forbidden``.
"""

from dataclasses import dataclass
from typing import Optional

from models.order import CUSTOMER_PAYMENT_DIRECTIONS, VENDOR_PAYMENT_DIRECTIONS

ROLE_CUSTOMER = 'user'
ROLE_VENDOR = 'vendor'
ROLE_ADMIN = 'admin'
ROLES = (ROLE_CUSTOMER, ROLE_VENDOR, ROLE_ADMIN)


@dataclass(frozen=True)
class Actor:
    id: int
    role: str
    vendor_id: Optional[int] = None

    @property
    def label(self):
        return f"{self.role}:{self.id}"


def is_admin(actor):
    return actor.role == ROLE_ADMIN


def owns_vendor(actor, vendor_id):
    return (
        actor.role == ROLE_VENDOR
        and actor.vendor_id is not None
        and actor.vendor_id == vendor_id
    )


def can_transition_fulfillment(actor, order):
    return is_admin(actor) or owns_vendor(actor, order.vendor_id)


def can_transition_payment(actor, order, direction):
    if direction in CUSTOMER_PAYMENT_DIRECTIONS:
        return actor.id == order.customer_id
    if direction in VENDOR_PAYMENT_DIRECTIONS:
        return owns_vendor(actor, order.vendor_id)
    return False


def can_view_order(actor, order):
    return (
        actor.id == order.customer_id
        or owns_vendor(actor, order.vendor_id)
        or is_admin(actor)
    )


def can_manage_order(actor, order):
    """Customer-side edits (item revision, cleanup delete)."""
    return actor.id == order.customer_id or is_admin(actor)


def can_view_vendor_finances(actor, vendor_id):
    return is_admin(actor) or owns_vendor(actor, vendor_id)

# services/repositories.py

import logging
from contextlib import contextmanager

from sqlalchemy.exc import OperationalError, InterfaceError, SQLAlchemyError, TimeoutError as PoolTimeoutError
from sqlalchemy.orm.exc import StaleDataError

from db.extensions import db
from models.order import Order
from models.vendor import Vendor
from models.menuItem import MenuItem
from services.errors import NotFound, Conflict, Transient

logger = logging.getLogger(__name__)

# Failures worth retrying: connection drops, statement/pool timeouts
TRANSIENT_DB_ERRORS = (OperationalError, InterfaceError, PoolTimeoutError)


@contextmanager
def transient_queries(what):
    """Queries inside the block that time out or lose the connection raise Transient."""
    try:
        yield
    except TRANSIENT_DB_ERRORS as e:
        db.session.rollback()
        logger.error(f"Database error while {what}: {e}")
        raise Transient("Database unavailable, please retry") from e


def page_slice(query, page, page_size):
    """page=0 returns everything (legacy clients); otherwise a 1-based page."""
    if page and page > 0:
        total = query.order_by(None).count()
        rows = query.limit(page_size).offset((page - 1) * page_size).all()
        return {
            'items': rows,
            'total': total,
            'page': page,
            'pageSize': page_size,
            'totalPages': (total + page_size - 1) // page_size,
        }
    return query.all()


class SqlOrderRepository:
    """Order persistence on the Flask-SQLAlchemy session."""

    def load_order(self, order_id):
        with transient_queries(f"loading order {order_id}"):
            order = db.session.get(Order, order_id, populate_existing=True)
        if order is None:
            raise NotFound(f"Order {order_id} not found")
        return order

    def add_order(self, order):
        db.session.add(order)
        self._commit(f"creating order for vendor {order.vendor_id}")
        return order

    def save_order(self, order, expected_version):
        """
        Commit changes made to a loaded order.

        The UPDATE is issued with ``WHERE version = <loaded version>``; if another
        writer got there first the row count is zero and this raises Conflict.
        """
        if order.version != expected_version:
            db.session.rollback()
            raise Conflict(f"Order {order.id} changed while it was being updated")
        self._commit(f"saving order {order.id}")
        return order

    def delete_order(self, order, expected_version):
        if order.version != expected_version:
            db.session.rollback()
            raise Conflict(f"Order {order.id} changed while it was being deleted")
        db.session.delete(order)
        self._commit(f"deleting order {order.id}")

    def find_orders_by_vendor(self, vendor_id, status_filter=None, page=0, page_size=20):
        query = Order.query.filter(Order.vendor_id == vendor_id)
        if status_filter:
            if isinstance(status_filter, str):
                query = query.filter(Order.status == status_filter)
            else:
                query = query.filter(Order.status.in_(list(status_filter)))
        with transient_queries(f"listing orders of vendor {vendor_id}"):
            return page_slice(query.order_by(Order.created_at.desc(), Order.id.desc()), page, page_size)

    def find_orders_by_customer(self, customer_id, page=0, page_size=20):
        query = Order.query.filter(Order.customer_id == customer_id)
        with transient_queries(f"listing orders of customer {customer_id}"):
            return page_slice(query.order_by(Order.created_at.desc(), Order.id.desc()), page, page_size)

    def _commit(self, what):
        try:
            db.session.commit()
        except StaleDataError as e:
            db.session.rollback()
            logger.warning(f"Concurrent update detected while {what}")
            raise Conflict("The order was changed by another request") from e
        except TRANSIENT_DB_ERRORS as e:
            db.session.rollback()
            logger.error(f"Database error while {what}: {e}")
            raise Transient("Database unavailable, please retry") from e
        except SQLAlchemyError:
            db.session.rollback()
            raise


class SqlVendorDirectory:

    def get_vendor(self, vendor_id):
        with transient_queries(f"loading vendor {vendor_id}"):
            return db.session.get(Vendor, vendor_id)


class SqlMenuDirectory:

    def get_menu_item(self, menu_item_id):
        with transient_queries(f"loading menu item {menu_item_id}"):
            return db.session.get(MenuItem, menu_item_id)

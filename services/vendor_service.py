# services/vendor_service.py

import logging

from sqlalchemy.exc import SQLAlchemyError

from db.extensions import db
from models.vendor import Vendor
from services import authorization as authz
from services import ledger
from services.errors import NotFound, Forbidden, ValidationError, Transient
from services.repositories import TRANSIENT_DB_ERRORS, transient_queries

logger = logging.getLogger(__name__)


class VendorAdminService:
    """Commission rates and the open/closed switch."""

    def __init__(self, notifier, default_rate=ledger.DEFAULT_PLATFORM_RATE):
        self.notifier = notifier
        self.default_rate = ledger.to_decimal(default_rate)

    def _get_vendor(self, vendor_id):
        with transient_queries(f"loading vendor {vendor_id}"):
            vendor = db.session.get(Vendor, vendor_id)
        if vendor is None or vendor.is_deleted:
            raise NotFound(f"Vendor {vendor_id} not found")
        return vendor

    @staticmethod
    def _require_admin(actor):
        if not authz.is_admin(actor):
            raise Forbidden("Admin access required")

    @staticmethod
    def _fraction(value):
        """Bulk updates take a plain fraction; no percent guessing."""
        if value is None or isinstance(value, bool):
            raise ValidationError("value must be a number between 0 and 1", got=value)
        try:
            rate = ledger.to_decimal(value)
        except ValueError:
            raise ValidationError("value must be a number between 0 and 1", got=value)
        if not rate.is_finite() or rate < 0 or rate > 1:
            raise ValidationError("value must be a number between 0 and 1", got=value)
        return rate

    def set_commission_rate(self, actor, vendor_id, raw):
        """
        Set one vendor's rate from admin input.

        Percentages are accepted (20 means 20%), out-of-range input is clamped
        and a blank value clears the rate so the platform default applies.
        """
        self._require_admin(actor)
        vendor = self._get_vendor(vendor_id)
        try:
            rate = ledger.normalize_commission_rate(raw)
        except ValueError as e:
            raise ValidationError(str(e), got=raw)
        vendor.commission_rate = rate
        self._commit(f"setting commission for vendor {vendor_id}")
        logger.info(f"Vendor {vendor_id} commission set to {rate} by {actor.label}")
        return vendor.to_dict()

    def bulk_set_commission_rate(self, actor, value):
        self._require_admin(actor)
        rate = self._fraction(value)
        with transient_queries("bulk commission update"):
            count = Vendor.query.update({Vendor.commission_rate: rate}, synchronize_session='fetch')
        self._commit("bulk commission update")
        logger.warning(f"Commission rate set to {rate} on {count} vendors by {actor.label}")
        return {'updated': count, 'value': float(rate)}

    def fill_missing_commission_rate(self, actor, value=None):
        self._require_admin(actor)
        rate = self.default_rate if value is None else self._fraction(value)
        with transient_queries("filling missing commission rates"):
            count = (
                Vendor.query
                .filter(Vendor.commission_rate.is_(None))
                .update({Vendor.commission_rate: rate}, synchronize_session='fetch')
            )
        self._commit("filling missing commission rates")
        logger.info(f"Commission rate {rate} filled in on {count} vendors by {actor.label}")
        return {'updated': count, 'value': float(rate)}

    def set_open(self, actor, vendor_id, is_open):
        if not isinstance(is_open, bool):
            raise ValidationError("isOpen must be boolean", got=is_open)
        vendor = self._get_vendor(vendor_id)
        if not (authz.is_admin(actor) or authz.owns_vendor(actor, vendor.id)):
            raise Forbidden("Not your vendor")
        vendor.is_open = is_open
        self._commit(f"toggling vendor {vendor_id}")
        logger.info(f"Vendor {vendor_id} is now {'open' if is_open else 'closed'} ({actor.label})")

        payload = {'vendorId': vendor.id, 'isOpen': vendor.is_open}
        try:
            self.notifier.broadcast('vendor:status', payload)
        except Exception as e:
            logger.warning(f"vendor:status broadcast failed: {e}")
        return vendor.to_dict()

    def _commit(self, what):
        try:
            db.session.commit()
        except TRANSIENT_DB_ERRORS as e:
            db.session.rollback()
            logger.error(f"Database error while {what}: {e}")
            raise Transient("Database unavailable, please retry") from e
        except SQLAlchemyError:
            db.session.rollback()
            raise

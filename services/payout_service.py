# services/payout_service.py

"""
Vendor payouts and admin reporting.

Gross revenue for a payout is the sum of a vendor's delivered orders,
whatever their payment status. Commission is rounded once per vendor on the
aggregate (see services.ledger).
"""

import logging
from collections import defaultdict
from datetime import datetime, timedelta

from pytz import timezone, utc
from sqlalchemy.exc import SQLAlchemyError

from db.extensions import db
from models.order import Order, ORDER_STATUSES
from models.payout import Payout, PAYOUT_TRANSITIONS
from models.payoutLog import PayoutLog
from models.vendor import Vendor
from services import authorization as authz
from services import ledger
from services.errors import NotFound, Forbidden, InvalidTransition, ValidationError, Transient
from services.repositories import TRANSIENT_DB_ERRORS, transient_queries

logger = logging.getLogger(__name__)


class PayoutService:

    def __init__(self, default_rate=ledger.DEFAULT_PLATFORM_RATE, reporting_timezone='Asia/Kolkata'):
        self.default_rate = ledger.to_decimal(default_rate)
        self.tz = timezone(reporting_timezone)

    # ---- summaries ----

    def _summary(self, vendor, amounts):
        rate = ledger.effective_rate(vendor.commission_rate, self.default_rate)
        count, gross, commission, net = ledger.summarize(amounts, rate)
        return {
            'vendorId': vendor.id,
            'vendorName': vendor.name,
            'paidOrders': count,
            'grossPaid': gross,
            'commission': commission,
            'netOwed': net,
            'commissionRate': rate,
        }

    def vendor_payout_summary(self, vendor_id):
        with transient_queries(f"summarizing payouts of vendor {vendor_id}"):
            vendor = db.session.get(Vendor, vendor_id)
            if vendor is None:
                raise NotFound(f"Vendor {vendor_id} not found")
            amounts = [
                amount for (amount,) in db.session.query(Order.total_amount)
                .filter(Order.vendor_id == vendor_id, Order.status == 'delivered')
                .all()
            ]
        return self._summary(vendor, amounts)

    def all_vendor_payout_summaries(self):
        """One summary per vendor, ordered by vendor id, from a single scan of delivered orders."""
        with transient_queries("summarizing payouts of all vendors"):
            rows = (
                db.session.query(Order.vendor_id, Order.total_amount)
                .filter(Order.status == 'delivered')
                .all()
            )
            vendors = Vendor.query.order_by(Vendor.id).all()

        by_vendor = defaultdict(list)
        for vendor_id, amount in rows:
            by_vendor[vendor_id].append(amount)
        return [self._summary(vendor, by_vendor.get(vendor.id, [])) for vendor in vendors]

    # ---- payout records ----

    def _require_admin(self, actor):
        if not authz.is_admin(actor):
            raise Forbidden("Admin access required")

    def _get_payout(self, payout_id):
        with transient_queries(f"loading payout {payout_id}"):
            payout = db.session.get(Payout, payout_id)
        if payout is None:
            raise NotFound(f"Payout {payout_id} not found")
        return payout

    def create_payout(self, actor, vendor_id):
        """Snapshot the vendor's current summary into a pending payout."""
        self._require_admin(actor)
        summary = self.vendor_payout_summary(vendor_id)
        payout = Payout(
            vendor_id=vendor_id,
            order_count=summary['paidOrders'],
            gross_amount=summary['grossPaid'],
            commission_rate=summary['commissionRate'],
            commission_amount=summary['commission'],
            payout_amount=summary['netOwed'],
            status='pending',
        )
        db.session.add(payout)
        self._commit(f"creating payout for vendor {vendor_id}")
        logger.info(f"Payout {payout.id} created for vendor {vendor_id} by {actor.label}: {payout.payout_amount}")
        return payout.to_dict()

    def list_payouts(self, actor, vendor_id=None):
        if vendor_id is None:
            self._require_admin(actor)
        elif not authz.can_view_vendor_finances(actor, vendor_id):
            raise Forbidden("Not your vendor")
        query = Payout.query
        if vendor_id is not None:
            query = query.filter(Payout.vendor_id == vendor_id)
        with transient_queries("listing payouts"):
            payouts = query.order_by(Payout.created_at.desc(), Payout.id.desc()).all()
        return [p.to_dict() for p in payouts]

    def update_payout(self, actor, payout_id, data):
        self._require_admin(actor)
        payout = self._get_payout(payout_id)

        if data.status is not None and data.status != payout.status:
            if data.status not in PAYOUT_TRANSITIONS[payout.status]:
                raise InvalidTransition(
                    f"Cannot move payout from '{payout.status}' to '{data.status}'",
                    current=payout.status, requested=data.status,
                )
            if data.status == 'scheduled':
                payout.scheduled_at = datetime.utcnow()
            elif data.status == 'paid':
                payout.paid_on = self._parse_paid_on(data.paid_on) if data.paid_on else datetime.utcnow()
            payout.status = data.status
        elif data.paid_on is not None:
            if payout.status != 'paid':
                raise InvalidTransition("paidOn can only be set on a paid payout", current=payout.status)
            payout.paid_on = self._parse_paid_on(data.paid_on)

        if data.utr_number is not None:
            payout.utr_number = data.utr_number

        self._commit(f"updating payout {payout_id}")
        logger.info(f"Payout {payout_id} updated by {actor.label}: status={payout.status} utr={payout.utr_number}")
        return payout.to_dict()

    @staticmethod
    def _parse_paid_on(raw):
        try:
            return datetime.fromisoformat(raw)
        except ValueError:
            raise ValidationError("paidOn must be an ISO date or datetime", got=raw)

    def record_payout_action(self, actor, payout_id, action, note=None):
        self._require_admin(actor)
        payout = self._get_payout(payout_id)
        entry = PayoutLog(
            payout_id=payout.id,
            vendor_id=payout.vendor_id,
            action=action,
            admin_user=actor.label,
            note=note,
        )
        db.session.add(entry)
        self._commit(f"logging '{action}' on payout {payout_id}")
        logger.info(f"Payout {payout_id}: '{action}' recorded by {actor.label}")
        return entry.to_dict()

    def list_payout_logs(self, actor, payout_id):
        self._require_admin(actor)
        self._get_payout(payout_id)
        with transient_queries(f"listing logs of payout {payout_id}"):
            logs = (
                PayoutLog.query
                .filter(PayoutLog.payout_id == payout_id)
                .order_by(PayoutLog.created_at.desc(), PayoutLog.id.desc())
                .all()
            )
        return [log.to_dict() for log in logs]

    # ---- reporting ----

    def _utc_boundaries(self):
        """Start of today, this week (Monday) and this month in the reporting zone, as naive UTC."""
        now_local = datetime.now(self.tz)
        today = now_local.replace(hour=0, minute=0, second=0, microsecond=0)
        week = today - timedelta(days=today.weekday())
        month = today.replace(day=1)

        def to_utc(moment):
            # Re-localize so a DST shift between the dates can't skew the offset
            local = self.tz.localize(moment.replace(tzinfo=None))
            return local.astimezone(utc).replace(tzinfo=None)

        return to_utc(today), to_utc(week), to_utc(month)

    def platform_overview(self, actor):
        self._require_admin(actor)
        _, _, month_start = self._utc_boundaries()

        with transient_queries("building the platform overview"):
            total_orders = Order.query.count()
            total_vendors = Vendor.query.filter(Vendor.is_deleted.is_(False)).count()
            all_amounts = [amount for (amount,) in db.session.query(Order.total_amount).all()]
            paid = (
                db.session.query(Order.total_amount, Order.created_at, Vendor.commission_rate)
                .join(Vendor, Vendor.id == Order.vendor_id)
                .filter(Order.payment_status == 'paid', Order.status != 'rejected')
                .all()
            )

        commission = ledger.ZERO
        month_commission = ledger.ZERO
        for amount, created_at, vendor_rate in paid:
            rate = ledger.effective_rate(vendor_rate, self.default_rate)
            exact = ledger.exact_commission(amount, rate)
            commission += exact
            if created_at is not None and created_at >= month_start:
                month_commission += exact

        return {
            'totalVendors': total_vendors,
            'totalOrders': total_orders,
            'totalRevenue': ledger.to_money(sum((ledger.to_decimal(a) for a in all_amounts), ledger.ZERO)),
            'paidOrders': len(paid),
            'totalCommission': ledger.to_money(commission),
            'monthCommission': ledger.to_money(month_commission),
        }

    def vendor_sales_summary(self, actor, vendor_id):
        """Order counts by status and non-rejected revenue for lifetime/today/week/month."""
        if not authz.can_view_vendor_finances(actor, vendor_id):
            raise Forbidden("Not your vendor")
        today_start, week_start, month_start = self._utc_boundaries()

        with transient_queries(f"summarizing sales of vendor {vendor_id}"):
            rows = (
                db.session.query(Order.status, Order.total_amount, Order.created_at)
                .filter(Order.vendor_id == vendor_id)
                .all()
            )
        by_status = {status: 0 for status in ORDER_STATUSES}
        windows = {
            'totals': None,
            'today': today_start,
            'week': week_start,
            'month': month_start,
        }
        buckets = {name: {'orders': 0, 'revenue': ledger.ZERO} for name in windows}

        for status, amount, created_at in rows:
            by_status[status] = by_status.get(status, 0) + 1
            for name, start in windows.items():
                if start is not None and (created_at is None or created_at < start):
                    continue
                buckets[name]['orders'] += 1
                if status != 'rejected':
                    buckets[name]['revenue'] += ledger.to_decimal(amount)

        for bucket in buckets.values():
            bucket['revenue'] = ledger.to_money(bucket['revenue'])

        return dict(vendorId=vendor_id, byStatus=by_status, **buckets)

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

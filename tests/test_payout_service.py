from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy.orm import Query, Session

from conftest import make_vendor, make_menu_item, make_order, timed_out
from db.extensions import db
from models.payoutLog import PayoutLog
from services.errors import Forbidden, InvalidTransition, NotFound, Transient, ValidationError
from services.schemas import PayoutUpdateInput


def test_only_delivered_orders_count(payout_service, vendor, menu_item):
    make_order(vendor, menu_item, quantity=2, status='delivered', payment_status='paid')
    # COD delivered before the cash was marked: still owed to the vendor
    make_order(vendor, menu_item, quantity=1, status='delivered', payment_status='unpaid')
    make_order(vendor, menu_item, quantity=5, status='ready', payment_status='paid')
    make_order(vendor, menu_item, quantity=5, status='rejected')

    summary = payout_service.vendor_payout_summary(vendor.id)
    assert summary == {
        'vendorId': vendor.id,
        'vendorName': vendor.name,
        'paidOrders': 2,
        'grossPaid': Decimal('300.00'),
        'commission': Decimal('45.00'),
        'netOwed': Decimal('255.00'),
        'commissionRate': Decimal('0.15'),
    }


def test_vendor_rate_overrides_default(payout_service, app):
    vendor = make_vendor(user_id=501, name="Cheap Eats", commission_rate=Decimal('0.10'))
    item = make_menu_item(vendor, price="33.33")
    for _ in range(3):
        make_order(vendor, item, status='delivered')

    summary = payout_service.vendor_payout_summary(vendor.id)
    assert summary['grossPaid'] == Decimal('99.99')
    assert summary['commission'] == Decimal('10.00')
    assert summary['netOwed'] == Decimal('89.99')


def test_null_rate_uses_platform_default(payout_service, vendor, menu_item):
    vendor.commission_rate = None
    db.session.commit()
    make_order(vendor, menu_item, status='delivered')
    summary = payout_service.vendor_payout_summary(vendor.id)
    assert summary['commissionRate'] == Decimal('0.15')
    assert summary['commission'] == Decimal('15.00')


def test_unknown_vendor_summary(payout_service, app):
    with pytest.raises(NotFound):
        payout_service.vendor_payout_summary(4242)


def test_all_vendor_summaries_agree_with_single_vendor(payout_service, vendor, other_vendor, menu_item):
    dosa = make_menu_item(other_vendor, price="80.25", name="Masala Dosa")
    idle = make_vendor(user_id=777, name="No Orders Yet")
    make_order(vendor, menu_item, quantity=2, status='delivered')
    make_order(other_vendor, dosa, quantity=3, status='delivered')
    make_order(other_vendor, dosa, quantity=1, status='accepted')

    summaries = payout_service.all_vendor_payout_summaries()
    assert [s['vendorId'] for s in summaries] == sorted([vendor.id, other_vendor.id, idle.id])
    for summary in summaries:
        assert summary == payout_service.vendor_payout_summary(summary['vendorId'])

    total_gross = sum(s['grossPaid'] for s in summaries)
    assert total_gross == Decimal('200.00') + Decimal('240.75')
    assert summaries[-1]['paidOrders'] == 0


def test_create_payout_snapshots_summary(payout_service, vendor, menu_item, admin):
    make_order(vendor, menu_item, quantity=2, status='delivered')
    payout = payout_service.create_payout(admin, vendor.id)
    assert payout['status'] == 'pending'
    assert (payout['orderCount'], payout['grossAmount'], payout['commissionAmount'], payout['payoutAmount']) == (
        1, 200.0, 30.0, 170.0,
    )

    # A later delivery doesn't change the snapshot
    make_order(vendor, menu_item, status='delivered')
    assert payout_service.list_payouts(admin, vendor_id=vendor.id)[0]['grossAmount'] == 200.0


def test_payout_operations_are_admin_only(payout_service, vendor, vendor_actor, customer):
    for actor in (vendor_actor, customer):
        with pytest.raises(Forbidden):
            payout_service.create_payout(actor, vendor.id)
        with pytest.raises(Forbidden):
            payout_service.platform_overview(actor)
        with pytest.raises(Forbidden):
            payout_service.list_payouts(actor)


def test_vendor_sees_own_payout_records(payout_service, vendor, vendor_actor, other_vendor_actor, admin):
    payout_service.create_payout(admin, vendor.id)
    assert len(payout_service.list_payouts(vendor_actor, vendor_id=vendor.id)) == 1
    with pytest.raises(Forbidden):
        payout_service.list_payouts(other_vendor_actor, vendor_id=vendor.id)


def test_payout_status_flow(payout_service, vendor, admin):
    payout = payout_service.create_payout(admin, vendor.id)

    scheduled = payout_service.update_payout(admin, payout['id'], PayoutUpdateInput(status='scheduled'))
    assert scheduled['status'] == 'scheduled'
    assert scheduled['scheduledAt'] is not None

    paid = payout_service.update_payout(
        admin, payout['id'], PayoutUpdateInput(status='paid', paid_on='2025-10-01', utr_number='UTR123'),
    )
    assert paid['status'] == 'paid'
    assert paid['paidOn'] == '2025-10-01T00:00:00'
    assert paid['utrNumber'] == 'UTR123'

    with pytest.raises(InvalidTransition):
        payout_service.update_payout(admin, payout['id'], PayoutUpdateInput(status='scheduled'))


def test_payout_paid_defaults_paid_on_to_now(payout_service, vendor, admin):
    payout = payout_service.create_payout(admin, vendor.id)
    paid = payout_service.update_payout(admin, payout['id'], PayoutUpdateInput(status='paid'))
    assert paid['paidOn'] is not None


def test_payout_bad_paid_on(payout_service, vendor, admin):
    payout = payout_service.create_payout(admin, vendor.id)
    with pytest.raises(ValidationError):
        payout_service.update_payout(admin, payout['id'], PayoutUpdateInput(status='paid', paid_on='yesterday'))


def test_update_missing_payout(payout_service, admin, app):
    with pytest.raises(NotFound):
        payout_service.update_payout(admin, 999, PayoutUpdateInput(status='paid'))


def test_payout_log_is_append_only(payout_service, vendor, admin):
    payout = payout_service.create_payout(admin, vendor.id)
    payout_service.record_payout_action(admin, payout['id'], 'scheduled', "batch 42")
    payout_service.record_payout_action(admin, payout['id'], 'note', "bank holiday, pushed to Monday")

    logs = payout_service.list_payout_logs(admin, payout['id'])
    assert [log['action'] for log in logs] == ['note', 'scheduled']
    assert logs[0]['adminUser'] == admin.label

    entry = db.session.get(PayoutLog, logs[-1]['id'])
    entry.note = "rewritten history"
    with pytest.raises(ValueError):
        db.session.commit()
    db.session.rollback()
    assert db.session.get(PayoutLog, logs[-1]['id']).note == "batch 42"


def test_logging_requires_admin(payout_service, vendor, admin, vendor_actor):
    payout = payout_service.create_payout(admin, vendor.id)
    with pytest.raises(Forbidden):
        payout_service.record_payout_action(vendor_actor, payout['id'], 'note', "hi")
    with pytest.raises(Forbidden):
        payout_service.list_payout_logs(vendor_actor, payout['id'])


def test_platform_overview(payout_service, vendor, other_vendor, menu_item, admin):
    dosa = make_menu_item(other_vendor, price="50.00", name="Masala Dosa")
    make_order(vendor, menu_item, quantity=2, status='delivered', payment_status='paid')
    make_order(other_vendor, dosa, quantity=1, status='accepted', payment_status='paid')
    make_order(other_vendor, dosa, quantity=4, status='rejected', payment_status='paid')
    make_order(vendor, menu_item, quantity=1, status='pending', payment_status='unpaid')

    overview = payout_service.platform_overview(admin)
    assert overview['totalOrders'] == 4
    assert overview['totalVendors'] == 2
    assert overview['totalRevenue'] == Decimal('550.00')
    assert overview['paidOrders'] == 2
    assert overview['totalCommission'] == Decimal('37.50')
    assert overview['monthCommission'] == Decimal('37.50')


def test_vendor_sales_summary(payout_service, vendor, menu_item, vendor_actor, other_vendor_actor):
    make_order(vendor, menu_item, quantity=2, status='delivered')
    make_order(vendor, menu_item, quantity=1, status='pending')
    make_order(vendor, menu_item, quantity=3, status='rejected')
    old = make_order(vendor, menu_item, quantity=1, status='delivered')
    old.created_at = datetime.utcnow() - timedelta(days=400)
    db.session.commit()

    summary = payout_service.vendor_sales_summary(vendor_actor, vendor.id)
    assert summary['byStatus'] == {'pending': 1, 'accepted': 0, 'rejected': 1, 'ready': 0, 'delivered': 2}
    assert summary['totals'] == {'orders': 4, 'revenue': Decimal('400.00')}
    assert summary['today'] == {'orders': 3, 'revenue': Decimal('300.00')}
    assert summary['month']['orders'] == 3

    with pytest.raises(Forbidden):
        payout_service.vendor_sales_summary(other_vendor_actor, vendor.id)


def test_summary_timeouts_are_transient(payout_service, vendor, menu_item, admin, monkeypatch):
    make_order(vendor, menu_item, status='delivered')
    vendor_id = vendor.id

    monkeypatch.setattr(Query, "all", timed_out)
    with pytest.raises(Transient):
        payout_service.all_vendor_payout_summaries()
    with pytest.raises(Transient):
        payout_service.platform_overview(admin)
    monkeypatch.undo()

    monkeypatch.setattr(Session, "get", timed_out)
    with pytest.raises(Transient):
        payout_service.vendor_payout_summary(vendor_id)
    monkeypatch.undo()

    assert payout_service.vendor_payout_summary(vendor_id)['paidOrders'] == 1

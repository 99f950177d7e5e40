from flask import Blueprint, jsonify, current_app

from services.utils import current_actor, idempotency_key

payment_bp = Blueprint('payment', __name__)


def _orders():
    return current_app.extensions['marketplace']['orders']


# Customer side (online / mock_online orders)

@payment_bp.route('/payments/<int:order_id>/start', methods=['POST'])
def start_payment(order_id):
    order = _orders().start_payment(current_actor(), order_id, idempotency_key=idempotency_key())
    return jsonify(order), 200


@payment_bp.route('/payments/<int:order_id>/succeed', methods=['POST'])
def succeed_payment(order_id):
    order = _orders().succeed_payment(current_actor(), order_id, idempotency_key=idempotency_key())
    return jsonify(order), 200


@payment_bp.route('/payments/<int:order_id>/fail', methods=['POST'])
def fail_payment(order_id):
    order = _orders().fail_payment(current_actor(), order_id, idempotency_key=idempotency_key())
    return jsonify(order), 200


# Vendor side

@payment_bp.route('/payments/<int:order_id>/mark-paid', methods=['PATCH'])
def mark_paid(order_id):
    order = _orders().mark_paid(current_actor(), order_id, idempotency_key=idempotency_key())
    return jsonify(order), 200


@payment_bp.route('/payments/<int:order_id>/refund', methods=['PATCH'])
def refund(order_id):
    order = _orders().refund(current_actor(), order_id, idempotency_key=idempotency_key())
    return jsonify(order), 200

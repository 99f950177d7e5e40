from flask import Blueprint, request, jsonify, current_app

from services.schemas import CreateOrderInput, StatusUpdateInput, RatingInput, parse_items
from services.errors import ValidationError, Forbidden
from services.utils import current_actor, idempotency_key, parse_page_params, money_json

order_bp = Blueprint('order', __name__)


def _orders():
    return current_app.extensions['marketplace']['orders']


@order_bp.route('/orders', methods=['POST'])
def place_order():
    actor = current_actor()
    data = CreateOrderInput.from_json(request.get_json(silent=True))
    order = _orders().create_order(actor, data, idempotency_key=idempotency_key())
    return jsonify(order), 201


@order_bp.route('/orders/my', methods=['GET'])
def my_orders():
    actor = current_actor()
    page, page_size = parse_page_params()
    return jsonify(_orders().list_customer_orders(actor, page=page, page_size=page_size)), 200


# keep before /orders/<int:order_id>
@order_bp.route('/orders/vendor', methods=['GET'])
def vendor_orders():
    actor = current_actor()
    page, page_size = parse_page_params()
    vendor_id = request.args.get('vendorId', type=int)
    status = request.args.get('status') or None
    result = _orders().list_vendor_orders(
        actor, vendor_id=vendor_id, status=status, page=page, page_size=page_size,
    )
    return jsonify(result), 200


@order_bp.route('/orders/vendor/summary', methods=['GET'])
def vendor_summary():
    actor = current_actor()
    vendor_id = request.args.get('vendorId', type=int) or actor.vendor_id
    if vendor_id is None:
        raise Forbidden("Vendor profile not found for this user")
    summary = current_app.extensions['marketplace']['payouts'].vendor_sales_summary(actor, vendor_id)
    return jsonify(money_json(summary)), 200


@order_bp.route('/orders/<int:order_id>', methods=['GET'])
def get_order(order_id):
    return jsonify(_orders().get_order(current_actor(), order_id)), 200


@order_bp.route('/orders/<int:order_id>/track', methods=['GET'])
def track_order(order_id):
    return jsonify(_orders().track_order(current_actor(), order_id)), 200


@order_bp.route('/orders/<int:order_id>/status', methods=['PATCH', 'PUT'])
def update_status(order_id):
    actor = current_actor()
    data = StatusUpdateInput.from_json(request.get_json(silent=True))
    return jsonify(_orders().update_status(actor, order_id, data.status)), 200


@order_bp.route('/orders/<int:order_id>/cancel', methods=['PATCH'])
def cancel_order(order_id):
    return jsonify(_orders().cancel_order(current_actor(), order_id)), 200


@order_bp.route('/orders/<int:order_id>/items', methods=['PUT'])
def revise_items(order_id):
    actor = current_actor()
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    items = parse_items(body.get('items'))
    return jsonify(_orders().revise_items(actor, order_id, items)), 200


@order_bp.route('/orders/<int:order_id>/rate', methods=['POST'])
def rate_order(order_id):
    actor = current_actor()
    data = RatingInput.from_json(request.get_json(silent=True))
    return jsonify(_orders().rate_order(actor, order_id, data.rating, data.review)), 200


@order_bp.route('/orders/<int:order_id>', methods=['DELETE'])
def delete_order(order_id):
    return jsonify(_orders().delete_order(current_actor(), order_id)), 200

from flask import Blueprint, request, jsonify, current_app

from services import authorization as authz
from services.errors import Forbidden, ValidationError
from services.schemas import PayoutUpdateInput, PayoutActionInput
from services.utils import current_actor, validate_json, money_json

payout_bp = Blueprint('payout', __name__)


def _payouts():
    return current_app.extensions['marketplace']['payouts']


@payout_bp.route('/vendors/<int:vendor_id>/payouts', methods=['GET'])
def vendor_payout_summary(vendor_id):
    actor = current_actor()
    if not authz.can_view_vendor_finances(actor, vendor_id):
        raise Forbidden("Not your vendor")
    return jsonify(money_json(_payouts().vendor_payout_summary(vendor_id))), 200


@payout_bp.route('/vendor/payouts', methods=['GET'])
def my_payout_summary():
    actor = current_actor()
    if actor.role != authz.ROLE_VENDOR or actor.vendor_id is None:
        raise Forbidden("Vendor profile not found for this user")
    return jsonify(money_json(_payouts().vendor_payout_summary(actor.vendor_id))), 200


@payout_bp.route('/vendors/<int:vendor_id>/payout-records', methods=['GET'])
def vendor_payout_records(vendor_id):
    return jsonify(_payouts().list_payouts(current_actor(), vendor_id=vendor_id)), 200


@payout_bp.route('/admin/payouts/summary', methods=['GET'])
def all_payout_summaries():
    actor = current_actor()
    if not authz.is_admin(actor):
        raise Forbidden("Admin access required")
    return jsonify(money_json(_payouts().all_vendor_payout_summaries())), 200


@payout_bp.route('/admin/payouts', methods=['GET'])
def list_payouts():
    vendor_id = request.args.get('vendorId', type=int)
    return jsonify(_payouts().list_payouts(current_actor(), vendor_id=vendor_id)), 200


@payout_bp.route('/admin/payouts', methods=['POST'])
def create_payout():
    actor = current_actor()
    data = request.get_json(silent=True) or {}
    validate_json(data, ['vendorId'])
    try:
        vendor_id = int(data['vendorId'])
    except (TypeError, ValueError):
        raise ValidationError("vendorId must be an integer", got=data['vendorId'])
    return jsonify(_payouts().create_payout(actor, vendor_id)), 201


@payout_bp.route('/admin/payouts/<int:payout_id>', methods=['PATCH'])
def update_payout(payout_id):
    actor = current_actor()
    data = PayoutUpdateInput.from_json(request.get_json(silent=True))
    return jsonify(_payouts().update_payout(actor, payout_id, data)), 200


@payout_bp.route('/admin/payouts/<int:payout_id>/logs', methods=['POST'])
def record_payout_action(payout_id):
    actor = current_actor()
    data = PayoutActionInput.from_json(request.get_json(silent=True))
    return jsonify(_payouts().record_payout_action(actor, payout_id, data.action, data.note)), 201


@payout_bp.route('/admin/payouts/<int:payout_id>/logs', methods=['GET'])
def list_payout_logs(payout_id):
    return jsonify(_payouts().list_payout_logs(current_actor(), payout_id)), 200


@payout_bp.route('/admin/overview', methods=['GET'])
def platform_overview():
    return jsonify(money_json(_payouts().platform_overview(current_actor()))), 200

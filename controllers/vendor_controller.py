from flask import Blueprint, request, jsonify, current_app

from services.utils import current_actor, validate_json

vendor_bp = Blueprint('vendor', __name__)


def _vendors():
    return current_app.extensions['marketplace']['vendors']


@vendor_bp.route('/vendors/<int:vendor_id>/open', methods=['PATCH'])
def toggle_open(vendor_id):
    actor = current_actor()
    data = request.get_json(silent=True) or {}
    validate_json(data, ['isOpen'])
    return jsonify(_vendors().set_open(actor, vendor_id, data['isOpen'])), 200


# keep the bulk routes before /admin/vendors/<int:vendor_id>/commission

@vendor_bp.route('/admin/vendors/commission-bulk', methods=['PATCH'])
def bulk_commission():
    actor = current_actor()
    data = request.get_json(silent=True) or {}
    validate_json(data, ['value'])
    result = _vendors().bulk_set_commission_rate(actor, data['value'])
    return jsonify(dict(result, message=f"Updated commissionRate for {result['updated']} vendors")), 200


@vendor_bp.route('/admin/vendors/commission-missing', methods=['PATCH'])
def fill_missing_commission():
    actor = current_actor()
    data = request.get_json(silent=True) or {}
    result = _vendors().fill_missing_commission_rate(actor, data.get('value'))
    return jsonify(dict(result, message=f"Set commissionRate for {result['updated']} vendors that were null")), 200


@vendor_bp.route('/admin/vendors/<int:vendor_id>/commission', methods=['PATCH'])
def set_commission(vendor_id):
    actor = current_actor()
    data = request.get_json(silent=True) or {}
    validate_json(data, ['commissionRate'])
    return jsonify(_vendors().set_commission_rate(actor, vendor_id, data['commissionRate'])), 200

# services/utils.py

from decimal import Decimal

from flask import request, current_app

from services.authorization import Actor, ROLES
from services.errors import Unauthenticated, ValidationError

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def _header_int(name):
    raw = request.headers.get(name)
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw)
    except ValueError:
        raise Unauthenticated(f"{name} must be an integer")


def current_actor():
    """
    Build the Actor from the gateway headers.

    The auth gateway in front of this service verifies the token and forwards
    X-User-Id / X-User-Role (and X-Vendor-Id for vendor accounts).
    """
    user_id = _header_int('X-User-Id')
    role = (request.headers.get('X-User-Role') or '').strip().lower()
    if user_id is None or not role:
        raise Unauthenticated("Missing user identity")
    if role not in ROLES:
        raise Unauthenticated(f"Unknown role '{role}'")
    actor = Actor(id=user_id, role=role, vendor_id=_header_int('X-Vendor-Id'))
    current_app.logger.debug(f"Request actor: {actor}")
    return actor


def idempotency_key():
    key = (request.headers.get('Idempotency-Key') or '').strip()
    if len(key) > 200:
        raise ValidationError("Idempotency-Key is too long (max 200 characters)")
    return key or None


def parse_page_params(args=None):
    """page=0 (the default) means no pagination; pageSize is clamped to 1..100."""
    args = request.args if args is None else args
    try:
        page = int(args.get('page', 0))
        page_size = int(args.get('pageSize', DEFAULT_PAGE_SIZE))
    except (TypeError, ValueError):
        raise ValidationError("page and pageSize must be integers")
    page = max(page, 0)
    page_size = min(max(page_size, 1), MAX_PAGE_SIZE)
    return page, page_size


def validate_json(data, required_fields):
    """Validate the JSON data for required fields."""
    missing_fields = [field for field in required_fields if field not in (data or {})]
    if missing_fields:
        raise ValidationError(f"Missing fields: {', '.join(missing_fields)}", missing=missing_fields)


def money_json(value):
    """Decimals inside service results go out as plain JSON numbers."""
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, dict):
        return {k: money_json(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [money_json(v) for v in value]
    return value

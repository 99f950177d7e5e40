# services/schemas.py

"""Typed request inputs. Controllers build these; services never see raw JSON."""

from dataclasses import dataclass, field
from typing import List, Optional

from models.order import ORDER_STATUSES, PAYMENT_METHODS
from models.payout import PAYOUT_STATUSES
from models.payoutLog import PAYOUT_LOG_ACTIONS
from services.errors import ValidationError


def _int(value, name, minimum=None):
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer", got=value)
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer", got=value)
    if isinstance(value, float) and value != number:
        raise ValidationError(f"{name} must be an integer", got=value)
    if minimum is not None and number < minimum:
        raise ValidationError(f"{name} must be at least {minimum}", got=value)
    return number


def _text(value, name, max_length=2000):
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be a string")
    value = value.strip()
    if len(value) > max_length:
        raise ValidationError(f"{name} is too long (max {max_length} characters)")
    return value or None


def _body(data):
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


@dataclass(frozen=True)
class LineItemInput:
    menu_item_id: int
    quantity: int

    @classmethod
    def from_json(cls, data):
        if not isinstance(data, dict):
            raise ValidationError("Each item must be an object with menuItemId and quantity", got=data)
        menu_item_id = data.get('menuItemId', data.get('MenuItemId'))
        return cls(
            menu_item_id=_int(menu_item_id, 'menuItemId', minimum=1),
            quantity=_int(data.get('quantity', 1), 'quantity', minimum=1),
        )


def parse_items(raw):
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError("items must be a list")
    return [LineItemInput.from_json(item) for item in raw]


@dataclass(frozen=True)
class CreateOrderInput:
    vendor_id: int
    items: List[LineItemInput] = field(default_factory=list)
    payment_method: str = 'mock_online'
    note: Optional[str] = None
    address: Optional[str] = None

    @classmethod
    def from_json(cls, data):
        data = _body(data)
        vendor_id = data.get('vendorId', data.get('VendorId'))
        if vendor_id is None:
            raise ValidationError("vendorId is required")
        payment_method = data.get('paymentMethod', 'mock_online')
        if payment_method not in PAYMENT_METHODS:
            raise ValidationError(
                f"paymentMethod must be one of {', '.join(PAYMENT_METHODS)}",
                got=payment_method,
            )
        return cls(
            vendor_id=_int(vendor_id, 'vendorId', minimum=1),
            items=parse_items(data.get('items')),
            payment_method=payment_method,
            note=_text(data.get('note'), 'note'),
            address=_text(data.get('address'), 'address'),
        )


@dataclass(frozen=True)
class StatusUpdateInput:
    status: str

    @classmethod
    def from_json(cls, data):
        status = _body(data).get('status')
        if status not in ORDER_STATUSES:
            raise ValidationError(f"status must be one of {', '.join(ORDER_STATUSES)}", got=status)
        return cls(status=status)


@dataclass(frozen=True)
class RatingInput:
    rating: float
    review: Optional[str] = None

    @classmethod
    def from_json(cls, data):
        data = _body(data)
        raw = data.get('rating')
        if isinstance(raw, bool) or raw is None:
            raise ValidationError("rating is required and must be a number between 1 and 5")
        try:
            rating = float(raw)
        except (TypeError, ValueError):
            raise ValidationError("rating must be a number between 1 and 5", got=raw)
        if not 1.0 <= rating <= 5.0:
            raise ValidationError("rating must be a number between 1 and 5", got=raw)
        return cls(rating=rating, review=_text(data.get('review'), 'review'))


@dataclass(frozen=True)
class PayoutUpdateInput:
    status: Optional[str] = None
    paid_on: Optional[str] = None
    utr_number: Optional[str] = None

    @classmethod
    def from_json(cls, data):
        data = _body(data)
        status = data.get('status')
        if status is not None and status not in PAYOUT_STATUSES:
            raise ValidationError(f"status must be one of {', '.join(PAYOUT_STATUSES)}", got=status)
        return cls(
            status=status,
            paid_on=_text(data.get('paidOn'), 'paidOn', max_length=40),
            utr_number=_text(data.get('utrNumber'), 'utrNumber', max_length=64),
        )


@dataclass(frozen=True)
class PayoutActionInput:
    action: str
    note: Optional[str] = None

    @classmethod
    def from_json(cls, data):
        data = _body(data)
        action = data.get('action')
        if action not in PAYOUT_LOG_ACTIONS:
            raise ValidationError(f"action must be one of {', '.join(PAYOUT_LOG_ACTIONS)}", got=action)
        return cls(action=action, note=_text(data.get('note'), 'note'))

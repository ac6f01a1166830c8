# Overview: Service-layer operations for customer phones; encapsulates business logic and database work.

"""
Customer Phone Service

Thin layer over phone_coordinator: normalizes numbers, rejects duplicates
per customer and hands every mutation to the coordinator so the main-phone
invariant holds. Nothing here commits.
"""

from __future__ import annotations

import re

from ..extensions import db
from ..models import Customer, CustomerPhone
from ..validation import ConflictError, NotFoundError, ValidationError
from .main_flag_service import phone_coordinator


MAX_PHONE_LENGTH = 20
MAX_LABEL_LENGTH = 50


def normalize_phone(value) -> str:
    """Keep digits and '+' only: "(090) 123-4567" -> "0901234567"."""
    if not isinstance(value, str):
        raise ValidationError("phone_number must be a string")
    cleaned = re.sub(r"[^\d+]", "", value)
    if not cleaned:
        raise ValidationError("phone_number is required")
    if len(cleaned) > MAX_PHONE_LENGTH:
        raise ValidationError(f"phone_number exceeds max length {MAX_PHONE_LENGTH}")
    return cleaned


def _normalize_label(value) -> str | None:
    if value is None:
        return None
    label = str(value).strip()
    if len(label) > MAX_LABEL_LENGTH:
        raise ValidationError(f"label exceeds max length {MAX_LABEL_LENGTH}")
    return label or None


def _require_customer(customer_id: int) -> Customer:
    customer = db.session.query(Customer).filter_by(id=customer_id).first()
    if customer is None:
        raise NotFoundError("Customer not found")
    return customer


def _ensure_number_free(customer_id: int, phone_number: str, exclude_id: int | None = None) -> None:
    q = db.session.query(CustomerPhone).filter(
        CustomerPhone.customer_id == customer_id,
        CustomerPhone.phone_number == phone_number,
    )
    if exclude_id is not None:
        q = q.filter(CustomerPhone.id != exclude_id)
    if q.first() is not None:
        raise ConflictError(f"Phone number {phone_number} already exists for this customer")


def list_customer_phones(customer_id: int) -> list[CustomerPhone]:
    """Phones of a customer, main phone first, then oldest first."""
    _require_customer(customer_id)
    return (
        db.session.query(CustomerPhone)
        .filter(CustomerPhone.customer_id == customer_id)
        .order_by(CustomerPhone.is_main.desc(), CustomerPhone.created_at.asc(), CustomerPhone.id.asc())
        .all()
    )


def get_main_phone(customer_id: int) -> CustomerPhone | None:
    _require_customer(customer_id)
    return phone_coordinator.flagged_item(customer_id)


def add_customer_phone(customer_id: int, phone_number, *, label=None, is_main: bool = False) -> CustomerPhone:
    """
    Add a phone. The customer's first phone always becomes main.

    Raises:
        OwnerNotFoundError: Customer does not exist
        ValidationError: Empty / malformed number
        ConflictError: Number already on file for this customer
    """
    number = normalize_phone(phone_number)
    label = _normalize_label(label)
    if db.session.query(Customer.id).filter(Customer.id == customer_id).scalar() is not None:
        _ensure_number_free(customer_id, number)

    phone = CustomerPhone(phone_number=number, label=label)
    return phone_coordinator.add(customer_id, phone, requested_flag=bool(is_main))


def update_customer_phone(customer_id: int, phone_id: int, payload: dict) -> CustomerPhone:
    """
    Update number / label / is_main of one phone.

    is_main=False on the main phone hands main to the oldest other phone and
    is refused when it is the customer's only phone.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    allowed = {"phone_number", "label", "is_main"}
    for key in payload:
        if key not in allowed:
            raise ValidationError(f"Field not allowed: {key}")

    changes: dict = {}
    if "phone_number" in payload:
        changes["phone_number"] = normalize_phone(payload["phone_number"])
        _ensure_number_free(customer_id, changes["phone_number"], exclude_id=phone_id)
    if "label" in payload:
        changes["label"] = _normalize_label(payload["label"])

    requested_flag = None
    if "is_main" in payload:
        if not isinstance(payload["is_main"], bool):
            raise ValidationError("is_main must be a boolean")
        requested_flag = payload["is_main"]

    return phone_coordinator.update(phone_id, changes, requested_flag, owner_id=customer_id)


def set_main_phone(customer_id: int, phone_id: int) -> CustomerPhone:
    return phone_coordinator.set_flag(customer_id, phone_id)


def delete_customer_phone(customer_id: int, phone_id: int) -> None:
    """Delete a phone; the only phone of a customer cannot be deleted."""
    phone_coordinator.remove(phone_id, owner_id=customer_id)

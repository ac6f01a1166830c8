# Overview: Service-layer operations for customers; encapsulates business logic and database work.

from __future__ import annotations

from ..extensions import db
from ..models import Customer
from ..validation import ConflictError, NotFoundError, ValidationError
from .phone_service import add_customer_phone
from .pagination import paginate


def _normalize_email(value) -> str | None:
    if value is None:
        return None
    email = str(value).strip().lower()
    if not email:
        return None
    if "@" not in email:
        raise ValidationError("email is invalid")
    return email


def create_customer(patch: dict, *, phone_number=None, phone_label=None) -> Customer:
    """
    Create a customer, optionally with a first phone (which becomes main).

    Raises:
        ValidationError: Missing name / bad email / bad phone
        ConflictError: Email already registered
    """
    full_name = (patch.get("full_name") or "").strip()
    if not full_name:
        raise ValidationError("full_name is required")

    email = _normalize_email(patch.get("email"))
    if email and db.session.query(Customer).filter(Customer.email == email).first():
        raise ConflictError("A customer with this email already exists")

    customer = Customer(full_name=full_name, email=email, is_active=patch.get("is_active", True))
    db.session.add(customer)
    db.session.flush()

    if phone_number is not None:
        add_customer_phone(customer.id, phone_number, label=phone_label)

    return customer


def update_customer(customer_id: int, patch: dict) -> Customer:
    customer = get_customer(customer_id)

    if "email" in patch:
        email = _normalize_email(patch["email"])
        if email and db.session.query(Customer).filter(
            Customer.email == email, Customer.id != customer_id
        ).first():
            raise ConflictError("A customer with this email already exists")
        customer.email = email
    if patch.get("full_name"):
        customer.full_name = patch["full_name"].strip()
    if "is_active" in patch:
        customer.is_active = patch["is_active"]

    db.session.flush()
    return customer


def get_customer(customer_id: int) -> Customer:
    customer = db.session.query(Customer).filter_by(id=customer_id).first()
    if customer is None:
        raise NotFoundError("Customer not found")
    return customer


def customer_to_dict(customer: Customer, *, include_phones: bool = False) -> dict:
    data = customer.to_dict()
    if include_phones:
        phones = sorted(customer.phones, key=lambda p: (not p.is_main, p.created_at, p.id))
        data["phones"] = [p.to_dict() for p in phones]
    main = next((p for p in customer.phones if p.is_main), None)
    data["main_phone"] = main.phone_number if main else None
    return data


def list_customers(
    *,
    search: str | None = None,
    is_active: bool | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    q = db.session.query(Customer)
    if search:
        pattern = f"%{search}%"
        q = q.filter(db.or_(Customer.full_name.ilike(pattern), Customer.email.ilike(pattern)))
    if is_active is not None:
        q = q.filter(Customer.is_active == is_active)
    q = q.order_by(Customer.full_name.asc(), Customer.id.asc())
    return paginate(q, page=page, per_page=per_page)

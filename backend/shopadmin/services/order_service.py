# Overview: Service-layer operations for orders; encapsulates business logic and database work.

"""
Order Service

Orders are historical records. Each line item embeds a ProductSnapshot
captured while the order is created; the product may later be renamed,
moved or tombstoned without touching the order. Totals, shipping and pricing
rules are not computed here.
"""

from __future__ import annotations

import logging
import secrets

from ..extensions import db
from ..models import Customer, Order, OrderItem
from ..validation import ConflictError, NotFoundError, ValidationError, enforce_rules_order_items
from shopadmin.time_utils import order_number_stamp
from .concurrency import lock_row
from .lifecycle_service import capture_snapshot
from .pagination import paginate


logger = logging.getLogger(__name__)

ORDER_NUMBER_ATTEMPTS = 5

ORDER_STATUSES = ("PENDING", "CONFIRMED", "PROCESSING", "SHIPPED", "DELIVERED", "CANCELLED")
TERMINAL_STATUSES = {"DELIVERED", "CANCELLED"}
ORDER_MUTABLE_FIELDS = {"status", "notes"}


class OrderStatusError(ConflictError):
    """Status change not allowed from the order's current status."""


def generate_order_number() -> str:
    """ORD-YYYYMMDD-XXXXXX (6 uppercase hex chars)."""
    for _ in range(ORDER_NUMBER_ATTEMPTS):
        number = f"ORD-{order_number_stamp()}-{secrets.token_hex(3).upper()}"
        if db.session.query(Order.id).filter(Order.order_number == number).first() is None:
            return number
    raise RuntimeError("Could not generate a unique order number")


def create_order(
    *,
    customer_id: int,
    items,
    actor_id: int | None = None,
    notes: str | None = None,
) -> Order:
    """
    Create an order with one line per item, snapshotting each product.

    Raises:
        ValidationError: Malformed items
        NotFoundError: Customer or product missing
        InvalidLifecycleStateError: A product is tombstoned
    """
    cleaned = enforce_rules_order_items(items)

    customer = db.session.query(Customer).filter_by(id=customer_id).first()
    if customer is None:
        raise NotFoundError("Customer not found")
    if not customer.is_active:
        raise ValidationError("Customer is not active")

    # Capture every snapshot before the first write.
    snapshots = [capture_snapshot(line["product_id"]) for line in cleaned]

    order = Order(
        order_number=generate_order_number(),
        customer_id=customer_id,
        status="PENDING",
        notes=notes.strip() if notes else None,
        created_by_admin_id=actor_id,
    )
    db.session.add(order)
    db.session.flush()

    for line, snapshot in zip(cleaned, snapshots):
        db.session.add(OrderItem(
            order_id=order.id,
            product_id=line["product_id"],
            quantity=line["quantity"],
            product_snapshot=snapshot.to_dict(),
        ))

    db.session.flush()
    logger.info("Created order %s with %d item(s)", order.order_number, len(cleaned))
    return order


def get_order(order_id: int) -> Order:
    order = db.session.query(Order).filter_by(id=order_id).first()
    if order is None:
        raise NotFoundError("Order not found")
    return order


def list_orders(
    *,
    customer_id: int | None = None,
    status: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    q = db.session.query(Order)
    if customer_id is not None:
        q = q.filter(Order.customer_id == customer_id)
    if status:
        q = q.filter(Order.status == validate_status(status))
    q = q.order_by(Order.created_at.desc(), Order.id.desc())
    return paginate(q, page=page, per_page=per_page)


# ================================================================================
# STATUS / NOTES
# ================================================================================

def validate_status(status) -> str:
    """Normalized (upper-case) status, or ValidationError."""
    if not isinstance(status, str) or status.strip().upper() not in ORDER_STATUSES:
        raise ValidationError(f"Invalid status {status!r}. Must be one of: {', '.join(ORDER_STATUSES)}")
    return status.strip().upper()


def can_transition(from_status: str, to_status: str) -> bool:
    """
    Order status rules:
    - same status: allowed (no-op)
    - DELIVERED and CANCELLED are terminal
    - any open order may be CANCELLED
    - otherwise only forward along PENDING > CONFIRMED > PROCESSING > SHIPPED > DELIVERED
    """
    if from_status == to_status:
        return True
    if from_status in TERMINAL_STATUSES:
        return False
    if to_status == "CANCELLED":
        return True
    return ORDER_STATUSES.index(to_status) > ORDER_STATUSES.index(from_status)


def update_order(order_id: int, patch: dict) -> Order:
    """
    Change an order's status and/or notes.

    Line items and their snapshots are never touched here.

    Raises:
        ValidationError: Unknown field, bad status value, non-string notes
        NotFoundError: Order missing
        OrderStatusError: Transition not allowed
    """
    if not isinstance(patch, dict):
        raise ValidationError("Invalid JSON payload")
    unknown = sorted(set(patch) - ORDER_MUTABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(unknown)}")

    new_status = validate_status(patch["status"]) if "status" in patch else None
    notes = patch.get("notes")
    if notes is not None and not isinstance(notes, str):
        raise ValidationError("notes must be a string")

    order = lock_row(Order, order_id)
    if order is None:
        raise NotFoundError("Order not found")

    if new_status is not None and new_status != order.status:
        if not can_transition(order.status, new_status):
            raise OrderStatusError(f"Cannot change order status from {order.status} to {new_status}")
        logger.info("Order %s status %s -> %s", order.order_number, order.status, new_status)
        order.status = new_status

    if "notes" in patch:
        order.notes = (notes.strip() or None) if notes else None

    db.session.flush()
    return order


def update_order_status(order_id: int, status: str, *, notes: str | None = None) -> Order:
    """Status change, optionally replacing the notes in the same write."""
    patch = {"status": status}
    if notes is not None:
        patch["notes"] = notes
    return update_order(order_id, patch)

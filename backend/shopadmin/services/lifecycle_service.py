# Overview: Service-layer operations for product lifecycle; encapsulates business logic and database work.

"""
Product Lifecycle Service

================================================================================
PURPOSE: Never destroy a product that historical orders still point at
================================================================================

STATES:
    LIVE        is_deleted=False (is_active may be either value)
    TOMBSTONED  is_deleted=True, is_active=False, deleted_at/deleted_by set

    LIVE -> TOMBSTONED   soft_delete_product (idempotent)
    TOMBSTONED -> LIVE   reactivate_product
    LIVE/TOMBSTONED -> gone   hard_delete_product, only while unreferenced

RULES (NON-NEGOTIABLE):
1. A product referenced by any order item is never hard-deleted
2. Tombstoned products are invisible to catalog queries
3. Order items carry a snapshot captured at creation; no later product
   change alters it

Functions here flush only. The caller commits or rolls back.
================================================================================
"""

from __future__ import annotations

import logging

from ..extensions import db
from ..models import Category, OrderItem, Product
from ..validation import ConflictError, NotFoundError
from shopadmin.time_utils import utcnow
from .concurrency import lock_row
from .snapshots import ProductSnapshot, build_snapshot
from .taxonomy_service import MAX_DEPTH


logger = logging.getLogger(__name__)


class LifecycleError(ValueError):
    """
    Raised when an invalid lifecycle transition is attempted.

    This is a domain error, not a technical error.
    """
    pass


class EntityInUseError(LifecycleError):
    """Hard delete refused: historical records reference the product."""

    def __init__(self, product_id: int, reference_count: int):
        self.product_id = product_id
        self.reference_count = reference_count
        super().__init__(
            f"Product {product_id} is referenced by {reference_count} order item(s); "
            "soft-delete it instead"
        )


class InvalidLifecycleStateError(LifecycleError):
    """Operation does not apply to the product's current state."""


class InactiveReferenceError(ConflictError):
    """Reactivation refused because the product's category is inactive."""


def _get_product(product_id: int, *, for_update: bool = False) -> Product:
    if for_update:
        product = lock_row(Product, product_id)
    else:
        product = db.session.query(Product).filter_by(id=product_id).first()
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")
    return product


def reference_count(product_id: int) -> int:
    """Number of order items pointing at the product."""
    return db.session.query(OrderItem).filter(OrderItem.product_id == product_id).count()


def can_hard_delete(product_id: int) -> bool:
    """True when no historical line item references the product."""
    _get_product(product_id)
    return reference_count(product_id) == 0


def product_usage(product_id: int) -> dict:
    product = _get_product(product_id)
    refs = reference_count(product_id)
    return {
        "product_id": product.id,
        "order_item_count": refs,
        "can_hard_delete": refs == 0,
        "is_deleted": product.is_deleted,
        "is_active": product.is_active,
    }


def hard_delete_product(product_id: int) -> None:
    """
    Physically remove a product.

    Raises:
        NotFoundError: Product does not exist
        EntityInUseError: At least one order item references it
    """
    product = _get_product(product_id, for_update=True)

    refs = reference_count(product_id)
    if refs:
        raise EntityInUseError(product_id, refs)

    db.session.delete(product)
    db.session.flush()
    logger.info("Hard-deleted product %s (%s)", product_id, product.slug)


def soft_delete_product(product_id: int, actor_id: int | None = None) -> Product:
    """
    Tombstone a product (LIVE -> TOMBSTONED).

    Idempotent: an already tombstoned product is returned unchanged, its
    original deleted_at / deleted_by_admin_id are kept.
    """
    product = _get_product(product_id, for_update=True)

    if product.is_deleted:
        return product

    product.is_deleted = True
    product.is_active = False
    product.deleted_at = utcnow()
    product.deleted_by_admin_id = actor_id

    db.session.flush()
    logger.info("Soft-deleted product %s by admin %s", product_id, actor_id)
    return product


def reactivate_product(product_id: int) -> Product:
    """
    Restore a tombstoned product (TOMBSTONED -> LIVE, visible again).

    Raises:
        InvalidLifecycleStateError: Product is not tombstoned
        InactiveReferenceError: Product's category is inactive
    """
    product = _get_product(product_id, for_update=True)

    if not product.is_deleted:
        raise InvalidLifecycleStateError(f"Product {product_id} is not deleted")

    if product.category is not None and not product.category.is_active:
        raise InactiveReferenceError(
            f"Cannot reactivate product {product_id}: category "
            f"'{product.category.name}' is inactive"
        )

    product.is_deleted = False
    product.deleted_at = None
    product.deleted_by_admin_id = None
    product.is_active = True

    db.session.flush()
    logger.info("Reactivated product %s", product_id)
    return product


def _category_path(category: Category | None) -> list[Category]:
    # Root-first ancestor chain, bounded like every other tree walk.
    path: list[Category] = []
    seen: set[int] = set()
    current = category
    while current is not None and current.id not in seen and len(path) <= MAX_DEPTH:
        path.append(current)
        seen.add(current.id)
        current = current.parent
    path.reverse()
    return path


def capture_snapshot(product_id: int) -> ProductSnapshot:
    """
    Freeze the current state of a live product for an order line.

    Raises:
        NotFoundError: Product does not exist
        InvalidLifecycleStateError: Product is tombstoned
    """
    product = _get_product(product_id)
    if product.is_deleted:
        raise InvalidLifecycleStateError(f"Product {product_id} is deleted and cannot be ordered")

    return build_snapshot(product, _category_path(product.category), utcnow())

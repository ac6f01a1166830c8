# Overview: Service-layer operations for products; encapsulates business logic and database work.
"""
Products Service

CATALOG VISIBILITY: Tombstoned products (is_deleted=True) never appear in
catalog-facing queries. Every listing starts from catalog_query(); only the
admin "include_deleted" view opts back in.

Deletion and restore are not handled here; see lifecycle_service.
"""
from __future__ import annotations

from ..extensions import db
from ..models import Category, Product
from ..validation import NotFoundError, enforce_rules_product
from .lifecycle_service import InvalidLifecycleStateError
from .pagination import paginate
from .taxonomy_service import find_free_slug, slugify

PRODUCT_MUTABLE_FIELDS = {"name", "description", "price_cents", "attributes", "category_id", "is_active"}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def catalog_query(*, include_inactive: bool = False):
    """Base query over products a catalog may show."""
    q = db.session.query(Product).filter(Product.is_deleted == False)  # noqa: E712
    if not include_inactive:
        q = q.filter(Product.is_active == True)  # noqa: E712
    return q


def _require_category(category_id: int | None) -> None:
    if category_id is None:
        return
    if db.session.query(Category.id).filter(Category.id == category_id).scalar() is None:
        raise NotFoundError("Category not found")


def list_products(
    *,
    search: str | None = None,
    category_id: int | None = None,
    is_active: bool | None = None,
    include_deleted: bool = False,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Admin product listing with optional pagination.

    Args:
        search: Case-insensitive match on name or slug
        category_id: Only products in this category
        is_active: Filter on visibility (None = both)
        include_deleted: Also return tombstoned products
        page: Page number (1-indexed). If None, returns all items.
        per_page: Items per page (default 20, max 100)

    Returns:
        Dict with 'items', 'count', and pagination metadata if paginated.
    """
    if include_deleted:
        q = db.session.query(Product)
    else:
        q = catalog_query(include_inactive=True)

    if search:
        pattern = f"%{search}%"
        q = q.filter(db.or_(Product.name.ilike(pattern), Product.slug.ilike(pattern)))
    if category_id is not None:
        q = q.filter(Product.category_id == category_id)
    if is_active is not None:
        q = q.filter(Product.is_active == is_active)

    q = q.order_by(Product.name.asc(), Product.id.asc())
    return paginate(q, page=page, per_page=per_page)


def get_product(product_id: int) -> Product:
    p = db.session.query(Product).filter_by(id=product_id).first()
    if p is None:
        raise NotFoundError("Product not found")
    return p


def create_product(*, patch: dict, actor_id: int | None = None) -> Product:
    """
    Create product using a validated patch dict.

    The slug is derived from patch["slug"] or the name and suffixed until
    free ("ly-a", "ly-a-1", ...).

    Raises:
        NotFoundError: category_id does not exist
        SlugExhaustedError: No free slug suffix
    """
    enforce_rules_product(patch)
    _require_category(patch.get("category_id"))

    slug = find_free_slug(Product, slugify(patch.get("slug") or patch["name"]))

    p = Product(slug=slug, created_by_admin_id=actor_id)
    apply_product_patch(p, patch)

    db.session.add(p)
    db.session.flush()
    return p


def update_product(*, product_id: int, patch: dict) -> Product:
    """
    Update a product.

    A rename without an explicit slug keeps the current slug; catalog URLs
    stay stable. Tombstoned products cannot be made visible here, use
    reactivate instead.
    """
    p = get_product(product_id)

    enforce_rules_product(patch)
    if "category_id" in patch:
        _require_category(patch["category_id"])
    if p.is_deleted and patch.get("is_active"):
        raise InvalidLifecycleStateError(f"Product {product_id} is deleted; reactivate it first")

    if patch.get("slug"):
        candidate = slugify(patch["slug"])
        if candidate != p.slug:
            p.slug = find_free_slug(Product, candidate, exclude_id=p.id)

    apply_product_patch(p, patch)
    db.session.flush()
    return p

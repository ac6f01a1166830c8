# Overview: Service-layer operations for the category tree; encapsulates structural rules and database work.

"""
Category Taxonomy Service

================================================================================
PURPOSE: Keep the category hierarchy acyclic, depth-bounded and uniquely named
================================================================================

TREE RULES (NON-NEGOTIABLE):
1. The parent chain from any category to its root never repeats a category
2. Depth (root = 1) never exceeds MAX_DEPTH for ANY category, including the
   descendants of a category being re-parented
3. slug is unique across all categories at all times

TRAVERSAL:
Every walk over the tree is iterative and bounded by MAX_DEPTH + 1 hops with a
visited-set guard. Corrupted data (a cycle written by something else, or a
chain deeper than allowed) makes the walk stop and report "too deep"; it never
loops or recurses without bound.

TRANSACTIONS:
Functions here validate first and only then write (add/flush). They never
commit: the caller owns the transaction and commits or rolls back the whole
operation. No tree shape is cached between calls. Structural writes first
lock the root paths of every category they touch (lock_tree_paths), so two
writes on the same tree are serialized through its root.

SLUGS:
Collisions are not errors. "mugs" becomes "mugs-1", "mugs-2", ... up to
MAX_SLUG_ATTEMPTS suffixes, after which SlugExhaustedError is raised.
================================================================================
"""

from __future__ import annotations

import logging
import re
import unicodedata

from ..extensions import db
from ..models import Category, Product
from ..validation import ConflictError, NotFoundError, ValidationError
from .concurrency import lock_row
from .pagination import paginate


logger = logging.getLogger(__name__)

MAX_DEPTH = 3
MAX_SLUG_ATTEMPTS = 100
MAX_SLUG_BASE_LENGTH = 200


class TaxonomyError(ValueError):
    """Structural rule violation on the category tree."""


class CycleDetectedError(TaxonomyError):
    """Proposed parent is the category itself or one of its descendants."""


class MaxDepthExceededError(TaxonomyError):
    """The assignment would push some category deeper than MAX_DEPTH."""


class SlugExhaustedError(ConflictError):
    """No free slug suffix within MAX_SLUG_ATTEMPTS."""


class CategoryInUseError(ConflictError):
    """Category still has children or products attached."""


# ================================================================================
# STRUCTURE
# ================================================================================

def _parent_id_of(category_id: int) -> int | None:
    # Missing rows and roots both read as "no parent".
    return (
        db.session.query(Category.parent_id)
        .filter(Category.id == category_id)
        .scalar()
    )


def _root_path_ids(category_id: int) -> list[int]:
    """category_id followed by its ancestors, bounded like compute_depth."""
    path: list[int] = []
    current = category_id
    while current is not None and current not in path and len(path) <= MAX_DEPTH:
        path.append(current)
        current = _parent_id_of(current)
    return path


def lock_tree_paths(*category_ids: int | None) -> set[int]:
    """
    Lock every category on the root paths of category_ids.

    Rows are locked in ascending id order. A concurrent re-parent may move one
    of the paths while we wait for a lock, so the paths are read again after
    each round and any newly reached ancestors are locked too. Two structural
    writes that touch the same tree therefore always share its root row.

    Returns the set of locked category ids.
    """
    locked: set[int] = set()
    for _ in range(MAX_DEPTH + 2):
        wanted: set[int] = set()
        for category_id in category_ids:
            if category_id is not None:
                wanted.update(_root_path_ids(category_id))
        missing = sorted(wanted - locked)
        if not missing:
            break
        for row_id in missing:
            lock_row(Category, row_id)
        locked.update(missing)
    return locked


def compute_depth(category_id: int) -> int:
    """
    Depth of a category, counting the root as 1.

    Walks the parent chain iteratively. If the chain is longer than MAX_DEPTH
    or revisits a category, returns MAX_DEPTH + 1 ("too deep") instead of
    continuing.

    Raises:
        NotFoundError: If the category does not exist
    """
    exists = db.session.query(Category.id).filter(Category.id == category_id).scalar()
    if exists is None:
        raise NotFoundError(f"Category {category_id} not found")

    depth = 1
    visited = {category_id}
    parent_id = _parent_id_of(category_id)

    while parent_id is not None:
        if parent_id in visited or depth > MAX_DEPTH:
            logger.warning(
                "Category %s parent chain is cyclic or deeper than %d; treating as too deep",
                category_id,
                MAX_DEPTH,
            )
            return MAX_DEPTH + 1
        visited.add(parent_id)
        depth += 1
        parent_id = _parent_id_of(parent_id)

    return depth


def would_create_cycle(category_id: int, proposed_parent_id: int | None) -> bool:
    """
    True if category_id appears in the ancestor chain that starts at
    proposed_parent_id (proposed_parent_id == category_id included).

    A chain that does not reach a root within MAX_DEPTH + 1 hops counts as a
    cycle.
    """
    if proposed_parent_id is None:
        return False

    current = proposed_parent_id
    visited: set[int] = set()
    for _ in range(MAX_DEPTH + 1):
        if current is None:
            return False
        if current == category_id or current in visited:
            return True
        visited.add(current)
        current = _parent_id_of(current)

    return current is not None


def subtree_height(category_id: int) -> int:
    """
    Number of levels in the subtree rooted at category_id (a leaf is 1).

    Breadth-first, one query per level. Stops once the height passes
    MAX_DEPTH since any such subtree is already unplaceable.
    """
    height = 1
    frontier = [category_id]
    seen = {category_id}

    while frontier:
        rows = db.session.query(Category.id).filter(Category.parent_id.in_(frontier)).all()
        children = [row.id for row in rows if row.id not in seen]
        if not children:
            break
        height += 1
        if height > MAX_DEPTH:
            break
        seen.update(children)
        frontier = children

    return height


def validate_parent_assignment(category_id: int | None, proposed_parent_id: int | None) -> None:
    """
    Validate attaching category_id (None for a category not yet created)
    under proposed_parent_id (None for "make it a root").

    Raises:
        CycleDetectedError: Self-parenting, or the parent is a descendant
        NotFoundError: Parent category does not exist
        MaxDepthExceededError: depth(parent) + height(subtree) > MAX_DEPTH
    """
    if proposed_parent_id is None:
        return

    if category_id is not None and proposed_parent_id == category_id:
        raise CycleDetectedError("Category cannot be its own parent")

    parent_exists = db.session.query(Category.id).filter(Category.id == proposed_parent_id).scalar()
    if parent_exists is None:
        raise NotFoundError("Parent category not found")

    if category_id is not None and would_create_cycle(category_id, proposed_parent_id):
        raise CycleDetectedError("Cannot create circular parent-child relationship")

    parent_depth = compute_depth(proposed_parent_id)
    height = subtree_height(category_id) if category_id is not None else 1

    if parent_depth + height > MAX_DEPTH:
        raise MaxDepthExceededError(f"Maximum category depth ({MAX_DEPTH} levels) exceeded")


# ================================================================================
# SLUGS
# ================================================================================

def slugify(text: str) -> str:
    """
    URL-safe ASCII slug. Vietnamese diacritics are folded ("Cốc sứ" -> "coc-su",
    "đ" -> "d").
    """
    value = (text or "").strip().lower().replace("đ", "d")
    value = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    value = re.sub(r"[^a-z0-9]+", "-", value).strip("-")
    return value[:MAX_SLUG_BASE_LENGTH].rstrip("-")


def find_free_slug(model, candidate: str, exclude_id: int | None = None) -> str:
    """
    First free slug among candidate, candidate-1, candidate-2, ... for model.

    Raises:
        ValidationError: If candidate is empty
        SlugExhaustedError: If MAX_SLUG_ATTEMPTS suffixes are all taken
    """
    if not candidate:
        raise ValidationError("slug cannot be blank")

    for counter in range(MAX_SLUG_ATTEMPTS + 1):
        slug = candidate if counter == 0 else f"{candidate}-{counter}"
        q = db.session.query(model.id).filter(model.slug == slug)
        if exclude_id is not None:
            q = q.filter(model.id != exclude_id)
        if q.first() is None:
            if counter:
                logger.info("Slug %r taken on %s; assigned %r", candidate, model.__tablename__, slug)
            return slug

    raise SlugExhaustedError(
        f"Could not find a free slug for '{candidate}' after {MAX_SLUG_ATTEMPTS} attempts"
    )


def assign_unique_slug(candidate: str, exclude_id: int | None = None) -> str:
    """Unique category slug for candidate (see find_free_slug)."""
    return find_free_slug(Category, candidate, exclude_id=exclude_id)


# ================================================================================
# CATEGORY CRUD
# ================================================================================

def get_category(category_id: int) -> Category:
    category = db.session.query(Category).filter_by(id=category_id).first()
    if category is None:
        raise NotFoundError("Category not found")
    return category


def category_usage(category_id: int) -> dict:
    """Children and product references for a category."""
    children = db.session.query(Category).filter(Category.parent_id == category_id).count()
    products = db.session.query(Product).filter(Product.category_id == category_id).count()
    live_products = (
        db.session.query(Product)
        .filter(Product.category_id == category_id, Product.is_deleted == False)  # noqa: E712
        .count()
    )
    return {"children": children, "products": products, "live_products": live_products}


def create_category(
    *,
    name: str,
    slug: str | None = None,
    description: str | None = None,
    parent_id: int | None = None,
    actor_id: int | None = None,
) -> Category:
    """
    Create a category under parent_id (or as a root).

    Raises:
        ValidationError: Blank name / slug
        NotFoundError: Parent missing
        MaxDepthExceededError: Parent already at MAX_DEPTH
    """
    name = (name or "").strip()
    if not name:
        raise ValidationError("Category name is required")

    lock_tree_paths(parent_id)
    validate_parent_assignment(None, parent_id)

    final_slug = assign_unique_slug(slugify(slug or name))

    category = Category(
        name=name,
        slug=final_slug,
        description=description.strip() if description else None,
        parent_id=parent_id,
        is_active=True,
        created_by_admin_id=actor_id,
    )
    db.session.add(category)
    db.session.flush()
    return category


def update_category(category_id: int, patch: dict) -> Category:
    """
    Rename / re-slug / re-parent a category.

    Renaming without an explicit slug regenerates the slug from the new name.
    The category's own slug never counts as a collision.
    """
    reparenting = "parent_id" in patch
    if reparenting:
        lock_tree_paths(category_id, patch["parent_id"])

    category = lock_row(Category, category_id)
    if category is None:
        raise NotFoundError("Category not found")

    if reparenting and patch["parent_id"] != category.parent_id:
        validate_parent_assignment(category.id, patch["parent_id"])

    candidate = None
    if patch.get("slug"):
        candidate = slugify(patch["slug"])
    elif patch.get("name"):
        candidate = slugify(patch["name"])

    new_slug = None
    if candidate is not None and candidate != category.slug:
        new_slug = assign_unique_slug(candidate, exclude_id=category.id)

    if patch.get("name"):
        category.name = patch["name"].strip()
    if new_slug is not None:
        category.slug = new_slug
    if "description" in patch:
        description = patch["description"]
        category.description = description.strip() if description else None
    if "parent_id" in patch:
        category.parent_id = patch["parent_id"]

    db.session.flush()
    return category


def set_category_active(category_id: int, is_active: bool, *, block_if_in_use: bool = False) -> Category:
    """
    Activate / deactivate a category.

    Whether a category that still has children or live products may be
    deactivated is a caller policy (block_if_in_use); deletion protection is
    enforced separately by delete_category.
    """
    category = lock_row(Category, category_id)
    if category is None:
        raise NotFoundError("Category not found")

    if category.is_active and not is_active and block_if_in_use:
        usage = category_usage(category_id)
        if usage["children"] or usage["live_products"]:
            raise CategoryInUseError(
                f"Cannot deactivate category used by {usage['live_products']} product(s) "
                f"and {usage['children']} subcategory(ies)"
            )

    category.is_active = is_active
    db.session.flush()
    return category


def toggle_category_status(category_id: int, *, block_if_in_use: bool = False) -> Category:
    category = get_category(category_id)
    return set_category_active(category_id, not category.is_active, block_if_in_use=block_if_in_use)


def delete_category(category_id: int) -> None:
    """
    Hard-delete a category that nothing depends on.

    Raises:
        CategoryInUseError: Category has children or any product (tombstoned
            products included) still points at it
    """
    category = lock_row(Category, category_id)
    if category is None:
        raise NotFoundError("Category not found")

    usage = category_usage(category_id)
    if usage["children"] or usage["products"]:
        raise CategoryInUseError(
            f"Cannot delete category used by {usage['products']} product(s) and "
            f"{usage['children']} subcategory(ies); deactivate it instead"
        )

    db.session.delete(category)
    db.session.flush()
    logger.info("Deleted category %s (%s)", category_id, category.slug)


def list_categories(
    *,
    search: str | None = None,
    is_active: bool | None = None,
    parent_id: int | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Category listing with optional filters and pagination.

    Returns:
        Dict with 'items', 'count', and pagination metadata if paginated.
    """
    q = db.session.query(Category)
    if search:
        pattern = f"%{search}%"
        q = q.filter(db.or_(Category.name.ilike(pattern), Category.slug.ilike(pattern)))
    if is_active is not None:
        q = q.filter(Category.is_active == is_active)
    if parent_id is not None:
        q = q.filter(Category.parent_id == parent_id)
    q = q.order_by(Category.name.asc(), Category.id.asc())

    return paginate(q, page=page, per_page=per_page)


def get_category_tree(*, active_only: bool = True) -> list[dict]:
    """
    Nested tree of categories reachable from the roots.

    One query; children are attached from an in-memory parent index. With
    active_only, an inactive category hides its whole subtree.
    """
    q = db.session.query(Category)
    if active_only:
        q = q.filter(Category.is_active == True)  # noqa: E712
    categories = q.order_by(Category.name.asc(), Category.id.asc()).all()

    by_parent: dict[int | None, list[Category]] = {}
    for category in categories:
        by_parent.setdefault(category.parent_id, []).append(category)

    roots = [dict(c.to_dict(), children=[]) for c in by_parent.get(None, [])]
    frontier = [(node, 1) for node in roots]
    while frontier:
        node, level = frontier.pop()
        if level >= MAX_DEPTH + 1:
            continue
        for child in by_parent.get(node["id"], []):
            child_node = dict(child.to_dict(), children=[])
            node["children"].append(child_node)
            frontier.append((child_node, level + 1))

    return roots

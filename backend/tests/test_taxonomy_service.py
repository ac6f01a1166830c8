"""
Category tree tests: depth limit, cycle rejection, slug assignment.
"""

import pytest

from shopadmin.models import Category, Product
from shopadmin.services import taxonomy_service
from shopadmin.services.taxonomy_service import (
    MAX_DEPTH,
    CategoryInUseError,
    CycleDetectedError,
    MaxDepthExceededError,
    SlugExhaustedError,
)
from shopadmin.validation import NotFoundError, ValidationError


@pytest.fixture
def chain(category_factory):
    """A (depth 1) > B (depth 2) > C (depth 3)."""
    a = category_factory("A")
    b = category_factory("B", parent=a)
    c = category_factory("C", parent=b)
    return a, b, c


def _force_parent(db_session, child_id, parent_id):
    # Bypass the service to simulate rows written by something else.
    db_session.query(Category).filter(Category.id == child_id).update(
        {"parent_id": parent_id}, synchronize_session=False
    )
    db_session.commit()


# ================================================================================
# DEPTH
# ================================================================================

def test_depth_counts_root_as_one(chain):
    a, b, c = chain
    assert taxonomy_service.compute_depth(a.id) == 1
    assert taxonomy_service.compute_depth(b.id) == 2
    assert taxonomy_service.compute_depth(c.id) == 3


def test_create_under_depth_three_parent_is_rejected(db_session, chain):
    _, _, c = chain

    with pytest.raises(MaxDepthExceededError):
        taxonomy_service.create_category(name="D", parent_id=c.id)
    db_session.rollback()

    assert db_session.query(Category).filter_by(name="D").count() == 0


def test_compute_depth_unknown_category(db_session):
    with pytest.raises(NotFoundError):
        taxonomy_service.compute_depth(999999)


def test_compute_depth_fails_closed_on_cycle(db_session, category_factory):
    a = category_factory("Loop A")
    b = category_factory("Loop B", parent=a)
    _force_parent(db_session, a.id, b.id)

    assert taxonomy_service.compute_depth(a.id) == MAX_DEPTH + 1
    assert taxonomy_service.compute_depth(b.id) == MAX_DEPTH + 1


def test_compute_depth_fails_closed_on_overlong_chain(db_session, chain, category_factory):
    _, _, c = chain
    d = category_factory("D")
    e = category_factory("E")
    _force_parent(db_session, d.id, c.id)
    _force_parent(db_session, e.id, d.id)

    assert taxonomy_service.compute_depth(d.id) == MAX_DEPTH + 1
    assert taxonomy_service.compute_depth(e.id) == MAX_DEPTH + 1


def test_reparenting_subtree_cannot_push_descendants_too_deep(db_session, chain, category_factory):
    a, _, c = chain
    x = category_factory("X")

    with pytest.raises(MaxDepthExceededError):
        taxonomy_service.update_category(a.id, {"parent_id": x.id})
    db_session.rollback()

    # A leaf may move under a root.
    taxonomy_service.update_category(c.id, {"parent_id": x.id})
    db_session.commit()
    assert taxonomy_service.compute_depth(c.id) == 2


def _locked_rows(monkeypatch, operation):
    """Run operation, returning the category ids it locked; then roll back."""
    locked = set()
    real_lock_row = taxonomy_service.lock_row

    def spy(model, row_id):
        if model is Category:
            locked.add(row_id)
        return real_lock_row(model, row_id)

    monkeypatch.setattr(taxonomy_service, "lock_row", spy)
    try:
        operation()
    finally:
        monkeypatch.setattr(taxonomy_service, "lock_row", real_lock_row)
        taxonomy_service.db.session.rollback()
    return locked


def test_reparents_in_the_same_tree_share_a_lock(db_session, monkeypatch, category_factory):
    # Z > Y, with R and X as separate roots. Moving X under Y and Z under R
    # each pass on their own but together would give R > Z > Y > X.
    z = category_factory("Z")
    y = category_factory("Y", parent=z)
    r = category_factory("R")
    x = category_factory("X")

    first = _locked_rows(monkeypatch, lambda: taxonomy_service.update_category(x.id, {"parent_id": y.id}))
    second = _locked_rows(monkeypatch, lambda: taxonomy_service.update_category(z.id, {"parent_id": r.id}))

    assert {x.id, y.id, z.id} <= first
    assert {z.id, r.id} <= second
    assert z.id in first & second


def test_create_locks_whole_parent_path(db_session, monkeypatch, chain):
    a, b, _ = chain
    locked = _locked_rows(monkeypatch, lambda: taxonomy_service.create_category(name="Leaf", parent_id=b.id))
    assert locked == {a.id, b.id}


def test_second_move_is_rejected_once_first_commits(db_session, category_factory):
    z = category_factory("Z")
    y = category_factory("Y", parent=z)
    r = category_factory("R")
    x = category_factory("X")

    taxonomy_service.update_category(x.id, {"parent_id": y.id})
    db_session.commit()

    with pytest.raises(MaxDepthExceededError):
        taxonomy_service.update_category(z.id, {"parent_id": r.id})
    db_session.rollback()
    assert taxonomy_service.compute_depth(x.id) == 3


def test_lock_tree_paths_stops_on_corrupted_chain(db_session, category_factory):
    a = category_factory("A")
    b = category_factory("B", parent=a)
    _force_parent(db_session, a.id, b.id)

    assert taxonomy_service.lock_tree_paths(a.id) == {a.id, b.id}
    db_session.rollback()


def test_subtree_height(chain):
    a, b, c = chain
    assert taxonomy_service.subtree_height(a.id) == 3
    assert taxonomy_service.subtree_height(b.id) == 2
    assert taxonomy_service.subtree_height(c.id) == 1


# ================================================================================
# CYCLES
# ================================================================================

def test_descendant_as_parent_is_a_cycle(chain):
    a, b, c = chain

    with pytest.raises(CycleDetectedError):
        taxonomy_service.validate_parent_assignment(a.id, c.id)
    with pytest.raises(CycleDetectedError):
        taxonomy_service.validate_parent_assignment(a.id, b.id)


def test_self_parent_is_a_cycle(chain):
    a, _, _ = chain
    assert taxonomy_service.would_create_cycle(a.id, a.id) is True
    with pytest.raises(CycleDetectedError):
        taxonomy_service.validate_parent_assignment(a.id, a.id)


def test_every_ancestor_is_rejected_as_parent(chain):
    nodes = list(chain)
    for i, ancestor in enumerate(nodes):
        for descendant in nodes[i + 1:]:
            with pytest.raises(CycleDetectedError):
                taxonomy_service.validate_parent_assignment(ancestor.id, descendant.id)


def test_would_create_cycle_false_for_unrelated_nodes(chain, category_factory):
    a, _, _ = chain
    other = category_factory("Other")
    assert taxonomy_service.would_create_cycle(a.id, other.id) is False
    assert taxonomy_service.would_create_cycle(a.id, None) is False


def test_would_create_cycle_terminates_on_corrupted_chain(db_session, category_factory):
    a = category_factory("Loop A")
    b = category_factory("Loop B", parent=a)
    _force_parent(db_session, a.id, b.id)
    new = category_factory("Outsider")

    assert taxonomy_service.would_create_cycle(new.id, a.id) is True


def test_root_assignment_is_always_valid(chain):
    _, _, c = chain
    taxonomy_service.validate_parent_assignment(c.id, None)


def test_missing_parent(db_session):
    with pytest.raises(NotFoundError):
        taxonomy_service.create_category(name="Orphan", parent_id=424242)


# ================================================================================
# SLUGS
# ================================================================================

def test_slugify_folds_vietnamese():
    assert taxonomy_service.slugify("Cốc sứ Đà Lạt") == "coc-su-da-lat"
    assert taxonomy_service.slugify("  Mugs & Cups!! ") == "mugs-cups"


def test_duplicate_slug_gets_numeric_suffix(db_session):
    first = taxonomy_service.create_category(name="Mugs")
    second = taxonomy_service.create_category(name="mugs")
    third = taxonomy_service.create_category(name="MUGS", slug="mugs")
    db_session.commit()

    assert first.slug == "mugs"
    assert second.slug == "mugs-1"
    assert third.slug == "mugs-2"


def test_slug_attempts_are_bounded(db_session, monkeypatch):
    monkeypatch.setattr(taxonomy_service, "MAX_SLUG_ATTEMPTS", 2)
    for _ in range(3):
        taxonomy_service.create_category(name="Bowls")
    db_session.commit()

    with pytest.raises(SlugExhaustedError):
        taxonomy_service.create_category(name="Bowls")


def test_blank_slug_is_rejected(db_session):
    with pytest.raises(ValidationError):
        taxonomy_service.create_category(name="!!!")


def test_rename_keeps_own_slug_free(db_session):
    first = taxonomy_service.create_category(name="Mugs")
    second = taxonomy_service.create_category(name="Mugs")
    db_session.commit()

    taxonomy_service.update_category(first.id, {"name": "Mugs"})
    taxonomy_service.update_category(second.id, {"name": "Mugs"})
    db_session.commit()

    assert first.slug == "mugs"
    assert second.slug == "mugs-1"


def test_rename_regenerates_slug(db_session, category):
    taxonomy_service.update_category(category.id, {"name": "Tea Cups"})
    db_session.commit()
    assert category.slug == "tea-cups"
    assert category.name == "Tea Cups"


# ================================================================================
# STATUS / DELETE / READS
# ================================================================================

def test_delete_refused_while_children_exist(db_session, chain):
    a, _, _ = chain
    with pytest.raises(CategoryInUseError):
        taxonomy_service.delete_category(a.id)


def test_delete_refused_while_products_reference(db_session, product):
    with pytest.raises(CategoryInUseError):
        taxonomy_service.delete_category(product.category_id)

    product.is_deleted = True
    db_session.commit()
    # Tombstoned products still hold the foreign key.
    with pytest.raises(CategoryInUseError):
        taxonomy_service.delete_category(product.category_id)


def test_delete_unused_category(db_session, category):
    category_id = category.id
    taxonomy_service.delete_category(category_id)
    db_session.commit()
    assert db_session.query(Category).filter_by(id=category_id).first() is None


def test_deactivation_in_use_is_caller_policy(db_session, product):
    category_id = product.category_id

    with pytest.raises(CategoryInUseError):
        taxonomy_service.set_category_active(category_id, False, block_if_in_use=True)

    toggled = taxonomy_service.toggle_category_status(category_id)
    db_session.commit()
    assert toggled.is_active is False
    assert db_session.query(Product).filter_by(id=product.id).one().category_id == category_id


def test_tree_hides_inactive_branches(db_session, chain):
    a, b, c = chain
    tree = taxonomy_service.get_category_tree()
    assert [n["slug"] for n in tree] == ["a"]
    assert tree[0]["children"][0]["children"][0]["id"] == c.id

    taxonomy_service.set_category_active(b.id, False)
    db_session.commit()

    tree = taxonomy_service.get_category_tree()
    assert tree[0]["children"] == []
    full = taxonomy_service.get_category_tree(active_only=False)
    assert full[0]["children"][0]["id"] == b.id


def test_list_categories_paginates(db_session, category_factory):
    for name in ("Alpha", "Beta", "Gamma"):
        category_factory(name)

    result = taxonomy_service.list_categories(page=1, per_page=2)
    assert result["count"] == 2
    assert result["pagination"]["total"] == 3
    assert result["pagination"]["has_next"] is True

    result = taxonomy_service.list_categories(search="bet")
    assert [c["name"] for c in result["items"]] == ["Beta"]

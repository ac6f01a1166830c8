# Overview: Flask API routes for category operations; parses input and returns JSON responses.

"""
Category tree API routes

SECURITY: All routes require authentication.

Structural rules (acyclic, depth <= 3, unique slug) are enforced by
taxonomy_service; these routes only parse input, own the transaction and map
errors to HTTP statuses.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..extensions import db
from ..models import Category
from ..services import taxonomy_service
from ..services.concurrency import run_in_transaction
from ..validation import ModelValidationPolicy, validate_payload
from ..decorators import require_auth
from ..api_utils import CLIENT_ERRORS, arg_bool, error_response, json_body


CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "slug", "description", "parent_id"},
    required_on_create={"name"},
)

categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")


def _internal_error(message: str):
    db.session.rollback()
    current_app.logger.exception(message)
    return jsonify({"error": "Internal server error"}), 500


@categories_bp.get("")
@require_auth
def list_categories_route():
    """
    List categories.

    Query params:
    - search: str (optional) - matches name or slug
    - is_active: bool (optional)
    - parent_id: int (optional)
    - page / per_page: int (optional)
    """
    try:
        result = taxonomy_service.list_categories(
            search=request.args.get("search"),
            is_active=arg_bool("is_active"),
            parent_id=request.args.get("parent_id", type=int),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result), 200
    except CLIENT_ERRORS as e:
        return error_response(e)
    except Exception:
        return _internal_error("Failed to list categories")


@categories_bp.get("/tree")
@require_auth
def category_tree_route():
    """Nested category tree. ?active_only=false includes inactive branches."""
    try:
        tree = taxonomy_service.get_category_tree(active_only=arg_bool("active_only", True))
        return jsonify({"items": tree}), 200
    except CLIENT_ERRORS as e:
        return error_response(e)
    except Exception:
        return _internal_error("Failed to build category tree")


@categories_bp.get("/<int:category_id>")
@require_auth
def get_category_route(category_id: int):
    try:
        category = taxonomy_service.get_category(category_id)
        data = category.to_dict()
        data["depth"] = taxonomy_service.compute_depth(category_id)
        data["usage"] = taxonomy_service.category_usage(category_id)
        return jsonify(data), 200
    except CLIENT_ERRORS as e:
        return error_response(e)
    except Exception:
        return _internal_error("Failed to get category")


@categories_bp.post("")
@require_auth
def create_category_route():
    """
    Create a category.

    Request body:
    {
        "name": str,
        "slug": str (optional, derived from name),
        "description": str (optional),
        "parent_id": int (optional)
    }

    Returns:
        201: Category created
        400: Invalid input, cycle or depth limit
        404: Parent not found
        409: Slug suffixes exhausted
    """
    try:
        patch = validate_payload(model=Category, payload=json_body(), policy=CATEGORY_POLICY, partial=False)
        actor_id = g.current_admin.id

        category = run_in_transaction(lambda: taxonomy_service.create_category(
            name=patch["name"],
            slug=patch.get("slug"),
            description=patch.get("description"),
            parent_id=patch.get("parent_id"),
            actor_id=actor_id,
        ))
        return jsonify(category.to_dict()), 201
    except CLIENT_ERRORS as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        return _internal_error("Failed to create category")


@categories_bp.route("/<int:category_id>", methods=["PUT", "PATCH"])
@require_auth
def update_category_route(category_id: int):
    """Rename, re-slug or re-parent a category."""
    try:
        patch = validate_payload(model=Category, payload=json_body(), policy=CATEGORY_POLICY, partial=True)
        category = run_in_transaction(lambda: taxonomy_service.update_category(category_id, patch))
        return jsonify(category.to_dict()), 200
    except CLIENT_ERRORS as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        return _internal_error("Failed to update category")


@categories_bp.post("/<int:category_id>/toggle-status")
@require_auth
def toggle_category_status_route(category_id: int):
    """
    Flip is_active.

    Deactivating a category still in use is refused only when
    BLOCK_CATEGORY_DEACTIVATION_IN_USE is enabled.
    """
    block = bool(current_app.config.get("BLOCK_CATEGORY_DEACTIVATION_IN_USE", False))
    try:
        category = run_in_transaction(
            lambda: taxonomy_service.toggle_category_status(category_id, block_if_in_use=block)
        )
        return jsonify(category.to_dict()), 200
    except CLIENT_ERRORS as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        return _internal_error("Failed to toggle category status")


@categories_bp.delete("/<int:category_id>")
@require_auth
def delete_category_route(category_id: int):
    """
    Hard-delete an unused category.

    Returns:
        200: Deleted
        404: Not found
        409: Category has children or products
    """
    try:
        run_in_transaction(lambda: taxonomy_service.delete_category(category_id))
        return jsonify({"deleted": True, "id": category_id}), 200
    except CLIENT_ERRORS as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        return _internal_error("Failed to delete category")

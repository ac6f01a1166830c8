# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/shopadmin/routes/products.py
"""
Product management routes.

SECURITY: All routes require authentication.

LIFECYCLE:
- DELETE /api/products/<id>            soft delete (tombstone), idempotent
- DELETE /api/products/<id>?hard=true  physical delete, refused (409) while
                                       any order item references the product
- POST   /api/products/<id>/reactivate restore a tombstoned product
"""
from flask import Blueprint, request, jsonify, current_app, g

from ..extensions import db
from ..models import Product
from ..services import lifecycle_service, products_service
from ..services.concurrency import run_in_transaction
from ..validation import ModelValidationPolicy, validate_payload
from ..decorators import require_auth
from ..api_utils import CLIENT_ERRORS, arg_bool, error_response, json_body

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "slug", "description", "price_cents", "attributes", "category_id", "is_active"},
    required_on_create={"name"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _internal_error(message: str):
    db.session.rollback()
    current_app.logger.exception(message)
    return jsonify({"error": "Internal server error"}), 500


@products_bp.get("")
@require_auth
def list_products():
    """
    List products with optional pagination.

    Query params:
    - search: str (optional)
    - category_id: int (optional)
    - is_active: bool (optional)
    - include_deleted: bool (optional, default false)
    - page: int (optional) - page number (1-indexed). If omitted, returns all items.
    - per_page: int (optional) - items per page (default 20, max 100)
    """
    try:
        result = products_service.list_products(
            search=request.args.get("search"),
            category_id=request.args.get("category_id", type=int),
            is_active=arg_bool("is_active"),
            include_deleted=arg_bool("include_deleted", False),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result), 200
    except CLIENT_ERRORS as e:
        return error_response(e)
    except Exception:
        return _internal_error("Failed to list products")


@products_bp.get("/<int:product_id>")
@require_auth
def get_product(product_id: int):
    try:
        return jsonify(products_service.get_product(product_id).to_dict()), 200
    except CLIENT_ERRORS as e:
        return error_response(e)
    except Exception:
        return _internal_error("Failed to get product")


@products_bp.post("")
@require_auth
def create_product():
    try:
        patch = validate_payload(model=Product, payload=json_body(), policy=PRODUCT_POLICY, partial=False)
        actor_id = g.current_admin.id
        product = run_in_transaction(
            lambda: products_service.create_product(patch=patch, actor_id=actor_id)
        )
        return jsonify(product.to_dict()), 201
    except CLIENT_ERRORS as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        return _internal_error("Failed to create product")


@products_bp.route("/<int:product_id>", methods=["PUT", "PATCH"])
@require_auth
def update_product(product_id: int):
    try:
        patch = validate_payload(model=Product, payload=json_body(), policy=PRODUCT_POLICY, partial=True)
        product = run_in_transaction(
            lambda: products_service.update_product(product_id=product_id, patch=patch)
        )
        return jsonify(product.to_dict()), 200
    except CLIENT_ERRORS as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        return _internal_error("Failed to update product")


@products_bp.delete("/<int:product_id>")
@require_auth
def delete_product(product_id: int):
    """
    Soft-delete a product, or hard-delete it with ?hard=true.

    Returns:
        200: Deleted (soft: product JSON, hard: {"deleted": true})
        404: Not found
        409: Hard delete refused, order items reference the product
    """
    try:
        if arg_bool("hard", False):
            run_in_transaction(lambda: lifecycle_service.hard_delete_product(product_id))
            return jsonify({"deleted": True, "hard": True, "id": product_id}), 200

        actor_id = g.current_admin.id
        product = run_in_transaction(
            lambda: lifecycle_service.soft_delete_product(product_id, actor_id=actor_id)
        )
        return jsonify(product.to_dict()), 200
    except CLIENT_ERRORS as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        return _internal_error("Failed to delete product")


@products_bp.post("/<int:product_id>/reactivate")
@require_auth
def reactivate_product(product_id: int):
    """
    Restore a tombstoned product.

    Returns:
        200: Product restored
        409: Product is not deleted, or its category is inactive
    """
    try:
        product = run_in_transaction(lambda: lifecycle_service.reactivate_product(product_id))
        return jsonify(product.to_dict()), 200
    except CLIENT_ERRORS as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        return _internal_error("Failed to reactivate product")


@products_bp.get("/<int:product_id>/usage")
@require_auth
def product_usage(product_id: int):
    """Historical references and whether a hard delete is possible."""
    try:
        return jsonify(lifecycle_service.product_usage(product_id)), 200
    except CLIENT_ERRORS as e:
        return error_response(e)
    except Exception:
        return _internal_error("Failed to get product usage")

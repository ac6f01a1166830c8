# Overview: Flask API routes for orders; parses input and returns JSON responses.

"""
Order API routes

Orders are created with a product snapshot per line. Afterwards only the
status and notes can change; line items are never edited.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..extensions import db
from ..services import order_service
from ..services.concurrency import run_in_transaction
from ..decorators import require_auth
from ..api_utils import CLIENT_ERRORS, error_response, json_body
from ..validation import ValidationError


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("")
@require_auth
def create_order_route():
    """
    Create an order.

    Request body:
    {
        "customer_id": int,
        "items": [{"product_id": int, "quantity": int}, ...],
        "notes": str (optional)
    }

    Returns:
        201: Order created (with items and snapshots)
        400: Invalid request
        404: Customer or product not found
        409: A product is deleted
    """
    try:
        data = json_body()
        customer_id = data.get("customer_id")
        if not isinstance(customer_id, int) or isinstance(customer_id, bool):
            raise ValidationError("customer_id must be an integer")
        notes = data.get("notes")
        if notes is not None and not isinstance(notes, str):
            raise ValidationError("notes must be a string")

        actor_id = g.current_admin.id
        order = run_in_transaction(lambda: order_service.create_order(
            customer_id=customer_id,
            items=data.get("items"),
            actor_id=actor_id,
            notes=notes,
        ))
        return jsonify(order.to_dict(include_items=True)), 201
    except CLIENT_ERRORS as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(order_id)
        return jsonify(order.to_dict(include_items=True)), 200
    except CLIENT_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("")
@require_auth
def list_orders_route():
    """
    List orders, newest first.

    Query params:
    - customer_id: int (optional)
    - status: PENDING, CONFIRMED, ... (optional)
    - page / per_page: int (optional)
    """
    try:
        result = order_service.list_orders(
            customer_id=request.args.get("customer_id", type=int),
            status=request.args.get("status"),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result), 200
    except CLIENT_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500


def _run_order_update(operation):
    try:
        order = run_in_transaction(operation)
        return jsonify(order.to_dict(include_items=True)), 200
    except CLIENT_ERRORS as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.route("/<int:order_id>", methods=["PUT", "PATCH"])
@require_auth
def update_order_route(order_id: int):
    """
    Update status and/or notes.

    Request body: {"status": str (optional), "notes": str|null (optional)}

    Returns:
        200: Updated order
        400: Unknown field or invalid status
        404: Order not found
        409: Status transition not allowed
    """
    try:
        data = json_body()
    except CLIENT_ERRORS as e:
        return error_response(e)
    return _run_order_update(lambda: order_service.update_order(order_id, data))


@orders_bp.patch("/<int:order_id>/status")
@require_auth
def update_order_status_route(order_id: int):
    """Status change: {"status": str, "notes": str (optional)}."""
    try:
        data = json_body()
        if "status" not in data:
            raise ValidationError("status is required")
    except CLIENT_ERRORS as e:
        return error_response(e)
    return _run_order_update(lambda: order_service.update_order_status(
        order_id, data["status"], notes=data.get("notes"),
    ))

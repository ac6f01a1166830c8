# Overview: Flask API routes for customers and their phones; parses input and returns JSON responses.

"""
Customer API routes

PHONES: Every phone mutation goes through phone_service, which delegates to
the main-phone coordinator. A customer with phones always has exactly one
main phone; the last phone cannot be deleted (409).
"""

from flask import Blueprint, request, jsonify, current_app

from ..extensions import db
from ..models import Customer
from ..services import customers_service, phone_service
from ..services.concurrency import run_in_transaction
from ..validation import ModelValidationPolicy, validate_payload
from ..decorators import require_auth
from ..api_utils import CLIENT_ERRORS, arg_bool, error_response, json_body


CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"full_name", "email", "is_active"},
    required_on_create={"full_name"},
)

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


def _internal_error(message: str):
    db.session.rollback()
    current_app.logger.exception(message)
    return jsonify({"error": "Internal server error"}), 500


# ================================================================================
# CUSTOMERS
# ================================================================================

@customers_bp.get("")
@require_auth
def list_customers_route():
    try:
        result = customers_service.list_customers(
            search=request.args.get("search"),
            is_active=arg_bool("is_active"),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result), 200
    except CLIENT_ERRORS as e:
        return error_response(e)
    except Exception:
        return _internal_error("Failed to list customers")


@customers_bp.post("")
@require_auth
def create_customer_route():
    """
    Create a customer, optionally with a first phone.

    Request body:
    {
        "full_name": str,
        "email": str (optional),
        "phone_number": str (optional, becomes the main phone),
        "phone_label": str (optional)
    }
    """
    try:
        data = dict(json_body())
        phone_number = data.pop("phone_number", None)
        phone_label = data.pop("phone_label", None)
        patch = validate_payload(model=Customer, payload=data, policy=CUSTOMER_POLICY, partial=False)

        customer = run_in_transaction(lambda: customers_service.create_customer(
            patch, phone_number=phone_number, phone_label=phone_label,
        ))
        return jsonify(customers_service.customer_to_dict(customer, include_phones=True)), 201
    except CLIENT_ERRORS as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        return _internal_error("Failed to create customer")


@customers_bp.get("/<int:customer_id>")
@require_auth
def get_customer_route(customer_id: int):
    try:
        customer = customers_service.get_customer(customer_id)
        return jsonify(customers_service.customer_to_dict(customer, include_phones=True)), 200
    except CLIENT_ERRORS as e:
        return error_response(e)
    except Exception:
        return _internal_error("Failed to get customer")


@customers_bp.route("/<int:customer_id>", methods=["PUT", "PATCH"])
@require_auth
def update_customer_route(customer_id: int):
    try:
        patch = validate_payload(model=Customer, payload=json_body(), policy=CUSTOMER_POLICY, partial=True)
        customer = run_in_transaction(lambda: customers_service.update_customer(customer_id, patch))
        return jsonify(customers_service.customer_to_dict(customer, include_phones=True)), 200
    except CLIENT_ERRORS as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        return _internal_error("Failed to update customer")


# ================================================================================
# PHONES
# ================================================================================

@customers_bp.get("/<int:customer_id>/phones")
@require_auth
def list_phones_route(customer_id: int):
    try:
        phones = phone_service.list_customer_phones(customer_id)
        return jsonify({"items": [p.to_dict() for p in phones], "count": len(phones)}), 200
    except CLIENT_ERRORS as e:
        return error_response(e)
    except Exception:
        return _internal_error("Failed to list phones")


@customers_bp.post("/<int:customer_id>/phones")
@require_auth
def add_phone_route(customer_id: int):
    """
    Add a phone.

    Request body:
    {
        "phone_number": str,
        "label": str (optional),
        "is_main": bool (optional; the first phone is always main)
    }
    """
    try:
        data = json_body()
        is_main = data.get("is_main", False)
        if not isinstance(is_main, bool):
            return jsonify({"error": "is_main must be a boolean"}), 400

        phone = run_in_transaction(lambda: phone_service.add_customer_phone(
            customer_id,
            data.get("phone_number"),
            label=data.get("label"),
            is_main=is_main,
        ))
        return jsonify(phone.to_dict()), 201
    except CLIENT_ERRORS as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        return _internal_error("Failed to add phone")


@customers_bp.route("/<int:customer_id>/phones/<int:phone_id>", methods=["PUT", "PATCH"])
@require_auth
def update_phone_route(customer_id: int, phone_id: int):
    try:
        data = json_body()
        phone = run_in_transaction(
            lambda: phone_service.update_customer_phone(customer_id, phone_id, data)
        )
        return jsonify(phone.to_dict()), 200
    except CLIENT_ERRORS as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        return _internal_error("Failed to update phone")


@customers_bp.post("/<int:customer_id>/phones/<int:phone_id>/set-main")
@require_auth
def set_main_phone_route(customer_id: int, phone_id: int):
    try:
        phone = run_in_transaction(lambda: phone_service.set_main_phone(customer_id, phone_id))
        return jsonify(phone.to_dict()), 200
    except CLIENT_ERRORS as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        return _internal_error("Failed to set main phone")


@customers_bp.delete("/<int:customer_id>/phones/<int:phone_id>")
@require_auth
def delete_phone_route(customer_id: int, phone_id: int):
    """
    Delete a phone.

    Returns:
        200: Deleted (main phone handed to the oldest remaining phone)
        404: Phone not found for this customer
        409: Only phone of the customer
    """
    try:
        run_in_transaction(lambda: phone_service.delete_customer_phone(customer_id, phone_id))
        return jsonify({"deleted": True, "id": phone_id}), 200
    except CLIENT_ERRORS as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        return _internal_error("Failed to delete phone")

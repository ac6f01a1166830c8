# Overview: Shared request parsing and error-to-response mapping for API routes.

from flask import jsonify, request
from sqlalchemy.exc import IntegrityError

from .services.lifecycle_service import EntityInUseError, LifecycleError
from .services.taxonomy_service import TaxonomyError
from .validation import ConflictError, NotFoundError, ValidationError


# Errors a route turns into a 4xx response; anything else is a 500.
CLIENT_ERRORS = (ValueError, IntegrityError)


def error_response(exc: Exception):
    """
    Map a domain error to (json, status).

    404  NotFoundError (unknown owner / item / entity)
    409  ConflictError, LifecycleError, IntegrityError
    400  TaxonomyError, ValidationError, any other ValueError
    """
    if isinstance(exc, IntegrityError):
        return jsonify({"error": "Conflicting write, please retry", "code": "IntegrityError"}), 409

    body = {"error": str(exc), "code": type(exc).__name__}

    if isinstance(exc, NotFoundError):
        return jsonify(body), 404
    if isinstance(exc, EntityInUseError):
        body["reference_count"] = exc.reference_count
        return jsonify(body), 409
    if isinstance(exc, (ConflictError, LifecycleError)):
        return jsonify(body), 409
    if isinstance(exc, (TaxonomyError, ValidationError)):
        return jsonify(body), 400
    return jsonify(body), 400


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    return data


def arg_bool(name: str, default=None):
    """Query-string boolean: 'true'/'1'/'yes' or 'false'/'0'/'no'."""
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    value = raw.strip().lower()
    if value in {"true", "1", "yes"}:
        return True
    if value in {"false", "0", "no"}:
        return False
    raise ValidationError(f"{name} must be true or false")

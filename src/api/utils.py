"""
Shared utilities for the royalty ledger API.

Authentication, request validation and error-to-response conversion used
by all blueprints.
"""

import secrets
from functools import wraps
from typing import Any

from flask import jsonify, request

from api.state import get_market
from market_errors import MarketError


def validate_json_schema(
    data: Any,
    required_fields: dict[str, type | tuple[type, ...]],
    optional_fields: dict[str, type | tuple[type, ...]] | None = None,
) -> tuple[bool, str | None]:
    """
    Validate a JSON payload against a simple field -> type schema.

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not isinstance(data, dict):
        return False, "Request body must be a JSON object"

    for field_name, expected_type in required_fields.items():
        if field_name not in data:
            return False, f"Missing required field: {field_name}"
        if not isinstance(data[field_name], expected_type):
            return False, f"Field '{field_name}' has the wrong type"

    for field_name, expected_type in (optional_fields or {}).items():
        if data.get(field_name) is not None and not isinstance(data[field_name], expected_type):
            return False, f"Field '{field_name}' has the wrong type"

    return True, None


def parse_amount(value: Any) -> Any:
    """
    Accept amounts as JSON integers or decimal-digit strings.

    Anything else is passed through for the engine to reject.
    """
    # isdigit alone accepts non-ASCII digits such as "²" that int() rejects
    if isinstance(value, str) and value.isascii() and value.isdigit():
        return int(value)
    return value


def error_response(error: MarketError):
    """Convert a MarketError into a JSON response."""
    return jsonify({
        "error": error.message,
        "error_type": type(error).__name__,
        "details": error.context.details,
    }), error.http_status


def require_api_key(f):
    """Decorator requiring a valid X-API-Key when authentication is enabled."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        config = get_market().config
        if not config.require_auth:
            return f(*args, **kwargs)

        provided_key = request.headers.get("X-API-Key")
        if not provided_key:
            return jsonify({
                "error": "API key required",
                "hint": "Provide API key in X-API-Key header"
            }), 401

        if not config.api_key:
            return jsonify({
                "error": "Server API key not configured",
                "hint": "Set MARKET_API_KEY environment variable"
            }), 503

        if not secrets.compare_digest(provided_key, config.api_key):
            return jsonify({"error": "Invalid API key"}), 403

        return f(*args, **kwargs)
    return decorated_function

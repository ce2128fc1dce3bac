"""
Royalty Ledger - Reference Registry API Blueprint

Development endpoints for the in-memory transfer registry and rate oracle
the bundled server runs against. Production deployments supply their own
registry and oracle and do not expose these routes.
"""

from flask import Blueprint, jsonify, request

from api.state import get_market
from api.utils import require_api_key, validate_json_schema

registry_bp = Blueprint("registry", __name__)


@registry_bp.route("/registry/assets", methods=["POST"])
@require_api_key
def mint_asset():
    """
    Register a new asset.

    Request body:
        {"asset_id": 7, "owner": "0x..."}
    """
    data = request.get_json(silent=True) or {}
    valid, error = validate_json_schema(data, {"asset_id": int, "owner": str})
    if not valid:
        return jsonify({"error": error}), 400

    market = get_market()
    with market.engine.transaction("mint"):
        market.registry.mint(data["asset_id"], data["owner"])
        market.persist()
    return jsonify({"asset_id": data["asset_id"], "holder": data["owner"]}), 201


@registry_bp.route("/registry/assets/<int:asset_id>/approve", methods=["POST"])
@require_api_key
def approve(asset_id):
    """
    Grant single-asset transfer authority.

    Request body:
        {"owner": "0x...", "spender": "0x..."}   // spender null revokes
    """
    data = request.get_json(silent=True) or {}
    valid, error = validate_json_schema(data, {"owner": str}, {"spender": str})
    if not valid:
        return jsonify({"error": error}), 400

    market = get_market()
    with market.engine.transaction("approve"):
        market.registry.approve(data["owner"], asset_id, data.get("spender"))
        market.persist()
    return jsonify({"asset_id": asset_id, "approved": data.get("spender")})


@registry_bp.route("/registry/operators", methods=["POST"])
@require_api_key
def set_operator():
    """
    Grant or revoke operator authority over all of an owner's assets.

    Request body:
        {"owner": "0x...", "operator": "0x...", "approved": true}
    """
    data = request.get_json(silent=True) or {}
    valid, error = validate_json_schema(data, {"owner": str, "operator": str, "approved": bool})
    if not valid:
        return jsonify({"error": error}), 400

    market = get_market()
    with market.engine.transaction("set_operator"):
        market.registry.set_approval_for_all(data["owner"], data["operator"], data["approved"])
        market.persist()
    return jsonify(data)


@registry_bp.route("/registry/rates/<int:asset_id>", methods=["PUT"])
@require_api_key
def set_rate(asset_id):
    """
    Override an asset's royalty rate. Applies to listings created afterwards.

    Request body:
        {"bps": 750}
    """
    data = request.get_json(silent=True) or {}
    valid, error = validate_json_schema(data, {"bps": int})
    if not valid:
        return jsonify({"error": error}), 400

    market = get_market()
    with market.engine.transaction("set_rate"):
        market.oracle.set_rate(asset_id, data["bps"])
        market.persist()
    return jsonify({"asset_id": asset_id, "bps": data["bps"]})


@registry_bp.route("/registry/rates/<int:asset_id>", methods=["GET"])
def get_rate(asset_id):
    """Current royalty rate for an asset."""
    return jsonify({"asset_id": asset_id, "bps": get_market().oracle.rate_bps_for(asset_id)})

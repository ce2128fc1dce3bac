"""
Royalty Ledger - Market API Blueprint

REST endpoints for listings, settlements and royalty claims.

Provides access to:
- List an asset at a fixed price
- Settle a purchase against a listing
- Inspect listings, sale history and royalty split previews
- Read and claim allocation balances
"""

from flask import Blueprint, jsonify, request

from api.state import get_market
from api.utils import parse_amount, require_api_key, validate_json_schema
from monitoring import LoggingContext

market_bp = Blueprint("market", __name__)


# =============================================================================
# Market Overview
# =============================================================================


@market_bp.route("/market", methods=["GET"])
def market_overview():
    """
    Collection-wide ledger state.

    Returns:
        Creator, creator royalty, held and unallocated balances, statistics
    """
    engine = get_market().engine
    return jsonify({
        "creator": engine.creator,
        "creator_royalty": engine.creator_royalty,
        "held_balance": engine.held_balance,
        "unallocated_total": engine.unallocated_total,
        "statistics": engine.get_statistics(),
    })


@market_bp.route("/market/events", methods=["GET"])
def list_events():
    """
    Audit trail of committed events.

    Query params:
        type: Optional event type filter (listed, sold, claimed)
        limit: Maximum events to return, newest last (default 100)
    """
    engine = get_market().engine
    event_type = request.args.get("type")
    limit = max(1, min(request.args.get("limit", 100, type=int), 1000))

    events = [
        e.to_dict() for e in engine.events
        if not event_type or e.event_type.value == event_type
    ]
    return jsonify({"count": len(events[-limit:]), "events": events[-limit:]})


# =============================================================================
# Listing Endpoints
# =============================================================================


@market_bp.route("/assets/<int:asset_id>/listing", methods=["POST"])
@require_api_key
def create_listing(asset_id):
    """
    List an asset for sale.

    Request body:
        {
            "actor": "0x...",   // Holder or approved address
            "price": 1000       // Integer amount (or digit string)
        }

    Returns:
        The listing, including royalty_amount and total_due
    """
    data = request.get_json(silent=True) or {}
    valid, error = validate_json_schema(data, {"actor": str, "price": (int, str)})
    if not valid:
        return jsonify({"error": error}), 400

    market = get_market()
    listing = market.engine.create_listing(asset_id, parse_amount(data["price"]), data["actor"])
    market.persist()
    return jsonify(listing.to_dict()), 201


@market_bp.route("/assets/<int:asset_id>/listing", methods=["GET"])
def get_listing(asset_id):
    """Active listing for an asset, 404 when it is not for sale."""
    listing = get_market().engine.get_listing(asset_id)
    if listing is None:
        return jsonify({"error": "Asset is not listed", "asset_id": asset_id}), 404
    return jsonify(listing.to_dict())


@market_bp.route("/assets/<int:asset_id>", methods=["GET"])
def get_asset(asset_id):
    """
    Full view of one asset.

    Returns:
        Holder, availability, active listing and sale history
    """
    market = get_market()
    engine = market.engine
    with market.locked():
        listing = engine.get_listing(asset_id)
        history = engine.sale_history(asset_id)
        holder = market.registry.holders.get(asset_id)
        available = engine.is_available(asset_id)

    return jsonify({
        "asset_id": asset_id,
        "holder": holder,
        "available": available,
        "listing": listing.to_dict() if listing else None,
        "sale_count": len(history),
        "total_historical_value": sum(r.price for r in history),
        "history": [r.to_dict() for r in history],
    })


@market_bp.route("/assets/<int:asset_id>/history", methods=["GET"])
def get_history(asset_id):
    """Ordered sale history of an asset."""
    history = get_market().engine.sale_history(asset_id)
    return jsonify({
        "asset_id": asset_id,
        "count": len(history),
        "records": [r.to_dict() for r in history],
    })


@market_bp.route("/assets/<int:asset_id>/split-preview", methods=["GET"])
def preview_split(asset_id):
    """
    Preview how a royalty would be divided against current history.

    Query params:
        royalty: Royalty amount to split (defaults to the active listing's)
    """
    engine = get_market().engine
    royalty = request.args.get("royalty", type=int)
    if royalty is None:
        listing = engine.get_listing(asset_id)
        if listing is None:
            return jsonify({"error": "royalty is required when the asset is not listed"}), 400
        royalty = listing.royalty_amount
    if royalty < 0:
        return jsonify({"error": "royalty cannot be negative"}), 400

    return jsonify(engine.preview_split(asset_id, royalty).to_dict())


# =============================================================================
# Settlement Endpoints
# =============================================================================


@market_bp.route("/assets/<int:asset_id>/settle", methods=["POST"])
@require_api_key
def settle(asset_id):
    """
    Settle a purchase.

    Request body:
        {
            "caller": "0x...",   // Seller or address authorized by the seller
            "seller": "0x...",   // Current holder
            "buyer": "0x...",    // Destination of the asset
            "payment": 1050      // Must equal price + royalty_amount
        }

    Returns:
        Settlement result, or {"settled": false} when the asset is not listed
    """
    data = request.get_json(silent=True) or {}
    valid, error = validate_json_schema(
        data,
        {"caller": str, "seller": str, "buyer": str, "payment": (int, str)},
    )
    if not valid:
        return jsonify({"error": error}), 400

    market = get_market()
    with LoggingContext(asset_id=asset_id, caller=data["caller"]):
        result = market.engine.settle(
            asset_id,
            buyer=data["buyer"],
            seller=data["seller"],
            payment_sent=parse_amount(data["payment"]),
            caller=data["caller"],
        )
    if result is None:
        return jsonify({"settled": False, "asset_id": asset_id, "reason": "Asset is not listed"})

    market.persist()
    return jsonify(result.to_dict())


# =============================================================================
# Allocation Endpoints
# =============================================================================


@market_bp.route("/allocations", methods=["GET"])
def list_allocations():
    """Every known beneficiary with balance and lifetime totals."""
    return jsonify(get_market().engine.ledger.to_dict())


@market_bp.route("/allocations/<address>", methods=["GET"])
def get_allocation(address):
    """Claimable balance of one address."""
    ledger = get_market().engine.ledger
    return jsonify({
        "address": address,
        "balance": ledger.balance_of(address),
        "total_earned": ledger.total_earned.get(address, 0),
        "total_claimed": ledger.total_claimed.get(address, 0),
    })


@market_bp.route("/allocations/<address>/claim", methods=["POST"])
@require_api_key
def claim(address):
    """
    Withdraw an address's entire allocation.

    Returns:
        Amount paid
    """
    market = get_market()
    amount = market.engine.claim(address)
    market.persist()
    return jsonify({"address": address, "claimed": amount, "balance": 0})

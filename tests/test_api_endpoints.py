"""
Tests for the REST API (src/api/).

Tests cover:
- Health and metrics endpoints
- Registry helpers
- Listing, settlement and claim flows
- Error responses for ledger failures
- API key authentication
"""

import sys

import pytest

sys.path.insert(0, "src")

from conftest import ALICE, BOB, CAROL, CREATOR


def mint(client, asset_id=1, owner=ALICE):
    return client.post("/registry/assets", json={"asset_id": asset_id, "owner": owner})


def list_asset(client, asset_id=1, actor=ALICE, price=1000):
    return client.post(f"/assets/{asset_id}/listing", json={"actor": actor, "price": price})


def settle(client, asset_id=1, caller=ALICE, seller=ALICE, buyer=BOB, payment=1050):
    return client.post(
        f"/assets/{asset_id}/settle",
        json={"caller": caller, "seller": seller, "buyer": buyer, "payment": payment},
    )


# ============================================================
# Health Tests
# ============================================================

class TestHealthEndpoints:
    """Tests for health and metrics endpoints."""

    def test_health(self, flask_client):
        response = flask_client.get("/health")

        assert response.status_code == 200
        data = response.get_json()
        assert data["status"] == "healthy"
        assert data["checks"]["ledger"]["held_balance"] == 0

    def test_liveness(self, flask_client):
        assert flask_client.get("/health/live").get_json() == {"status": "alive"}

    def test_readiness(self, flask_client):
        assert flask_client.get("/health/ready").status_code == 200

    def test_prometheus_metrics(self, flask_client):
        response = flask_client.get("/metrics")

        assert response.status_code == 200
        assert "royalty_ledger_held_balance" in response.get_data(as_text=True)

    def test_json_metrics(self, flask_client):
        data = flask_client.get("/metrics/json").get_json()

        assert "counters" in data
        assert "held_balance" in data["gauges"]

    def test_request_id_echoed(self, flask_client):
        response = flask_client.get("/health/live", headers={"X-Request-ID": "req-1"})

        assert response.headers["X-Request-ID"] == "req-1"


# ============================================================
# Registry Tests
# ============================================================

class TestRegistryEndpoints:
    """Tests for the reference registry routes."""

    def test_mint(self, flask_client, market):
        response = mint(flask_client)

        assert response.status_code == 201
        assert market.registry.current_holder(1) == ALICE

    def test_mint_twice(self, flask_client):
        mint(flask_client)

        response = mint(flask_client)

        assert response.status_code == 409
        assert response.get_json()["error_type"] == "NotOwner"

    def test_mint_missing_field(self, flask_client):
        response = flask_client.post("/registry/assets", json={"asset_id": 1})

        assert response.status_code == 400
        assert "owner" in response.get_json()["error"]

    def test_approve_lets_spender_list(self, flask_client):
        mint(flask_client)
        flask_client.post("/registry/assets/1/approve", json={"owner": ALICE, "spender": CAROL})

        assert list_asset(flask_client, actor=CAROL).status_code == 201

    def test_operator(self, flask_client, market):
        response = flask_client.post(
            "/registry/operators", json={"owner": ALICE, "operator": CAROL, "approved": True}
        )

        assert response.status_code == 200
        assert CAROL in market.registry.operators[ALICE]

    def test_set_and_get_rate(self, flask_client):
        flask_client.put("/registry/rates/1", json={"bps": 750})

        assert flask_client.get("/registry/rates/1").get_json()["bps"] == 750
        assert flask_client.get("/registry/rates/2").get_json()["bps"] == 500

    def test_invalid_rate(self, flask_client):
        response = flask_client.put("/registry/rates/1", json={"bps": 20000})

        assert response.status_code == 400
        assert response.get_json()["error_type"] == "InvalidAmount"


# ============================================================
# Listing Tests
# ============================================================

class TestListingEndpoints:
    """Tests for listing routes."""

    def test_create_listing(self, flask_client):
        mint(flask_client)

        response = list_asset(flask_client)

        assert response.status_code == 201
        data = response.get_json()
        assert data["price"] == 1000
        assert data["royalty_amount"] == 50
        assert data["total_due"] == 1050

    def test_price_as_digit_string(self, flask_client):
        mint(flask_client)

        response = list_asset(flask_client, price=str(10**30))

        assert response.status_code == 201
        assert response.get_json()["royalty_amount"] == 5 * 10**28

    def test_get_listing(self, flask_client):
        mint(flask_client)
        list_asset(flask_client)

        assert flask_client.get("/assets/1/listing").get_json()["total_due"] == 1050

    def test_get_missing_listing(self, flask_client):
        assert flask_client.get("/assets/1/listing").status_code == 404

    def test_unauthorized_listing(self, flask_client):
        mint(flask_client)

        response = list_asset(flask_client, actor=BOB)

        assert response.status_code == 403
        assert response.get_json()["error_type"] == "Unauthorized"

    def test_unknown_asset(self, flask_client):
        response = list_asset(flask_client, asset_id=9)

        assert response.status_code == 404
        assert response.get_json()["error_type"] == "UnknownAsset"

    def test_negative_price(self, flask_client):
        mint(flask_client)

        response = list_asset(flask_client, price=-5)

        assert response.status_code == 400
        assert response.get_json()["error_type"] == "InvalidAmount"

    @pytest.mark.parametrize("price", ["²", "١٠٠٠", "10.5", ""])
    def test_non_ascii_or_malformed_price_string(self, flask_client, price):
        mint(flask_client)

        response = list_asset(flask_client, price=price)

        assert response.status_code == 400
        assert response.get_json()["error_type"] == "InvalidAmount"


# ============================================================
# Settlement Tests
# ============================================================

class TestSettlementEndpoints:
    """Tests for the settle route and asset views."""

    def test_settle(self, flask_client, market):
        mint(flask_client)
        list_asset(flask_client)

        response = settle(flask_client)

        assert response.status_code == 200
        data = response.get_json()
        assert data["settled"] is True
        assert data["split"]["creator_amount"] == 5
        assert market.registry.current_holder(1) == BOB
        assert market.gateway.received_by(ALICE) == 1000

    def test_settle_persists(self, flask_client, market):
        mint(flask_client)
        list_asset(flask_client)
        saves = market.storage.save_count

        settle(flask_client)

        assert market.storage.save_count == saves + 1
        assert market.storage.load_state()["ledger"]["held_balance"] == 50

    def test_settle_unlisted(self, flask_client):
        mint(flask_client)

        response = settle(flask_client)

        assert response.status_code == 200
        assert response.get_json()["settled"] is False

    def test_incorrect_payment(self, flask_client):
        mint(flask_client)
        list_asset(flask_client)

        response = settle(flask_client, payment=1000)

        assert response.status_code == 402
        data = response.get_json()
        assert data["error_type"] == "IncorrectPayment"
        assert data["details"]["expected"] == 1050

    def test_wrong_seller(self, flask_client):
        mint(flask_client)
        list_asset(flask_client)

        response = settle(flask_client, caller=BOB, seller=BOB, buyer=CAROL)

        assert response.status_code == 409
        assert response.get_json()["error_type"] == "NotOwner"

    def test_payout_failure(self, flask_client, market):
        mint(flask_client)
        list_asset(flask_client)
        market.gateway.reject(ALICE)

        response = settle(flask_client)

        assert response.status_code == 502
        assert market.engine.is_available(1)

    def test_asset_view(self, flask_client):
        mint(flask_client)
        list_asset(flask_client)
        settle(flask_client)

        data = flask_client.get("/assets/1").get_json()

        assert data["holder"] == BOB
        assert data["available"] is False
        assert data["sale_count"] == 1
        assert data["total_historical_value"] == 1000

    def test_history(self, flask_client):
        mint(flask_client)
        list_asset(flask_client)
        settle(flask_client)

        data = flask_client.get("/assets/1/history").get_json()

        assert data["count"] == 1
        assert data["records"][0]["seller"] == ALICE

    def test_split_preview(self, flask_client):
        mint(flask_client)
        list_asset(flask_client)
        settle(flask_client)
        list_asset(flask_client, actor=BOB, price=2000)

        data = flask_client.get("/assets/1/split-preview").get_json()

        assert data["royalty_amount"] == 100
        assert data["seller_credits"] == [{"seller": ALICE, "amount": 90}]

    def test_split_preview_requires_royalty_when_unlisted(self, flask_client):
        mint(flask_client)

        assert flask_client.get("/assets/1/split-preview").status_code == 400
        assert flask_client.get("/assets/1/split-preview?royalty=50").status_code == 200

    def test_events(self, flask_client):
        mint(flask_client)
        list_asset(flask_client)
        settle(flask_client)

        data = flask_client.get("/market/events?type=sold").get_json()

        assert data["count"] == 1
        assert data["events"][0]["data"]["buyer"] == BOB

    def test_market_overview(self, flask_client):
        data = flask_client.get("/market").get_json()

        assert data["creator"] == CREATOR
        assert data["creator_royalty"] == 10


# ============================================================
# Allocation Tests
# ============================================================

class TestAllocationEndpoints:
    """Tests for allocation and claim routes."""

    def _sell(self, client):
        mint(client)
        list_asset(client)
        settle(client)

    def test_list_allocations(self, flask_client):
        self._sell(flask_client)

        data = flask_client.get("/allocations").get_json()

        assert data[CREATOR]["balance"] == 5
        assert data[ALICE]["balance"] == 45

    def test_get_allocation(self, flask_client):
        self._sell(flask_client)

        assert flask_client.get(f"/allocations/{CREATOR}").get_json()["balance"] == 5

    def test_claim(self, flask_client, market):
        self._sell(flask_client)

        response = flask_client.post(f"/allocations/{CREATOR}/claim")

        assert response.status_code == 200
        assert response.get_json()["claimed"] == 5
        assert market.gateway.received_by(CREATOR) == 5

    def test_claim_twice(self, flask_client):
        self._sell(flask_client)
        flask_client.post(f"/allocations/{CREATOR}/claim")

        response = flask_client.post(f"/allocations/{CREATOR}/claim")

        assert response.status_code == 409
        assert response.get_json()["error_type"] == "NothingToClaim"


# ============================================================
# Authentication Tests
# ============================================================

@pytest.fixture
def auth_client(test_config):
    from dataclasses import replace

    from api import create_app
    from storage import MemoryStorage

    app = create_app(replace(test_config, require_auth=True), storage=MemoryStorage(), configure_logs=False)
    app.config['TESTING'] = True
    return app.test_client()


class TestAuthentication:
    """Tests for API key checks on mutating routes."""

    def test_missing_key(self, auth_client):
        assert mint(auth_client).status_code == 401

    def test_wrong_key(self, auth_client):
        response = auth_client.post(
            "/registry/assets",
            json={"asset_id": 1, "owner": ALICE},
            headers={"X-API-Key": "wrong"},
        )

        assert response.status_code == 403

    def test_valid_key(self, auth_client):
        response = auth_client.post(
            "/registry/assets",
            json={"asset_id": 1, "owner": ALICE},
            headers={"X-API-Key": "test-api-key-12345"},
        )

        assert response.status_code == 201

    def test_reads_are_open(self, auth_client):
        assert auth_client.get("/market").status_code == 200

"""
Pytest configuration and shared fixtures for royalty ledger tests.

This module provides shared fixtures and test configuration including:
- Reference registry, rate oracle and payment gateway
- Settlement engines with private lock managers and metrics
- Flask app setup with in-memory storage and auth disabled
"""

import os
import sys

import pytest

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

# Set up test environment before any imports
os.environ["MARKET_API_KEY"] = "test-api-key-12345"
os.environ["MARKET_REQUIRE_AUTH"] = "false"
os.environ["STORAGE_BACKEND"] = "memory"

CREATOR = "0x" + "c" * 40
ALICE = "0x" + "a" * 40
BOB = "0x" + "b" * 40
CAROL = "0x" + "d" * 40
DAVE = "0x" + "e" * 40


@pytest.fixture
def registry():
    """Registry with asset 1 held by ALICE."""
    from asset_registry import InMemoryTransferRegistry

    reg = InMemoryTransferRegistry()
    reg.mint(1, ALICE)
    return reg


@pytest.fixture
def oracle():
    """Rate oracle charging 500 bps (5%)."""
    from rate_oracle import StaticRateOracle

    return StaticRateOracle(default_bps=500)


@pytest.fixture
def gateway():
    from payments import InMemoryPaymentGateway

    return InMemoryPaymentGateway()


@pytest.fixture
def metrics_collector():
    from monitoring.metrics import MetricsCollector

    return MetricsCollector()


@pytest.fixture
def make_engine(registry, oracle, gateway, metrics_collector):
    """Factory for engines sharing the test collaborators."""
    from scaling.locking import LocalLockManager
    from settlement import FirstSalePolicy, SettlementEngine

    def _make(creator_royalty=10, policy=FirstSalePolicy.SELLER):
        return SettlementEngine(
            registry=registry,
            oracle=oracle,
            gateway=gateway,
            creator=CREATOR,
            creator_royalty=creator_royalty,
            first_sale_policy=policy,
            lock_manager=LocalLockManager(),
            lock_timeout=5.0,
            metrics=metrics_collector,
        )

    return _make


@pytest.fixture
def engine(make_engine):
    """Engine with creator_royalty=10 and the SELLER first-sale policy."""
    return make_engine()


@pytest.fixture
def test_config():
    from config import MarketConfig

    return MarketConfig(
        creator_address=CREATOR,
        creator_royalty=10,
        default_royalty_bps=500,
        storage_backend="memory",
        api_key="test-api-key-12345",
        require_auth=False,
    )


@pytest.fixture
def flask_app(test_config):
    """Create Flask test app with a fresh market for each test."""
    from api import create_app
    from storage import MemoryStorage

    app = create_app(test_config, storage=MemoryStorage(), configure_logs=False)
    app.config['TESTING'] = True
    return app


@pytest.fixture
def flask_client(flask_app):
    """Flask test client."""
    return flask_app.test_client()


@pytest.fixture
def market(flask_app):
    """The MarketState behind flask_app."""
    from api.state import get_market

    return get_market()

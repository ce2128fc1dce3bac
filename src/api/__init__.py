"""
Royalty Ledger API Package.

Flask app factory and blueprints for the sale and royalty ledger.

Blueprints:
- monitoring: health probes and metrics
- market: listings, settlements, allocations and claims
- registry: development helpers for the in-memory registry and rate oracle
"""

import logging

from flask import Flask, jsonify

from api.market import market_bp
from api.monitoring import monitoring_bp
from api.registry import registry_bp
from api.state import init_market
from api.utils import error_response
from config import MarketConfig
from market_errors import MarketError
from monitoring.logging import configure_logging
from monitoring.middleware import setup_request_logging
from storage import StorageBackend, StorageError

logger = logging.getLogger(__name__)

# Tuple format: (blueprint, url_prefix)
ALL_BLUEPRINTS = [
    (monitoring_bp, ""),
    (market_bp, ""),
    (registry_bp, ""),
]


def register_blueprints(app: Flask) -> None:
    """Register all blueprints with the Flask app."""
    for blueprint, url_prefix in ALL_BLUEPRINTS:
        app.register_blueprint(blueprint, url_prefix=url_prefix)


def register_error_handlers(app: Flask) -> None:
    """Map ledger and storage exceptions to JSON responses."""

    @app.errorhandler(MarketError)
    def handle_market_error(error: MarketError):
        return error_response(error)

    @app.errorhandler(StorageError)
    def handle_storage_error(error: StorageError):
        logger.error("Ledger persistence failed: %s", error)
        return jsonify({"error": "Ledger persistence failed", "error_type": type(error).__name__}), 500


def create_app(
    config: MarketConfig | None = None,
    storage: StorageBackend | None = None,
    configure_logs: bool = True,
) -> Flask:
    """
    Build the Flask application.

    Args:
        config: Configuration (read from the environment when None)
        storage: Storage backend override
        configure_logs: Install root log handlers from config

    Returns:
        Configured Flask app
    """
    config = config or MarketConfig.from_env()
    if configure_logs:
        configure_logging(level=config.log_level, json_output=config.log_format == "json")

    init_market(config, storage)

    app = Flask(__name__)
    app.json.sort_keys = False
    setup_request_logging(app)
    register_blueprints(app)
    register_error_handlers(app)
    return app


def run_server(config: MarketConfig | None = None, debug: bool = False) -> None:
    """Run the Flask development server."""
    config = config or MarketConfig.from_env()
    app = create_app(config)

    print(f"\n{'='*60}")
    print("Royalty Ledger API Server")
    print(f"{'='*60}")
    print(f"Listening on: http://{config.host}:{config.port}")
    print(f"Creator: {config.creator_address} ({config.creator_royalty}% of royalties)")
    print(f"Storage: {config.storage_backend}")
    print(f"{'='*60}\n")

    app.run(host=config.host, port=config.port, debug=debug)

#!/usr/bin/env python3
"""
Royalty Ledger Command Line Interface.

Commands:
    - serve: Start the API server
    - check: Validate configuration and storage
    - info: Display configuration and ledger summary

Usage:
    royalty-ledger serve [--host HOST] [--port PORT] [--debug] [--production]
    royalty-ledger check
    royalty-ledger info
    royalty-ledger --version
"""

import argparse
import os
import platform
import sys
from dataclasses import replace

# Ensure src is in path when running from source
if os.path.exists(os.path.join(os.path.dirname(__file__), "settlement.py")):
    sys.path.insert(0, os.path.dirname(__file__))

__version__ = "0.1.0"


def _load_config():
    """Load .env and build configuration."""
    from dotenv import load_dotenv

    from config import MarketConfig

    load_dotenv()
    return MarketConfig.from_env()


def cmd_serve(args):
    """Start the API server."""
    config = _load_config()
    overrides = {}
    if args.host:
        overrides["host"] = args.host
    if args.port:
        overrides["port"] = args.port
    if overrides:
        config = replace(config, **overrides)

    if args.production:
        try:
            import gunicorn.app.base
        except ImportError:
            print("Error: gunicorn not installed. Install with: pip install royalty-ledger[production]")
            return 1

        from api import create_app

        class StandaloneApplication(gunicorn.app.base.BaseApplication):
            """Gunicorn wrapper serving the ledger app from this process's config."""

            def __init__(self, app, options=None):
                self.options = options or {}
                self.application = app
                super().__init__()

            def load_config(self):
                for key, value in self.options.items():
                    if key in self.cfg.settings and value is not None:
                        self.cfg.set(key.lower(), value)

            def load(self):
                return self.application

        # One worker: the ledger lives in process memory; scale with threads
        options = {
            "bind": f"{config.host}:{config.port}",
            "workers": 1,
            "threads": args.threads or int(os.getenv("THREADS", 4)),
            "worker_class": "gthread",
            "timeout": 120,
            "accesslog": "-",
            "errorlog": "-",
        }
        print(f"Starting Royalty Ledger API server on {config.host}:{config.port}")
        StandaloneApplication(create_app(config), options).run()
        return 0

    from api import run_server

    run_server(config, debug=args.debug or os.getenv("FLASK_DEBUG", "").lower() == "true")
    return 0


def cmd_check(args):
    """Validate configuration and storage."""
    print("Royalty Ledger Installation Check")
    print("=" * 40)

    checks = []

    try:
        config = _load_config()
        checks.append(("Configuration", "OK"))
    except ValueError as e:
        checks.append(("Configuration", f"FAIL: {e}"))
        config = None

    try:
        import flask  # noqa: F401

        checks.append(("Flask API", "OK"))
    except ImportError as e:
        checks.append(("Flask API", f"FAIL: {e}"))

    if config is not None:
        from storage import StorageError, get_storage_backend

        try:
            storage = get_storage_backend(config.storage_backend, config.ledger_data_file)
            backend_name = storage.__class__.__name__
            status = "OK" if storage.is_available() else "WARN (not available)"
            checks.append((f"Storage ({backend_name})", status))

            data = storage.load_state()
            if data:
                ledger = data.get("ledger", {})
                stored = ledger.get("creator_royalty", config.creator_royalty)
                stored_creator = ledger.get("creator", config.creator_address)
                if stored_creator != config.creator_address:
                    checks.append(("Stored ledger", f"FAIL: creator {stored_creator} != configured {config.creator_address}"))
                elif int(stored) != config.creator_royalty:
                    checks.append(("Stored ledger", f"FAIL: creator royalty {stored} != configured {config.creator_royalty}"))
                else:
                    checks.append(("Stored ledger", "OK"))
            else:
                checks.append(("Stored ledger", "SKIP (no saved state)"))
        except StorageError as e:
            checks.append(("Storage", f"FAIL: {e}"))

    try:
        import gunicorn  # noqa: F401

        checks.append(("Production server (gunicorn)", "OK"))
    except ImportError:
        checks.append(("Production server (gunicorn)", "SKIP (gunicorn not installed)"))

    print()
    all_ok = True
    for name, status in checks:
        icon = "✓" if status == "OK" else ("○" if "SKIP" in status else "✗")
        print(f"  {icon} {name}: {status}")
        if "FAIL" in status:
            all_ok = False

    print()
    if all_ok:
        print("All checks passed!")
        return 0
    print("Some checks failed. See above for details.")
    return 1


def cmd_info(args):
    """Display configuration and a summary of the stored ledger."""
    print("Royalty Ledger System Information")
    print("=" * 40)
    print(f"Version: {__version__}")
    print(f"Python: {platform.python_version()}")
    print(f"Platform: {platform.platform()}")

    try:
        config = _load_config()
    except ValueError as e:
        print(f"\nConfiguration error: {e}")
        return 1

    print()
    print("Configuration:")
    for key, value in config.to_dict().items():
        print(f"  {key}: {value}")

    print()
    print("Storage:")
    from storage import StorageError, get_storage_backend

    try:
        storage = get_storage_backend(config.storage_backend, config.ledger_data_file)
        for key, value in storage.get_info().items():
            print(f"  {key}: {value}")

        data = storage.load_state()
        if data:
            ledger = data.get("ledger", {})
            print()
            print("Ledger:")
            print(f"  active listings: {len(ledger.get('listings', {}))}")
            print(f"  assets with sales: {len(ledger.get('history', {}))}")
            print(f"  beneficiaries: {len(ledger.get('allocations', {}))}")
            print(f"  held balance: {ledger.get('held_balance', 0)}")
            print(f"  unallocated: {ledger.get('unallocated_total', 0)}")
    except StorageError as e:
        print(f"  Error: {e}")
        return 1

    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="royalty-ledger",
        description="Royalty Ledger - fixed-price sales with proportional resale royalties",
    )
    parser.add_argument("--version", "-v", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    serve_parser = subparsers.add_parser("serve", help="Start the API server")
    serve_parser.add_argument("--host", help="Host to bind to (default: 0.0.0.0)")
    serve_parser.add_argument("--port", type=int, help="Port to bind to (default: 5000)")
    serve_parser.add_argument("--debug", action="store_true", help="Enable debug mode")
    serve_parser.add_argument("--production", action="store_true", help="Use gunicorn for production")
    serve_parser.add_argument("--threads", type=int, help="Worker threads (production mode)")

    subparsers.add_parser("check", help="Check installation and configuration")
    subparsers.add_parser("info", help="Display system information")

    return parser


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "serve":
        sys.exit(cmd_serve(args))
    elif args.command == "check":
        sys.exit(cmd_check(args))
    elif args.command == "info":
        sys.exit(cmd_info(args))
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()

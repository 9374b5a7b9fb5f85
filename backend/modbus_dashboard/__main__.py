"""
Modbus Dashboard - Server Entry Point

Usage:
    modbus-dashboard [--host 0.0.0.0] [--port 3001] [--verbose]
    python -m modbus_dashboard
"""

import argparse

import uvicorn

from modbus_dashboard.common.logging_setup import setup_logging
from modbus_dashboard.common.settings import get_settings


def main():
    """Main entry point."""
    settings = get_settings()

    parser = argparse.ArgumentParser(
        description="Modbus TCP monitoring dashboard backend"
    )
    parser.add_argument(
        "--host",
        type=str,
        default=settings.host,
        help=f"Address to bind (default: {settings.host})"
    )
    parser.add_argument(
        "--port", "-p",
        type=int,
        default=settings.port,
        help=f"Port to listen on (default: {settings.port})"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (debug) logging"
    )

    args = parser.parse_args()

    if args.verbose:
        setup_logging(log_level="DEBUG")

    from modbus_dashboard.main import app

    print(f"Modbus Dashboard backend running on: http://{args.host}:{args.port}")
    print(f"CORS enabled for: {', '.join(settings.cors_origins())}")

    uvicorn.run(
        app,
        host=args.host,
        port=args.port,
        log_level="debug" if args.verbose else "info",
    )


if __name__ == "__main__":
    main()

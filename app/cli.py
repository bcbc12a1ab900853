"""Command line entry point for the did:web server.

Usage:
    didsrv start --domain example.com --api-key <lnbits invoice key>
    didsrv start -d example.com -s /var/lib/did-web -a <key> --port 9000

Flags override the DIDWEB_* / LNBITS_* environment variables.
"""

import argparse
import logging
import sys
from typing import Optional

import uvicorn

from app.core.config import ServerSettings
from app.core.services import build_services
from app.didweb.exceptions import StoreError
from app.logging_config import configure_logging
from app.main import create_app

log = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="didsrv",
        description="did:web resolver and payment-gated registrar",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    commands = parser.add_subparsers(dest="command", required=True)

    start = commands.add_parser("start", help="Start the HTTP server")
    start.add_argument(
        "-d", "--domain",
        help="Domain whose identifiers this server issues (env: DIDWEB_DOMAIN)",
    )
    start.add_argument(
        "-s", "--storage",
        help="Directory holding dids.db (env: DIDWEB_STORAGE_DIR, default: ~/.did-web/storage)",
    )
    start.add_argument(
        "-a", "--api-key", "--apiKey",
        dest="api_key",
        help="LNbits invoice key (env: LNBITS_API_KEY)",
    )
    start.add_argument(
        "--api-host",
        help="LNbits host (env: LNBITS_API_HOST, default: legend.lnbits.com)",
    )
    start.add_argument(
        "--public-url",
        help="Base URL used in payment webhooks (env: DIDWEB_PUBLIC_URL, default: https://<domain>)",
    )
    start.add_argument("--host", help="Bind address (env: DIDWEB_HOST, default: 0.0.0.0)")
    start.add_argument("--port", type=int, help="Bind port (env: DIDWEB_PORT, default: 8080)")
    start.add_argument("--log-level", help="Log level (env: DIDWEB_LOG_LEVEL, default: INFO)")
    return parser


def settings_from_args(args: argparse.Namespace) -> ServerSettings:
    settings = ServerSettings.from_env()
    overrides = {
        "domain": args.domain,
        "storage_dir": args.storage,
        "lnbits_api_key": args.api_key,
        "lnbits_api_host": args.api_host,
        "public_url": args.public_url,
        "host": args.host,
        "port": args.port,
    }
    for name, value in overrides.items():
        if value is not None:
            setattr(settings, name, value)
    return settings


def start(args: argparse.Namespace) -> int:
    settings = settings_from_args(args)
    try:
        services = build_services(settings)
    except (ValueError, StoreError) as e:
        log.error(f"Cannot start server: {e}")
        return 1

    app = create_app(settings=settings, services=services)
    log.info(f"Listening on {settings.host}:{settings.port}")
    try:
        uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)
    finally:
        services.engine.dispose()
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(level=getattr(args, "log_level", None))

    if args.command == "start":
        return start(args)
    parser.print_help()
    return 2


if __name__ == "__main__":
    sys.exit(main())

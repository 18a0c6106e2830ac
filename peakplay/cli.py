"""
Command line entry point.

Usage:
    python -m peakplay refresh
    python -m peakplay status
    python -m peakplay serve --port 8000
"""
import argparse
import json
import logging
import sys
from typing import List, Optional

from config.settings import get_settings
from peakplay.errors import ConfigError, NoDataAvailable
from peakplay.service import build_orchestrator

logger = logging.getLogger("cli")


def cmd_refresh(args) -> int:
    settings = get_settings()
    settings.require_credentials()
    orchestrator = build_orchestrator(settings)
    try:
        result = orchestrator.refresh(settings.cache_key, timeout=args.timeout)
    except NoDataAvailable as e:
        print(f"Refresh failed and no cached data exists: {e}", file=sys.stderr)
        return 1
    print(f"{result.state.value}: {len(result.data)} tracks")
    return 0


def cmd_status(args) -> int:
    settings = get_settings()
    orchestrator = build_orchestrator(settings)
    report = {
        "status": orchestrator.status(settings.cache_key).to_dict(),
        "schedule": orchestrator.schedule_info(),
    }
    print(json.dumps(report, indent=2))
    return 0


def cmd_serve(args) -> int:
    import uvicorn

    get_settings().require_credentials()
    uvicorn.run("peakplay.main:app", host=args.host, port=args.port)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="peakplay", description="Daily top tracks service")
    subparsers = parser.add_subparsers(dest="command", required=True)

    refresh = subparsers.add_parser("refresh", help="Fetch fresh data now and store it")
    refresh.add_argument("--timeout", type=float, default=None, help="Give up after this many seconds")
    refresh.set_defaults(func=cmd_refresh)

    status = subparsers.add_parser("status", help="Show cache status and next refresh time")
    status.set_defaults(func=cmd_status)

    serve = subparsers.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8000)
    serve.set_defaults(func=cmd_serve)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO)
    args = build_parser().parse_args(argv)
    try:
        return args.func(args)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())

"""CLI entry point for kohasync."""

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any

from .config import Config, load_config
from .sync import StoreError, SyncClient, create_store
from .sync.sync_client import SyncResult, SyncStatus


# Context attached to log records through ``extra=``
LOG_CONTEXT_FIELDS = ("sync_id", "items")


class JSONFormatter(logging.Formatter):
    """One JSON object per line, with sync context when present."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }

        for field in LOG_CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_data[field] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Human readable lines ending in ``[sync_id=...]`` for record events."""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        sync_id = getattr(record, "sync_id", None)
        if sync_id is None:
            return base
        return f"{base} [sync_id={sync_id}]"


def setup_logging(verbose: bool = False, log_level: str | None = None, json_output: bool = False) -> None:
    """Configure logging.

    Args:
        verbose: Enable debug logging (ignored if log_level is set).
        log_level: Explicit log level (warning, info, debug).
        json_output: Output logs as JSON lines for log shippers.
    """
    if log_level:
        level = getattr(logging, log_level.upper(), logging.INFO)
    else:
        level = logging.DEBUG if verbose else logging.INFO

    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter() if json_output else TextFormatter())
    logging.basicConfig(level=level, handlers=[handler])

    # httpx logs every request at INFO; the sync client logs its own retries
    if level > logging.DEBUG:
        logging.getLogger("httpx").setLevel(logging.WARNING)


def _read_payload(source: str | None) -> Any:
    """Read a JSON payload from a file path, "-" for stdin, or nothing."""
    if source is None:
        return {}
    if source == "-":
        return json.load(sys.stdin)
    with open(source) as f:
        return json.load(f)


def _sync_client(config: Config) -> SyncClient:
    return SyncClient(
        server_url=config.client.server_url,
        max_retries=config.client.max_retries,
        timeout=config.client.timeout_seconds,
    )


def _report(result: SyncResult) -> int:
    if result.status != SyncStatus.SUCCESS:
        print(f"Error ({result.status.value}): {result.error}", file=sys.stderr)
        return 1
    if result.record is not None:
        print(json.dumps(result.record.to_dict(), indent=2))
    else:
        print(result.sync_id)
    return 0


async def cmd_serve(args: argparse.Namespace) -> int:
    """Run the sync API server."""
    config = load_config(args.config)

    import uvicorn

    from .api import create_app

    host = args.host or config.server.host
    port = args.port or config.server.port

    try:
        store = create_store(config.store)
    except (StoreError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print("Starting kohasync server")
    print(f"Store: {store.backend_name} ({config.store.namespace})")
    print(f"URL: http://{host}:{port}/api/sync")

    app = create_app(config, store=store)

    try:
        uvicorn_config = uvicorn.Config(
            app,
            host=host,
            port=port,
            log_level="info" if args.verbose else "warning",
        )
        server = uvicorn.Server(uvicorn_config)
        await server.serve()
    finally:
        close = getattr(store, "close", None)
        if close:
            close()

    return 0


def cmd_status(args: argparse.Namespace) -> int:
    """Report store status."""
    config = load_config(args.config)

    status_data: dict[str, Any] = {
        "timestamp": datetime.now().isoformat(),
        "server": {"host": config.server.host, "port": config.server.port},
        "client": {"server_url": config.client.server_url or None},
        "inference": {
            "token_configured": bool(config.inference.token),
            "endpoints": config.inference.endpoints,
        },
    }

    store = None
    try:
        store = create_store(config.store)
        status_data["store"] = {"available": True, **store.stats()}
    except (StoreError, ValueError) as e:
        status_data["store"] = {"available": False, "error": str(e)}
    finally:
        close = getattr(store, "close", None)
        if close:
            close()

    if args.json:
        print(json.dumps(status_data, indent=2))
        return 0

    store_status = status_data["store"]
    print("kohasync Status Check")
    print("=====================")
    if store_status["available"]:
        print(f"Store: {store_status['backend']} (namespace: {store_status['namespace']})")
        print(f"  Records: {store_status['record_count']}")
        if "db_path" in store_status:
            print(f"  Database: {store_status['db_path']}")
    else:
        print(f"Store: unavailable ({store_status['error']})")
    print(f"Sync server: {config.client.server_url or 'not configured'}")
    print(f"Inference endpoints: {len(config.inference.endpoints)}")
    return 0


async def cmd_create(args: argparse.Namespace) -> int:
    """Create a shared record on the server."""
    config = load_config(args.config)
    result = await _sync_client(config).create_record(_read_payload(args.file))
    return _report(result)


async def cmd_pull(args: argparse.Namespace) -> int:
    """Fetch a shared record from the server."""
    config = load_config(args.config)
    result = await _sync_client(config).fetch_record(args.code)
    return _report(result)


async def cmd_push(args: argparse.Namespace) -> int:
    """Push local changes to a shared record."""
    config = load_config(args.config)
    result = await _sync_client(config).push_record(args.code, _read_payload(args.file))
    return _report(result)


async def cmd_infer(args: argparse.Namespace) -> int:
    """Send a payload to the configured inference endpoints."""
    from .inference import InferenceClient

    config = load_config(args.config)
    client = InferenceClient.from_config(config.inference)

    if args.content_type == "application/json":
        payload = _read_payload(args.file)
    else:
        payload = Path(args.file).read_bytes()

    result = await client.call_first_available(
        config.inference.endpoints, payload, content_type=args.content_type
    )
    if not result.ok:
        print(f"Error: {result.error}", file=sys.stderr)
        return 1

    print(json.dumps(result.data, indent=2))
    return 0


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="kohasync",
        description="Shared record sync server and client for the Koha tracker",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to config file (default: none)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["warning", "info", "debug"],
        default=None,
        help="Set log level explicitly (overrides -v/--verbose)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Output logs as JSON for machine parsing",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Run the sync API server")
    serve_parser.add_argument(
        "-p", "--port",
        type=int,
        default=None,
        help="Port to listen on (default: from config, 8888)",
    )
    serve_parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host to bind to (default: from config, 0.0.0.0)",
    )
    serve_parser.set_defaults(func=cmd_serve)

    # Status command
    status_parser = subparsers.add_parser("status", help="Show store status")
    status_parser.add_argument(
        "--json",
        action="store_true",
        help="Output status as JSON",
    )
    status_parser.set_defaults(func=cmd_status)

    # Client commands
    create_parser = subparsers.add_parser("create", help="Create a shared record")
    create_parser.add_argument(
        "file",
        nargs="?",
        help="JSON payload file, or - for stdin (default: empty record)",
    )
    create_parser.set_defaults(func=cmd_create)

    pull_parser = subparsers.add_parser("pull", help="Fetch a shared record")
    pull_parser.add_argument("code", help="Sync code")
    pull_parser.set_defaults(func=cmd_pull)

    push_parser = subparsers.add_parser("push", help="Merge local changes into a shared record")
    push_parser.add_argument("code", help="Sync code")
    push_parser.add_argument("file", help="JSON payload file, or - for stdin")
    push_parser.set_defaults(func=cmd_push)

    # Inference command
    infer_parser = subparsers.add_parser("infer", help="Call the configured inference endpoints")
    infer_parser.add_argument("file", help="Payload file (JSON, or raw bytes with --content-type)")
    infer_parser.add_argument(
        "--content-type",
        default="application/json",
        help="Content type of the payload (default: application/json)",
    )
    infer_parser.set_defaults(func=cmd_infer)

    args = parser.parse_args()

    setup_logging(args.verbose, args.log_level, args.json_logs)

    if not args.command:
        parser.print_help()
        return 1

    func = args.func
    if asyncio.iscoroutinefunction(func):
        return asyncio.run(func(args))
    else:
        return func(args)


if __name__ == "__main__":
    sys.exit(main())

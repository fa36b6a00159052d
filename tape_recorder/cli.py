"""CLI entry points for tape-recorder."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from aiohttp import web

from tape_recorder import __version__
from tape_recorder.config import ConfigError, RecorderConfig, load_config, resolve_log_file
from tape_recorder.proxy import create_app, create_config_error_app
from tape_recorder.tape import TapeStore

# Ensure print output is visible immediately when stdout is piped
if hasattr(sys.stdout, "reconfigure"):
    sys.stdout.reconfigure(line_buffering=True)

log = logging.getLogger("tape-recorder")


def configure_logging(log_path: Path) -> None:
    """Send recorder logs to the append-only log file, not the terminal."""
    log_path = Path(log_path)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    target = str(log_path.absolute())
    for handler in log.handlers:
        if isinstance(handler, logging.FileHandler) and handler.baseFilename == target:
            return
    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(logging.Formatter("[%(asctime)s] %(message)s", datefmt="%Y-%m-%d %H:%M:%S"))
    log.addHandler(file_handler)
    log.setLevel(logging.INFO)
    # Suppress aiohttp access logs
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)


def init_app(argv: list[str] | None = None) -> web.Application:
    """Application factory for ``python -m aiohttp.web tape_recorder.cli:init_app``.

    Configuration comes from the environment only. Without it the application
    still starts, but answers every request with the configuration error.
    """
    configure_logging(resolve_log_file())
    try:
        config = load_config()
    except ConfigError:
        log.error("Error: TAPE_NAME and API_URL not set")
        return create_config_error_app()
    log.info(f"Server started. Tape: {config.tape_name}, API URL: {config.api_url}")
    return create_app(config)


async def async_main(args: argparse.Namespace) -> int:
    configure_logging(resolve_log_file(log_file=args.log_file))

    try:
        config: RecorderConfig = load_config(
            tape_name=args.tape_name,
            api_url=args.api_url,
            tapes_dir=args.tapes_dir,
            log_file=args.log_file,
        )
    except ConfigError as exc:
        log.error("Error: TAPE_NAME and API_URL not set")
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    log.info(f"Server started. Tape: {config.tape_name}, API URL: {config.api_url}")

    store = TapeStore(config.tapes_dir, config.tape_name)
    app = create_app(config, store=store)

    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, args.host, args.port)
    await site.start()

    # Resolve actual port (site._server is a private API; fall back to args.port)
    try:
        actual_port = site._server.sockets[0].getsockname()[1]
    except (AttributeError, IndexError, OSError):
        actual_port = args.port
    print(f"🎙️  tape-recorder v{__version__} listening on http://{args.host}:{actual_port}")
    print(f"   Upstream: {config.api_url}")
    print(f"📼 Tape file: {store.path}")
    print(f"📝 Log file:  {config.log_file}")
    print("\nRecording. Press Ctrl+C to stop.")

    try:
        while True:
            await asyncio.sleep(3600)
    except asyncio.CancelledError:
        pass
    finally:
        await runner.cleanup()

        stats = store.get_summary()
        print("\n📊 Tape summary:")
        print(f"   Recorded {stats['interactions']} interactions")
        if stats["status_codes"]:
            codes = ", ".join(f"{code}×{n}" for code, n in stats["status_codes"].items())
            print(f"   Status codes: {codes}")
        print(f"   Tape: {stats['tape']}")

    return 0


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    if argv is None:
        argv = sys.argv[1:]

    parser = argparse.ArgumentParser(
        prog="tape-recorder",
        description="Record real API traffic into a JSON tape via a local reverse proxy. "
        "TAPE_NAME and API_URL may be given as environment variables instead of flags.",
    )
    parser.add_argument("-v", "--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--host", default="127.0.0.1", help="Listen address (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=8080, help="Listen port (default: 8080, 0 = auto)")
    parser.add_argument("--tape-name", default=None, help="Tape to record into (env: TAPE_NAME)")
    parser.add_argument("--api-url", default=None, help="Upstream API base URL (env: API_URL)")
    parser.add_argument(
        "--tapes-dir", default=None, help="Directory holding tape files (env: TAPES_DIR, default: ./tapes)"
    )
    parser.add_argument(
        "--log-file", default=None, help="Append-only log file (env: VCR_LOG_FILE, default: ./vcr_log.txt)"
    )
    return parser.parse_args(argv)


def main_entry() -> None:
    """Entry point for the tape-recorder CLI."""
    # Check if first argument is "export" subcommand
    if len(sys.argv) > 1 and sys.argv[1] == "export":
        from tape_recorder.export import export_main

        sys.exit(export_main(sys.argv[2:]))

    args = parse_args()
    try:
        code = asyncio.run(async_main(args))
    except KeyboardInterrupt:
        code = 0
    sys.exit(code)

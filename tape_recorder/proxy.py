"""Proxy handler – forward requests to the upstream API and record them on a tape."""

from __future__ import annotations

import asyncio
import gzip
import logging
import zlib
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable

import aiohttp
from aiohttp import web
from yarl import URL

from tape_recorder.config import CONFIG_ERROR_MESSAGE, FORWARD_TIMEOUT, RecorderConfig
from tape_recorder.tape import TapeStore

log = logging.getLogger("tape-recorder")

ERROR_STATUS_LINE = "HTTP/1.1 500 Internal Server Error"

# aiohttp would otherwise invent these when the caller did not send them.
SKIP_AUTO_HEADERS = ("Accept", "Accept-Encoding", "User-Agent", "Content-Type")

# Bodies are relayed whole; aiohttp does its own framing.
RELAY_SKIP_HEADERS = frozenset({"transfer-encoding"})

# Request bodies must reach the upstream exactly as the caller encoded them.
SERVER_HANDLER_ARGS = {"auto_decompress": False}


class ForwardingError(Exception):
    """The upstream could not be reached (DNS, refused connection, timeout, TLS)."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CapturedRequest:
    method: str
    url: str
    headers: list[tuple[str, str]] = field(default_factory=list)
    body: bytes = b""

    def header(self, name: str, default: str = "") -> str:
        name = name.lower()
        for key, value in self.headers:
            if key.lower() == name:
                return value
        return default


@dataclass(frozen=True)
class UpstreamResponse:
    """Raw upstream answer.

    ``header_lines[0]`` repeats the status line when the response came from
    the network; relaying skips any ``HTTP/`` line.
    """

    status_line: str
    header_lines: list[str] = field(default_factory=list)
    body: bytes = b""

    @property
    def status(self) -> int:
        return parse_status_line(self.status_line)[0]

    def header(self, name: str, default: str = "") -> str:
        name = name.lower()
        for key, value in iter_header_pairs(self.header_lines):
            if key.lower() == name:
                return value
        return default


@dataclass(frozen=True)
class ForwardResult:
    response: UpstreamResponse | None = None
    error: ForwardingError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


# ---------------------------------------------------------------------------
# Header helpers
# ---------------------------------------------------------------------------


def filter_forward_headers(headers: Iterable[tuple[str, str]]) -> list[tuple[str, str]]:
    """Drop ``Host`` (any case); keep everything else in order, duplicates included."""
    return [(k, v) for k, v in headers if k.lower() != "host"]


def format_header_lines(headers: Iterable[tuple[str, str]]) -> str:
    return "\r\n".join(f"{k}: {v}" for k, v in headers)


def headers_mapping(headers: Iterable[tuple[str, str]]) -> dict[str, str]:
    """Fold header pairs into a mapping; repeated names are joined with ', '."""
    out: dict[str, str] = {}
    for k, v in headers:
        out[k] = f"{out[k]}, {v}" if k in out else v
    return out


def iter_header_pairs(lines: Iterable[str]):
    """Yield ``(name, value)`` for each header line, skipping status lines."""
    for line in lines:
        if line.startswith("HTTP/"):
            continue
        name, sep, value = line.partition(":")
        if not sep:
            continue
        yield name.strip(), value.strip()


def parse_status_line(line: str) -> tuple[int, str]:
    """``'HTTP/1.1 404 Not Found'`` -> ``(404, 'Not Found')``."""
    parts = line.split(" ", 2)
    if len(parts) < 2 or not parts[1].isdigit():
        raise ValueError(f"Malformed status line: {line!r}")
    return int(parts[1]), parts[2] if len(parts) > 2 else ""


def status_line(resp: aiohttp.ClientResponse) -> str:
    version = resp.version or aiohttp.HttpVersion11
    return f"HTTP/{version.major}.{version.minor} {resp.status} {resp.reason or ''}".rstrip()


# ---------------------------------------------------------------------------
# Pipeline steps
# ---------------------------------------------------------------------------


async def capture_request(request: web.Request) -> CapturedRequest:
    body = await request.read()
    return CapturedRequest(
        method=request.method,
        url=request.raw_path,
        headers=list(request.headers.items()),
        body=body,
    )


async def forward_request(
    session: aiohttp.ClientSession,
    url: str,
    captured: CapturedRequest,
    *,
    timeout: float = FORWARD_TIMEOUT,
) -> ForwardResult:
    """Replay *captured* against *url*.

    *url* is sent as given, without re-quoting, so percent-escapes and dot
    segments in the caller's target reach the upstream unchanged.

    Every HTTP answer, whatever its status code, is a successful result. Only
    transport failures produce ``ForwardResult(error=...)``.
    """
    try:
        async with session.request(
            method=captured.method,
            url=URL(url, encoded=True),
            headers=filter_forward_headers(captured.headers),
            data=captured.body or None,
            skip_auto_headers=SKIP_AUTO_HEADERS,
            allow_redirects=False,
            timeout=aiohttp.ClientTimeout(total=timeout),
        ) as resp:
            body = await resp.read()
            line = status_line(resp)
            header_lines = [line] + [f"{k}: {v}" for k, v in resp.headers.items()]
    except asyncio.TimeoutError:
        return ForwardResult(
            error=ForwardingError(f"Failed to forward request to API: timed out after {timeout:g} seconds")
        )
    except aiohttp.ClientError as exc:
        return ForwardResult(error=ForwardingError(f"Failed to forward request to API: {exc}"))

    return ForwardResult(response=UpstreamResponse(status_line=line, header_lines=header_lines, body=body))


def decode_body(body: bytes, content_encoding: str = "") -> str:
    """Text form of a body for the tape (raw bytes are relayed as-is).

    A gzip or deflate body is stored decompressed while the recorded
    ``Content-Encoding`` and ``Content-Length`` lines still describe the wire
    bytes. Anything serving a tape back must drop or recompute those headers.
    """
    content_encoding = content_encoding.lower()
    if body and content_encoding in ("gzip", "deflate"):
        try:
            if content_encoding == "gzip":
                body = gzip.decompress(body)
            else:
                body = zlib.decompress(body)
        except (OSError, EOFError, zlib.error):
            pass
    return body.decode("utf-8", errors="replace")


def build_interaction(
    captured: CapturedRequest,
    upstream: UpstreamResponse,
    now: datetime | None = None,
) -> dict:
    """Build the tape entry for one exchange."""
    return {
        "timestamp": (now or datetime.now()).strftime("%Y-%m-%d %H:%M:%S"),
        "request": {
            "method": captured.method,
            "url": captured.url,
            "headers": headers_mapping(captured.headers),
            "data": decode_body(captured.body, captured.header("Content-Encoding")),
        },
        "response": {
            "body": decode_body(upstream.body, upstream.header("Content-Encoding")),
            "headers": list(upstream.header_lines),
            "status": upstream.status_line,
        },
    }


def error_response(message: str) -> UpstreamResponse:
    return UpstreamResponse(
        status_line=ERROR_STATUS_LINE,
        header_lines=["Content-Type: text/plain"],
        body=f"An error occurred: {message}".encode("utf-8"),
    )


def relay_response(upstream: UpstreamResponse) -> web.Response:
    """Build the response for the caller: same status, headers and body bytes."""
    status, reason = parse_status_line(upstream.status_line)
    return web.Response(
        status=status,
        reason=reason or None,
        headers=[(k, v) for k, v in iter_header_pairs(upstream.header_lines) if k.lower() not in RELAY_SKIP_HEADERS],
        body=upstream.body,
    )


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def proxy_handler(request: web.Request) -> web.StreamResponse:
    ctx: dict = request.app["record_ctx"]
    config: RecorderConfig = ctx["config"]
    store: TapeStore = ctx["store"]
    session: aiohttp.ClientSession = ctx["session"]
    logger: logging.Logger = ctx["log"]

    try:
        captured = await capture_request(request)
        logger.info(f"Received request: {captured.method} {captured.url}")

        upstream_url = config.api_url + captured.url
        logger.info(f"Forwarding request to: {upstream_url}")
        logger.debug(f"Forwarded headers:\r\n{format_header_lines(filter_forward_headers(captured.headers))}")
        result = await forward_request(session, upstream_url, captured, timeout=config.timeout)

        if result.ok:
            upstream = result.response
            logger.info(f"Forwarded request to API. Response code: {upstream.status_line}")
            await store.append(build_interaction(captured, upstream))
            logger.info("Saved interaction to tape")
        else:
            logger.error(f"Error: {result.error}")
            upstream = error_response(str(result.error))
    except Exception as exc:
        logger.error(f"Error: {exc}")
        upstream = error_response(str(exc))

    logger.info(f"Sending response: {upstream.status_line}")
    resp = relay_response(upstream)
    await resp.prepare(request)
    await resp.write_eof()
    logger.info(f"Response sent. Body length: {len(upstream.body)}")
    logger.info("Sent response back to client")
    logger.info("Request handling completed")
    return resp


async def config_error_handler(request: web.Request) -> web.Response:
    await request.read()
    return web.Response(status=500, text=CONFIG_ERROR_MESSAGE)


# ---------------------------------------------------------------------------
# Application factories
# ---------------------------------------------------------------------------


async def _open_session(app: web.Application) -> None:
    app["record_ctx"]["session"] = aiohttp.ClientSession(auto_decompress=False)


async def _close_session(app: web.Application) -> None:
    session = app["record_ctx"].get("session")
    if session is not None:
        await session.close()


def create_app(
    config: RecorderConfig,
    *,
    store: TapeStore | None = None,
    logger: logging.Logger | None = None,
) -> web.Application:
    """Recording proxy: every path and method is forwarded to ``config.api_url``."""
    app = web.Application(handler_args=SERVER_HANDLER_ARGS)
    app["record_ctx"] = {
        "config": config,
        "store": store or TapeStore(config.tapes_dir, config.tape_name),
        "session": None,
        "log": logger or log,
    }
    app.on_startup.append(_open_session)
    app.on_cleanup.append(_close_session)
    app.router.add_route("*", "/{path_info:.*}", proxy_handler)
    return app


def create_config_error_app() -> web.Application:
    """Application that answers every request with the configuration error."""
    app = web.Application(handler_args=SERVER_HANDLER_ARGS)
    app.router.add_route("*", "/{path_info:.*}", config_error_handler)
    return app

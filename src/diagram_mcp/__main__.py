#!/usr/bin/env python3
"""
Diagram MCP - Entry Point

Supports two transport modes:
- stdio: Standard I/O (default, for Claude Desktop). A static file server on
  the configured port keeps "link" output reachable.
- http: Streamable HTTP transport on /mcp, plus / and /static
"""

import argparse
import asyncio
import logging
import socket
import sys
from typing import Optional

import uvicorn

logger = logging.getLogger("diagram_mcp")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="diagram-mcp",
        description="MCP server for rendering Mermaid diagrams and Plotly charts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with STDIO transport (default, for Claude Desktop)
  diagram-mcp

  # Run with HTTP transport on port 3000
  diagram-mcp --transport http --port 3000

  # Store rendered files in a custom directory
  diagram-mcp --static-dir /tmp/diagrams

Environment variables: STATIC_DIR, ALLOWED_DIRS, PORT, TRANSPORT_TYPE.
Command line options take precedence.

Note: Rendering requires a Playwright Chromium (playwright install chromium).
"""
    )
    parser.add_argument(
        "--transport",
        choices=["stdio", "http"],
        default=None,
        help="Transport mode (default: $TRANSPORT_TYPE or stdio)"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port for HTTP and static file serving (default: $PORT or 8099)"
    )
    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host to bind (default: 0.0.0.0)"
    )
    parser.add_argument(
        "--static-dir",
        type=str,
        default=None,
        help="Directory for rendered files (default: $STATIC_DIR or ./temp-images)"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        help="Log level (default: INFO)"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__import__('diagram_mcp').__version__}"
    )
    return parser


def load_settings(args: argparse.Namespace):
    from .config import Settings

    overrides = {
        "transport_type": args.transport,
        "port": args.port,
        "host": args.host,
        "static_dir": args.static_dir,
        "log_level": args.log_level,
    }
    return Settings(**{k: v for k, v in overrides.items() if v is not None})


def bind_socket(host: str, port: int) -> socket.socket:
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    try:
        sock.bind((host, port))
    except OSError:
        sock.close()
        raise
    sock.set_inheritable(True)
    return sock


def build_http_server(app, settings) -> uvicorn.Server:
    config = uvicorn.Config(
        app,
        host=settings.host,
        port=settings.port,
        log_config=None,
        access_log=False,
        timeout_graceful_shutdown=int(settings.shutdown_grace_seconds),
    )
    return uvicorn.Server(config)


async def serve(settings) -> None:
    from .file_manager import FileManager
    from .server import create_server
    from .tools import RenderTools

    # Purge before any render traffic is accepted
    deleted = await FileManager(settings.static_dir, settings.allowed_dirs).purge()
    logger.info("event=startup_purge deleted=%d static_dir=%s", deleted, settings.static_root)

    tools = RenderTools(settings)
    mcp = create_server(settings, tools)

    try:
        if settings.transport_type == "http":
            await _serve_http(mcp, tools, settings)
        else:
            await _serve_stdio(mcp, tools, settings)
    finally:
        await tools.aclose()
        logger.info("event=shutdown_complete")


async def _serve_http(mcp, tools, settings) -> None:
    from .server import create_http_app

    app = create_http_app(mcp, settings, include_mcp=True, on_shutdown=[tools.aclose])
    sock = bind_socket(settings.host, settings.port)
    logger.info("Server running on http://localhost:%s", settings.port)
    logger.info("MCP HTTP server available at http://localhost:%s/mcp", settings.port)
    logger.info("Static files available at http://localhost:%s/static", settings.port)
    await build_http_server(app, settings).serve(sockets=[sock])


async def _serve_stdio(mcp, tools, settings) -> None:
    from .server import create_http_app

    server: Optional[uvicorn.Server] = None
    static_task: Optional[asyncio.Task] = None
    try:
        sock = bind_socket(settings.host, settings.port)
    except OSError as e:
        logger.warning(
            "event=static_server_unavailable port=%s error=%s; link output will not resolve",
            settings.port, e,
        )
    else:
        app = create_http_app(mcp, settings, include_mcp=False, on_shutdown=[tools.aclose])
        server = build_http_server(app, settings)
        static_task = asyncio.create_task(server.serve(sockets=[sock]))
        logger.info("Static files available at http://localhost:%s/static", settings.port)

    try:
        await mcp.run_stdio_async()
    finally:
        if server is not None and static_task is not None:
            server.should_exit = True
            await static_task


def main():
    args = build_parser().parse_args()
    settings = load_settings(args)

    from .logging_config import setup_logging

    setup_logging(
        settings.log_level,
        settings.log_dir,
        console=settings.transport_type == "http",
    )

    try:
        asyncio.run(serve(settings))
    except KeyboardInterrupt:
        logger.info("event=interrupted")
    except OSError as e:
        logger.error("event=startup_failed error=%s", e)
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()

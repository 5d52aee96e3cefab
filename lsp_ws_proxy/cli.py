"""
Command line entry point.

Usage:
    lsp-ws-proxy --jar server.jar
    lsp-ws-proxy --addr 0.0.0.0:5008 -- /path/to/language-server --stdio
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from .config import DEFAULT_ADDR, MAX_MESSAGE_SIZE, ProxyConfig, Timeouts, parse_address
from .log import setup_logging
from .server import LSPProxyServer

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    defaults = Timeouts()
    parser = argparse.ArgumentParser(
        prog="lsp-ws-proxy",
        description="Bridge WebSocket clients to a stdio language server",
    )
    parser.add_argument("command", nargs="*",
                        help="language server command (after --); defaults to '--stdio' when no arguments are given")
    parser.add_argument("--addr", default=DEFAULT_ADDR, help="WebSocket listen address (host:port)")
    parser.add_argument("--jar", help="run 'java -jar JAR --stdio' as the language server")
    parser.add_argument("--origin", action="append", metavar="ORIGIN",
                        help="allowed browser Origin (repeatable)")
    parser.add_argument("--allow-any-origin", action="store_true",
                        help="accept WebSocket upgrades from any Origin")
    parser.add_argument("--max-message-size", type=int, default=MAX_MESSAGE_SIZE,
                        help="largest message accepted from a client, in bytes")
    parser.add_argument("--write-timeout", type=float, default=defaults.write_timeout,
                        help="seconds allowed to write a ping")
    parser.add_argument("--pong-timeout", type=float, default=defaults.pong_timeout,
                        help="client liveness timeout; pings are sent at 9/10 of it")
    parser.add_argument("--close-grace", type=float, default=defaults.close_grace,
                        help="seconds to wait for the client's close frame")
    parser.add_argument("--kill-grace", type=float, default=defaults.kill_grace,
                        help="seconds between interrupting and killing the language server")
    parser.add_argument("--log-level", default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser


def parse_args(argv=None) -> argparse.Namespace:
    parser = build_parser()
    args = parser.parse_args(argv)

    if bool(args.jar) == bool(args.command):
        parser.error("give either --jar or a language server command after --")
    try:
        parse_address(args.addr)
    except ValueError as e:
        parser.error(str(e))
    return args


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging(args.log_level)

    if args.jar and not Path(args.jar).exists():
        print(f"ERROR: LSP JAR not found: {args.jar}", file=sys.stderr)
        return 1

    server = LSPProxyServer(ProxyConfig.from_args(args))
    try:
        asyncio.run(server.run())
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    except OSError as e:
        logger.error("Could not listen on %s: %s", args.addr, e)
        return 1
    return 0

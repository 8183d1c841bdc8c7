#!/usr/bin/env python3
"""
RESP-Cache Server Entry Point

This is the main entry point for starting the RESP-Cache server.

Usage:
    python -m respcache.server                     # Default settings (127.0.0.1:6379)
    python -m respcache.server --port 6380         # Custom port
    python -m respcache.server --host 0.0.0.0      # Listen on all interfaces
    python -m respcache.server --password secret   # Require AUTH
    python -m respcache.server --debug             # Enable debug logging

Environment Variables:
    RESP_CACHE_HOST             - Server bind address
    RESP_CACHE_PORT             - Server port
    RESP_CACHE_PASSWORD         - Password required by AUTH (empty disables)
    RESP_CACHE_MAX_CONNECTIONS  - Maximum simultaneous clients
    RESP_CACHE_DEBUG            - Enable debug mode (true/false)
    RESP_CACHE_LOG_LEVEL        - Log level when not in debug mode
"""

import argparse
import asyncio
import logging
import signal
import sys

from .config.settings import settings
from .network.tcp_server import RespServer


def parse_args(argv=None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="RESP-Cache: In-Memory Key-Value Store Server",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--host",
        type=str,
        default=settings.HOST,
        help="Host address to bind to",
    )

    parser.add_argument(
        "--port",
        type=int,
        default=settings.PORT,
        help="Port number to listen on",
    )

    parser.add_argument(
        "--password",
        type=str,
        default=settings.PASSWORD,
        help="Password clients must send with AUTH (empty disables auth)",
    )

    parser.add_argument(
        "--max-connections",
        type=int,
        default=settings.MAX_CONNECTIONS,
        help="Maximum number of simultaneous clients",
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        default=settings.DEBUG,
        help="Enable debug logging",
    )

    return parser.parse_args(argv)


def setup_logging(debug: bool = False) -> None:
    """Configure logging based on debug flag."""
    level = logging.DEBUG if debug else getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
        ]
    )


def main(argv=None) -> None:
    """Main entry point for the server."""
    args = parse_args(argv)

    setup_logging(debug=args.debug)
    logger = logging.getLogger(__name__)

    server = RespServer(
        host=args.host,
        port=args.port,
        password=args.password,
        max_connections=args.max_connections,
    )

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    # Setup signal handlers for graceful shutdown
    shutdown_event = asyncio.Event()
    shutdown_tasks = []

    async def shutdown(sig: signal.Signals) -> None:
        """Handle shutdown signal."""
        logger.info(f"Received signal {sig.name}, initiating shutdown...")
        try:
            await server.stop()
        finally:
            shutdown_event.set()

    def request_shutdown(sig: signal.Signals) -> None:
        shutdown_tasks.append(loop.create_task(shutdown(sig)))

    # Register signal handlers (Unix only)
    if sys.platform != 'win32':
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, request_shutdown, sig)

    logger.info("Starting RESP-Cache server")
    logger.info(f"  Host: {args.host}")
    logger.info(f"  Port: {args.port}")
    logger.info(f"  Auth: {'enabled' if args.password else 'disabled'}")
    logger.info(f"  Max connections: {args.max_connections}")
    logger.info(f"  Debug: {args.debug}")

    try:
        loop.run_until_complete(server.start())
        # start() returns as soon as the listener closes; let stop() finish
        if shutdown_tasks:
            loop.run_until_complete(shutdown_event.wait())
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
        loop.run_until_complete(server.stop())
    except OSError as e:
        logger.error(f"Server error: {e}")
        raise
    finally:
        loop.run_until_complete(loop.shutdown_asyncgens())
        loop.close()
        logger.info("Server shutdown complete")


if __name__ == "__main__":
    main()

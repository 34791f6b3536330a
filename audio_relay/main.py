# © Copyright 2025 Stuart Parmenter
# SPDX-License-Identifier: MIT

import argparse
import asyncio
import logging

from .api.server import start_server
from .config import Config


def setup_logging(config, override_level=None):
    """Configure logging based on config settings."""
    # Determine log level from override, config, or default
    log_level_str = override_level.lower() if override_level else config.get("log.level").lower()

    # Map string levels to logging constants
    level_map = {
        "debug": logging.DEBUG,
        "info": logging.INFO,
        "warning": logging.WARNING,
        "warn": logging.WARNING,  # alias
        "error": logging.ERROR,
        "critical": logging.CRITICAL,
    }

    log_level = level_map.get(log_level_str, logging.INFO)

    logging.basicConfig(
        level=log_level,
        format="[%(levelname)s] [%(name)s] %(message)s",  # Level first, then logger name
        handlers=[logging.StreamHandler()],
        force=True,  # Reset any existing configuration
    )

    # aiohttp logs every request at INFO; keep that for debug runs only
    if log_level > logging.DEBUG:
        logging.getLogger("aiohttp.access").setLevel(logging.WARNING)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Audio Relay Server")
    parser.add_argument("--host", default=None, help="Host to bind to (default: server.host)")
    parser.add_argument("--port", type=int, default=None, help="Port to bind to (default: $PORT or server.port)")
    parser.add_argument("--config", default=None, help="Path to YAML/TOML/JSON config file")
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["debug", "info", "warning", "warn", "error", "critical"],
        type=str.lower,
        help="Set logging level (overrides config file)",
    )
    return parser.parse_args(argv)


async def main(argv=None):
    """Main entry point for the audio relay server."""
    args = parse_args(argv)

    # Load configuration (defaults <- file <- $PORT <- CLI)
    config = Config()
    config.load(args.config)
    if args.host:
        config.set("server.host", args.host)
    if args.port:
        config.set("server.port", args.port)

    setup_logging(config, override_level=args.log_level)
    logger = logging.getLogger("main")
    logger.info(f"loaded config: {config.get()}")

    runner = await start_server(config.get("server.host"), int(config.get("server.port")))
    try:
        # Keep running until interrupted
        await asyncio.Future()  # run forever
    finally:
        await runner.cleanup()


def run():
    """Entry point for setuptools console scripts."""
    # Setup high-performance event loop (uvloop)
    try:
        import uvloop  # type: ignore[import-not-found]

        asyncio.set_event_loop_policy(uvloop.EventLoopPolicy())
    except ImportError:
        pass

    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logging.getLogger("main").info("Shutting down...")


if __name__ == "__main__":
    run()

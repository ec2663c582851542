"""
CLI entrypoint for the rollups node.

Usage:
    python -m rollups_node
    python -m rollups_node --config node.yaml --log-level debug
"""
import argparse
import asyncio
import logging
import signal
import sys
import threading
import time
from pathlib import Path
from typing import List, Optional, Tuple

import uvicorn

from rollups_node import logger as node_logger
from rollups_node.config import LOG_LEVELS, ConfigError, NodeConfig, apply_config_file, get_config
from rollups_node.node import Node, build_registry
from rollups_node.status.api import create_app


logger = logging.getLogger(__name__)

# Seconds to wait for the status API to start and to shut down
STATUS_API_START_TIMEOUT = 5.0
STATUS_API_STOP_TIMEOUT = 5.0


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Cartesi Rollups Node")
    parser.add_argument(
        "--config",
        type=Path,
        help="YAML file of environment variables for the node and its services"
    )
    parser.add_argument(
        "--log-level",
        choices=LOG_LEVELS,
        help="Log level (default: CARTESI_LOG_LEVEL or info)"
    )
    parser.add_argument(
        "--no-status-api",
        action="store_true",
        help="Do not serve the status API"
    )
    return parser.parse_args(argv)


def start_status_api(node: Node, config: NodeConfig) -> Tuple[uvicorn.Server, threading.Thread]:
    """Serve the status API from a background thread."""
    server = uvicorn.Server(uvicorn.Config(
        create_app(node),
        host=config.http_address,
        port=config.http_port,
        log_level=config.log_level
    ))
    # uvicorn only installs signal handlers on the main thread
    thread = threading.Thread(target=server.run, name="status-api", daemon=True)
    thread.start()

    deadline = time.monotonic() + STATUS_API_START_TIMEOUT
    while not server.started and thread.is_alive() and time.monotonic() < deadline:
        time.sleep(0.05)

    if server.started:
        logger.info("status API listening on %s:%d", config.http_address, config.http_port)
    else:
        # uvicorn exits its thread when the bind fails
        logger.error(
            "status API failed to start on %s:%d, continuing without it",
            config.http_address, config.http_port
        )
    return server, thread


async def run_node(node: Node) -> int:
    """
    Run the node until SIGINT/SIGTERM or until a service fails.

    Returns:
        Process exit code: 0 on clean shutdown, 1 if any service failed
    """
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, stop.set)

    try:
        results = await node.run(stop)
    finally:
        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(signum)

    failed = [name for name, error in results.items() if error is not None]
    if failed:
        logger.error("node stopped after failure of: %s", ", ".join(failed))
        return 1

    logger.info("node stopped")
    return 0


def main(argv: Optional[List[str]] = None):
    """Run the rollups node."""
    args = parse_args(argv)

    try:
        if args.config:
            apply_config_file(args.config)
        config = get_config()
        registry = build_registry()
    except FileNotFoundError as e:
        print(f"❌ Error: config file not found: {e.filename}", file=sys.stderr)
        sys.exit(1)
    except ConfigError as e:
        print(f"❌ Error: {e}", file=sys.stderr)
        sys.exit(1)

    if args.log_level:
        config.log_level = args.log_level
    node_logger.init(config.log_level, config.log_timestamp)

    node = Node(
        registry,
        grace_period=config.shutdown_grace_period,
        ready_timeout=config.ready_timeout
    )

    server, thread = None, None
    if config.status_api_enabled and not args.no_status_api:
        server, thread = start_status_api(node, config)

    try:
        exit_code = asyncio.run(run_node(node))
    finally:
        if server is not None:
            server.should_exit = True
            thread.join(STATUS_API_STOP_TIMEOUT)

    sys.exit(exit_code)


if __name__ == "__main__":
    main()

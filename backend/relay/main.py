"""
Realtime Relay - Entry Point

Usage:
    python -m relay.main [OPTIONS]

Examples:
    # Default configuration (OPENAI_API_KEY from environment or .env)
    python -m relay.main

    # Custom port
    python -m relay.main --port 9000

    # Custom upstream endpoint and model
    python -m relay.main \
        --upstream-url wss://example.com/v1/realtime \
        --model gpt-4o-realtime-preview
"""

import argparse
import asyncio
import dataclasses
import logging
import sys

from relay.config import RelayConfig
from relay.errors import ConfigError
from relay.logger_config import setup_logger
from relay.protocol import mask_secret
from relay.server import RelayServer

logger = logging.getLogger("relay.main")


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Realtime Relay - Forwards client WebSocket events to a Realtime API",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    # Listener configuration
    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="WebSocket server host (default: $RELAY_HOST or 0.0.0.0)"
    )

    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="WebSocket server port (default: $PORT or 8081)"
    )

    # Upstream configuration
    parser.add_argument(
        "--upstream-url",
        type=str,
        default=None,
        help="Realtime WebSocket endpoint (default: $OPENAI_REALTIME_URL)"
    )

    parser.add_argument(
        "--model",
        type=str,
        default=None,
        help="Realtime model (default: $OPENAI_REALTIME_MODEL)"
    )

    parser.add_argument(
        "--connect-timeout",
        type=float,
        default=None,
        help="Upstream connect timeout in seconds (default: $RELAY_CONNECT_TIMEOUT or 10)"
    )

    parser.add_argument(
        "--max-pending",
        type=int,
        default=None,
        help="Client events buffered per session while connecting (default: $RELAY_MAX_PENDING or 1000)"
    )

    # Misc
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        help="Logging level (default: $LOG_LEVEL or INFO)"
    )

    parser.add_argument(
        "--env-file",
        type=str,
        default=None,
        help="Path to a .env file (default: search from the working directory)"
    )

    return parser.parse_args(argv)


def build_config(args) -> RelayConfig:
    """Load configuration from the environment and apply command line overrides."""
    config = RelayConfig.from_env(env_file=args.env_file)

    overrides = {
        "host": args.host,
        "port": args.port,
        "upstream_url": args.upstream_url,
        "model": args.model,
        "connect_timeout": args.connect_timeout,
        "max_pending_messages": args.max_pending,
        "log_level": args.log_level.upper() if args.log_level else None,
    }
    # replace() re-runs RelayConfig validation on the overridden values
    return dataclasses.replace(
        config,
        **{name: value for name, value in overrides.items() if value is not None}
    )


def print_banner(config: RelayConfig):
    """Print startup banner."""
    print("=" * 60)
    print("Realtime Relay")
    print("=" * 60)
    print()
    print("Configuration:")
    print(f"  WebSocket:       ws://{config.host}:{config.port}")
    print(f"  Upstream:        {config.upstream_url}")
    print(f"  Model:           {config.model}")
    print(f"  API key:         {mask_secret(config.api_key)}")
    print(f"  Connect timeout: {config.connect_timeout}s")
    print(f"  Max pending:     {config.max_pending_messages}")
    print()
    print("=" * 60)
    print()


async def run(config: RelayConfig):
    server = RelayServer.from_config(config)
    await server.listen()


def main(argv=None):
    """Main entry point."""
    args = parse_args(argv)

    try:
        config = build_config(args)
    except ConfigError as e:
        print(e, file=sys.stderr)
        sys.exit(1)

    setup_logger("relay", level=config.log_level)
    print_banner(config)

    try:
        asyncio.run(run(config))

    except KeyboardInterrupt:
        print("\n[Main] Interrupted by user")
        sys.exit(0)

    except Exception:
        # A session defect leaves the relay in an unknown state: exit so a
        # supervisor can restart it
        logger.exception("[Main] Fatal error")
        sys.exit(1)


if __name__ == "__main__":
    main()

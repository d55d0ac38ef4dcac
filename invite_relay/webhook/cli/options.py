"""Command-line argument parsing for the relay server."""

from __future__ import annotations

import argparse
import os

from invite_relay.logging.config import add_logging_arguments

from .models import RelayServerCliOptions


def _parse_args(argv: list[str] | None = None) -> RelayServerCliOptions:
    """Parse CLI args and build `RelayServerCliOptions`.

    Parameters
    ----------
    argv : list[str] | None, optional
        Argument list to parse. If None, uses sys.argv.

    Returns
    -------
    RelayServerCliOptions
        Validated immutable options for starting the relay server.
    """
    parser = argparse.ArgumentParser(description="Run the Slack invite relay server")
    parser.add_argument(
        "--host",
        default="0.0.0.0",
        help="Host to bind to (default: 0.0.0.0)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.getenv("PORT", "8080")),
        help="Port to listen on (default: PORT environment variable or 8080)",
    )
    parser.add_argument(
        "--env-file",
        default=".env",
        help="Path to .env file (default: .env in current directory)",
    )
    parser.add_argument(
        "--no-env-file",
        action="store_true",
        help="Disable loading from .env file",
    )

    # Add centralized logging arguments
    parser = add_logging_arguments(parser)

    return RelayServerCliOptions.deserialize(parser.parse_args(argv))

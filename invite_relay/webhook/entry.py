"""Relay server entry point.

Quick Start
===========

.. code-block:: bash

    export FORM_VERIFICATION_TOKEN=... SLACK_WEBHOOK_URL=https://hooks.slack.com/services/...
    export SLACK_ORG_NAME=myteam SLACK_VERIFICATION_TOKEN=... SLACK_ACCESS_TOKEN=xoxp-...
    python -m invite_relay.webhook --port 8080

Environment Variables
=====================
- **FORM_VERIFICATION_TOKEN**: shared secret expected in ``/review?token=``
- **SLACK_WEBHOOK_URL**: incoming webhook that receives review messages
- **SLACK_ORG_NAME** / **SLACK_INVITE_URL**: where invitations are sent
- **SLACK_VERIFICATION_TOKEN**: shared secret of interactive callbacks
- **SLACK_ACCESS_TOKEN**: credential sent with each invitation
- **PORT**: default listen port (8080)
- **LOG_LEVEL** / **LOG_FILE** / **LOG_DIR** / **LOG_FORMAT**: logging defaults
  for the matching ``--log-*`` options

See :class:`invite_relay.settings.SettingModel` for the delivery tuning knobs
(queue capacity, retry limits, drain timeout).

Configuration Files
===================
Environment variables can be loaded from a .env file, which takes precedence
over the process environment:

.. code-block:: bash

    python -m invite_relay.webhook --env-file /etc/invite-relay/.env
    python -m invite_relay.webhook --no-env-file
"""

import asyncio
import logging
import pathlib
from typing import Final, Optional

import uvicorn
from dotenv import load_dotenv

from invite_relay.logging.config import setup_logging_from_args
from invite_relay.settings import SettingModel, get_settings

from .cli.options import _parse_args
from .server import create_relay_app

__all__: list[str] = ["run_relay_server", "main"]

_LOG: Final[logging.Logger] = logging.getLogger(__name__)


async def run_relay_server(settings: SettingModel, host: str = "0.0.0.0", port: int = 8080) -> None:
    """Run the relay server until it is stopped.

    uvicorn runs the app's lifespan, so the delivery workers start with the
    server and drain when it receives SIGINT/SIGTERM.

    Parameters
    ----------
    settings : SettingModel
        The loaded configuration
    host : str, optional
        The host interface to listen on. Default is "0.0.0.0".
    port : int, optional
        The port number to listen on. Default is 8080.
    """
    _LOG.info(f"Starting Slack invite relay on {host}:{port}")

    app = create_relay_app(settings)

    config = uvicorn.Config(app=app, host=host, port=port, log_config=None)
    server = uvicorn.Server(config=config)
    await server.serve()


def main(argv: Optional[list[str]] = None) -> None:
    """Parse arguments, load configuration and run the relay server.

    Parameters
    ----------
    argv : Optional[list[str]], optional
        Command-line arguments to parse. If None, uses sys.argv.
    """
    args = _parse_args(argv)

    # Load environment variables from .env file if not disabled
    env_path: Optional[pathlib.Path] = None
    if not args.no_env_file:
        env_path = pathlib.Path(args.env_file)
        if env_path.exists():
            load_dotenv(dotenv_path=env_path, override=True)

    settings = get_settings(env_file=args.env_file, no_env_file=args.no_env_file)

    # Command-line logging options win over the LOG_* settings
    setup_logging_from_args(args, settings=settings)

    if env_path is not None:
        if env_path.exists():
            _LOG.info(f"Loaded environment variables from {env_path.resolve()}")
        else:
            _LOG.warning(f"Environment file not found: {env_path.resolve()}")

    asyncio.run(run_relay_server(settings, host=args.host, port=args.port))


if __name__ == "__main__":
    main()

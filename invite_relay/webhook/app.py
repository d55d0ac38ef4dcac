"""
FastAPI web server for the invite relay.

This module owns the single FastAPI instance of the process. The instance's
lifespan starts the relay's delivery workers and, on shutdown, drains them
before the process exits.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Final, Type

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from invite_relay import __version__
from invite_relay._base import BaseServerFactory
from invite_relay.relay import InviteRelay
from invite_relay.settings import SettingModel

_LOG: Final[logging.Logger] = logging.getLogger(__name__)


def relay_lifespan(relay: InviteRelay):
    """Build a lifespan that runs the relay's workers for the life of the app."""

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        relay.start()
        try:
            yield
        finally:
            _LOG.info("Web server stopping; draining delivery workers")
            await relay.shutdown()

    return lifespan


class WebServerFactory(BaseServerFactory[FastAPI]):
    server_name = "web server"

    @staticmethod
    def build(**kwargs) -> FastAPI:
        """
        Create and configure the web API server.

        Args:
            settings: The loaded ``SettingModel`` (required)
            relay: The ``InviteRelay`` whose workers the app runs (required)

        Returns:
            Configured FastAPI server instance
        """
        settings: SettingModel = kwargs["settings"]
        relay: InviteRelay = kwargs["relay"]

        app = FastAPI(
            title="Slack Invite Relay",
            description="Relays form submissions to Slack for review and invites accepted applicants",
            version=__version__,
            lifespan=relay_lifespan(relay),
        )
        app.state.relay = relay
        app.state.settings = settings

        app.add_middleware(
            CORSMiddleware,
            allow_origins=SettingModel.split_csv(settings.cors_allow_origins),
            allow_methods=SettingModel.split_csv(settings.cors_allow_methods),
            allow_headers=SettingModel.split_csv(settings.cors_allow_headers),
        )
        return app


web_factory: Final[Type[WebServerFactory]] = WebServerFactory

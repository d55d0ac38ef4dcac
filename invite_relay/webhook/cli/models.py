"""Pydantic models for the relay server CLI options.

Examples
--------
.. code-block:: python

    from invite_relay.webhook.cli.options import _parse_args

    opts = _parse_args(["--port", "3001"])  # RelayServerCliOptions
    assert opts.port == 3001
"""

from __future__ import annotations

import argparse

from pydantic import BaseModel, ConfigDict, Field


class RelayServerCliOptions(BaseModel):
    """Validated CLI options for the relay server entrypoint.

    Fields
    ------
    host : str
        Host to bind (default: 0.0.0.0)
    port : int
        Port to listen on (default: ``PORT`` env var or 8080)
    log_level : str | None
        Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL); unset falls
        back to the ``LOG_LEVEL`` setting
    log_file : str | None
        Path to log file (optional)
    log_dir : str | None
        Directory for log files (optional)
    log_format : str | None
        Log message format (optional)
    env_file : str
        Path to .env file for environment variable loading
    no_env_file : bool
        Disable loading .env file when True
    """

    host: str = "0.0.0.0"
    port: int = Field(8080, ge=1, le=65535)
    log_level: str | None = None
    log_file: str | None = None
    log_dir: str | None = None
    log_format: str | None = None

    env_file: str = ".env"
    no_env_file: bool = False

    model_config = ConfigDict(frozen=True, extra="ignore")

    @classmethod
    def deserialize(cls, ns: argparse.Namespace) -> "RelayServerCliOptions":
        """Build a validated options object from argparse namespace."""
        data = {name: getattr(ns, name) for name in cls.model_fields.keys() if hasattr(ns, name)}
        return cls(**data)

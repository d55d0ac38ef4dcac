"""
Base server factory.

A server factory holds the one server object of the process: the web app
is built once at startup, looked up later by whoever needs it, and dropped
again between tests.
"""

from abc import ABCMeta, abstractmethod
from typing import Any, ClassVar, Optional


class BaseServerFactory[T](metaclass=ABCMeta):
    """Process-wide singleton holder for a server instance of type ``T``.

    Subclasses implement :meth:`build`; this class guards the single instance.
    Each subclass keeps its own instance.

    Examples
    --------
    .. code-block:: python

        from invite_relay.webhook.app import web_factory

        # Create once at startup
        app = web_factory.create(settings=settings, relay=relay)

        # Retrieve later
        app = web_factory.get()

        # Reset for tests
        web_factory.reset()
    """

    server_name: ClassVar[str] = "server"
    _instance: ClassVar[Optional[Any]] = None

    @staticmethod
    @abstractmethod
    def build(**kwargs) -> T:
        """Construct and configure a new server instance.

        Parameters
        ----------
        **kwargs
            Whatever the concrete server needs to be configured

        Returns
        -------
        T
            The configured server instance
        """

    @classmethod
    def create(cls, **kwargs) -> T:
        """Build the instance and remember it.

        Raises
        ------
        AssertionError
            If an instance already exists and :meth:`reset` was not called.
        """
        assert cls._instance is None, f"It is not allowed to create more than one instance of {cls.server_name}."
        cls._instance = cls.build(**kwargs)
        return cls._instance

    @classmethod
    def get(cls) -> T:
        """Return the instance built by :meth:`create`.

        Raises
        ------
        AssertionError
            If the instance has not been created yet.
        """
        assert cls._instance is not None, f"It must be created {cls.server_name} first."
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Forget the instance (primarily for testing)."""
        cls._instance = None

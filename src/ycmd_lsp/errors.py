"""Error types raised by the ycmd client."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ycmd_lsp.exception_router import ExceptionOutcome
    from ycmd_lsp.results import ServerException


class YcmdError(Exception):
    """Base class for all ycmd client errors."""


class ConfigurationError(YcmdError):
    """The client is missing settings it needs to start a server."""


class StartupTimeout(YcmdError):
    """The server did not announce readiness before the startup timeout."""


class TransportError(YcmdError):
    """The HTTP exchange with the server failed (refused, reset, timed out)."""


class ProtocolException(YcmdError):
    """The server answered with a structured exception payload.

    By the time this is raised the exception has already been routed, and
    ``outcome`` records what the router did with it.
    """

    def __init__(self, exception: ServerException, outcome: ExceptionOutcome) -> None:
        super().__init__(f"{exception.kind}: {exception.message}")
        self.exception = exception
        self.outcome = outcome

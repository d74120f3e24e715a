"""
HTTP request dispatch to the ycmd server.

Builds the request envelope, signs it with the current session secret, sends
it with httpx and decodes the answer. Structured server exceptions are handed
to an exception handler before the caller is told the call failed.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable

import httpx

from ycmd_lsp.config import YcmdSettings
from ycmd_lsp.errors import ProtocolException, TransportError
from ycmd_lsp.exception_router import ExceptionOutcome
from ycmd_lsp.hmac_auth import request_signature
from ycmd_lsp.results import Parser, Result, ServerException, decode, decode_generic

if TYPE_CHECKING:
    from ycmd_lsp.session import ServerSession, SessionManager
    from ycmd_lsp.text_buffer import SourceBuffer

logger = logging.getLogger(__name__)

ExceptionHandler = Callable[
    [ServerException, "SourceBuffer | None"], Awaitable[ExceptionOutcome]
]


@dataclass(frozen=True)
class RequestEnvelope:
    """One request as it goes over the wire.

    ``body`` holds the exact bytes that are signed and sent.
    """

    method: str
    path: str
    body: bytes

    @classmethod
    def build(cls, method: str, path: str, payload: Any = None) -> RequestEnvelope:
        method = method.upper()
        if payload is None:
            body = b""
        else:
            body = json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
        return cls(method=method, path=path, body=body)


def _decode_json(response: httpx.Response) -> Any:
    """Decode a JSON body, returning ``None`` for empty or malformed bodies."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return None


class RequestDispatcher:
    """Sends signed requests to the server owned by ``sessions``."""

    def __init__(
        self,
        settings: YcmdSettings,
        sessions: SessionManager,
        exception_handler: ExceptionHandler | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._sessions = sessions
        self._exception_handler = exception_handler
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def set_exception_handler(self, handler: ExceptionHandler | None) -> None:
        self._exception_handler = handler

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self._settings.request_timeout,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _session_for_request(self, start_server: bool) -> ServerSession:
        if start_server:
            try:
                return await self._sessions.ensure_running()
            except OSError as e:
                raise TransportError(f"Could not start ycmd: {e}") from e
        session = self._sessions.session
        if session is None or not self._sessions.is_running():
            raise TransportError("ycmd server is not running")
        return session

    async def send(
        self,
        path: str,
        body: Any = None,
        *,
        method: str = "POST",
        parser: Parser = decode_generic,
        buffer: SourceBuffer | None = None,
        start_server: bool = True,
    ) -> Result | None:
        """Send a request and wait for its decoded result.

        Returns ``None`` when the server's answer is empty or cannot be
        decoded with ``parser``.

        Raises:
            TransportError: The request could not be completed.
            ProtocolException: The server answered with an exception; it has
                already been passed to the exception handler.
        """
        session = await self._session_for_request(start_server)

        # Secret and address are taken once; the request is never re-signed
        envelope = RequestEnvelope.build(method, path, body)
        signature = request_signature(
            envelope.method, envelope.path, envelope.body, session.secret
        )
        headers = {self._settings.hmac_header: signature}
        if envelope.body:
            headers["Content-Type"] = "application/json"

        logger.debug(f"ycmd request: {envelope.method} {envelope.path}")
        try:
            response = await self._get_client().request(
                envelope.method,
                session.base_url + envelope.path,
                content=envelope.body or None,
                headers=headers,
            )
        except httpx.HTTPError as e:
            raise TransportError(f"{envelope.method} {envelope.path} failed: {e}") from e
        except OSError as e:
            raise TransportError(f"{envelope.method} {envelope.path} failed: {e}") from e

        payload = _decode_json(response)
        if payload is None and response.is_error:
            raise TransportError(
                f"{envelope.method} {envelope.path}: HTTP {response.status_code} "
                f"{response.text.strip()}"
            )

        result = decode(payload, parser)
        if isinstance(result, ServerException):
            await self._route_exception(result, buffer)
        return result

    def submit(
        self,
        path: str,
        body: Any = None,
        *,
        method: str = "POST",
        parser: Parser = decode_generic,
        buffer: SourceBuffer | None = None,
        start_server: bool = True,
    ) -> asyncio.Task:
        """Send a request without waiting; returns a task for its result."""
        return asyncio.create_task(
            self.send(
                path,
                body,
                method=method,
                parser=parser,
                buffer=buffer,
                start_server=start_server,
            )
        )

    async def _route_exception(
        self, exception: ServerException, buffer: SourceBuffer | None
    ) -> None:
        logger.debug(f"ycmd exception: {exception.kind}: {exception.message}")
        if self._exception_handler is None:
            outcome = ExceptionOutcome.UNHANDLED
        else:
            outcome = await self._exception_handler(exception, buffer)
        raise ProtocolException(exception, outcome)

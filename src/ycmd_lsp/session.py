"""
ycmd server session management.

Spawns the server with a single-use options file carrying a fresh HMAC
secret, waits for it to announce the port it serves on, keeps it alive with
periodic pings, and shuts it down gracefully.
"""

from __future__ import annotations

import asyncio
import enum
import json
import logging
import os
import re
import signal
import sys
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable

from ycmd_lsp.config import YcmdSettings
from ycmd_lsp.errors import ConfigurationError, StartupTimeout

logger = logging.getLogger(__name__)

SECRET_LENGTH = 16

_SERVING_RE = re.compile(r"serving on http://([^\s:/]+):(\d+)")

# Interval between liveness checks while waiting for the server to exit
_EXIT_POLL_INTERVAL = 0.05


class SessionStatus(enum.Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    ERRORED = "errored"


@dataclass
class ServerSession:
    """State of one spawned server."""

    host: str
    secret: bytes
    process: asyncio.subprocess.Process | None = None
    port: int | None = None
    status: SessionStatus = SessionStatus.STARTING

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"


def parse_serving_line(line: str) -> tuple[str, int] | None:
    """Extract ``(host, port)`` from the server's readiness announcement."""
    match = _SERVING_RE.search(line)
    if match is None:
        return None
    return match.group(1), int(match.group(2))


def write_options_file(options: dict[str, Any]) -> str:
    """Write the options payload to a fresh temp file and return its path.

    The server deletes the file after reading it.
    """
    fd, path = tempfile.mkstemp(prefix="ycmd_options_", suffix=".json")
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        json.dump(options, f)
    return path


class SessionManager:
    """Owns the single ycmd server process.

    ``keepalive`` is a coroutine function performing one authenticated
    liveness request; it is called every ``keepalive_period`` seconds while
    the server runs.
    """

    def __init__(
        self,
        settings: YcmdSettings,
        keepalive: Callable[[], Awaitable[Any]] | None = None,
    ) -> None:
        self._settings = settings
        self._keepalive = keepalive
        self._session: ServerSession | None = None
        self._keepalive_task: asyncio.Task | None = None
        self._drain_task: asyncio.Task | None = None
        self._lock = asyncio.Lock()

    @property
    def session(self) -> ServerSession | None:
        return self._session

    @property
    def status(self) -> SessionStatus:
        if self._session is None:
            return SessionStatus.STOPPED
        return self._session.status

    def is_running(self) -> bool:
        """Whether the server process is alive."""
        session = self._session
        return (
            session is not None
            and session.process is not None
            and session.process.returncode is None
        )

    async def ensure_running(self) -> ServerSession:
        """Return the running session, opening one if there is none."""
        async with self._lock:
            if self.is_running() and self._session.status == SessionStatus.RUNNING:
                return self._session
            return await self._open()

    async def open(self) -> ServerSession:
        """Start a new server, tearing down any existing one."""
        async with self._lock:
            return await self._open()

    async def _open(self) -> ServerSession:
        await self._close()

        command = list(self._settings.server_command)
        if not command:
            raise ConfigurationError("No ycmd server command configured")

        secret = os.urandom(SECRET_LENGTH)
        session = ServerSession(host=self._settings.host, secret=secret)
        self._session = session

        options_path = write_options_file(self._settings.build_options(secret))
        args = command + [f"--options_file={options_path}"] + list(self._settings.server_args)
        logger.info(f"Starting ycmd: {' '.join(args)}")

        try:
            session.process = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            session.status = SessionStatus.ERRORED
            _remove_file(options_path)
            logger.error(f"Failed to start ycmd: {command}: {e}")
            raise

        try:
            host, port = await asyncio.wait_for(
                self._wait_for_port(session.process),
                timeout=self._settings.startup_timeout,
            )
        except (asyncio.TimeoutError, EOFError) as e:
            session.status = SessionStatus.ERRORED
            await self._terminate(session.process, grace=0)
            # The server never got far enough to consume its options file
            _remove_file(options_path)
            reason = "exited" if isinstance(e, EOFError) else "timed out"
            raise StartupTimeout(
                f"ycmd {reason} before announcing readiness "
                f"(timeout {self._settings.startup_timeout}s)"
            ) from None

        session.host = host
        session.port = port
        session.status = SessionStatus.RUNNING
        logger.info(f"ycmd serving on {session.base_url} (pid {session.process.pid})")

        self._drain_task = asyncio.create_task(self._drain_output(session.process))
        self._start_keepalive()
        return session

    async def _wait_for_port(self, process: asyncio.subprocess.Process) -> tuple[str, int]:
        assert process.stdout is not None
        while True:
            try:
                raw = await process.stdout.readline()
            except ValueError:
                # Longer than the stream limit: readline already dropped the buffered part
                logger.debug("ycmd: overlong output line skipped")
                continue
            if not raw:
                raise EOFError("server output closed")
            line = raw.decode("utf-8", errors="replace").rstrip()
            logger.debug(f"ycmd: {line}")
            found = parse_serving_line(line)
            if found is not None:
                return found

    async def _drain_output(self, process: asyncio.subprocess.Process) -> None:
        """Keep reading server output so the pipe never fills up."""
        assert process.stdout is not None
        while True:
            try:
                raw = await process.stdout.readline()
            except ValueError:
                # Longer than the stream limit: readline already dropped the buffered part
                logger.debug("ycmd: overlong output line skipped")
                continue
            if not raw:
                return
            logger.debug(f"ycmd: {raw.decode('utf-8', errors='replace').rstrip()}")

    def _start_keepalive(self) -> None:
        self._cancel_keepalive()
        if self._keepalive is None or self._settings.keepalive_period <= 0:
            return
        self._keepalive_task = asyncio.create_task(self._keepalive_loop())

    def _cancel_keepalive(self) -> None:
        if self._keepalive_task is not None:
            self._keepalive_task.cancel()
            self._keepalive_task = None

    async def _keepalive_loop(self) -> None:
        while True:
            await asyncio.sleep(self._settings.keepalive_period)
            if not self.is_running():
                return
            try:
                await self._keepalive()
            except Exception as e:
                logger.warning(f"ycmd keepalive failed: {e}")

    async def close(self) -> None:
        """Stop the server. Does nothing when no server is running."""
        async with self._lock:
            await self._close()

    async def _close(self) -> None:
        session = self._session
        if session is None:
            return

        self._cancel_keepalive()
        if session.process is not None and session.process.returncode is None:
            logger.info(f"Stopping ycmd (pid {session.process.pid})")
            await self._terminate(session.process, grace=self._settings.shutdown_grace)

        if self._drain_task is not None:
            self._drain_task.cancel()
            self._drain_task = None

        session.status = SessionStatus.STOPPED
        self._session = None

    async def _terminate(self, process: asyncio.subprocess.Process, grace: float) -> None:
        """Interrupt the process, kill it if it outlives ``grace`` seconds."""
        if process.returncode is not None:
            return
        try:
            if sys.platform == "win32":
                process.terminate()
            else:
                process.send_signal(signal.SIGINT)
        except ProcessLookupError:
            return

        loop = asyncio.get_running_loop()
        deadline = loop.time() + grace
        while process.returncode is None and loop.time() < deadline:
            await asyncio.sleep(_EXIT_POLL_INTERVAL)

        if process.returncode is None:
            logger.debug(f"ycmd (pid {process.pid}) still alive after {grace}s, killing")
            try:
                process.kill()
            except ProcessLookupError:
                return
        await process.wait()


def _remove_file(path: str) -> None:
    try:
        Path(path).unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.debug(f"Could not remove options file {path}: {e}")

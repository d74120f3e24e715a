"""
The ycmd client service.

One ``ClientService`` owns the server session, the request dispatcher, the
per-buffer parse state and the exception router, and exposes the operations
editors use: parse notifications, completion, go-to, fix-its and friends.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any

import httpx

from ycmd_lsp.config import YcmdSettings
from ycmd_lsp.dispatcher import RequestDispatcher
from ycmd_lsp.errors import ProtocolException, TransportError
from ycmd_lsp.exception_router import (
    IGNORE_EXTRA_CONF_PATH,
    LOAD_EXTRA_CONF_PATH,
    WARNING,
    ExceptionRouter,
    ExtraConfPrompt,
    Reporter,
)
from ycmd_lsp.parse_state import ParseStateMachine, ParseStatus
from ycmd_lsp.results import (
    CompletionList,
    DiagnosticList,
    FixItList,
    GenericPayload,
    LocationList,
    Parser,
    decode_completions,
    decode_diagnostics,
    decode_fixits,
    decode_generic,
    decode_locations,
)
from ycmd_lsp.session import SessionManager
from ycmd_lsp.text_buffer import SourceBuffer

logger = logging.getLogger(__name__)

GOTO_COMMANDS = (
    "GoTo",
    "GoToDeclaration",
    "GoToDefinition",
    "GoToImplementation",
    "GoToInclude",
    "GoToReferences",
    "GoToImprecise",
)

BUSY_MESSAGE = "ycmd is still parsing this buffer, try again in a moment"

_TAG_FILE_NAMES = ("tags", "TAGS")


def find_tag_files(file_path: str) -> list[str]:
    """Tag files in the buffer's directory and each parent directory."""
    found = []
    directory = Path(file_path).resolve().parent
    for candidate_dir in (directory, *directory.parents):
        for name in _TAG_FILE_NAMES:
            candidate = candidate_dir / name
            if candidate.is_file():
                found.append(str(candidate))
    return found


class ClientService:
    """Single entry point to one ycmd server.

    ``report`` receives user-facing messages as ``(message, level)``;
    ``prompt`` asks whether an extra-conf file should be loaded.
    """

    def __init__(
        self,
        settings: YcmdSettings | None = None,
        report: Reporter | None = None,
        prompt: ExtraConfPrompt | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings or YcmdSettings()
        self.sessions = SessionManager(self.settings, keepalive=self.keepalive)
        self.dispatcher = RequestDispatcher(self.settings, self.sessions, transport=transport)
        self.parse_state = ParseStateMachine(self._send_notify)
        self.router = ExceptionRouter(
            self.settings, self.dispatcher, self.parse_state, report=report, prompt=prompt
        )
        self.dispatcher.set_exception_handler(self.router.handle)

    @property
    def report(self) -> Reporter:
        return self.router.report

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        self.parse_state.reset_all()
        await self.sessions.open()

    async def close(self) -> None:
        await self.sessions.close()
        self.parse_state.reset_all()
        await self.dispatcher.aclose()

    async def restart(self) -> None:
        await self.close()
        await self.open()

    def is_running(self) -> bool:
        return self.sessions.is_running()

    async def keepalive(self) -> Any:
        """Ping the server so it does not shut itself down when idle."""
        result = await self.dispatcher.send(
            "/healthy", method="GET", start_server=False
        )
        return result.data if isinstance(result, GenericPayload) else None

    # ------------------------------------------------------------------
    # Request data
    # ------------------------------------------------------------------

    def build_request_data(
        self,
        buffer: SourceBuffer,
        line: int = 1,
        column: int = 1,
        extra: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Standard request content for ``buffer``.

        ``line`` and ``column`` are 1-based, the column in bytes.
        """
        data: dict[str, Any] = {
            "file_data": {
                buffer.file_path: {
                    "contents": buffer.get_text(),
                    "filetypes": list(buffer.filetypes),
                }
            },
            "filepath": buffer.file_path,
            "line_num": line,
            "column_num": column,
        }
        if extra:
            data.update(extra)
        return data

    def _notify_body(self, buffer: SourceBuffer) -> dict[str, Any]:
        extra: dict[str, Any] = {"event_name": "FileReadyToParse"}
        if self.settings.collect_tag_files:
            tag_files = find_tag_files(buffer.file_path)
            if tag_files:
                extra["tag_files"] = tag_files
        if self.settings.seed_identifiers_with_syntax:
            keywords: list[str] = []
            for filetype in buffer.filetypes:
                keywords.extend(self.settings.syntax_keywords.get(filetype, []))
            if keywords:
                extra["syntax_keywords"] = keywords
        return self.build_request_data(buffer, extra=extra)

    # ------------------------------------------------------------------
    # Parse notifications
    # ------------------------------------------------------------------

    async def _send_notify(self, buffer: SourceBuffer) -> DiagnosticList | None:
        return await self.dispatcher.send(
            "/event_notification",
            self._notify_body(buffer),
            parser=decode_diagnostics,
            buffer=buffer,
        )

    def notify_file_ready(self, buffer: SourceBuffer) -> asyncio.Task | None:
        return self.parse_state.notify_ready(buffer)

    def schedule_notify(self, buffer: SourceBuffer, delay: float | None = None) -> asyncio.Task:
        if delay is None:
            delay = self.settings.idle_change_delay
        return self.parse_state.schedule(buffer, delay)

    def teardown_buffer(self, buffer_id: str) -> None:
        self.parse_state.teardown(buffer_id)

    def force_parse(self, buffer: SourceBuffer) -> asyncio.Task | None:
        """Re-parse a buffer regardless of its previous result."""
        if self.parse_state.status(buffer.buffer_id) != ParseStatus.PARSING:
            self.parse_state.mark_unparsed(buffer.buffer_id)
        return self.parse_state.notify_ready(buffer)

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def complete(
        self,
        buffer: SourceBuffer,
        line: int,
        column: int,
        force_semantic: bool = False,
    ) -> CompletionList | None:
        extra = {"force_semantic": True} if force_semantic else None
        try:
            return await self.dispatcher.send(
                "/completions",
                self.build_request_data(buffer, line, column, extra),
                parser=decode_completions,
                buffer=buffer,
            )
        except ProtocolException:
            return None

    async def send_command(
        self,
        buffer: SourceBuffer,
        line: int,
        column: int,
        command: str,
        *args: str,
        parser: Parser = decode_generic,
    ) -> Any:
        """Run a completer command unless the buffer is being parsed.

        While a parse notification is in flight the request is refused: the
        user is told the server is busy and ``None`` is returned without any
        network traffic.
        """
        if self.parse_state.is_parsing(buffer.buffer_id):
            self.report(BUSY_MESSAGE, WARNING)
            return None

        body = self.build_request_data(
            buffer, line, column, {"command_arguments": [command, *args]}
        )
        try:
            return await self.dispatcher.send(
                "/run_completer_command", body, parser=parser, buffer=buffer
            )
        except ProtocolException:
            return None

    async def goto(
        self, buffer: SourceBuffer, line: int, column: int, command: str = "GoTo"
    ) -> LocationList | None:
        if command not in GOTO_COMMANDS:
            raise ValueError(f"Unknown goto command {command}")
        return await self.send_command(
            buffer, line, column, command, parser=decode_locations
        )

    async def get_type(self, buffer: SourceBuffer, line: int, column: int) -> GenericPayload | None:
        return await self.send_command(buffer, line, column, "GetType")

    async def get_parent(self, buffer: SourceBuffer, line: int, column: int) -> GenericPayload | None:
        return await self.send_command(buffer, line, column, "GetParent")

    async def get_doc(self, buffer: SourceBuffer, line: int, column: int) -> GenericPayload | None:
        return await self.send_command(buffer, line, column, "GetDoc")

    async def fixit(self, buffer: SourceBuffer, line: int, column: int) -> FixItList | None:
        return await self.send_command(buffer, line, column, "FixIt", parser=decode_fixits)

    async def load_extra_conf(self, path: str) -> None:
        await self.dispatcher.send(LOAD_EXTRA_CONF_PATH, {"filepath": path})

    async def ignore_extra_conf(self, path: str) -> None:
        await self.dispatcher.send(IGNORE_EXTRA_CONF_PATH, {"filepath": path})

    async def debug_info(self, buffer: SourceBuffer) -> Any:
        result = await self.dispatcher.send(
            "/debug_info", self.build_request_data(buffer), buffer=buffer
        )
        return result.data if isinstance(result, GenericPayload) else None

    async def is_healthy(self) -> bool:
        try:
            return bool(await self.keepalive())
        except (TransportError, ProtocolException):
            return False

"""
Per-buffer parse state.

Tracks whether the server has parsed each buffer and guarantees at most one
in-flight parse notification per buffer. Also owns the per-buffer debounce
timers that delay notifications while the user is typing.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import Awaitable, Callable

from ycmd_lsp.errors import ProtocolException, YcmdError
from ycmd_lsp.exception_router import ExceptionOutcome
from ycmd_lsp.results import DiagnosticList
from ycmd_lsp.text_buffer import SourceBuffer

logger = logging.getLogger(__name__)

NotifyRequest = Callable[[SourceBuffer], Awaitable["DiagnosticList | None"]]
ParseObserver = Callable[[SourceBuffer, DiagnosticList], None]


class ParseStatus(enum.Enum):
    UNPARSED = "unparsed"
    PARSING = "parsing"
    PARSED = "parsed"
    ERRORED = "errored"


class ParseStateMachine:
    """Parse status of every tracked buffer.

    ``notify`` performs the actual FileReadyToParse request for a buffer.
    """

    def __init__(self, notify: NotifyRequest) -> None:
        self._notify = notify
        self._states: dict[str, ParseStatus] = {}
        self._generations: dict[str, int] = {}
        self._timers: dict[str, asyncio.Task] = {}
        self._observers: list[ParseObserver] = []
        self._inflight: set[asyncio.Task] = set()

    def status(self, buffer_id: str) -> ParseStatus:
        return self._states.get(buffer_id, ParseStatus.UNPARSED)

    def is_parsing(self, buffer_id: str) -> bool:
        return self.status(buffer_id) == ParseStatus.PARSING

    def add_observer(self, observer: ParseObserver) -> None:
        """Register a callback receiving every successful parse result."""
        self._observers.append(observer)

    def mark_unparsed(self, buffer_id: str) -> None:
        self._states[buffer_id] = ParseStatus.UNPARSED

    def mark_errored(self, buffer_id: str) -> None:
        self._states[buffer_id] = ParseStatus.ERRORED

    def notify_ready(self, buffer: SourceBuffer) -> asyncio.Task | None:
        """Ask the server to (re)parse ``buffer``.

        Does nothing and returns ``None`` while a notification for the buffer
        is still in flight. Otherwise returns the task running the request.
        """
        buffer_id = buffer.buffer_id
        if self.is_parsing(buffer_id):
            logger.debug(f"Notify for {buffer_id} skipped, still parsing")
            return None

        self._states[buffer_id] = ParseStatus.PARSING
        generation = self._generations.get(buffer_id, 0) + 1
        self._generations[buffer_id] = generation
        task = asyncio.create_task(self._run_notify(buffer, generation))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    def _is_current(self, buffer_id: str, generation: int) -> bool:
        return self._generations.get(buffer_id) == generation

    async def _run_notify(self, buffer: SourceBuffer, generation: int) -> None:
        buffer_id = buffer.buffer_id
        try:
            result = await self._notify(buffer)
        except ProtocolException as e:
            self._after_exception(buffer_id, generation, e.outcome)
            return
        except YcmdError as e:
            logger.warning(f"Notify for {buffer_id} failed: {e}")
            if self._is_current(buffer_id, generation) and self.is_parsing(buffer_id):
                self._states[buffer_id] = ParseStatus.ERRORED
            return

        if not self._is_current(buffer_id, generation) or not self.is_parsing(buffer_id):
            logger.debug(f"Dropping stale parse result for {buffer_id}")
            return

        if result is None:
            result = DiagnosticList([])
        self._states[buffer_id] = ParseStatus.PARSED
        for observer in list(self._observers):
            observer(buffer, result)

    def _after_exception(
        self, buffer_id: str, generation: int, outcome: ExceptionOutcome
    ) -> None:
        # The router may already have moved the buffer on (re-parse, errored)
        if not self._is_current(buffer_id, generation) or not self.is_parsing(buffer_id):
            return
        if outcome == ExceptionOutcome.SOFT_ERROR:
            self._states[buffer_id] = ParseStatus.PARSED
        else:
            self._states[buffer_id] = ParseStatus.ERRORED

    def schedule(self, buffer: SourceBuffer, delay: float) -> asyncio.Task:
        """Notify after ``delay`` seconds, replacing any pending schedule."""
        buffer_id = buffer.buffer_id
        self.cancel_timer(buffer_id)
        task = asyncio.create_task(self._delayed_notify(buffer, delay))
        self._timers[buffer_id] = task
        return task

    async def _delayed_notify(self, buffer: SourceBuffer, delay: float) -> None:
        await asyncio.sleep(delay)
        self._timers.pop(buffer.buffer_id, None)
        self.notify_ready(buffer)

    def cancel_timer(self, buffer_id: str) -> None:
        task = self._timers.pop(buffer_id, None)
        if task is not None:
            task.cancel()

    def teardown(self, buffer_id: str) -> None:
        """Forget a buffer's progress: cancel its timer, mark it unparsed."""
        self.cancel_timer(buffer_id)
        self._states[buffer_id] = ParseStatus.UNPARSED

    def reset_all(self) -> None:
        for buffer_id in set(self._states) | set(self._timers):
            self.teardown(buffer_id)

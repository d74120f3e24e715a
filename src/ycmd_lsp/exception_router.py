"""
Handling of structured exceptions returned by the ycmd server.

``UnknownExtraConf`` is recovered from by loading or ignoring the offending
file and re-parsing. ``ValueError``/``RuntimeError`` messages are sorted into
hard errors, which mark the buffer as errored, and soft ones that are only
reported.
"""

from __future__ import annotations

import enum
import logging
import re
from typing import TYPE_CHECKING, Awaitable, Callable

from ycmd_lsp.config import ExtraConfPolicy, YcmdSettings
from ycmd_lsp.results import ServerException

if TYPE_CHECKING:
    from ycmd_lsp.dispatcher import RequestDispatcher
    from ycmd_lsp.parse_state import ParseStateMachine
    from ycmd_lsp.text_buffer import SourceBuffer

logger = logging.getLogger(__name__)

LOAD_EXTRA_CONF_PATH = "/load_extra_conf_file"
IGNORE_EXTRA_CONF_PATH = "/ignore_extra_conf_file"

# Messages that mean the server cannot work on the buffer at all
HARD_ERROR_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"no compile(?:_| )flags",
        r"invalid hmac",
        r"gocode",
        r"godef",
        r"unable to find .*binary",
        r"no python interpreter",
        r"failed to start",
    )
)

# Severity levels for user reports
INFO = "info"
WARNING = "warning"
ERROR = "error"

Reporter = Callable[[str, str], None]
ExtraConfPrompt = Callable[[str], Awaitable[bool]]


class ExceptionOutcome(enum.Enum):
    RECOVERED = "recovered"
    HARD_ERROR = "hard_error"
    SOFT_ERROR = "soft_error"
    UNHANDLED = "unhandled"


def is_hard_error(message: str) -> bool:
    return any(p.search(message) for p in HARD_ERROR_PATTERNS)


def _log_report(message: str, level: str) -> None:
    if level == ERROR:
        logger.error(message)
    elif level == WARNING:
        logger.warning(message)
    else:
        logger.info(message)


class ExceptionRouter:
    """Dispatches server exceptions to their recovery action."""

    def __init__(
        self,
        settings: YcmdSettings,
        dispatcher: RequestDispatcher,
        parse_state: ParseStateMachine,
        report: Reporter | None = None,
        prompt: ExtraConfPrompt | None = None,
    ) -> None:
        self._settings = settings
        self._dispatcher = dispatcher
        self._parse_state = parse_state
        self.report: Reporter = report or _log_report
        self.prompt = prompt

    async def handle(
        self, exception: ServerException, buffer: SourceBuffer | None = None
    ) -> ExceptionOutcome:
        if exception.kind == "UnknownExtraConf":
            return await self._handle_extra_conf(exception, buffer)
        if exception.kind in ("ValueError", "RuntimeError"):
            return self._handle_error(exception, buffer)

        logger.warning(f"Unhandled ycmd exception {exception.kind}: {exception.message}")
        return ExceptionOutcome.UNHANDLED

    async def _handle_extra_conf(
        self, exception: ServerException, buffer: SourceBuffer | None
    ) -> ExceptionOutcome:
        path = exception.extra.get("extra_conf_file")
        if not path:
            logger.warning(f"UnknownExtraConf without extra_conf_file: {exception.message}")
            return ExceptionOutcome.UNHANDLED

        policy = self._settings.extra_conf_policy
        if policy == ExtraConfPolicy.ASK:
            if self.prompt is None:
                logger.warning(f"Extra conf {path} needs confirmation but no prompt is available")
                return ExceptionOutcome.UNHANDLED
            load = await self.prompt(path)
        else:
            load = policy == ExtraConfPolicy.LOAD

        endpoint = LOAD_EXTRA_CONF_PATH if load else IGNORE_EXTRA_CONF_PATH
        logger.info(f"{'Loading' if load else 'Ignoring'} extra conf {path}")
        await self._dispatcher.send(endpoint, {"filepath": path}, buffer=buffer)

        if buffer is not None:
            self._parse_state.mark_unparsed(buffer.buffer_id)
            self._parse_state.notify_ready(buffer)
        return ExceptionOutcome.RECOVERED

    def _handle_error(
        self, exception: ServerException, buffer: SourceBuffer | None
    ) -> ExceptionOutcome:
        message = exception.message
        if is_hard_error(message):
            if buffer is not None:
                self._parse_state.mark_errored(buffer.buffer_id)
            self.report(f"ycmd: {message}", ERROR)
            return ExceptionOutcome.HARD_ERROR

        self.report(f"ycmd: {message}", WARNING)
        return ExceptionOutcome.SOFT_ERROR

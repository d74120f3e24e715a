"""Tests for server exception routing."""

import pytest
from unittest.mock import AsyncMock, MagicMock

from ycmd_lsp.config import ExtraConfPolicy, YcmdSettings
from ycmd_lsp.exception_router import (
    ERROR,
    IGNORE_EXTRA_CONF_PATH,
    LOAD_EXTRA_CONF_PATH,
    WARNING,
    ExceptionOutcome,
    ExceptionRouter,
    is_hard_error,
)
from ycmd_lsp.results import ServerException
from ycmd_lsp.text_buffer import LineBuffer

EXTRA_CONF = "/p/.ycm_extra_conf.py"


def _router(policy=ExtraConfPolicy.IGNORE, prompt=None):
    dispatcher = MagicMock()
    dispatcher.send = AsyncMock(return_value=None)
    parse_state = MagicMock()
    report = MagicMock()
    router = ExceptionRouter(
        YcmdSettings(extra_conf_policy=policy),
        dispatcher,
        parse_state,
        report=report,
        prompt=prompt,
    )
    return router, dispatcher, parse_state, report


def _unknown_extra_conf(path=EXTRA_CONF):
    extra = {"extra_conf_file": path} if path else {}
    return ServerException("UnknownExtraConf", f"Found {path}. Load?", extra)


@pytest.fixture
def buffer():
    return LineBuffer("int x;\n", "/p/a.cc", ["cpp"])


class TestUnknownExtraConf:
    @pytest.mark.asyncio
    async def test_ignore_policy(self, buffer):
        prompt = AsyncMock()
        router, dispatcher, parse_state, _ = _router(ExtraConfPolicy.IGNORE, prompt)

        outcome = await router.handle(_unknown_extra_conf(), buffer)

        assert outcome == ExceptionOutcome.RECOVERED
        prompt.assert_not_awaited()
        dispatcher.send.assert_awaited_once_with(
            IGNORE_EXTRA_CONF_PATH, {"filepath": EXTRA_CONF}, buffer=buffer
        )
        parse_state.mark_unparsed.assert_called_once_with(buffer.buffer_id)
        parse_state.notify_ready.assert_called_once_with(buffer)

    @pytest.mark.asyncio
    async def test_load_policy(self, buffer):
        router, dispatcher, parse_state, _ = _router(ExtraConfPolicy.LOAD)

        outcome = await router.handle(_unknown_extra_conf(), buffer)

        assert outcome == ExceptionOutcome.RECOVERED
        dispatcher.send.assert_awaited_once_with(
            LOAD_EXTRA_CONF_PATH, {"filepath": EXTRA_CONF}, buffer=buffer
        )
        parse_state.notify_ready.assert_called_once_with(buffer)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "answer, endpoint",
        [(True, LOAD_EXTRA_CONF_PATH), (False, IGNORE_EXTRA_CONF_PATH)],
    )
    async def test_ask_policy_follows_answer(self, buffer, answer, endpoint):
        prompt = AsyncMock(return_value=answer)
        router, dispatcher, _, _ = _router(ExtraConfPolicy.ASK, prompt)

        await router.handle(_unknown_extra_conf(), buffer)

        prompt.assert_awaited_once_with(EXTRA_CONF)
        assert dispatcher.send.await_args.args[0] == endpoint

    @pytest.mark.asyncio
    async def test_ask_without_prompt_is_unhandled(self, buffer):
        router, dispatcher, parse_state, _ = _router(ExtraConfPolicy.ASK)

        outcome = await router.handle(_unknown_extra_conf(), buffer)

        assert outcome == ExceptionOutcome.UNHANDLED
        dispatcher.send.assert_not_awaited()
        parse_state.notify_ready.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_path_is_unhandled(self, buffer):
        router, dispatcher, _, _ = _router(ExtraConfPolicy.LOAD)

        outcome = await router.handle(_unknown_extra_conf(path=None), buffer)

        assert outcome == ExceptionOutcome.UNHANDLED
        dispatcher.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_without_buffer_no_reparse(self):
        router, dispatcher, parse_state, _ = _router(ExtraConfPolicy.LOAD)

        outcome = await router.handle(_unknown_extra_conf())

        assert outcome == ExceptionOutcome.RECOVERED
        dispatcher.send.assert_awaited_once()
        parse_state.notify_ready.assert_not_called()


class TestErrors:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "message",
        [
            "Still no compile flags, no completions yet.",
            "Invalid HMAC",
            "Unable to find the gocode binary",
            "Unable to find the racerd binary",
        ],
    )
    async def test_hard_errors(self, buffer, message):
        router, _, parse_state, report = _router()

        outcome = await router.handle(ServerException("RuntimeError", message), buffer)

        assert outcome == ExceptionOutcome.HARD_ERROR
        parse_state.mark_errored.assert_called_once_with(buffer.buffer_id)
        report.assert_called_once_with(f"ycmd: {message}", ERROR)

    @pytest.mark.asyncio
    async def test_soft_error_is_reported_only(self, buffer):
        router, _, parse_state, report = _router()

        outcome = await router.handle(
            ServerException("ValueError", "No semantic completer exists for filetypes"),
            buffer,
        )

        assert outcome == ExceptionOutcome.SOFT_ERROR
        parse_state.mark_errored.assert_not_called()
        assert report.call_args.args[1] == WARNING

    @pytest.mark.asyncio
    async def test_unknown_kind_is_unhandled(self, buffer):
        router, dispatcher, parse_state, report = _router()

        outcome = await router.handle(ServerException("KeyError", "'filetypes'"), buffer)

        assert outcome == ExceptionOutcome.UNHANDLED
        report.assert_not_called()
        parse_state.mark_errored.assert_not_called()


class TestIsHardError:
    def test_case_insensitive(self):
        assert is_hard_error("NO COMPILE FLAGS")

    def test_plain_message(self):
        assert not is_hard_error("Can't jump to definition.")

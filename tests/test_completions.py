"""Tests for the completion provider."""

import pytest
from unittest.mock import AsyncMock, MagicMock

from lsprotocol import types as lsp
from ycmd_lsp.completions import (
    YcmdCompletionProvider,
    completion_kind,
    to_completion_item,
    to_completion_list,
)
from ycmd_lsp.errors import TransportError
from ycmd_lsp.results import Candidate, CompletionList
from ycmd_lsp.text_buffer import TextDocumentBuffer


def _candidate(text, **kwargs):
    return Candidate(insertion_text=text, **kwargs)


def _params(line, character, trigger=lsp.CompletionTriggerKind.TriggerCharacter):
    return lsp.CompletionParams(
        text_document=lsp.TextDocumentIdentifier(uri="file:///p/main.cc"),
        position=lsp.Position(line=line, character=character),
        context=lsp.CompletionContext(trigger_kind=trigger),
    )


class TestConversion:
    def test_kind_mapping(self):
        assert completion_kind("FUNCTION") == lsp.CompletionItemKind.Function
        assert completion_kind("[File]") == lsp.CompletionItemKind.File
        assert completion_kind("SOMETHING_NEW") == lsp.CompletionItemKind.Text

    def test_item_fields(self):
        rng = lsp.Range(start=lsp.Position(line=0, character=2), end=lsp.Position(line=0, character=4))
        item = to_completion_item(
            _candidate(
                "printf",
                menu_text="printf(const char *, ...)",
                extra_menu_info="int",
                detailed_info="int printf(const char *, ...)",
                kind="FUNCTION",
            ),
            rng,
        )
        assert item.label == "printf(const char *, ...)"
        assert item.detail == "int"
        assert item.documentation.value == "int printf(const char *, ...)"
        assert item.text_edit.new_text == "printf"
        assert item.text_edit.range == rng

    def test_label_falls_back_to_insertion_text(self):
        rng = lsp.Range(start=lsp.Position(line=0, character=0), end=lsp.Position(line=0, character=0))
        item = to_completion_item(_candidate("foo"), rng)
        assert item.label == "foo"
        assert item.detail is None
        assert item.documentation is None

    def test_start_column_is_converted_from_bytes(self):
        # "é" is two bytes, so byte column 6 lands on character 4
        line = "  é.fo"
        result = CompletionList([_candidate("foo")], start_column=6)
        completions = to_completion_list(result, line, lsp.Position(line=3, character=6))
        edit = completions.items[0].text_edit
        assert edit.range.start == lsp.Position(line=3, character=4)
        assert edit.range.end == lsp.Position(line=3, character=6)

    def test_start_never_after_cursor(self):
        result = CompletionList([_candidate("foo")], start_column=20)
        completions = to_completion_list(result, "ab", lsp.Position(line=0, character=2))
        assert completions.items[0].text_edit.range.start.character == 2


class TestYcmdCompletionProvider:
    @pytest.fixture
    def mock_server(self):
        document = MagicMock()
        document.uri = "file:///p/main.cc"
        document.path = "/p/main.cc"
        document.source = "int main() {\n  ma\n}\n"

        server = MagicMock()
        server.get_buffer.return_value = TextDocumentBuffer(document, ["cpp"])
        server.force_semantic_on_invoke = False
        server.ycmd.complete = AsyncMock(
            return_value=CompletionList([_candidate("main")], start_column=3)
        )
        return server

    @pytest.fixture
    def provider(self, mock_server):
        return YcmdCompletionProvider(mock_server)

    @pytest.mark.asyncio
    async def test_get_completions(self, provider, mock_server):
        result = await provider.get_completions(_params(1, 4))

        buffer, line, column = mock_server.ycmd.complete.await_args.args
        assert (line, column) == (2, 5)
        assert mock_server.ycmd.complete.await_args.kwargs == {"force_semantic": False}
        assert [item.label for item in result.items] == ["main"]
        assert result.items[0].text_edit.range.start.character == 2

    @pytest.mark.asyncio
    async def test_force_semantic_on_invoke(self, provider, mock_server):
        mock_server.force_semantic_on_invoke = True
        await provider.get_completions(_params(1, 4, lsp.CompletionTriggerKind.Invoked))
        assert mock_server.ycmd.complete.await_args.kwargs == {"force_semantic": True}

    @pytest.mark.asyncio
    async def test_unknown_document(self, provider, mock_server):
        mock_server.get_buffer.return_value = None
        assert await provider.get_completions(_params(0, 0)) is None
        mock_server.ycmd.complete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_request_failure(self, provider, mock_server):
        mock_server.ycmd.complete.side_effect = TransportError("down")
        assert await provider.get_completions(_params(1, 4)) is None

    @pytest.mark.asyncio
    async def test_no_result(self, provider, mock_server):
        mock_server.ycmd.complete.return_value = None
        assert await provider.get_completions(_params(1, 4)) is None

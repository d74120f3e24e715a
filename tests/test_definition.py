"""Tests for the go-to providers."""

import pytest
from unittest.mock import AsyncMock, MagicMock

from lsprotocol import types as lsp
from ycmd_lsp.definition import YcmdDefinitionProvider
from ycmd_lsp.errors import TransportError
from ycmd_lsp.results import Location, LocationList
from ycmd_lsp.text_buffer import LineBuffer, TextDocumentBuffer


def _params(line, character):
    return lsp.DefinitionParams(
        text_document=lsp.TextDocumentIdentifier(uri="file:///p/main.cc"),
        position=lsp.Position(line=line, character=character),
    )


class TestYcmdDefinitionProvider:
    @pytest.fixture
    def mock_server(self):
        document = MagicMock()
        document.uri = "file:///p/main.cc"
        document.path = "/p/main.cc"
        document.source = "// é\nint main() { return helper(); }\n"

        server = MagicMock()
        server.get_buffer.return_value = TextDocumentBuffer(document, ["cpp"])
        server.buffer_for_path.return_value = None
        server.ycmd.goto = AsyncMock(return_value=None)
        return server

    @pytest.fixture
    def provider(self, mock_server):
        return YcmdDefinitionProvider(mock_server)

    @pytest.mark.asyncio
    async def test_goto_definition(self, provider, mock_server):
        mock_server.ycmd.goto.return_value = LocationList(
            [(Location("/p/helper.h", 3, 5), "int helper()")]
        )
        mock_server.buffer_for_path.return_value = LineBuffer(
            "\n\nint helper();\n", "/p/helper.h"
        )

        result = await provider.goto(_params(1, 20), "GoToDefinition")

        _, line, column, command = mock_server.ycmd.goto.await_args.args
        assert (line, column, command) == (2, 21, "GoToDefinition")
        assert len(result) == 1
        assert result[0].uri == "file:///p/helper.h"
        assert result[0].range.start == lsp.Position(line=2, character=4)

    @pytest.mark.asyncio
    async def test_byte_column_of_request(self, provider, mock_server):
        # The cursor sits after "é" on the first line
        await provider.goto(_params(0, 4), "GoTo")
        _, line, column, _ = mock_server.ycmd.goto.await_args.args
        assert (line, column) == (1, 6)

    @pytest.mark.asyncio
    async def test_target_converted_against_its_own_text(self, provider, mock_server):
        mock_server.ycmd.goto.return_value = LocationList(
            [(Location("/p/other.cc", 1, 6), "")]
        )
        mock_server.buffer_for_path.return_value = LineBuffer("// é x\n", "/p/other.cc")

        result = await provider.goto(_params(0, 0), "GoTo")

        assert result[0].range.start == lsp.Position(line=0, character=4)

    @pytest.mark.asyncio
    async def test_unreadable_target_uses_raw_columns(self, provider, mock_server):
        mock_server.ycmd.goto.return_value = LocationList(
            [(Location("/p/gone.cc", 10, 3), "")]
        )
        result = await provider.goto(_params(0, 0), "GoTo")
        assert result[0].range.start == lsp.Position(line=9, character=2)

    @pytest.mark.asyncio
    async def test_references(self, provider, mock_server):
        mock_server.ycmd.goto.return_value = LocationList(
            [
                (Location("/p/a.cc", 1, 1), "a"),
                (Location("", 0, 0), "no file"),
                (Location("/p/b.cc", 2, 1), "b"),
            ]
        )
        result = await provider.goto(_params(0, 0), "GoToReferences")
        assert [loc.uri for loc in result] == ["file:///p/a.cc", "file:///p/b.cc"]

    @pytest.mark.asyncio
    async def test_no_result(self, provider):
        assert await provider.goto(_params(0, 0), "GoTo") is None

    @pytest.mark.asyncio
    async def test_request_failure(self, provider, mock_server):
        mock_server.ycmd.goto.side_effect = TransportError("down")
        assert await provider.goto(_params(0, 0), "GoTo") is None

    @pytest.mark.asyncio
    async def test_unknown_document(self, provider, mock_server):
        mock_server.get_buffer.return_value = None
        assert await provider.goto(_params(0, 0), "GoTo") is None
        mock_server.ycmd.goto.assert_not_awaited()

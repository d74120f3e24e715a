"""
Go-to providers for the ycmd LSP bridge.

Provides definition, declaration, implementation and references through
ycmd's GoTo family of completer commands.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from lsprotocol import types as lsp

from ycmd_lsp.errors import YcmdError
from ycmd_lsp.fixit import location_to_position, position_to_location
from ycmd_lsp.results import Location, LocationList

if TYPE_CHECKING:
    from ycmd_lsp.server import YcmdLanguageServer

logger = logging.getLogger(__name__)


class YcmdDefinitionProvider:
    """Provides go-to locations from ycmd."""

    def __init__(self, server: YcmdLanguageServer):
        self.server = server

    async def goto(
        self, params: lsp.TextDocumentPositionParams, command: str
    ) -> list[lsp.Location] | None:
        """Run a GoTo command at the request position."""
        uri = params.text_document.uri
        buffer = self.server.get_buffer(uri)
        if buffer is None:
            return None

        snapshot = buffer.snapshot()
        position = params.position
        location = position_to_location(snapshot, position.line, position.character)

        try:
            result = await self.server.ycmd.goto(
                buffer, location.line, location.column, command
            )
        except YcmdError as e:
            logger.error(f"{command} failed: {e}")
            return None

        if result is None:
            return None
        return self.to_lsp_locations(result) or None

    def to_lsp_locations(self, result: LocationList) -> list[lsp.Location]:
        locations = []
        for location, _description in result.locations:
            lsp_location = self._to_lsp_location(location)
            if lsp_location is not None:
                locations.append(lsp_location)
        return locations

    def _to_lsp_location(self, location: Location) -> lsp.Location | None:
        if not location.filepath:
            return None
        buffer = self.server.buffer_for_path(location.filepath)
        if buffer is None:
            # File unreadable: fall back to treating byte columns as characters
            line, character = max(location.line - 1, 0), max(location.column - 1, 0)
        else:
            line, character = location_to_position(buffer, location)

        pos = lsp.Position(line=line, character=character)
        return lsp.Location(
            uri=Path(location.filepath).as_uri(),
            range=lsp.Range(start=pos, end=pos),
        )

"""
Code action provider for the ycmd LSP bridge.

Offers ycmd fix-its as quick fixes. Each fix-it is applied to snapshots of the
affected files and sent to the editor as whole-file replacements.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Callable

from lsprotocol import types as lsp

from ycmd_lsp.errors import YcmdError
from ycmd_lsp.fixit import apply_fixit, position_to_location
from ycmd_lsp.results import FixIt
from ycmd_lsp.text_buffer import LineBuffer

if TYPE_CHECKING:
    from ycmd_lsp.server import YcmdLanguageServer

logger = logging.getLogger(__name__)


def fixit_workspace_edit(
    fixit: FixIt, resolve_buffer: Callable[[str], LineBuffer | None]
) -> lsp.WorkspaceEdit | None:
    """Apply ``fixit`` to buffers from ``resolve_buffer`` and build the edit.

    Returns ``None`` when the fix-it touches no resolvable file or its chunks
    do not fit the current text.
    """
    originals: dict[str, tuple[int, int]] = {}

    def resolve(path: str) -> LineBuffer | None:
        buffer = resolve_buffer(path)
        if buffer is not None:
            last = buffer.line_count() - 1
            originals[path] = (last, len(buffer.get_line(last)))
        return buffer

    try:
        edited = apply_fixit(fixit, resolve)
    except (IndexError, ValueError) as e:
        logger.error(f"Could not apply fix-it '{fixit.text}': {e}")
        return None

    changes: dict[str, list[lsp.TextEdit]] = {}
    for path, buffer in edited.items():
        last_line, last_char = originals[path]
        changes[Path(path).as_uri()] = [
            lsp.TextEdit(
                range=lsp.Range(
                    start=lsp.Position(line=0, character=0),
                    end=lsp.Position(line=last_line, character=last_char),
                ),
                new_text=buffer.get_text(),
            )
        ]
    return lsp.WorkspaceEdit(changes=changes) if changes else None


class YcmdCodeActionProvider:
    """Provides fix-it code actions from ycmd."""

    def __init__(self, server: YcmdLanguageServer):
        self.server = server

    async def get_code_actions(
        self, params: lsp.CodeActionParams
    ) -> list[lsp.CodeAction] | None:
        """Offer the fix-its available at the start of the requested range."""
        buffer = self.server.get_buffer(params.text_document.uri)
        if buffer is None:
            return None
        start = params.range.start
        location = position_to_location(buffer.snapshot(), start.line, start.character)

        try:
            result = await self.server.ycmd.fixit(buffer, location.line, location.column)
        except YcmdError as e:
            logger.error(f"FixIt request failed: {e}")
            return None
        if result is None:
            return None

        actions: list[lsp.CodeAction] = []
        for fixit in result.fixits:
            edit = fixit_workspace_edit(fixit, self.server.buffer_for_path)
            if edit is None:
                continue
            actions.append(
                lsp.CodeAction(
                    title=fixit.text or "Apply ycmd fix-it",
                    kind=lsp.CodeActionKind.QuickFix,
                    diagnostics=list(params.context.diagnostics) or None,
                    edit=edit,
                )
            )
        return actions or None

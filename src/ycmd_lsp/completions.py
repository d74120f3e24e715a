"""
Completion provider for the ycmd LSP bridge.

Turns ycmd completion candidates into LSP completion items that replace the
text from ycmd's completion start column up to the cursor.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from lsprotocol import types as lsp

from ycmd_lsp.errors import YcmdError
from ycmd_lsp.fixit import byte_to_char, position_to_location
from ycmd_lsp.results import Candidate, CompletionList

if TYPE_CHECKING:
    from ycmd_lsp.server import YcmdLanguageServer

logger = logging.getLogger(__name__)

# ycmd candidate kinds -> LSP completion kinds
_KIND_MAP: dict[str, lsp.CompletionItemKind] = {
    "CLASS": lsp.CompletionItemKind.Class,
    "STRUCT": lsp.CompletionItemKind.Struct,
    "ENUM": lsp.CompletionItemKind.Enum,
    "TYPE": lsp.CompletionItemKind.TypeParameter,
    "MEMBER": lsp.CompletionItemKind.Field,
    "FUNCTION": lsp.CompletionItemKind.Function,
    "VARIABLE": lsp.CompletionItemKind.Variable,
    "MACRO": lsp.CompletionItemKind.Constant,
    "PARAMETER": lsp.CompletionItemKind.Variable,
    "NAMESPACE": lsp.CompletionItemKind.Module,
    "[File]": lsp.CompletionItemKind.File,
    "[Dir]": lsp.CompletionItemKind.Folder,
    "[File&Dir]": lsp.CompletionItemKind.File,
    "[ID]": lsp.CompletionItemKind.Text,
}


def completion_kind(kind: str) -> lsp.CompletionItemKind:
    return _KIND_MAP.get(kind, lsp.CompletionItemKind.Text)


def to_completion_item(candidate: Candidate, edit_range: lsp.Range) -> lsp.CompletionItem:
    """Convert one ycmd candidate to an LSP completion item."""
    detail = candidate.extra_menu_info or None
    documentation = None
    if candidate.detailed_info:
        documentation = lsp.MarkupContent(
            kind=lsp.MarkupKind.PlainText,
            value=candidate.detailed_info,
        )
    return lsp.CompletionItem(
        label=candidate.menu_text or candidate.insertion_text,
        kind=completion_kind(candidate.kind),
        detail=detail,
        documentation=documentation,
        filter_text=candidate.insertion_text,
        text_edit=lsp.TextEdit(range=edit_range, new_text=candidate.insertion_text),
    )


def to_completion_list(
    result: CompletionList, line_text: str, position: lsp.Position
) -> lsp.CompletionList:
    """Convert a ycmd completion result at ``position``.

    ``completion_start_column`` is a 1-based byte column on the cursor line.
    """
    start_char = min(byte_to_char(line_text, result.start_column - 1), position.character)
    edit_range = lsp.Range(
        start=lsp.Position(line=position.line, character=start_char),
        end=position,
    )
    return lsp.CompletionList(
        is_incomplete=True,
        items=[to_completion_item(c, edit_range) for c in result.candidates],
    )


class YcmdCompletionProvider:
    """Provides completions from ycmd."""

    def __init__(self, server: YcmdLanguageServer):
        self.server = server

    async def get_completions(self, params: lsp.CompletionParams) -> lsp.CompletionList | None:
        """Get completions at the given position."""
        uri = params.text_document.uri
        buffer = self.server.get_buffer(uri)
        if buffer is None:
            logger.debug(f"No document found for {uri}")
            return None

        snapshot = buffer.snapshot()
        position = params.position
        location = position_to_location(snapshot, position.line, position.character)

        force_semantic = (
            params.context is not None
            and params.context.trigger_kind == lsp.CompletionTriggerKind.Invoked
            and self.server.force_semantic_on_invoke
        )

        try:
            result = await self.server.ycmd.complete(
                buffer, location.line, location.column, force_semantic=force_semantic
            )
        except YcmdError as e:
            logger.error(f"Completion request failed: {e}")
            return None

        if result is None:
            return None

        for error in result.errors:
            logger.debug(f"ycmd completion error: {error}")

        line_text = snapshot.get_line(position.line) if position.line < snapshot.line_count() else ""
        logger.debug(f"Got {len(result.candidates)} completions from ycmd")
        return to_completion_list(result, line_text, position)

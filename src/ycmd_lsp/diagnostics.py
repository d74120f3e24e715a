"""
Diagnostics publishing for the ycmd LSP bridge.

Every successful FileReadyToParse result is converted to LSP diagnostics and
published for the buffer it belongs to.
"""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING

from lsprotocol import types as lsp

from ycmd_lsp.fixit import location_to_position
from ycmd_lsp.results import Diagnostic, DiagnosticList
from ycmd_lsp.text_buffer import EditableBuffer, SourceBuffer, TextDocumentBuffer

if TYPE_CHECKING:
    from ycmd_lsp.server import YcmdLanguageServer

logger = logging.getLogger(__name__)

_SEVERITY_MAP: dict[str, lsp.DiagnosticSeverity] = {
    "ERROR": lsp.DiagnosticSeverity.Error,
    "WARNING": lsp.DiagnosticSeverity.Warning,
    "INFORMATION": lsp.DiagnosticSeverity.Information,
    "HINT": lsp.DiagnosticSeverity.Hint,
}


def _same_file(a: str, b: str) -> bool:
    return os.path.normcase(os.path.abspath(a)) == os.path.normcase(os.path.abspath(b))


def to_lsp_diagnostic(buffer: EditableBuffer, diagnostic: Diagnostic) -> lsp.Diagnostic:
    """Convert a ycmd diagnostic, using its extent when the server gives one."""
    if diagnostic.start is not None and diagnostic.end is not None:
        start = location_to_position(buffer, diagnostic.start)
        end = location_to_position(buffer, diagnostic.end)
    else:
        start = location_to_position(buffer, diagnostic.location)
        end = (start[0], start[1] + 1)

    data = {"fixit_available": True} if diagnostic.fixit_available else None
    return lsp.Diagnostic(
        range=lsp.Range(
            start=lsp.Position(line=start[0], character=start[1]),
            end=lsp.Position(line=end[0], character=end[1]),
        ),
        message=diagnostic.text,
        severity=_SEVERITY_MAP.get(diagnostic.kind.upper(), lsp.DiagnosticSeverity.Error),
        source="ycmd",
        data=data,
    )


class YcmdDiagnosticsProvider:
    """Publishes parse results as LSP diagnostics."""

    def __init__(self, server: YcmdLanguageServer):
        self.server = server
        self._published: dict[str, list[lsp.Diagnostic]] = {}

    def convert(self, buffer: SourceBuffer, result: DiagnosticList) -> list[lsp.Diagnostic]:
        if isinstance(buffer, TextDocumentBuffer):
            editable = buffer.snapshot()
        elif isinstance(buffer, EditableBuffer):
            editable = buffer
        else:
            return []

        diagnostics = []
        for diagnostic in result.diagnostics:
            filepath = diagnostic.location.filepath
            # ycmd reports diagnostics of included files too; keep this buffer's
            if filepath and not _same_file(filepath, buffer.file_path):
                continue
            diagnostics.append(to_lsp_diagnostic(editable, diagnostic))
        return diagnostics

    def on_parse_result(self, buffer: SourceBuffer, result: DiagnosticList) -> None:
        """Parse observer: publish the diagnostics of a finished parse."""
        diagnostics = self.convert(buffer, result)
        self._published[buffer.buffer_id] = diagnostics
        logger.debug(f"Publishing {len(diagnostics)} diagnostics for {buffer.buffer_id}")
        self.server.text_document_publish_diagnostics(
            lsp.PublishDiagnosticsParams(uri=buffer.buffer_id, diagnostics=diagnostics)
        )

    def get_cached(self, uri: str) -> list[lsp.Diagnostic]:
        return self._published.get(uri, [])

    def clear_cache(self, uri: str) -> None:
        """Clear cached diagnostics for a URI."""
        self._published.pop(uri, None)

"""
Text buffer interfaces.

The client core never talks to an editor directly. It reads buffers through
``SourceBuffer`` and edits them through ``EditableBuffer``.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING, ContextManager, Iterator, Protocol, runtime_checkable

if TYPE_CHECKING:
    from pygls.workspace import TextDocument


@runtime_checkable
class SourceBuffer(Protocol):
    """A buffer the client can describe to the server."""

    @property
    def buffer_id(self) -> str:
        """Stable identifier used to key per-buffer state."""
        ...

    @property
    def file_path(self) -> str:
        """Absolute path of the file backing the buffer."""
        ...

    @property
    def filetypes(self) -> list[str]:
        ...

    def get_text(self) -> str:
        ...


@runtime_checkable
class EditableBuffer(SourceBuffer, Protocol):
    """A line-oriented buffer that can be edited.

    Positions are ``(line, character)`` pairs, both 0-based.
    """

    def line_count(self) -> int:
        ...

    def get_line(self, index: int) -> str:
        """Text of a line without its newline."""
        ...

    def replace(self, start: tuple[int, int], end: tuple[int, int], text: str) -> None:
        """Replace the text between ``start`` and ``end`` with ``text``."""
        ...

    def edit_group(self) -> ContextManager[None]:
        """Group edits into one logical operation."""
        ...


class LineBuffer:
    """In-memory ``EditableBuffer`` holding the text as a list of lines."""

    def __init__(
        self,
        text: str,
        file_path: str,
        filetypes: list[str] | None = None,
        buffer_id: str | None = None,
    ) -> None:
        self._lines = text.split("\n")
        self._file_path = file_path
        self._filetypes = list(filetypes or [])
        self._buffer_id = buffer_id or file_path

    @property
    def buffer_id(self) -> str:
        return self._buffer_id

    @property
    def file_path(self) -> str:
        return self._file_path

    @property
    def filetypes(self) -> list[str]:
        return self._filetypes

    def get_text(self) -> str:
        return "\n".join(self._lines)

    def line_count(self) -> int:
        return len(self._lines)

    def get_line(self, index: int) -> str:
        return self._lines[index]

    def replace(self, start: tuple[int, int], end: tuple[int, int], text: str) -> None:
        start_line, start_char = start
        end_line, end_char = end
        if not (0 <= start_line <= end_line < len(self._lines)):
            raise IndexError(f"range {start}-{end} outside buffer of {len(self._lines)} lines")

        prefix = self._lines[start_line][:start_char]
        suffix = self._lines[end_line][end_char:]
        new_lines = (prefix + text + suffix).split("\n")
        self._lines[start_line : end_line + 1] = new_lines

    @contextmanager
    def edit_group(self) -> Iterator[None]:
        """Apply a group of edits atomically: on error the buffer is restored."""
        snapshot = list(self._lines)
        try:
            yield
        except Exception:
            self._lines = snapshot
            raise


class TextDocumentBuffer:
    """Read-only ``SourceBuffer`` over a live pygls ``TextDocument``.

    pygls updates the document in place on every change, so reading the text
    lazily always yields the latest contents.
    """

    def __init__(self, document: TextDocument, filetypes: list[str]) -> None:
        self._document = document
        self._filetypes = filetypes

    @property
    def buffer_id(self) -> str:
        return self._document.uri

    @property
    def file_path(self) -> str:
        return self._document.path

    @property
    def filetypes(self) -> list[str]:
        return self._filetypes

    def get_text(self) -> str:
        return self._document.source

    def snapshot(self) -> LineBuffer:
        """Editable copy of the current contents."""
        return LineBuffer(
            self.get_text(), self.file_path, self._filetypes, buffer_id=self.buffer_id
        )

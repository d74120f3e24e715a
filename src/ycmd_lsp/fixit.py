"""
Fix-it application.

A fix-it is a batch of chunks, each expressed in coordinates of the original,
unmodified file. Applying one chunk shifts the text under every chunk after
it, so chunks are applied in position order while tracking how far earlier
edits moved lines (``line_delta``) and columns on the current line
(``char_delta``).

ycmd columns are 1-based UTF-8 byte offsets. All delta bookkeeping is done in
bytes; a byte column is converted to a character offset only against the
current text of the line, right before each edit.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Callable, Iterable

from ycmd_lsp.results import Chunk, FixIt, Location
from ycmd_lsp.text_buffer import EditableBuffer

logger = logging.getLogger(__name__)


def byte_to_char(line_text: str, byte_offset: int) -> int:
    """Convert a 0-based byte offset within a line to a character offset."""
    if byte_offset <= 0:
        return 0
    encoded = line_text.encode("utf-8")
    if byte_offset >= len(encoded):
        return len(line_text) + (byte_offset - len(encoded))
    return len(encoded[:byte_offset].decode("utf-8", errors="ignore"))


def char_to_byte(line_text: str, char_offset: int) -> int:
    """Convert a 0-based character offset within a line to a byte offset."""
    if char_offset <= 0:
        return 0
    return len(line_text[:char_offset].encode("utf-8")) + max(0, char_offset - len(line_text))


def byte_length(text: str) -> int:
    return len(text.encode("utf-8"))


def location_to_position(buffer: EditableBuffer, location: Location) -> tuple[int, int]:
    """Convert a ycmd location to a 0-based ``(line, character)`` position.

    Line and column values below 1 clamp to the start of the line/buffer.
    """
    line = max(location.line, 1) - 1
    if line >= buffer.line_count():
        line = max(buffer.line_count() - 1, 0)
    if location.column < 1:
        return line, 0
    return line, byte_to_char(buffer.get_line(line), location.column - 1)


def position_to_location(
    buffer: EditableBuffer, line: int, character: int, filepath: str | None = None
) -> Location:
    """Convert a 0-based ``(line, character)`` position to a ycmd location."""
    text = buffer.get_line(line) if 0 <= line < buffer.line_count() else ""
    return Location(
        filepath=filepath if filepath is not None else buffer.file_path,
        line=line + 1,
        column=char_to_byte(text, character) + 1,
    )


def sort_chunks(chunks: Iterable[Chunk]) -> list[Chunk]:
    """Order chunks by start position.

    The sort is stable: chunks with identical starts keep their input order.
    """
    return sorted(chunks, key=lambda c: (c.start.line, c.start.column))


def _replace_chunk(
    buffer: EditableBuffer, chunk: Chunk, line_delta: int, char_delta: int
) -> tuple[int, int]:
    """Apply one chunk shifted by the running deltas.

    Returns the ``(line_delta, char_delta)`` this chunk adds.
    """
    start_line = chunk.start.line - 1 + line_delta
    end_line = chunk.end.line - 1 + line_delta
    source_line_count = end_line - start_line + 1

    start_column = chunk.start.column - 1 + char_delta
    end_column = chunk.end.column - 1
    if source_line_count == 1:
        end_column += char_delta

    replacement_lines = chunk.replacement_text.split("\n")
    replacement_line_count = len(replacement_lines)

    start = (start_line, byte_to_char(buffer.get_line(start_line), start_column))
    end = (end_line, byte_to_char(buffer.get_line(end_line), end_column))
    buffer.replace(start, end, chunk.replacement_text)

    new_line_delta = replacement_line_count - source_line_count
    new_char_delta = byte_length(replacement_lines[-1]) - (end_column - start_column)
    if replacement_line_count > 1:
        # the last replacement line starts at column 0, not at start_column
        new_char_delta -= start_column

    return new_line_delta, new_char_delta


def apply_chunks(buffer: EditableBuffer, chunks: Iterable[Chunk]) -> None:
    """Apply all chunks to ``buffer`` as one logical edit.

    The result equals applying every chunk against the original text, even
    though each edit moves the text under the chunks that follow it.
    """
    line_delta = 0
    char_delta = 0
    last_line = -1

    with buffer.edit_group():
        for chunk in sort_chunks(chunks):
            if chunk.start.line != last_line:
                char_delta = 0
            last_line = chunk.end.line

            new_line_delta, new_char_delta = _replace_chunk(
                buffer, chunk, line_delta, char_delta
            )
            line_delta += new_line_delta
            char_delta += new_char_delta


def group_chunks_by_file(chunks: Iterable[Chunk]) -> OrderedDict[str, list[Chunk]]:
    """Split chunks per file, keeping the first-seen file order."""
    grouped: OrderedDict[str, list[Chunk]] = OrderedDict()
    for chunk in chunks:
        grouped.setdefault(chunk.start.filepath, []).append(chunk)
    return grouped


def apply_fixit(
    fixit: FixIt, resolve_buffer: Callable[[str], EditableBuffer | None]
) -> dict[str, EditableBuffer]:
    """Apply a fix-it that may span several files.

    ``resolve_buffer`` maps a file path to the buffer to edit. Files it cannot
    resolve are skipped with a warning. Returns the edited buffers by path.
    """
    edited: dict[str, EditableBuffer] = {}
    for filepath, chunks in group_chunks_by_file(fixit.chunks).items():
        buffer = resolve_buffer(filepath)
        if buffer is None:
            logger.warning(f"No buffer for fix-it file {filepath}, skipping {len(chunks)} chunk(s)")
            continue
        apply_chunks(buffer, chunks)
        edited[filepath] = buffer
    return edited

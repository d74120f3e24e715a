"""
Decoded ycmd responses.

Responses are decoded once, at the HTTP boundary, into one of a small set of
result types. Anything downstream works with these types instead of poking
at raw JSON.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Location:
    """A position in a file as ycmd reports it.

    ``line`` is 1-based; ``column`` is the 1-based UTF-8 byte offset in the
    line.
    """

    filepath: str
    line: int
    column: int

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> Location:
        return cls(
            filepath=data.get("filepath", ""),
            line=int(data["line_num"]),
            column=int(data["column_num"]),
        )


@dataclass(frozen=True)
class Chunk:
    """A single replacement proposed by a fix-it."""

    start: Location
    end: Location
    replacement_text: str

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> Chunk:
        rng = data["range"]
        return cls(
            start=Location.from_json(rng["start"]),
            end=Location.from_json(rng["end"]),
            replacement_text=data.get("replacement_text", ""),
        )


@dataclass(frozen=True)
class FixIt:
    text: str
    location: Location | None
    chunks: list[Chunk]


@dataclass(frozen=True)
class Candidate:
    """One completion candidate."""

    insertion_text: str
    menu_text: str = ""
    extra_menu_info: str = ""
    detailed_info: str = ""
    kind: str = ""
    extra_data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Diagnostic:
    kind: str
    text: str
    location: Location
    start: Location | None = None
    end: Location | None = None
    fixit_available: bool = False


@dataclass(frozen=True)
class CompletionList:
    candidates: list[Candidate]
    start_column: int
    errors: list[dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class DiagnosticList:
    diagnostics: list[Diagnostic]


@dataclass(frozen=True)
class LocationList:
    locations: list[tuple[Location, str]]


@dataclass(frozen=True)
class FixItList:
    fixits: list[FixIt]


@dataclass(frozen=True)
class GenericPayload:
    data: Any

    @property
    def message(self) -> str | None:
        """Human-readable text for GetType/GetDoc style answers."""
        if isinstance(self.data, str):
            return self.data
        if isinstance(self.data, dict):
            return self.data.get("message") or self.data.get("detailed_info")
        return None


@dataclass(frozen=True)
class ServerException:
    """A structured exception returned by the server."""

    kind: str
    message: str
    extra: dict[str, Any] = field(default_factory=dict)


Result = Union[CompletionList, DiagnosticList, LocationList, FixItList, GenericPayload]
Parser = Callable[[Any], Result]


def is_exception_payload(payload: Any) -> bool:
    return isinstance(payload, dict) and "exception" in payload


def decode_exception(payload: dict[str, Any]) -> ServerException:
    """Decode ``{"exception": {"TYPE": ...}, "message": ...}``.

    Fields of the exception record other than ``TYPE`` end up in ``extra``;
    top-level fields fill in anything the record does not carry.
    """
    record = payload.get("exception")
    extra: dict[str, Any] = {}
    kind = "Unknown"
    if isinstance(record, dict):
        extra = {k: v for k, v in record.items() if k != "TYPE"}
        kind = record.get("TYPE", kind)
    elif isinstance(record, str):
        kind = record
    for key, value in payload.items():
        if key not in ("exception", "message"):
            extra.setdefault(key, value)
    message = payload.get("message") or extra.pop("message", "") or ""
    return ServerException(kind=kind, message=str(message), extra=extra)


def decode_generic(payload: Any) -> GenericPayload:
    return GenericPayload(payload)


def decode_completions(payload: Any) -> CompletionList:
    items = payload.get("completions") or []
    candidates = [
        Candidate(
            insertion_text=item["insertion_text"],
            menu_text=item.get("menu_text", ""),
            extra_menu_info=item.get("extra_menu_info", ""),
            detailed_info=item.get("detailed_info", ""),
            kind=item.get("kind", ""),
            extra_data=item.get("extra_data") or {},
        )
        for item in items
    ]
    return CompletionList(
        candidates=candidates,
        start_column=int(payload.get("completion_start_column", 1)),
        errors=list(payload.get("errors") or []),
    )


def decode_diagnostics(payload: Any) -> DiagnosticList:
    if payload is None or payload == {}:
        return DiagnosticList([])
    if not isinstance(payload, list):
        raise TypeError(f"expected a diagnostic list, got {type(payload).__name__}")

    diagnostics = []
    for item in payload:
        extent = item.get("location_extent") or {}
        start = extent.get("start")
        end = extent.get("end")
        diagnostics.append(
            Diagnostic(
                kind=item.get("kind", "ERROR"),
                text=item.get("text", ""),
                location=Location.from_json(item["location"]),
                start=Location.from_json(start) if start and start.get("line_num") else None,
                end=Location.from_json(end) if end and end.get("line_num") else None,
                fixit_available=bool(item.get("fixit_available", False)),
            )
        )
    return DiagnosticList(diagnostics)


def decode_locations(payload: Any) -> LocationList:
    """GoTo answers are either one location or a list of them."""
    items = payload if isinstance(payload, list) else [payload]
    return LocationList(
        [(Location.from_json(item), item.get("description", "")) for item in items]
    )


def decode_fixits(payload: Any) -> FixItList:
    fixits = []
    for item in payload.get("fixits") or []:
        location = item.get("location")
        fixits.append(
            FixIt(
                text=item.get("text", ""),
                location=Location.from_json(location) if location else None,
                chunks=[Chunk.from_json(c) for c in item.get("chunks") or []],
            )
        )
    return FixItList(fixits)


def decode(payload: Any, parser: Parser) -> Result | ServerException | None:
    """Decode a JSON payload with ``parser``.

    Exception payloads always decode to ``ServerException`` regardless of the
    parser. Payloads the parser cannot make sense of decode to ``None``.
    """
    if is_exception_payload(payload):
        return decode_exception(payload)
    if payload is None and parser is not decode_diagnostics:
        return None
    try:
        return parser(payload)
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        logger.warning(f"Malformed response for {getattr(parser, '__name__', parser)}: {e}")
        return None

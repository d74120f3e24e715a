"""Tests for response decoding."""

from ycmd_lsp.results import (
    CompletionList,
    DiagnosticList,
    GenericPayload,
    Location,
    ServerException,
    decode,
    decode_completions,
    decode_diagnostics,
    decode_fixits,
    decode_generic,
    decode_locations,
)


def _loc(line, col, path="/p/a.cc"):
    return {"filepath": path, "line_num": line, "column_num": col}


class TestDecodeException:
    def test_exception_payload_wins_over_parser(self):
        payload = {
            "exception": {"TYPE": "UnknownExtraConf", "extra_conf_file": "/p/.ycm_extra_conf.py"},
            "message": "Found /p/.ycm_extra_conf.py. Load?",
            "traceback": "...",
        }
        result = decode(payload, decode_completions)
        assert isinstance(result, ServerException)
        assert result.kind == "UnknownExtraConf"
        assert result.message == "Found /p/.ycm_extra_conf.py. Load?"
        assert result.extra["extra_conf_file"] == "/p/.ycm_extra_conf.py"
        assert result.extra["traceback"] == "..."

    def test_missing_type(self):
        result = decode({"exception": {}, "message": "boom"}, decode_generic)
        assert result == ServerException(kind="Unknown", message="boom", extra={})


class TestDecodeResults:
    def test_completions(self):
        payload = {
            "completions": [
                {"insertion_text": "foo", "menu_text": "foo()", "kind": "FUNCTION"},
                {"insertion_text": "bar"},
            ],
            "completion_start_column": 5,
            "errors": [],
        }
        result = decode(payload, decode_completions)
        assert isinstance(result, CompletionList)
        assert result.start_column == 5
        assert [c.insertion_text for c in result.candidates] == ["foo", "bar"]
        assert result.candidates[0].kind == "FUNCTION"

    def test_empty_notify_response_is_empty_list(self):
        assert decode(None, decode_diagnostics) == DiagnosticList([])
        assert decode([], decode_diagnostics) == DiagnosticList([])

    def test_diagnostics(self):
        payload = [
            {
                "kind": "WARNING",
                "text": "unused variable",
                "location": _loc(3, 5),
                "location_extent": {"start": _loc(3, 5), "end": _loc(3, 8)},
                "fixit_available": True,
            }
        ]
        result = decode(payload, decode_diagnostics)
        diag = result.diagnostics[0]
        assert diag.kind == "WARNING"
        assert diag.location == Location("/p/a.cc", 3, 5)
        assert diag.end == Location("/p/a.cc", 3, 8)
        assert diag.fixit_available

    def test_single_and_multiple_locations(self):
        single = decode_locations(_loc(1, 2))
        assert single.locations == [(Location("/p/a.cc", 1, 2), "")]
        many = decode_locations([dict(_loc(1, 2), description="a"), _loc(4, 1, "/p/b.cc")])
        assert len(many.locations) == 2
        assert many.locations[0][1] == "a"

    def test_fixits(self):
        payload = {
            "fixits": [
                {
                    "text": "insert ';'",
                    "location": _loc(2, 3),
                    "chunks": [
                        {"replacement_text": ";", "range": {"start": _loc(2, 3), "end": _loc(2, 3)}}
                    ],
                }
            ]
        }
        result = decode_fixits(payload)
        assert result.fixits[0].text == "insert ';'"
        assert result.fixits[0].chunks[0].replacement_text == ";"

    def test_malformed_is_no_result(self):
        assert decode({"completions": [{"menu_text": "no insertion"}]}, decode_completions) is None
        assert decode("unexpected", decode_locations) is None
        assert decode(None, decode_completions) is None

    def test_generic_message(self):
        assert decode({"message": "int"}, decode_generic).message == "int"
        assert decode({"detailed_info": "doc"}, decode_generic).message == "doc"
        assert GenericPayload(True).message is None

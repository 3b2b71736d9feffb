"""Tests for wiretap.capture.records — record types and helpers."""

from __future__ import annotations

import json

import pytest

from wiretap.capture.records import (
    LogRecord,
    NetworkRecord,
    Timing,
    message_hash,
    normalize_method,
    safe_stringify,
    to_jsonable,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestNormalizeMethod:
    """normalize_method — fixed method set."""

    @pytest.mark.parametrize("raw", ["get", "Post", " put ", "DELETE", "patch", "head", "OPTIONS"])
    def test_known_methods_uppercased(self, raw: str) -> None:
        assert normalize_method(raw) == raw.strip().upper()

    def test_missing_means_get(self) -> None:
        assert normalize_method(None) == "GET"
        assert normalize_method("") == "GET"

    def test_unknown_method(self) -> None:
        assert normalize_method("PROPFIND") == "UNKNOWN"

    def test_bytes(self) -> None:
        assert normalize_method(b"POST") == "POST"


class TestMessageHash:
    """message_hash — stable content hash."""

    def test_empty_string(self) -> None:
        # 5381 in base 36
        assert message_hash("") == "45h"

    def test_deterministic(self) -> None:
        assert message_hash("info:hello") == message_hash("info:hello")

    def test_distinguishes_levels(self) -> None:
        assert message_hash("info:hello") != message_hash("error:hello")

    def test_base36_alphabet(self) -> None:
        value = message_hash("some longer message with ünïcödé ✓")
        assert value
        assert set(value) <= set("0123456789abcdefghijklmnopqrstuvwxyz")

    def test_fits_32_bits(self) -> None:
        assert int(message_hash("x" * 500), 36) < 2**32


class TestSafeStringify:
    def test_string_unchanged(self) -> None:
        assert safe_stringify("plain") == "plain"

    def test_json_values(self) -> None:
        assert safe_stringify({"a": [1, 2]}) == '{"a":[1,2]}'

    def test_unserializable_falls_back_to_str(self) -> None:
        class Thing:
            def __str__(self) -> str:
                return "thing"

        assert safe_stringify(Thing()) == "thing"

    def test_never_raises(self) -> None:
        class Broken:
            def __str__(self) -> str:
                raise RuntimeError("no")

        assert "Broken" in safe_stringify(Broken())

    def test_to_jsonable(self) -> None:
        assert to_jsonable(3) == 3
        assert to_jsonable([1, "a"]) == [1, "a"]
        assert isinstance(to_jsonable(object()), str)


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


class TestLogRecord:
    """LogRecord creation and wire form."""

    def test_create_fills_identity(self) -> None:
        record = LogRecord.create("info", "hello", ("hello",))
        assert record.id
        assert record.timestamp > 0
        assert record.hash == message_hash("info:hello")

    def test_ids_unique(self) -> None:
        a = LogRecord.create("info", "x")
        b = LogRecord.create("info", "x")
        assert a.id != b.id
        assert a.hash == b.hash

    def test_stack_only_for_errors(self) -> None:
        assert LogRecord.create("warn", "w", stack="trace").stack is None
        assert LogRecord.create("error", "e", stack="trace").stack == "trace"

    def test_frozen(self) -> None:
        record = LogRecord.create("info", "x")
        with pytest.raises(AttributeError):
            record.message = "y"  # type: ignore[misc]

    def test_to_dict(self) -> None:
        record = LogRecord.create("info", "count 3", ("count %d", 3))
        data = record.to_dict()
        assert data["level"] == "info"
        assert data["message"] == "count 3"
        assert data["args"] == ["count %d", 3]
        assert "stack" not in data
        json.dumps(data)

    def test_to_dict_stringifies_odd_args(self) -> None:
        record = LogRecord.create("log", "x", (object(),))
        json.dumps(record.to_dict())


class TestNetworkRecord:
    """NetworkRecord wire form."""

    def _record(self, **kwargs: object) -> NetworkRecord:
        base: dict[str, object] = dict(
            id="r1", timestamp=1000, method="GET", url="http://h/x", status=200,
            status_text="OK", duration=12, timing=Timing(1000, 1012),
        )
        base.update(kwargs)
        return NetworkRecord(**base)  # type: ignore[arg-type]

    def test_camel_case_keys(self) -> None:
        data = self._record(request_headers={"Accept": "*/*"}).to_dict()
        assert data["statusText"] == "OK"
        assert data["requestHeaders"] == {"Accept": "*/*"}
        assert data["responseHeaders"] == {}
        assert data["timing"] == {"start": 1000, "end": 1012}
        assert data["source"] == "manual"

    def test_absent_bodies_omitted(self) -> None:
        data = self._record().to_dict()
        assert "requestBody" not in data
        assert "responseBody" not in data
        assert "error" not in data

    def test_failed(self) -> None:
        record = self._record(status=0, status_text="Failed", error="boom")
        assert record.failed
        assert record.to_dict()["error"] == "boom"
        assert not self._record().failed

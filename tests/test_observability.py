from __future__ import annotations

import json
import logging

from flask import Flask

from app.observability import JsonFormatter, _RequestFieldsFilter, get_correlation_id


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="app.services.paste_service",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Paste access successful",
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_emits_structured_fields() -> None:
    line = JsonFormatter().format(
        _record(event="paste_access_success", paste_id="abc", correlation_id="cid")
    )
    payload = json.loads(line)

    assert payload["message"] == "Paste access successful"
    assert payload["level"] == "INFO"
    assert payload["event"] == "paste_access_success"
    assert payload["paste_id"] == "abc"
    assert payload["correlation_id"] == "cid"


def test_json_formatter_skips_absent_fields() -> None:
    payload = json.loads(JsonFormatter().format(_record(state_from=None)))

    assert "state_from" not in payload
    assert "paste_id" not in payload


def test_correlation_id_outside_request_is_none() -> None:
    assert get_correlation_id() is None


def test_json_formatter_timestamp_is_utc_with_milliseconds() -> None:
    record = _record()
    record.created = 1_700_000_000.123

    payload = json.loads(JsonFormatter().format(record))

    assert payload["timestamp"] == "2023-11-14T22:13:20.123Z"


def test_request_fields_are_stamped_inside_a_request(app: Flask) -> None:
    record = _record()

    with app.test_request_context("/api/pastes/abc", method="GET", headers={"X-Correlation-ID": "req-1"}):
        app.preprocess_request()
        assert _RequestFieldsFilter().filter(record)

    assert record.http_method == "GET"
    assert record.http_path == "/api/pastes/abc"
    assert record.correlation_id == "req-1"


def test_request_fields_filter_leaves_records_alone_outside_a_request() -> None:
    record = _record()

    assert _RequestFieldsFilter().filter(record)
    assert not hasattr(record, "http_method")

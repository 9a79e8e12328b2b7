import json
import logging

from qr_auth.middleware.logging import RequestIdFilter, StructuredFormatter, _current_request_id


def _record(msg: str = "hello", **extra) -> logging.LogRecord:
    record = logging.LogRecord("qr_auth.test", logging.INFO, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formatter_emits_json_line():
    line = StructuredFormatter().format(_record("hello", request_id="req-1"))
    entry = json.loads(line)

    assert entry["msg"] == "hello"
    assert entry["level"] == "INFO"
    assert entry["logger"] == "qr_auth.test"
    assert entry["service"] == "qr-auth"
    assert entry["request_id"] == "req-1"


def test_formatter_includes_http_fields():
    http = {"method": "GET", "path": "/auth/me", "status": 200}
    entry = json.loads(StructuredFormatter().format(_record(http=http)))
    assert entry["http"] == http


def test_request_id_filter_reads_context():
    token = _current_request_id.set("abc")
    try:
        record = _record()
        assert RequestIdFilter().filter(record)
        assert record.request_id == "abc"
    finally:
        _current_request_id.reset(token)


async def test_generated_request_id_is_returned(client):
    response = await client.get("/health")
    assert len(response.headers["X-Request-ID"]) == 32

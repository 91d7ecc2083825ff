import datetime as dt
import json
import logging

from penguin_stats.utils import JsonFormatter, normalize_http_url, parse_datetime_safe, redact_secrets


def test_parse_datetime_variants():
    expected = dt.datetime(2019, 5, 1, tzinfo=dt.timezone.utc)
    assert parse_datetime_safe(1556668800000) == expected
    assert parse_datetime_safe("1556668800000") == expected
    assert parse_datetime_safe("2019-05-01T08:00:00+08:00") == expected
    assert parse_datetime_safe("2019-05-01 00:00:00") == expected
    assert parse_datetime_safe(None) is None
    assert parse_datetime_safe("soon") is None


def test_normalize_http_url():
    assert normalize_http_url("penguin-stats.io/PenguinStats/api/v2/") == "https://penguin-stats.io/PenguinStats/api/v2"
    assert normalize_http_url("//penguin-stats.io") == "https://penguin-stats.io"
    assert normalize_http_url("   ") is None


def test_redact_user_id():
    s = redact_secrets("GET /result/matrix userID=12345678; token=abc")
    assert "12345678" not in s
    assert "abc" not in s


def test_json_formatter():
    rec = logging.LogRecord("penguin_stats.client", logging.INFO, __file__, 1, "GET %s", ("/stages",), None)
    payload = json.loads(JsonFormatter().format(rec))
    assert payload["msg"] == "GET /stages"
    assert payload["ts"].endswith("Z")

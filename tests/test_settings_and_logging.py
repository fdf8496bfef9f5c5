import io
import json
import logging
import sys

from valuation_service.logging_config import (
    CorrelationIdFilter,
    JSONFormatter,
    build_handler,
    configure_logging,
    correlation_id,
)
from valuation_service.settings import ServiceSettings


def test_settings_defaults(monkeypatch):
    monkeypatch.delenv("PORT", raising=False)
    monkeypatch.delenv("VALUATION_REFERENCE_YEAR", raising=False)
    monkeypatch.delenv("ALLOWED_ORIGINS", raising=False)
    settings = ServiceSettings()
    assert settings.port == 3000
    assert settings.reference_year == 2024
    assert settings.cors_origins == ["*"]


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("PORT", "8080")
    monkeypatch.setenv("DATABASE_SSL", "true")
    monkeypatch.setenv("ALLOWED_ORIGINS", "https://a.example.com, https://b.example.com,")
    settings = ServiceSettings()
    assert settings.port == 8080
    assert settings.database_ssl is True
    assert settings.cors_origins == ["https://a.example.com", "https://b.example.com"]


def test_json_formatter():
    formatter = JSONFormatter()
    record = logging.LogRecord("test", logging.INFO, "", 0, "priced %s", ("JCB 3DX",), None)
    token = correlation_id.set("req-7")
    try:
        parsed = json.loads(formatter.format(record))
    finally:
        correlation_id.reset(token)
    assert parsed["message"] == "priced JCB 3DX"
    assert parsed["level"] == "INFO"
    assert parsed["correlation_id"] == "req-7"
    assert "timestamp" in parsed


def test_json_formatter_includes_exception():
    formatter = JSONFormatter()
    try:
        raise ValueError("bad row")
    except ValueError:
        record = logging.LogRecord("test", logging.ERROR, "", 0, "failed", (), sys.exc_info())
    parsed = json.loads(formatter.format(record))
    assert "ValueError: bad row" in parsed["exception"]


def test_correlation_filter_defaults_to_dash():
    record = logging.LogRecord("test", logging.INFO, "", 0, "x", (), None)
    assert CorrelationIdFilter().filter(record) is True
    assert record.correlation_id == "-"


def test_configure_logging():
    configure_logging(level="DEBUG", fmt="text")
    root = logging.getLogger()
    assert root.level == logging.DEBUG
    assert len(root.handlers) == 1
    configure_logging(level="INFO", fmt="json")
    assert isinstance(logging.getLogger().handlers[0].formatter, JSONFormatter)


def test_handler_stamps_correlation_id_on_json_lines():
    stream = io.StringIO()
    handler = build_handler("json", stream)
    logger = logging.getLogger("test.correlation")
    logger.addHandler(handler)
    logger.propagate = False
    token = correlation_id.set("req-11")
    try:
        logger.warning("saved %s", "row")
    finally:
        correlation_id.reset(token)
        logger.removeHandler(handler)
        logger.propagate = True
    parsed = json.loads(stream.getvalue())
    assert parsed["correlation_id"] == "req-11"
    assert parsed["message"] == "saved row"
    assert parsed["timestamp"].endswith("+00:00")

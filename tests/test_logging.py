"""Tests for the structlog setup used by the CLI."""

from __future__ import annotations

import json
import logging

import pytest
import structlog

from depreview.core.logging import setup_logging


@pytest.fixture(autouse=True)
def restore_logging(monkeypatch):
    monkeypatch.delenv("DEPREVIEW_LOG_LEVEL", raising=False)
    monkeypatch.delenv("DEPREVIEW_LOG_FORMAT", raising=False)
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    depreview_level = logging.getLogger("depreview").level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    logging.getLogger("depreview").setLevel(depreview_level)
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


class TestSetupLogging:
    def test_json_on_stderr_with_context(self, monkeypatch, capsys):
        monkeypatch.setenv("DEPREVIEW_LOG_FORMAT", "json")
        setup_logging()
        with structlog.contextvars.bound_contextvars(crate="serde"):
            structlog.get_logger("depreview.review").info("review.start", old="1.0.0")

        captured = capsys.readouterr()
        assert captured.out == ""
        event = json.loads(captured.err.strip().splitlines()[-1])
        assert event["event"] == "review.start"
        assert event["crate"] == "serde"
        assert event["logger"] == "depreview.review"
        assert event["level"] == "info"
        assert event["timestamp"].endswith("Z")

    def test_explicit_level_wins(self, monkeypatch):
        monkeypatch.setenv("DEPREVIEW_LOG_LEVEL", "ERROR")
        setup_logging("debug")
        assert logging.getLogger("depreview").level == logging.DEBUG

    def test_third_party_loggers_stay_quiet(self, monkeypatch, capsys):
        monkeypatch.setenv("DEPREVIEW_LOG_FORMAT", "json")
        setup_logging("DEBUG")
        logging.getLogger("httpx").info("HTTP Request: GET https://crates.io")
        logging.getLogger("httpx").warning("connection reset")

        err = capsys.readouterr().err
        assert "HTTP Request" not in err
        assert "connection reset" in err

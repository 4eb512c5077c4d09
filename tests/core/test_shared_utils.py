"""
Tests for gp_shared: time.py, result.py, errors.py, log.py.
"""
from __future__ import annotations

import json
import logging
from enum import Enum

import pytest

from gp_shared import errors as errors_mod
from gp_shared import log as log_mod
from gp_shared import result as result_mod
from gp_shared import time as time_mod
from gp_shared import ErrorCode


# ─── time.py ───────────────────────────────────────────────────────────────


def test_timer_with_logger(caplog):
    log = logging.getLogger("test_timer")
    with caplog.at_level(logging.DEBUG, logger="test_timer"):
        with time_mod.timer("op", log):
            pass
    assert any("op" in r.message for r in caplog.records)


def test_timer_without_logger(capsys):
    with time_mod.timer("myop"):
        pass
    captured = capsys.readouterr()
    assert "myop" in captured.out


# ─── result.py ─────────────────────────────────────────────────────────────


class _EC(Enum):
    NOT_FOUND = "NOT_FOUND"
    DB_ERROR = "DB_ERROR"


def test_result_err_with_enum_code():
    r = result_mod.Result.Err(_EC.NOT_FOUND, "file missing")
    assert not r.ok
    assert r.code == "NOT_FOUND"
    assert r.error == "file missing"


def test_result_err_with_error_code_and_meta():
    r = result_mod.Result.Err(ErrorCode.THROTTLED, "slow down", retry_after=2)
    assert r.code == "THROTTLED"
    assert r.meta == {"retry_after": 2}


def test_result_unwrap_or_default():
    assert result_mod.Result.Err("E", "bad").unwrap_or(99) == 99


def test_result_unwrap_or_ok():
    assert result_mod.Result.Ok(7).unwrap_or(99) == 7


# ─── log.py ────────────────────────────────────────────────────────────────


def test_get_logger_does_not_duplicate_correlation_filter() -> None:
    logger = log_mod.get_logger("test_shared_utils_logger")
    logger = log_mod.get_logger("test_shared_utils_logger")
    filters = [f for f in list(logger.filters or []) if isinstance(f, log_mod.CorrelationFilter)]
    assert len(filters) == 1


@pytest.mark.parametrize(
    ("module", "name"),
    [
        ("gp_backend.features.crawl.engine", "geopic.crawl.engine"),
        ("gp_backend.routes.registry", "geopic.routes.registry"),
        ("gp_shared.errors", "geopic.errors"),
        ("__main__", "geopic.main"),
    ],
)
def test_get_logger_names(module, name):
    assert log_mod.get_logger(module).name == name


def test_crawl_id_reaches_formatted_record():
    record = logging.LogRecord("geopic.crawl", logging.WARNING, __file__, 1, "folder skipped", None, None)
    token = log_mod.crawl_id_var.set("c-42")
    try:
        assert log_mod.CorrelationFilter().filter(record)
    finally:
        log_mod.crawl_id_var.reset(token)

    line = log_mod.EmojiFormatter().format(record)
    assert "Geopic" in line
    assert "geopic.crawl [c-42]: folder skipped" in line


def test_log_structured_emits_json(caplog):
    log = logging.getLogger("test_structured")
    with caplog.at_level(logging.INFO, logger="test_structured"):
        log_mod.log_structured(log, logging.INFO, "Crawl finished", items=4)
    payload = json.loads(caplog.records[-1].getMessage())
    assert payload["message"] == "Crawl finished"
    assert payload["context"] == {"items": 4}
    assert payload["timestamp"].endswith("Z")


# ─── errors.py ─────────────────────────────────────────────────────────────


def test_sanitize_error_message_does_not_mask_mime_type() -> None:
    msg = errors_mod.sanitize_error_message(ValueError("application/json parse failed"), "bad")
    assert "application/json" in msg


def test_sanitize_error_message_masks_tokens_and_paths() -> None:
    msg = errors_mod.sanitize_error_message(
        RuntimeError("Bearer abc.DEF-123 rejected for https://x.example/y?access_token=s3cret at /home/someone/index.db"),
        "Remote error",
    )
    assert msg.startswith("Remote error: ")
    assert "abc.DEF-123" not in msg and "Bearer [token]" in msg
    assert "s3cret" not in msg and "access_token=[redacted]" in msg
    assert "/home/someone" not in msg and "[path]" in msg


def test_sanitize_error_message_fallbacks() -> None:
    assert errors_mod.sanitize_error_message(None, "nothing") == "nothing"
    assert errors_mod.sanitize_error_message(ValueError(""), "") == "An error occurred"

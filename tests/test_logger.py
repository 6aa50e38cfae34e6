from __future__ import annotations

import json

import pytest

from traefik_manager.logger import configure_logging, get_logger, resolve_level


def test_json_lines_carry_event_and_fields(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging("info", None, log_format="json")
    logger = get_logger("tests.json")

    with logger.context(request_id="req-1"):
        logger.info("thing.done", "Done", count=2)
    logger.debug("thing.hidden", "Not emitted at info")

    lines = [line for line in capsys.readouterr().err.splitlines() if line.strip()]
    assert len(lines) == 1
    record = json.loads(lines[0])
    assert record["level"] == "info"
    assert record["category"] == "tests.json"
    assert record["event"] == "thing.done"
    assert record["message"] == "Done"
    assert record["count"] == 2
    assert record["request_id"] == "req-1"


def test_text_format_and_warn_alias(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging("warn", None, log_format="text", use_colors=False)
    logger = get_logger("tests.text").bind(component="store")

    logger.info("quiet", "Filtered out")
    logger.warning("store.rejected", "Rejected", status_code=409)

    output = capsys.readouterr().err.strip()
    assert "quiet" not in output
    assert "WARNING" in output
    assert "| tests.text | (!) store.rejected | Rejected | component: store | status_code: 409" in output


def test_operation_logs_completion(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging("info", None, log_format="json")
    logger = get_logger("tests.operation")

    with logger.operation("snapshot.load", "Loaded", path="/tmp/x"):
        pass

    record = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
    assert record["event"] == "operation.complete"
    assert record["operation"] == "snapshot.load"
    assert "duration_ms" in record


def test_file_handler(tmp_path) -> None:
    log_file = tmp_path / "logs" / "app.log"
    configure_logging("info", str(log_file), log_format="text")

    get_logger("tests.file").info("file.write", "Written")

    assert "file.write" in log_file.read_text()


def test_unknown_level_is_rejected() -> None:
    assert resolve_level("WARN") == "WARNING"
    with pytest.raises(ValueError):
        resolve_level("chatty")

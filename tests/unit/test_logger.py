"""Unit tests for structured JSON logging system."""

import json
import logging
import time
from pathlib import Path

import pytest

from agentshell.core.logger import AgentShellLogger, JSONFormatter


@pytest.fixture(autouse=True)
def enable_file_logging(monkeypatch):
    """File logging is disabled suite-wide; these tests need it back."""
    monkeypatch.delenv("AGENTSHELL_DISABLE_FILE_LOGGING", raising=False)
    monkeypatch.delenv("AGENTSHELL_LOG_LEVEL", raising=False)


@pytest.fixture
def temp_log_dir(tmp_path):
    """Create temporary log directory."""
    log_dir = tmp_path / "logs"
    log_dir.mkdir()
    return log_dir


@pytest.fixture
def logger(temp_log_dir):
    """Create logger with temporary directory."""
    return AgentShellLogger(log_dir=str(temp_log_dir), level="DEBUG")


def read_log_lines(log_file):
    """Read and parse JSON log lines."""
    if not log_file.exists():
        return []

    lines = []
    with log_file.open() as f:
        for line in f:
            if line.strip():
                lines.append(json.loads(line))
    return lines


def flush(logger):
    for handler in logger._logger.handlers:
        handler.flush()


def test_logger_initialization(temp_log_dir):
    """Test logger initialization creates log directory and file."""
    logger = AgentShellLogger(log_dir=str(temp_log_dir))

    assert temp_log_dir.exists()
    assert logger.log_file.parent == temp_log_dir
    assert logger.log_file.name == "agentshell.log"


def test_logger_default_directory(tmp_path, monkeypatch):
    """Test logger uses default ~/.agentshell/logs directory."""
    fake_home = tmp_path / "fake_home"
    fake_home.mkdir()
    monkeypatch.setenv("HOME", str(fake_home))

    logger = AgentShellLogger()

    expected_dir = Path("~/.agentshell/logs").expanduser()
    assert logger.log_dir == expected_dir
    assert expected_dir.exists()


def test_info_logging(logger):
    logger.info("Test message")
    flush(logger)

    lines = read_log_lines(logger.log_file)
    assert len(lines) == 1
    assert lines[0]["level"] == "INFO"
    assert lines[0]["message"] == "Test message"
    assert "timestamp" in lines[0]


def test_warn_and_error_levels(logger):
    logger.warn("Warning message")
    logger.error("Error message")
    flush(logger)

    lines = read_log_lines(logger.log_file)
    assert [line["level"] for line in lines] == ["WARNING", "ERROR"]


def test_structured_logging_with_kv_pairs(logger):
    """Test structured logging with key-value pairs."""
    logger.info("Command finished", execution_id="abc", exit_code=0, truncated=False)
    flush(logger)

    lines = read_log_lines(logger.log_file)
    assert len(lines) == 1
    assert lines[0]["message"] == "Command finished"
    assert lines[0]["execution_id"] == "abc"
    assert lines[0]["exit_code"] == 0
    assert lines[0]["truncated"] is False


def test_non_json_values_are_stringified(logger):
    logger.info("Path logged", path=Path("/tmp/x"))
    flush(logger)

    lines = read_log_lines(logger.log_file)
    assert lines[0]["path"] == "/tmp/x"


def test_log_level_filtering(logger):
    logger.set_level("ERROR")

    logger.debug("Debug message")
    logger.info("Info message")
    logger.warn("Warning message")
    logger.error("Error message")
    flush(logger)

    lines = read_log_lines(logger.log_file)
    assert len(lines) == 1
    assert lines[0]["level"] == "ERROR"


def test_default_level_is_warning(temp_log_dir):
    logger = AgentShellLogger(log_dir=str(temp_log_dir))
    logger.info("hidden")
    logger.warn("shown")
    flush(logger)

    lines = read_log_lines(logger.log_file)
    assert [line["message"] for line in lines] == ["shown"]


def test_log_level_from_env(temp_log_dir, monkeypatch):
    """Test log level configuration from AGENTSHELL_LOG_LEVEL environment variable."""
    monkeypatch.setenv("AGENTSHELL_LOG_LEVEL", "ERROR")

    logger = AgentShellLogger(log_dir=str(temp_log_dir))
    logger.info("Info message")
    logger.error("Error message")
    flush(logger)

    lines = read_log_lines(logger.log_file)
    assert len(lines) == 1
    assert lines[0]["level"] == "ERROR"


def test_set_level_with_warn_alias(logger):
    logger.set_level("WARN")

    logger.debug("Debug")
    logger.info("Info")
    logger.warn("Warning")
    flush(logger)

    lines = read_log_lines(logger.log_file)
    assert len(lines) == 1
    assert lines[0]["level"] == "WARNING"


def test_timed_logs_duration_and_late_fields(logger):
    with logger.timed("Shell runtime returned", runtime="FakeRuntime") as fields:
        time.sleep(0.01)
        fields["exit_code"] = 0
    flush(logger)

    lines = read_log_lines(logger.log_file)
    assert len(lines) == 1
    assert lines[0]["message"] == "Shell runtime returned"
    assert lines[0]["runtime"] == "FakeRuntime"
    assert lines[0]["exit_code"] == 0
    assert lines[0]["duration_ms"] > 0


def test_timed_logs_even_on_exception(logger):
    with pytest.raises(ValueError):
        with logger.timed("failing"):
            raise ValueError("Test error")
    flush(logger)

    lines = read_log_lines(logger.log_file)
    assert [line["message"] for line in lines] == ["failing"]


def test_bind_adds_context(logger):
    bound = logger.bind(execution_id="abc")
    bound.info("Interrupt requested", reason="user")
    logger.info("Unbound")
    flush(logger)

    lines = read_log_lines(logger.log_file)
    assert lines[0]["execution_id"] == "abc"
    assert lines[0]["reason"] == "user"
    assert "execution_id" not in lines[1]


def test_bind_call_values_win(logger):
    logger.bind(a=1).info("x", a=2)
    flush(logger)

    assert read_log_lines(logger.log_file)[0]["a"] == 2


def test_scrubber_applies_to_message_and_values(logger):
    logger.set_scrubber(lambda text: text.replace("hunter2", "<<$env:S0>>"))
    logger.error("Spawn failed for hunter2", error="bad hunter2", count=3)
    logger.set_scrubber(None)
    logger.info("hunter2 after reset")
    flush(logger)

    lines = read_log_lines(logger.log_file)
    assert lines[0]["message"] == "Spawn failed for <<$env:S0>>"
    assert lines[0]["error"] == "bad <<$env:S0>>"
    assert lines[0]["count"] == 3
    assert lines[1]["message"] == "hunter2 after reset"


def test_bound_logger_shares_scrubber(logger):
    bound = logger.bind(execution_id="e1")
    logger.set_scrubber(str.upper)
    bound.info("quiet")
    flush(logger)

    assert read_log_lines(logger.log_file)[0]["message"] == "QUIET"


def test_json_formatter():
    formatter = JSONFormatter()
    record = logging.LogRecord(
        name="test",
        level=logging.INFO,
        pathname="",
        lineno=0,
        msg="Test message",
        args=(),
        exc_info=None,
    )
    record.kv = {"key1": "value1", "key2": 42}

    data = json.loads(formatter.format(record))

    assert data["level"] == "INFO"
    assert data["message"] == "Test message"
    assert data["key1"] == "value1"
    assert data["key2"] == 42
    assert data["timestamp"].endswith("Z")
    assert len(data["timestamp"]) == 24


def test_log_rotation_creates_backup(temp_log_dir):
    logger = AgentShellLogger(
        log_dir=str(temp_log_dir),
        max_bytes=100,
        backup_count=2,
        level="DEBUG",
    )

    for i in range(50):
        logger.info(f"Message {i}" * 10)
    flush(logger)

    assert len(list(temp_log_dir.glob("agentshell.log*"))) > 1


def test_disable_file_logging_via_env(monkeypatch):
    monkeypatch.setenv("AGENTSHELL_DISABLE_FILE_LOGGING", "1")

    logger = AgentShellLogger()

    assert logger.log_dir is None
    assert logger.log_file is None
    logger.info("Test message")

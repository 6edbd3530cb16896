"""Structured JSON logging for agentshell.

Every record is one JSON object per line, written to a rotating file under
``~/.agentshell/logs`` and to stderr (stdout is reserved for command output).

Log records pass through an optional scrubber before they are serialized.
``ShellSession`` installs the compiled secret matchers there, so a secret
that slips into a message or a key-value field is written as a placeholder.
"""

import json
import logging
import os
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

Scrubber = Callable[[str], str]

LOGGER_NAME = "agentshell"
DEFAULT_LOG_DIR = "~/.agentshell/logs"
LOG_FILE_NAME = "agentshell.log"


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").lower() in ("1", "true", "yes")


class JSONFormatter(logging.Formatter):
    """Formats log records as JSON lines, scrubbing string values."""

    def __init__(self, scrubber: Scrubber | None = None) -> None:
        super().__init__()
        self.scrubber = scrubber

    def _clean(self, value: Any) -> Any:
        if self.scrubber is not None and isinstance(value, str):
            return self.scrubber(value)
        return value

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        dt = datetime.fromtimestamp(record.created, tz=UTC)
        log_data: dict[str, Any] = {
            "timestamp": dt.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
            "level": record.levelname,
            "message": self._clean(record.getMessage()),
        }

        kv = getattr(record, "kv", None)
        if kv:
            log_data.update({k: self._clean(v) for k, v in kv.items()})

        return json.dumps(log_data, default=str)


class AgentShellLogger:
    """Key-value logger over the ``agentshell`` stdlib logger.

    Instances made with ``bind()`` share handlers with their parent and add
    fixed context (such as an execution id) to every record.
    """

    log_dir: Path | None
    log_file: Path | None

    def __init__(
        self,
        log_dir: str | None = None,
        max_bytes: int = 10 * 1024 * 1024,
        backup_count: int = 5,
        level: str | None = None,
    ) -> None:
        """Configure handlers for the ``agentshell`` logger.

        Args:
            log_dir: Directory for log files (defaults to ~/.agentshell/logs/)
            max_bytes: Maximum size before rotation
            backup_count: Rotated files to keep
            level: DEBUG/INFO/WARN/ERROR; falls back to AGENTSHELL_LOG_LEVEL, then WARNING
        """
        self._logger = logging.getLogger(LOGGER_NAME)
        self._logger.propagate = False
        self._context: dict[str, Any] = {}
        self._formatter = JSONFormatter()

        for handler in self._logger.handlers[:]:
            handler.close()
            self._logger.removeHandler(handler)

        self.log_dir = None
        self.log_file = None
        if not _env_flag("AGENTSHELL_DISABLE_FILE_LOGGING"):
            self.log_dir = Path(log_dir) if log_dir else Path(DEFAULT_LOG_DIR).expanduser()
            self.log_dir.mkdir(parents=True, exist_ok=True)
            self.log_file = self.log_dir / LOG_FILE_NAME
            file_handler = RotatingFileHandler(
                self.log_file, maxBytes=max_bytes, backupCount=backup_count
            )
            file_handler.setFormatter(self._formatter)
            self._logger.addHandler(file_handler)

        console_handler = logging.StreamHandler()
        console_handler.setFormatter(self._formatter)
        self._logger.addHandler(console_handler)

        self.set_level(level or os.environ.get("AGENTSHELL_LOG_LEVEL", "WARNING"))

    def set_level(self, level: str) -> None:
        """Set logging level. ``WARN`` is accepted for ``WARNING``."""
        name = level.upper()
        if name == "WARN":
            name = "WARNING"
        self._logger.setLevel(getattr(logging, name, logging.INFO))

    def set_scrubber(self, scrubber: Scrubber | None) -> None:
        """Install (or clear) the text filter applied to every record."""
        self._formatter.scrubber = scrubber

    def bind(self, **context: Any) -> "AgentShellLogger":
        """Return a logger that adds ``context`` to every record."""
        child = object.__new__(AgentShellLogger)
        child._logger = self._logger
        child._formatter = self._formatter
        child._context = {**self._context, **context}
        child.log_dir = self.log_dir
        child.log_file = self.log_file
        return child

    def _log(self, level: int, msg: str, kv: dict[str, Any]) -> None:
        if self._logger.isEnabledFor(level):
            self._logger.log(level, msg, extra={"kv": {**self._context, **kv}})

    def debug(self, msg: str, **kv: Any) -> None:
        self._log(logging.DEBUG, msg, kv)

    def info(self, msg: str, **kv: Any) -> None:
        self._log(logging.INFO, msg, kv)

    def warn(self, msg: str, **kv: Any) -> None:
        self._log(logging.WARNING, msg, kv)

    def error(self, msg: str, **kv: Any) -> None:
        self._log(logging.ERROR, msg, kv)

    @contextmanager
    def timed(self, label: str, **kv: Any) -> Iterator[dict[str, Any]]:
        """Log ``label`` once the block exits, with its duration.

        The yielded dict can be filled with fields known only at the end.

        Example:
            with logger.timed("Shell process finished") as fields:
                fields["exit_code"] = ...
        """
        fields: dict[str, Any] = dict(kv)
        start = time.monotonic()
        try:
            yield fields
        finally:
            fields["duration_ms"] = round((time.monotonic() - start) * 1000, 3)
            self.debug(label, **fields)


_default_logger: AgentShellLogger | None = None


def get_logger() -> AgentShellLogger:
    """Return the process-wide logger, creating it on first use."""
    global _default_logger
    if _default_logger is None:
        _default_logger = AgentShellLogger()
    return _default_logger

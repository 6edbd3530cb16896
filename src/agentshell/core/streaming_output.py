"""Bounded-memory output accumulation with disk spill.

Keeps at most ``spill_threshold`` characters of command output in memory.
Once that is exceeded, the complete output goes to a temp file and memory
only holds the tail.
"""

import codecs
import re
import tempfile
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TextIO

from agentshell.core.config import DEFAULT_SPILL_THRESHOLD
from agentshell.core.logger import AgentShellLogger, get_logger

# CSI / OSC / two-char escape sequences
_ANSI_ESCAPE_RE = re.compile(
    r"\x1b\[[0-?]*[ -/]*[@-~]"
    r"|\x1b\][^\x07\x1b]*(?:\x07|\x1b\\)"
    r"|\x1b[@-Z\\-_]"
)
# C0 controls except tab and newline, plus DEL
_CONTROL_RE = re.compile(r"[\x00-\x08\x0b-\x1f\x7f]")


def sanitize_text(text: str) -> str:
    """Strip terminal escapes and control characters.

    Carriage returns are dropped entirely, so ``\\r\\n`` becomes ``\\n`` even
    when the pair is split across chunks.
    """
    text = _ANSI_ESCAPE_RE.sub("", text)
    return _CONTROL_RE.sub("", text)


def default_spill_path() -> str:
    """Allocate a unique temp file path for spilled output."""
    return str(Path(tempfile.gettempdir()) / f"agentshell-{uuid.uuid4().hex}.log")


@dataclass
class OutputResult:
    """Materialized sink contents."""

    output: str
    truncated: bool
    spill_path: str | None = None
    total_lines: int = 0
    total_bytes: int = 0

    @property
    def output_lines(self) -> int:
        return _count_lines(self.output)

    @property
    def output_bytes(self) -> int:
        return len(self.output.encode("utf-8"))


def _count_lines(text: str) -> int:
    if not text:
        return 0
    return text.count("\n") + (0 if text.endswith("\n") else 1)


class OutputSink:
    """Output accumulator with file spill support.

    ``push`` must be awaited before the next push; ordering across pushes is
    the caller's responsibility (see ``execute_bash``).
    """

    def __init__(
        self,
        spill_threshold: int = DEFAULT_SPILL_THRESHOLD,
        on_chunk: Callable[[str], None] | None = None,
        allocate_file_path: Callable[[], str] = default_spill_path,
        logger: AgentShellLogger | None = None,
    ) -> None:
        """Initialize output sink.

        Args:
            spill_threshold: Characters kept in memory before spilling to disk
            on_chunk: Live observer called with every raw chunk
            allocate_file_path: Returns the path of the spill file, called at most once
            logger: Logger for observer failures (defaults to process logger)
        """
        if spill_threshold < 1:
            raise ValueError("spill_threshold must be >= 1")

        self.spill_threshold = spill_threshold
        self._on_chunk = on_chunk
        self._allocate_file_path = allocate_file_path
        self._logger = logger

        self._buffer = ""
        self._file: TextIO | None = None
        self._file_path: str | None = None
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._total_bytes = 0
        self._newlines = 0
        self._last_char = ""
        self._finalized = False

    @property
    def spill_path(self) -> str | None:
        return self._file_path

    @property
    def spilled(self) -> bool:
        return self._file is not None

    @property
    def buffer(self) -> str:
        return self._buffer

    def _log(self) -> AgentShellLogger:
        if self._logger is None:
            self._logger = get_logger()
        return self._logger

    def _notify(self, chunk: str) -> None:
        if self._on_chunk is None:
            return
        try:
            self._on_chunk(chunk)
        except Exception as e:  # noqa: BLE001
            self._log().warn("Output observer raised; ignoring", error=str(e))

    def _open_file(self) -> TextIO:
        if self._file is None:
            self._file_path = self._allocate_file_path()
            self._file = open(self._file_path, "a", encoding="utf-8", newline="")  # noqa: SIM115
            # Seed with everything buffered so far so the file stays complete
            self._file.write(self._buffer)
        return self._file

    async def push(self, chunk: str) -> None:
        """Append a chunk of output.

        Args:
            chunk: Raw text as produced by the command
        """
        if self._finalized:
            raise RuntimeError("OutputSink already finalized")

        self._notify(chunk)
        data = sanitize_text(chunk)
        if not data:
            return

        buffer_overflow = len(self._buffer) + len(data) > self.spill_threshold
        file = self._open_file() if (self._file is not None or buffer_overflow) else None

        self._buffer += data
        if file is not None:
            file.write(data)

        if buffer_overflow:
            self._buffer = self._buffer[-self.spill_threshold :]

        self._total_bytes += len(data.encode("utf-8"))
        self._newlines += data.count("\n")
        self._last_char = data[-1]

    async def write(self, data: bytes | str) -> None:
        """Append raw bytes or text, decoding UTF-8 incrementally.

        Multi-byte characters split across writes are reassembled.
        """
        if isinstance(data, str):
            await self.push(data)
        else:
            text = self._decoder.decode(data)
            if text:
                await self.push(text)

    async def end(self) -> None:
        """Flush any partial character held by the byte decoder."""
        tail = self._decoder.decode(b"", final=True)
        if tail:
            await self.push(tail)

    def close(self) -> None:
        """Release the spill file handle. Idempotent; ``dump`` calls it."""
        if self._file is not None and not self._file.closed:
            self._file.flush()
            self._file.close()

    async def dump(self, notice: str | None = None) -> OutputResult:
        """Finalize the sink and return its contents.

        Args:
            notice: Optional annotation, rendered as a ``[notice]`` first line

        Returns:
            OutputResult; ``truncated`` is True iff a spill file was created
        """
        notice_line = f"[{notice}]\n" if notice else ""
        self._finalized = True

        total_lines = self._newlines + (1 if self._last_char and self._last_char != "\n" else 0)

        if self._file is not None:
            self.close()
            return OutputResult(
                output=f"{notice_line}...{self._buffer}",
                truncated=True,
                spill_path=self._file_path,
                total_lines=total_lines,
                total_bytes=self._total_bytes,
            )

        return OutputResult(
            output=f"{notice_line}{self._buffer}",
            truncated=False,
            total_lines=total_lines,
            total_bytes=self._total_bytes,
        )

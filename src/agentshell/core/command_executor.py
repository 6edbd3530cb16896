"""Shell runtime abstraction for command execution.

Provides a pluggable interface for running shell commands in different
environments (local subprocess, containers, remote sandboxes, etc.) without
changing executor or tool code.

The runtime owns the OS process, persistent session state and timeout
enforcement. The executor only describes *what* to run.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from agentshell.core.exceptions import CapabilityError

ChunkCallback = Callable[[str], None]

# Operations every runtime must provide
REQUIRED_OPERATIONS: tuple[str, ...] = ("run", "interrupt")


@dataclass
class ShellInvocation:
    """One command submitted to a shell runtime.

    Attributes:
        command: Final command text (prefix already applied)
        execution_id: Identifier used only to target ``interrupt``
        session_key: Groups invocations sharing persistent shell state
        cwd: Working directory (None = runtime default)
        env: Per-command environment overrides
        session_env: Variables applied when the session is first created
        timeout: Timeout in seconds, enforced by the runtime
        snapshot_path: Preload file sourced when the session is first created
    """

    command: str
    execution_id: str
    session_key: str
    cwd: str | None = None
    env: dict[str, str] = field(default_factory=dict)
    session_env: dict[str, str] | None = None
    timeout: float | None = None
    snapshot_path: str | None = None


@dataclass
class RuntimeOutcome:
    """Raw terminal report from a shell runtime."""

    exit_code: int | None = None
    cancelled: bool = False
    timed_out: bool = False


class ShellRuntime(ABC):
    """Abstract interface for the process runtime behind the executor.

    Implementations must be safe to call ``interrupt`` while ``run`` is
    awaiting, and must resolve ``run`` only once the process has actually
    stopped.
    """

    @abstractmethod
    async def run(self, invocation: ShellInvocation, on_chunk: ChunkCallback) -> RuntimeOutcome:
        """Run a command, streaming decoded output to ``on_chunk``.

        Args:
            invocation: What to run and where
            on_chunk: Called synchronously, in order, with each text chunk

        Returns:
            RuntimeOutcome describing how the process ended

        Raises:
            OSError: If the shell cannot be started
        """
        ...

    @abstractmethod
    def interrupt(self, execution_id: str) -> None:
        """Best-effort request to stop a running invocation.

        Unknown or finished execution ids are ignored.
        """
        ...

    async def close(self) -> None:
        """Release persistent sessions. Default: nothing to release."""
        return None

    def get_name(self) -> str:
        """Get runtime name for logging/debugging."""
        return type(self).__name__


def require_capabilities(runtime: Any) -> None:
    """Validate that ``runtime`` exposes every required operation.

    Checked eagerly when a session is created so a misconfigured runtime
    fails at startup rather than mid-command.

    Raises:
        CapabilityError: Listing every missing or non-callable operation
    """
    missing = [name for name in REQUIRED_OPERATIONS if not callable(getattr(runtime, name, None))]
    if missing:
        raise CapabilityError(
            f"Shell runtime {type(runtime).__name__} lacks: {', '.join(missing)}",
            missing=missing,
        )


@dataclass(frozen=True)
class Completed:
    """Process exited on its own."""

    exit_code: int


@dataclass(frozen=True)
class TimedOut:
    """Runtime stopped the process after the configured timeout."""

    timeout: float | None = None


@dataclass(frozen=True)
class Cancelled:
    """Cancellation token fired before or during execution."""


Outcome = Completed | TimedOut | Cancelled


def classify_outcome(raw: RuntimeOutcome, timeout: float | None) -> Outcome:
    """Map a runtime report to exactly one terminal state.

    Timeout wins over cancellation when a runtime reports both.
    """
    if raw.timed_out:
        return TimedOut(timeout)
    # No exit code means the process never finished on its own
    if raw.cancelled or raw.exit_code is None:
        return Cancelled()
    return Completed(raw.exit_code)


def outcome_notice(outcome: Outcome) -> str | None:
    """Human-readable annotation for non-normal outcomes."""
    if isinstance(outcome, TimedOut):
        if outcome.timeout:
            seconds = round(outcome.timeout) if outcome.timeout >= 1 else outcome.timeout
            return f"Command timed out after {seconds} seconds"
        return "Command timed out"
    if isinstance(outcome, Cancelled):
        return "Command cancelled"
    return None

"""Bash command execution with streaming output and cancellation.

``execute_bash`` drives a single command through the session's shell runtime:
it applies the command prefix, wires the cancellation token to the runtime's
interrupt, streams chunks into an OutputSink through one ordered queue and
classifies how the command ended.
"""

import asyncio
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from agentshell.core.cancellation import CancellationToken
from agentshell.core.command_executor import (
    Cancelled,
    Completed,
    Outcome,
    ShellInvocation,
    TimedOut,
    classify_outcome,
    outcome_notice,
)
from agentshell.core.exceptions import ShellRuntimeError
from agentshell.core.logger import AgentShellLogger
from agentshell.core.shell_session import ShellSession
from agentshell.core.streaming_output import OutputResult, OutputSink

DEFAULT_SESSION_KEY = "singleton"


@dataclass
class BashExecutorOptions:
    """Per-call execution options.

    Attributes:
        cwd: Working directory (None keeps the persistent session's directory)
        timeout: Timeout in seconds (None = config.default_timeout_s)
        on_chunk: Live observer for raw output chunks
        token: Cancellation token
        session_key: Agent-level key isolating persistent shell sessions
        env: Extra environment variables for this command only
    """

    cwd: str | None = None
    timeout: float | None = None
    on_chunk: Callable[[str], None] | None = None
    token: CancellationToken | None = None
    session_key: str | None = None
    env: dict[str, str] = field(default_factory=dict)


@dataclass
class BashResult:
    """Result of one command invocation."""

    output: str
    outcome: Outcome
    truncated: bool
    spill_path: str | None = None
    total_lines: int = 0
    total_bytes: int = 0
    output_lines: int = 0
    output_bytes: int = 0
    execution_id: str = ""

    @property
    def exit_code(self) -> int | None:
        return self.outcome.exit_code if isinstance(self.outcome, Completed) else None

    @property
    def cancelled(self) -> bool:
        return not isinstance(self.outcome, Completed)

    @property
    def timed_out(self) -> bool:
        return isinstance(self.outcome, TimedOut)

    def to_dict(self) -> dict[str, Any]:
        """Tool-layer result shape."""
        data: dict[str, Any] = {
            "output": self.output,
            "exit_code": self.exit_code,
            "cancelled": self.cancelled,
            "truncated": self.truncated,
            "total_lines": self.total_lines,
            "total_bytes": self.total_bytes,
            "output_lines": self.output_lines,
            "output_bytes": self.output_bytes,
        }
        if self.spill_path:
            data["spill_path"] = self.spill_path
        return data


class ChunkQueue:
    """FIFO of output chunks with a single consumer feeding the sink.

    ``put`` never blocks, so it is safe as a synchronous runtime callback.
    ``drain`` waits until every chunk put so far has been pushed.
    """

    def __init__(self, sink: OutputSink, logger: AgentShellLogger) -> None:
        self._sink = sink
        self._logger = logger
        self._queue: asyncio.Queue[str | None] = asyncio.Queue()
        self._consumer = asyncio.create_task(self._consume())
        self._closed = False

    def put(self, chunk: str) -> None:
        if self._closed:
            self._logger.warn("Dropping output chunk received after drain", length=len(chunk))
            return
        self._queue.put_nowait(chunk)

    async def _consume(self) -> None:
        while True:
            chunk = await self._queue.get()
            if chunk is None:
                return
            try:
                await self._sink.push(chunk)
            except Exception as e:  # noqa: BLE001
                self._logger.error("Failed to record output chunk", error=str(e))

    async def drain(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(None)
        await self._consumer


def build_session_key(
    shell: str,
    prefix: str | None,
    snapshot_path: str | None,
    env: dict[str, str],
    agent_session_key: str | None = None,
) -> str:
    """Key identifying a persistent shell session.

    Changing the shell, prefix, snapshot or session environment yields a new
    key and therefore a fresh session.
    """
    env_serialized = "\n".join(f"{k}={v}" for k, v in sorted(env.items()))
    return "\n".join(
        [agent_session_key or "", shell, prefix or "", snapshot_path or "", env_serialized]
    )


def apply_prefix(command: str, prefix: str | None) -> str:
    return f"{prefix} {command}" if prefix else command


def _to_result(dumped: OutputResult, outcome: Outcome, execution_id: str) -> BashResult:
    return BashResult(
        output=dumped.output,
        outcome=outcome,
        truncated=dumped.truncated,
        spill_path=dumped.spill_path,
        total_lines=dumped.total_lines,
        total_bytes=dumped.total_bytes,
        output_lines=dumped.output_lines,
        output_bytes=dumped.output_bytes,
        execution_id=execution_id,
    )


async def _cancelled_before_start(
    sink: OutputSink, logger: AgentShellLogger, execution_id: str
) -> BashResult:
    logger.info("Command cancelled before start")
    return _to_result(await sink.dump(outcome_notice(Cancelled())), Cancelled(), execution_id)


async def execute_bash(
    command: str,
    session: ShellSession,
    options: BashExecutorOptions | None = None,
) -> BashResult:
    """Execute a shell command through the session's runtime.

    Args:
        command: Command text as requested by the caller
        session: Shared session context (runtime, config, session keys)
        options: Per-call options

    Returns:
        BashResult in exactly one terminal state: Completed, TimedOut or Cancelled

    Raises:
        ShellRuntimeError: If the runtime itself fails (never retried)
    """
    options = options or BashExecutorOptions()
    config = session.config
    token = options.token

    execution_id = uuid.uuid4().hex
    logger = session.logger.bind(execution_id=execution_id)
    final_command = apply_prefix(command, config.command_prefix)
    timeout = options.timeout if options.timeout is not None else config.default_timeout_s

    sink = OutputSink(
        spill_threshold=config.spill_threshold,
        on_chunk=options.on_chunk,
        logger=logger,
    )

    if token is not None and token.cancelled:
        return await _cancelled_before_start(sink, logger, execution_id)

    snapshot_path = await session.get_snapshot_path()
    # Creating the snapshot awaits a subprocess; the token may have fired meanwhile
    if token is not None and token.cancelled:
        return await _cancelled_before_start(sink, logger, execution_id)

    session_key = build_session_key(
        config.shell,
        config.command_prefix,
        snapshot_path,
        config.session_env,
        options.session_key or DEFAULT_SESSION_KEY,
    )
    first_use = session.claim_session_key(session_key)

    invocation = ShellInvocation(
        command=final_command,
        execution_id=execution_id,
        session_key=session_key,
        cwd=options.cwd,
        env=dict(options.env),
        session_env=dict(config.session_env) if first_use and config.session_env else None,
        timeout=timeout,
        snapshot_path=snapshot_path if first_use else None,
    )

    def interrupt_listener() -> None:
        logger.info("Interrupt requested")
        session.runtime.interrupt(execution_id)

    if token is not None:
        token.add_listener(interrupt_listener)

    logger.debug(
        "Executing command",
        command_length=len(final_command),
        first_use=first_use,
        timeout=timeout,
    )

    chunks = ChunkQueue(sink, logger)
    failure: Exception | None = None
    runtime_name = type(session.runtime).__name__
    try:
        with logger.timed("Shell runtime returned", runtime=runtime_name) as timing:
            try:
                raw = await session.runtime.run(invocation, chunks.put)
            except Exception as e:  # noqa: BLE001
                failure = e
                timing["failed"] = True
            finally:
                await chunks.drain()

        if failure is not None:
            await sink.dump()
            if first_use:
                session.release_session_key(session_key)
            logger.error(
                "Shell runtime failed",
                error=str(failure),
                error_type=type(failure).__name__,
            )
            raise ShellRuntimeError(
                f"Shell runtime failed: {failure}", execution_id=execution_id
            ) from failure

        outcome = classify_outcome(raw, timeout)
        result = _to_result(await sink.dump(outcome_notice(outcome)), outcome, execution_id)
    finally:
        if token is not None:
            token.remove_listener(interrupt_listener)
        sink.close()

    logger.info(
        "Command finished",
        outcome=type(outcome).__name__,
        exit_code=result.exit_code,
        truncated=result.truncated,
        total_bytes=result.total_bytes,
    )
    return result

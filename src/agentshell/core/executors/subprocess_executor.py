"""Subprocess-based shell runtime with persistent sessions.

This is the default runtime. Each invocation runs ``<shell> -c`` in its own
process group so timeouts and interrupts can kill the whole tree.

Persistent session state (working directory, exported variables, functions
and aliases) is carried between invocations that share a session key: an
EXIT trap dumps the state to a per-session file and the next invocation
sources it before running its command.
"""

import asyncio
import codecs
import hashlib
import os
import re
import shlex
import shutil
import signal
import sys
import tempfile
from pathlib import Path

from agentshell.core.command_executor import (
    ChunkCallback,
    RuntimeOutcome,
    ShellInvocation,
    ShellRuntime,
)
from agentshell.core.logger import AgentShellLogger, get_logger

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _export_lines(env: dict[str, str]) -> list[str]:
    return [f"export {k}={shlex.quote(v)}" for k, v in env.items() if _IDENTIFIER_RE.match(k)]


class SubprocessShellRuntime(ShellRuntime):
    """Run commands with asyncio.subprocess and keep per-key session state."""

    def __init__(
        self,
        shell: str = "/bin/bash",
        state_dir: str | None = None,
        read_size: int = 4096,
        drain_timeout: float = 2.0,
        logger: AgentShellLogger | None = None,
    ) -> None:
        """Initialize subprocess runtime.

        Args:
            shell: Bash-compatible shell binary
            state_dir: Where session state files live (default: fresh temp dir)
            read_size: Bytes read from the pipe per chunk
            drain_timeout: Seconds to wait for the pipe to close after exit;
                background jobs holding stdout open are not waited on
            logger: Structured logger (defaults to process logger)
        """
        self.shell = shell
        self.read_size = read_size
        self.drain_timeout = drain_timeout
        self._state_dir = Path(state_dir) if state_dir else None
        self._owns_state_dir = state_dir is None
        self._running: dict[str, asyncio.Event] = {}
        self._logger = logger or get_logger()

    def get_name(self) -> str:
        """Get runtime name."""
        return "subprocess"

    @property
    def running(self) -> list[str]:
        """Execution ids currently in flight."""
        return list(self._running)

    def state_file(self, session_key: str) -> Path:
        """Path of the state file for a session key."""
        if self._state_dir is None:
            self._state_dir = Path(tempfile.mkdtemp(prefix="agentshell-sessions-"))
        self._state_dir.mkdir(parents=True, exist_ok=True)
        digest = hashlib.sha256(session_key.encode("utf-8")).hexdigest()[:24]
        return self._state_dir / f"{digest}.sh"

    def interrupt(self, execution_id: str) -> None:
        """Request the invocation with ``execution_id`` to stop."""
        event = self._running.get(execution_id)
        if event is None:
            self._logger.debug("Interrupt for unknown execution", execution_id=execution_id)
            return
        event.set()

    def build_script(self, invocation: ShellInvocation, state_file: Path) -> str:
        """Wrap the command with session restore/save logic."""
        state = shlex.quote(str(state_file))
        lines = ["shopt -s expand_aliases 2>/dev/null"]

        if invocation.session_env:
            lines.extend(_export_lines(invocation.session_env))
        if invocation.snapshot_path:
            snap = shlex.quote(invocation.snapshot_path)
            lines.append(f"[ -r {snap} ] && . {snap} >/dev/null 2>&1")

        lines.append(f"[ -r {state} ] && . {state} >/dev/null 2>&1")

        # Per-command env must win over restored session exports
        inline = {k: v for k, v in invocation.env.items() if _IDENTIFIER_RE.match(k)}
        lines.extend(_export_lines(inline))
        if invocation.cwd:
            lines.append(f"cd -- {shlex.quote(os.path.abspath(invocation.cwd))} || exit 1")

        # Inline vars are per-command; drop them again unless the command changed them
        forget = "".join(
            f'[ "${{{k}-}}" = {shlex.quote(v)} ] && unset {k}; ' for k, v in inline.items()
        )
        lines.extend(
            [
                "__agentshell_save_state() {",
                "  __agentshell_rc=$?",
                f"  {forget}{{ export -p; alias -p; declare -f; "
                f"printf 'cd -- %q\\n' \"$PWD\"; }} > {state} 2>/dev/null",
                "  exit $__agentshell_rc",
                "}",
                "trap __agentshell_save_state EXIT",
                invocation.command,
            ]
        )
        return "\n".join(lines)

    async def run(self, invocation: ShellInvocation, on_chunk: ChunkCallback) -> RuntimeOutcome:
        """Run the invocation and stream its merged stdout/stderr.

        Raises:
            OSError: If the shell cannot be spawned
        """
        script = self.build_script(invocation, self.state_file(invocation.session_key))
        env = os.environ.copy()
        env.update(invocation.env)

        interrupted = asyncio.Event()
        self._running[invocation.execution_id] = interrupted

        try:
            try:
                process = await asyncio.create_subprocess_exec(
                    self.shell,
                    "-c",
                    script,
                    stdin=asyncio.subprocess.DEVNULL,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.STDOUT,
                    cwd=invocation.cwd,
                    env=env,
                    start_new_session=sys.platform != "win32",
                )
            except (OSError, ValueError) as e:
                raise OSError(f"Failed to execute command: {e}") from e

            self._logger.debug(
                "Shell process started",
                execution_id=invocation.execution_id,
                pid=process.pid,
            )

            reader = asyncio.create_task(self._pump(process.stdout, on_chunk))
            waiter = asyncio.create_task(process.wait())
            interrupt_wait = asyncio.create_task(interrupted.wait())

            try:
                done, _ = await asyncio.wait(
                    {waiter, interrupt_wait},
                    timeout=invocation.timeout,
                    return_when=asyncio.FIRST_COMPLETED,
                )
            finally:
                interrupt_wait.cancel()

            outcome = RuntimeOutcome()
            if waiter in done:
                code = waiter.result()
                outcome.exit_code = code if code >= 0 else 128 - code
            else:
                outcome.cancelled = interrupt_wait in done
                outcome.timed_out = not outcome.cancelled
                await self._kill(process)
                await waiter

            await self._drain(reader)
            return outcome
        finally:
            self._running.pop(invocation.execution_id, None)

    async def _pump(self, stream: asyncio.StreamReader | None, on_chunk: ChunkCallback) -> None:
        if stream is None:
            return
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            data = await stream.read(self.read_size)
            if not data:
                break
            text = decoder.decode(data)
            if text:
                on_chunk(text)
        tail = decoder.decode(b"", final=True)
        if tail:
            on_chunk(tail)

    async def _drain(self, reader: asyncio.Task[None]) -> None:
        try:
            await asyncio.wait_for(reader, timeout=self.drain_timeout)
        except TimeoutError:
            self._logger.warn("Output pipe still open after exit; detaching reader")

    async def _kill(self, process: asyncio.subprocess.Process) -> None:
        try:
            if sys.platform != "win32":
                os.killpg(process.pid, signal.SIGKILL)
            else:
                process.kill()
        except ProcessLookupError:
            pass

    async def close(self) -> None:
        """Drop all persistent session state."""
        if self._state_dir is None:
            return
        if self._owns_state_dir:
            shutil.rmtree(self._state_dir, ignore_errors=True)
            self._state_dir = None
        else:
            for path in self._state_dir.glob("*.sh"):
                path.unlink(missing_ok=True)


async def create_shell_snapshot(
    shell: str,
    env: dict[str, str] | None = None,
    timeout: float = 10.0,
    logger: AgentShellLogger | None = None,
) -> str | None:
    """Capture the user's interactive aliases and functions into a file.

    Returns:
        Path of the snapshot file, or None if the shell could not produce one
    """
    log = logger or get_logger()
    shell_env = os.environ.copy()
    if env:
        shell_env.update(env)

    try:
        process = await asyncio.create_subprocess_exec(
            shell,
            "-i",
            "-c",
            "alias -p; declare -f",
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
            env=shell_env,
            start_new_session=sys.platform != "win32",
        )
    except OSError as e:
        log.warn("Shell snapshot unavailable", shell=shell, error=str(e))
        return None

    try:
        stdout, _ = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except TimeoutError:
        process.kill()
        await process.wait()
        log.warn("Shell snapshot timed out", shell=shell, timeout=timeout)
        return None

    if process.returncode != 0:
        log.warn("Shell snapshot failed", shell=shell, exit_code=process.returncode)
        return None

    fd, path = tempfile.mkstemp(prefix="agentshell-snapshot-", suffix=".sh")
    with os.fdopen(fd, "wb") as f:
        f.write(stdout)
    log.debug("Shell snapshot created", path=path, bytes=len(stdout))
    return path

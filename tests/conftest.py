"""Shared test fixtures."""

import asyncio
import os

import pytest

from agentshell.core.command_executor import (
    ChunkCallback,
    RuntimeOutcome,
    ShellInvocation,
    ShellRuntime,
)
from agentshell.core.config import ShellConfig
from agentshell.core.shell_session import ShellSession

# Keep test runs from writing to ~/.agentshell/logs
os.environ.setdefault("AGENTSHELL_DISABLE_FILE_LOGGING", "1")


class FakeRuntime(ShellRuntime):
    """Scripted runtime recording invocations and interrupts."""

    def __init__(
        self,
        chunks: list[str] | None = None,
        outcome: RuntimeOutcome | None = None,
        wait_for_interrupt: bool = False,
        error: Exception | None = None,
    ) -> None:
        self.chunks = chunks or []
        self.outcome = outcome or RuntimeOutcome(exit_code=0)
        self.wait_for_interrupt = wait_for_interrupt
        self.error = error
        self.invocations: list[ShellInvocation] = []
        self.interrupts: list[str] = []
        self.closed = False
        self._interrupted: asyncio.Event | None = None

    async def run(self, invocation: ShellInvocation, on_chunk: ChunkCallback) -> RuntimeOutcome:
        self.invocations.append(invocation)
        self._interrupted = asyncio.Event()
        if self.error is not None:
            raise self.error
        for chunk in self.chunks:
            on_chunk(chunk)
        if self.wait_for_interrupt:
            await self._interrupted.wait()
            return RuntimeOutcome(cancelled=True)
        return self.outcome

    def interrupt(self, execution_id: str) -> None:
        self.interrupts.append(execution_id)
        if self._interrupted is not None:
            self._interrupted.set()

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_runtime():
    """Runtime that exits 0 with no output."""
    return FakeRuntime()


@pytest.fixture
def make_session():
    """Build a ShellSession with no environment or file secrets."""

    def _make(runtime: ShellRuntime | None = None, **config_kwargs) -> ShellSession:
        return ShellSession(
            runtime=runtime,
            config=ShellConfig(**config_kwargs),
            env={},
            secret_levels={},
        )

    return _make

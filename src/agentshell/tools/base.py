"""Tool interface used by the agent loop."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from agentshell.core.cancellation import CancellationToken
from agentshell.core.logger import AgentShellLogger
from agentshell.core.shell_session import ShellSession
from agentshell.core.tool_protocol import ToolCall, ToolDefinition, ToolResult


@dataclass
class ToolContext:
    """Per-call context handed to a tool.

    Attributes:
        session: Shared shell session (runtime, config, secrets)
        logger: Structured logger
        cwd: Default working directory for commands
        session_key: Agent-level key selecting a persistent shell
        token: Cancellation token for the current turn
        config: Free-form tool settings
    """

    session: ShellSession
    logger: AgentShellLogger
    cwd: str | None = None
    session_key: str | None = None
    token: CancellationToken | None = None
    config: dict[str, Any] = field(default_factory=dict)


class BaseTool(ABC):
    """A tool the model can call.

    Implementations receive arguments that may hold secret placeholders and
    must return results that hold none of the real values.
    """

    @abstractmethod
    async def execute(self, call: ToolCall, context: ToolContext) -> ToolResult:
        """Run the tool for one call."""
        raise NotImplementedError

    @abstractmethod
    def get_definition(self) -> ToolDefinition:
        raise NotImplementedError

    def get_name(self) -> str:
        return self.get_definition().name

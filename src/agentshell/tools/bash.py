"""Bash execution tool with secret redaction.

Arguments arriving from the model may carry secret placeholders; they are
restored to real values before the command runs. Everything going back to
the model is redacted again.
"""

from collections.abc import Callable

from agentshell.core.bash_executor import BashExecutorOptions, BashResult, execute_bash
from agentshell.core.exceptions import (
    E_CANCELLED,
    E_EXECUTION,
    E_TIMEOUT,
    E_VALIDATION,
    ShellRuntimeError,
    format_error_for_log,
    format_error_for_user,
)
from agentshell.core.tool_protocol import ToolCall, ToolDefinition, ToolResult
from agentshell.security.secrets import SecretMatcherSet
from agentshell.tools.base import BaseTool, ToolContext


def _redacting(
    observer: Callable[[str], None], secrets: SecretMatcherSet
) -> Callable[[str], None]:
    # Secrets split across chunk boundaries are only caught in the final output
    def _observe(chunk: str) -> None:
        observer(secrets.redact(chunk))

    return _observe


class BashTool(BaseTool):
    """Execute shell commands without leaking secrets to the model."""

    def __init__(
        self,
        max_timeout: int = 3600,
        on_output: Callable[[str], None] | None = None,
    ) -> None:
        """Initialize bash tool.

        Args:
            max_timeout: Largest timeout (seconds) the model may request
            on_output: Live observer receiving redacted output chunks
        """
        self.max_timeout = max_timeout
        self.on_output = on_output

    async def execute(self, call: ToolCall, context: ToolContext) -> ToolResult:
        """Run the command named in the call arguments.

        Args:
            call: Tool call with command and optional timeout
            context: Tool execution context

        Returns:
            ToolResult with redacted output and execution details
        """
        secrets = context.session.secrets
        arguments = secrets.restore(call.arguments)

        command = arguments.get("command")
        timeout = arguments.get("timeout", context.session.config.default_timeout_s)

        if not command:
            return ToolResult.failure("command is required", E_VALIDATION)

        if not isinstance(command, str):
            return ToolResult.failure("command must be a string", E_VALIDATION)

        if (
            isinstance(timeout, bool)
            or not isinstance(timeout, int | float)
            or timeout < 1
            or timeout > self.max_timeout
        ):
            return ToolResult.failure(
                f"timeout must be between 1 and {self.max_timeout} seconds", E_VALIDATION
            )

        observer = None
        if self.on_output is not None:
            observer = _redacting(self.on_output, secrets)

        options = BashExecutorOptions(
            cwd=arguments.get("cwd") or context.cwd,
            timeout=timeout,
            on_chunk=observer,
            token=context.token,
            session_key=context.session_key,
        )

        try:
            result = await execute_bash(command, context.session, options)
        except ShellRuntimeError as e:
            context.logger.error("Bash command execution failed", **format_error_for_log(e))
            return ToolResult.failure(secrets.redact(format_error_for_user(e)), E_EXECUTION)

        return self._to_tool_result(result, secrets.redact(result.output))

    def _to_tool_result(self, result: BashResult, output: str) -> ToolResult:
        data = result.to_dict()
        data["output"] = output

        if result.timed_out:
            return ToolResult.failure("Command timed out", E_TIMEOUT, output=output, data=data)
        if result.cancelled:
            return ToolResult.failure("Command cancelled", E_CANCELLED, output=output, data=data)

        success = result.exit_code == 0
        return ToolResult(
            success=success,
            output=output or "(no output)",
            error=None if success else f"Command exited with code {result.exit_code}",
            data=data,
        )

    def get_definition(self) -> ToolDefinition:
        """Get tool definition for LLM."""
        return ToolDefinition(
            name="bash",
            description=(
                "Execute a bash command. Shell state (working directory, exported "
                "variables) persists between calls. Secrets in output appear as "
                "<<$env:SN>> placeholders; pass them back unchanged and they are "
                "substituted before the command runs."
            ),
            parameters={
                "type": "object",
                "properties": {
                    "command": {
                        "type": "string",
                        "description": "The bash command to execute",
                    },
                    "timeout": {
                        "type": "integer",
                        "description": f"Timeout in seconds (max: {self.max_timeout})",
                    },
                    "cwd": {
                        "type": "string",
                        "description": "Working directory for this command",
                    },
                },
                "required": ["command"],
            },
        )

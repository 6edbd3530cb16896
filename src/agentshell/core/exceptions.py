"""Exception hierarchy with error codes for agentshell.

Implements structured error handling with error codes that map to the tool
result protocol. Cancellation and timeouts are NOT exceptions here: they are
normal terminal outcomes of a command. Only broken preconditions surface as
errors.
"""

from dataclasses import dataclass, field
from typing import Any

# Standard error codes from the tool protocol
E_VALIDATION = "E_VALIDATION"
E_TIMEOUT = "E_TIMEOUT"
E_CANCELLED = "E_CANCELLED"
E_EXECUTION = "E_EXECUTION"
E_CAPABILITY = "E_CAPABILITY"
E_SECRET_PATTERN = "E_SECRET_PATTERN"


@dataclass
class AgentShellException(Exception):  # noqa: N818
    """Base exception for all agentshell-specific errors.

    Provides structured error handling with error codes and metadata for
    consistent error reporting across the system.
    """

    message: str
    error_code: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        """Return human-readable error message."""
        return self.message

    def __post_init__(self) -> None:
        """Initialize the exception with the message."""
        super().__init__(self.message)


@dataclass
class ToolExecutionError(AgentShellException):
    """Error during tool execution."""

    tool_name: str = ""
    details: str | None = None

    def __post_init__(self) -> None:
        """Initialize with tool-specific metadata."""
        if not self.error_code:
            self.error_code = E_EXECUTION
        if self.tool_name:
            self.metadata["tool_name"] = self.tool_name
        if self.details:
            self.metadata["details"] = self.details
        super().__post_init__()


@dataclass
class ConfigurationError(AgentShellException):
    """Error in system configuration.

    Raised for invalid config values, missing required settings,
    or configuration file problems.
    """

    key: str = ""
    reason: str = ""

    def __post_init__(self) -> None:
        """Initialize with configuration-specific metadata."""
        if not self.error_code:
            self.error_code = E_VALIDATION
        if self.key:
            self.metadata["config_key"] = self.key
        if self.reason:
            self.metadata["reason"] = self.reason
        super().__post_init__()


@dataclass
class SecretPatternError(ConfigurationError):
    """A secret regex entry could not be compiled.

    Always fatal: dropping the entry would leak the secret it was meant to hide.
    """

    pattern: str = ""

    def __post_init__(self) -> None:
        """Initialize with pattern metadata."""
        if not self.error_code:
            self.error_code = E_SECRET_PATTERN
        if self.pattern:
            self.metadata["pattern"] = self.pattern
        super().__post_init__()


@dataclass
class CapabilityError(AgentShellException):
    """A shell runtime is missing operations the executor requires."""

    missing: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        """Initialize with the list of missing operations."""
        if not self.error_code:
            self.error_code = E_CAPABILITY
        if self.missing:
            self.metadata["missing"] = list(self.missing)
        super().__post_init__()


@dataclass
class ShellRuntimeError(AgentShellException):
    """The shell runtime itself failed (e.g. could not spawn the shell).

    Never retried automatically.
    """

    execution_id: str = ""

    def __post_init__(self) -> None:
        """Initialize with execution metadata."""
        if not self.error_code:
            self.error_code = E_EXECUTION
        if self.execution_id:
            self.metadata["execution_id"] = self.execution_id
        super().__post_init__()


def format_error_for_user(exception: AgentShellException) -> str:
    """Format exception for user-friendly display.

    Args:
        exception: The agentshell exception to format

    Returns:
        Human-readable error message without internal details
    """
    if isinstance(exception, ToolExecutionError):
        if exception.tool_name:
            return f"Tool '{exception.tool_name}' failed: {exception.message}"
        return f"Tool execution failed: {exception.message}"

    if isinstance(exception, SecretPatternError):
        return f"Invalid secret pattern: {exception.message}"

    if isinstance(exception, ConfigurationError):
        if exception.key:
            return f"Configuration error '{exception.key}': {exception.message}"
        return f"Configuration error: {exception.message}"

    if isinstance(exception, CapabilityError):
        if exception.missing:
            return (
                f"Shell runtime is missing required operations "
                f"({', '.join(exception.missing)}): {exception.message}"
            )
        return f"Shell runtime error: {exception.message}"

    if isinstance(exception, ShellRuntimeError):
        return f"Shell execution failed: {exception.message}"

    return str(exception.message)


def format_error_for_log(exception: AgentShellException) -> dict[str, Any]:
    """Format exception for structured logging.

    Args:
        exception: The agentshell exception to format

    Returns:
        Dictionary with structured error information for logs
    """
    log_data: dict[str, Any] = {
        "error_type": type(exception).__name__,
        "message": exception.message,
        "error_code": exception.error_code,
    }

    if exception.metadata:
        log_data["metadata"] = exception.metadata

    if isinstance(exception, ToolExecutionError):
        if exception.tool_name:
            log_data["tool_name"] = exception.tool_name
        if exception.details:
            log_data["details"] = exception.details

    elif isinstance(exception, SecretPatternError):
        if exception.pattern:
            log_data["pattern"] = exception.pattern

    elif isinstance(exception, ConfigurationError):
        if exception.key:
            log_data["config_key"] = exception.key
        if exception.reason:
            log_data["reason"] = exception.reason

    elif isinstance(exception, CapabilityError):
        log_data["missing"] = list(exception.missing)

    elif isinstance(exception, ShellRuntimeError):
        if exception.execution_id:
            log_data["execution_id"] = exception.execution_id

    return log_data

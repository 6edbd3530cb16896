"""Core modules for agentshell.

This package contains the execution pipeline (output sink, shell runtime
interface, executor, session context) plus configuration, logging and the
exception hierarchy. Import submodules directly; this package only
re-exports the exception types so it stays free of import cycles.
"""

from .exceptions import (
    E_CANCELLED,
    E_CAPABILITY,
    E_EXECUTION,
    E_SECRET_PATTERN,
    E_TIMEOUT,
    E_VALIDATION,
    AgentShellException,
    CapabilityError,
    ConfigurationError,
    SecretPatternError,
    ShellRuntimeError,
    ToolExecutionError,
    format_error_for_log,
    format_error_for_user,
)

__all__ = [
    # Error codes
    "E_CANCELLED",
    "E_CAPABILITY",
    "E_EXECUTION",
    "E_SECRET_PATTERN",
    "E_TIMEOUT",
    "E_VALIDATION",
    # Exception classes
    "AgentShellException",
    "CapabilityError",
    "ConfigurationError",
    "SecretPatternError",
    "ShellRuntimeError",
    "ToolExecutionError",
    # Error formatting utilities
    "format_error_for_log",
    "format_error_for_user",
]

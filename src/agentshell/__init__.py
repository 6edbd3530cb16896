"""
agentshell

Shell command execution for autonomous agents: bounded streaming output,
cancellation and timeouts, and secret redaction between the local machine
and the model provider.
"""

__version__ = "0.1.0"
__license__ = "MIT"

from agentshell.core.bash_executor import (
    BashExecutorOptions,
    BashResult,
    execute_bash,
)
from agentshell.core.cancellation import CancellationToken
from agentshell.core.command_executor import (
    Cancelled,
    Completed,
    RuntimeOutcome,
    ShellInvocation,
    ShellRuntime,
    TimedOut,
)
from agentshell.core.config import ShellConfig, load_config
from agentshell.core.exceptions import (
    AgentShellException,
    CapabilityError,
    ConfigurationError,
    SecretPatternError,
    ShellRuntimeError,
    ToolExecutionError,
)
from agentshell.core.shell_session import ShellSession
from agentshell.core.streaming_output import OutputResult, OutputSink
from agentshell.security.secrets import (
    SecretEntry,
    SecretMatcherSet,
    compile_secrets,
    redact,
    restore,
)

__all__ = [
    # Version
    "__version__",
    # Execution
    "BashExecutorOptions",
    "BashResult",
    "CancellationToken",
    "Cancelled",
    "Completed",
    "OutputResult",
    "OutputSink",
    "RuntimeOutcome",
    "ShellInvocation",
    "ShellRuntime",
    "ShellSession",
    "TimedOut",
    "execute_bash",
    # Configuration
    "ShellConfig",
    "load_config",
    # Exceptions
    "AgentShellException",
    "CapabilityError",
    "ConfigurationError",
    "SecretPatternError",
    "ShellRuntimeError",
    "ToolExecutionError",
    # Secrets
    "SecretEntry",
    "SecretMatcherSet",
    "compile_secrets",
    "redact",
    "restore",
]

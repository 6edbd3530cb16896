"""Shell runtime implementations.

Provides backends for running shell commands:
- SubprocessShellRuntime: Local asyncio subprocess with persistent sessions
"""

from agentshell.core.executors.subprocess_executor import (
    SubprocessShellRuntime,
    create_shell_snapshot,
)

__all__ = ["SubprocessShellRuntime", "create_shell_snapshot"]

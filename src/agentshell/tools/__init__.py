"""Tool implementations for agentshell.

Provides the bash execution tool used by the agent loop.
"""

from agentshell.tools.base import BaseTool, ToolContext
from agentshell.tools.bash import BashTool

__all__ = [
    "BaseTool",
    "BashTool",
    "ToolContext",
]

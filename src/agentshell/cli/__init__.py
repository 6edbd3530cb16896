"""Command-line interface for agentshell."""

"""Process-wide shell session context.

Owns everything that must be created once and shared by every command
invocation: the validated runtime, configuration, the compiled secret
matchers, the shell snapshot and the record of which persistent sessions
have already been initialized. ``close()`` invalidates all of it.
"""

import os
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

from agentshell.core.command_executor import ShellRuntime, require_capabilities
from agentshell.core.config import ShellConfig, load_secret_levels
from agentshell.core.executors.subprocess_executor import (
    SubprocessShellRuntime,
    create_shell_snapshot,
)
from agentshell.core.logger import AgentShellLogger, get_logger
from agentshell.security.secrets import SecretMatcherSet, load_matcher_set


class ShellSession:
    """Shared state for command execution within one agent session."""

    def __init__(
        self,
        runtime: ShellRuntime | None = None,
        config: ShellConfig | None = None,
        env: Mapping[str, str] | None = None,
        project_root: Path | None = None,
        secret_levels: Mapping[str, Iterable[Mapping[str, Any]]] | None = None,
        logger: AgentShellLogger | None = None,
    ) -> None:
        """Initialize session context.

        Args:
            runtime: Shell runtime (defaults to SubprocessShellRuntime for config.shell)
            config: Shell configuration (defaults to ShellConfig())
            env: Environment snapshot used for secret scanning (defaults to os.environ)
            project_root: Project directory holding .agentshell/secrets.json
            secret_levels: Pre-loaded secret definitions; skips reading secrets.json
            logger: Structured logger

        Raises:
            CapabilityError: If the runtime lacks required operations
        """
        self.config = config or ShellConfig()
        self.logger = logger or get_logger()
        if runtime is None:
            runtime = SubprocessShellRuntime(shell=self.config.shell, logger=self.logger)
        self.runtime = runtime
        require_capabilities(self.runtime)

        # Read once; later environment changes do not affect redaction
        self.env = dict(os.environ if env is None else env)
        self.project_root = project_root
        self._secret_levels = secret_levels

        self._secrets: SecretMatcherSet | None = None
        self._snapshot_path: str | None = None
        self._snapshot_resolved = False
        self._initialized_keys: set[str] = set()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def secrets(self) -> SecretMatcherSet:
        """Compiled secret matchers, built on first access.

        Raises:
            ConfigurationError: If a secrets file is invalid
            SecretPatternError: If a regex entry does not compile
        """
        if self._secrets is None:
            levels = self._secret_levels
            if levels is None:
                levels = load_secret_levels(self.project_root)
            self._secrets = load_matcher_set(self.env, levels)
            if len(self._secrets):
                self.logger.set_scrubber(self._secrets.redact)
            self.logger.info(
                "Secret matchers compiled",
                count=len(self._secrets),
                placeholders=self._secrets.placeholder_count,
            )
        return self._secrets

    async def get_snapshot_path(self) -> str | None:
        """Shell snapshot for preloading, created at most once per session."""
        if not self._snapshot_resolved:
            self._snapshot_resolved = True
            if self.config.snapshot_enabled and "bash" in Path(self.config.shell).name:
                self._snapshot_path = await create_shell_snapshot(
                    self.config.shell, self.config.session_env, logger=self.logger
                )
        return self._snapshot_path

    def claim_session_key(self, session_key: str) -> bool:
        """Mark a persistent session key as used.

        Returns:
            True on first use, when one-time session data must be supplied
        """
        if session_key in self._initialized_keys:
            return False
        self._initialized_keys.add(session_key)
        return True

    def release_session_key(self, session_key: str) -> None:
        """Forget a key whose first invocation never reached the shell."""
        self._initialized_keys.discard(session_key)

    async def close(self) -> None:
        """Tear down runtime sessions and drop cached state."""
        if self._closed:
            return
        self._closed = True
        # close() is optional for duck-typed runtimes
        close_runtime = getattr(self.runtime, "close", None)
        if close_runtime is not None:
            await close_runtime()
        if self._snapshot_path:
            Path(self._snapshot_path).unlink(missing_ok=True)
        self._snapshot_path = None
        self._snapshot_resolved = False
        if self._secrets is not None:
            self.logger.set_scrubber(None)
        self._secrets = None
        self._initialized_keys.clear()

    async def __aenter__(self) -> "ShellSession":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

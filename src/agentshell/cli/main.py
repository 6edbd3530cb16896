"""CLI entry points for agentshell.

Implements click-based CLI
"""

import asyncio
import json
import signal
import sys
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from agentshell import __version__
from agentshell.core.bash_executor import BashExecutorOptions, BashResult, execute_bash
from agentshell.core.cancellation import CancellationToken
from agentshell.core.config import ShellConfig, load_config
from agentshell.core.exceptions import AgentShellException, format_error_for_user
from agentshell.core.shell_session import ShellSession
from agentshell.security.secrets import SecretMatcherSet

# Load .env file from current directory or parent directories
load_dotenv()

console = Console()
err_console = Console(stderr=True)

EXIT_TIMEOUT = 124
EXIT_CANCELLED = 130


def exit_code_for(result: BashResult) -> int:
    """Process exit status mirroring the command's outcome."""
    if result.timed_out:
        return EXIT_TIMEOUT
    if result.cancelled:
        return EXIT_CANCELLED
    return result.exit_code or 0


def _install_interrupt(token: CancellationToken) -> bool:
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, token.cancel, "SIGINT")
    except (NotImplementedError, RuntimeError, ValueError):
        return False
    return True


async def _run_command(
    command: str,
    config: ShellConfig,
    project_root: Path,
    options: BashExecutorOptions,
    redact: bool,
) -> tuple[BashResult, str]:
    async with ShellSession(config=config, project_root=project_root) as session:
        secrets = session.secrets if redact else None
        token = CancellationToken()
        options.token = token
        installed = _install_interrupt(token)
        try:
            result = await execute_bash(command, session, options)
        finally:
            if installed:
                asyncio.get_running_loop().remove_signal_handler(signal.SIGINT)
        output = secrets.redact(result.output) if secrets is not None else result.output
        return result, output


async def _load_matchers(project_root: Path) -> SecretMatcherSet:
    config = load_config(project_root)
    async with ShellSession(config=config, project_root=project_root) as session:
        return session.secrets


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="agentshell")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """agentshell - run shell commands for agents without leaking secrets."""
    if ctx.invoked_subcommand is None:
        console.print("[bold]Available Commands:[/bold]\n")
        console.print("  [cyan]agentshell run[/cyan]      - Run a command with redacted output")
        console.print("  [cyan]agentshell secrets[/cyan]  - List configured secret matchers\n")
        console.print("[dim]Run 'agentshell --help' for more information[/dim]\n")


@cli.command()
@click.argument("command")
@click.option("--cwd", "-C", default=None, help="Working directory for the command")
@click.option("--timeout", "-t", type=int, default=None, help="Timeout in seconds")
@click.option("--session-key", default=None, help="Persistent shell session key")
@click.option("--no-redact", is_flag=True, help="Print output without secret redaction")
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON")
def run(
    command: str,
    cwd: str | None,
    timeout: int | None,
    session_key: str | None,
    no_redact: bool,
    as_json: bool,
) -> None:
    """Run COMMAND and print its (redacted) output."""
    project_root = Path(cwd) if cwd else Path.cwd()

    try:
        config = load_config(project_root)
        options = BashExecutorOptions(cwd=cwd, timeout=timeout, session_key=session_key)
        result, output = asyncio.run(
            _run_command(command, config, project_root, options, redact=not no_redact)
        )
    except AgentShellException as e:
        err_console.print(f"[bold red]Error:[/bold red] {format_error_for_user(e)}")
        sys.exit(1)

    if as_json:
        data = result.to_dict()
        data["output"] = output
        click.echo(json.dumps(data, indent=2))
    else:
        console.print(output, markup=False, highlight=False, emoji=False, soft_wrap=True, end="")
        if output and not output.endswith("\n"):
            console.print()
        if result.truncated:
            err_console.print(f"[dim]Full output: {result.spill_path}[/dim]")

    sys.exit(exit_code_for(result))


@cli.command()
@click.option("--project", "-p", default=".", help="Project directory")
def secrets(project: str) -> None:
    """List compiled secret matchers (values are never shown)."""
    try:
        matchers = asyncio.run(_load_matchers(Path(project)))
    except AgentShellException as e:
        err_console.print(f"[bold red]Error:[/bold red] {format_error_for_user(e)}")
        sys.exit(1)

    if not len(matchers):
        console.print("[dim]No secrets configured[/dim]")
        return

    table = Table(title="Secret matchers")
    table.add_column("Placeholder", style="cyan")
    table.add_column("Type")
    table.add_column("Mode")
    table.add_column("Origin")
    table.add_column("Length", justify="right")

    for secret in matchers.secrets:
        token = f"<<$env:S{secret.index}>>" if secret.index is not None else "-"
        table.add_row(
            token,
            secret.entry.type,
            secret.entry.mode,
            secret.entry.origin,
            str(len(secret.entry.content)),
        )

    console.print(table)


def main() -> None:
    """Console script entry point."""
    cli()


if __name__ == "__main__":
    main()

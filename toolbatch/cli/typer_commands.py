"""
toolbatch CLI - Typer Commands

Run batch files and manage permission rules and logs.
"""

import asyncio
import logging
import sys
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table
from rich.text import Text

from toolbatch.cli.prompt import ask_permission
from toolbatch.cli.render import show_failure, show_results
from toolbatch.config import load_settings, save_settings
from toolbatch.exceptions import ConfigError, JobError
from toolbatch.logging.viewer import calculate_stats, format_entry_line, query_logs
from toolbatch.permissions import PermissionGate, PermissionMode, PermissionRule
from toolbatch.queue import run_jobs
from toolbatch.tools import TOOLS, execute_tool, load_batch

logger = logging.getLogger(__name__)
console = Console()

app = typer.Typer(
    name="toolbatch",
    help="Run batches of tool invocations through a permission-gated job queue",
    add_completion=False,
    no_args_is_help=True,
)


def _persist_rule(rule: PermissionRule) -> None:
    """Save a rule granted with "always allow" to the settings file."""
    try:
        settings = load_settings(apply_env=False)
        settings.add_rule(str(rule), "allow")
        save_settings(settings)
    except ConfigError as e:
        logger.warning(f"Could not save rule {rule}: {e}")
        return
    console.print(f"[dim]Saved allow rule {rule}[/dim]")


def can_prompt() -> bool:
    """Permission prompts need an interactive terminal on stdin."""
    return sys.stdin.isatty()


@app.command()
def run(
    batch_file: Path = typer.Argument(..., help="JSON array or object of tool uses"),
    serial: bool = typer.Option(False, "--serial", help="Run entries one at a time"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Allow every entry no deny rule covers"),
    timeout: float = typer.Option(None, "--timeout", min=0.001, help="Per-tool timeout in seconds"),
    cwd: Path = typer.Option(None, "--cwd", help="Working directory for tools"),
) -> None:
    """Run a batch file. Stops at the first failing entry."""
    try:
        settings = load_settings()
        entries = load_batch(batch_file)
        context = settings.permission_context()
    except ConfigError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    if yes:
        context.mode = PermissionMode.BYPASS

    tool_context = settings.tool_context()
    if timeout is not None:
        tool_context.timeout = timeout
    if cwd is not None:
        tool_context.cwd = cwd

    gate = PermissionGate(
        context,
        prompt=ask_permission if can_prompt() else None,
        on_rule_added=_persist_rule,
    )

    try:
        results = asyncio.run(run_jobs(entries, gate.wrap(execute_tool), tool_context, serial=serial))
    except JobError as e:
        show_failure(console, e, entries)
        raise typer.Exit(1)

    show_results(console, results, entries)


@app.command()
def tools() -> None:
    """List built-in tools."""
    table = Table(show_header=True, header_style="bold")
    table.add_column("Tool", style="cyan")
    table.add_column("Description")
    for name, tool in sorted(TOOLS.items()):
        table.add_row(name, tool.description)
    console.print(table)


@app.command()
def rules() -> None:
    """Show permission rules."""
    try:
        settings = load_settings()
    except ConfigError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    console.print(f"Mode: [bold]{settings.permission_mode}[/bold]")
    if not settings.allow and not settings.deny:
        console.print("[dim]No rules configured[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Behavior")
    table.add_column("Rule", style="cyan")
    for rule in settings.deny:
        table.add_row("[red]deny[/red]", Text(rule))
    for rule in settings.allow:
        table.add_row("[green]allow[/green]", Text(rule))
    console.print(table)


def _add_rule(rule: str, behavior: str) -> None:
    try:
        settings = load_settings(apply_env=False)
        text = settings.add_rule(rule, behavior)
        save_settings(settings)
    except ConfigError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)
    console.print(f"[green]Added {behavior} rule {text}[/green]")


@app.command()
def allow(rule: str = typer.Argument(..., help='Rule such as "echo" or "shell(git:*)"')) -> None:
    """Add an allow rule."""
    _add_rule(rule, "allow")


@app.command()
def deny(rule: str = typer.Argument(..., help='Rule such as "shell(rm:*)"')) -> None:
    """Add a deny rule."""
    _add_rule(rule, "deny")


@app.command()
def remove(rule: str = typer.Argument(..., help="Rule to remove")) -> None:
    """Remove an allow or deny rule."""
    try:
        settings = load_settings(apply_env=False)
        behavior = settings.remove_rule(rule)
        save_settings(settings)
    except ConfigError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)
    console.print(f"[green]Removed {behavior} rule {rule.strip()}[/green]")


@app.command()
def logs(
    log_type: str = typer.Option("all", "--type", "-t", help="Log type: jobs, batches, permissions, all"),
    since: str = typer.Option(None, "--since", "-s", help="Time filter (e.g., 1h, 30m, 2d, or ISO)"),
    batch: str = typer.Option(None, "--batch", help="Filter by batch ID"),
    tail: int = typer.Option(20, "--tail", "-n", help="Show last N entries"),
    stats: bool = typer.Option(False, "--stats", help="Show statistics instead of entries"),
) -> None:
    """View job, batch and permission logs."""
    try:
        entries = query_logs(
            log_type=log_type,
            since=since,
            batch_id=batch,
            limit=10_000 if stats else tail,
        )
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    if not entries:
        console.print("[dim]No log entries found[/dim]")
        return

    if stats:
        data = calculate_stats(entries)
        console.print(f"Batches:   {data['batches']} ({data['batches_aborted']} aborted)")
        console.print(f"Jobs:      {data['jobs_completed']} completed, {data['jobs_failed']} failed")
        console.print(
            f"Duration:  avg {data['avg_duration_ms']}ms, "
            f"p50 {data['p50_duration_ms']}ms, p95 {data['p95_duration_ms']}ms"
        )
        for name, count in sorted(data["tools"].items(), key=lambda x: -x[1]):
            console.print(f"  - {name}: {count}")
        for label, count in sorted(data["decisions"].items()):
            console.print(f"  - {label}: {count}")
        return

    for entry in reversed(entries):
        line = format_entry_line(entry)
        if entry.get("error") or entry.get("decision") == "reject":
            console.print(Text(line, style="red"), highlight=False)
        else:
            console.print(line, markup=False, highlight=False)


def main() -> None:
    """Entry point for the toolbatch command."""
    app()

"""
toolbatch CLI - Result Rendering
"""

import json
from collections.abc import Mapping, Sequence
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from toolbatch.exceptions import JobError, JobFailedError, ToolBatchError
from toolbatch.tools import ToolUse

MAX_CELL = 80


def _entries_by_key(entries: Sequence[ToolUse] | Mapping[str, ToolUse]) -> dict[Any, ToolUse]:
    if isinstance(entries, Mapping):
        return dict(entries)
    return dict(enumerate(entries))


def summarize(value: Any) -> str:
    """One-line summary of a tool result."""
    if isinstance(value, dict) and "stdout" in value:
        text = value["stdout"].strip()
    elif isinstance(value, str):
        text = value.strip()
    else:
        text = json.dumps(value, default=str)
    text = " ".join(text.split())
    if len(text) > MAX_CELL:
        return text[: MAX_CELL - 3] + "..."
    return text


def results_table(results: Mapping[Any, Any], entries: Sequence[ToolUse] | Mapping[str, ToolUse]) -> Table:
    """Table with one row per entry, in batch order."""
    table = Table(show_header=True, header_style="bold")
    table.add_column("Key", style="cyan")
    table.add_column("Tool")
    table.add_column("Status")
    table.add_column("Result")

    for key, entry in _entries_by_key(entries).items():
        if key in results:
            table.add_row(str(key), entry.tool, "[green]ok[/green]", Text(summarize(results[key])))
        else:
            table.add_row(str(key), entry.tool, "[dim]not reported[/dim]", "")
    return table


def show_results(console: Console, results: Mapping[Any, Any], entries: Sequence[ToolUse] | Mapping[str, ToolUse]) -> None:
    console.print(results_table(results, entries))
    console.print(f"[green]{len(results)} entr{'y' if len(results) == 1 else 'ies'} completed[/green]")


def failure_reason(error: JobError) -> str:
    """The message of the error that stopped the batch."""
    cause = error.cause if isinstance(error, JobFailedError) else error
    if isinstance(cause, ToolBatchError):
        return cause.message
    return str(cause) or type(cause).__name__


def show_failure(console: Console, error: JobError, entries: Sequence[ToolUse] | Mapping[str, ToolUse]) -> None:
    """Report the failing entry; sibling results are not shown."""
    entry = _entries_by_key(entries).get(error.key)
    tool = entry.tool if entry else "?"
    body = f"[bold]{escape(str(error.key))}[/bold] ({escape(tool)}): {escape(failure_reason(error))}"
    console.print(Panel(body, title="Batch aborted", border_style="red"))
    if error.partial_results:
        console.print(f"[dim]{len(error.partial_results)} other entr{'y' if len(error.partial_results) == 1 else 'ies'} had completed[/dim]")

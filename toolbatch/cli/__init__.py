"""
toolbatch CLI components.

- typer_commands.py: CLI entry points (run, tools, rules, allow, deny, remove, logs)
- prompt.py: interactive permission prompt
- render.py: result and failure output
"""

from toolbatch.cli.prompt import ask_permission
from toolbatch.cli.render import results_table, show_failure, show_results
from toolbatch.cli.typer_commands import allow, app, deny, logs, main, remove, rules, run, tools

__all__ = [
    "app",
    "main",
    "run",
    "tools",
    "rules",
    "allow",
    "deny",
    "remove",
    "logs",
    "ask_permission",
    "results_table",
    "show_results",
    "show_failure",
]

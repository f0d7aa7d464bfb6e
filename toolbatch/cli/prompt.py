"""
toolbatch - Permission Prompt

Asks the user about entries no rule covers. The blocking terminal prompt
runs in a daemon thread so in-flight jobs keep running meanwhile, and a
batch that fails while a prompt is open reports without waiting for an
answer.
"""

import asyncio
import json
import threading
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Prompt

from toolbatch.permissions import PromptChoice, PromptOutcome
from toolbatch.tools import ToolUse

console = Console()

CHOICES = {
    "y": PromptChoice.ALLOW_ONCE,
    "a": PromptChoice.ALLOW_ALWAYS,
    "n": PromptChoice.REJECT,
    "q": PromptChoice.ABORT,
}


def format_entry(key: Any, entry: ToolUse) -> str:
    """Render an entry for the prompt panel."""
    body = entry.primary_input or json.dumps(entry.input, indent=2)
    return f"[bold]{escape(entry.tool)}[/bold]  [dim]{escape(str(key))}[/dim]\n\n{escape(body)}"


def ask_permission_sync(key: Any, entry: ToolUse) -> PromptOutcome:
    console.print(Panel(format_entry(key, entry), title="Permission required", border_style="yellow"))
    answer = Prompt.ask(
        "Allow? [y]es once, [a]lways, [n]o, [q]uit batch",
        choices=list(CHOICES),
        default="n",
        console=console,
    )
    return PromptOutcome(choice=CHOICES[answer])


async def ask_permission(key: Any, entry: ToolUse) -> PromptOutcome:
    """
    Permission prompt for PermissionGate.

    Cancelling the awaiting job abandons the prompt: the thread is a daemon
    outside the loop's default executor, so neither asyncio.run() nor
    interpreter exit waits for the user to answer.
    """
    loop = asyncio.get_running_loop()
    answer: asyncio.Future[PromptOutcome] = loop.create_future()

    def settle(outcome: PromptOutcome | None, error: BaseException | None) -> None:
        if answer.done():
            return
        if error is not None:
            answer.set_exception(error)
        else:
            answer.set_result(outcome)

    def worker() -> None:
        outcome, error = None, None
        try:
            outcome = ask_permission_sync(key, entry)
        except Exception as e:
            error = e
        try:
            loop.call_soon_threadsafe(settle, outcome, error)
        except RuntimeError:
            # Loop closed: the batch finished while the prompt was open
            return

    threading.Thread(target=worker, name=f"toolbatch-prompt-{key}", daemon=True).start()
    return await answer

"""
toolbatch - Built-in Tools

Interaction entries name a tool and its input. execute_tool() is the
queue processor that runs them; the registry maps tool names to async
implementations.
"""

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from toolbatch.exceptions import (
    BatchFileError,
    ToolExecutionError,
    ToolTimeoutError,
    UnknownToolError,
)

logger = logging.getLogger(__name__)

# Input fields that identify what an entry acts on, in lookup order
PRIMARY_INPUT_FIELDS = ("command", "path", "text")


@dataclass
class ToolUse:
    """A single interaction entry: one tool invocation."""

    tool: str
    input: dict[str, Any] = field(default_factory=dict)
    id: str = ""

    @property
    def primary_input(self) -> str:
        """The command, path or text this entry acts on, or an empty string."""
        for name in PRIMARY_INPUT_FIELDS:
            value = self.input.get(name)
            if isinstance(value, str):
                return value
        return ""

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"tool": self.tool, "input": self.input}
        if self.id:
            data["id"] = self.id
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "ToolUse":
        """
        Create a ToolUse from a batch file object.

        Raises:
            BatchFileError: If the object has no tool name or a non-object input
        """
        if not isinstance(data, dict) or not isinstance(data.get("tool"), str) or not data["tool"]:
            raise BatchFileError("Each entry needs a 'tool' name", {"entry": data})
        tool_input = data.get("input", {})
        if not isinstance(tool_input, dict):
            raise BatchFileError(f"Input for '{data['tool']}' must be an object", {"entry": data})
        return cls(tool=data["tool"], input=tool_input, id=str(data.get("id", "")))


@dataclass
class ToolContext:
    """Configuration handed to every tool run in a batch."""

    cwd: Path = field(default_factory=Path.cwd)
    timeout: float = 120.0


@dataclass(frozen=True)
class Tool:
    name: str
    description: str
    run: Callable[[ToolContext, dict[str, Any]], Awaitable[Any]]


async def _echo(context: ToolContext, args: dict[str, Any]) -> str:
    return str(args.get("text", ""))


async def _sleep(context: ToolContext, args: dict[str, Any]) -> float:
    seconds = float(args.get("seconds", 0))
    await asyncio.sleep(seconds)
    return seconds


async def _read(context: ToolContext, args: dict[str, Any]) -> str:
    if not args.get("path"):
        raise ToolExecutionError("read needs a 'path'")

    root = context.cwd.resolve()
    path = (root / args["path"]).resolve()
    if not path.is_relative_to(root):
        raise ToolExecutionError(f"Path escapes the working directory: {args['path']}")

    try:
        return await asyncio.to_thread(path.read_text, encoding="utf-8")
    except OSError as e:
        raise ToolExecutionError(f"Cannot read {args['path']}: {e.strerror or e}") from e


async def _shell(context: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
    command = args.get("command")
    if not command:
        raise ToolExecutionError("shell needs a 'command'")
    timeout = float(args.get("timeout", context.timeout))

    process = await asyncio.create_subprocess_shell(
        command,
        cwd=str(context.cwd),
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except TimeoutError:
        process.kill()
        await process.wait()
        raise ToolTimeoutError(f"Command timed out after {timeout:g}s: {command}", timeout)
    except asyncio.CancelledError:
        if process.returncode is None:
            process.kill()
        raise

    if process.returncode != 0:
        raise ToolExecutionError(
            f"Command exited with status {process.returncode}: {command}",
            exit_code=process.returncode,
            stderr=stderr.decode(errors="replace")[-2000:],
        )

    logger.debug(f"shell command finished: {command}")
    return {"exit_code": 0, "stdout": stdout.decode(errors="replace")}


async def _fail(context: ToolContext, args: dict[str, Any]) -> None:
    raise ToolExecutionError(str(args.get("message", "fail tool invoked")))


TOOLS: dict[str, Tool] = {
    tool.name: tool
    for tool in (
        Tool("echo", "Return the 'text' input unchanged", _echo),
        Tool("sleep", "Wait for 'seconds' and return them", _sleep),
        Tool("read", "Read the file at 'path' under the working directory", _read),
        Tool("shell", "Run 'command' in a shell; fails on non-zero exit", _shell),
        Tool("fail", "Fail with 'message'", _fail),
    )
}


def execute_tool(context: ToolContext, key: Any, entry: ToolUse) -> Awaitable[Any]:
    """
    Queue processor for ToolUse entries.

    Raises:
        UnknownToolError: If the entry names an unregistered tool
    """
    tool = TOOLS.get(entry.tool)
    if tool is None:
        raise UnknownToolError(
            f"Unknown tool '{entry.tool}'",
            {"available": sorted(TOOLS)},
        )
    return tool.run(context, entry.input)


def load_batch(path: str | Path) -> list[ToolUse] | dict[str, ToolUse]:
    """
    Load a batch file.

    The file holds either a JSON array of tool-use objects or a JSON object
    mapping keys to tool-use objects.

    Raises:
        BatchFileError: If the file is missing, not JSON, or malformed
    """
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        raise BatchFileError(f"Batch file not found: {path}")
    except json.JSONDecodeError as e:
        raise BatchFileError(f"Invalid JSON in {path}", {"error": str(e)})

    if isinstance(data, list):
        return [ToolUse.from_dict(item) for item in data]
    if isinstance(data, dict):
        return {str(key): ToolUse.from_dict(item) for key, item in data.items()}
    raise BatchFileError("Batch file must contain a JSON array or object", {"type": type(data).__name__})

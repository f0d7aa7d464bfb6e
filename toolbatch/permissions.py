"""
toolbatch - Permission Gate

Decides whether an interaction entry may run before it reaches the tool
processor.

Rules are written as "tool" (any use of the tool) or "tool(content)"
(exact match on the entry's command/path/text). A content ending in ":*"
matches by prefix, e.g. "shell(git:*)". Deny rules win over allow rules.
Entries matching neither are asked about, unless the context is in
bypass mode.
"""

import asyncio
import inspect
import logging
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from toolbatch.exceptions import InvalidRuleError, PermissionDeniedError
from toolbatch.logging import PermissionLogEntry, now_iso, permission_logger
from toolbatch.queue.dispatcher import Processor
from toolbatch.tools import ToolUse

logger = logging.getLogger(__name__)

_RULE_RE = re.compile(r"^(?P<tool>[A-Za-z_][\w\-]*)(?:\((?P<content>.+)\))?$", re.DOTALL)


class PermissionBehavior(Enum):
    ALLOW = "allow"
    DENY = "deny"
    ASK = "ask"


class PermissionMode(Enum):
    DEFAULT = "default"  # ask about entries no rule covers
    BYPASS = "bypass"  # allow everything not explicitly denied


class PromptChoice(Enum):
    """Answers a user can give to a permission prompt."""

    ALLOW_ONCE = "allow_once"
    ALLOW_ALWAYS = "allow_always"
    REJECT = "reject"
    ABORT = "abort"


@dataclass(frozen=True)
class PermissionRule:
    """A tool name with optional content to match against the entry."""

    tool: str
    content: str | None = None

    @classmethod
    def parse(cls, text: str) -> "PermissionRule":
        """
        Parse "tool" or "tool(content)".

        Raises:
            InvalidRuleError: If the text is not a valid rule
        """
        match = _RULE_RE.match(text.strip())
        if not match:
            raise InvalidRuleError(f"Invalid permission rule: {text!r}", {"expected": "tool or tool(content)"})
        return cls(tool=match.group("tool"), content=match.group("content"))

    @classmethod
    def for_entry(cls, entry: ToolUse) -> "PermissionRule":
        """Rule a permanent allow grants: the exact command for shell, the whole tool otherwise."""
        if "command" in entry.input and entry.primary_input:
            return cls(tool=entry.tool, content=entry.primary_input)
        return cls(tool=entry.tool)

    def matches(self, entry: ToolUse) -> bool:
        if entry.tool != self.tool:
            return False
        if self.content is None:
            return True
        if self.content.endswith(":*"):
            return entry.primary_input.startswith(self.content[:-2])
        return entry.primary_input == self.content

    def __str__(self) -> str:
        if self.content is None:
            return self.tool
        return f"{self.tool}({self.content})"


@dataclass
class PermissionDecision:
    """Outcome of evaluating one entry."""

    behavior: PermissionBehavior
    source: str  # config, bypass, non_interactive, user_permanent, user_temporary, user_reject, user_abort
    updated_input: dict[str, Any] | None = None
    user_modified: bool = False
    message: str = ""

    @property
    def allowed(self) -> bool:
        return self.behavior is PermissionBehavior.ALLOW


@dataclass
class PromptOutcome:
    """What the user answered, and the input they approved (if they edited it)."""

    choice: PromptChoice
    updated_input: dict[str, Any] | None = None


PermissionPrompt = Callable[[Any, ToolUse], Awaitable[PromptOutcome]]


@dataclass
class PermissionContext:
    """Allow/deny rules and the mode applied to entries no rule covers."""

    allow: list[PermissionRule] = field(default_factory=list)
    deny: list[PermissionRule] = field(default_factory=list)
    mode: PermissionMode = PermissionMode.DEFAULT

    def decide(self, entry: ToolUse) -> PermissionDecision:
        """Decide from rules alone; ASK means a prompt is needed."""
        for rule in self.deny:
            if rule.matches(entry):
                return PermissionDecision(
                    PermissionBehavior.DENY,
                    "config",
                    message=f"Denied by rule {rule}",
                )
        for rule in self.allow:
            if rule.matches(entry):
                return PermissionDecision(PermissionBehavior.ALLOW, "config", updated_input=entry.input)
        if self.mode is PermissionMode.BYPASS:
            return PermissionDecision(PermissionBehavior.ALLOW, "bypass", updated_input=entry.input)
        return PermissionDecision(PermissionBehavior.ASK, "config")

    def add_allow(self, rule: PermissionRule) -> bool:
        """Add an allow rule; returns False if it was already present."""
        if rule in self.allow:
            return False
        self.allow.append(rule)
        return True


class PermissionGate:
    """
    Evaluates entries against a PermissionContext, prompting when needed.

    Prompts are shown one at a time. Rules are re-checked once the prompt
    slot is free, so an "always allow" given for one entry covers the
    entries that were waiting behind it.
    """

    def __init__(
        self,
        context: PermissionContext,
        prompt: PermissionPrompt | None = None,
        on_rule_added: Callable[[PermissionRule], None] | None = None,
    ):
        """
        Args:
            context: Rules and mode
            prompt: Async callback asked about uncovered entries; None rejects them
            on_rule_added: Called with each rule granted by "always allow"
        """
        self.context = context
        self.prompt = prompt
        self.on_rule_added = on_rule_added
        self._prompt_lock = asyncio.Lock()

    async def evaluate(self, key: Any, entry: ToolUse) -> PermissionDecision:
        decision = self.context.decide(entry)
        if decision.behavior is PermissionBehavior.ASK:
            if self.prompt is None:
                decision = PermissionDecision(
                    PermissionBehavior.DENY,
                    "non_interactive",
                    message=f"No rule allows '{entry.tool}' and prompting is unavailable",
                )
            else:
                async with self._prompt_lock:
                    decision = self.context.decide(entry)
                    if decision.behavior is PermissionBehavior.ASK:
                        outcome = await self.prompt(key, entry)
                        decision = self._from_outcome(entry, outcome)

        self._record(key, entry, decision)
        return decision

    def _from_outcome(self, entry: ToolUse, outcome: PromptOutcome) -> PermissionDecision:
        if outcome.choice is PromptChoice.REJECT:
            return PermissionDecision(PermissionBehavior.DENY, "user_reject", message=f"User rejected '{entry.tool}'")
        if outcome.choice is PromptChoice.ABORT:
            return PermissionDecision(PermissionBehavior.DENY, "user_abort", message=f"User aborted at '{entry.tool}'")

        updated = outcome.updated_input if outcome.updated_input is not None else entry.input
        if outcome.choice is PromptChoice.ALLOW_ALWAYS:
            rule = PermissionRule.for_entry(entry)
            if self.context.add_allow(rule) and self.on_rule_added is not None:
                self.on_rule_added(rule)
            source = "user_permanent"
        else:
            source = "user_temporary"

        return PermissionDecision(
            PermissionBehavior.ALLOW,
            source,
            updated_input=updated,
            user_modified=updated != entry.input,
        )

    def _record(self, key: Any, entry: ToolUse, decision: PermissionDecision) -> None:
        log_entry = PermissionLogEntry(
            timestamp=now_iso(),
            key=str(key),
            tool=entry.tool,
            decision="accept" if decision.allowed else "reject",
            source=decision.source,
            user_modified=decision.user_modified,
        )
        permission_logger.info(log_entry.to_json())
        logger.debug(f"Permission for {entry.tool} ({key!r}): {decision.behavior.value} via {decision.source}")

    def wrap(self, processor: Processor) -> Processor:
        """
        Gate a queue processor.

        The returned processor raises PermissionDeniedError for rejected
        entries and passes allowed ones on, with the input the user approved.
        """

        async def gated(config: Any, key: Any, entry: ToolUse) -> Any:
            decision = await self.evaluate(key, entry)
            if not decision.allowed:
                raise PermissionDeniedError(
                    decision.message or f"Permission to use '{entry.tool}' was denied",
                    tool=entry.tool,
                    source=decision.source,
                )
            if decision.user_modified and decision.updated_input is not None:
                entry = replace(entry, input=decision.updated_input)

            result = processor(config, key, entry)
            if inspect.isawaitable(result):
                result = await result
            return result

        return gated

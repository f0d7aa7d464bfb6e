"""
toolbatch - Configuration Management

Handles loading settings.json, environment variables, and permission rules.
Settings are stored in ~/.config/toolbatch/settings.json unless
TOOLBATCH_CONFIG points elsewhere.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from toolbatch.exceptions import ConfigError, InvalidRuleError
from toolbatch.permissions import PermissionContext, PermissionMode, PermissionRule
from toolbatch.tools import ToolContext

CONFIG_DIR = Path.home() / ".config" / "toolbatch"
SETTINGS_FILE = CONFIG_DIR / "settings.json"

PERMISSION_MODES = tuple(mode.value for mode in PermissionMode)


def settings_path() -> Path:
    """Location of the settings file, honouring TOOLBATCH_CONFIG."""
    if override := os.environ.get("TOOLBATCH_CONFIG"):
        return Path(override).expanduser()
    return SETTINGS_FILE


@dataclass
class Settings:
    """Main configuration container for toolbatch."""

    allow: list[str] = field(default_factory=list)
    deny: list[str] = field(default_factory=list)
    permission_mode: str = "default"
    tool_timeout: float = 120.0
    cwd: str = ""

    def __post_init__(self) -> None:
        if self.permission_mode not in PERMISSION_MODES:
            raise ConfigError(
                f"Unknown permission mode '{self.permission_mode}'",
                {"valid": list(PERMISSION_MODES)},
            )
        if self.tool_timeout <= 0:
            raise ConfigError("tool_timeout must be positive", {"tool_timeout": self.tool_timeout})

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "allow": self.allow,
            "deny": self.deny,
            "permission_mode": self.permission_mode,
            "tool_timeout": self.tool_timeout,
            "cwd": self.cwd,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Settings":
        """
        Create Settings from dictionary.

        Raises:
            ConfigError: If a value has the wrong type or is out of range
        """
        for name in ("allow", "deny"):
            if not isinstance(data.get(name, []), list):
                raise ConfigError(f"'{name}' must be a list of rules", {name: data[name]})
        try:
            return cls(
                allow=[str(r) for r in data.get("allow", [])],
                deny=[str(r) for r in data.get("deny", [])],
                permission_mode=data.get("permission_mode", "default"),
                tool_timeout=float(data.get("tool_timeout", 120.0)),
                cwd=data.get("cwd", ""),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError("Invalid settings value", {"error": str(e)})

    def permission_context(self) -> PermissionContext:
        """
        Build the permission context these settings describe.

        Raises:
            ConfigError: If a stored rule cannot be parsed
        """
        try:
            return PermissionContext(
                allow=[PermissionRule.parse(r) for r in self.allow],
                deny=[PermissionRule.parse(r) for r in self.deny],
                mode=PermissionMode(self.permission_mode),
            )
        except InvalidRuleError as e:
            raise ConfigError(f"Invalid rule in settings: {e.message}", e.details)

    def tool_context(self) -> ToolContext:
        """Tool context for a batch run."""
        cwd = Path(self.cwd).expanduser() if self.cwd else Path.cwd()
        return ToolContext(cwd=cwd, timeout=self.tool_timeout)

    def add_rule(self, rule: str, behavior: str) -> str:
        """
        Add an allow or deny rule, normalised.

        Returns:
            The normalised rule text

        Raises:
            ConfigError: If the rule is invalid or already present
        """
        if behavior not in ("allow", "deny"):
            raise ConfigError(f"Unknown rule behavior '{behavior}'")
        try:
            text = str(PermissionRule.parse(rule))
        except InvalidRuleError as e:
            raise ConfigError(e.message, e.details)

        rules = self.allow if behavior == "allow" else self.deny
        if text in rules:
            raise ConfigError(f"Rule '{text}' already exists", {"behavior": behavior})
        rules.append(text)
        return text

    def remove_rule(self, rule: str) -> str:
        """
        Remove a rule from whichever list holds it.

        Returns:
            "allow" or "deny", the list the rule was removed from

        Raises:
            ConfigError: If the rule is not present
        """
        text = rule.strip()
        for behavior, rules in (("allow", self.allow), ("deny", self.deny)):
            if text in rules:
                rules.remove(text)
                return behavior
        raise ConfigError(f"Rule '{text}' not found")


def load_settings(path: Path | None = None, apply_env: bool = True) -> Settings:
    """
    Load settings from file and environment.

    Raises:
        ConfigError: If the settings file or an override is invalid
    """
    path = path or settings_path()
    data: dict[str, Any] = {}

    if path.exists():
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in {path}", {"error": str(e)})
        if not isinstance(data, dict):
            raise ConfigError(f"Settings in {path} must be a JSON object")

    if apply_env and (timeout := os.environ.get("TOOLBATCH_TOOL_TIMEOUT")):
        data["tool_timeout"] = timeout
    if apply_env and (mode := os.environ.get("TOOLBATCH_PERMISSION_MODE")):
        data["permission_mode"] = mode

    return Settings.from_dict(data)


def save_settings(settings: Settings, path: Path | None = None) -> None:
    """Write settings to disk, creating the config directory if needed."""
    path = path or settings_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w", encoding="utf-8") as f:
        json.dump(settings.to_dict(), f, indent=2)

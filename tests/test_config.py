"""Tests for config module."""

import json
from pathlib import Path

import pytest

from toolbatch.config import Settings, load_settings, save_settings, settings_path
from toolbatch.exceptions import ConfigError
from toolbatch.permissions import PermissionMode, PermissionRule


class TestSettings:
    """Tests for Settings dataclass."""

    def test_defaults(self):
        """Test default settings."""
        settings = Settings()
        assert settings.allow == []
        assert settings.deny == []
        assert settings.permission_mode == "default"
        assert settings.tool_timeout == 120.0

    def test_invalid_permission_mode(self):
        with pytest.raises(ConfigError, match="Unknown permission mode"):
            Settings(permission_mode="yolo")

    def test_invalid_timeout(self):
        with pytest.raises(ConfigError):
            Settings(tool_timeout=0)

    def test_round_trip_dict(self):
        """Test serialization to and from dict."""
        settings = Settings(allow=["echo"], deny=["shell(rm:*)"], permission_mode="bypass", tool_timeout=5.0)
        assert Settings.from_dict(settings.to_dict()) == settings

    def test_from_dict_bad_value(self):
        with pytest.raises(ConfigError, match="Invalid settings value"):
            Settings.from_dict({"tool_timeout": "soon"})

    @pytest.mark.parametrize("name", ["allow", "deny"])
    def test_from_dict_rule_string_instead_of_list(self, name):
        """A bare string is not iterated character by character."""
        with pytest.raises(ConfigError, match=f"'{name}' must be a list"):
            Settings.from_dict({name: "echo"})

    def test_load_rejects_non_list_rules(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({"allow": {"echo": True}}))
        with pytest.raises(ConfigError, match="must be a list"):
            load_settings(path)

    def test_permission_context(self):
        settings = Settings(allow=["echo"], deny=["shell(rm:*)"], permission_mode="bypass")
        context = settings.permission_context()
        assert context.allow == [PermissionRule("echo")]
        assert context.deny == [PermissionRule("shell", "rm:*")]
        assert context.mode is PermissionMode.BYPASS

    def test_permission_context_with_bad_rule(self):
        settings = Settings(allow=["not a rule"])
        with pytest.raises(ConfigError, match="Invalid rule in settings"):
            settings.permission_context()

    def test_tool_context(self, tmp_path):
        context = Settings(cwd=str(tmp_path), tool_timeout=3.0).tool_context()
        assert context.cwd == tmp_path
        assert context.timeout == 3.0

    def test_tool_context_defaults_to_current_directory(self):
        assert Settings().tool_context().cwd == Path.cwd()


class TestRules:
    """Tests for add_rule() and remove_rule()."""

    def test_add_rule_normalises(self):
        settings = Settings()
        assert settings.add_rule("  shell(git:*) ", "allow") == "shell(git:*)"
        assert settings.allow == ["shell(git:*)"]

    def test_add_duplicate_rule(self):
        settings = Settings(deny=["fail"])
        with pytest.raises(ConfigError, match="already exists"):
            settings.add_rule("fail", "deny")

    def test_add_invalid_rule(self):
        with pytest.raises(ConfigError):
            Settings().add_rule("shell(", "allow")

    def test_add_unknown_behavior(self):
        with pytest.raises(ConfigError):
            Settings().add_rule("echo", "maybe")

    def test_remove_rule(self):
        settings = Settings(allow=["echo"], deny=["fail"])
        assert settings.remove_rule("fail") == "deny"
        assert settings.deny == []
        assert settings.remove_rule("echo") == "allow"

    def test_remove_missing_rule(self):
        with pytest.raises(ConfigError, match="not found"):
            Settings().remove_rule("echo")


class TestLoadSave:
    """Tests for load_settings() and save_settings()."""

    def test_settings_path_override(self, isolated_environment):
        assert settings_path() == isolated_environment / "settings.json"

    def test_missing_file_gives_defaults(self):
        assert load_settings() == Settings()

    def test_save_then_load(self, tmp_path):
        path = tmp_path / "nested" / "settings.json"
        save_settings(Settings(allow=["echo"], tool_timeout=9.0), path)

        assert json.loads(path.read_text())["allow"] == ["echo"]
        assert load_settings(path) == Settings(allow=["echo"], tool_timeout=9.0)

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text("{oops")
        with pytest.raises(ConfigError, match="Invalid JSON"):
            load_settings(path)

    def test_non_object_settings(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text("[]")
        with pytest.raises(ConfigError, match="must be a JSON object"):
            load_settings(path)

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("TOOLBATCH_TOOL_TIMEOUT", "7.5")
        monkeypatch.setenv("TOOLBATCH_PERMISSION_MODE", "bypass")

        settings = load_settings()

        assert settings.tool_timeout == 7.5
        assert settings.permission_mode == "bypass"

    def test_environment_ignored_when_requested(self, monkeypatch):
        monkeypatch.setenv("TOOLBATCH_TOOL_TIMEOUT", "7.5")
        assert load_settings(apply_env=False).tool_timeout == 120.0

    def test_invalid_environment_override(self, monkeypatch):
        monkeypatch.setenv("TOOLBATCH_PERMISSION_MODE", "chaos")
        with pytest.raises(ConfigError):
            load_settings()

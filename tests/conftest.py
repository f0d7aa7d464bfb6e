"""Shared fixtures: keep logs and settings inside the test's tmp_path."""

import pytest

from toolbatch.logging import LogConfig, configure


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Point log files and the settings file at a temporary directory."""
    configure(LogConfig(log_dir=tmp_path / "logs"))
    monkeypatch.setenv("TOOLBATCH_CONFIG", str(tmp_path / "settings.json"))
    monkeypatch.delenv("TOOLBATCH_TOOL_TIMEOUT", raising=False)
    monkeypatch.delenv("TOOLBATCH_PERMISSION_MODE", raising=False)
    yield tmp_path

from pathlib import Path

import pytest
from typer.testing import CliRunner

import termpilot.config as config_module
from termpilot import __version__
from termpilot.exceptions import ConfigurationError
from termpilot.main import app, build_config


runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated(monkeypatch, tmp_path: Path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    monkeypatch.delenv("TERMPILOT_API__API_KEY", raising=False)
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_PATH", tmp_path / "none.yaml")


def test_version_command():
    result = runner.invoke(app, ["version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_missing_api_key_exits_with_error():
    result = runner.invoke(app, ["--prompt", "hi"])

    assert result.exit_code == 1


def test_build_config_requires_api_key():
    with pytest.raises(ConfigurationError):
        build_config()


def test_build_config_applies_overrides(monkeypatch, tmp_path: Path):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-test")
    work = tmp_path / "work"
    work.mkdir()

    cfg = build_config(model="claude-other", cwd=str(work))

    assert cfg.api.model == "claude-other"
    assert cfg.resolved_work_dir() == work.resolve()

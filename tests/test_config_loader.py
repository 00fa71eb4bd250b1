"""Tests for config loading: file values, METALS_* environment overrides, camelCase keys."""

import json
from pathlib import Path

import pytest

from metals_standalone.config.loader import convert_keys, convert_to_camel, load_config, save_config
from metals_standalone.config.schema import Config


def test_defaults_without_file(tmp_path: Path) -> None:
    config = load_config(tmp_path / "missing.json")
    assert config.lsp.init_timeout == 120.0
    assert config.lsp.shutdown_timeout == 10.0
    assert config.launcher.metals_version == "1.6.2"
    assert config.mcp.wait_timeout == 60.0


def test_env_overrides_nested_fields(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("METALS_LSP__INIT_TIMEOUT", "300")
    monkeypatch.setenv("METALS_LAUNCHER__METALS_VERSION", "1.5.0")
    config = load_config(tmp_path / "missing.json")
    assert config.lsp.init_timeout == 300.0
    assert config.launcher.metals_version == "1.5.0"


def test_file_uses_camel_case_keys(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"lsp": {"initTimeout": 5}, "launcher": {"serverCommand": ["metals", "-v"]}}))
    config = load_config(path)
    assert config.lsp.init_timeout == 5.0
    assert config.launcher.server_command == ["metals", "-v"]


def test_invalid_file_names_the_path(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text("{nope")
    with pytest.raises(ValueError, match="config.json"):
        load_config(path)
    path.write_text("[]")
    with pytest.raises(ValueError):
        load_config(path)
    path.write_text(json.dumps({"lsp": {"initTimeout": "soon"}}))
    with pytest.raises(ValueError):
        load_config(path)


def test_save_then_load(tmp_path: Path) -> None:
    config = Config()
    config.mcp.poll_interval = 2.5
    path = save_config(config, tmp_path / "nested" / "config.json")
    assert json.loads(path.read_text())["mcp"]["pollInterval"] == 2.5
    assert load_config(path).mcp.poll_interval == 2.5


def test_key_conversion() -> None:
    assert convert_keys({"mcpConfig": [{"healthInterval": 1}]}) == {"mcp_config": [{"health_interval": 1}]}
    assert convert_to_camel({"kill_grace": 1}) == {"killGrace": 1}

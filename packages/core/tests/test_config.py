"""Tests for configuration loading."""

import pytest

from prchorus_core.config import load_config, load_guidelines
from prchorus_core.errors import ConfigError


def test_defaults_applied_when_no_config_file(tmp_path):
    config = load_config(config_path=str(tmp_path / "nonexistent.yml"))
    assert config["provider"] == "anthropic"
    assert config["model"] is None
    assert config["review_mode"] == "single"
    assert config["store"] == "sqlite"
    assert config["guidelines"] is None
    assert config["exclude"] == []
    assert config["snap_window"] == 3
    assert config["line_group_size"] == 5
    assert config["score_divergence_threshold"] == 2.0


def test_config_file_overrides_defaults(tmp_path):
    cfg = tmp_path / ".prchorus.yml"
    cfg.write_text("provider: openai\nsnap_window: 5\nreview_mode: multi-agent\n")
    config = load_config(config_path=str(cfg))
    assert config["provider"] == "openai"
    assert config["snap_window"] == 5
    assert config["review_mode"] == "multi-agent"


def test_empty_config_file_uses_defaults(tmp_path):
    cfg = tmp_path / ".prchorus.yml"
    cfg.write_text("")
    config = load_config(config_path=str(cfg))
    assert config["provider"] == "anthropic"


def test_exclude_patterns_loaded(tmp_path):
    cfg = tmp_path / ".prchorus.yml"
    cfg.write_text("exclude:\n  - migrations/\n  - '*.lock'\n")
    config = load_config(config_path=str(cfg))
    assert "migrations/" in config["exclude"]
    assert "*.lock" in config["exclude"]


def test_cli_overrides_config_file(tmp_path):
    cfg = tmp_path / ".prchorus.yml"
    cfg.write_text("provider: openai\n")
    config = load_config(config_path=str(cfg), cli_overrides={"provider": "claude-code"})
    assert config["provider"] == "claude-code"


def test_none_cli_overrides_ignored(tmp_path):
    cfg = tmp_path / ".prchorus.yml"
    cfg.write_text("provider: openai\n")
    config = load_config(config_path=str(cfg), cli_overrides={"provider": None})
    assert config["provider"] == "openai"


def test_custom_guidelines_path(tmp_path):
    guidelines_file = tmp_path / "my-guidelines.md"
    guidelines_file.write_text("# Custom Guidelines\n- Rule 1")
    cfg = tmp_path / ".prchorus.yml"
    cfg.write_text(f"guidelines: {guidelines_file}\n")
    config = load_config(config_path=str(cfg))
    content = load_guidelines(config)
    assert "Custom Guidelines" in content


def test_builtin_guidelines_loaded_as_fallback():
    config = load_config(config_path="nonexistent.yml")
    content = load_guidelines(config)
    assert "Severity" in content or len(content) > 0


def test_missing_custom_guidelines_raises(tmp_path):
    config = {"guidelines": str(tmp_path / "does-not-exist.md")}
    with pytest.raises(FileNotFoundError):
        load_guidelines(config)


def test_env_vars_loaded(monkeypatch):
    monkeypatch.setenv("GITHUB_TOKEN", "gh-token")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "ant-key")
    monkeypatch.setenv("OPENAI_API_KEY", "oai-key")
    config = load_config(config_path="nonexistent.yml")
    assert config["github_token"] == "gh-token"
    assert config["anthropic_api_key"] == "ant-key"
    assert config["openai_api_key"] == "oai-key"


def test_exclude_list_is_not_shared_reference(tmp_path):
    """Mutating one config's exclude list must not affect another."""
    config_a = load_config(config_path=str(tmp_path / "nonexistent.yml"))
    config_b = load_config(config_path=str(tmp_path / "nonexistent.yml"))
    config_a["exclude"].append("migrations/")
    assert config_b["exclude"] == []


def test_credentials_never_read_from_file(tmp_path, monkeypatch):
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    cfg = tmp_path / ".prchorus.yml"
    cfg.write_text("github_token: leaked\n")
    assert load_config(config_path=str(cfg))["github_token"] is None


def test_unknown_setting_ignored_with_warning(tmp_path, caplog):
    cfg = tmp_path / ".prchorus.yml"
    cfg.write_text("batch_limit: 60\n")
    config = load_config(config_path=str(cfg))
    assert "batch_limit" not in config
    assert "Ignoring unknown setting 'batch_limit'" in caplog.text


@pytest.mark.parametrize(
    "content, message",
    [
        ("provider: gemini\n", "provider must be one of"),
        ("store: redis\n", "store must be one of"),
        ("line_group_size: 0\n", "line_group_size must be a positive integer"),
        ("snap_window: -1\n", "snap_window must be a non-negative number"),
        ("exclude: migrations/\n", "exclude must be a list"),
        ("- just\n- a list\n", "must contain a mapping"),
        ("provider: [unclosed\n", "Could not parse"),
    ],
)
def test_invalid_config_raises(tmp_path, content, message):
    cfg = tmp_path / ".prchorus.yml"
    cfg.write_text(content)
    with pytest.raises(ConfigError, match=message):
        load_config(config_path=str(cfg))


def test_invalid_cli_override_raises(tmp_path):
    with pytest.raises(ConfigError):
        load_config(config_path=str(tmp_path / "none.yml"), cli_overrides={"review_mode": "swarm"})

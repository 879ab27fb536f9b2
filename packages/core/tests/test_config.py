"""Tests for configuration loading."""

import pytest

from prpanel_core.config import (
    ConfigError,
    check_credentials,
    load_config,
    load_prompt,
    load_reviewer_specs,
    load_verifier_prompt,
    validate_level,
    validate_trigger_policy,
)
from prpanel_core.models import ReviewerSpec
from prpanel_core.prompts import DEFAULT_QUALITY_PROMPT, DEFAULT_SECURITY_PROMPT, DEFAULT_VERIFIER_PROMPT


def test_defaults_applied_when_no_config_file(tmp_path):
    config = load_config(config_path=str(tmp_path / "nonexistent.yml"))
    assert config["model"] == "anthropic"
    assert config["reviewers"] is None
    assert config["verifier"]["level"] == "info"
    assert config["resolution"]["trigger"] == "first-push"
    assert config["context"]["enabled"] is False
    assert config["approve_on_pass"] is False


def test_config_file_overrides_defaults(tmp_path):
    cfg = tmp_path / ".prpanel.yml"
    cfg.write_text("model: openai\nreviewer_timeout: 60\n")
    config = load_config(config_path=str(cfg))
    assert config["model"] == "openai"
    assert config["reviewer_timeout"] == 60


def test_nested_sections_merge_key_by_key(tmp_path):
    cfg = tmp_path / ".prpanel.yml"
    cfg.write_text("verifier:\n  level: warning\ncontext:\n  enabled: true\n")
    config = load_config(config_path=str(cfg))
    assert config["verifier"]["level"] == "warning"
    assert config["verifier"]["enabled"] is True
    assert config["context"]["enabled"] is True
    assert config["context"]["max_total_size_kb"] == 500


def test_empty_section_keeps_defaults(tmp_path):
    cfg = tmp_path / ".prpanel.yml"
    cfg.write_text("verifier:\nresolution:\n  trigger: all-pushes\n")
    config = load_config(config_path=str(cfg))
    assert config["verifier"]["level"] == "info"
    assert config["verifier"]["enabled"] is True
    assert config["resolution"]["trigger"] == "all-pushes"


def test_scalar_section_raises(tmp_path):
    cfg = tmp_path / ".prpanel.yml"
    cfg.write_text("verifier: yes\n")
    with pytest.raises(ConfigError, match="verifier"):
        load_config(config_path=str(cfg))


def test_non_mapping_config_file_raises(tmp_path):
    cfg = tmp_path / ".prpanel.yml"
    cfg.write_text("- just\n- a list\n")
    with pytest.raises(ConfigError):
        load_config(config_path=str(cfg))


def test_cli_overrides_config_file(tmp_path):
    cfg = tmp_path / ".prpanel.yml"
    cfg.write_text("model: openai\n")
    config = load_config(config_path=str(cfg), cli_overrides={"model": "anthropic"})
    assert config["model"] == "anthropic"


def test_none_cli_overrides_ignored(tmp_path):
    cfg = tmp_path / ".prpanel.yml"
    cfg.write_text("model: openai\n")
    config = load_config(config_path=str(cfg), cli_overrides={"model": None})
    assert config["model"] == "openai"


def test_env_vars_loaded(monkeypatch):
    monkeypatch.setenv("GITHUB_TOKEN", "gh-token")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "ant-key")
    monkeypatch.setenv("OPENAI_API_KEY", "oai-key")
    config = load_config(config_path="nonexistent.yml")
    assert config["github_token"] == "gh-token"
    assert config["anthropic_api_key"] == "ant-key"
    assert config["openai_api_key"] == "oai-key"


def test_nested_defaults_are_not_shared(tmp_path):
    """Mutating one config's sections must not affect another."""
    config_a = load_config(config_path=str(tmp_path / "nonexistent.yml"))
    config_b = load_config(config_path=str(tmp_path / "nonexistent.yml"))
    config_a["verifier"]["level"] = "critical"
    assert config_b["verifier"]["level"] == "info"


# ---------------------------------------------------------------------------
# Reviewers
# ---------------------------------------------------------------------------


class TestLoadReviewerSpecs:
    def test_builtin_reviewers_by_default(self):
        specs = load_reviewer_specs({"reviewers": None})
        assert [s.name for s in specs] == ["quality", "security"]
        assert specs[0].prompt == DEFAULT_QUALITY_PROMPT

    def test_custom_reviewers(self):
        specs = load_reviewer_specs(
            {
                "reviewers": [
                    {"name": "perf", "prompt": "Find slow code.", "model": "openai/gpt-4o"},
                    {"name": "docs", "prompt_file": ".github/docs.md", "enabled": False},
                ]
            }
        )
        assert specs[0] == ReviewerSpec(name="perf", prompt="Find slow code.", model="openai/gpt-4o")
        assert specs[1].enabled is False
        assert specs[1].prompt_file == ".github/docs.md"

    def test_bare_builtin_name_keeps_its_prompt(self):
        specs = load_reviewer_specs({"reviewers": [{"name": "security", "model": "openai/gpt-4o"}]})
        assert specs[0].prompt == DEFAULT_SECURITY_PROMPT

    def test_duplicate_names_rejected(self):
        with pytest.raises(ConfigError, match="Duplicate"):
            load_reviewer_specs({"reviewers": [{"name": "a"}, {"name": "a"}]})

    @pytest.mark.parametrize("entries", ["quality", [{"prompt": "no name"}], [{"name": "  "}], ["quality"]])
    def test_malformed_entries_rejected(self, entries):
        with pytest.raises(ConfigError):
            load_reviewer_specs({"reviewers": entries})


class TestPrompts:
    def test_prompt_file_wins(self, tmp_path):
        (tmp_path / "p.md").write_text("From file")
        assert load_prompt(ReviewerSpec(name="x", prompt="inline", prompt_file="p.md"), str(tmp_path)) == "From file"

    def test_missing_prompt_file_falls_back_to_inline(self, tmp_path):
        spec = ReviewerSpec(name="x", prompt="inline", prompt_file="missing.md")
        assert load_prompt(spec, str(tmp_path)) == "inline"

    def test_generic_fallback(self):
        assert load_prompt(ReviewerSpec(name="x")) == "Review this code and provide feedback."

    def test_verifier_prompt(self, tmp_path):
        assert load_verifier_prompt({"verifier": {}}) == DEFAULT_VERIFIER_PROMPT
        assert load_verifier_prompt({"verifier": {"prompt": "Be brief."}}) == "Be brief."
        (tmp_path / "v.md").write_text("From file")
        config = {"verifier": {"prompt": "Be brief.", "prompt_file": "v.md"}}
        assert load_verifier_prompt(config, str(tmp_path)) == "From file"


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestValidation:
    def test_levels(self):
        assert validate_level("warning") == "warning"
        with pytest.raises(ConfigError):
            validate_level("major")

    def test_trigger_policies(self):
        assert validate_trigger_policy("on-request") == "on-request"
        with pytest.raises(ConfigError):
            validate_trigger_policy("always")


class TestCheckCredentials:
    def test_all_present(self):
        check_credentials({"github_token": "t", "model": "anthropic", "anthropic_api_key": "k"}, [None])

    def test_missing_github_token(self):
        with pytest.raises(ConfigError, match="GitHub token"):
            check_credentials({"github_token": None, "anthropic_api_key": "k"}, [])

    def test_missing_default_provider_key(self):
        with pytest.raises(ConfigError, match="ANTHROPIC_API_KEY"):
            check_credentials({"github_token": "t", "model": "anthropic"}, [])

    def test_reviewer_on_other_provider_needs_its_key(self):
        config = {"github_token": "t", "model": "anthropic", "anthropic_api_key": "k"}
        with pytest.raises(ConfigError, match="OPENAI_API_KEY"):
            check_credentials(config, ["openai/gpt-4o"])

    def test_unknown_provider(self):
        with pytest.raises(ConfigError, match="Unknown model provider"):
            check_credentials({"github_token": "t", "model": "gemini"}, [])

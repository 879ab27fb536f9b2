import copy
import logging
import os
from pathlib import Path
from typing import Optional

import yaml

from prpanel_core.models import SEVERITY_RANK, ReviewerSpec
from prpanel_core.prompts import DEFAULT_QUALITY_PROMPT, DEFAULT_SECURITY_PROMPT, DEFAULT_VERIFIER_PROMPT
from prpanel_core.providers.router import split_model_hint

logger = logging.getLogger(__name__)

DEFAULT_CONFIG: dict = {
    "model": "anthropic",
    "reviewers": None,  # None = built-in quality + security reviewers
    "verifier": {
        "enabled": True,
        "model": None,
        "prompt": None,
        "prompt_file": None,
        "level": "info",  # minimum severity kept in the final review
    },
    "resolution": {
        "enabled": True,
        "trigger": "first-push",  # first-push | all-pushes | on-request
        "model": None,
    },
    "context": {
        "enabled": False,
        "max_file_size_kb": 100,
        "max_total_size_kb": 500,
    },
    "reviewer_timeout": 180,
    "approve_on_pass": False,
}

DEFAULT_REVIEWERS: list[dict] = [
    {"name": "quality", "prompt": DEFAULT_QUALITY_PROMPT, "focus": "code quality"},
    {"name": "security", "prompt": DEFAULT_SECURITY_PROMPT, "focus": "security"},
]

_BUILTIN_PROMPTS = {r["name"]: r["prompt"] for r in DEFAULT_REVIEWERS}

TRIGGER_POLICIES = ("first-push", "all-pushes", "on-request")
FALLBACK_REVIEWER_PROMPT = "Review this code and provide feedback."


class ConfigError(ValueError):
    """Invalid or incomplete configuration; nothing should be published."""


def load_config(config_path: str = ".prpanel.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .prpanel.yml in the current directory
      3. CLI argument overrides
    Nested sections (verifier, resolution, context) are merged key by key.
    """
    config = copy.deepcopy(DEFAULT_CONFIG)

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        if not isinstance(file_config, dict):
            raise ConfigError(f"{config_path} must contain a mapping, got {type(file_config).__name__}")
        for key, value in file_config.items():
            if isinstance(config.get(key), dict):
                # An empty section ("verifier:" with nothing under it) loads as None.
                if value is None:
                    continue
                if not isinstance(value, dict):
                    raise ConfigError(f"'{key}' in {config_path} must be a mapping")
                config[key].update(value)
            else:
                config[key] = value

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    # Resolve credentials from environment variables
    config["github_token"] = os.environ.get("GITHUB_TOKEN")
    config["anthropic_api_key"] = os.environ.get("ANTHROPIC_API_KEY")
    config["openai_api_key"] = os.environ.get("OPENAI_API_KEY")

    return config


def validate_level(level: str) -> str:
    if level not in SEVERITY_RANK:
        raise ConfigError(f"Unknown severity level {level!r}. Choose one of: critical, warning, info.")
    return level


def load_reviewer_specs(config: dict) -> list[ReviewerSpec]:
    """Turn the ``reviewers`` config entry into ReviewerSpecs (enabled and disabled)."""
    entries = config.get("reviewers")
    if entries is None:
        entries = DEFAULT_REVIEWERS
    if not isinstance(entries, list):
        raise ConfigError("'reviewers' must be a list")

    specs: list[ReviewerSpec] = []
    seen: set[str] = set()
    for i, entry in enumerate(entries):
        if not isinstance(entry, dict) or not isinstance(entry.get("name"), str) or not entry["name"].strip():
            raise ConfigError(f"reviewers[{i}] must be a mapping with a non-empty 'name'")
        name = entry["name"].strip()
        if name in seen:
            raise ConfigError(f"Duplicate reviewer name: {name!r}")
        seen.add(name)
        specs.append(
            ReviewerSpec(
                name=name,
                # A bare "quality" or "security" entry keeps its built-in persona.
                prompt=entry.get("prompt") or _BUILTIN_PROMPTS.get(name),
                prompt_file=entry.get("prompt_file"),
                focus=entry.get("focus"),
                model=entry.get("model"),
                enabled=bool(entry.get("enabled", True)),
            )
        )
    return specs


def _read_prompt_file(repo_root: str, prompt_file: str) -> str | None:
    p = Path(repo_root) / prompt_file
    if not p.exists():
        logger.warning("Prompt file not found: %s", p)
        return None
    try:
        return p.read_text()
    except OSError as e:
        logger.warning("Failed to load prompt from %s: %s", p, e)
        return None


def load_prompt(spec: ReviewerSpec, repo_root: str = ".") -> str:
    """Return a reviewer's persona prompt: prompt_file wins over the inline prompt."""
    if spec.prompt_file:
        text = _read_prompt_file(repo_root, spec.prompt_file)
        if text:
            return text
    return spec.prompt or FALLBACK_REVIEWER_PROMPT


def load_verifier_prompt(config: dict, repo_root: str = ".") -> str:
    verifier = config.get("verifier") or {}
    if verifier.get("prompt_file"):
        text = _read_prompt_file(repo_root, verifier["prompt_file"])
        if text:
            return text
    return verifier.get("prompt") or DEFAULT_VERIFIER_PROMPT


_KEY_FOR_PROVIDER = {"anthropic": ("anthropic_api_key", "ANTHROPIC_API_KEY"), "openai": ("openai_api_key", "OPENAI_API_KEY")}


def check_credentials(config: dict, model_hints: list[str | None]) -> None:
    """Fail fast when the GitHub token or an API key needed by ``model_hints`` is missing."""
    if not config.get("github_token"):
        raise ConfigError("No GitHub token found. Set GITHUB_TOKEN or run `gh auth login` first.")

    default = config.get("model", "anthropic")
    if default not in _KEY_FOR_PROVIDER:
        raise ConfigError(f"Unknown model provider: {default!r}. Choose 'anthropic' or 'openai'.")
    for hint in [None, *model_hints]:
        provider, _ = split_model_hint(hint, default)
        key, env_var = _KEY_FOR_PROVIDER[provider]
        if not config.get(key):
            raise ConfigError(f"{env_var} environment variable is not set.")


def validate_trigger_policy(policy: str) -> str:
    if policy not in TRIGGER_POLICIES:
        raise ConfigError(f"Unknown resolution trigger {policy!r}. Choose one of: {', '.join(TRIGGER_POLICIES)}.")
    return policy

"""The "ask a model" capability handed to reviewers, the verifier and the resolution judgment.

A model hint is either ``"<provider>/<model>"`` (e.g. ``openai/gpt-4o``), a
bare model name (sent to the default provider), or None (default provider and
its default model).
"""

from __future__ import annotations

import logging

from prpanel_core.providers.anthropic import AnthropicProvider
from prpanel_core.providers.base import BaseProvider
from prpanel_core.providers.openai import OpenAIProvider

logger = logging.getLogger(__name__)

PROVIDERS = ("anthropic", "openai")


def get_provider(name: str, config: dict) -> BaseProvider:
    timeout = config.get("reviewer_timeout")
    if name == "anthropic":
        return AnthropicProvider(api_key=config["anthropic_api_key"], timeout=timeout)
    if name == "openai":
        return OpenAIProvider(api_key=config["openai_api_key"], timeout=timeout)
    raise ValueError(f"Unknown model provider: {name!r}. Choose 'anthropic' or 'openai'.")


def split_model_hint(hint: str | None, default_provider: str) -> tuple[str, str | None]:
    """Return ``(provider, model)`` for a model hint."""
    if not hint:
        return default_provider, None
    provider, sep, model = hint.partition("/")
    if sep and provider in PROVIDERS:
        return provider, model or None
    return default_provider, hint


class ModelRouter:
    """Callable ``(prompt, model_hint) -> text`` dispatching to lazily built providers."""

    def __init__(self, config: dict):
        self._config = config
        self._default = config.get("model", "anthropic")
        self._providers: dict[str, BaseProvider] = {}

    def provider(self, name: str) -> BaseProvider:
        if name not in self._providers:
            self._providers[name] = get_provider(name, self._config)
        return self._providers[name]

    def __call__(self, prompt: str, model_hint: str | None = None) -> str:
        name, model = split_model_hint(model_hint, self._default)
        logger.debug("Routing prompt (%d chars) to %s/%s", len(prompt), name, model or "default")
        return self.provider(name).complete(prompt, model=model)

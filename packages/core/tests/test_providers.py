"""Tests for model providers and the model router.

Shared behaviour (complete, _call_with_retry) lives in BaseProvider and is
tested once via a lightweight stub rather than per provider. Provider-specific
tests cover only what differs: SDK setup and defaults.
"""

from unittest.mock import MagicMock, patch

import pytest

from prpanel_core.providers.anthropic import AnthropicProvider
from prpanel_core.providers.base import BaseProvider, ProviderError
from prpanel_core.providers.openai import OpenAIProvider
from prpanel_core.providers.router import ModelRouter, get_provider, split_model_hint


class _StubProvider(BaseProvider):
    MODEL = "stub-1"

    def __init__(self, responses=None):
        self.responses = list(responses or ["ok"])
        self.calls = []

    def _call_api(self, prompt: str, model: str) -> str:
        self.calls.append((prompt, model))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


# ---------------------------------------------------------------------------
# Shared behaviour
# ---------------------------------------------------------------------------


class TestBaseProvider:
    def test_uses_default_model(self):
        provider = _StubProvider()
        assert provider.complete("hi") == "ok"
        assert provider.calls == [("hi", "stub-1")]

    def test_model_override(self):
        provider = _StubProvider()
        provider.complete("hi", model="stub-2")
        assert provider.calls[0][1] == "stub-2"

    def test_retries_on_transient_failure(self):
        provider = _StubProvider([RuntimeError("transient"), "recovered"])
        with patch("prpanel_core.providers.base.time.sleep") as sleep:
            assert provider.complete("hi") == "recovered"
        assert len(provider.calls) == 2
        sleep.assert_called_once_with(1)

    def test_raises_provider_error_after_max_retries(self):
        provider = _StubProvider([RuntimeError("network error")] * 3)
        with patch("prpanel_core.providers.base.time.sleep"):
            with pytest.raises(ProviderError, match="network error"):
                provider.complete("hi")
        assert len(provider.calls) == 3

    def test_no_retry_past_timeout(self):
        provider = _StubProvider([RuntimeError("slow upstream"), "too late"])
        provider.timeout = 0.5
        with patch("prpanel_core.providers.base.time.sleep") as sleep:
            with pytest.raises(ProviderError, match="slow upstream"):
                provider.complete("hi")
        assert len(provider.calls) == 1
        sleep.assert_not_called()

    def test_sdk_options_follow_timeout(self):
        provider = _StubProvider()
        assert provider._sdk_options() == {}
        provider.timeout = 30
        assert provider._sdk_options() == {"timeout": 30.0, "max_retries": 0}


# ---------------------------------------------------------------------------
# Provider-specific
# ---------------------------------------------------------------------------


class TestAnthropicProvider:
    def test_raises_import_error_without_sdk(self):
        with patch.dict("sys.modules", {"anthropic": None}):
            with pytest.raises(ImportError):
                AnthropicProvider(api_key="key")

    def test_model_is_claude(self):
        assert "claude" in AnthropicProvider.MODEL

    def test_temperature_is_set(self):
        assert AnthropicProvider.TEMPERATURE == 0.3


class TestOpenAIProvider:
    def test_raises_import_error_without_sdk(self):
        import prpanel_core.providers.openai as openai_mod

        with patch.object(openai_mod, "_OpenAI", None):
            with pytest.raises(ImportError):
                OpenAIProvider(api_key="key")

    def test_returns_message_content(self):
        import prpanel_core.providers.openai as openai_mod

        fake_sdk = MagicMock()
        fake_sdk.return_value.chat.completions.create.return_value.choices = [
            MagicMock(message=MagicMock(content="review text"))
        ]
        with patch.object(openai_mod, "_OpenAI", fake_sdk):
            provider = OpenAIProvider(api_key="key")
            assert provider.complete("prompt", model="gpt-4o-mini") == "review text"
        kwargs = fake_sdk.return_value.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["messages"] == [{"role": "user", "content": "prompt"}]

    def test_reviewer_timeout_reaches_sdk_client(self):
        import prpanel_core.providers.openai as openai_mod

        fake_sdk = MagicMock()
        with patch.object(openai_mod, "_OpenAI", fake_sdk):
            provider = get_provider("openai", {"openai_api_key": "key", "reviewer_timeout": 45})
        assert provider.timeout == 45
        fake_sdk.assert_called_once_with(api_key="key", timeout=45.0, max_retries=0)

    def test_model_is_gpt(self):
        assert "gpt" in OpenAIProvider.MODEL


# ---------------------------------------------------------------------------
# Routing
# ---------------------------------------------------------------------------


class TestSplitModelHint:
    @pytest.mark.parametrize(
        "hint, expected",
        [
            (None, ("anthropic", None)),
            ("", ("anthropic", None)),
            ("openai/gpt-4o", ("openai", "gpt-4o")),
            ("anthropic/claude-3-5-haiku-latest", ("anthropic", "claude-3-5-haiku-latest")),
            ("claude-3-opus", ("anthropic", "claude-3-opus")),
            ("meta/llama-3", ("anthropic", "meta/llama-3")),
            ("openai/", ("openai", None)),
        ],
    )
    def test_split(self, hint, expected):
        assert split_model_hint(hint, "anthropic") == expected


class TestModelRouter:
    def test_unknown_provider(self):
        with pytest.raises(ValueError):
            get_provider("gemini", {})

    def test_routes_and_caches_providers(self):
        stub = _StubProvider(["a", "b"])
        with patch("prpanel_core.providers.router.get_provider", return_value=stub) as factory:
            router = ModelRouter({"model": "openai"})
            assert router("p1", "gpt-4o-mini") == "a"
            assert router("p2") == "b"
        factory.assert_called_once_with("openai", {"model": "openai"})
        assert stub.calls == [("p1", "gpt-4o-mini"), ("p2", "stub-1")]

    def test_explicit_provider_prefix(self):
        providers = {"anthropic": _StubProvider(["from anthropic"]), "openai": _StubProvider(["from openai"])}
        with patch("prpanel_core.providers.router.get_provider", side_effect=lambda name, cfg: providers[name]):
            router = ModelRouter({"model": "anthropic"})
            assert router("p", "openai/gpt-4o") == "from openai"
        assert providers["openai"].calls == [("p", "gpt-4o")]

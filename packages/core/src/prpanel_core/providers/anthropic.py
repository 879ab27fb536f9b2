from __future__ import annotations

from prpanel_core.providers.base import BaseProvider


class AnthropicProvider(BaseProvider):
    MODEL = "claude-sonnet-4-20250514"
    # Slightly higher than OpenAI's to allow more natural phrasing in review
    # text while keeping the JSON structure stable.
    TEMPERATURE = 0.3

    def __init__(self, api_key: str, timeout: float | None = None):
        try:
            from anthropic import Anthropic
        except ImportError:
            raise ImportError(
                "The 'anthropic' package is required for this provider. "
                "Install it with: pip install 'prpanel[anthropic]'"
            )
        self.timeout = timeout
        self.client = Anthropic(api_key=api_key, **self._sdk_options())

    def _call_api(self, prompt: str, model: str) -> str:
        # anthropic is optional; __init__ already validated it is installed.
        from anthropic.types import TextBlock

        response = self.client.messages.create(
            model=model,
            messages=[{"role": "user", "content": prompt}],
            temperature=self.TEMPERATURE,
            max_tokens=self.MAX_TOKENS,
        )
        text_blocks = [block.text for block in response.content if isinstance(block, TextBlock)]
        return "".join(text_blocks).strip()

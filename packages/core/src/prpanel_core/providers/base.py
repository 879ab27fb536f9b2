"""Base model provider implementing the Template Method pattern.

All providers share the same call algorithm:
    complete() → _call_with_retry() → _call_api()   ← only this differs per provider

Subclasses implement two things only:
  - __init__: validate and store the SDK client
  - _call_api: make one raw API call and return the text response

The pipeline treats a provider as an opaque "prompt in, text out" capability;
it never parses provider-specific formats.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)

_MAX_RETRIES = 3
_MAX_TOKENS = 8192


class ProviderError(RuntimeError):
    """Raised when a provider call fails after every retry."""


class BaseProvider(ABC):
    MODEL: str = ""
    TEMPERATURE: float = 0.2
    MAX_RETRIES: int = _MAX_RETRIES
    MAX_TOKENS: int = _MAX_TOKENS
    # Overall budget in seconds for one complete() call, retries included. None means unbounded.
    timeout: float | None = None

    def complete(self, prompt: str, model: str | None = None) -> str:
        """Send one prompt and return the model's text response.

        ``model`` overrides the provider's default model for this call.
        Raises ProviderError once retries are exhausted.
        """
        return self._call_with_retry(prompt, model or self.MODEL)

    def _sdk_options(self) -> dict:
        """Client keyword arguments that cap each SDK request at ``timeout``.

        The SDK's own retries are switched off; _call_with_retry owns retrying.
        """
        if not self.timeout:
            return {}
        return {"timeout": float(self.timeout), "max_retries": 0}

    @abstractmethod
    def _call_api(self, prompt: str, model: str) -> str:
        """Make a single API call and return the raw text response.

        It should raise on failure; _call_with_retry handles retries and logging.
        """

    def _call_with_retry(self, prompt: str, model: str) -> str:
        """Retry _call_api up to MAX_RETRIES times with exponential backoff.

        Gives up early when the next backoff would run past ``timeout``.
        """
        deadline = time.monotonic() + self.timeout if self.timeout else None
        for attempt in range(self.MAX_RETRIES):
            try:
                return self._call_api(prompt, model)
            except Exception as e:
                if attempt == self.MAX_RETRIES - 1:
                    logger.error(
                        "%s API failed after %d attempts: %s",
                        self.__class__.__name__,
                        self.MAX_RETRIES,
                        e,
                    )
                    raise ProviderError(f"{self.__class__.__name__} failed: {e}") from e
                delay = 2**attempt
                if deadline is not None and time.monotonic() + delay >= deadline:
                    logger.error(
                        "%s API failed and the %gs budget leaves no room to retry: %s",
                        self.__class__.__name__,
                        self.timeout,
                        e,
                    )
                    raise ProviderError(f"{self.__class__.__name__} failed: {e}") from e
                logger.warning(
                    "%s API error (attempt %d/%d): %s. Retrying in %ds...",
                    self.__class__.__name__,
                    attempt + 1,
                    self.MAX_RETRIES,
                    e,
                    delay,
                )
                time.sleep(delay)
        raise ProviderError(f"{self.__class__.__name__}: no attempts made")

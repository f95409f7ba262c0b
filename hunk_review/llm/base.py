import random
import time
from abc import ABC, abstractmethod
from typing import Optional

import requests

from ..cli_display import log

# Retried along with every 5xx status
_RETRY_STATUSES = {408, 429}


class LLMError(Exception):
    """Raised when the provider reports an error or all retries are exhausted."""


def raise_if_retryable(response, message: str) -> None:
    """Turn a rate-limit or server-error response into an ``HTTPError``
    so the retry loop backs off instead of giving up."""
    status = response.status_code
    if status in _RETRY_STATUSES or status >= 500:
        raise requests.HTTPError(f"{status} {message}", response=response)


class LLMClient(ABC):

    def __init__(self, max_retries: int = 2, retry_delay: float = 1.0,
                 timeout: float = 15.0, max_tokens: int = 256,
                 temperature: float = 0.3):
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self.timeout = timeout
        self.max_tokens = max_tokens
        self.temperature = temperature

    # ── Public entry point ──

    def generate_response(self, prompt: str, system: Optional[str] = None) -> str:
        """Generate a response with retry and jittered exponential backoff.

        Transport failures and rate-limit or server-error statuses are
        retried, as are empty responses.  Any other error the provider
        reports in its response body raises :class:`LLMError` at once.
        """
        last_error: Exception | None = None

        for attempt in range(1, self.max_retries + 1):
            try:
                result = self._generate(prompt, system)
                if not result or not result.strip():
                    log.warning(
                        f"[LLM] Empty response on attempt {attempt}/{self.max_retries}")
                    if attempt < self.max_retries:
                        self._backoff(attempt)
                        continue
                    raise LLMError("LLM returned an empty response after all retries")
                return result

            except LLMError:
                raise
            except Exception as e:
                last_error = e
                log.warning(
                    f"[LLM] Error on attempt {attempt}/{self.max_retries}: {e}")
                if attempt < self.max_retries:
                    self._backoff(attempt, rate_limited="429" in str(e))

        raise LLMError(
            f"LLM failed after {self.max_retries} attempts: {last_error}")

    def _backoff(self, attempt: int, rate_limited: bool = False) -> None:
        wait = self.retry_delay * (2 ** (attempt - 1))
        if rate_limited:
            wait *= 2
            log.info(f"[LLM] Rate limited (429), waiting {wait:.1f}s")
        time.sleep(wait + wait * 0.1 * random.random())

    # ── Subclass hook ──

    @abstractmethod
    def _generate(self, prompt: str, system: Optional[str]) -> str:
        """Single non-streaming request."""

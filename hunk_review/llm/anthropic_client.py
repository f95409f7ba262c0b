"""
Anthropic Messages API client (also used for Anthropic-compatible endpoints
such as z.ai's GLM models).
"""

from typing import Optional

import requests

from .base import LLMClient, LLMError, raise_if_retryable
from ..cli_display import token_tracker, log


class AnthropicClient(LLMClient):

    ANTHROPIC_VERSION = "2023-06-01"

    def __init__(self, base_url: str, model: str, api_key: str, **kwargs):
        super().__init__(**kwargs)
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.api_key = api_key

    def _headers(self) -> dict:
        headers = {
            "Content-Type": "application/json",
            "anthropic-version": self.ANTHROPIC_VERSION,
        }
        if self.api_key:
            headers["x-api-key"] = self.api_key
        return headers

    def _generate(self, prompt: str, system: Optional[str]) -> str:
        est_tokens = int(len(prompt.split()) * 1.3)
        log.debug(f"[Anthropic] Sending ~{est_tokens} est. tokens")

        payload = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "messages": [
                {"role": "user", "content": prompt},
            ],
            "stream": False,
        }
        if system:
            payload["system"] = system

        url = f"{self.base_url}/messages"
        response = requests.post(url, headers=self._headers(), json=payload,
                                 timeout=self.timeout)
        try:
            data = response.json()
        except ValueError:
            response.raise_for_status()
            raise LLMError("Failed to parse response")

        if isinstance(data, dict) and (data.get("error") or data.get("type") == "error"):
            error = data.get("error") or {}
            message = (error.get("message") if isinstance(error, dict) else str(error)) \
                or "Anthropic API error"
            raise_if_retryable(response, message)
            raise LLMError(message)
        response.raise_for_status()

        usage = data.get("usage") or {}
        prompt_tokens = usage.get("input_tokens", est_tokens)
        completion_tokens = usage.get("output_tokens", 0)
        token_tracker.record(
            prompt_tokens if isinstance(prompt_tokens, int) else est_tokens,
            completion_tokens if isinstance(completion_tokens, int) else 0,
        )
        log.debug(f"[Anthropic] Usage: prompt={prompt_tokens} completion={completion_tokens}")

        # Extract text from content blocks
        content_blocks = data.get("content") or []
        response_text = "".join(
            block.get("text", "") for block in content_blocks
            if isinstance(block, dict) and block.get("type") == "text"
        )
        log.debug(f"[Anthropic] Response:\n{response_text}")
        return response_text

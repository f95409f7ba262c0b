"""
OpenAI-compatible LLM client: works with OpenAI, OpenRouter, Groq, DeepSeek,
Ollama's /v1 endpoint and any other provider that implements the
chat/completions API.
"""

from typing import Optional

import requests

from .base import LLMClient, LLMError, raise_if_retryable
from ..cli_display import token_tracker, log

# Extra headers OpenRouter uses to attribute requests
_OPENROUTER_HEADERS = {
    "HTTP-Referer": "https://github.com/hunk-review/hunk-review",
    "X-Title": "hunk-review",
}


class OpenAIClient(LLMClient):

    def __init__(self, base_url: str, model: str, api_key: str = "",
                 provider: str = "openai", **kwargs):
        super().__init__(**kwargs)
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.api_key = api_key
        self.provider = provider

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        if self.provider == "openrouter":
            headers.update(_OPENROUTER_HEADERS)
        return headers

    def _generate(self, prompt: str, system: Optional[str]) -> str:
        est_tokens = int(len(prompt.split()) * 1.3)
        log.debug(f"[OpenAI] Sending ~{est_tokens} est. tokens to {self.provider}")

        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        payload = {
            "model": self.model,
            "messages": messages,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "stream": False,
        }
        url = f"{self.base_url}/chat/completions"
        response = requests.post(url, headers=self._headers(), json=payload,
                                 timeout=self.timeout)
        try:
            data = response.json()
        except ValueError:
            response.raise_for_status()
            raise LLMError("Failed to parse response")

        error = data.get("error") if isinstance(data, dict) else None
        if error:
            message = (error.get("message") if isinstance(error, dict) else str(error)) \
                or "API error"
            raise_if_retryable(response, message)
            raise LLMError(message)
        response.raise_for_status()

        usage = data.get("usage") or {}
        prompt_tokens = usage.get("prompt_tokens", est_tokens)
        completion_tokens = usage.get("completion_tokens", 0)
        token_tracker.record(
            prompt_tokens if isinstance(prompt_tokens, int) else est_tokens,
            completion_tokens if isinstance(completion_tokens, int) else 0,
        )
        log.debug(f"[OpenAI] Usage: prompt={prompt_tokens} completion={completion_tokens}")

        try:
            response_text = data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError):
            raise LLMError("Failed to parse response")
        log.debug(f"[OpenAI] Response:\n{response_text}")
        return response_text

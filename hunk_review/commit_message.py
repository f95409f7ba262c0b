"""
Commit message generation: turns the relevant diff into a Conventional
Commits message through an LLM provider.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, Union

from .config import Config
from .errors import CommitMessageError, NothingToSummarizeError
from .llm import AnthropicClient, LLMClient, LLMError, OpenAIClient

logger = logging.getLogger(__name__)

DEFAULT_MAX_DIFF_CHARS = 8000

SYSTEM_PROMPT = (
    "You are a commit message generator. Given a git diff, write a concise, "
    "conventional commit message. Follow the Conventional Commits format: "
    "type(scope): description. Common types: feat, fix, refactor, style, "
    "docs, test, chore, perf. Keep the first line under 72 characters. If the "
    "changes are complex, add a blank line followed by bullet points for "
    "details. Output ONLY the commit message, with no explanations, no "
    "markdown fences and no quotes."
)

NOTHING_TO_SUMMARIZE = (
    "No diff available to generate a commit message from. "
    "Stage some changes first."
)

_ZAI_ANTHROPIC_URL = "https://api.z.ai/api/anthropic/v1"
_FENCE = re.compile(r"^```[\w-]*\n(.*?)\n```$", re.DOTALL)

MessageService = Union[LLMClient, Callable[[str], str]]


class CommitMessageGenerator:
    """Wraps the text-generation service used for commit messages.

    *service* is either an :class:`LLMClient` or any ``prompt -> text``
    callable.
    """

    def __init__(self, service: MessageService,
                 max_diff_chars: int = DEFAULT_MAX_DIFF_CHARS) -> None:
        self._service = service
        self._max_diff_chars = max_diff_chars

    def build_prompt(self, diff: str) -> str:
        truncated = diff[:self._max_diff_chars]
        note = "\n\n... (diff truncated)" if len(diff) > self._max_diff_chars else ""
        return ("Generate a commit message for the following diff:\n\n"
                f"{truncated}{note}")

    def generate(self, diff: str) -> str:
        """Return a commit message for *diff*.

        Raises :class:`NothingToSummarizeError` without calling the service
        when *diff* is empty, and :class:`CommitMessageError` when the
        service fails.
        """
        if not diff or not diff.strip():
            raise NothingToSummarizeError(NOTHING_TO_SUMMARIZE)

        prompt = self.build_prompt(diff)
        try:
            if isinstance(self._service, LLMClient):
                text = self._service.generate_response(prompt, system=SYSTEM_PROMPT)
            else:
                text = self._service(prompt)
        except LLMError as e:
            logger.warning("[CommitMsg] Generation failed: %s", e)
            raise CommitMessageError(str(e)) from e

        message = clean_message(text or "")
        if not message:
            raise CommitMessageError("The model returned an empty commit message")
        return message


def clean_message(text: str) -> str:
    """Strip markdown fences and wrapping quotes some models add anyway."""
    text = text.strip()
    match = _FENCE.match(text)
    if match:
        text = match.group(1).strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "\"'`":
        text = text[1:-1].strip()
    return text


@dataclass
class CommitDraft:
    """The commit message being edited.

    A failed generation leaves :attr:`message` untouched and records the
    error text.
    """
    message: str = ""
    error: str | None = None

    def fill_from(self, generate: Callable[[], str]) -> bool:
        try:
            message = generate()
        except CommitMessageError as e:
            self.error = str(e)
            return False
        self.message = message
        self.error = None
        return True


def create_llm_client(cfg: Config) -> LLMClient:
    """Build the client for the configured commit-message provider."""
    provider = cfg.COMMIT_MESSAGE_PROVIDER
    model = cfg.COMMIT_MESSAGE_MODEL
    if not cfg.COMMIT_MESSAGE_ENABLED or not provider or not model:
        raise CommitMessageError(
            "Commit message generation is not configured. Set "
            "commit_message.provider and commit_message.model in "
            ".hunkreview.yaml.")

    base_url = cfg.get_base_url(provider)
    if not base_url:
        raise CommitMessageError(f"Unknown provider: {provider}")

    api_key = cfg.get_api_key(provider)
    if not api_key and provider != "ollama":
        raise CommitMessageError(f"No API key configured for {provider}")

    common = dict(
        max_retries=cfg.LLM_MAX_RETRIES,
        retry_delay=cfg.LLM_RETRY_DELAY,
        timeout=cfg.LLM_TIMEOUT,
    )
    if provider == "zai" and model.startswith("glm-"):
        return AnthropicClient(_ZAI_ANTHROPIC_URL, model, api_key, **common)
    if provider == "anthropic":
        return AnthropicClient(base_url, model, api_key, **common)
    return OpenAIClient(base_url, model, api_key, provider=provider, **common)


def create_generator(cfg: Config) -> CommitMessageGenerator:
    return CommitMessageGenerator(create_llm_client(cfg),
                                  max_diff_chars=cfg.MAX_DIFF_CHARS)

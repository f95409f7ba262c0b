"""Tests for the HTTP LLM clients (requests is patched, nothing hits the network)."""

from unittest.mock import MagicMock

import pytest
import requests

from hunk_review.llm import AnthropicClient, LLMError, OpenAIClient
from hunk_review.llm import anthropic_client, base, openai_client


def _response(payload, status=200):
    resp = MagicMock()
    resp.json.return_value = payload
    resp.status_code = status
    if status >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"{status} error")
    return resp


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    monkeypatch.setattr(base.time, "sleep", lambda _: None)


class TestOpenAIClient:
    def test_chat_completion(self, monkeypatch):
        post = MagicMock(return_value=_response({
            "choices": [{"message": {"content": "fix: x"}}],
            "usage": {"prompt_tokens": 10, "completion_tokens": 3},
        }))
        monkeypatch.setattr(openai_client.requests, "post", post)

        client = OpenAIClient("https://api.openai.com/v1/", "gpt", api_key="sk")
        assert client.generate_response("diff", system="sys") == "fix: x"

        url = post.call_args[0][0]
        payload = post.call_args.kwargs["json"]
        headers = post.call_args.kwargs["headers"]
        assert url == "https://api.openai.com/v1/chat/completions"
        assert payload["messages"][0] == {"role": "system", "content": "sys"}
        assert payload["max_tokens"] == 256
        assert payload["temperature"] == 0.3
        assert headers["Authorization"] == "Bearer sk"

    def test_openrouter_headers(self, monkeypatch):
        post = MagicMock(return_value=_response({
            "choices": [{"message": {"content": "ok"}}]}))
        monkeypatch.setattr(openai_client.requests, "post", post)
        OpenAIClient("https://openrouter.ai/api/v1", "m", "k",
                     provider="openrouter").generate_response("p")
        assert "X-Title" in post.call_args.kwargs["headers"]

    def test_error_body_is_not_retried(self, monkeypatch):
        post = MagicMock(return_value=_response(
            {"error": {"message": "invalid api key"}}, status=401))
        monkeypatch.setattr(openai_client.requests, "post", post)
        with pytest.raises(LLMError, match="invalid api key"):
            OpenAIClient("u", "m", "k", max_retries=3).generate_response("p")
        assert post.call_count == 1

    def test_transport_errors_are_retried(self, monkeypatch):
        post = MagicMock(side_effect=[
            requests.ConnectionError("reset"),
            _response({"choices": [{"message": {"content": "done"}}]}),
        ])
        monkeypatch.setattr(openai_client.requests, "post", post)
        assert OpenAIClient("u", "m", max_retries=2).generate_response("p") == "done"
        assert post.call_count == 2

    def test_retries_exhausted(self, monkeypatch):
        post = MagicMock(side_effect=requests.Timeout("slow"))
        monkeypatch.setattr(openai_client.requests, "post", post)
        with pytest.raises(LLMError, match="after 2 attempts"):
            OpenAIClient("u", "m", max_retries=2).generate_response("p")

    def test_empty_content_is_retried(self, monkeypatch):
        post = MagicMock(side_effect=[
            _response({"choices": [{"message": {"content": ""}}]}),
            _response({"choices": [{"message": {"content": "fix: y"}}]}),
        ])
        monkeypatch.setattr(openai_client.requests, "post", post)
        assert OpenAIClient("u", "m", max_retries=2).generate_response("p") == "fix: y"
        assert post.call_count == 2

    def test_empty_content(self, monkeypatch):
        post = MagicMock(return_value=_response(
            {"choices": [{"message": {"content": "  "}}]}))
        monkeypatch.setattr(openai_client.requests, "post", post)
        with pytest.raises(LLMError, match="empty"):
            OpenAIClient("u", "m", max_retries=3).generate_response("p")
        assert post.call_count == 3

    def test_rate_limit_body_is_retried(self, monkeypatch):
        sleeps = []
        monkeypatch.setattr(base.time, "sleep", sleeps.append)
        post = MagicMock(side_effect=[
            _response({"error": {"message": "Rate limit reached"}}, status=429),
            _response({"choices": [{"message": {"content": "fix: z"}}]}),
        ])
        monkeypatch.setattr(openai_client.requests, "post", post)
        client = OpenAIClient("u", "m", max_retries=3, retry_delay=1.0)
        assert client.generate_response("p") == "fix: z"
        assert post.call_count == 2
        # rate limits double the first backoff step
        assert sleeps and sleeps[0] >= 2.0


class TestAnthropicClient:
    def test_messages_call(self, monkeypatch):
        post = MagicMock(return_value=_response({
            "content": [{"type": "text", "text": "feat: y"}],
            "usage": {"input_tokens": 5, "output_tokens": 2},
        }))
        monkeypatch.setattr(anthropic_client.requests, "post", post)

        client = AnthropicClient("https://api.anthropic.com/v1", "claude", "key")
        assert client.generate_response("diff", system="sys") == "feat: y"

        payload = post.call_args.kwargs["json"]
        headers = post.call_args.kwargs["headers"]
        assert post.call_args[0][0] == "https://api.anthropic.com/v1/messages"
        assert payload["system"] == "sys"
        assert headers["x-api-key"] == "key"
        assert headers["anthropic-version"] == AnthropicClient.ANTHROPIC_VERSION

    def test_error_type(self, monkeypatch):
        post = MagicMock(return_value=_response(
            {"type": "error", "error": {"type": "overloaded", "message": "Overloaded"}},
            status=529))
        monkeypatch.setattr(anthropic_client.requests, "post", post)
        with pytest.raises(LLMError, match="Overloaded"):
            AnthropicClient("u", "m", "k").generate_response("p")

    def test_server_error_body_is_retried(self, monkeypatch):
        post = MagicMock(side_effect=[
            _response({"type": "error", "error": {"message": "Overloaded"}}, status=529),
            _response({"content": [{"type": "text", "text": "feat: retry"}]}),
        ])
        monkeypatch.setattr(anthropic_client.requests, "post", post)
        assert AnthropicClient("u", "m", "k").generate_response("p") == "feat: retry"
        assert post.call_count == 2

    def test_client_error_body_is_not_retried(self, monkeypatch):
        post = MagicMock(return_value=_response(
            {"type": "error", "error": {"message": "invalid x-api-key"}}, status=401))
        monkeypatch.setattr(anthropic_client.requests, "post", post)
        with pytest.raises(LLMError, match="invalid x-api-key"):
            AnthropicClient("u", "m", "k", max_retries=3).generate_response("p")
        assert post.call_count == 1

from .base import LLMClient, LLMError
from .openai_client import OpenAIClient
from .anthropic_client import AnthropicClient

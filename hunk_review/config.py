"""
Configuration: loads settings from .hunkreview.yaml, environment variables,
and built-in defaults (in that priority order: CLI args > env > YAML > defaults).
"""

from __future__ import annotations

import os

import yaml


_DEFAULTS = {
    "git_executable": "git",
    "command_timeout": 120.0,
    "max_workers": 4,
    "verify_context": True,
    "pending_policy": "block",
    "review_state_file": ".hunkreview/review.json",
    "log_dir": ".hunkreview/logs",
    "commit_message": {
        "enabled": False,
        "provider": "",
        "model": "",
        "max_diff_chars": 8000,
        "max_retries": 2,
        "retry_delay": 1.0,
        "timeout": 15.0,
    },
}

PENDING_POLICIES = ("block", "reject")

# Built-in endpoints for the commit-message providers
PROVIDER_BASE_URLS = {
    "zen": "https://opencode.ai/zen/v1",
    "zai": "https://api.z.ai/api/paas/v4",
    "anthropic": "https://api.anthropic.com/v1",
    "openai": "https://api.openai.com/v1",
    "openrouter": "https://openrouter.ai/api/v1",
    "moonshot": "https://api.moonshot.cn/v1",
    "google": "https://generativelanguage.googleapis.com/v1beta/openai",
    "deepseek": "https://api.deepseek.com",
    "groq": "https://api.groq.com/openai/v1",
    "mistral": "https://api.mistral.ai/v1",
    "perplexity": "https://api.perplexity.ai",
    "synthetic": "https://api.synthetic.new/openai/v1",
    "ollama": "http://localhost:11434/v1",
}

# Config file search locations
_CONFIG_FILENAMES = [".hunkreview.yaml", ".hunkreview.yml"]


def _find_config_file(explicit_path: str | None = None) -> str | None:
    """Find the config file. Checks explicit path, CWD, then user home."""
    if explicit_path:
        if os.path.isfile(explicit_path):
            return explicit_path
        return None

    search_dirs = [os.getcwd(), os.path.expanduser("~")]
    for d in search_dirs:
        for name in _CONFIG_FILENAMES:
            path = os.path.join(d, name)
            if os.path.isfile(path):
                return path
    return None


def _load_yaml(path: str) -> dict:
    """Load YAML file, returns empty dict on failure."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        return data if isinstance(data, dict) else {}
    except (OSError, yaml.YAMLError):
        return {}


def _env_key(provider: str, suffix: str) -> str:
    return f"HUNKREVIEW_{provider.upper()}_{suffix}"


class Config:
    """Application configuration.

    Settings are resolved in priority order:
    1. CLI arguments (handled by caller)
    2. Environment variables (``HUNKREVIEW_*``)
    3. .hunkreview.yaml config file
    4. Built-in defaults
    """

    def __init__(self, yaml_data: dict | None = None):
        yd = yaml_data or {}
        cm = yd.get("commit_message", {})
        if not isinstance(cm, dict):
            cm = {}
        cm_defaults = _DEFAULTS["commit_message"]

        def _get(env_key: str, section: dict, yaml_key: str, default, cast=str):
            env_val = os.getenv(env_key)
            if env_val is not None:
                return cast(env_val)
            yaml_val = section.get(yaml_key)
            if yaml_val is not None:
                return cast(yaml_val)
            return default

        def _get_bool(env_key: str, section: dict, yaml_key: str, default: bool) -> bool:
            env_val = os.getenv(env_key)
            if env_val is not None:
                return env_val.lower() in ("1", "true", "yes")
            yaml_val = section.get(yaml_key)
            if yaml_val is not None:
                return bool(yaml_val)
            return default

        # Repository / engine
        self.GIT_EXECUTABLE = _get("HUNKREVIEW_GIT", yd, "git_executable",
                                   _DEFAULTS["git_executable"])
        self.COMMAND_TIMEOUT = _get("HUNKREVIEW_COMMAND_TIMEOUT", yd,
                                    "command_timeout",
                                    _DEFAULTS["command_timeout"], cast=float)
        self.MAX_WORKERS = _get("HUNKREVIEW_MAX_WORKERS", yd, "max_workers",
                                _DEFAULTS["max_workers"], cast=int)
        self.VERIFY_CONTEXT = _get_bool("HUNKREVIEW_VERIFY_CONTEXT", yd,
                                        "verify_context",
                                        _DEFAULTS["verify_context"])

        policy = _get("HUNKREVIEW_PENDING_POLICY", yd, "pending_policy",
                      _DEFAULTS["pending_policy"]).lower()
        self.PENDING_POLICY = policy if policy in PENDING_POLICIES else "block"

        self.REVIEW_STATE_FILE = _get("HUNKREVIEW_STATE_FILE", yd,
                                      "review_state_file",
                                      _DEFAULTS["review_state_file"])
        self.LOG_DIR = _get("HUNKREVIEW_LOG_DIR", yd, "log_dir",
                            _DEFAULTS["log_dir"])

        # Commit message generation
        self.COMMIT_MESSAGE_ENABLED = _get_bool(
            "HUNKREVIEW_COMMIT_MESSAGE_ENABLED", cm, "enabled",
            cm_defaults["enabled"])
        self.COMMIT_MESSAGE_PROVIDER = _get(
            "HUNKREVIEW_COMMIT_MESSAGE_PROVIDER", cm, "provider",
            cm_defaults["provider"]).lower()
        self.COMMIT_MESSAGE_MODEL = _get(
            "HUNKREVIEW_COMMIT_MESSAGE_MODEL", cm, "model",
            cm_defaults["model"])
        self.MAX_DIFF_CHARS = _get(
            "HUNKREVIEW_MAX_DIFF_CHARS", cm, "max_diff_chars",
            cm_defaults["max_diff_chars"], cast=int)
        self.LLM_MAX_RETRIES = _get(
            "HUNKREVIEW_LLM_MAX_RETRIES", cm, "max_retries",
            cm_defaults["max_retries"], cast=int)
        self.LLM_RETRY_DELAY = _get(
            "HUNKREVIEW_LLM_RETRY_DELAY", cm, "retry_delay",
            cm_defaults["retry_delay"], cast=float)
        self.LLM_TIMEOUT = _get(
            "HUNKREVIEW_LLM_TIMEOUT", cm, "timeout",
            cm_defaults["timeout"], cast=float)

        # Per-provider API keys and endpoint overrides
        self._api_keys: dict[str, str] = {}
        keys_section = cm.get("api_keys", {})
        if isinstance(keys_section, dict):
            for provider, key in keys_section.items():
                if key:
                    self._api_keys[str(provider).lower()] = str(key)

        self._base_urls: dict[str, str] = {}
        urls_section = cm.get("base_urls", {})
        if isinstance(urls_section, dict):
            for provider, url in urls_section.items():
                if url:
                    self._base_urls[str(provider).lower()] = str(url)

    def get_api_key(self, provider: str) -> str:
        """API key for *provider*: env ``HUNKREVIEW_<P>_API_KEY`` > YAML."""
        provider = provider.lower()
        return os.getenv(_env_key(provider, "API_KEY")) or self._api_keys.get(provider, "")

    def get_base_url(self, provider: str) -> str:
        """Endpoint for *provider*: env > YAML override > built-in table."""
        provider = provider.lower()
        return (os.getenv(_env_key(provider, "BASE_URL"))
                or self._base_urls.get(provider)
                or PROVIDER_BASE_URLS.get(provider, ""))

    @property
    def treat_pending_as_rejected(self) -> bool:
        return self.PENDING_POLICY == "reject"

    @classmethod
    def load(cls, config_path: str | None = None) -> "Config":
        """Load config from YAML file (if found) + env vars + defaults."""
        path = _find_config_file(config_path)
        yaml_data = _load_yaml(path) if path else {}
        return cls(yaml_data)

"""Resolve the configured provider to an agent capability."""

from __future__ import annotations

import logging

from prchorus_core.providers.base import BaseAgent

logger = logging.getLogger(__name__)

PROVIDERS = ("anthropic", "openai", "claude-code")


def get_agent(config: dict) -> BaseAgent | None:
    """Return the configured agent, or None when it cannot run here.

    Missing credentials, a missing optional SDK or a missing CLI binary all
    mean "not available"; an unknown provider name is a configuration error.
    """
    provider = config.get("provider", "anthropic")
    model = config.get("model")

    if provider == "anthropic":
        if not config.get("anthropic_api_key"):
            logger.warning("ANTHROPIC_API_KEY is not set")
            return None
        from prchorus_core.providers.anthropic import AnthropicAgent

        try:
            return AnthropicAgent(api_key=config["anthropic_api_key"], model=model)
        except ImportError as e:
            logger.warning("%s", e)
            return None

    if provider == "openai":
        if not config.get("openai_api_key"):
            logger.warning("OPENAI_API_KEY is not set")
            return None
        from prchorus_core.providers.openai import OpenAIAgent

        try:
            return OpenAIAgent(api_key=config["openai_api_key"], model=model)
        except ImportError as e:
            logger.warning("%s", e)
            return None

    if provider == "claude-code":
        from prchorus_core.providers.claude_code import ClaudeCodeAgent

        if not ClaudeCodeAgent.available():
            logger.warning("The `claude` CLI is not on PATH")
            return None
        return ClaudeCodeAgent(model=model)

    raise ValueError(f"Unknown provider: {provider!r}. Choose one of: {', '.join(PROVIDERS)}.")

"""LLM integration package."""
from typing import Optional

from bizlink.core.config import Settings, settings as default_settings
from bizlink.core.llm.base import GenerationError, LLMClient
from bizlink.core.llm.openai import OpenAILLMClient


def get_llm_client(config: Optional[Settings] = None) -> LLMClient:
    """
    Build the generation provider from settings.

    A missing API key is not an error here: the client is still created and
    the first request fails upstream, which the streaming bridge reports to
    the client as an error event.
    """
    config = config or default_settings
    return OpenAILLMClient(
        api_key=config.openai_api_key or "",
        base_url=config.openai_base_url,
        model=config.openai_model,
        timeout=config.openai_timeout,
    )


__all__ = ["GenerationError", "LLMClient", "OpenAILLMClient", "get_llm_client"]

"""
Abstract LLM interface.

The streaming bridge only needs `stream`; `chat` is used for one-shot replies.
"""
from abc import ABC, abstractmethod
from typing import List, Dict, Optional, Iterator


class GenerationError(Exception):
    """Raised by a client when the upstream generation call fails."""


class LLMClient(ABC):
    """Abstract base class for LLM clients."""

    @abstractmethod
    def chat(
        self,
        messages: List[Dict[str, str]],
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
    ) -> str:
        """
        Send a chat completion request.

        Args:
            messages: List of message dicts with 'role' and 'content'
            temperature: Sampling temperature (0.0-2.0)
            max_tokens: Maximum tokens in response

        Returns:
            Generated text response
        """
        pass

    @abstractmethod
    def stream(
        self,
        messages: List[Dict[str, str]],
        temperature: float = 0.7,
    ) -> Iterator[str]:
        """
        Stream a chat completion response.

        Args:
            messages: List of message dicts with 'role' and 'content'
            temperature: Sampling temperature (0.0-2.0)

        Yields:
            Incremental text chunks as they are generated (never cumulative)
        """
        pass

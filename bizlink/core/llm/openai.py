"""
OpenAI-compatible LLM client implementation.

Supports OpenAI and other OpenAI-compatible chat-completions APIs.
"""
import json
import logging
import time
from typing import List, Dict, Optional, Iterator

import requests

from bizlink.core.llm.base import GenerationError, LLMClient

logger = logging.getLogger(__name__)


class OpenAILLMClient(LLMClient):
    """OpenAI-compatible API client."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-4o-mini",
        timeout: int = 120,
        max_retries: int = 3,
    ):
        """
        Initialize OpenAI-compatible client.

        Args:
            api_key: API key for authentication
            base_url: Base URL for the API (e.g., https://api.openai.com/v1)
            model: Model identifier
            timeout: Request timeout in seconds
            max_retries: Attempts before the request is reported as failed
        """
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.max_retries = max_retries
        self.chat_url = f"{self.base_url}/chat/completions"

    def _get_headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

    def _make_request(self, payload: Dict, stream: bool = False) -> requests.Response:
        """
        POST to the chat-completions endpoint with retry on 429 and transport errors.

        Retries only happen before a response is returned; once a stream is
        open, a failure is final.

        Raises:
            GenerationError when every attempt failed
        """
        retry_delay = 1
        last_error: Optional[Exception] = None

        for attempt in range(self.max_retries):
            try:
                response = requests.post(
                    self.chat_url,
                    json=payload,
                    headers=self._get_headers(),
                    timeout=self.timeout,
                    stream=stream,
                )
                if response.status_code == 429:
                    last_error = GenerationError("rate limited")
                    time.sleep(retry_delay * (attempt + 1))
                    continue
                response.raise_for_status()
                return response
            except requests.RequestException as e:
                last_error = e
                logger.warning("Chat completion attempt %s/%s failed: %s", attempt + 1, self.max_retries, e)
                if attempt < self.max_retries - 1:
                    time.sleep(retry_delay * (attempt + 1))
        raise GenerationError(f"Chat completion request failed: {last_error}")

    def chat(
        self,
        messages: List[Dict[str, str]],
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
    ) -> str:
        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
        }
        if max_tokens:
            payload["max_tokens"] = max_tokens

        data = self._make_request(payload).json()
        # OpenAI returns: {"choices": [{"message": {"content": "..."}}]}
        if "choices" in data and len(data["choices"]) > 0:
            return data["choices"][0]["message"]["content"] or ""
        return ""

    def stream(
        self,
        messages: List[Dict[str, str]],
        temperature: float = 0.7,
    ) -> Iterator[str]:
        """
        Stream a chat completion response.

        Yields the `delta.content` of each chunk; stops at the `[DONE]` sentinel.
        A transport error mid-stream is raised as GenerationError.
        """
        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "stream": True,
        }

        response = self._make_request(payload, stream=True)
        try:
            for line in response.iter_lines():
                if not line:
                    continue
                line_str = line.decode("utf-8")
                if not line_str.startswith("data: "):
                    continue
                data_str = line_str[6:]
                if data_str == "[DONE]":
                    break
                try:
                    data = json.loads(data_str)
                except json.JSONDecodeError:
                    logger.debug("Skipping undecodable stream chunk: %s", data_str[:80])
                    continue
                if "error" in data:
                    raise GenerationError(str(data["error"]))
                if "choices" in data and len(data["choices"]) > 0:
                    delta = data["choices"][0].get("delta") or {}
                    content = delta.get("content") or ""
                    if content:
                        yield content
        except requests.RequestException as e:
            raise GenerationError(f"Stream interrupted: {e}") from e
        finally:
            response.close()

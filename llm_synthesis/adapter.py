"""LLM adapters for keyword extraction.

Provides a base interface and concrete adapters for OpenAI-compatible
APIs and a deterministic mock for testing.
"""

import json
import re
from abc import ABC, abstractmethod
from typing import List, Optional

from app.config import LLMSettings
from app.fetching.errors import ConfigurationError


class BaseLLMAdapter(ABC):
    """Abstract base for all LLM adapters."""

    @abstractmethod
    def generate(self, prompt: str, system: Optional[str] = None) -> str:
        """Send a prompt to the LLM and return the raw response text.

        Args:
            prompt: The fully formatted user prompt.
            system: Optional system instructions.

        Returns:
            Raw string response from the model (expected to be JSON).
        """


class OpenAILLMAdapter(BaseLLMAdapter):
    """Adapter for OpenAI-compatible chat completion APIs.

    Configured for deterministic, non-streaming JSON-object output.
    """

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        max_tokens: int = 2048,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
    ) -> None:
        """Initialise the OpenAI adapter.

        Args:
            model: Model identifier.
            max_tokens: Maximum tokens in the completion.
            api_key: OpenAI API key. Required.
            base_url: Optional base URL for OpenAI-compatible endpoints.

        Raises:
            ConfigurationError: If no API key is provided.
        """
        if not api_key:
            raise ConfigurationError("LLM API key is not configured (LLM_API_KEY or OPENAI_API_KEY).")

        from openai import OpenAI

        client_kwargs: dict = {"api_key": api_key}
        if base_url:
            client_kwargs["base_url"] = base_url

        self._client = OpenAI(**client_kwargs)
        self._model = model
        self._max_tokens = max_tokens

    def generate(self, prompt: str, system: Optional[str] = None) -> str:
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        response = self._client.chat.completions.create(
            model=self._model,
            messages=messages,
            temperature=0,
            top_p=1,
            max_tokens=self._max_tokens,
            response_format={"type": "json_object"},
            stream=False,
            seed=42,
        )
        return response.choices[0].message.content or ""


_URL_PATTERN = re.compile(r'"(https?://[^"\s]+)"')


class MockLLMAdapter(BaseLLMAdapter):
    """Deterministic adapter used for local runs and CI.

    Echoes one keyword per source URL found in the prompt, so the
    response always references real source URLs. Prompts asking for
    ``"evaluations"`` get one rating of ``rating`` per URL instead.
    """

    def __init__(self, keyword: str = "mock keyword", rating: int = 8) -> None:
        self._keyword = keyword
        self._rating = rating
        self.prompts: List[str] = []

    def generate(self, prompt: str, system: Optional[str] = None) -> str:
        self.prompts.append(prompt)
        urls = list(dict.fromkeys(_URL_PATTERN.findall(prompt)))
        if '"evaluations"' in prompt:
            evaluations = [
                {"url": url, "rating": self._rating, "justification": "mock rating"}
                for url in urls
            ]
            return json.dumps({"evaluations": evaluations})
        keywords = [
            {"keyword": f"{self._keyword} {index + 1}", "sourceUrl": url}
            for index, url in enumerate(urls)
        ]
        return json.dumps({"keywords": keywords, "keywordsWithBrandNames": []})


def build_adapter(settings: LLMSettings) -> BaseLLMAdapter:
    """Create the adapter selected by ``LLM_ADAPTER`` ("openai" or "mock")."""
    if settings.adapter == "mock":
        return MockLLMAdapter()
    if settings.adapter == "openai":
        return OpenAILLMAdapter(
            model=settings.model,
            max_tokens=settings.max_tokens,
            api_key=settings.api_key,
            base_url=settings.base_url,
        )
    raise ConfigurationError(f"Unsupported LLM adapter '{settings.adapter}'.")

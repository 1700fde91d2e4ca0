"""OpenAI-compatible chat completions over httpx.

Serves both the OpenAI API and servers exposing the same
``/chat/completions`` route, such as Ollama's ``/v1`` API. Used for
context-grounded answers and for entity extraction.
"""

import os
from typing import Any, Optional

import httpx

from kgrag.observability.logging import get_logger
from kgrag.providers.base import LLMProvider, ProviderConfig, ProviderError

logger = get_logger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"
OLLAMA_BASE_URL = "http://localhost:11434/v1"


class OpenAILLMProvider(LLMProvider):
    """Chat completions against an OpenAI-compatible endpoint."""

    def __init__(self, config: ProviderConfig, client: httpx.AsyncClient | None = None) -> None:
        super().__init__(config)
        self.model_name = config.model_name

        default_url = OLLAMA_BASE_URL if config.provider_type == "ollama" else DEFAULT_BASE_URL
        self.base_url = config.base_url or config.extra_params.get("base_url", default_url)

        headers = {"Content-Type": "application/json"}
        # Ollama needs no key; a key may also name an environment variable
        api_key = config.api_key and (os.getenv(config.api_key) or config.api_key)
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        self.client = client or httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=config.extra_params.get("timeout", 60.0),
        )

    def _error(self, message: str, error: Exception | None = None) -> ProviderError:
        return ProviderError(message=message, provider=self.config.provider_type, original_error=error)

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: float = 0.7,
    ) -> str:
        messages = [{"role": "user", "content": prompt}]
        if system_prompt:
            messages.insert(0, {"role": "system", "content": system_prompt})

        payload: dict[str, Any] = {"model": self.model_name, "messages": messages, "temperature": temperature}
        if max_tokens:
            payload["max_tokens"] = max_tokens

        try:
            response = await self.client.post("/chat/completions", json=payload)
            response.raise_for_status()
            data = response.json()
            content = data["choices"][0]["message"]["content"]
        except httpx.HTTPStatusError as e:
            raise self._error(f"Chat API error: {e.response.status_code} - {e.response.text}", e)
        except (httpx.HTTPError, KeyError, IndexError, TypeError, ValueError) as e:
            raise self._error(f"LLM generation failed: {e!r}", e)

        if content is None:
            raise self._error("LLM returned no content")

        usage = data.get("usage") or {}
        logger.debug(
            "llm_completion",
            model=self.model_name,
            prompt_tokens=usage.get("prompt_tokens"),
            completion_tokens=usage.get("completion_tokens"),
        )
        return content

    async def close(self) -> None:
        await self.client.aclose()

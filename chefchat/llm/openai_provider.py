from typing import Optional

from openai import AsyncOpenAI

from .base import LLMProvider


class OpenAIProvider(LLMProvider):
    name = "openai"

    def __init__(self, api_key: str, base_url: Optional[str] = None) -> None:
        self.client = AsyncOpenAI(api_key=api_key, base_url=base_url)

    async def complete(
        self, messages: list[dict], model: str, **kwargs
    ) -> str:
        response = await self.client.chat.completions.create(
            model=model,
            messages=messages,
            **kwargs,
        )
        return response.choices[0].message.content or ""


class LocalLLMProvider(OpenAIProvider):
    """Any OpenAI-compatible endpoint running locally (Ollama, LM Studio, vLLM...)."""

    name = "local"

    def __init__(self, api_key: str, base_url: str) -> None:
        super().__init__(api_key=api_key or "no-key", base_url=base_url)

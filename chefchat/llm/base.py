from abc import ABC, abstractmethod


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    name: str

    @abstractmethod
    async def complete(
        self, messages: list[dict], model: str, **kwargs
    ) -> str:
        """Send role/content messages and get the complete response text."""
        ...

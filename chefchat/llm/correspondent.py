"""The AI persona's brain: one call in, one reply out.

The caller sees a single ``reply`` coroutine.  Internally every model id in
the configured fallback list is tried in order, each under its own timeout,
and the first non-empty answer wins.
"""

import asyncio
import logging
from typing import Callable, Optional

from ..errors import AINotConfiguredError, AIUnavailableError
from .base import LLMProvider
from .registry import get_provider_for_model

logger = logging.getLogger(__name__)

ProviderResolver = Callable[[str], Optional[LLMProvider]]


class AICorrespondent:
    def __init__(
        self,
        models: list[str],
        system_prompt: str,
        timeout_seconds: float = 30.0,
        resolve: ProviderResolver = get_provider_for_model,
    ) -> None:
        self.models = list(models)
        self.system_prompt = system_prompt
        self.timeout_seconds = timeout_seconds
        self._resolve = resolve

    def build_messages(self, prompt: str, history: list[dict]) -> list[dict]:
        messages: list[dict] = []
        if self.system_prompt:
            messages.append({"role": "system", "content": self.system_prompt})
        for m in history:
            role = "assistant" if m.get("role") == "assistant" else "user"
            content = m.get("content", "")
            if content:
                messages.append({"role": role, "content": content})
        messages.append({"role": "user", "content": prompt})
        return messages

    async def reply(self, prompt: str, history: Optional[list[dict]] = None) -> str:
        """Return the first successful completion across the fallback models.

        Raises AINotConfiguredError when no model has a provider, and
        AIUnavailableError carrying the last failure when every attempt fails.
        """
        messages = self.build_messages(prompt, history or [])
        last_error: Optional[BaseException] = None
        attempted = 0

        for model in self.models:
            try:
                provider = self._resolve(model)
            except Exception as e:
                logger.warning("Provider for model %s could not be loaded: %s", model, e)
                attempted += 1
                last_error = e
                continue
            if provider is None:
                logger.debug("No provider configured for model %s", model)
                continue
            attempted += 1
            logger.info("Attempting AI model %s (%s)", model, provider.name)
            try:
                text = await asyncio.wait_for(
                    provider.complete(messages, model),
                    timeout=self.timeout_seconds,
                )
            except asyncio.TimeoutError as e:
                logger.warning("Model %s timed out after %ss", model, self.timeout_seconds)
                last_error = e
                continue
            except Exception as e:
                logger.warning("Model %s failed: %s", model, e)
                last_error = e
                continue
            if text and text.strip():
                return text.strip()
            logger.warning("Model %s returned an empty response", model)
            last_error = ValueError(f"empty response from {model}")

        if attempted == 0:
            raise AINotConfiguredError("No AI model has a configured provider")
        logger.error("All %d AI models failed. Last error: %s", attempted, last_error)
        raise AIUnavailableError(
            f"All AI models failed: {last_error}", last_error=last_error
        )

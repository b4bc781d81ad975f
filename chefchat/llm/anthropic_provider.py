import anthropic

from .base import LLMProvider


class AnthropicProvider(LLMProvider):
    name = "anthropic"

    def __init__(self, api_key: str) -> None:
        self.client = anthropic.AsyncAnthropic(api_key=api_key)

    def _convert_messages(self, messages: list[dict]) -> tuple[str, list[dict]]:
        system_parts = []
        converted = []
        for msg in messages:
            if msg["role"] == "system":
                system_parts.append(msg["content"])
            else:
                # Anthropic forbids consecutive same-role messages, merge them
                if converted and converted[-1]["role"] == msg["role"]:
                    converted[-1]["content"] += "\n\n" + msg["content"]
                else:
                    converted.append({"role": msg["role"], "content": msg["content"]})
        return "\n\n".join(system_parts), converted

    async def complete(
        self, messages: list[dict], model: str, **kwargs
    ) -> str:
        system, msgs = self._convert_messages(messages)
        max_tokens = kwargs.pop("max_tokens", 1024)
        response = await self.client.messages.create(
            model=model,
            max_tokens=max_tokens,
            system=system,
            messages=msgs,
            **kwargs,
        )
        return response.content[0].text if response.content else ""

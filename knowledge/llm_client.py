from __future__ import annotations

from typing import Sequence

from openai import AsyncOpenAI, OpenAIError

from config.settings import Settings
from knowledge.models import ChatMessage


class ModelClientError(RuntimeError):
    """The model endpoint was unreachable or answered with an error."""


class OllamaClient:
    """Chat and embedding calls against Ollama's OpenAI-compatible API."""

    def __init__(self, settings: Settings, client: AsyncOpenAI | None = None) -> None:
        self.settings = settings
        self.chat_model = settings.chat_model
        self.embed_model = settings.embed_model
        self.client = client or AsyncOpenAI(
            api_key=settings.ollama_api_key or "ollama",
            base_url=settings.ollama_base_url.rstrip("/") + "/v1",
            timeout=90,
        )

    async def chat(
        self,
        messages: Sequence[ChatMessage],
        *,
        model: str | None = None,
        temperature: float | None = None,
    ) -> str:
        try:
            response = await self.client.chat.completions.create(
                model=model or self.chat_model,
                messages=[message.to_payload() for message in messages],
                temperature=(
                    temperature if temperature is not None else self.settings.model_temperature
                ),
                stream=False,
            )
        except OpenAIError as exc:
            raise ModelClientError(f"Chat completion failed: {exc}") from exc

        if not response.choices:
            raise ModelClientError("Chat completion returned no choices.")
        return response.choices[0].message.content or ""

    async def embed(self, text: str, *, model: str | None = None) -> list[float]:
        try:
            response = await self.client.embeddings.create(
                model=model or self.embed_model,
                input=text,
            )
        except OpenAIError as exc:
            raise ModelClientError(f"Embedding request failed: {exc}") from exc

        if not response.data:
            raise ModelClientError("Embedding response contained no vectors.")
        return [float(value) for value in response.data[0].embedding]

    async def close(self) -> None:
        await self.client.close()

from __future__ import annotations

import asyncio
import os
from typing import Any

import aisuite as ai  # type: ignore

from wayfinder.core.errors import ConfigurationError, OracleUnavailableError

# Credentials aisuite reads for each provider prefix
PROVIDER_API_KEYS = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "google": "GOOGLE_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "groq": "GROQ_API_KEY",
}


class LLMProvider:
    def __init__(self, model: str) -> None:
        self.model = model

        provider = self.model.split(":", 1)[0]
        env_var = PROVIDER_API_KEYS.get(provider)
        if env_var and not os.getenv(env_var):
            raise ConfigurationError(f"{env_var} is not set")

        try:
            self._client = ai.Client()
        except Exception as exc:  # fail fast if aisuite cannot initialize
            raise ConfigurationError("Failed to initialize aisuite client") from exc

    def chat(
        self,
        messages: list[dict[str, Any]],
        temperature: float = 0.7,
        json_mode: bool = False,
    ) -> str:
        """Send a chat completion request. messages: list of dicts with keys: role (system|user|assistant), content (str or content parts)"""
        kwargs: dict[str, Any] = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        resp = self._client.chat.completions.create(
            model=self.model,
            messages=messages,
            temperature=temperature,
            **kwargs,
        )
        content = resp.choices[0].message.content
        if not content:
            raise OracleUnavailableError("No content in model response")
        return content

    async def chat_async(
        self,
        messages: list[dict[str, Any]],
        temperature: float = 0.7,
        json_mode: bool = False,
        timeout: float | None = None,
    ) -> str:
        """Async version of chat completion request. Runs the sync client in a worker thread, bounded by ``timeout`` seconds."""
        call = asyncio.to_thread(self.chat, messages, temperature, json_mode)
        if timeout is None:
            return await call
        return await asyncio.wait_for(call, timeout=timeout)

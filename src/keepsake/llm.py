"""LLM access and reply phrasing.

``GroqLLMClient`` wraps AsyncGroq behind a small ``LLMClient`` protocol and
bounds every call with a timeout. ``ResponseGenerator`` phrases the
name-collection prompt, greetings and update confirmations, with a fixed
template for each one when no client is configured or the call fails.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

from groq import AsyncGroq

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "llama-3.1-70b-versatile"

NAME_PROMPT_TEMPLATE = "Hello! 👋 What's your name, so I can remember things for you?"


class LLMClient(Protocol):
    """Anything that can complete a prompt."""

    async def complete(self, prompt: str) -> str: ...


class GroqLLMClient:
    """LLMClient implementation that wraps AsyncGroq.

    Example:
        from groq import AsyncGroq
        from keepsake.llm import GroqLLMClient

        llm = GroqLLMClient(AsyncGroq(api_key="..."), timeout=10.0)
        text = await llm.complete("Say hi")
    """

    def __init__(
        self,
        client: AsyncGroq,
        model: str = DEFAULT_MODEL,
        timeout: float = 10.0,
    ) -> None:
        """Initialize the Groq LLM client wrapper.

        Args:
            client: The AsyncGroq client instance to wrap.
            model: The model to use for completions.
            timeout: Seconds before a completion is abandoned.
        """
        self._client = client
        self._model = model
        self.timeout = timeout

    async def complete(self, prompt: str) -> str:
        """Complete a prompt and return the text response.

        Raises:
            asyncio.TimeoutError: If the call exceeds the timeout.
        """
        messages: list[dict[str, Any]] = [{"role": "user", "content": prompt}]

        response = await asyncio.wait_for(
            self._client.chat.completions.create(
                model=self._model,
                messages=messages,
                temperature=0.1,
            ),
            timeout=self.timeout,
        )

        return response.choices[0].message.content or ""

    @property
    def model(self) -> str:
        """Return the model being used."""
        return self._model


def greeting_template(name: str) -> str:
    return f"Hello {name}!"


def confirmation_template(
    label: str, existing: str, proposed: str, person: str | None = None
) -> str:
    owner = f"{person}'s" if person else "your"
    return (
        f"I already have {owner} {label} as \"{existing}\". "
        f"Do you want to update it to \"{proposed}\"? Reply yes or no."
    )


class ResponseGenerator:
    """Phrases bot replies, optionally through an LLM."""

    def __init__(self, client: LLMClient | None = None) -> None:
        self.client = client

    async def _generate(self, prompt: str, fallback: str) -> str:
        if self.client is None:
            return fallback
        try:
            text = (await self.client.complete(prompt)).strip().strip('"')
        except Exception as e:
            logger.warning(f"Reply generation failed, using template: {e!r}")
            return fallback
        return text or fallback

    async def name_prompt(self) -> str:
        """Welcome a new sender and ask for their name."""
        prompt = (
            "You are a friendly personal assistant on a chat app, starting a "
            "conversation with a new user. Welcome them and ask for their name "
            "so you can remember things for them. Keep it under 160 characters. "
            "Reply with the message only."
        )
        return await self._generate(prompt, NAME_PROMPT_TEMPLATE)

    async def greeting(self, name: str, message: str) -> str:
        """Greet a sender by name."""
        prompt = (
            f'The user "{name}" sent: "{message}".\n'
            "Respond with a short, friendly greeting that includes their name. "
            "Keep it under 30 characters. Reply with the greeting only."
        )
        return await self._generate(prompt, greeting_template(name))

    async def update_confirmation(
        self,
        label: str,
        existing: str,
        proposed: str,
        person: str | None = None,
    ) -> str:
        """Ask whether a stored value should be replaced."""
        owner = f"{person}'s" if person else "the user's"
        prompt = (
            f"You have {owner} {label} stored as \"{existing}\". They just said it is "
            f"\"{proposed}\". Write one short message that mentions both values and "
            "asks them to reply yes to update or no to keep the current one. "
            "Reply with the message only."
        )
        return await self._generate(
            prompt, confirmation_template(label, existing, proposed, person)
        )

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import structlog
from openai import AsyncOpenAI

logger = structlog.get_logger(__name__)

ChatMessage = Dict[str, str]


@dataclass
class Completion:
    response_text: str
    usage: Dict[str, Any] = field(default_factory=dict)


class CompletionProvider(ABC):
    """Lightweight interface so agents can swap between real and stub models."""

    @abstractmethod
    async def get_completion(
        self,
        messages: Sequence[ChatMessage],
        model: str,
        temperature: float = 0.0,
    ) -> Completion:
        """Return a model completion for role-tagged ``messages``."""


class EchoCompletionProvider(CompletionProvider):
    """Offline provider used for local runs and tests without external APIs."""

    async def get_completion(
        self,
        messages: Sequence[ChatMessage],
        model: str,
        temperature: float = 0.0,
    ) -> Completion:
        user_turns = [m["content"] for m in messages if m.get("role") == "user"]
        text = user_turns[-1].strip() if user_turns else ""
        return Completion(
            response_text=text,
            usage={"prompt_messages": len(messages), "completion_chars": len(text)},
        )


class OpenAICompletionProvider(CompletionProvider):
    """Chat-completions backend for OpenAI or any compatible endpoint."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        max_retries: int = 2,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self.client = client or AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            max_retries=max_retries,
        )

    async def get_completion(
        self,
        messages: Sequence[ChatMessage],
        model: str,
        temperature: float = 0.0,
    ) -> Completion:
        response = await self.client.chat.completions.create(
            model=model,
            messages=list(messages),
            temperature=temperature,
        )
        text = response.choices[0].message.content or ""
        usage = response.usage.model_dump() if response.usage is not None else {}
        logger.debug("completion_received", model=model, usage=usage)
        return Completion(response_text=text, usage=usage)


def chat(system: str, *user_turns: str) -> List[ChatMessage]:
    messages: List[ChatMessage] = [{"role": "system", "content": system}]
    messages.extend({"role": "user", "content": turn} for turn in user_turns)
    return messages

"""
Upstream text generation for open pet-care questions.

The orchestrator depends only on the TextGenerator protocol. The OpenAI
implementation maps the conversation history onto chat roles and folds
any user/appointment context into the system prompt.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Optional, Protocol, Sequence

from openai import AsyncOpenAI, OpenAIError

from vetchat.config import ModelConfig, settings
from vetchat.prompts.prompt_templates import build_context_block
from vetchat.prompts.system_prompts import CONTEXT_AWARENESS_RULES, VET_ASSISTANT_PROMPT
from vetchat.schemas.conversation_schema import ChatMessage, Role

logger = logging.getLogger(__name__)


class GenerationError(Exception):
    """Raised when the upstream model fails or returns nothing usable."""


@dataclass(frozen=True)
class GenerationResult:
    text: str
    duration_ms: float


class TextGenerator(Protocol):
    async def generate(
        self,
        prompt: str,
        history: Sequence[ChatMessage],
        context: Optional[dict[str, Any]] = None,
    ) -> GenerationResult: ...


def build_messages(
    prompt: str,
    history: Sequence[ChatMessage],
    context: Optional[dict[str, Any]] = None,
) -> list[dict[str, str]]:
    """Chat completion payload: system prompt, prior turns, then the new question."""
    system = VET_ASSISTANT_PROMPT
    context_block = build_context_block(context)
    if context_block:
        system = f"{system}\n{CONTEXT_AWARENESS_RULES}\n{context_block}"

    messages = [{"role": "system", "content": system}]
    for turn in history:
        role = "user" if turn.role == Role.USER else "assistant"
        messages.append({"role": role, "content": turn.text})
    messages.append({"role": "user", "content": prompt})
    return messages


class OpenAIGenerator:
    """TextGenerator backed by the OpenAI chat completions API."""

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        config: Optional[ModelConfig] = None,
    ) -> None:
        self._config = config or settings.model
        self._client = client or AsyncOpenAI(timeout=self._config.request_timeout_sec)

    async def generate(
        self,
        prompt: str,
        history: Sequence[ChatMessage],
        context: Optional[dict[str, Any]] = None,
    ) -> GenerationResult:
        started = time.perf_counter()
        try:
            resp = await self._client.chat.completions.create(
                model=self._config.llm_model,
                messages=build_messages(prompt, history, context),
                temperature=self._config.llm_temperature,
                max_tokens=self._config.max_output_tokens,
            )
        except OpenAIError as exc:
            raise GenerationError(f"Upstream model call failed: {exc}") from exc

        content = resp.choices[0].message.content if resp.choices else None
        if not content or not content.strip():
            raise GenerationError("Upstream model returned an empty answer")

        duration_ms = (time.perf_counter() - started) * 1000
        logger.debug("Generated %d chars in %.0fms", len(content), duration_ms)
        return GenerationResult(text=content.strip(), duration_ms=duration_ms)

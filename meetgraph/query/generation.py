"""
Generation Model Wrapper.

Both retrieval pipelines talk to the same llama_index LLM: the RAG pipeline
asks for a JSON object, the graph pipeline for a bare traversal statement.
"""

import asyncio
import re
from typing import Any, Protocol

from llama_index.core.llms import LLM, ChatMessage, MessageRole

from meetgraph.utils.logger import get_logger

logger = get_logger(__name__)

_CODE_FENCE = re.compile(r"```[a-zA-Z]*\n?")


class GenerationError(Exception):
    """Raised when the generation model fails, times out or returns nothing usable."""
    pass


class TextGenerator(Protocol):
    """System + user prompt in, raw model text out."""

    async def generate_json(self, system_prompt: str, user_prompt: str) -> str: ...

    async def generate_text(self, system_prompt: str, user_prompt: str) -> str: ...


def strip_code_fences(text: str) -> str:
    """Remove markdown fence markers (```cypher, ```json, ```) and surrounding whitespace."""
    return _CODE_FENCE.sub("", text).strip()


class LlamaIndexGenerator:
    """
    :class:`TextGenerator` backed by a llama_index chat model.

    Each call is a single attempt bounded by ``timeout_seconds``; retrying is
    left to the planner's fallback.

    Usage:
        generator = LlamaIndexGenerator(llm, timeout_seconds=30)
        raw = await generator.generate_json(SYSTEM_PROMPT, "Who works in AI?")
    """

    def __init__(
        self,
        llm: LLM,
        timeout_seconds: float | None = 30.0,
        json_kwargs: dict[str, Any] | None = None,
    ) -> None:
        """
        Args:
            llm: Chat model
            timeout_seconds: Upper bound per call, None for no bound
            json_kwargs: Backend-specific options requesting JSON output,
                e.g. ``{"response_format": {"type": "json_object"}}`` for OpenAI
        """
        self.llm = llm
        self.timeout_seconds = timeout_seconds
        self.json_kwargs = json_kwargs or {}

    async def _chat(self, system_prompt: str, user_prompt: str, **kwargs: Any) -> str:
        messages = [
            ChatMessage(role=MessageRole.SYSTEM, content=system_prompt),
            ChatMessage(role=MessageRole.USER, content=user_prompt),
        ]
        try:
            response = await asyncio.wait_for(
                self.llm.achat(messages, **kwargs),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise GenerationError(f"Generation timed out after {self.timeout_seconds}s") from e
        except Exception as e:
            raise GenerationError(f"Generation model failed: {e}") from e

        content = response.message.content
        if content is None:
            raise GenerationError("Generation model returned no content")
        return content

    async def generate_json(self, system_prompt: str, user_prompt: str) -> str:
        return await self._chat(system_prompt, user_prompt, **self.json_kwargs)

    async def generate_text(self, system_prompt: str, user_prompt: str) -> str:
        return await self._chat(system_prompt, user_prompt)

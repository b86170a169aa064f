"""Generation backends (OpenAI-compatible endpoint or Ollama)."""
from __future__ import annotations

import logging
from typing import Any, Protocol

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import BaseMessage, HumanMessage
from langchain_ollama import ChatOllama
from langchain_openai import ChatOpenAI

from .config import ModelSettings
from .errors import GenerationError

logger = logging.getLogger(__name__)


class GenerationBackend(Protocol):
    async def generate(self, prompt: str) -> str: ...


def build_chat_model(settings: ModelSettings) -> BaseChatModel:
    if settings.llm_provider == "openai":
        openai_kwargs: dict[str, Any] = {
            "model": settings.llm_model,
            "temperature": settings.temperature,
            "max_tokens": settings.max_output_tokens,
            "api_key": settings.api_key,
            "max_retries": 0,
        }
        if settings.llm_base_url:
            openai_kwargs["base_url"] = settings.llm_base_url
        return ChatOpenAI(**openai_kwargs)
    return ChatOllama(
        model=settings.llm_model,
        base_url=settings.llm_base_url,
        temperature=settings.temperature,
        num_predict=settings.max_output_tokens,
    )


class LLMService:
    """Sends a fully rendered prompt as a single user message to the chat model."""

    def __init__(self, settings: ModelSettings | None = None, llm: BaseChatModel | None = None) -> None:
        self.settings = settings or ModelSettings()
        self.llm = llm if llm is not None else build_chat_model(self.settings)

    async def generate(self, prompt: str) -> str:
        logger.info("Sending prompt to %s (%d chars)", self.settings.llm_model, len(prompt))
        response = await self.llm.ainvoke([HumanMessage(content=prompt)])
        content = self.message_text(response).strip()
        if not content:
            raise GenerationError("Generation backend returned an empty answer")
        logger.info("Received answer from %s (%d chars)", self.settings.llm_model, len(content))
        return content

    @staticmethod
    def message_text(message: BaseMessage) -> str:
        if isinstance(message.content, str):
            return message.content
        # Some providers return a list of content parts.
        return "".join(part.get("text", "") if isinstance(part, dict) else str(part) for part in message.content)

"""Translation of non-English questions into English search text."""

from typing import Protocol

from loguru import logger
from pydantic_ai import Agent

from coach_rag.config.settings import settings
from coach_rag.rag.cache import BoundedCache
from coach_rag.rag.errors import CollaboratorFailure
from coach_rag.rag.types import Language
from coach_rag.services.llm.model import get_model

TRANSLATION_STRATEGY_NAME = "translation"

TRANSLATION_SYSTEM_PROMPT = """You translate fitness and strength-training questions into English.

Rules:
- Keep it concise and keep the original meaning
- Keep exercise and muscle names as their usual English gym terms
- Return ONLY the English translation, nothing else
"""


class Translator(Protocol):
    async def translate(self, text: str, source_language: Language) -> str: ...


class LLMTranslator:
    """Translator backed by a pydantic_ai agent."""

    def __init__(self, model_name: str | None = None, agent: Agent | None = None):
        self.model_name = model_name or settings.query_model
        self._agent = agent

    def _get_agent(self) -> Agent:
        if self._agent is None:
            self._agent = Agent(
                model=get_model("openai", self.model_name),
                system_prompt=TRANSLATION_SYSTEM_PROMPT,
                output_type=str,
            )
        return self._agent

    async def translate(self, text: str, source_language: Language) -> str:
        """Translate ``text`` to English.

        Raises:
            CollaboratorFailure: If the model call fails or returns nothing
        """
        user_prompt = f'Translate this {source_language.value} fitness/workout query to English:\n\n"{text}"'
        try:
            result = await self._get_agent().run(user_prompt)
        except Exception as e:
            raise CollaboratorFailure(TRANSLATION_STRATEGY_NAME, f"Translation failed: {e}") from e

        translation = str(result.output).strip().strip('"').strip()
        if not translation:
            raise CollaboratorFailure(TRANSLATION_STRATEGY_NAME, "Translation returned empty output")
        return translation


class CachedTranslator:
    """Translator wrapper caching results by exact input string."""

    def __init__(self, inner: Translator, cache: BoundedCache[str, str]):
        self.inner = inner
        self.cache = cache

    async def translate(self, text: str, source_language: Language) -> str:
        cached = self.cache.get(text)
        if cached is not None:
            logger.debug("Translation cache hit", language=source_language.value)
            return cached
        translation = await self.inner.translate(text, source_language)
        self.cache.put(text, translation)
        logger.info(f'Translated "{text}" -> "{translation}"', language=source_language.value)
        return translation

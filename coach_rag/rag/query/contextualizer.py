"""History-aware rewriting of follow-up questions."""

import re
from typing import Protocol

from pydantic_ai import Agent

from coach_rag.config.settings import settings
from coach_rag.rag.errors import CollaboratorFailure
from coach_rag.services.llm.model import get_model

CONTEXTUALIZATION_STRATEGY_NAME = "contextualization"

FOLLOW_UP_PATTERN = re.compile(r"\b(it|they|that|this|these|those|how many|which|what about)\b", re.IGNORECASE)

CONTEXTUALIZATION_SYSTEM_PROMPT = """You rewrite follow-up questions from a fitness coaching chat into standalone search queries.

Rules:
- Resolve pronouns and references ("it", "those", "what about ...") using the conversation history
- Keep the user's intent, do not answer the question
- Return ONLY the rewritten question, nothing else
"""


def needs_context(text: str) -> bool:
    return FOLLOW_UP_PATTERN.search(text) is not None


class Contextualizer(Protocol):
    async def contextualize(self, query: str, history: str) -> str: ...


class LLMContextualizer:
    """Contextualizer backed by a pydantic_ai agent."""

    def __init__(self, model_name: str | None = None, agent: Agent | None = None):
        self.model_name = model_name or settings.query_model
        self._agent = agent

    def _get_agent(self) -> Agent:
        if self._agent is None:
            self._agent = Agent(
                model=get_model("openai", self.model_name),
                system_prompt=CONTEXTUALIZATION_SYSTEM_PROMPT,
                output_type=str,
            )
        return self._agent

    async def contextualize(self, query: str, history: str) -> str:
        prompt = f"Conversation history:\n{history}\n\nFollow-up question: {query}\n\nStandalone question:"
        try:
            result = await self._get_agent().run(prompt)
        except Exception as e:
            raise CollaboratorFailure(CONTEXTUALIZATION_STRATEGY_NAME, f"Contextualization failed: {e}") from e

        rewritten = str(result.output).strip().strip('"').strip()
        if not rewritten:
            raise CollaboratorFailure(CONTEXTUALIZATION_STRATEGY_NAME, "Contextualization returned empty output")
        return rewritten

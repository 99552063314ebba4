"""Sub-query decomposition.

Broad training questions are split into facet questions (exercise
selection, volume, frequency, technique) so each facet gets its own
retrieval pass. The generator is an LLM collaborator; its output is parsed
leniently and never trusted to be well-formed.
"""

import json
import re
from typing import Protocol

from loguru import logger
from pydantic_ai import Agent

from coach_rag.config.settings import settings
from coach_rag.rag.errors import CollaboratorFailure
from coach_rag.services.llm.model import get_model

DECOMPOSITION_STRATEGY_NAME = "decomposition"
MAX_GENERATED_SUB_QUERIES = 4
MAX_SUB_QUERIES = 5
SHORT_QUERY_TOKENS = 5

SPECIFIC_PATTERNS = (
    re.compile(r"what is.*exactly"),
    re.compile(r"\bdefine\b"),
    re.compile(r"definition of"),
    re.compile(r"how many.*\bin\b"),
    re.compile(r"when was"),
    re.compile(r"who is"),
    re.compile(r"which exercise.*specifically"),
)

BROAD_PATTERNS = (
    re.compile(r"how to train"),
    re.compile(r"how to build"),
    re.compile(r"how to grow"),
    re.compile(r"best.*for.*muscle"),
    re.compile(r"workout.*for"),
    re.compile(r"training.*program"),
    re.compile(r"muscle.*growth"),
    re.compile(r"hypertrophy"),
)

DECOMPOSITION_SYSTEM_PROMPT = """You are an expert query analyzer for a fitness coaching assistant.
Decompose the user's question into more specific, self-contained questions that can be used
to retrieve documents from a strength-training knowledge base.

Rules:
- Generate up to 4 distinct questions covering exercise selection, volume/sets/reps, frequency,
  and technique/programming
- Phrase them as a user would ask them, keep them concise, do not number them
- Avoid overly similar questions
- Return ONLY a JSON array of strings, no other text

Example:
User asks "how to grow my back" -> ["what are the best exercises for back growth",
"what is the optimal training volume for lats", "how to program rows and pulldowns effectively",
"what is the ideal frequency for back training"]
"""

_FENCE = re.compile(r"```(?:json)?", re.IGNORECASE)
_QUOTED_LINE = re.compile(r"""^["'].*["'],?$""")


def should_decompose(text: str) -> bool:
    """Decide whether a query is broad enough to be worth decomposing."""
    lowered = text.lower().strip()
    if any(pattern.search(lowered) for pattern in SPECIFIC_PATTERNS):
        return False
    if any(pattern.search(lowered) for pattern in BROAD_PATTERNS):
        return True
    return len(lowered.split()) <= SHORT_QUERY_TOKENS


class SubQueryGenerator(Protocol):
    async def decompose(self, query: str) -> list[str]: ...


def parse_sub_queries(raw: str) -> list[str]:
    """Parse the generator's response into at most four questions.

    A JSON array is expected. Anything else falls back to extracting lines
    that look like questions or quoted strings.

    Raises:
        CollaboratorFailure: If nothing usable can be extracted
    """
    cleaned = _FENCE.sub("", raw).strip()
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError:
        parsed = None

    if isinstance(parsed, list):
        questions = [item.strip() for item in parsed if isinstance(item, str) and item.strip()]
    elif parsed is None:
        logger.warning("Failed to parse sub-queries as JSON, extracting lines instead")
        questions = []
        for line in cleaned.splitlines():
            stripped = line.strip()
            if not stripped or stripped in ("[", "]"):
                continue
            if "?" in stripped or _QUOTED_LINE.match(stripped):
                question = stripped.rstrip(",").strip().strip("\"'").strip()
                if question:
                    questions.append(question)
    else:
        questions = []

    if not questions:
        raise CollaboratorFailure(DECOMPOSITION_STRATEGY_NAME, "Sub-query response contained no questions")
    return questions[:MAX_GENERATED_SUB_QUERIES]


def _dedup_key(text: str) -> str:
    return " ".join(text.lower().split())


def build_sub_queries(original: str, generated: list[str]) -> tuple[str, ...]:
    """Prepend the original query, drop duplicates and cap the list."""
    seen: set[str] = set()
    result: list[str] = []
    for text in [original, *generated]:
        key = _dedup_key(text)
        if not key or key in seen:
            continue
        seen.add(key)
        result.append(text.strip())
        if len(result) == MAX_SUB_QUERIES:
            break
    return tuple(result)


class LLMSubQueryGenerator:
    """Sub-query generator backed by a pydantic_ai agent."""

    def __init__(self, model_name: str | None = None, agent: Agent | None = None):
        self.model_name = model_name or settings.query_model
        self._agent = agent

    def _get_agent(self) -> Agent:
        if self._agent is None:
            self._agent = Agent(
                model=get_model("openai", self.model_name),
                system_prompt=DECOMPOSITION_SYSTEM_PROMPT,
                output_type=str,
            )
        return self._agent

    async def decompose(self, query: str) -> list[str]:
        """Generate facet questions for ``query``.

        Raises:
            CollaboratorFailure: If the model call fails or output is unusable
        """
        try:
            result = await self._get_agent().run(f'User\'s question: "{query}"')
        except Exception as e:
            raise CollaboratorFailure(DECOMPOSITION_STRATEGY_NAME, f"Sub-query generation failed: {e}") from e
        return parse_sub_queries(str(result.output))

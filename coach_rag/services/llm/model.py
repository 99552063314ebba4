"""Model lookup for the pydantic_ai agents used by the query analyzer."""

import os

from pydantic_ai.models.openai import OpenAIModel

from coach_rag.config.settings import settings

SUPPORTED_PROVIDERS = ("openai",)


def get_model(provider: str, model_name: str):
    """Return a pydantic_ai model for translation, decomposition or contextualization agents."""
    if provider not in SUPPORTED_PROVIDERS:
        raise ValueError(f"Unsupported LLM provider: {provider}")

    # pydantic_ai reads the key from the environment
    if settings.openai_api_key and not os.getenv("OPENAI_API_KEY"):
        os.environ["OPENAI_API_KEY"] = settings.openai_api_key
    return OpenAIModel(model_name)

from loguru import logger
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    openai_api_key: str = Field(default="", validation_alias="OPENAI_API_KEY")
    database_url: str = Field(default="", validation_alias="DATABASE_URL")
    neo4j_uri: str = Field(default="bolt://localhost:7687", validation_alias="NEO4J_URI")
    neo4j_user: str = Field(default="neo4j", validation_alias="NEO4J_USER")
    neo4j_password: str = Field(default="", validation_alias="NEO4J_PASSWORD")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    embedding_model: str = Field(default="text-embedding-3-small", validation_alias="RAG_EMBEDDING_MODEL")
    embedding_dim: int = Field(default=1536, validation_alias="RAG_EMBEDDING_DIM")
    query_model: str = Field(
        default="gpt-4o-mini",
        validation_alias="RAG_QUERY_MODEL",
        description="Model used for translation, contextualization and sub-query generation",
    )

    max_chunks: int = Field(default=8, validation_alias="RAG_MAX_CHUNKS")
    similarity_threshold: float = Field(default=0.7, validation_alias="RAG_SIMILARITY_THRESHOLD")
    high_relevance_threshold: float = Field(default=0.85, validation_alias="RAG_HIGH_RELEVANCE_THRESHOLD")
    use_graph_search: bool = Field(
        default=False,
        validation_alias="RAG_USE_GRAPH_SEARCH",
        description="Enable graph entity expansion (requires a Neo4j graph store)",
    )
    graph_weight: float = Field(default=0.25, validation_alias="RAG_GRAPH_WEIGHT")
    strict_category_priority: bool = Field(default=False, validation_alias="RAG_STRICT_CATEGORY_PRIORITY")

    vector_weight: float = Field(default=0.7, validation_alias="RAG_VECTOR_WEIGHT")
    keyword_weight: float = Field(default=0.3, validation_alias="RAG_KEYWORD_WEIGHT")
    score_floor: float = Field(default=0.4, validation_alias="RAG_SCORE_FLOOR")

    embedding_timeout_seconds: float = Field(default=10.0, validation_alias="RAG_EMBEDDING_TIMEOUT")
    store_timeout_seconds: float = Field(default=10.0, validation_alias="RAG_STORE_TIMEOUT")
    translation_timeout_seconds: float = Field(default=20.0, validation_alias="RAG_TRANSLATION_TIMEOUT")
    decomposition_timeout_seconds: float = Field(default=30.0, validation_alias="RAG_DECOMPOSITION_TIMEOUT")
    deadline_seconds: float = Field(
        default=45.0,
        validation_alias="RAG_DEADLINE",
        description="Overall retrieval deadline; partial results are returned when exceeded",
    )
    max_concurrency: int = Field(default=8, validation_alias="RAG_MAX_CONCURRENCY")

    translation_cache_size: int = Field(default=1000, validation_alias="RAG_TRANSLATION_CACHE_SIZE")
    embedding_cache_size: int = Field(default=512, validation_alias="RAG_EMBEDDING_CACHE_SIZE")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Validate that log level is one of the standard logging levels."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_value = value.upper()
        if upper_value not in valid_levels:
            logger.warning(f"Invalid LOG_LEVEL '{value}'. Valid levels are: {', '.join(valid_levels)}. Defaulting to INFO.")
            return "INFO"
        return upper_value

    @field_validator("similarity_threshold", "high_relevance_threshold", "score_floor")
    @classmethod
    def validate_unit_interval(cls, value: float) -> float:
        """Clamp score thresholds into [0, 1]."""
        if not 0.0 <= value <= 1.0:
            clamped = min(1.0, max(0.0, value))
            logger.warning(f"Score threshold {value} outside [0, 1], clamping to {clamped}")
            return clamped
        return value

    @field_validator("max_concurrency", "max_chunks")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        """Ensure counts are at least 1."""
        if value < 1:
            logger.warning(f"Expected a positive integer, got {value}. Using 1.")
            return 1
        return value

    @field_validator("neo4j_password")
    @classmethod
    def validate_neo4j_password(cls, value: str) -> str:
        """Warn when the graph store has no credentials.

        Graph search stays usable with the in-memory graph store.
        """
        if not value:
            logger.debug("NEO4J_PASSWORD is not set. The Neo4j graph store will not be available.")
        return value

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )


settings = Settings()

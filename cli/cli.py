"""CLI for the hybrid knowledge retrieval engine.

Developer CLI to run retrieval locally against a corpus snapshot (artifacts
directory) or against the PostgreSQL/Neo4j stores, using the same engine
code path as the coaching service.
"""

import asyncio
import inspect
import json
from pathlib import Path

import typer
from loguru import logger
from rich.console import Console
from rich.json import JSON
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from coach_rag.config.settings import settings
from coach_rag.core.logger import setup_logger
from coach_rag.rag.embed.embedder import EmbeddingClient, OpenAIEmbeddingClient, UnavailableEmbeddingClient
from coach_rag.rag.engine import HybridRetrievalEngine, RetrievalResult, build_engine, build_engine_from_corpus
from coach_rag.rag.errors import InputValidationError, StoreUnavailable
from coach_rag.rag.index.corpus import load_corpus
from coach_rag.rag.index.neo4j_graph import Neo4jGraphStore
from coach_rag.rag.index.postgres_store import PostgresKnowledgeStore
from coach_rag.rag.query.analyzer import QueryAnalyzer
from coach_rag.rag.query.contextualizer import LLMContextualizer
from coach_rag.rag.query.decomposition import LLMSubQueryGenerator
from coach_rag.rag.query.translation import LLMTranslator
from coach_rag.rag.types import Query, RetrievalConfig

# Initialize Rich console for output
console = Console()

# Initialize Typer app
app = typer.Typer(
    name="coach-rag",
    help="Coach RAG CLI - Local hybrid retrieval testing",
    add_completion=False,
)


def _collaborators(offline: bool) -> dict:
    if offline:
        return {}
    return {
        "translator": LLMTranslator(),
        "sub_query_generator": LLMSubQueryGenerator(),
        "contextualizer": LLMContextualizer(),
    }


def _embedder(offline: bool) -> EmbeddingClient:
    if offline or not settings.openai_api_key:
        if not offline:
            logger.warning("OPENAI_API_KEY not set, vector search disabled")
        return UnavailableEmbeddingClient()
    return OpenAIEmbeddingClient()


def _build_engine(corpus_dir: Path | None, offline: bool) -> tuple[HybridRetrievalEngine, list]:
    """Engine plus the database-backed stores the caller must close."""
    if corpus_dir is not None:
        corpus = load_corpus(corpus_dir)
        logger.info(f"Loaded corpus from {corpus_dir}", documents=len(corpus.documents), chunks=len(corpus.chunks))
        return build_engine_from_corpus(corpus, _embedder(offline), **_collaborators(offline)), []

    store = PostgresKnowledgeStore()
    graph_store = Neo4jGraphStore() if settings.neo4j_password else None
    try:
        vocabulary = store.category_vocabulary() or None
    except StoreUnavailable as e:
        logger.warning(f"Category vocabulary unavailable, using defaults: {e}")
        vocabulary = None
    engine = build_engine(
        embedder=_embedder(offline),
        vector_store=store,
        text_store=store,
        graph_store=graph_store,
        category_vocabulary=vocabulary,
        **_collaborators(offline),
    )
    return engine, [s for s in (store, graph_store) if s is not None]


async def _close_stores(stores: list) -> None:
    for store in stores:
        closing = store.close()
        if inspect.isawaitable(closing):
            await closing


async def _retrieve(
    engine: HybridRetrievalEngine, stores: list, query: str, config: RetrievalConfig, history: str | None
) -> RetrievalResult:
    try:
        return await engine.retrieve(query, config, history_hint=history)
    finally:
        await _close_stores(stores)


def _print_query(query: Query) -> None:
    table = Table(title="Analysed query", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Language", query.detected_language.value)
    table.add_row("Normalized", query.normalized_text)
    if query.contextualized_text:
        table.add_row("Contextualized", query.contextualized_text)
    table.add_row("Expanded", query.semantically_expanded_text)
    table.add_row("Type", query.query_type.value + (" (+myth check)" if query.myth_check else ""))
    table.add_row("Entities", ", ".join(sorted(query.mentioned_entities)) or "-")
    table.add_row("Priority categories", ", ".join(query.priority_categories) or "-")
    table.add_row("Sub-queries", "\n".join(query.sub_queries))
    console.print(table)


def _print_result(result: RetrievalResult) -> None:
    _print_query(result.query)

    if result.is_empty:
        console.print(
            Panel(
                Text("No grounding context found", style="bold yellow"),
                subtitle="answer should fall back to general knowledge",
                border_style="yellow",
            )
        )
    else:
        table = Table(title="Ranked results")
        table.add_column("#", justify="right")
        table.add_column("Document")
        table.add_column("Chunk", justify="right")
        table.add_column("Score", justify="right")
        table.add_column("Sources")
        table.add_column("Flags")
        for position, r in enumerate(result.results, start=1):
            flags = [flag for flag, on in (("high", r.is_high_relevance), ("mandatory", r.is_mandatory)) if on]
            table.add_row(
                str(position),
                r.document_title,
                str(r.chunk_ref.index),
                f"{r.fused_score:.3f}",
                ", ".join(sorted(s.value for s in r.sources)),
                ", ".join(flags),
            )
        console.print(table)
        console.print(Panel(result.context.context_text, title="Context", border_style="green"))

    console.print(
        f"[bold]Confidence:[/bold] {result.confidence.level} ({result.confidence.score:.2f}) - {result.confidence.reason}"
    )
    if result.failed_strategies:
        console.print(f"[yellow]Degraded strategies:[/yellow] {', '.join(result.failed_strategies)}")
    if result.deadline_exceeded:
        console.print("[yellow]Deadline exceeded: partial results[/yellow]")


@app.command()
def search(
    query: str = typer.Argument(..., help="Question to retrieve context for"),
    corpus_dir: Path | None = typer.Option(None, "--corpus", "-c", help="Corpus artifacts directory (default: PostgreSQL)"),
    max_chunks: int | None = typer.Option(None, "--max-chunks", "-k", help="Maximum chunks to return"),
    threshold: float | None = typer.Option(None, "--threshold", help="Similarity threshold"),
    graph: bool | None = typer.Option(None, "--graph/--no-graph", help="Enable graph entity expansion"),
    strict: bool | None = typer.Option(None, "--strict/--no-strict", help="Strict category priority"),
    match_all: bool = typer.Option(False, "--match-all", help="Require all keywords (AND semantics)"),
    history: str | None = typer.Option(None, "--history", help="Recent conversation for follow-up questions"),
    offline: bool = typer.Option(False, "--offline", help="No model calls (keyword and graph strategies only)"),
    as_json: bool = typer.Option(False, "--json", help="Print the answer-generator payload as JSON"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
) -> None:
    """Run hybrid retrieval for a question and print context, citations and scores."""
    setup_logger(level="DEBUG" if debug else settings.log_level)

    overrides = {
        key: value
        for key, value in {
            "max_chunks": max_chunks,
            "similarity_threshold": threshold,
            "use_graph_search": graph,
            "strict_category_priority": strict,
        }.items()
        if value is not None
    }
    if match_all:
        overrides["keyword_match_mode"] = "and"
    config = RetrievalConfig.from_settings(settings).model_copy(update=overrides)

    try:
        engine, stores = _build_engine(corpus_dir, offline)
        result = asyncio.run(_retrieve(engine, stores, query, config, history))
    except InputValidationError as e:
        console.print(f"[red]Error:[/red] {e}", style="bold red")
        raise typer.Exit(1) from e
    except RuntimeError as e:
        console.print(f"[red]Error:[/red] {e}", style="bold red")
        raise typer.Exit(1) from e

    if as_json:
        console.print(JSON(json.dumps(result.context.to_payload())))
        return
    _print_result(result)


@app.command()
def analyze(
    query: str = typer.Argument(..., help="Question to analyse"),
    history: str | None = typer.Option(None, "--history", help="Recent conversation for follow-up questions"),
    offline: bool = typer.Option(False, "--offline", help="No model calls (no translation or decomposition)"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
) -> None:
    """Print the analysed form of a question without retrieving."""
    setup_logger(level="DEBUG" if debug else settings.log_level)

    analyzer = QueryAnalyzer(**_collaborators(offline))
    try:
        parsed = analyzer.analyze_offline(query) if offline else asyncio.run(analyzer.analyze(query, history_hint=history))
    except InputValidationError as e:
        console.print(f"[red]Error:[/red] {e}", style="bold red")
        raise typer.Exit(1) from e
    _print_query(parsed)


@app.command()
def check_stores() -> None:
    """Verify PostgreSQL and Neo4j stores are reachable."""
    results: list[tuple[str, bool, str]] = []

    store = PostgresKnowledgeStore()
    try:
        vocabulary = store.category_vocabulary()
        results.append(("PostgreSQL", True, f"Connected, {len(vocabulary)} categories"))
    except StoreUnavailable as e:
        results.append(("PostgreSQL", False, str(e)))
    finally:
        store.close()

    async def _check_graph() -> int:
        graph_store = Neo4jGraphStore()
        try:
            return len(await graph_store.related_entities("back", 5))
        finally:
            await graph_store.close()

    try:
        related = asyncio.run(_check_graph())
        results.append(("Neo4j", True, f"Connected, {related} relations for 'back'"))
    except StoreUnavailable as e:
        results.append(("Neo4j", False, str(e)))

    for name, ok, message in results:
        style = "green" if ok else "red"
        console.print(f"[{style}]{'OK' if ok else 'FAIL'}[/{style}] {name}: {message}")

    if not all(ok for _, ok, _ in results):
        raise typer.Exit(1)


if __name__ == "__main__":
    app()

"""Tests for the coach-rag CLI.

Commands run offline against a corpus saved to a temporary directory, so
no model or database is needed.
"""

import pytest
from typer.testing import CliRunner

import cli.cli
from cli.cli import app
from coach_rag.rag.errors import StoreUnavailable
from coach_rag.rag.index.corpus import save_corpus

runner = CliRunner()


@pytest.fixture(autouse=True)
def quiet_logger(monkeypatch):
    """Keep CLI commands from installing log sinks on the runner's streams."""
    monkeypatch.setattr(cli.cli, "setup_logger", lambda **kwargs: None)


@pytest.fixture
def corpus_dir(fitness_corpus, tmp_path):
    save_corpus(fitness_corpus, tmp_path)
    return tmp_path


class TestSearchCommand:
    """Tests for the search command."""

    def test_json_payload(self, corpus_dir):
        result = runner.invoke(
            app, ["search", "how to grow my back", "--corpus", str(corpus_dir), "--offline", "--json", "-k", "5"]
        )

        assert result.exit_code == 0, result.output
        assert '"contextText"' in result.output
        assert '"title": "Back Training Guide"' in result.output

    def test_table_output_reports_degraded_vector_search(self, corpus_dir):
        result = runner.invoke(app, ["search", "how to grow my back", "--corpus", str(corpus_dir), "--offline"])

        assert result.exit_code == 0, result.output
        assert "Ranked results" in result.output
        assert "Degraded strategies" in result.output
        assert "vector" in result.output

    def test_no_context_found(self, corpus_dir):
        result = runner.invoke(
            app, ["search", "zzz qqq", "--corpus", str(corpus_dir), "--offline", "--match-all"]
        )

        assert result.exit_code == 0, result.output
        assert "No grounding context found" in result.output

    def test_empty_query(self, corpus_dir):
        result = runner.invoke(app, ["search", "   ", "--corpus", str(corpus_dir), "--offline"])
        assert result.exit_code == 1

    def test_missing_corpus(self, tmp_path):
        result = runner.invoke(app, ["search", "how to grow my back", "--corpus", str(tmp_path / "missing"), "--offline"])
        assert result.exit_code == 1
        assert "Error" in result.output

    def test_database_stores_are_closed(self, monkeypatch):
        closed: list[str] = []

        class _EmptyStore:
            def category_vocabulary(self):
                return frozenset()

            async def nearest_neighbors(self, embedding, limit, category_filter=None):
                return []

            async def search(self, term_query, limit):
                return []

            def close(self):
                closed.append("postgres")

        class _EmptyGraph:
            async def related_entities(self, entity_name, limit):
                return []

            async def close(self):
                closed.append("neo4j")

        monkeypatch.setattr(cli.cli, "PostgresKnowledgeStore", _EmptyStore)
        monkeypatch.setattr(cli.cli, "Neo4jGraphStore", _EmptyGraph)
        monkeypatch.setattr(cli.cli.settings, "neo4j_password", "secret")

        result = runner.invoke(app, ["search", "how to grow my back", "--offline", "--graph"])

        assert result.exit_code == 0, result.output
        assert "No grounding context found" in result.output
        assert closed == ["postgres", "neo4j"]


class TestAnalyzeCommand:
    """Tests for the analyze command."""

    def test_offline_analysis(self):
        result = runner.invoke(app, ["analyze", "create a 4 day workout program", "--offline"])

        assert result.exit_code == 0, result.output
        assert "program_generation" in result.output
        assert "program-design" in result.output

    def test_empty_query(self):
        result = runner.invoke(app, ["analyze", "", "--offline"])
        assert result.exit_code == 1


class TestCheckStoresCommand:
    """Tests for the check-stores command."""

    def test_reports_unreachable_stores(self, monkeypatch):
        class _DownStore:
            def category_vocabulary(self):
                raise StoreUnavailable("postgres", "DATABASE_URL not set")

            def close(self):
                pass

        class _DownGraph:
            async def related_entities(self, entity_name, limit):
                raise StoreUnavailable("graph", "NEO4J_PASSWORD not set")

            async def close(self):
                pass

        monkeypatch.setattr(cli.cli, "PostgresKnowledgeStore", _DownStore)
        monkeypatch.setattr(cli.cli, "Neo4jGraphStore", _DownGraph)

        result = runner.invoke(app, ["check-stores"])

        assert result.exit_code == 1
        assert "FAIL" in result.output

"""Root conftest for all tests.

Shared fixtures: a deterministic hashing embedding client, a small
strength-training corpus, and in-memory stores built from it.
"""

import hashlib

import pytest

from coach_rag.rag.index.corpus import KnowledgeCorpus
from coach_rag.rag.index.graph_index import InMemoryGraphStore
from coach_rag.rag.index.text_index import InMemoryTextStore
from coach_rag.rag.index.vector_index import InMemoryVectorStore
from coach_rag.rag.retrieve.tokenizer import tokenize
from coach_rag.rag.types import Chunk, Document, DocumentStatus, RelatedEntity

EMBEDDING_DIM = 256


def hashing_embedding(text: str, dim: int = EMBEDDING_DIM) -> list[float]:
    """Bag-of-words embedding: one stable hash bucket per distinct token."""
    vector = [0.0] * dim
    for token in tokenize(text):
        bucket = int(hashlib.md5(token.encode("utf-8")).hexdigest(), 16) % dim
        vector[bucket] += 1.0
    return vector


class HashingEmbeddingClient:
    """Embedding client producing deterministic bag-of-words vectors."""

    def __init__(self):
        self.calls: list[str] = []

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        return hashing_embedding(text)


def build_corpus(entries: list[dict], relations: dict[str, list[RelatedEntity]] | None = None) -> KnowledgeCorpus:
    """Build a corpus from ``{"id", "title", "categories", "chunks", "status"}`` dicts.

    Chunk embeddings are the hashing embedding of the chunk content.
    """
    documents: list[Document] = []
    chunks: list[Chunk] = []
    for entry in entries:
        documents.append(
            Document(
                id=entry["id"],
                title=entry["title"],
                status=entry.get("status", DocumentStatus.READY),
                categories=frozenset(entry.get("categories", ())),
            )
        )
        for index, content in enumerate(entry["chunks"]):
            chunks.append(
                Chunk(
                    id=f"{entry['id']}#{index}",
                    document_id=entry["id"],
                    index=index,
                    content=content,
                    embedding=hashing_embedding(content),
                )
            )
    return KnowledgeCorpus(documents=documents, chunks=chunks, relations=relations or {})


FITNESS_DOCUMENTS = [
    {
        "id": "back-guide",
        "title": "Back Training Guide",
        "categories": ["muscle:back", "exercise-technique"],
        "chunks": [
            "The back is made of the lats, rhomboids and traps. Rows and pulldowns are the foundation of back training.",
            "For back hypertrophy use progressive overload on rows, pulldowns and pull-ups with 10 to 20 weekly sets.",
            "Lats grow best with a full stretch: use pulldowns and pull-ups through a full range of motion.",
            "Train the back twice per week; rhomboids and traps respond well to heavy rows.",
        ],
    },
    {
        "id": "chest-guide",
        "title": "Chest Training Guide",
        "categories": ["muscle:chest", "exercise-technique"],
        "chunks": [
            "The bench press and incline press build the pectorals through a deep stretch.",
            "Chest fly variations isolate the pecs; keep a slight bend in the elbows.",
            "Press the dumbbells along a slight arc to keep tension on the chest.",
        ],
    },
    {
        "id": "leg-guide",
        "title": "Leg Day Essentials",
        "categories": ["muscle:quadriceps", "muscle:hamstrings"],
        "chunks": [
            "Squats and leg press train the quadriceps; romanian deadlifts train the hamstrings.",
            "Leg extensions and leg curls add isolation volume for quads and hamstrings.",
        ],
    },
    {
        "id": "program-design",
        "title": "Program Design Fundamentals",
        "categories": ["program-design", "training-principles"],
        "chunks": [
            "To create a 4 day workout program, use an upper lower split. Programming each day around compound lifts.",
            "A good workout program sets a rep range of 6 to 12 reps for most exercises on each training day.",
            "Weekly volume in a workout program: create 10 to 20 hard sets per muscle spread over each day.",
        ],
    },
    {
        "id": "nutrition",
        "title": "Nutrition for Lifters",
        "categories": ["general-nutrition"],
        "chunks": [
            "Protein intake of 1.6 grams per kilogram supports muscle growth on any workout program.",
            "Eat a meal with protein and carbohydrates after each workout day.",
        ],
    },
    {
        "id": "myths",
        "title": "Common Training Myths",
        "categories": ["myths"],
        "chunks": [
            "Spot reduction is a myth: you cannot burn belly fat by training abs.",
            "Muscle confusion is bro science; progressive overload drives hypertrophy.",
        ],
    },
    {
        "id": "arm-draft",
        "title": "Arm Guide Draft",
        "status": DocumentStatus.PENDING,
        "categories": ["muscle:elbow-flexors"],
        "chunks": ["Curls build the biceps and brachialis."],
    },
]

PROGRAM_DOCUMENTS = [
    FITNESS_DOCUMENTS[3],
    {
        "id": "split-guide",
        "title": "Choosing a Training Split",
        "categories": ["program-design"],
        "chunks": [
            "A 4 day workout program can follow an upper lower split or a push pull split each training day.",
            "When you create a workout program, schedule rest days between hard sessions and track volume.",
        ],
    },
    FITNESS_DOCUMENTS[4],
    {
        "id": "meal-timing",
        "title": "Meal Timing",
        "categories": ["general-nutrition"],
        "chunks": [
            "Meal timing matters less than total daily protein and calories.",
            "A pre workout meal two hours before training day sessions improves performance.",
        ],
    },
]

FITNESS_RELATIONS = {
    "back": [RelatedEntity("lats", "CONTAINS"), RelatedEntity("rows", "TRAINED_BY")],
    "chest": [RelatedEntity("bench press", "TRAINED_BY")],
}


@pytest.fixture
def embedder() -> HashingEmbeddingClient:
    return HashingEmbeddingClient()


@pytest.fixture
def fitness_corpus() -> KnowledgeCorpus:
    return build_corpus(FITNESS_DOCUMENTS, FITNESS_RELATIONS)


@pytest.fixture
def program_corpus() -> KnowledgeCorpus:
    return build_corpus(PROGRAM_DOCUMENTS)


@pytest.fixture
def vector_store(fitness_corpus) -> InMemoryVectorStore:
    return InMemoryVectorStore(fitness_corpus)


@pytest.fixture
def text_store(fitness_corpus) -> InMemoryTextStore:
    return InMemoryTextStore(fitness_corpus)


@pytest.fixture
def graph_store(fitness_corpus) -> InMemoryGraphStore:
    return InMemoryGraphStore.from_corpus(fitness_corpus)


@pytest.fixture
def corpus_factory():
    """Build ad hoc corpora inside a test."""
    return build_corpus


@pytest.fixture
def fitness_documents() -> list[dict]:
    return [dict(doc) for doc in FITNESS_DOCUMENTS]

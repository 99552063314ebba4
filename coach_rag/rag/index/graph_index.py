"""In-memory entity graph."""

from coach_rag.rag.index.corpus import KnowledgeCorpus
from coach_rag.rag.types import RelatedEntity


class InMemoryGraphStore:
    """Adjacency-list graph store; relations are traversed in both directions."""

    def __init__(self, relations: dict[str, list[RelatedEntity]]):
        self.adjacency: dict[str, list[RelatedEntity]] = {}
        for source, related in relations.items():
            for rel in related:
                self._add(source, rel)
                self._add(rel.name, RelatedEntity(source, rel.relation_type))

    @classmethod
    def from_corpus(cls, corpus: KnowledgeCorpus) -> "InMemoryGraphStore":
        return cls(corpus.relations)

    def _add(self, source: str, rel: RelatedEntity) -> None:
        neighbours = self.adjacency.setdefault(source.lower(), [])
        if all(n.name.lower() != rel.name.lower() for n in neighbours):
            neighbours.append(rel)

    async def related_entities(self, entity_name: str, limit: int) -> list[RelatedEntity]:
        """One-hop neighbours of ``entity_name`` (case-insensitive), in insertion order."""
        return self.adjacency.get(entity_name.lower(), [])[: max(0, limit)]

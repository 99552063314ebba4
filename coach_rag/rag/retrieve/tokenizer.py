"""Tokenization for lexical queries."""

import re

from coach_rag.rag.types import MatchMode, TermQuery

MIN_TOKEN_LENGTH = 3

STOPWORDS = frozenset(
    {
        "the", "and", "for", "with", "how", "what", "can", "are", "was", "were", "you", "your",
        "does", "did", "why", "when", "which", "who", "should", "would", "could", "this", "that",
        "these", "those", "from", "into", "about", "best", "some", "any", "more", "most", "much",
        "many", "also", "just", "get", "have", "has", "had", "not", "but", "all", "our", "out",
        "them", "they", "their", "there", "then", "than", "its", "per", "way", "ways", "use", "using",
    }
)  # fmt: skip

_PUNCTUATION = re.compile(r"[^\w\s-]")


def tokenize(text: str) -> list[str]:
    """Lowercase, strip punctuation, drop short tokens and stopwords.

    Order of first appearance is kept and duplicates are removed.
    """
    cleaned = _PUNCTUATION.sub(" ", text.lower())
    tokens: list[str] = []
    for raw in cleaned.split():
        token = raw.strip("-_")
        if len(token) < MIN_TOKEN_LENGTH or token in STOPWORDS or token in tokens:
            continue
        tokens.append(token)
    return tokens


def build_term_query(text: str, mode: MatchMode = "or") -> TermQuery | None:
    terms = tokenize(text)
    if not terms:
        return None
    return TermQuery(terms=tuple(terms), mode=mode)


def index_tokens(text: str) -> list[str]:
    """Tokens of ``text`` for lexical indexing: ``tokenize`` rules, repeats kept."""
    cleaned = _PUNCTUATION.sub(" ", text.lower())
    tokens = (raw.strip("-_") for raw in cleaned.split())
    return [t for t in tokens if len(t) >= MIN_TOKEN_LENGTH and t not in STOPWORDS]

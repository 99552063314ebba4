"""Error types for the retrieval engine.

Only ``InputValidationError`` ever reaches the caller. Soft errors are
raised by store adapters and collaborator clients and absorbed by the
retriever, which turns them into empty contributions.
"""


class RetrievalError(Exception):
    """Base exception for retrieval errors."""

    pass


class InputValidationError(RetrievalError, ValueError):
    """Raised for an empty or whitespace-only query (hard stop, no external calls)."""

    pass


class SoftRetrievalError(RetrievalError):
    """Recoverable failure of one strategy or collaborator.

    Attributes:
        strategy: Name of the strategy or collaborator that failed
    """

    def __init__(self, strategy: str, message: str) -> None:
        self.strategy = strategy
        super().__init__(f"[{strategy}] {message}")


class CollaboratorTimeout(SoftRetrievalError):
    """Raised when an external call exceeds its timeout."""

    pass


class CollaboratorFailure(SoftRetrievalError):
    """Raised when a model collaborator fails or returns malformed output."""

    pass


class StoreUnavailable(SoftRetrievalError):
    """Raised when a vector, text-search or graph store cannot be queried."""

    pass

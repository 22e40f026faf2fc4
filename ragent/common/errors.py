"""Exception taxonomy for the retrieval engine."""


class RagentError(Exception):
    """Base class for engine errors."""


class ChunkingError(RagentError):
    """Raw content is empty or cannot be split into chunks."""


class ServiceUnavailable(RagentError):
    """An external Embedding or Language Model Service failed or timed out."""


class RetrievalUnavailable(ServiceUnavailable):
    """The query embedding could not be computed; search cannot proceed."""

    def __init__(self, message: str = "search temporarily unavailable"):
        super().__init__(message)


class DimensionMismatch(RagentError):
    """Two vectors that must share a dimension do not."""

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Vector dimension mismatch: expected {expected}, got {actual}")


class OrchestratorAborted(RagentError):
    """An agentic run hit its step or time budget, or an internal fault."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)

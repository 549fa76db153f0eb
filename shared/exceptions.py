"""Error taxonomy of the retrieval engine.

Clients raise these, the indexing pipeline and the query service catch them and
turn them into structured results. Nothing in this module should ever reach an
HTTP caller as a 5xx.
"""


class RetrievalError(Exception):
    """Base class for all retrieval engine errors.

    Attributes:
        message (str): Human-readable description.
        retryable (bool): Whether the indexing pipeline may retry the operation.
    """

    retryable: bool = False

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ClientRequestError(RetrievalError):
    """A backend HTTP request failed at transport level or with a non-2xx status."""

    retryable = True

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class NoContent(RetrievalError):
    """The document has nothing to index. Benign, never retried."""


class DocumentNotFound(RetrievalError):
    """The document store does not know the requested document."""


class ExtractionFailed(RetrievalError):
    """The content extractor could not produce text for a document."""

    retryable = True


class EmbeddingUnavailable(RetrievalError):
    """The embedding backend failed or returned unusable vectors."""

    retryable = True


class IndexWriteFailed(RetrievalError):
    """An upsert or delete against an index failed."""

    retryable = True


class IndexUnavailable(RetrievalError):
    """An index could not be read (not booted, unreachable, or erroring)."""

    retryable = True


class StoreUnavailable(RetrievalError):
    """The document store could not be reached."""

    retryable = True


class SearchTimeout(RetrievalError):
    """A sub-search did not answer within its time budget."""

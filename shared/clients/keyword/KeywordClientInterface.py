from abc import abstractmethod

from shared.clients.ClientInterface import ClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.document import ChunkRecord, IndexHit


class KeywordClientInterface(ClientInterface):
    """Contract of a keyword (full-text) index keyed by (doc_id, chunk_index).

    Mirrors the vector index operations, but ranks by a term-frequency score
    over tokenized text instead of vector similarity.
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        """
        Returns the type of the client. E.g. "keyword"
        """
        return "keyword"

    ##########################################
    ############ INDEX OPERATIONS ############
    ##########################################

    @abstractmethod
    async def upsert_chunks(self, doc_id: str, records: list[ChunkRecord]) -> int:
        """Replace all chunks of a document with the given records.

        Args:
            doc_id (str): The document whose chunks are replaced.
            records (list[ChunkRecord]): The new chunks. An empty list clears the document.

        Returns:
            int: The number of chunks written.

        Raises:
            IndexWriteFailed: If the index is not available for writing.
        """
        pass

    @abstractmethod
    async def search(self, query: str, k: int) -> list[IndexHit]:
        """Return at most k chunks ranked by keyword score, best first.

        Raises:
            IndexUnavailable: If the index cannot be queried.
        """
        pass

    @abstractmethod
    async def delete(self, doc_id: str) -> None:
        """Remove every chunk of a document. Deleting an unknown document is a no-op.

        Raises:
            IndexWriteFailed: If the index is not available for writing.
        """
        pass

    @abstractmethod
    async def check_missing(self, doc_ids: list[str]) -> list[str]:
        """Return the subset of doc_ids without any chunk in the index, in input order.

        Raises:
            IndexUnavailable: If the index cannot be queried.
        """
        pass

    @abstractmethod
    async def count(self) -> int:
        """Return the number of chunks in the index.

        Raises:
            IndexUnavailable: If the index cannot be queried.
        """
        pass

    @abstractmethod
    async def list_doc_ids(self) -> set[str]:
        """Return the ids of all documents with at least one chunk in the index.

        Raises:
            IndexUnavailable: If the index cannot be queried.
        """
        pass

    @abstractmethod
    async def hydrate(self, records: list[ChunkRecord]) -> int:
        """Replace the whole index content with the given records.

        Used on boot to rebuild an in-process index from a persistent one.

        Args:
            records (list[ChunkRecord]): All chunks, in the order they were originally indexed.

        Returns:
            int: The number of documents loaded.
        """
        pass

from abc import abstractmethod
from typing import Any
import itertools
import json
import math
import time
import uuid

import httpx
from pydantic import ValidationError

from shared.clients.HttpClientInterface import HttpClientInterface
from shared.clients.rag.models.Scroll import ScrollResult
from shared.clients.rag.models.VectorPoint import VectorPoint
from shared.exceptions import ClientRequestError, IndexUnavailable, IndexWriteFailed
from shared.helper.HelperConfig import HelperConfig
from shared.models.document import ChunkRecord, IndexHit

CHECK_MISSING_BATCH_SIZE = 100  # doc ids per "match any" scroll filter
SCROLL_PAGE_SIZE = 1000
UPSERT_BATCH_SIZE = 100         # max points per upsert call


def make_point_id(doc_id: str, chunk_index: int) -> str:
    """Build a deterministic UUID5 point ID for a chunk.

    The same (doc_id, chunk_index) always maps to the same point ID so that
    re-indexing overwrites rather than duplicates.

    Args:
        doc_id (str): Document id.
        chunk_index (int): Zero-based chunk index within the document.

    Returns:
        str: UUID string usable as a point ID.
    """
    return str(uuid.uuid5(uuid.NAMESPACE_OID, f"{doc_id}:{chunk_index}"))


class RAGClientInterface(HttpClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        # seeded from the wall clock so sequences keep increasing across restarts
        self._seq = itertools.count(time.time_ns())

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        """
        Returns the type of the client. E.g. "rag"
        """
        return "rag"

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_endpoint_scroll(self) -> str:
        """
        Returns the endpoint path for scroll requests.

        Returns:
            str: The endpoint path for scroll requests (e.g. "/scroll")
        """
        pass

    @abstractmethod
    def _get_endpoint_search(self) -> str:
        """
        Returns the endpoint path for nearest-neighbour search requests.

        Returns:
            str: The endpoint path (e.g. "/collections/my_col/points/search")
        """
        pass

    @abstractmethod
    def _get_endpoint_points(self) -> str:
        """
        Returns the endpoint path for points upsert requests.

        Returns:
            str: The endpoint path for points requests (e.g. "/points")
        """
        pass

    @abstractmethod
    def _get_endpoint_delete_points(self) -> str:
        """
        Returns the endpoint path for deleting points by filter.

        Returns:
            str: The endpoint path (e.g. "/collections/my_col/points/delete")
        """
        pass

    @abstractmethod
    def _get_endpoint_check_collection_existence(self) -> str:
        """
        Returns the endpoint path for collection existence check requests.

        Returns:
            str: The endpoint path for collection existence check requests (e.g. "/existence_check")
        """
        pass

    @abstractmethod
    def _get_endpoint_create_collection(self) -> str:
        """
        Returns the endpoint path for create collection requests.

        Returns:
            str: The endpoint path for create collection requests (e.g. "/create_collection")
        """
        pass

    @abstractmethod
    def _get_endpoint_payload_index(self) -> str:
        """
        Returns the endpoint path for creating a payload field index.

        Returns:
            str: The endpoint path (e.g. "/collections/my_col/index")
        """
        pass

    @abstractmethod
    def _get_endpoint_count(self) -> str:
        """Returns the endpoint path for counting points matching a filter.

        Returns:
            str: The endpoint path (e.g. "/collections/my_col/points/count")
        """
        pass

    ################ PAYLOAD BUILDER ##################
    @abstractmethod
    def get_doc_filter(self, doc_ids: list[str]) -> list[dict]:
        """
        Returns the backend-specific filter conditions matching all points of the given documents.

        Args:
            doc_ids (list[str]): One or more document ids.

        Returns:
            list[dict]: Filter conditions usable in scroll, count and delete payloads.
        """
        pass

    @abstractmethod
    def get_scroll_payload(self, filters: list[dict], with_payload: bool | list | dict, with_vector: bool | list, limit: int | None = None, offset: str | int | None = None) -> dict:
        """
        Returns the payload template for scroll requests to the RAG backend.

        Args:
            filters (list[dict]): The filters to apply to the scroll request.
            with_payload (bool | list | dict): Whether to include the payload in the scroll request, or which payload fields to include.
            with_vector (bool | list): Whether to include the vector in the scroll request, or which vector fields to include.
            limit (int | None): The maximum number of results to return.
            offset (str | int | None): Pagination cursor returned by the previous scroll page.
                                 None means start from the beginning.

        Returns:
            dict: The payload for the scroll request.
        """
        pass

    @abstractmethod
    def get_search_payload(self, vector: list[float], limit: int, score_threshold: float | None = None) -> dict:
        """
        Builds the backend-specific payload for a nearest-neighbour search.

        Args:
            vector (list[float]): The query vector.
            limit (int): Maximum number of hits.
            score_threshold (float | None): Minimum similarity; None disables the cut-off.

        Returns:
            dict: The payload for the search request.
        """
        pass

    @abstractmethod
    def get_count_payload(self, filters: list[dict]) -> dict:
        """Builds the backend-specific request payload for a point count.

        Args:
            filters (list[dict]): Filter conditions to apply before counting.

        Returns:
            dict: The payload for the count request.
        """
        pass

    @abstractmethod
    def get_delete_payload(self, filters: list[dict]) -> dict:
        """
        Builds the backend-specific request payload for a filter-based delete.

        Args:
            filters (list[dict]): The filter conditions that identify which points to delete.

        Returns:
            dict: The payload for the delete request.
        """
        pass

    ################ RESPONSE PARSER ##################
    @abstractmethod
    def extract_next_page_offset(self, raw_response: dict) -> str | int | None:
        """
        Extracts the pagination cursor for the next scroll page from a raw response.

        Return None when the backend signals that no further pages exist.

        Args:
            raw_response (dict): The raw JSON response from the scroll endpoint.

        Returns:
            str | int | None: The cursor for the next page, or None if this was the last page.
        """
        pass

    @abstractmethod
    def extract_scroll_content(self, raw_response: dict) -> dict:
        """
        Extracts the relevant content from a raw scroll response.

        Args:
            raw_response (dict): The raw JSON response from the scroll endpoint.

        Returns:
            dict: A dict with keys "result", "status", "time".
        """
        pass

    @abstractmethod
    def extract_search_hits(self, raw_response: dict) -> list[dict]:
        """
        Extracts the scored points from a raw search response.

        Args:
            raw_response (dict): The raw JSON response from the search endpoint.

        Returns:
            list[dict]: Points with at least "score" and "payload" keys.
        """
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    def _parse_json(self, resp: httpx.Response) -> dict:
        """Decode a JSON response body; a body that is not JSON counts as a failed request."""
        try:
            return resp.json()
        except ValueError as e:
            raise ClientRequestError(f"{self.get_engine_name()} answered {resp.request.url} with invalid JSON: {e}") from e

    async def do_existence_check(self) -> bool:
        """Check if a collection exists in the rag backend.

        Returns:
            bool: True if the collection exists, False otherwise.
        """
        resp = await self.do_request(method="GET", endpoint=self._get_endpoint_check_collection_existence(), raise_on_error=True)
        return bool(self._parse_json(resp).get("result", {}).get("exists"))

    async def do_create_collection(self, vector_size: int = 384, distance: str = "Cosine") -> httpx.Response:
        """Create a collection in the rag backend.

        Args:
            vector_size (int): The size of the vectors in the collection.
            distance (str): The distance metric for the vectors.

        Returns:
            httpx.Response: The response from the create collection request.
        """
        return await self.do_request(
            method="PUT",
            json={
                "vectors": {
                    "size": vector_size,
                    "distance": distance}},
            endpoint=self._get_endpoint_create_collection(),
            raise_on_error=True)

    async def do_create_payload_index(self, field_name: str, field_schema: str = "keyword") -> httpx.Response:
        """Create an index on a payload field so filters on it stay fast.

        Args:
            field_name (str): Payload field to index.
            field_schema (str): Backend field schema (e.g. "keyword").
        """
        return await self.do_request(
            method="PUT",
            json={"field_name": field_name, "field_schema": field_schema},
            endpoint=self._get_endpoint_payload_index(),
            params={"wait": "true"},
            raise_on_error=True)

    async def do_upsert_points(self, points: list[dict[str, Any]]) -> httpx.Response:
        """Upsert points into the rag backend collection.
        Inserts new points or replaces existing ones if a point with the same ID already exists.

        Args:
            points (list[dict[str, Any]]): The list of points to upsert.

        Returns:
            httpx.Response: The response from the upsert request.
        """
        return await self.do_request(
            method="PUT",
            content=json.dumps({"points": points}),
            endpoint=self._get_endpoint_points(),
            params={"wait": "true"},
            additional_headers={"Content-Type": "application/json"},
            raise_on_error=True)

    async def do_delete_points_by_filter(self, filters: list[dict]) -> None:
        """Deletes all points matching the given filter from the RAG backend.

        Args:
            filters (list[dict]): The filter conditions that identify which points to delete.
        """
        await self.do_request(
            method="POST",
            content=json.dumps(self.get_delete_payload(filters)),
            endpoint=self._get_endpoint_delete_points(),
            params={"wait": "true"},
            additional_headers={"Content-Type": "application/json"},
            raise_on_error=True,
        )

    async def do_search(self, vector: list[float], limit: int, score_threshold: float | None = None) -> list[dict]:
        """Run a nearest-neighbour search and return the raw scored points."""
        resp = await self.do_request(
            method="POST",
            content=json.dumps(self.get_search_payload(vector, limit, score_threshold)),
            endpoint=self._get_endpoint_search(),
            additional_headers={"Content-Type": "application/json"},
            raise_on_error=True,
        )
        return self.extract_search_hits(self._parse_json(resp))

    async def do_scroll(self, filters: list[dict], with_payload: bool | list | dict, with_vector: bool | list, limit: int | None = None, offset: str | int | None = None) -> ScrollResult:
        """Scroll a single page from a collection in the RAG backend.

        To retrieve all matching points across an arbitrary number of pages use
        do_scroll_all() instead.

        Args:
            filters (list[dict]): The filters to apply to the scroll request.
            with_payload (bool | list | dict): Whether to include the payload in the scroll request, or which payload fields to include.
            with_vector (bool | list): Whether to include the vector in the scroll request.
            limit (int | None): The maximum number of results to return per page.
            offset (str | int | None): Pagination cursor from the previous page's next_page_offset.
                                 None starts from the beginning of the collection.

        Returns:
            ScrollResult: The result from the scroll request, including next_page_offset
                          when further pages are available.
        """
        resp = await self.do_request(
            method="POST",
            content=json.dumps(self.get_scroll_payload(filters, with_payload, with_vector, limit, offset)),
            endpoint=self._get_endpoint_scroll(),
            additional_headers={"Content-Type": "application/json"},
            raise_on_error=True,
        )
        raw_response = self._parse_json(resp)
        scroll_content = self.extract_scroll_content(raw_response=raw_response)
        return ScrollResult(
            result=scroll_content.get("result", []),
            status=scroll_content.get("status", "ok"),
            time=scroll_content.get("time", 0),
            next_page_offset=self.extract_next_page_offset(raw_response),
        )

    async def do_count(self, filters: list[dict]) -> int:
        """Count the total number of points matching the given filters.

        Args:
            filters (list[dict]): Filter conditions for the count request.

        Returns:
            int: Total number of matching points.
        """
        resp = await self.do_request(
            method="POST",
            content=json.dumps(self.get_count_payload(filters)),
            endpoint=self._get_endpoint_count(),
            additional_headers={"Content-Type": "application/json"},
            raise_on_error=True,
        )
        return self._parse_json(resp).get("result", {}).get("count", 0)

    async def do_scroll_all(self, filters: list[dict], with_payload: bool | list | dict, with_vector: bool | list) -> ScrollResult:
        """Scroll through ALL points matching the filter, paginating automatically.

        Runs a loop driven by next_page_offset until the backend signals there
        are no more pages.

        Args:
            filters (list[dict]): The filters to apply to the scroll request.
            with_payload (bool | list | dict): Whether to include the payload, or which fields.
            with_vector (bool | list): Whether to include the vector in each result point.

        Returns:
            ScrollResult: All matching points collected across all pages.
                          next_page_offset is always None on the returned result.
        """
        all_points: list[dict] = []
        offset: str | int | None = None
        page = 1
        total_points = await self.do_count(filters)
        total_pages = math.ceil(total_points / SCROLL_PAGE_SIZE) if total_points > 0 else 1
        while True:
            page_result = await self.do_scroll(
                filters=filters,
                with_payload=with_payload,
                with_vector=with_vector,
                limit=SCROLL_PAGE_SIZE,
                offset=offset,
            )
            all_points.extend(page_result.result)
            self.logging.debug(
                "Fetched RAG points page %d of %d from %s, total points so far: %d of %d",
                page, total_pages, self.get_engine_name(), len(all_points), total_points,
            )
            offset = page_result.next_page_offset
            if offset is None:
                break
            page += 1
        return ScrollResult(result=all_points, status="ok", time=0)

    ##########################################
    ############ INDEX OPERATIONS ############
    ##########################################

    async def ensure_collection(self, vector_size: int, distance: str = "Cosine") -> bool:
        """Create the collection and its doc_id payload index if the collection does not exist.

        Args:
            vector_size (int): Dimension of the embedding model.
            distance (str): Distance metric of the embedding model.

        Returns:
            bool: True if the collection was created, False if it already existed.

        Raises:
            IndexUnavailable: If the backend cannot be reached.
        """
        try:
            if await self.do_existence_check():
                return False
            self.logging.info("Collection does not exist in %s, creating it (size=%d, distance=%s)...", self.get_engine_name(), vector_size, distance)
            await self.do_create_collection(vector_size=vector_size, distance=distance)
            await self.do_create_payload_index("doc_id")
            return True
        except ClientRequestError as e:
            raise IndexUnavailable(f"Could not prepare collection in {self.get_engine_name()}: {e}") from e

    async def upsert_chunks(self, doc_id: str, records: list[ChunkRecord]) -> int:
        """Replace all chunks of a document with the given records.

        Stale chunks are deleted first so a re-index with fewer chunks leaves
        nothing behind. An empty record list simply clears the document.

        Args:
            doc_id (str): The document whose chunks are replaced.
            records (list[ChunkRecord]): The new chunks, each carrying its vector.

        Returns:
            int: The number of chunks written.

        Raises:
            IndexWriteFailed: If the delete or any upsert request fails, or a record has no vector.
        """
        points: list[dict] = []
        for record in records:
            if record.vector is None:
                raise IndexWriteFailed(f"Chunk {record.chunk_index} of document '{doc_id}' has no vector.")
            payload = VectorPoint.from_record(record, indexed_seq=next(self._seq))
            points.append({
                "id": make_point_id(doc_id, record.chunk_index),
                "vector": record.vector,
                "payload": payload.model_dump(),
            })

        try:
            await self.do_delete_points_by_filter(self.get_doc_filter([doc_id]))
            # upsert in batches to avoid oversized requests
            for batch_start in range(0, len(points), UPSERT_BATCH_SIZE):
                await self.do_upsert_points(points[batch_start: batch_start + UPSERT_BATCH_SIZE])
        except ClientRequestError as e:
            raise IndexWriteFailed(f"Vector upsert for document '{doc_id}' failed: {e}") from e
        return len(points)

    async def delete(self, doc_id: str) -> None:
        """Remove every chunk of a document. Deleting an unknown document is a no-op.

        Raises:
            IndexWriteFailed: If the backend rejects the delete.
        """
        try:
            await self.do_delete_points_by_filter(self.get_doc_filter([doc_id]))
        except ClientRequestError as e:
            raise IndexWriteFailed(f"Vector delete for document '{doc_id}' failed: {e}") from e

    async def search(self, vector: list[float], k: int, score_threshold: float | None = None) -> list[IndexHit]:
        """Return the top-k chunks by cosine similarity.

        Hits with equal scores keep the order in which they were indexed.

        Raises:
            IndexUnavailable: If the backend cannot be queried.
        """
        if k <= 0:
            return []
        try:
            raw_hits = await self.do_search(vector, k, score_threshold)
        except ClientRequestError as e:
            raise IndexUnavailable(f"Vector search failed: {e}") from e

        scored: list[tuple[float, int, IndexHit]] = []
        for raw in raw_hits:
            try:
                point = VectorPoint(**(raw.get("payload") or {}))
            except ValidationError:
                self.logging.warning("Skipping vector hit with malformed payload: %s", raw.get("id"))
                continue
            score = float(raw.get("score", 0.0))
            scored.append((score, point.indexed_seq, point.to_hit(score)))
        scored.sort(key=lambda item: (-item[0], item[1]))
        return [hit for _, _, hit in scored[:k]]

    async def check_missing(self, doc_ids: list[str]) -> list[str]:
        """Return the subset of doc_ids that have no chunk in the index, in input order.

        Raises:
            IndexUnavailable: If the backend cannot be queried.
        """
        unique_ids = list(dict.fromkeys(doc_ids))
        present: set[str] = set()
        try:
            for start in range(0, len(unique_ids), CHECK_MISSING_BATCH_SIZE):
                batch = unique_ids[start:start + CHECK_MISSING_BATCH_SIZE]
                result = await self.do_scroll_all(filters=self.get_doc_filter(batch), with_payload=["doc_id"], with_vector=False)
                present.update(str((p.get("payload") or {}).get("doc_id")) for p in result.result)
        except ClientRequestError as e:
            raise IndexUnavailable(f"Vector presence check failed: {e}") from e
        return [doc_id for doc_id in unique_ids if doc_id not in present]

    async def count(self) -> int:
        """Return the number of chunks in the index.

        Raises:
            IndexUnavailable: If the backend cannot be queried.
        """
        try:
            return await self.do_count([])
        except ClientRequestError as e:
            raise IndexUnavailable(f"Vector count failed: {e}") from e

    async def list_doc_ids(self) -> set[str]:
        """Return the ids of all documents with at least one chunk in the index.

        Raises:
            IndexUnavailable: If the backend cannot be queried.
        """
        try:
            result = await self.do_scroll_all(filters=[], with_payload=["doc_id"], with_vector=False)
        except ClientRequestError as e:
            raise IndexUnavailable(f"Vector id listing failed: {e}") from e
        return {str((p.get("payload") or {}).get("doc_id")) for p in result.result if (p.get("payload") or {}).get("doc_id") is not None}

    async def scroll_records(self) -> list[ChunkRecord]:
        """Return every chunk in the index (without vectors), in the order they were indexed.

        Raises:
            IndexUnavailable: If the backend cannot be queried.
        """
        try:
            result = await self.do_scroll_all(filters=[], with_payload=True, with_vector=False)
        except ClientRequestError as e:
            raise IndexUnavailable(f"Vector scroll failed: {e}") from e

        points: list[VectorPoint] = []
        for raw in result.result:
            try:
                points.append(VectorPoint(**(raw.get("payload") or {})))
            except ValidationError:
                self.logging.warning("Skipping point with malformed payload: %s", raw.get("id"))
        points.sort(key=lambda p: (p.indexed_seq, p.doc_id, p.chunk_index))
        return [p.to_record() for p in points]

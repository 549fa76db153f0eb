from abc import abstractmethod

import httpx

from shared.clients.HttpClientInterface import HttpClientInterface
from shared.clients.store.models.StoreDocument import StoreDocument
from shared.exceptions import ClientRequestError, StoreUnavailable
from shared.helper.HelperConfig import HelperConfig


class StoreClientInterface(HttpClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self.page_size = int(helper_config.get_number_val(f"{self.get_client_type().upper()}_PAGE_SIZE", default=1000))

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        """
        Returns the type of the client. E.g. "store"
        """
        return "store"

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_endpoint_documents(self) -> str:
        """
        Returns the endpoint path for document listing and lookup requests.

        Returns:
            str: The endpoint path (e.g. "/rest/v1/resources")
        """
        pass

    ################ PARAMS BUILDER ##################
    @abstractmethod
    def get_list_ids_params(self, offset: int, limit: int) -> dict:
        """
        Returns the query parameters for one page of the id listing.

        Only documents that are not soft-deleted must be listed.

        Args:
            offset (int): Number of rows to skip.
            limit (int): Page size.

        Returns:
            dict: Query parameters for the listing request.
        """
        pass

    @abstractmethod
    def get_document_params(self, doc_id: str) -> dict:
        """
        Returns the query parameters for fetching a single non-deleted document.

        Args:
            doc_id (str): The document id.

        Returns:
            dict: Query parameters for the lookup request.
        """
        pass

    def get_list_ids_headers(self) -> dict:
        """
        Returns extra headers for the id listing, e.g. to ask the backend for an exact row count.
        """
        return {}

    ################ RESPONSE PARSER ##################
    def extract_total(self, response: httpx.Response) -> int | None:
        """
        Returns the total number of listable rows reported by the backend, if it reports one.

        Args:
            response (httpx.Response): The response of the first listing page.

        Returns:
            int | None: The row count, or None if the backend does not report it.
        """
        return None

    @abstractmethod
    def extract_ids(self, raw_response: list | dict) -> list[str]:
        """
        Extracts document ids from one page of the id listing.

        Args:
            raw_response (list | dict): The parsed JSON response.

        Returns:
            list[str]: Document ids in backend order.
        """
        pass

    @abstractmethod
    def extract_document(self, raw_response: list | dict) -> StoreDocument | None:
        """
        Builds a StoreDocument from a lookup response.

        Args:
            raw_response (list | dict): The parsed JSON response.

        Returns:
            StoreDocument | None: The document, or None if the response contains no row.
        """
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def list_all_ids(self) -> list[str]:
        """Fetch the ids of all documents that are not soft-deleted, paginating automatically.

        Paging stops at the first empty page, so a backend that caps rows per
        response below the requested page size still yields the full listing.
        If the backend reports a total row count, a listing that falls short of
        it is rejected.

        Returns:
            list[str]: All document ids, without duplicates, in backend order.

        Raises:
            StoreUnavailable: If the store cannot be reached or the listing is incomplete.
        """
        ids: list[str] = []
        offset = 0
        total: int | None = None
        try:
            while True:
                response = await self.do_request(
                    method="GET",
                    endpoint=self._get_endpoint_documents(),
                    params=self.get_list_ids_params(offset=offset, limit=self.page_size),
                    additional_headers=self.get_list_ids_headers() if offset == 0 else None,
                    raise_on_error=True,
                )
                if offset == 0:
                    total = self.extract_total(response)
                page_ids = self.extract_ids(self._parse_json(response))
                if not page_ids:
                    break
                ids.extend(page_ids)
                offset += len(page_ids)
        except ClientRequestError as e:
            raise StoreUnavailable(f"Listing document ids from {self.get_engine_name()} failed: {e}") from e

        if total is not None and len(ids) < total:
            raise StoreUnavailable(f"Listing document ids from {self.get_engine_name()} is incomplete: got {len(ids)} of {total}.")

        self.logging.debug("Fetched %d document id(s) from %s.", len(ids), self.get_engine_name())
        return list(dict.fromkeys(ids))

    async def get_document(self, doc_id: str) -> StoreDocument | None:
        """Fetch a single document.

        Args:
            doc_id (str): The document id.

        Returns:
            StoreDocument | None: The document, or None if it does not exist or is soft-deleted.

        Raises:
            StoreUnavailable: If the store cannot be reached or answers with something that is not JSON.
        """
        try:
            response = await self.do_request(
                method="GET",
                endpoint=self._get_endpoint_documents(),
                params=self.get_document_params(doc_id),
                raise_on_error=True,
            )
        except ClientRequestError as e:
            if e.status_code == 404:
                return None
            raise StoreUnavailable(f"Fetching document '{doc_id}' from {self.get_engine_name()} failed: {e}") from e
        return self.extract_document(self._parse_json(response))

    def _parse_json(self, response: httpx.Response) -> list | dict:
        try:
            return response.json()
        except ValueError as e:
            raise StoreUnavailable(f"{self.get_engine_name()} answered {response.request.url} with invalid JSON: {e}") from e

from abc import abstractmethod

from typing import Tuple

from shared.clients.HttpClientInterface import HttpClientInterface
from shared.exceptions import ClientRequestError, EmbeddingUnavailable
from shared.helper.HelperConfig import HelperConfig


class EmbedClientInterface(HttpClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

        # model and embedding config
        self.embed_distance = helper_config.get_string_val(f"{self.get_client_type().upper()}_DISTANCE", default="Cosine")
        self.embed_model = helper_config.get_string_val(f"{self.get_client_type().upper()}_MODEL", default=None)
        self.embed_model_max_chars = helper_config.get_number_val(f"{self.get_client_type().upper()}_MODEL_MAX_CHARS", default=0)
        self.embed_batch_size = helper_config.get_number_val(f"{self.get_client_type().upper()}_BATCH_SIZE", default=32)
        self._vector_size: int | None = None

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        """
        Returns the type of the client. E.g. "rag"
        """
        return "embed"

    def get_vector_size(self) -> int | None:
        """Returns the vector size resolved by the last do_fetch_embedding_vector_size() call, if any."""
        return self._vector_size

    ################ ENDPOINTS ##################
    @abstractmethod
    def get_endpoint_embedding(self) -> str:
        """
        Returns the endpoint path for embedding requests.

        Returns:
            str: The endpoint path for embedding requests (e.g. "/api/embed")
        """
        pass

    ################ PAYLOAD BUILDER ##################
    @abstractmethod
    def get_embed_payload(self, texts: list[str]) -> dict:
        """Build the backend-specific request body for an embedding request.

        Args:
            texts (list[str]): The texts to embed.

        Returns:
            dict: JSON-serialisable request body (e.g. {"model": "...", "input": [...]}).
        """
        pass

    ##########################################
    ################# OTHER ##################
    ##########################################

    @abstractmethod
    def extract_embeddings_from_response(self, response_data: dict) -> list[list[float]]:
        """Extract embedding vectors from a raw embedding API response.

        Response format differs by backend:
        - Ollama /api/embed: {"embeddings": [[...], [...]]}  (already ordered)
        - OpenAI-compatible: {"data": [{"embedding": [...], "index": 0}]} (needs sorting)

        Args:
            response_data (dict): The parsed JSON response body.

        Returns:
            list[list[float]]: Embedding vectors in the same order as the input texts.

        Raises:
            ValueError: If the response format is invalid or embeddings are empty.
        """
        pass

    @abstractmethod
    async def _resolve_vector_size(self) -> int:
        """
        Determine the output dimension of the configured model from the backend.

        Returns:
            int: The dimension of the embedding vectors produced by the model.

        Raises:
            ClientRequestError: If the backend cannot be reached.
            ValueError: If the dimension cannot be determined.
        """
        pass

    def _truncate(self, text: str) -> str:
        max_chars = int(self.embed_model_max_chars)
        return text[:max_chars] if max_chars > 0 else text

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_fetch_embedding_vector_size(self) -> Tuple[int, str]:
        """
        Fetch the output vector dimension and distance metric of the configured embedding model.

        Returns:
            Tuple[int, str]: The number of dimensions produced by the embedding model and the distance metric.

        Raises:
            EmbeddingUnavailable: If the backend cannot be reached or the dimension cannot be
                determined from the response.
        """
        try:
            self._vector_size = await self._resolve_vector_size()
        except (ClientRequestError, ValueError) as e:
            raise EmbeddingUnavailable(f"Could not determine vector size of model '{self.embed_model}': {e}") from e
        return self._vector_size, self.embed_distance

    async def do_embed(self, texts: list[str] | str) -> list[list[float]]:
        """Embed one or more texts and return the vectors in input order.

        Texts are truncated to the model's maximum input length and sent in
        batches of EMBED_BATCH_SIZE. The call is all-or-nothing: if any batch
        fails, no vectors are returned.

        Args:
            texts (list[str] | str): One or more texts to embed.

        Returns:
            list[list[float]]: Embedding vectors in the same order as the inputs.

        Raises:
            EmbeddingUnavailable: If any request fails or returns unusable vectors.
        """
        texts = [texts] if isinstance(texts, str) else texts
        if not texts:
            return []

        batch_size = max(1, int(self.embed_batch_size))
        vectors: list[list[float]] = []
        for start in range(0, len(texts), batch_size):
            batch = [self._truncate(t) for t in texts[start:start + batch_size]]
            body = self.get_embed_payload(batch)
            try:
                response = await self.do_request(method="POST", endpoint=self.get_endpoint_embedding(), json=body, raise_on_error=True)
                batch_vectors = self.extract_embeddings_from_response(response.json())
            except (ClientRequestError, ValueError) as e:
                self.logging.error("Embedding request for %d text(s) failed: %s", len(batch), e)
                raise EmbeddingUnavailable(f"Embedding request failed: {e}") from e

            if len(batch_vectors) != len(batch):
                raise EmbeddingUnavailable(f"Embedding backend returned {len(batch_vectors)} vectors for {len(batch)} texts.")
            if self._vector_size is not None and any(len(v) != self._vector_size for v in batch_vectors):
                raise EmbeddingUnavailable(f"Embedding backend returned vectors with unexpected dimension (expected {self._vector_size}).")
            vectors.extend(batch_vectors)

        return vectors

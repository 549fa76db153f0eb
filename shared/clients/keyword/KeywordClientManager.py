from shared.helper.HelperConfig import HelperConfig
from shared.clients.keyword.KeywordClientInterface import KeywordClientInterface

class KeywordClientManager:
    """
    Manager class to handle the keyword index client based on configuration.
    """

    def __init__(self, helper_config: HelperConfig):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        self.client = self._initialize_client()

    def _get_engine_from_env(self) -> str:
        """
        Reads the keyword engine from ENV configuration. Defaults to the in-process BM25 index.

        Returns:
            str: The name of the keyword engine, e.g. "Bm25".
        """
        engine = self.helper_config.get_string_val("KEYWORD_ENGINE", default="bm25")
        return engine.strip().lower().capitalize()

    def _initialize_client(self) -> KeywordClientInterface:
        """
        Initializes the keyword client based on the engine specified in the configuration.

        Returns:
            KeywordClientInterface: An instance of the keyword client.

        Raises:
            ValueError: If the specified engine is not supported.
        """
        engine = self._get_engine_from_env()
        className = f"KeywordClient{engine}"
        # try to import the class from shared.clients.keyword.{engine}
        try:
            module = __import__(
                f"shared.clients.keyword.{engine.lower()}.{className}",
                fromlist=[className],
            )
            client_class = getattr(module, className)
        except (ImportError, AttributeError) as e:
            raise ValueError(f"Unsupported keyword engine specified: '{engine}'. Error: {e}")

        client = client_class(helper_config=self.helper_config)
        self.logging.debug(f"Instantiated keyword client for engine: {engine}")
        return client

    def get_client(self) -> KeywordClientInterface:
        """
        Returns the instantiated keyword client.

        Returns:
            KeywordClientInterface: The keyword client instance.
        """
        return self.client

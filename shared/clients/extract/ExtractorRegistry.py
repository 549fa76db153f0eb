from shared.clients.extract.ExtractorInterface import ExtractorInterface
from shared.exceptions import NoContent
from shared.helper.HelperConfig import HelperConfig


class ExtractorRegistry:
    """
    Registry of content extractors keyed by content type.
    """

    def __init__(self, helper_config: HelperConfig, extractors: list[ExtractorInterface] | None = None):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        self._extractors: dict[str, ExtractorInterface] = {}
        for extractor in extractors if extractors is not None else self._initialize_extractors():
            self.register(extractor)

    def _initialize_extractors(self) -> list[ExtractorInterface]:
        """
        Instantiates the extractors listed in EXTRACT_ENGINES (default: [text]).

        Returns:
            list[ExtractorInterface]: The extractor instances.

        Raises:
            ValueError: If an engine is not supported.
        """
        extractors: list[ExtractorInterface] = []
        for engine in self.helper_config.get_list_val("EXTRACT_ENGINES", default=["text"]):
            engine = engine.strip().lower().capitalize()
            className = f"Extractor{engine}"
            try:
                module = __import__(
                    f"shared.clients.extract.{engine.lower()}.{className}",
                    fromlist=[className],
                )
                extractor_class = getattr(module, className)
            except (ImportError, AttributeError) as e:
                raise ValueError(f"Unsupported extractor engine specified: '{engine}'. Error: {e}")
            extractors.append(extractor_class(helper_config=self.helper_config))
        return extractors

    def register(self, extractor: ExtractorInterface) -> None:
        for content_type in extractor.get_content_types():
            self._extractors[content_type.lower()] = extractor

    def get_content_types(self) -> list[str]:
        return sorted(self._extractors.keys())

    async def extract(self, content_type: str, source_ref: str) -> str:
        """Extract text using the extractor registered for the content type.

        Args:
            content_type (str): Declared content type of the document.
            source_ref (str): Reference to the source.

        Returns:
            str: The extracted text.

        Raises:
            NoContent: If no extractor handles the content type, or the source is gone.
            ExtractionFailed: If the extractor fails.
        """
        extractor = self._extractors.get((content_type or "").lower())
        if extractor is None:
            raise NoContent(f"No extractor registered for content type '{content_type}'.")
        return await extractor.extract(source_ref)

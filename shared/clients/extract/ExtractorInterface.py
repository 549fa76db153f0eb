from abc import ABC, abstractmethod

from shared.helper.HelperConfig import HelperConfig


class ExtractorInterface(ABC):
    """Turns a document's source reference into plain text for one family of content types."""

    def __init__(self, helper_config: HelperConfig):
        self.logging = helper_config.get_logger()
        self._helper_config = helper_config

    @abstractmethod
    def get_content_types(self) -> list[str]:
        """
        Returns the content types handled by this extractor, in lowercase. E.g. ["markdown", "text"]
        """
        pass

    @abstractmethod
    async def extract(self, source_ref: str) -> str:
        """Extract plain text from the referenced source.

        Args:
            source_ref (str): Reference to the source, e.g. a local file path.

        Returns:
            str: The extracted text. May be empty.

        Raises:
            NoContent: If the source does not exist anymore.
            ExtractionFailed: If the source exists but cannot be read.
        """
        pass

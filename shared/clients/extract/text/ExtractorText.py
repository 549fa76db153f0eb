import asyncio
from pathlib import Path

from shared.clients.extract.ExtractorInterface import ExtractorInterface
from shared.exceptions import ExtractionFailed, NoContent
from shared.helper.HelperConfig import HelperConfig


class ExtractorText(ExtractorInterface):
    """Reads plain text and markdown files from the local file system."""

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

    def get_content_types(self) -> list[str]:
        return ["text", "txt", "plain", "markdown", "md", "note"]

    async def extract(self, source_ref: str) -> str:
        path = Path(source_ref).expanduser()
        if not path.is_file():
            raise NoContent(f"Source file '{source_ref}' does not exist.")
        try:
            return await asyncio.to_thread(path.read_text, encoding="utf-8", errors="replace")
        except OSError as e:
            raise ExtractionFailed(f"Could not read '{source_ref}': {e}") from e

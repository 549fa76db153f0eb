"""Deterministic text chunking for the indexing pipeline.

Text is split into overlapping windows of at most chunk_size characters. Each
window ends at the strongest separator found past min_chunk_size (paragraph,
line, sentence, clause, then word boundary) and only falls back to a hard cut
when the window holds no separator at all. Identical input always yields
identical chunks.
"""

from pydantic import BaseModel

from shared.helper.HelperConfig import HelperConfig

SEPARATORS = [
    "\n\n\n",  # paragraphs
    "\n\n",
    "\n",
    ". ",      # sentence end
    "。",      # chinese full stop
    "! ",
    "? ",
    ";",
    ",",
    " ",
]


class TextChunk(BaseModel):
    """A chunk of normalised text.

    start and end are offsets of the window in the normalised text; text is the
    stripped window content.
    """

    index: int
    text: str
    start: int
    end: int


class TextChunker:
    def __init__(self, chunk_size: int = 800, chunk_overlap: int = 100, min_chunk_size: int = 100):
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}.")
        if chunk_overlap < 0 or chunk_overlap >= chunk_size:
            raise ValueError(f"chunk_overlap must be in [0, chunk_size), got {chunk_overlap} for chunk_size {chunk_size}.")
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        # a break point must lie past the overlap, otherwise the next window would not advance
        self.min_chunk_size = min(max(min_chunk_size, chunk_overlap + 1), chunk_size)

    @classmethod
    def from_config(cls, helper_config: HelperConfig) -> "TextChunker":
        return cls(
            chunk_size=int(helper_config.get_number_val("INDEX_CHUNK_SIZE", default=800)),
            chunk_overlap=int(helper_config.get_number_val("INDEX_CHUNK_OVERLAP", default=100)),
            min_chunk_size=int(helper_config.get_number_val("INDEX_MIN_CHUNK_SIZE", default=100)),
        )

    @staticmethod
    def normalize(text: str) -> str:
        return text.replace("\r\n", "\n").replace("\r", "\n").strip()

    def split(self, text: str | None) -> list[TextChunk]:
        """Split text into ordered, overlapping chunks.

        Args:
            text (str | None): The text to split.

        Returns:
            list[TextChunk]: The chunks, indexed from 0. Empty for blank input.
        """
        if not text:
            return []
        clean = self.normalize(text)
        if not clean:
            return []
        if len(clean) <= self.chunk_size:
            return [TextChunk(index=0, text=clean, start=0, end=len(clean))]

        chunks: list[TextChunk] = []
        length = len(clean)
        start = 0
        while start < length:
            end = min(start + self.chunk_size, length)
            if end < length:
                end = self._find_break(clean, start, end)

            piece = clean[start:end].strip()
            if piece:
                chunks.append(TextChunk(index=len(chunks), text=piece, start=start, end=end))
            if end >= length:
                break
            start = self._next_start(clean, end)
        return chunks

    def _find_break(self, text: str, start: int, end: int) -> int:
        window = text[start:end]
        for separator in SEPARATORS:
            pos = window.rfind(separator)
            if pos >= 0 and pos + len(separator) >= self.min_chunk_size:
                return start + pos + len(separator)
        return end

    def _next_start(self, text: str, end: int) -> int:
        """Start of the next window: end minus the overlap, moved forward to the next word start."""
        pos = end - self.chunk_overlap
        if pos > 0 and not text[pos - 1].isspace() and not text[pos].isspace():
            boundary = pos
            while boundary < end and not text[boundary].isspace():
                boundary += 1
            # a window without whitespace (e.g. CJK text) keeps the raw offset
            if boundary < end:
                pos = boundary
        while pos < end and text[pos].isspace():
            pos += 1
        return pos

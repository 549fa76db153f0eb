"""Tokenizer shared by keyword indexing and keyword queries.

Text is lowercased and split on non-alphanumeric boundaries. Every CJK
ideograph becomes a token of its own, so unsegmented Chinese text stays
searchable without a dictionary-based segmenter.
"""

import re

# CJK Unified Ideographs, Extension A and Compatibility Ideographs
_CJK_RANGES = ((0x3400, 0x4DBF), (0x4E00, 0x9FFF), (0xF900, 0xFAFF))
_CJK = "".join(f"{chr(lo)}-{chr(hi)}" for lo, hi in _CJK_RANGES)

# one CJK ideograph, or a run of word characters that are neither "_" nor CJK
_TOKEN_PATTERN = re.compile(f"[{_CJK}]|[^\\W_{_CJK}]+")


def tokenize(text: str | None) -> list[str]:
    """Split text into lowercase tokens.

    Args:
        text (str | None): The text to tokenize.

    Returns:
        list[str]: Tokens in order of appearance; empty for empty input.
    """
    if not text:
        return []
    return _TOKEN_PATTERN.findall(text.lower())

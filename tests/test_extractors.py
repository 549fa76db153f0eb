"""Tests for content extraction."""

import pytest

from shared.clients.extract.ExtractorRegistry import ExtractorRegistry
from shared.clients.extract.text.ExtractorText import ExtractorText
from shared.exceptions import ExtractionFailed, NoContent


@pytest.mark.asyncio
async def test_text_extractor_reads_file(helper_config, tmp_path):
    source = tmp_path / "note.txt"
    source.write_text("plain text body", encoding="utf-8")
    registry = ExtractorRegistry(helper_config)

    assert await registry.extract("TXT", str(source)) == "plain text body"
    assert "markdown" in registry.get_content_types()


@pytest.mark.asyncio
async def test_missing_file_is_no_content(helper_config, tmp_path):
    extractor = ExtractorText(helper_config)
    with pytest.raises(NoContent):
        await extractor.extract(str(tmp_path / "missing.txt"))


@pytest.mark.asyncio
async def test_unreadable_file_is_extraction_failure(helper_config, tmp_path, monkeypatch):
    source = tmp_path / "note.txt"
    source.write_text("body", encoding="utf-8")

    def broken_read_text(self, *args, **kwargs):
        raise PermissionError("denied")

    monkeypatch.setattr(type(source), "read_text", broken_read_text)
    with pytest.raises(ExtractionFailed):
        await ExtractorText(helper_config).extract(str(source))


@pytest.mark.asyncio
async def test_unknown_content_type_is_no_content(helper_config):
    with pytest.raises(NoContent):
        await ExtractorRegistry(helper_config).extract("pdf", "/tmp/file.pdf")


def test_unknown_engine_is_rejected(helper_config, env):
    env.setenv("EXTRACT_ENGINES", "[text,ocr]")
    with pytest.raises(ValueError):
        ExtractorRegistry(helper_config)

from pydantic import BaseModel

from shared.models.indexing import ScanReport, ScanState
from shared.models.search import SearchResponse


class SuggestResponse(BaseModel):
    """superseded is True when a newer request of the same client replaced this one."""

    superseded: bool
    response: SearchResponse | None = None


class CheckMissingResponse(BaseModel):
    missing: list[str]
    total: int
    unavailable: bool = False


class ScanStatusResponse(BaseModel):
    state: ScanState
    last_report: ScanReport | None = None


class AcceptedResponse(BaseModel):
    status: str
    detail: str | None = None

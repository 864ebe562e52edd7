import json
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel


class SearchRequest(BaseModel):
    query: str = ""
    stream: bool = True


class RankedResult(BaseModel):
    """One alumni match as returned to the client. Contact/professional fields come from the profile store only."""

    person_id: str
    first_name: str = ""
    last_name: str = ""
    email: Optional[str] = None
    linkedin_url: Optional[str] = None
    headline: Optional[str] = None
    class_year: str = ""
    section: str = ""
    location: str = ""
    current_company: str = ""
    current_title: str = ""
    current_industry: str = ""
    education_summary: str = ""
    experience_summary: str = ""
    why_relevant: str = ""


def _drop_unset_envelope_keys(data: dict[str, Any]) -> dict[str, Any]:
    """Omit optional top-level envelope keys that are None; nested result fields stay as null."""
    return {k: v for k, v in data.items() if v is not None}


class SearchResponse(BaseModel):
    results: list[RankedResult] = []
    debug: Optional[dict[str, Any]] = None
    fallback: Optional[bool] = None
    error: Optional[str] = None

    def to_payload(self) -> dict[str, Any]:
        return _drop_unset_envelope_keys(self.model_dump(mode="json"))


# ---------------------------------------------------------------------------
# Streaming events (text/event-stream, one `data: <json>` frame each)
# ---------------------------------------------------------------------------

class StartEvent(BaseModel):
    type: Literal["start"] = "start"
    total_candidates: int
    timestamp_ms: int


class ResultEvent(BaseModel):
    type: Literal["result"] = "result"
    index: int  # 1-based, in model completion order
    result: RankedResult
    timestamp_ms: int


class CompleteEvent(BaseModel):
    type: Literal["complete"] = "complete"
    total_results: int
    total_time_ms: int
    fallback: Optional[bool] = None


class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    message: str
    timestamp_ms: int


SearchEvent = Union[StartEvent, ResultEvent, CompleteEvent, ErrorEvent]


def to_sse_frame(event: SearchEvent) -> str:
    """Format one event as an SSE data frame."""
    payload = _drop_unset_envelope_keys(event.model_dump(mode="json"))
    return f"data: {json.dumps(payload)}\n\n"

import logging
from contextlib import aclosing
from typing import Annotated, AsyncIterator

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, StreamingResponse

from alumni_search.dependencies import get_search_orchestrator
from alumni_search.schemas import SearchRequest, to_sse_frame
from alumni_search.services.search import SearchOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(tags=["search"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


async def _event_stream(request: Request, orchestrator: SearchOrchestrator, query: str) -> AsyncIterator[str]:
    """SSE frames for one search. Stops reading upstream once the client goes away."""
    async with aclosing(orchestrator.stream(query)) as events:
        async for event in events:
            yield to_sse_frame(event)
            if await request.is_disconnected():
                logger.info("search stream: client disconnected, closing upstream")
                break


@router.post("/search")
async def search(
    request: Request,
    body: SearchRequest,
    orchestrator: Annotated[SearchOrchestrator, Depends(get_search_orchestrator)],
):
    """Semantic alumni search. Streams SSE events unless `stream` is false."""
    if body.stream:
        return StreamingResponse(
            _event_stream(request, orchestrator, body.query),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )
    response = await orchestrator.search(body.query)
    return JSONResponse(response.to_payload())

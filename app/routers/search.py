from fastapi import APIRouter, Depends, Request
from app.core.rate_limit import SEARCH_LIMIT, limiter
from app.errors import SearchError
from app.errors.http import to_http_exception
from app.schemas import ErrorResponse, SearchRequest, SearchResponse
from app.services.coordinator import SearchCoordinator, get_search_coordinator

router = APIRouter()

ERROR_RESPONSES = {
    code: {"model": ErrorResponse} for code in (422, 500, 502, 503, 504)
}


@router.post("/recipes/search", response_model=SearchResponse, responses=ERROR_RESPONSES)
@limiter.limit(SEARCH_LIMIT)
async def search_recipes(
    request: Request,
    body: SearchRequest,
    coordinator: SearchCoordinator = Depends(get_search_coordinator),
):
    """
    Free-text recipe search.

    The query is classified into a strategy (semantic, deterministic or
    hybrid); when the local embedding backend is down the request is served
    by the fallback agent and `fell_back` is true.
    """
    print(f"\n[SearchRouter] Search: '{body.query[:80]}'")
    try:
        result = await coordinator.run_search(body.query, user_id=body.user_id)
    except SearchError as e:
        print(f"[SearchRouter] ❌ {e.kind}: {type(e).__name__}")
        raise to_http_exception(e)

    return SearchResponse(
        recipes=result.recipes,
        no_results=result.no_results,
        strategy_used=result.strategy_used,
        fell_back=result.fell_back,
        message=result.message,
    )

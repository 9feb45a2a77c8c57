from fastapi import APIRouter, Depends, Request, status
from app.core.rate_limit import CHAT_LIMIT, limiter
from app.errors import SearchError
from app.errors.http import to_http_exception
from app.schemas import (
    ChatHistoryResponse,
    ChatMessage,
    ChatRequest,
    ChatResponse,
    ErrorResponse,
)
from app.services.conversation_store import InMemoryConversationStore, get_conversation_store
from app.services.coordinator import SearchCoordinator, get_search_coordinator
from app.services.llm import ChatProvider
from app.services.response_composer import ResponseComposer

router = APIRouter()

ERROR_RESPONSES = {
    code: {"model": ErrorResponse} for code in (422, 500, 502, 503, 504)
}


def get_response_composer(
    store: InMemoryConversationStore = Depends(get_conversation_store),
) -> ResponseComposer:
    return ResponseComposer(chat_provider=ChatProvider(), conversation_store=store)


@router.post("/chat/{user_id}", response_model=ChatResponse, responses=ERROR_RESPONSES)
@limiter.limit(CHAT_LIMIT)
async def chat_endpoint(
    request: Request,
    user_id: str,
    body: ChatRequest,
    coordinator: SearchCoordinator = Depends(get_search_coordinator),
    composer: ResponseComposer = Depends(get_response_composer),
    store: InMemoryConversationStore = Depends(get_conversation_store),
):
    """
    Conversational recipe search: runs a search over the message (with the
    user's recent history) and answers from the returned recipes.
    """
    print(f"\n[ChatRouter] Message from user {user_id}")
    try:
        result = await coordinator.run_search(
            body.message, user_id=user_id, history=store.get_history(user_id)
        )
        reply = await composer.compose(body.message, user_id, result)
    except SearchError as e:
        print(f"[ChatRouter] ❌ {e.kind}: {type(e).__name__}")
        raise to_http_exception(e)

    return ChatResponse(
        response=reply,
        recipes=result.recipes,
        no_results=result.no_results,
        strategy_used=result.strategy_used,
        fell_back=result.fell_back,
    )


@router.get("/chat/{user_id}/history", response_model=ChatHistoryResponse)
async def get_chat_history(
    user_id: str,
    store: InMemoryConversationStore = Depends(get_conversation_store),
):
    messages = [ChatMessage(**turn) for turn in store.get_history(user_id)]
    return ChatHistoryResponse(user_id=user_id, messages=messages)


@router.delete("/chat/{user_id}/history", status_code=status.HTTP_204_NO_CONTENT)
async def clear_chat_history(
    user_id: str,
    store: InMemoryConversationStore = Depends(get_conversation_store),
):
    cleared = store.clear(user_id)
    print(f"[ChatRouter] History for user {user_id} {'cleared' if cleared else 'was empty'}")

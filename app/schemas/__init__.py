from pydantic import BaseModel, Field
from typing import List, Optional
from app.schemas.search import RankedRecipe


# Search schemas
class SearchRequest(BaseModel):
    query: str = Field(..., min_length=1, max_length=1000)
    user_id: Optional[str] = Field(
        None, description="Enables owned / liked provenance on results"
    )


class SearchResponse(BaseModel):
    recipes: List[RankedRecipe]
    no_results: bool
    strategy_used: str
    fell_back: bool
    message: str


# Chat schemas
class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=2000)


class ChatResponse(BaseModel):
    response: str
    recipes: List[RankedRecipe]
    no_results: bool
    strategy_used: str
    fell_back: bool


class ChatMessage(BaseModel):
    role: str  # "user" | "assistant"
    content: str


class ChatHistoryResponse(BaseModel):
    user_id: str
    messages: List[ChatMessage]


# Error schema (documented in route responses)
class ErrorDetail(BaseModel):
    message: str
    error_kind: str


class ErrorResponse(BaseModel):
    detail: ErrorDetail

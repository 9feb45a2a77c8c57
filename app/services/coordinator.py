"""
Search Coordinator

Owns one search request end to end:

    RECEIVED → CLASSIFYING → EXECUTING → SUCCEEDED
                                       → FAILED_RETRYABLE → EXECUTING (fallback) → SUCCEEDED
                                                                                 → FAILED_FATAL
                                       → FAILED_FATAL

Only ProviderUnavailable from the primary path is retried, and only once,
through the fallback agent. Every other error propagates unchanged.
"""

import asyncio
import os
from enum import Enum
from typing import Dict, List, Optional, Protocol
from dotenv import load_dotenv
from langsmith import traceable
from app.agents.search_agent import get_agent_fallback
from app.constants import SEARCH_TIMEOUT_SECONDS
from app.database import get_engine, get_vector_engine
from app.errors import FallbackExhausted, ProviderUnavailable, SearchError, ValidationError
from app.schemas.search import ClassificationResult, SearchResult, StrategyKind
from app.services.embeddings import OllamaEmbeddingProvider
from app.services.intent_classifier import IntentClassifier, get_intent_classifier
from app.services.relational_store import SqlAlchemyRelationalStore
from app.services.search_strategies import SearchStrategy, build_strategies, execute_strategy
from app.services.vector_index import PgVectorIndex
from app.utils.cancellation import run_cancellable
from app.utils.prompt_helpers import ChatTurn

load_dotenv()


class SearchState(str, Enum):
    RECEIVED = "received"
    CLASSIFYING = "classifying"
    EXECUTING = "executing"
    SUCCEEDED = "succeeded"
    FAILED_RETRYABLE = "failed_retryable"
    FAILED_FATAL = "failed_fatal"


class RequestTracker:
    """State of one request as it moves through the coordinator."""

    def __init__(self):
        self.state = SearchState.RECEIVED
        self.history: List[SearchState] = [SearchState.RECEIVED]

    def transition(self, state: SearchState):
        print(f"[Coordinator] {self.state.value} → {state.value}")
        self.state = state
        self.history.append(state)


class SearchFallback(Protocol):
    async def run(
        self, raw_query: str, user_id: Optional[str] = None, history: Optional[List[ChatTurn]] = None
    ) -> SearchResult: ...


class SearchCoordinator:
    """Classifies a request, dispatches one strategy and applies the fallback policy."""

    def __init__(
        self,
        classifier: IntentClassifier,
        strategies: Dict[StrategyKind, SearchStrategy],
        fallback: Optional[SearchFallback] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self.classifier = classifier
        self.strategies = strategies
        self.fallback = fallback
        self.timeout_seconds = timeout_seconds

    async def classify(
        self, text: str, history: Optional[List[ChatTurn]] = None
    ) -> ClassificationResult:
        return await self.classifier.classify(text, history)

    async def _execute(
        self,
        raw_query: str,
        user_id: Optional[str],
        history: Optional[List[ChatTurn]],
        tracker: RequestTracker,
    ) -> SearchResult:
        tracker.transition(SearchState.CLASSIFYING)
        try:
            classification = await self.classify(raw_query, history)
        except SearchError:
            tracker.transition(SearchState.FAILED_FATAL)
            raise

        kind = classification.strategy
        tracker.transition(SearchState.EXECUTING)
        try:
            result = await execute_strategy(kind, classification.intent, self.strategies, user_id)
        except ProviderUnavailable as exc:
            tracker.transition(SearchState.FAILED_RETRYABLE)
            print(f"[Coordinator] ⚠️ {kind.tool_name} unavailable ({exc}), re-routing to fallback agent")
            return await self._run_fallback(raw_query, user_id, history, exc, tracker)
        except SearchError:
            tracker.transition(SearchState.FAILED_FATAL)
            raise

        tracker.transition(SearchState.SUCCEEDED)
        return SearchResult(
            recipes=result.recipes,
            no_results=result.no_results,
            strategy_used=kind.value,
            fell_back=False,
            message=result.message,
        )

    async def _run_fallback(
        self,
        raw_query: str,
        user_id: Optional[str],
        history: Optional[List[ChatTurn]],
        cause: ProviderUnavailable,
        tracker: RequestTracker,
    ) -> SearchResult:
        if self.fallback is None:
            tracker.transition(SearchState.FAILED_FATAL)
            raise FallbackExhausted("No fallback configured") from cause

        tracker.transition(SearchState.EXECUTING)
        try:
            result = await self.fallback.run(raw_query, user_id=user_id, history=history)
        except Exception as exc:
            tracker.transition(SearchState.FAILED_FATAL)
            print(f"[Coordinator] ❌ Fallback failed: {type(exc).__name__}")
            raise FallbackExhausted("Fallback search failed") from exc

        tracker.transition(SearchState.SUCCEEDED)
        print(f"[Coordinator] ✅ Fallback returned {len(result.recipes)} recipes via {result.strategy_used}")
        return result

    @traceable(name="run_search")
    async def run_search(
        self,
        raw_query: str,
        user_id: Optional[str] = None,
        history: Optional[List[ChatTurn]] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> SearchResult:
        """
        Run one search request.

        Args:
            raw_query: The user's free-text request
            user_id: Enables provenance (owned / liked) when supplied
            history: Recent conversation turns, oldest first
            cancel_event: Setting it aborts the request with SearchCancelled

        Returns:
            SearchResult; an empty result is not an error
        """
        if not raw_query or not raw_query.strip():
            raise ValidationError("Search query must not be empty")
        print(f"[Coordinator] Search request: '{raw_query[:80]}' user={'yes' if user_id else 'anonymous'}")
        return await run_cancellable(
            self._execute(raw_query.strip(), user_id, history, RequestTracker()),
            cancel_event=cancel_event,
            timeout=self.timeout_seconds,
        )


def search_timeout_seconds() -> float:
    return float(os.getenv("SEARCH_TIMEOUT_SECONDS", SEARCH_TIMEOUT_SECONDS))


# Singleton instance for reuse across requests
_search_coordinator = None


def get_search_coordinator() -> SearchCoordinator:
    """Get or create the coordinator wired to the local embedding backend."""
    global _search_coordinator
    if _search_coordinator is None:
        strategies = build_strategies(
            OllamaEmbeddingProvider(),
            PgVectorIndex(get_vector_engine()),
            SqlAlchemyRelationalStore(get_engine()),
        )
        _search_coordinator = SearchCoordinator(
            classifier=get_intent_classifier(),
            strategies=strategies,
            fallback=get_agent_fallback(),
            timeout_seconds=search_timeout_seconds(),
        )
    return _search_coordinator

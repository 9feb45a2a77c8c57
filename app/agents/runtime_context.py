"""
Per-run context for the fallback agent's search tools.

The LLM only ever sees tool arguments. Everything else a tool needs (which
user is searching, which strategy backends to call) travels through
ContextVars set by AgentFallback.run, and the tool reports its StrategyResult
back the same way.

- SearchContext: read-only, set before the graph runs
- SearchRuntimeState: written by whichever search tool executes
"""

from typing import Any, Dict, Optional
from contextvars import ContextVar
from pydantic import BaseModel, ConfigDict
from app.schemas.search import StrategyKind, StrategyResult


class SearchContext(BaseModel):
    """Who is searching and which strategies the tools dispatch to."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    user_id: Optional[str] = None
    # StrategyKind -> strategy wired to the fallback embedding backend
    strategies: Dict[StrategyKind, Any]


class SearchRuntimeState(BaseModel):
    """Outcome of the tool call, if the agent made one."""

    result: Optional[StrategyResult] = None
    strategy: Optional[StrategyKind] = None
    tool_calls: int = 0


_search_context: ContextVar[Optional[SearchContext]] = ContextVar("search_context", default=None)
_search_state: ContextVar[Optional[SearchRuntimeState]] = ContextVar("search_state", default=None)


def set_runtime_context(context: SearchContext, state: SearchRuntimeState):
    """Bind context and state to the current task before invoking the graph."""
    _search_context.set(context)
    _search_state.set(state)


def _require(var: ContextVar, what: str):
    value = var.get()
    if value is None:
        raise RuntimeError(f"Search {what} is not set; search tools only run inside AgentFallback.run")
    return value


def get_runtime_context() -> SearchContext:
    return _require(_search_context, "context")


def get_runtime_state() -> SearchRuntimeState:
    return _require(_search_state, "state")

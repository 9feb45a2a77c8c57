"""
Fallback search agent.

Used when the primary search path cannot reach its embedding or vector
backend. An LLM with three bound tools (rag_search, sql_search,
hybrid_search) picks one search, the tool runs against strategies wired to
the hosted embedding backend, and the graph ends.

    agent ──(tool call)──> tool ──> END
      └────(text only)────────────> END
"""

import operator
from typing import Annotated, Any, Dict, List, Literal, Optional, TypedDict
import openai
from langchain_core.messages import AnyMessage, ToolMessage
from langchain_core.tools import tool
from langchain_openai import ChatOpenAI
from langgraph.graph import END, StateGraph
from langsmith import traceable
from app.agents.middleware import prepare_messages_for_llm, sanitize_tool_args
from app.agents.runtime_context import (
    SearchContext,
    SearchRuntimeState,
    get_runtime_context,
    get_runtime_state,
    set_runtime_context,
)
from app.constants import DEFAULT_SEARCH_LIMIT
from app.errors import ProviderError, ProviderUnavailable
from app.schemas.search import Intent, PriceRange, SearchResult, StrategyKind, StrategyResult
from app.schemas.search_tools import HybridSearchInput, RagSearchInput, SqlSearchInput
from app.services.llm import get_chat_model
from app.database import get_engine, get_vector_engine
from app.services.embeddings import OpenAIEmbeddingProvider
from app.services.relational_store import SqlAlchemyRelationalStore
from app.services.search_strategies import SearchStrategy, build_strategies, execute_strategy
from app.services.vector_index import PgVectorIndex
from app.utils.prompt_helpers import ChatTurn


# --- Define the Graph State Schema ---
class SearchAgentState(TypedDict):
    """State of one fallback search run."""

    # Conversation (MUST use operator.add to append messages)
    messages: Annotated[List[AnyMessage], operator.add]

    # Agent decision marker
    next_action: Literal["tool", "end"]


SYSTEM_PROMPT = """### IDENTITY
You are **Sulten**, a specialized culinary AI assistant. Your sole purpose is to help users find recipes.

### TOOLS & USAGE
- **hybrid_search**: the user has both a "mood/preference" (e.g., "cozy", "impressive") AND
  "hard constraints" (e.g., "no poultry", "under 30 mins").
- **sql_search**: precise filtering with no semantic preference
  (e.g., "Show me all Italian recipes under 20 minutes").
- **rag_search**: purely open-ended or semantic queries (e.g., "What should I cook for a first date?").

### PARAMETER MAPPING
- "not chicken" / "avoid chicken" -> excluded_ingredients: ["chicken"]
- "vegetarian" -> excluded_ingredients: ["meat", "chicken", "beef", "pork", "lamb", "fish"]
- "must have X" -> included_ingredients: ["X"]
- "under $10" -> price_max: 10; "high protein" -> macronutrients: {"protein": "high"}
- "summer dinner" / "for christmas" -> seasonality: ["summer"] / ["christmas"] (sql_search and hybrid_search only)
- Lists MUST be JSON arrays, numbers MUST be JSON numbers.
- If you have no value for an optional parameter, omit it. Do not send empty strings or nulls.

### RULES
- Call exactly ONE search tool.
- If the message is conversational (greetings, thanks) answer briefly without a tool.
- Never invent recipes."""


def intent_from_tool_args(kind: StrategyKind, args: Dict[str, Any]) -> Intent:
    """
    Normalize sanitized tool arguments into an Intent.

    Price, macronutrient and seasonality arguments only exist on sql_search
    and hybrid_search; rag_search never carries them.
    """
    meta: Dict[str, Any] = {}
    if kind is not StrategyKind.SEMANTIC:
        meta = {
            "price_range": PriceRange.from_bounds(args.get("price_min"), args.get("price_max")),
            "macronutrients": args.get("macronutrients") or {},
            "seasonality": args.get("seasonality") or [],
        }
    return Intent(
        semantic_query=args.get("query") if kind.requires_semantic_query else None,
        excluded_ingredients=args.get("excluded_ingredients") or [],
        included_ingredients=args.get("included_ingredients") or [],
        max_time_minutes=args.get("max_time_minutes"),
        difficulty=args.get("difficulty"),
        cuisine=args.get("cuisine"),
        limit=args.get("limit") or DEFAULT_SEARCH_LIMIT,
        **meta,
    )


def summarize_for_llm(result: StrategyResult) -> str:
    """Short plain-text result for the ToolMessage."""
    if result.no_results:
        return result.message or "No recipes found."
    lines = [f"--- {len(result.recipes)} recipes ---"]
    for i, recipe in enumerate(result.recipes):
        lines.append(
            f"{i + 1}. {recipe.name} ({recipe.total_time_minutes} min, {recipe.difficulty or 'N/A'})"
        )
    return "\n".join(lines)


async def _run_search_tool(kind: StrategyKind, args: Dict[str, Any]) -> str:
    context = get_runtime_context()
    state = get_runtime_state()

    intent = intent_from_tool_args(kind, args)
    result = await execute_strategy(kind, intent, context.strategies, context.user_id)

    state.result = result
    state.strategy = kind
    state.tool_calls += 1
    print(f"[TOOL: {kind.tool_name}] ✅ {len(result.recipes)} recipes")
    return summarize_for_llm(result)


@tool("rag_search", args_schema=RagSearchInput)
@traceable(name="rag_search_tool")
async def rag_search(
    query: str,
    excluded_ingredients: List[str] = None,
    included_ingredients: List[str] = None,
    max_time_minutes: Optional[int] = None,
    difficulty: Optional[str] = None,
    limit: Optional[int] = None,
) -> str:
    """Semantic search for recipes matching a mood, occasion or description."""
    print("\n[TOOL: rag_search] === CALLED ===")
    return await _run_search_tool(
        StrategyKind.SEMANTIC,
        {
            "query": query,
            "excluded_ingredients": excluded_ingredients,
            "included_ingredients": included_ingredients,
            "max_time_minutes": max_time_minutes,
            "difficulty": difficulty,
            "limit": limit,
        },
    )


@tool("sql_search", args_schema=SqlSearchInput)
@traceable(name="sql_search_tool")
async def sql_search(
    excluded_ingredients: List[str] = None,
    included_ingredients: List[str] = None,
    max_time_minutes: Optional[int] = None,
    difficulty: Optional[str] = None,
    cuisine: Optional[str] = None,
    price_min: Optional[float] = None,
    price_max: Optional[float] = None,
    macronutrients: Dict[str, str] = None,
    seasonality: List[str] = None,
    limit: Optional[int] = None,
) -> str:
    """Exact filtering on ingredients, total time, difficulty, cuisine, price, macros and season."""
    print("\n[TOOL: sql_search] === CALLED ===")
    return await _run_search_tool(
        StrategyKind.DETERMINISTIC,
        {
            "excluded_ingredients": excluded_ingredients,
            "included_ingredients": included_ingredients,
            "max_time_minutes": max_time_minutes,
            "difficulty": difficulty,
            "cuisine": cuisine,
            "price_min": price_min,
            "price_max": price_max,
            "macronutrients": macronutrients,
            "seasonality": seasonality,
            "limit": limit,
        },
    )


@tool("hybrid_search", args_schema=HybridSearchInput)
@traceable(name="hybrid_search_tool")
async def hybrid_search(
    query: str,
    excluded_ingredients: List[str] = None,
    included_ingredients: List[str] = None,
    max_time_minutes: Optional[int] = None,
    difficulty: Optional[str] = None,
    cuisine: Optional[str] = None,
    price_min: Optional[float] = None,
    price_max: Optional[float] = None,
    macronutrients: Dict[str, str] = None,
    seasonality: List[str] = None,
    limit: Optional[int] = None,
) -> str:
    """Semantic mood ranking combined with hard constraints (ingredients, time, cuisine, price, macros, season)."""
    print("\n[TOOL: hybrid_search] === CALLED ===")
    return await _run_search_tool(
        StrategyKind.HYBRID,
        {
            "query": query,
            "excluded_ingredients": excluded_ingredients,
            "included_ingredients": included_ingredients,
            "max_time_minutes": max_time_minutes,
            "difficulty": difficulty,
            "cuisine": cuisine,
            "price_min": price_min,
            "price_max": price_max,
            "macronutrients": macronutrients,
            "seasonality": seasonality,
            "limit": limit,
        },
    )


tools = [rag_search, sql_search, hybrid_search]
TOOLS_BY_NAME = {t.name: t for t in tools}


def build_search_agent_graph(llm: ChatOpenAI):
    """Compile the agent → tool → END graph around `llm`."""
    llm_with_tools = llm.bind_tools(tools)

    # main LLM reasoning node
    async def call_agent_reasoner(state: SearchAgentState) -> Dict[str, Any]:
        print(f"\n[call_agent_reasoner] Message count: {len(state['messages'])}")
        try:
            response = await llm_with_tools.ainvoke(state["messages"])
        except openai.APIConnectionError as exc:
            print(f"[call_agent_reasoner] ❌ LLM unreachable: {type(exc).__name__}")
            raise ProviderUnavailable("Agent LLM is unreachable") from exc
        except openai.OpenAIError as exc:
            print(f"[call_agent_reasoner] ❌ LLM error: {type(exc).__name__}")
            raise ProviderError("Agent LLM returned an error") from exc

        if getattr(response, "tool_calls", None):
            print(f"[call_agent_reasoner] Tool calls: {response.tool_calls}")
            return {"messages": [response], "next_action": "tool"}
        print("[call_agent_reasoner] No tool calls, ending")
        return {"messages": [response], "next_action": "end"}

    # tool execution node
    async def execute_tool(state: SearchAgentState) -> Dict[str, Any]:
        tool_call = state["messages"][-1].tool_calls[0]
        name = tool_call.get("name", "unknown")
        search_tool = TOOLS_BY_NAME.get(name)
        if search_tool is None:
            raise ProviderError(f"Agent requested unknown tool: {name}")

        args = sanitize_tool_args(tool_call.get("args", {}))
        print(f"[execute_tool] {name} args: {args}")
        content = await search_tool.ainvoke(args)
        return {
            "messages": [ToolMessage(content=content, tool_call_id=tool_call["id"])],
            "next_action": "end",
        }

    def route_agent_action(state: SearchAgentState) -> str:
        return "tool" if state.get("next_action") == "tool" else "end"

    builder = StateGraph(SearchAgentState)
    builder.add_node("agent", call_agent_reasoner)
    builder.add_node("tool", execute_tool)
    builder.set_entry_point("agent")
    builder.add_conditional_edges("agent", route_agent_action, {"tool": "tool", "end": END})
    builder.add_edge("tool", END)
    return builder.compile()


class AgentFallback:
    """Runs the tool-calling agent against fallback-wired strategies."""

    def __init__(self, strategies: Dict[StrategyKind, SearchStrategy], llm: Optional[ChatOpenAI] = None):
        self.strategies = strategies
        self._llm = llm
        self._graph = None

    @property
    def graph(self):
        if self._graph is None:
            self._graph = build_search_agent_graph(self._llm or get_chat_model(temperature=0))
        return self._graph

    @traceable(name="fallback_search_agent")
    async def run(
        self,
        raw_query: str,
        user_id: Optional[str] = None,
        history: Optional[List[ChatTurn]] = None,
    ) -> SearchResult:
        runtime_state = SearchRuntimeState()
        set_runtime_context(
            SearchContext(user_id=user_id, strategies=self.strategies), runtime_state
        )
        messages = prepare_messages_for_llm(SYSTEM_PROMPT, raw_query, history, user_id)

        final_state = await self.graph.ainvoke({"messages": messages, "next_action": "end"})

        if runtime_state.result is None:
            last = final_state["messages"][-1]
            print("[SearchAgent] ⚠️ Agent answered without searching")
            return SearchResult(
                recipes=[],
                no_results=True,
                strategy_used="agent:none",
                fell_back=True,
                message=(getattr(last, "content", "") or "No recipes found").strip(),
            )

        result = runtime_state.result
        return SearchResult(
            recipes=result.recipes,
            no_results=result.no_results,
            strategy_used=f"agent:{runtime_state.strategy.value}",
            fell_back=True,
            message=result.message,
        )


_agent_fallback = None


def get_agent_fallback() -> AgentFallback:
    """Singleton fallback wired to hosted embeddings and the shared stores."""
    global _agent_fallback
    if _agent_fallback is None:
        strategies = build_strategies(
            OpenAIEmbeddingProvider(),
            PgVectorIndex(get_vector_engine()),
            SqlAlchemyRelationalStore(get_engine()),
        )
        _agent_fallback = AgentFallback(strategies)
    return _agent_fallback

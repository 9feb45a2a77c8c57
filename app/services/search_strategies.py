"""
Recipe search strategies.

1. SemanticSearch (rag_search): vector similarity, ingredient filters pushed
   into the vector index, time/difficulty applied relationally
2. DeterministicSearch (sql_search): relational filters only, ordered by
   total time then name
3. HybridSearch (hybrid_search): vector similarity with every remaining
   constraint applied to the candidate set

Vector order is authoritative for semantic and hybrid results.
"""

from typing import Any, Dict, List, Mapping, Optional, Protocol
from langsmith import traceable
from app.constants import (
    HYBRID_MIN_CANDIDATES,
    HYBRID_OVERSAMPLE_FACTOR,
    POST_FILTER_OVERSAMPLE_FACTOR,
    SEMANTIC_OVERSAMPLE,
)
from app.errors import ValidationError
from app.schemas.search import Intent, StrategyKind, StrategyResult, VectorHit
from app.services.constraint_filters import apply_constraints
from app.services.embeddings import EmbeddingProvider
from app.services.filter_compiler import (
    RelationalFilter,
    RelationalScope,
    compile_relational_filter,
    compile_vector_filter,
)
from app.services.recipe_queries import (
    CANDIDATE_CONDITION,
    build_recipe_query,
    parse_meta,
    row_to_recipe,
    rows_by_id,
)
from app.services.relational_store import RelationalStore

NO_MATCH_QUERY_MESSAGE = "No recipes found matching your query"
NO_MATCH_CRITERIA_MESSAGE = "No recipes found matching your criteria"


class SearchStrategy(Protocol):
    kind: StrategyKind

    async def search(self, intent: Intent, user_id: Optional[str] = None) -> StrategyResult: ...


def _require_semantic_query(intent: Intent, kind: StrategyKind):
    if not intent.has_semantic_query:
        raise ValidationError(f"{kind.tool_name} requires a semantic query")


def _found_message(count: int, intent: Intent) -> str:
    noun = "recipe" if count == 1 else "recipes"
    if intent.semantic_query:
        return f"Found {count} {noun} matching '{intent.semantic_query}'"
    return f"Found {count} {noun} matching your criteria"


class _VectorBackedSearch:
    """Shared vector-then-relational pipeline for semantic and hybrid search."""

    kind: StrategyKind
    scope: RelationalScope
    apply_meta: bool = False
    tag = "Search"

    def __init__(self, embedding_provider: EmbeddingProvider, vector_index, store: RelationalStore):
        self.embedding_provider = embedding_provider
        self.vector_index = vector_index
        self.store = store

    def candidate_count(self, intent: Intent) -> int:
        raise NotImplementedError

    async def _vector_candidates(self, intent: Intent) -> List[VectorHit]:
        vector = await self.embedding_provider.embed(intent.semantic_query)
        filter_expression = compile_vector_filter(intent)
        k = self.candidate_count(intent)
        print(f"[{self.tag}] Vector search k={k} filter='{filter_expression}'")
        return await self.vector_index.search(vector, k, filter_expression)

    async def _enrich(
        self, hits: List[VectorHit], intent: Intent, user_id: Optional[str]
    ) -> StrategyResult:
        relational = compile_relational_filter(intent, start_param_index=2, scope=self.scope)
        user_index = relational.next_param_index if user_id else None
        sql = build_recipe_query(
            f"{CANDIDATE_CONDITION} AND {relational.where_fragment}",
            user_param_index=user_index,
        )
        params: List[Any] = [[hit.recipe_id for hit in hits], *relational.params]
        if user_id:
            params.append(user_id)

        rows = rows_by_id(await self.store.query(sql, params))

        # Vector rank is authoritative; rows absent from the relational result are dropped
        rank = {hit.recipe_id: position for position, hit in enumerate(hits)}
        scored = {hit.recipe_id: hit for hit in hits}
        ordered_ids = sorted((rid for rid in rows if rid in rank), key=rank.__getitem__)

        candidates = [
            (
                row_to_recipe(
                    rows[rid],
                    user_id=user_id,
                    similarity=scored[rid].similarity,
                    distance=scored[rid].distance,
                ),
                parse_meta(rows[rid].get("meta")),
            )
            for rid in ordered_ids
        ]
        kept, dropped = apply_constraints(candidates, intent, self.scope, self.apply_meta)
        if dropped:
            print(f"[{self.tag}] ⚠️ Dropped {dropped} candidates failing constraints")

        recipes = kept[: intent.limit]
        if not recipes:
            message = NO_MATCH_QUERY_MESSAGE
        else:
            message = _found_message(len(recipes), intent)
        print(f"[{self.tag}] ✅ {len(recipes)} results from {len(hits)} vector candidates")
        return StrategyResult(
            recipes=recipes, message=message, filters_applied=intent.filters_applied()
        )

    async def _run(self, intent: Intent, user_id: Optional[str]) -> StrategyResult:
        _require_semantic_query(intent, self.kind)
        hits = await self._vector_candidates(intent)
        if not hits:
            print(f"[{self.tag}] No vector candidates, skipping relational query")
            return StrategyResult(
                recipes=[],
                message=NO_MATCH_QUERY_MESSAGE,
                filters_applied=intent.filters_applied(),
            )
        return await self._enrich(hits, intent, user_id)


class SemanticSearch(_VectorBackedSearch):
    kind = StrategyKind.SEMANTIC
    scope = RelationalScope.TIME_AND_DIFFICULTY
    tag = "SemanticSearch"

    def candidate_count(self, intent: Intent) -> int:
        return max(intent.limit, SEMANTIC_OVERSAMPLE)

    @traceable(name="rag_search")
    async def search(self, intent: Intent, user_id: Optional[str] = None) -> StrategyResult:
        return await self._run(intent, user_id)


class HybridSearch(_VectorBackedSearch):
    kind = StrategyKind.HYBRID
    scope = RelationalScope.NON_INGREDIENT
    apply_meta = True
    tag = "HybridSearch"

    def candidate_count(self, intent: Intent) -> int:
        return max(HYBRID_OVERSAMPLE_FACTOR * intent.limit, HYBRID_MIN_CANDIDATES)

    @traceable(name="hybrid_search")
    async def search(self, intent: Intent, user_id: Optional[str] = None) -> StrategyResult:
        return await self._run(intent, user_id)


class DeterministicSearch:
    """
    Pure relational search; never embeds or touches the vector index.

    When ingredient or meta constraints can drop rows in process, the ordered
    result is read in pages of `limit * POST_FILTER_OVERSAMPLE_FACTOR` rows
    until `limit` recipes survive or the rows run out. Otherwise a single
    LIMIT query is enough.
    """

    kind = StrategyKind.DETERMINISTIC
    scope = RelationalScope.ALL
    order_by = "total_time_minutes ASC, r.name ASC, r.id ASC"

    def __init__(self, store: RelationalStore):
        self.store = store

    def page_size(self, intent: Intent) -> Optional[int]:
        """Rows per page, or None when every fetched row is kept."""
        if intent.has_meta_constraints or intent.has_ingredient_constraints:
            return intent.limit * POST_FILTER_OVERSAMPLE_FACTOR
        return None

    async def _fetch(
        self,
        relational: RelationalFilter,
        user_id: Optional[str],
        limit: int,
        offset: Optional[int] = None,
    ) -> List[Mapping[str, Any]]:
        index = relational.next_param_index
        params: List[Any] = list(relational.params)

        user_index = None
        if user_id:
            user_index = index
            params.append(user_id)
            index += 1
        params.append(limit)
        offset_index = None
        if offset is not None:
            offset_index = index + 1
            params.append(offset)

        sql = build_recipe_query(
            relational.where_fragment,
            user_param_index=user_index,
            order_by=self.order_by,
            limit_param_index=index,
            offset_param_index=offset_index,
        )
        return await self.store.query(sql, params)

    @traceable(name="sql_search")
    async def search(self, intent: Intent, user_id: Optional[str] = None) -> StrategyResult:
        relational = compile_relational_filter(intent, start_param_index=1, scope=self.scope)
        page_size = self.page_size(intent)

        recipes = []
        dropped_total = 0
        offset = 0
        while True:
            if page_size is None:
                rows = await self._fetch(relational, user_id, intent.limit)
            else:
                rows = await self._fetch(relational, user_id, page_size, offset)
            candidates = [
                (row_to_recipe(row, user_id=user_id), parse_meta(row.get("meta"))) for row in rows
            ]
            kept, dropped = apply_constraints(candidates, intent, self.scope, apply_meta=True)
            recipes.extend(kept)
            dropped_total += dropped
            if page_size is None or len(recipes) >= intent.limit or len(rows) < page_size:
                break
            offset += page_size
        if dropped_total:
            print(f"[DeterministicSearch] ⚠️ Dropped {dropped_total} rows failing constraints")

        recipes = recipes[: intent.limit]
        message = _found_message(len(recipes), intent) if recipes else NO_MATCH_CRITERIA_MESSAGE
        print(f"[DeterministicSearch] ✅ {len(recipes)} results")
        return StrategyResult(
            recipes=recipes, message=message, filters_applied=intent.filters_applied()
        )


def build_strategies(
    embedding_provider: EmbeddingProvider, vector_index, store: RelationalStore
) -> Dict[StrategyKind, SearchStrategy]:
    """One strategy per kind, sharing the same backends."""
    return {
        StrategyKind.SEMANTIC: SemanticSearch(embedding_provider, vector_index, store),
        StrategyKind.DETERMINISTIC: DeterministicSearch(store),
        StrategyKind.HYBRID: HybridSearch(embedding_provider, vector_index, store),
    }


async def execute_strategy(
    kind: StrategyKind,
    intent: Intent,
    strategies: Mapping[StrategyKind, SearchStrategy],
    user_id: Optional[str] = None,
) -> StrategyResult:
    """Single dispatch point over the closed set of strategy kinds."""
    strategy = strategies.get(kind)
    if strategy is None:
        raise ValidationError(f"No strategy registered for {kind.value}")
    print(f"[Strategy] Executing {kind.tool_name} (limit={intent.limit})")
    return await strategy.search(intent, user_id=user_id)

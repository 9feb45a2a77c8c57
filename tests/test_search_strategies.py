import pytest
from conftest import FakeEmbeddingProvider, FakeRecipeStore, FakeVectorIndex, hit, make_row
from app.errors import ProviderUnavailable, StoreError, ValidationError
from app.schemas.search import Intent, PriceRange, Provenance, StrategyKind
from app.services.search_strategies import (
    DeterministicSearch,
    HybridSearch,
    SemanticSearch,
    build_strategies,
    execute_strategy,
)


@pytest.fixture
def semantic_rows():
    return [
        make_row("a", "Apple Pie", prep=20, cook=40, ingredients=["Apple", "Butter"]),
        make_row("b", "Bean Stew", prep=10, cook=50, ingredients=["Beans", "Chicken"]),
        make_row("c", "Carrot Soup", prep=5, cook=20, ingredients=["Carrot"]),
        make_row("d", "Date Cake", prep=15, cook=30, ingredients=["Dates"]),
    ]


# --- Deterministic ---


@pytest.mark.asyncio
async def test_deterministic_excludes_and_orders_by_time(recipe_store):
    """A(20, rice), B(45, peanut), C(25, egg): excluding peanut within 30 minutes leaves A, C"""
    search = DeterministicSearch(recipe_store)
    intent = Intent(excluded_ingredients=["peanut"], max_time_minutes=30, limit=5)

    result = await search.search(intent)

    assert [r.id for r in result.recipes] == ["A", "C"]
    assert all(r.similarity == 0 and r.distance == 0 for r in result.recipes)
    assert not result.no_results


@pytest.mark.asyncio
async def test_deterministic_query_shape(recipe_store):
    search = DeterministicSearch(recipe_store)
    await search.search(Intent(excluded_ingredients=["peanut"], max_time_minutes=30, limit=5))

    query = recipe_store.queries[0]
    assert "ORDER BY total_time_minutes ASC, r.name ASC" in query["sql"]
    # peanut, max time, then the page size and offset
    assert query["params"] == ["peanut", 30, 15, 0]


@pytest.mark.asyncio
async def test_deterministic_where_clause_for_excluded_ingredient_and_time(recipe_store):
    await DeterministicSearch(recipe_store).search(
        Intent(excluded_ingredients=["peanut"], max_time_minutes=30, limit=5)
    )

    sql = recipe_store.queries[0]["sql"]
    where, tail = sql.split("\nFROM recipe r\nWHERE ")[-1].split("\nORDER BY ")
    assert " ".join(where.split()) == (
        "r.status = 'published' AND r.\"deletedAt\" IS NULL"
        " AND NOT EXISTS ( SELECT 1 FROM recipe_ingredient ri"
        " INNER JOIN ingredient i ON ri.\"ingredientId\" = i.id"
        " WHERE ri.\"recipeId\" = r.id AND ri.\"deletedAt\" IS NULL"
        " AND (LOWER(TRIM(i.name)) = $1) )"
        " AND (COALESCE(r.\"prepTime\", 0) + COALESCE(r.\"cookTime\", 0)) <= $2"
    )
    assert tail == "total_time_minutes ASC, r.name ASC, r.id ASC\nLIMIT $3\nOFFSET $4"


@pytest.mark.asyncio
async def test_deterministic_pages_past_rows_dropped_in_process():
    """15 quick recipes over budget sort ahead of the one slow recipe within budget"""
    rows = [
        make_row(f"q{i}", f"Quick {i:02d}", prep=5, cook=5, meta={"prices": {"americanPrice": 99}})
        for i in range(15)
    ]
    rows.append(make_row("ok", "Slow Roast", prep=30, cook=30, meta={"prices": {"americanPrice": 5}}))
    store = FakeRecipeStore(rows)

    result = await DeterministicSearch(store).search(
        Intent(price_range=PriceRange(min=0, max=10), limit=5)
    )

    assert [r.id for r in result.recipes] == ["ok"]
    assert not result.no_results
    assert [q["params"] for q in store.queries] == [[15, 0], [15, 15]]


@pytest.mark.asyncio
async def test_deterministic_stops_paging_once_limit_is_reached():
    rows = [make_row(f"r{i}", f"Recipe {i:02d}", ingredients=["Rice"]) for i in range(40)]
    store = FakeRecipeStore(rows)

    result = await DeterministicSearch(store).search(Intent(included_ingredients=["rice"], limit=5))

    assert [r.id for r in result.recipes] == ["r0", "r1", "r2", "r3", "r4"]
    assert len(store.queries) == 1


@pytest.mark.asyncio
async def test_deterministic_without_post_filters_uses_plain_limit(recipe_store):
    await DeterministicSearch(recipe_store).search(Intent(limit=2))
    assert recipe_store.queries[0]["params"] == [2]


@pytest.mark.asyncio
async def test_deterministic_ties_break_on_name():
    store = FakeRecipeStore(
        [
            make_row("2", "Zucchini Fry", prep=10, cook=10),
            make_row("1", "Apple Salad", prep=5, cook=15),
            make_row("3", "Quick Toast", prep=1, cook=2),
        ]
    )
    result = await DeterministicSearch(store).search(Intent())
    assert [r.name for r in result.recipes] == ["Quick Toast", "Apple Salad", "Zucchini Fry"]


@pytest.mark.asyncio
async def test_deterministic_never_touches_embeddings_or_vectors(recipe_store):
    embedding = FakeEmbeddingProvider()
    index = FakeVectorIndex()
    strategies = build_strategies(embedding, index, recipe_store)

    await execute_strategy(StrategyKind.DETERMINISTIC, Intent(semantic_query="ignored"), strategies)

    assert embedding.calls == []
    assert index.searches == []


@pytest.mark.asyncio
async def test_deterministic_provenance_with_user(recipe_rows):
    recipe_rows[0]["owner_uid"] = "user-1"
    recipe_rows[2]["is_liked"] = True
    store = FakeRecipeStore(recipe_rows)

    result = await DeterministicSearch(store).search(Intent(), user_id="user-1")

    by_id = {r.id: r.provenance for r in result.recipes}
    assert by_id == {"A": Provenance.OWNED, "C": Provenance.LIKED, "B": Provenance.GLOBAL}
    # user id sits between the filter params and the limit
    assert store.queries[0]["params"] == ["user-1", 10]


@pytest.mark.asyncio
async def test_deterministic_meta_constraints_filter_without_reordering():
    store = FakeRecipeStore(
        [
            make_row("1", "One", prep=5, cook=5, meta={"prices": {"americanPrice": 50}}),
            make_row("2", "Two", prep=5, cook=10, meta={"prices": {"americanPrice": 5}}),
            make_row("3", "Three", prep=5, cook=15),
        ]
    )
    result = await DeterministicSearch(store).search(
        Intent(price_range=PriceRange(min=0, max=10))
    )
    assert [r.id for r in result.recipes] == ["2", "3"]


@pytest.mark.asyncio
async def test_deterministic_empty_result_is_not_an_error():
    result = await DeterministicSearch(FakeRecipeStore([])).search(Intent(cuisine="martian"))
    assert result.no_results
    assert result.message == "No recipes found matching your criteria"


@pytest.mark.asyncio
async def test_store_errors_propagate():
    store = FakeRecipeStore(error=StoreError("down"))
    with pytest.raises(StoreError):
        await DeterministicSearch(store).search(Intent())


# --- Semantic ---


@pytest.mark.asyncio
async def test_semantic_requires_query(semantic_rows):
    search = SemanticSearch(FakeEmbeddingProvider(), FakeVectorIndex(), FakeRecipeStore(semantic_rows))
    with pytest.raises(ValidationError):
        await search.search(Intent(semantic_query="  "))


@pytest.mark.asyncio
async def test_semantic_preserves_vector_rank(semantic_rows):
    hits = [hit("c", 0.9), hit("a", 0.8), hit("d", 0.7), hit("b", 0.6)]
    store = FakeRecipeStore(semantic_rows)
    search = SemanticSearch(FakeEmbeddingProvider(), FakeVectorIndex(hits), store)

    result = await search.search(Intent(semantic_query="comfort food"))

    assert [r.id for r in result.recipes] == ["c", "a", "d", "b"]
    assert [r.similarity for r in result.recipes] == [0.9, 0.8, 0.7, 0.6]
    assert result.recipes[0].distance == pytest.approx(0.1)


@pytest.mark.asyncio
async def test_semantic_truncates_and_oversamples(semantic_rows):
    hits = [hit("c", 0.9), hit("a", 0.8), hit("d", 0.7), hit("b", 0.6)]
    index = FakeVectorIndex(hits)
    search = SemanticSearch(FakeEmbeddingProvider(), index, FakeRecipeStore(semantic_rows))

    result = await search.search(Intent(semantic_query="dessert", limit=2))

    assert [r.id for r in result.recipes] == ["c", "a"]
    assert index.searches[0]["k"] == 30


@pytest.mark.asyncio
async def test_semantic_drops_candidates_missing_from_store(semantic_rows):
    hits = [hit("zzz", 0.99), hit("a", 0.8)]
    search = SemanticSearch(FakeEmbeddingProvider(), FakeVectorIndex(hits), FakeRecipeStore(semantic_rows))
    result = await search.search(Intent(semantic_query="pie"))
    assert [r.id for r in result.recipes] == ["a"]


@pytest.mark.asyncio
async def test_semantic_pushes_ingredient_filter_to_vector_index(semantic_rows):
    index = FakeVectorIndex([hit("a", 0.8)])
    store = FakeRecipeStore(semantic_rows)
    search = SemanticSearch(FakeEmbeddingProvider(), index, store)

    await search.search(
        Intent(semantic_query="something sweet", excluded_ingredients=["Chicken"], max_time_minutes=60)
    )

    assert index.searches[0]["filter"] == 'ingredients not_contains "chicken"'
    # ingredient terms are handled by the vector filter, only the time bound reaches SQL
    assert store.queries[0]["params"] == [["a"], 60]


@pytest.mark.asyncio
async def test_semantic_guard_drops_stale_excluded_candidates(semantic_rows):
    # the vector payload is stale: "b" contains chicken but the index returned it
    hits = [hit("b", 0.95), hit("a", 0.9)]
    search = SemanticSearch(FakeEmbeddingProvider(), FakeVectorIndex(hits), FakeRecipeStore(semantic_rows))
    result = await search.search(Intent(semantic_query="stew", excluded_ingredients=["chicken"]))
    assert [r.id for r in result.recipes] == ["a"]


@pytest.mark.asyncio
async def test_semantic_zero_hits_skips_relational_query(semantic_rows):
    store = FakeRecipeStore(semantic_rows)
    search = SemanticSearch(FakeEmbeddingProvider(), FakeVectorIndex([]), store)

    result = await search.search(Intent(semantic_query="nothing like this"))

    assert result.no_results
    assert result.recipes == []
    assert result.message == "No recipes found matching your query"
    assert store.queries == []


@pytest.mark.asyncio
async def test_semantic_embedding_outage_propagates(semantic_rows):
    store = FakeRecipeStore(semantic_rows)
    search = SemanticSearch(
        FakeEmbeddingProvider(error=ProviderUnavailable("ollama down")), FakeVectorIndex(), store
    )
    with pytest.raises(ProviderUnavailable):
        await search.search(Intent(semantic_query="anything"))
    assert store.queries == []


# --- Hybrid ---


@pytest.mark.asyncio
async def test_hybrid_oversamples_candidates(semantic_rows):
    index = FakeVectorIndex([hit("a", 0.8)])
    search = HybridSearch(FakeEmbeddingProvider(), index, FakeRecipeStore(semantic_rows))

    await search.search(Intent(semantic_query="cozy", max_time_minutes=90, limit=10))
    await search.search(Intent(semantic_query="cozy", max_time_minutes=90, limit=40))

    assert [s["k"] for s in index.searches] == [50, 80]


@pytest.mark.asyncio
async def test_hybrid_applies_constraints_and_keeps_vector_order(semantic_rows):
    hits = [hit("b", 0.95), hit("d", 0.9), hit("c", 0.85), hit("a", 0.8)]
    store = FakeRecipeStore(semantic_rows)
    search = HybridSearch(FakeEmbeddingProvider(), FakeVectorIndex(hits), store)
    intent = Intent(semantic_query="cozy", excluded_ingredients=["chicken"], max_time_minutes=50, limit=5)

    result = await search.search(intent)

    # b has chicken, a takes 60 minutes
    assert [r.id for r in result.recipes] == ["d", "c"]
    assert all(not {"chicken"} & {i.name.lower() for i in r.ingredients} for r in result.recipes)
    # candidate ids, then the max time bound
    assert store.queries[0]["params"] == [["b", "d", "c", "a"], 50]


@pytest.mark.asyncio
async def test_hybrid_included_ingredients_require_one_match(semantic_rows):
    hits = [hit("a", 0.9), hit("b", 0.8), hit("c", 0.7)]
    search = HybridSearch(FakeEmbeddingProvider(), FakeVectorIndex(hits), FakeRecipeStore(semantic_rows))
    result = await search.search(Intent(semantic_query="hearty", included_ingredients=["carrot", "beans"]))
    assert [r.id for r in result.recipes] == ["b", "c"]


@pytest.mark.asyncio
async def test_hybrid_zero_hits_is_empty_not_error(semantic_rows):
    store = FakeRecipeStore(semantic_rows)
    search = HybridSearch(FakeEmbeddingProvider(), FakeVectorIndex([]), store)
    result = await search.search(Intent(semantic_query="cozy", cuisine="thai"))
    assert result.no_results
    assert store.queries == []


@pytest.mark.asyncio
async def test_hybrid_vector_outage_propagates(semantic_rows):
    index = FakeVectorIndex(error=ProviderUnavailable("vector store down"))
    search = HybridSearch(FakeEmbeddingProvider(), index, FakeRecipeStore(semantic_rows))
    with pytest.raises(ProviderUnavailable):
        await search.search(Intent(semantic_query="cozy", max_time_minutes=30))


# --- Dispatch ---


@pytest.mark.asyncio
async def test_execute_strategy_rejects_unregistered_kind(recipe_store):
    strategies = {StrategyKind.DETERMINISTIC: DeterministicSearch(recipe_store)}
    with pytest.raises(ValidationError):
        await execute_strategy(StrategyKind.SEMANTIC, Intent(semantic_query="x"), strategies)

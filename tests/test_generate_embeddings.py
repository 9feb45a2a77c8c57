import pytest
from conftest import FakeEmbeddingProvider, FakeRecipeStore, FakeVectorIndex, make_row
from scripts.generate_embeddings import embedding_record, generate_embeddings
from app.errors import ProviderUnavailable
from app.schemas.search import RankedRecipe, RecipeIngredient


@pytest.fixture
def published_rows():
    return [
        make_row(str(i), f"Recipe {i}", ingredients=["Crème Fraîche", "Salt ", "salt"])
        for i in range(5)
    ]


def test_embedding_record_normalizes_ingredients():
    recipe = RankedRecipe(
        id="r1",
        name="Soup",
        ingredients=[RecipeIngredient(name=" Tomato"), RecipeIngredient(name="Crème Fraîche")],
    )
    record = embedding_record(recipe, [0.5, 0.5])
    assert record == {
        "recipe_id": "r1",
        "embedding": [0.5, 0.5],
        "ingredients": ["creme fraiche", "tomato"],
    }


@pytest.mark.asyncio
async def test_generate_embeddings_backfills_in_batches(published_rows):
    provider = FakeEmbeddingProvider()
    index = FakeVectorIndex()

    total = await generate_embeddings(
        provider, index, FakeRecipeStore(published_rows), batch_size=2, concurrency=2
    )

    assert total == 5
    assert index.exists is True
    assert index.flushed == 1
    assert sorted(r["recipe_id"] for r in index.records) == ["0", "1", "2", "3", "4"]
    assert index.records[0]["ingredients"] == ["creme fraiche", "salt"]
    assert len(provider.calls) == 5
    assert provider.calls[0].startswith("Recipe 0\n")


@pytest.mark.asyncio
async def test_rerun_replaces_existing_records(published_rows):
    index = FakeVectorIndex()
    store = FakeRecipeStore(published_rows)

    await generate_embeddings(FakeEmbeddingProvider(), index, store)
    await generate_embeddings(FakeEmbeddingProvider(), index, store)

    assert len(index.records) == 5


@pytest.mark.asyncio
async def test_limit_and_empty_catalogue(published_rows):
    index = FakeVectorIndex()
    assert await generate_embeddings(FakeEmbeddingProvider(), index, FakeRecipeStore(published_rows), limit=2) == 2
    assert len(index.records) == 2

    empty_index = FakeVectorIndex()
    assert await generate_embeddings(FakeEmbeddingProvider(), empty_index, FakeRecipeStore([])) == 0
    assert empty_index.exists is True
    assert empty_index.flushed == 0


@pytest.mark.asyncio
async def test_embedding_outage_stops_backfill(published_rows):
    index = FakeVectorIndex()
    provider = FakeEmbeddingProvider(error=ProviderUnavailable("ollama down"))

    with pytest.raises(ProviderUnavailable):
        await generate_embeddings(provider, index, FakeRecipeStore(published_rows))
    assert index.records == []

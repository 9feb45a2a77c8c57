import asyncio
import os
import sys
from typing import Dict, List, Optional, Tuple
from dotenv import load_dotenv

# --- Ensure pathing works for local imports ---
script_dir = os.path.dirname(os.path.abspath(__file__))
project_root = os.path.abspath(os.path.join(script_dir, os.pardir))
sys.path.insert(0, project_root)

from app.constants import BATCH_SIZE, EMBEDDING_CONCURRENCY
from app.database import dispose_engines, get_engine, get_vector_engine
from app.schemas.search import RankedRecipe
from app.services.embeddings import (
    EmbeddingProvider,
    OllamaEmbeddingProvider,
    OpenAIEmbeddingProvider,
)
from app.services.filter_compiler import PUBLISHED_ANCHOR
from app.services.recipe_queries import build_recipe_query, row_to_recipe
from app.services.relational_store import SqlAlchemyRelationalStore
from app.services.vector_index import PgVectorIndex
from app.utils.recipe_formatters import recipe_embedding_text
from app.utils.text_normalization import normalize_ingredients

# Load environment variables (DATABASE_URL, OLLAMA_BASE_URL, OPENAI_API_KEY)
load_dotenv()


async def load_published_recipes(store: SqlAlchemyRelationalStore) -> List[RankedRecipe]:
    sql = build_recipe_query(PUBLISHED_ANCHOR, order_by="r.name ASC")
    rows = await store.query(sql, [])
    return [row_to_recipe(row) for row in rows]


def embedding_record(recipe: RankedRecipe, vector: List[float]) -> Dict:
    return {
        "recipe_id": recipe.id,
        "embedding": vector,
        "ingredients": sorted(normalize_ingredients(i.name for i in recipe.ingredients)),
    }


async def embed_batch(
    provider: EmbeddingProvider,
    recipes: List[RankedRecipe],
    semaphore: asyncio.Semaphore,
) -> List[Tuple[RankedRecipe, List[float]]]:
    """Embed a batch with at most `semaphore` requests in flight."""

    async def embed_one(recipe: RankedRecipe) -> Tuple[RankedRecipe, List[float]]:
        async with semaphore:
            return recipe, await provider.embed(recipe_embedding_text(recipe))

    return await asyncio.gather(*(embed_one(r) for r in recipes))


async def generate_embeddings(
    provider: EmbeddingProvider,
    index: PgVectorIndex,
    store: SqlAlchemyRelationalStore,
    batch_size: int = BATCH_SIZE,
    concurrency: int = EMBEDDING_CONCURRENCY,
    recreate: bool = False,
    limit: Optional[int] = None,
) -> int:
    """
    Backfill the vector collection from published recipes.

    Returns:
        Number of embeddings inserted
    """
    if recreate and await index.has_collection():
        await index.drop_collection()
    if not await index.has_collection():
        await index.create_collection()

    recipes = await load_published_recipes(store)
    if limit:
        recipes = recipes[:limit]
    if not recipes:
        print("✅ No published recipes to embed.")
        return 0

    print(f"🧠 Found {len(recipes)} recipes to process. Embedding with {provider.name}...")
    # Replace existing records so re-runs do not duplicate recipes
    await index.delete([r.id for r in recipes])

    semaphore = asyncio.Semaphore(concurrency)
    total = 0
    for i in range(0, len(recipes), batch_size):
        batch = recipes[i : i + batch_size]
        print(f"  -> Processing batch {i // batch_size + 1} ({len(batch)} items)...")
        embedded = await embed_batch(provider, batch, semaphore)
        total += await index.insert([embedding_record(r, v) for r, v in embedded])
        print(f"  -> Batch {i // batch_size + 1} saved successfully.")

    await index.flush()
    print(f"\n🎉 Vectorization complete! Total recipes processed: {total}")
    return total


async def main(args) -> int:
    if args.provider == "openai":
        provider: EmbeddingProvider = OpenAIEmbeddingProvider()
    else:
        provider = OllamaEmbeddingProvider()
    try:
        return await generate_embeddings(
            provider,
            PgVectorIndex(get_vector_engine()),
            SqlAlchemyRelationalStore(get_engine()),
            batch_size=args.batch_size,
            concurrency=args.concurrency,
            recreate=args.recreate,
            limit=args.limit,
        )
    finally:
        if isinstance(provider, OllamaEmbeddingProvider):
            await provider.close()
        await dispose_engines()


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Generate recipe embeddings into the vector collection")
    parser.add_argument("--provider", choices=["ollama", "openai"], default="ollama")
    parser.add_argument("--batch-size", type=int, default=BATCH_SIZE)
    parser.add_argument("--concurrency", type=int, default=EMBEDDING_CONCURRENCY)
    parser.add_argument("--limit", type=int, default=None, help="Only embed the first N recipes")
    parser.add_argument("--recreate", action="store_true", help="Drop and recreate the collection first")
    asyncio.run(main(parser.parse_args()))

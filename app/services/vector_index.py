"""
Vector index over recipe embeddings, backed by pgvector.

Records are (recipe_id, embedding, ingredients[]) rows. Search is cosine
nearest-neighbour with an optional scalar-array filter expression:

    ingredients not_contains "chicken" and ingredients contains "rice"
"""

import re
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence
from sqlalchemy import delete, func, inspect, insert, select, text
from sqlalchemy.exc import InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine
from app.constants import EMBEDDING_DIMENSION, VECTOR_COLLECTION_NAME, VECTOR_PAYLOAD_FIELD
from app.errors import ProviderError, ProviderUnavailable
from app.models import Base, RecipeEmbedding
from app.schemas.search import VectorHit

_CLAUSE_RE = re.compile(r'\s*(\w+)\s+(not_contains|contains)\s+"((?:[^"\\]|\\.)*)"\s*')
_AND_RE = re.compile(r"and\b\s*")
_ESCAPE_RE = re.compile(r"\\(.)")


@dataclass(frozen=True)
class FilterClause:
    field: str
    operator: str  # "contains" | "not_contains"
    value: str


def parse_filter_expression(expression: str) -> List[FilterClause]:
    """Parse a conjunction of contains / not_contains clauses; "" means no filter."""
    if not expression or not expression.strip():
        return []

    clauses: List[FilterClause] = []
    pos = 0
    while True:
        match = _CLAUSE_RE.match(expression, pos)
        if not match:
            raise ProviderError(f"Invalid vector filter expression near position {pos}")
        field, operator, raw_value = match.groups()
        if field != VECTOR_PAYLOAD_FIELD:
            raise ProviderError(f"Unsupported vector filter field: {field}")
        clauses.append(FilterClause(field, operator, _ESCAPE_RE.sub(r"\1", raw_value)))
        pos = match.end()
        if pos >= len(expression):
            return clauses
        conjunction = _AND_RE.match(expression, pos)
        if not conjunction:
            raise ProviderError(f"Expected 'and' in vector filter expression at position {pos}")
        pos = conjunction.end()


def _table_exists(sync_conn) -> bool:
    return inspect(sync_conn).has_table(VECTOR_COLLECTION_NAME)


class PgVectorIndex:
    """Recipe embedding collection stored in a pgvector table."""

    def __init__(self, engine: AsyncEngine, dimension: int = EMBEDDING_DIMENSION):
        self.engine = engine
        self.dimension = dimension
        self.collection_name = VECTOR_COLLECTION_NAME

    @asynccontextmanager
    async def _translate_errors(self, operation: str):
        try:
            yield
        except (OperationalError, InterfaceError, OSError) as exc:
            print(f"[PgVector] ❌ {operation} failed, vector store unreachable: {type(exc).__name__}")
            raise ProviderUnavailable("Vector store is unreachable") from exc
        except SQLAlchemyError as exc:
            print(f"[PgVector] ❌ {operation} failed: {type(exc).__name__}")
            raise ProviderError(f"Vector store {operation} failed") from exc

    def _check_vector(self, vector: Sequence[float]):
        if len(vector) != self.dimension:
            raise ProviderError(
                f"Query vector has dimension {len(vector)}, collection expects {self.dimension}"
            )

    async def has_collection(self) -> bool:
        async with self._translate_errors("has_collection"):
            async with self.engine.connect() as conn:
                return await conn.run_sync(_table_exists)

    async def create_collection(self):
        async with self._translate_errors("create_collection"):
            async with self.engine.begin() as conn:
                await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
                await conn.run_sync(
                    Base.metadata.create_all, tables=[RecipeEmbedding.__table__]
                )
        print(f"[PgVector] ✅ Collection {self.collection_name} ready")

    async def drop_collection(self):
        async with self._translate_errors("drop_collection"):
            async with self.engine.begin() as conn:
                await conn.run_sync(
                    Base.metadata.drop_all, tables=[RecipeEmbedding.__table__]
                )
        print(f"[PgVector] Collection {self.collection_name} dropped")

    async def insert(self, records: List[Dict[str, Any]]) -> int:
        """
        Insert embedding records.

        Args:
            records: dicts with recipe_id, embedding and ingredients (normalized names)

        Returns:
            Number of inserted records
        """
        if not records:
            return 0
        for record in records:
            self._check_vector(record["embedding"])
        rows = [
            {
                "recipe_id": str(record["recipe_id"]),
                "embedding": list(record["embedding"]),
                "ingredients": [i.lower() for i in record.get("ingredients") or []],
            }
            for record in records
        ]
        async with self._translate_errors("insert"):
            async with self.engine.begin() as conn:
                await conn.execute(insert(RecipeEmbedding), rows)
        print(f"[PgVector] Inserted {len(rows)} embeddings")
        return len(rows)

    async def delete(self, recipe_ids: List[str]) -> int:
        if not recipe_ids:
            return 0
        async with self._translate_errors("delete"):
            async with self.engine.begin() as conn:
                result = await conn.execute(
                    delete(RecipeEmbedding).where(
                        RecipeEmbedding.recipe_id.in_([str(r) for r in recipe_ids])
                    )
                )
        return result.rowcount or 0

    async def flush(self):
        """Writes are durable on commit; refresh planner statistics for the new rows."""
        async with self._translate_errors("flush"):
            async with self.engine.begin() as conn:
                await conn.execute(text(f"ANALYZE {self.collection_name}"))
        print("[PgVector] ✅ Collection flushed")

    async def describe(self) -> Dict[str, Any]:
        async with self._translate_errors("describe"):
            async with self.engine.connect() as conn:
                exists = await conn.run_sync(_table_exists)
                count = 0
                if exists:
                    count = (
                        await conn.execute(select(func.count()).select_from(RecipeEmbedding))
                    ).scalar_one()
        return {
            "name": self.collection_name,
            "exists": exists,
            "dimension": self.dimension,
            "metric": "cosine",
            "payload_fields": [VECTOR_PAYLOAD_FIELD],
            "count": count,
        }

    async def search(
        self, query_vector: Sequence[float], k: int, filter_expression: str = ""
    ) -> List[VectorHit]:
        """
        Cosine nearest neighbours, most similar first.
        Returns [] when the collection is absent or empty.
        """
        self._check_vector(query_vector)
        if k <= 0:
            return []
        clauses = parse_filter_expression(filter_expression)

        distance = RecipeEmbedding.embedding.cosine_distance(list(query_vector)).label(
            "distance"
        )
        stmt = select(RecipeEmbedding.recipe_id, distance)
        for clause in clauses:
            condition = RecipeEmbedding.ingredients.contains([clause.value])
            stmt = stmt.where(~condition if clause.operator == "not_contains" else condition)
        stmt = stmt.order_by(distance).limit(k)

        async with self._translate_errors("search"):
            async with self.engine.connect() as conn:
                if not await conn.run_sync(_table_exists):
                    print(f"[PgVector] ⚠️ Collection {self.collection_name} does not exist")
                    return []
                rows = (await conn.execute(stmt)).all()

        hits: List[VectorHit] = []
        seen = set()
        for recipe_id, dist in rows:
            if recipe_id in seen:
                continue
            seen.add(recipe_id)
            dist = float(dist)
            hits.append(
                VectorHit(
                    recipe_id=recipe_id,
                    similarity=min(max(1.0 - dist, 0.0), 1.0),
                    distance=dist,
                )
            )
        print(f"[PgVector] Search returned {len(hits)} hits (k={k}, filters={len(clauses)})")
        return hits

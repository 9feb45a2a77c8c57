import pytest
from fastapi.testclient import TestClient
from typing import Any, Dict, List, Optional
import sys
from pathlib import Path

# Add parent directory to path so main and app modules can be imported
backend_root = Path(__file__).parent.parent
sys.path.insert(0, str(backend_root))

from main import app
from app.core.rate_limit import limiter
from app.constants import EMBEDDING_DIMENSION
from app.schemas.search import ClassificationResult, SearchResult, VectorHit
from app.services.conversation_store import InMemoryConversationStore, get_conversation_store
from app.services.coordinator import SearchCoordinator, get_search_coordinator
from app.services.response_composer import ResponseComposer
from app.services.search_strategies import build_strategies
from app.routers.chat import get_response_composer

limiter.enabled = False


# --- In-memory fakes for the search backends ---
class FakeEmbeddingProvider:
    name = "fake"

    def __init__(self, dimension: int = EMBEDDING_DIMENSION, error: Exception = None):
        self.dimension = dimension
        self.error = error
        self.calls: List[str] = []

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if self.error:
            raise self.error
        return [0.1] * self.dimension


class FakeVectorIndex:
    def __init__(self, hits: List[VectorHit] = None, error: Exception = None):
        self.hits = hits or []
        self.error = error
        self.searches: List[Dict[str, Any]] = []
        self.records: List[Dict[str, Any]] = []
        self.exists = False
        self.flushed = 0

    async def search(self, query_vector, k, filter_expression=""):
        self.searches.append({"k": k, "filter": filter_expression, "dimension": len(query_vector)})
        if self.error:
            raise self.error
        return self.hits[:k]

    async def has_collection(self):
        return self.exists

    async def create_collection(self):
        self.exists = True

    async def drop_collection(self):
        self.exists = False
        self.records = []

    async def insert(self, records):
        self.records.extend(records)
        return len(records)

    async def delete(self, recipe_ids):
        before = len(self.records)
        self.records = [r for r in self.records if r["recipe_id"] not in set(recipe_ids)]
        return before - len(self.records)

    async def flush(self):
        self.flushed += 1


class FakeRecipeStore:
    """
    Returns canned rows. It does not evaluate WHERE clauses; it only mimics
    the candidate-id restriction, the relational ordering, LIMIT and OFFSET.
    """

    def __init__(self, rows: List[Dict[str, Any]] = None, error: Exception = None):
        self.rows = rows or []
        self.error = error
        self.queries: List[Dict[str, Any]] = []

    async def query(self, sql: str, params=()):
        params = list(params)
        self.queries.append({"sql": sql, "params": params})
        if self.error:
            raise self.error

        rows = [dict(r) for r in self.rows]
        if "ANY(CAST($1 AS text[]))" in sql:
            candidate_ids = set(params[0])
            rows = [r for r in rows if r["id"] in candidate_ids]
        if "ORDER BY total_time_minutes" in sql:
            rows.sort(key=lambda r: (r["total_time_minutes"], r["recipe_name"]))
        if "\nOFFSET $" in sql:
            limit, offset = params[-2], params[-1]
            rows = rows[offset : offset + limit]
        elif "\nLIMIT $" in sql:
            rows = rows[: params[-1]]
        return rows


class FakeClassifier:
    def __init__(self, result: ClassificationResult = None, error: Exception = None):
        self.result = result
        self.error = error
        self.calls: List[str] = []

    async def classify(self, text, history=None):
        self.calls.append(text)
        if self.error:
            raise self.error
        return self.result


class FakeFallback:
    def __init__(self, result: SearchResult = None, error: Exception = None):
        self.result = result
        self.error = error
        self.calls: List[str] = []

    async def run(self, raw_query, user_id=None, history=None):
        self.calls.append(raw_query)
        if self.error:
            raise self.error
        return self.result


class FakeChatProvider:
    def __init__(self, reply: str = "Here are some recipes."):
        self.reply = reply
        self.calls: List[list] = []

    async def complete(self, messages):
        self.calls.append(messages)
        return self.reply


def make_row(
    recipe_id: str,
    name: str,
    prep: Optional[int] = 10,
    cook: Optional[int] = 10,
    ingredients: List[str] = (),
    difficulty: str = "easy",
    tags: List[str] = (),
    meta: Optional[Dict[str, Any]] = None,
    owner_uid: Optional[str] = None,
    is_liked: bool = False,
) -> Dict[str, Any]:
    """A row shaped like the enriched recipe projection."""
    return {
        "id": recipe_id,
        "recipe_name": name,
        "slug": name.lower().replace(" ", "-"),
        "ingress": f"{name} description",
        "difficulty": difficulty,
        "servings": 4,
        "prep_time": prep,
        "cook_time": cook,
        "meta": meta,
        "total_time_minutes": (prep or 0) + (cook or 0),
        "instructions": [{"order": 1, "description": f"Cook the {name.lower()}"}],
        "ingredients": [
            {"name": ingredient, "amount": 1, "unit": "pcs", "order": i}
            for i, ingredient in enumerate(ingredients)
        ],
        "tags": list(tags),
        "owner_uid": owner_uid,
        "is_liked": is_liked,
    }


def hit(recipe_id: str, similarity: float) -> VectorHit:
    return VectorHit(recipe_id=recipe_id, similarity=similarity, distance=1 - similarity)


@pytest.fixture
def recipe_rows():
    """A(20 min, rice), B(45 min, peanut), C(25 min, egg)"""
    return [
        make_row("A", "A", prep=10, cook=10, ingredients=["Rice"]),
        make_row("B", "B", prep=15, cook=30, ingredients=["Peanut"]),
        make_row("C", "C", prep=5, cook=20, ingredients=["Egg"]),
    ]


@pytest.fixture
def embedding_provider():
    return FakeEmbeddingProvider()


@pytest.fixture
def recipe_store(recipe_rows):
    return FakeRecipeStore(recipe_rows)


@pytest.fixture
def conversation_store():
    return InMemoryConversationStore(ttl_seconds=60, max_sessions=10, max_messages=10)


@pytest.fixture
def chat_provider():
    return FakeChatProvider()


@pytest.fixture
def api_backends(recipe_store, conversation_store, chat_provider):
    """
    Wire the app to in-memory backends. Tests adjust the classifier result,
    the vector hits or the fallback through the returned dict.
    """
    backends = {
        "embedding": FakeEmbeddingProvider(),
        "vector_index": FakeVectorIndex(),
        "store": recipe_store,
        "classifier": FakeClassifier(),
        "fallback": FakeFallback(),
        "conversation_store": conversation_store,
        "chat_provider": chat_provider,
    }

    def override_get_search_coordinator():
        return SearchCoordinator(
            classifier=backends["classifier"],
            strategies=build_strategies(
                backends["embedding"], backends["vector_index"], backends["store"]
            ),
            fallback=backends["fallback"],
            timeout_seconds=5,
        )

    def override_get_response_composer():
        return ResponseComposer(
            chat_provider=backends["chat_provider"],
            conversation_store=backends["conversation_store"],
        )

    app.dependency_overrides[get_search_coordinator] = override_get_search_coordinator
    app.dependency_overrides[get_response_composer] = override_get_response_composer
    app.dependency_overrides[get_conversation_store] = lambda: backends["conversation_store"]
    yield backends
    app.dependency_overrides.clear()


@pytest.fixture
def client():
    """Get test client"""
    return TestClient(app)

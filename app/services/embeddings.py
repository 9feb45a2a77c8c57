"""
Embedding providers.

- OllamaEmbeddingProvider: local embedding service (primary retrieval path)
- OpenAIEmbeddingProvider: hosted embeddings (used by the fallback agent)

Both return fixed-length vectors and raise ProviderUnavailable when the
backend cannot be reached, ProviderError for any other failure.
"""

import os
from typing import List, Optional, Protocol
import httpx
import openai
from dotenv import load_dotenv
from langchain_openai import OpenAIEmbeddings
from app.constants import (
    EMBEDDING_DIMENSION,
    EMBEDDING_MODEL,
    OLLAMA_EMBEDDING_MODEL,
)
from app.errors import ProviderError, ProviderUnavailable

load_dotenv()


class EmbeddingProvider(Protocol):
    name: str
    dimension: int

    async def embed(self, text: str) -> List[float]: ...


def _check_dimension(provider: str, vector: List[float], dimension: int) -> List[float]:
    if len(vector) != dimension:
        raise ProviderError(
            f"{provider} returned a {len(vector)}-dimensional embedding, expected {dimension}"
        )
    return vector


class OllamaEmbeddingProvider:
    """Embeddings from a local Ollama server over its HTTP API."""

    name = "ollama"

    def __init__(
        self,
        base_url: str = None,
        model: str = None,
        dimension: int = EMBEDDING_DIMENSION,
        timeout: float = 30.0,
        client: httpx.AsyncClient = None,
    ):
        self.base_url = (
            base_url or os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
        ).rstrip("/")
        self.model = model or os.getenv("OLLAMA_EMBEDDING_MODEL", OLLAMA_EMBEDDING_MODEL)
        self.dimension = dimension
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def close(self):
        await self.client.aclose()

    async def embed(self, text: str) -> List[float]:
        try:
            response = await self.client.post(
                f"{self.base_url}/api/embed",
                json={"model": self.model, "input": text},
            )
            response.raise_for_status()
        except (httpx.ConnectError, httpx.ConnectTimeout) as exc:
            print(f"[Embedding] ❌ Ollama unreachable at {self.base_url}: {type(exc).__name__}")
            raise ProviderUnavailable("Local embedding service is unreachable") from exc
        except httpx.HTTPStatusError as exc:
            raise ProviderError(
                f"Ollama embedding request failed with status {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderError(f"Ollama embedding request failed: {type(exc).__name__}") from exc

        embeddings = response.json().get("embeddings") or []
        if not embeddings:
            raise ProviderError("Ollama returned no embedding")

        vector = _check_dimension(self.name, embeddings[0], self.dimension)
        print(f"[Embedding] Generated {len(vector)}-dimensional embedding via Ollama")
        return vector


class OpenAIEmbeddingProvider:
    """Embeddings from OpenAI, truncated server-side to the index dimension."""

    name = "openai"

    def __init__(self, model: str = None, dimension: int = EMBEDDING_DIMENSION):
        self.model = model or os.getenv("OPENAI_EMBEDDING_MODEL", EMBEDDING_MODEL)
        self.dimension = dimension
        self._client: Optional[OpenAIEmbeddings] = None

    @property
    def embeddings_client(self) -> OpenAIEmbeddings:
        # Created on first use; the constructor needs OPENAI_API_KEY
        if self._client is None:
            self._client = OpenAIEmbeddings(model=self.model, dimensions=self.dimension)
        return self._client

    async def embed(self, text: str) -> List[float]:
        try:
            vector = await self.embeddings_client.aembed_query(text)
        except openai.APIConnectionError as exc:
            raise ProviderUnavailable("OpenAI embeddings are unreachable") from exc
        except openai.OpenAIError as exc:
            raise ProviderError(f"OpenAI embeddings error: {type(exc).__name__}") from exc

        vector = _check_dimension(self.name, vector, self.dimension)
        print(f"[Embedding] Generated {len(vector)}-dimensional embedding via OpenAI")
        return vector

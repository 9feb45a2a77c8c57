from app.errors.search import (
    SearchError,
    ValidationError,
    ProviderUnavailable,
    ProviderError,
    StoreError,
    FallbackExhausted,
    SearchCancelled,
    SearchTimeout,
)

__all__ = [
    "SearchError",
    "ValidationError",
    "ProviderUnavailable",
    "ProviderError",
    "StoreError",
    "FallbackExhausted",
    "SearchCancelled",
    "SearchTimeout",
]

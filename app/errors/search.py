"""
Error taxonomy for the recipe search core.

Adapters translate library exceptions into these types so the coordinator
can branch on the error kind instead of inspecting messages.
"""


class SearchError(Exception):
    """Base class for every failure raised by the search core."""

    kind = "search_error"
    # Safe to show to API callers; never the raw exception text
    public_message = "Recipe search failed."


class ValidationError(SearchError):
    """The intent cannot be executed by the requested strategy."""

    kind = "validation_error"
    public_message = "The search request was invalid."


class ProviderUnavailable(SearchError):
    """Embedding or vector backend could not be reached."""

    kind = "provider_unavailable"
    public_message = "The search service is temporarily unavailable."


class ProviderError(SearchError):
    """Embedding, vector or LLM backend was reachable but returned an error."""

    kind = "provider_error"
    public_message = "A search provider returned an error."


class StoreError(SearchError):
    """Relational recipe store query failed."""

    kind = "store_error"
    public_message = "The recipe store could not be queried."


class FallbackExhausted(SearchError):
    """The primary path was unavailable and the fallback path failed too."""

    kind = "fallback_exhausted"
    public_message = "The search service is temporarily unavailable."


class SearchCancelled(SearchError):
    """The caller cancelled the request before it completed."""

    kind = "cancelled"
    public_message = "The search was cancelled."


class SearchTimeout(SearchCancelled):
    """The request exceeded its time limit."""

    kind = "timeout"
    public_message = "The search took too long to complete."

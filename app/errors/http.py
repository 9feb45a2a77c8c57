from fastapi import HTTPException, status
from app.errors.search import (
    FallbackExhausted,
    ProviderError,
    ProviderUnavailable,
    SearchCancelled,
    SearchError,
    SearchTimeout,
    StoreError,
    ValidationError,
)

# Most specific class first
_STATUS_BY_ERROR = [
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (SearchTimeout, status.HTTP_504_GATEWAY_TIMEOUT),
    (SearchCancelled, status.HTTP_503_SERVICE_UNAVAILABLE),
    (FallbackExhausted, status.HTTP_503_SERVICE_UNAVAILABLE),
    (ProviderUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE),
    (ProviderError, status.HTTP_502_BAD_GATEWAY),
    (StoreError, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


def status_for(exc: SearchError) -> int:
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def to_http_exception(exc: SearchError) -> HTTPException:
    """Generic, client-safe HTTP error; the raw exception text is never exposed."""
    return HTTPException(
        status_code=status_for(exc),
        detail={"message": exc.public_message, "error_kind": exc.kind},
    )
